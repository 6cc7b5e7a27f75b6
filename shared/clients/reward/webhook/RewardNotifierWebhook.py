from shared.clients.reward.RewardNotifierInterface import RewardNotifierInterface
from shared.models.config import EnvConfig


class RewardNotifierWebhook(RewardNotifierInterface):
    """Posts answer events as JSON to REWARD_WEBHOOK_URL.

    REWARD_WEBHOOK_SECRET, when set, is sent as X-Webhook-Secret.
    """

    def _get_engine_name(self) -> str:
        return "Webhook"

    def _get_env_settings(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="URL", val_type="string"),
            EnvConfig(env_key="SECRET", val_type="string", default=""),
        ]

    def _get_auth_header(self) -> dict:
        secret = self.settings["SECRET"]
        return {"X-Webhook-Secret": secret} if secret else {}

    def _get_base_url(self) -> str:
        return self.settings["URL"]

    def _get_endpoint_healthcheck(self) -> str:
        return ""

    async def do_notify_answer(self, student_id: str, tenant_id: str, session_id: str, message_id: str) -> None:
        await self.do_request(
            method="POST",
            json=self.get_answer_payload(student_id, tenant_id, session_id, message_id),
            raise_on_error=True,
        )
        self.logging.debug("Reward event sent for message %s (student %s).", message_id, student_id)
