from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.models.config import EnvConfig


class LLMClientOpenai(LLMClientInterface):
    """Chat client for OpenAI-compatible /v1/chat/completions backends."""

    def _get_engine_name(self) -> str:
        return "Openai"

    def _get_env_settings(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default="https://api.openai.com"),
            EnvConfig(env_key="API_KEY", val_type="string"),
            EnvConfig(env_key="MAX_TOKENS", val_type="number", default=1000),
        ]

    def _get_endpoint_healthcheck(self) -> str:
        return "/v1/models"

    def _get_endpoint_chat(self) -> str:
        return "/v1/chat/completions"

    def get_chat_payload(self, messages: list[dict]) -> dict:
        return {
            "model": self.chat_model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": int(self.settings["MAX_TOKENS"]),
        }

    def extract_chat_response(self, response_data: dict) -> str:
        """Reply of the first choice."""
        choices = response_data.get("choices") or []
        if not choices:
            raise ValueError(f"no choices in response (keys: {list(response_data)})")
        content = (choices[0].get("message") or {}).get("content")
        if content is None:
            raise ValueError("first choice has no message content")
        return content
