from abc import abstractmethod

from shared.clients.ClientInterface import ClientInterface


class RewardNotifierInterface(ClientInterface):
    """Best-effort side channel that tells the reward system a question was answered.

    Callers schedule notifications without awaiting them; an exception raised here
    must never reach the chat request that triggered it.
    """

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "reward"

    ################ PAYLOAD BUILDER ##################
    def get_answer_payload(self, student_id: str, tenant_id: str, session_id: str, message_id: str) -> dict:
        """Build the event body sent after a successful answer."""
        return {
            "event": "question_answered",
            "student_id": student_id,
            "tenant_id": tenant_id,
            "session_id": session_id,
            "message_id": message_id,
        }

    ##########################################
    ############### REQUESTS #################
    ##########################################

    @abstractmethod
    async def do_notify_answer(self, student_id: str, tenant_id: str, session_id: str, message_id: str) -> None:
        """Notify the reward system about an answered question.

        Raises:
            ProviderError: If the reward backend rejects or cannot receive the event.
        """
        pass
