from abc import abstractmethod

from shared.clients.ClientInterface import ClientInterface
from shared.exceptions.RAGErrors import ProviderError
from shared.helper.HelperConfig import HelperConfig


class LLMClientInterface(ClientInterface):
    """Chat-completion backend used for answer generation.

    Engine-independent settings:
        LLM_CHAT_MODEL   model name (required)
        LLM_TEMPERATURE  sampling temperature (default 0.2)
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self.chat_model = helper_config.get_string_val("LLM_CHAT_MODEL")
        self.temperature = helper_config.get_number_val("LLM_TEMPERATURE", default=0.2)

    def _get_client_type(self) -> str:
        return "llm"

    ##########################################
    ########## ENGINE SPECIFICS ##############
    ##########################################

    @abstractmethod
    def _get_endpoint_chat(self) -> str:
        pass

    @abstractmethod
    def get_chat_payload(self, messages: list[dict]) -> dict:
        """Request body for OpenAI-style messages ([{"role": ..., "content": ...}])."""
        pass

    @abstractmethod
    def extract_chat_response(self, response_data: dict) -> str:
        """Assistant reply text from a response body.

        Raises:
            ValueError: If the body holds no reply.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_chat(self, messages: list[dict]) -> str:
        """Send the conversation and return the assistant's reply.

        Raises:
            ProviderError: If the request fails or the body holds no reply.
        """
        data = await self.do_request_json(method="POST", endpoint=self._get_endpoint_chat(), json=self.get_chat_payload(messages))
        try:
            return self.extract_chat_response(data)
        except ValueError as e:
            self.logging.error("Unusable chat response from %s: %s", self.get_engine_name(), e)
            raise ProviderError(f"LLM backend '{self.get_engine_name()}' returned an invalid response.") from e
