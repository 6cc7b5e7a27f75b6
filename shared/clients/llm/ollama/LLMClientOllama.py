from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.models.config import EnvConfig


class LLMClientOllama(LLMClientInterface):
    """Ollama /api/chat without streaming."""

    def _get_engine_name(self) -> str:
        return "Ollama"

    def _get_env_settings(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string"),
            EnvConfig(env_key="API_KEY", val_type="string", default=""),
            # 0 leaves the model's own context size
            EnvConfig(env_key="NUM_CTX", val_type="number", default=0),
        ]

    def _get_endpoint_healthcheck(self) -> str:
        return ""

    def _get_endpoint_chat(self) -> str:
        return "/api/chat"

    def get_chat_payload(self, messages: list[dict]) -> dict:
        options: dict = {"temperature": self.temperature}
        if self.settings["NUM_CTX"]:
            options["num_ctx"] = int(self.settings["NUM_CTX"])
        return {"model": self.chat_model, "messages": messages, "stream": False, "options": options}

    def extract_chat_response(self, response_data: dict) -> str:
        content = (response_data.get("message") or {}).get("content")
        if content is None:
            raise ValueError(f"no message in response (keys: {list(response_data)})")
        return content
