from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.models.config import EnvConfig


class EmbedClientOpenai(EmbedClientInterface):
    """Embedding client for OpenAI-compatible /v1/embeddings backends."""

    def _get_engine_name(self) -> str:
        return "Openai"

    def _get_env_settings(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default="https://api.openai.com"),
            EnvConfig(env_key="API_KEY", val_type="string"),
            # 0 keeps the model's native dimension
            EnvConfig(env_key="DIMENSIONS", val_type="number", default=0),
        ]

    def _get_endpoint_healthcheck(self) -> str:
        return "/v1/models"

    def get_endpoint_embedding(self) -> str:
        return "/v1/embeddings"

    def get_embed_payload(self, texts: list[str]) -> dict:
        payload: dict = {"model": self.embed_model, "input": texts}
        if self.settings["DIMENSIONS"]:
            payload["dimensions"] = int(self.settings["DIMENSIONS"])
        return payload

    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Vectors from the "data" list, ordered by each item's "index"."""
        data = response_data.get("data")
        if not data:
            raise ValueError(f"no embedding data in response (keys: {list(response_data)})")
        embeddings = [item.get("embedding") for item in sorted(data, key=lambda item: item.get("index", 0))]
        if not all(embeddings):
            raise ValueError("response contains an empty embedding")
        return embeddings
