from typing import Tuple

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.exceptions.RAGErrors import ProviderError
from shared.models.config import EnvConfig


class EmbedClientOllama(EmbedClientInterface):
    """Ollama /api/embed. The vector size is read from /api/show model info."""

    def _get_engine_name(self) -> str:
        return "Ollama"

    def _get_env_settings(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string"),
            EnvConfig(env_key="API_KEY", val_type="string", default=""),
            EnvConfig(env_key="KEEP_ALIVE", val_type="string", default="5m"),
        ]

    def _get_endpoint_healthcheck(self) -> str:
        # Ollama answers "Ollama is running" on /
        return ""

    def get_endpoint_embedding(self) -> str:
        return "/api/embed"

    def get_embed_payload(self, texts: list[str]) -> dict:
        return {
            "model": self.embed_model,
            "input": texts,
            "truncate": True,
            "keep_alive": self.settings["KEEP_ALIVE"],
        }

    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        embeddings = response_data.get("embeddings")
        if not embeddings or not all(embeddings):
            raise ValueError(f"no embeddings in response (keys: {list(response_data)})")
        return embeddings

    async def do_fetch_embedding_vector_size(self) -> Tuple[int, str]:
        info = await self.do_request_json(method="POST", endpoint="/api/show", json={"model": self.embed_model})
        for key, value in (info.get("model_info") or {}).items():
            if key.endswith(".embedding_length"):
                return int(value), self.embed_distance
        raise ProviderError(f"Ollama reports no embedding length for model '{self.embed_model}'.")
