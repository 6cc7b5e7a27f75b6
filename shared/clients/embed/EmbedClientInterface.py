from abc import abstractmethod
from typing import Tuple

from shared.clients.ClientInterface import ClientInterface
from shared.exceptions.RAGErrors import ProviderError
from shared.helper.HelperConfig import HelperConfig


class EmbedClientInterface(ClientInterface):
    """Embedding backend: texts in, one vector per text out, in input order.

    Engine-independent settings:
        EMBED_MODEL            model name (required)
        EMBED_DISTANCE         distance reported to the vector store (default Cosine)
        EMBED_MODEL_MAX_CHARS  inputs longer than this are cut before sending (optional)
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self.embed_model = helper_config.get_string_val("EMBED_MODEL")
        self.embed_distance = helper_config.get_string_val("EMBED_DISTANCE", default="Cosine")
        max_chars = helper_config.get_optional_number_val("EMBED_MODEL_MAX_CHARS")
        self.max_input_chars = int(max_chars) if max_chars else None

    def _get_client_type(self) -> str:
        return "embed"

    def get_model_name(self) -> str:
        return self.embed_model

    ##########################################
    ########## ENGINE SPECIFICS ##############
    ##########################################

    @abstractmethod
    def get_endpoint_embedding(self) -> str:
        pass

    @abstractmethod
    def get_embed_payload(self, texts: list[str]) -> dict:
        """Request body for embedding `texts` with the configured model."""
        pass

    @abstractmethod
    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Pull the vectors out of a response body, in input order.

        Raises:
            ValueError: If the body holds no usable vectors.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_fetch_embedding_vector_size(self) -> Tuple[int, str]:
        """Dimension of the model's vectors and the configured distance.

        Embeds a sample text; engines with a model-info endpoint override this.
        """
        vectors = await self.do_embed("dimension check")
        return len(vectors[0]), self.embed_distance

    async def do_embed(self, texts: list[str] | str) -> list[list[float]]:
        """Embed one text or a batch of texts.

        Raises:
            ProviderError: If the request fails or the body holds no usable vectors.
        """
        texts = self._prepare_texts([texts] if isinstance(texts, str) else texts)
        data = await self.do_request_json(method="POST", endpoint=self.get_endpoint_embedding(), json=self.get_embed_payload(texts))
        try:
            return self.extract_embeddings_from_response(data)
        except ValueError as e:
            self.logging.error("Unusable embedding response from %s: %s", self.get_engine_name(), e)
            raise ProviderError(f"Embedding backend '{self.get_engine_name()}' returned an invalid response.") from e

    def _prepare_texts(self, texts: list[str]) -> list[str]:
        if not self.max_input_chars:
            return texts
        cut = sum(1 for text in texts if len(text) > self.max_input_chars)
        if cut:
            self.logging.warning("Cut %d text(s) to EMBED_MODEL_MAX_CHARS=%d before embedding.", cut, self.max_input_chars)
        return [text[: self.max_input_chars] for text in texts]
