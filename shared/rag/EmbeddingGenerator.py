from pydantic import BaseModel

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.exceptions.RAGErrors import PartialIngestionError, ProviderError
from shared.helper.HelperConfig import HelperConfig
from shared.helper.RetryPolicy import RetryPolicy

MAX_BATCH_SIZE = 96


class EmbeddingBatch(BaseModel):
    """Vectors for an ordered list of texts; vectors[i] belongs to texts[i]."""

    vectors: list[list[float]]
    count: int
    model: str | None = None


class EmbeddingGenerator:
    """Turns chunk texts into vectors through the configured embedding client.

    Texts are sent in batches of at most EMBED_BATCH_SIZE (capped at 96). Each
    batch goes through the shared retry policy; the result is either a vector
    for every text or an exception, never a partial list.
    """

    def __init__(
        self,
        helper_config: HelperConfig,
        embed_client: EmbedClientInterface,
        retry_policy: RetryPolicy,
        batch_size: int | None = None,
    ):
        self.logging = helper_config.get_logger()
        self.embed_client = embed_client
        self.retry_policy = retry_policy
        configured = int(batch_size or helper_config.get_positive_number_val("EMBED_BATCH_SIZE", default=MAX_BATCH_SIZE))
        if configured > MAX_BATCH_SIZE:
            self.logging.warning("EMBED_BATCH_SIZE %d exceeds the provider limit, using %d.", configured, MAX_BATCH_SIZE)
            configured = MAX_BATCH_SIZE
        self.batch_size = configured

    async def generate(self, texts: list[str], video_id: str | None = None) -> EmbeddingBatch:
        """Embed all texts, batch by batch.

        Args:
            texts (list[str]): Texts to embed, in order.
            video_id (str | None): Video being ingested, for logs and errors.

        Returns:
            EmbeddingBatch: One vector per text, same order.

        Raises:
            ProviderError: If the first batch fails after retries, or a batch returns
                the wrong number of vectors or inconsistent dimensions.
            PartialIngestionError: If a later batch fails after earlier batches succeeded.
        """
        if not texts:
            return EmbeddingBatch(vectors=[], count=0, model=self.embed_client.get_model_name())

        vectors: list[list[float]] = []
        label = video_id or "query"

        for start in range(0, len(texts), self.batch_size):
            batch = texts[start:start + self.batch_size]
            batch_number = start // self.batch_size + 1
            try:
                batch_vectors = await self._embed_batch(batch, batch_number, label)
                self._check_dimensions(batch_vectors, expected=len(vectors[0]) if vectors else None)
            except ProviderError:
                if vectors and video_id is not None:
                    raise PartialIngestionError(video_id=video_id, generated=len(vectors), expected=len(texts))
                raise
            vectors.extend(batch_vectors)

        self.logging.debug("Generated %d embeddings (dim %d) for %s.", len(vectors), len(vectors[0]), label)
        return EmbeddingBatch(vectors=vectors, count=len(vectors), model=self.embed_client.get_model_name())

    ##########################################
    ################ HELPERS #################
    ##########################################

    async def _embed_batch(self, batch: list[str], batch_number: int, label: str) -> list[list[float]]:
        batch_vectors = await self.retry_policy.run(
            lambda: self.embed_client.do_embed(batch),
            description=f"Embedding batch {batch_number} for {label}",
        )
        if len(batch_vectors) != len(batch):
            self.logging.error(
                "Embedding batch %d for %s returned %d vectors for %d texts.",
                batch_number, label, len(batch_vectors), len(batch),
            )
            raise ProviderError("Embedding provider returned a wrong number of vectors.")
        return batch_vectors

    def _check_dimensions(self, batch_vectors: list[list[float]], expected: int | None) -> None:
        dimension = expected if expected is not None else len(batch_vectors[0])
        if dimension == 0 or any(len(vector) != dimension for vector in batch_vectors):
            raise ProviderError("Embedding provider returned vectors of inconsistent dimension.")
