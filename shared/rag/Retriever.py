from shared.exceptions.RAGErrors import ValidationError
from shared.helper.HelperConfig import HelperConfig
from shared.helper.guards import require_positive_int, require_tenant_id, require_text
from shared.models.chunk import RetrievalResult, RetrievalStatus
from shared.rag.EmbeddingGenerator import EmbeddingGenerator
from shared.stores.ChunkStoreInterface import ChunkStoreInterface


class Retriever:
    """Finds the tenant's chunks most relevant to a question.

    All input is validated before the question is embedded, so a bad request
    never costs a provider call. When nothing clears the threshold the result
    carries status NO_RELEVANT_CONTEXT instead of an empty success.
    """

    def __init__(
        self,
        helper_config: HelperConfig,
        embedding_generator: EmbeddingGenerator,
        chunk_store: ChunkStoreInterface,
    ):
        self.logging = helper_config.get_logger()
        self.embedding_generator = embedding_generator
        self.chunk_store = chunk_store
        self.default_top_k = int(helper_config.get_positive_number_val("RETRIEVAL_TOP_K", default=5))
        self.default_min_similarity = float(helper_config.get_number_val("RETRIEVAL_MIN_SIMILARITY", default=0.7))
        fallback = helper_config.get_optional_number_val("RETRIEVAL_FALLBACK_MIN_SIMILARITY")
        self.fallback_min_similarity = float(fallback) if fallback is not None else None

    async def retrieve(
        self,
        question: str,
        tenant_id: str,
        top_k: int | None = None,
        min_similarity: float | None = None,
        video_ids: list[str] | None = None,
    ) -> RetrievalResult:
        """Embed the question and search the tenant's chunks.

        Args:
            question (str): The student's question.
            tenant_id (str): Tenant whose content may be searched. Required.
            top_k (int | None): Maximum number of chunks; RETRIEVAL_TOP_K when omitted.
            min_similarity (float | None): Minimum cosine similarity; RETRIEVAL_MIN_SIMILARITY when omitted.
            video_ids (list[str] | None): Restrict the search to these videos.

        Returns:
            RetrievalResult: Ranked chunks and the retrieval status.

        Raises:
            ValidationError: On a blank question or tenant, or out-of-range parameters.
            ProviderError: If the question cannot be embedded.
        """
        tenant_id = require_tenant_id(tenant_id)
        question = require_text(question, "question")
        top_k = require_positive_int(self.default_top_k if top_k is None else top_k, "top_k")
        min_similarity = self.default_min_similarity if min_similarity is None else min_similarity
        if not -1.0 <= min_similarity <= 1.0:
            raise ValidationError("min_similarity must be between -1 and 1.")
        if video_ids is not None:
            video_ids = [v for v in video_ids if v and v.strip()] or None

        batch = await self.embedding_generator.generate([question])
        query_vector = batch.vectors[0]

        hits = await self.chunk_store.search_chunks(query_vector, tenant_id, top_k, min_similarity, video_ids)
        used_threshold = min_similarity
        if not hits and self.fallback_min_similarity is not None and self.fallback_min_similarity < min_similarity:
            self.logging.info(
                "No chunks above %.2f for tenant %s, retrying with fallback threshold %.2f.",
                min_similarity, tenant_id, self.fallback_min_similarity,
            )
            hits = await self.chunk_store.search_chunks(
                query_vector, tenant_id, top_k, self.fallback_min_similarity, video_ids
            )
            used_threshold = self.fallback_min_similarity

        status = RetrievalStatus.FOUND if hits else RetrievalStatus.NO_RELEVANT_CONTEXT
        self.logging.info(
            "Retrieved %d chunks for tenant %s (top_k=%d, min_similarity=%.2f): '%s'",
            len(hits), tenant_id, top_k, used_threshold, question[:80],
        )
        return RetrievalResult(
            question=question,
            tenant_id=tenant_id,
            chunks=hits,
            top_k=top_k,
            min_similarity=used_threshold,
            status=status,
        )
