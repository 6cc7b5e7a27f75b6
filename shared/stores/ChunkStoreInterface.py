from abc import ABC, abstractmethod
from datetime import datetime

from shared.models.chunk import ScoredChunk, TextChunk


class ChunkStoreInterface(ABC):
    """Persistence and similarity search for tenant-scoped chunks.

    Every read is filtered by tenant_id; a chunk's tenant is always taken from
    the video registration, never from chunk input.
    """

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    async def boot(self) -> None:
        """Open connections needed by the store."""
        pass

    async def close(self) -> None:
        """Release connections held by the store."""
        pass

    @abstractmethod
    async def prepare(self, vector_size: int) -> None:
        """Create tables, collections or indexes required for the given vector size."""
        pass

    ##########################################
    ################ WRITES ##################
    ##########################################

    @abstractmethod
    async def insert_chunks(
        self,
        video_id: str,
        tenant_id: str,
        chunks: list[TextChunk],
        vectors: list[list[float]],
        embedding_model: str | None = None,
        video_created_at: datetime | None = None,
    ) -> int:
        """Replace all chunks of a video with the given chunks and vectors.

        The replacement is all-or-nothing: on failure the video has no chunks left
        from a partial write.

        Args:
            video_id (str): The video the chunks belong to.
            tenant_id (str): The tenant registering the video.
            chunks (list[TextChunk]): Chunker output in index order.
            vectors (list[list[float]]): One vector per chunk, same order.
            embedding_model (str | None): Model that produced the vectors.
            video_created_at (datetime | None): Registration time; now when omitted.

        Returns:
            int: Number of chunks stored.

        Raises:
            ValidationError: If tenant_id is blank or chunks and vectors differ in length.
            AuthorizationError: If the video is registered to another tenant.
        """
        pass

    @abstractmethod
    async def delete_chunks_for_video(self, video_id: str) -> int:
        """Delete every chunk of a video and return how many were removed."""
        pass

    @abstractmethod
    async def delete_video(self, video_id: str, tenant_id: str) -> int:
        """Delete a video registration and all its chunks.

        Raises:
            ValidationError: If tenant_id is blank.
            AuthorizationError: If the video is registered to another tenant.
            NotFoundError: If the video is unknown.
        """
        pass

    ##########################################
    ################ READS ###################
    ##########################################

    @abstractmethod
    async def search_chunks(
        self,
        query_vector: list[float],
        tenant_id: str,
        top_k: int,
        min_similarity: float,
        video_ids: list[str] | None = None,
    ) -> list[ScoredChunk]:
        """Return the tenant's chunks most similar to the query vector.

        Results have similarity >= min_similarity, at most top_k entries, and are
        ordered by similarity desc, chunk index asc, video creation time asc,
        video id asc.

        Raises:
            ValidationError: If tenant_id is missing or blank. No rows are returned.
        """
        pass

    @abstractmethod
    async def count_chunks_for_video(self, video_id: str) -> int:
        pass

    @abstractmethod
    async def get_video_tenant(self, video_id: str) -> str | None:
        """Return the tenant a video is registered to, or None if unknown."""
        pass
