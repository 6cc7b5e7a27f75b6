"""Pydantic models for chunks and retrieval results.

Hierarchy:
  TextChunk       - chunker output, not yet bound to a video or tenant.
  Chunk           - persisted unit of knowledge, always tenant-scoped.
  ScoredChunk     - a Chunk paired with its similarity to a query.
  RetrievalResult - ranked ScoredChunks for one question, with an explicit status.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel

from shared.models.transcript import TranscriptSegment


class TextChunk(BaseModel):
    """A bounded, timestamped slice of a transcript as produced by the chunker.

    Carries no tenant or video id; the chunk store attaches both on persist.
    topic_tags are the most frequent content words of the text.
    """

    chunk_index: int
    text: str
    start_timestamp: float
    end_timestamp: float
    word_count: int
    segments: list[TranscriptSegment] = []
    topic_tags: list[str] = []


class Chunk(BaseModel):
    """A stored, retrievable chunk.

    The tenant_id is copied from the owning video's registration and is never
    taken from chunk input; a chunk cannot belong to a tenant other than its
    video's.

    Attributes:
        id:               Stable chunk identifier.
        video_id:         Owning video.
        tenant_id:        Owning tenant (creator).
        chunk_index:      Zero-based, contiguous position within the video.
        text:             Chunk text.
        start_timestamp:  Start in seconds.
        end_timestamp:    End in seconds.
        word_count:       Number of words in text.
        segments:         Constituent transcript segments.
        topic_tags:       Optional topic tags.
        embedding:        Embedding vector; omitted on search results.
        embedding_model:  Name of the model that produced the embedding.
        video_created_at: Registration time of the owning video.
    """

    id: str
    video_id: str
    tenant_id: str
    chunk_index: int
    text: str
    start_timestamp: float
    end_timestamp: float
    word_count: int
    segments: list[TranscriptSegment] = []
    topic_tags: list[str] = []
    embedding: list[float] | None = None
    embedding_model: str | None = None
    video_created_at: datetime | None = None


class ScoredChunk(BaseModel):
    """A chunk and its cosine similarity to the query vector."""

    chunk: Chunk
    similarity: float


class RetrievalStatus(str, Enum):
    FOUND = "found"
    NO_RELEVANT_CONTEXT = "no_relevant_context"


class RetrievalResult(BaseModel):
    """Ranked chunks for one question, scoped to one tenant.

    A result with status NO_RELEVANT_CONTEXT is the explicit signal that no
    chunk cleared the similarity threshold; the answer generator must not
    try to answer from it.
    """

    question: str
    tenant_id: str
    chunks: list[ScoredChunk] = []
    top_k: int
    min_similarity: float
    status: RetrievalStatus

    @property
    def has_relevant_context(self) -> bool:
        return self.status == RetrievalStatus.FOUND

    @property
    def average_similarity(self) -> float:
        if not self.chunks:
            return 0.0
        return sum(c.similarity for c in self.chunks) / len(self.chunks)


class IngestionResult(BaseModel):
    """Outcome of ingesting one video.

    rag_available is False when the transcript produced no chunks; the video is
    then simply not answerable, which is not an error.
    """

    video_id: str
    tenant_id: str
    chunk_count: int
    rag_available: bool
