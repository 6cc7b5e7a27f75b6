"""Ingestion service.

Turns the transcript of one processed video into stored, embedded chunks:
chunk -> embed -> replace the video's chunks in the chunk store.
"""

import asyncio
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator

from shared.exceptions.RAGErrors import AuthorizationError, PartialIngestionError, ProviderError, RAGError
from shared.helper.HelperConfig import HelperConfig
from shared.helper.guards import require_tenant_id, require_text
from shared.logging.logging_setup import bind_log_context
from shared.models.chunk import IngestionResult
from shared.models.transcript import Transcript
from shared.rag.EmbeddingGenerator import EmbeddingGenerator
from shared.rag.TranscriptChunker import TranscriptChunker
from shared.stores.ChunkStoreInterface import ChunkStoreInterface


class _VideoSlot:
    """Write lock and ingestion generations of one video.

    Every ingestion job draws a generation number when it starts. A job only
    touches the store if no newer job of the same video has already committed,
    so the most recently started job decides the final state.
    """

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0
        self.issued = 0
        self.committed = 0

    def next_generation(self) -> int:
        self.issued += 1
        return self.issued

    def is_stale(self, generation: int) -> bool:
        return self.committed > generation


class IngestionService:
    """Orchestrates ingestion of single videos.

    Different videos ingest fully in parallel. Writes for the same video are
    serialised by a per-video asyncio.Lock, held only around the store write and
    never across a provider call. The lock entry is dropped once no job of that
    video is running.
    """

    def __init__(
        self,
        helper_config: HelperConfig,
        chunker: TranscriptChunker,
        embedding_generator: EmbeddingGenerator,
        chunk_store: ChunkStoreInterface,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._chunker = chunker
        self._embedding_generator = embedding_generator
        self._chunk_store = chunk_store
        self._video_slots: dict[str, _VideoSlot] = {}

    ##########################################
    ############### CORE #####################
    ##########################################

    async def ingest_video(
        self,
        video_id: str,
        tenant_id: str,
        transcript: Transcript,
        video_created_at: datetime | None = None,
    ) -> IngestionResult:
        """Chunk, embed and store the transcript of one video.

        Re-ingesting a video replaces all of its chunks. If embedding fails, the
        video is left with no chunks at all and the error is re-raised. When
        several ingestions of the same video overlap, the one started last wins;
        an older job that finishes later leaves the store alone and reports the
        video's current state.

        Args:
            video_id (str): The processed video.
            tenant_id (str): The creator owning the video.
            transcript (Transcript): Validated transcript.
            video_created_at (datetime | None): Registration time used for ranking ties.

        Returns:
            IngestionResult: Number of chunks stored and whether the video is answerable.

        Raises:
            ValidationError: On a blank video or tenant id.
            AuthorizationError: If the video is registered to another tenant.
            ProviderError: If the first embedding batch fails after retries.
            PartialIngestionError: If a later embedding batch fails after retries.
        """
        video_id = require_text(video_id, "video_id")
        tenant_id = require_tenant_id(tenant_id)
        with bind_log_context(tenant=tenant_id, video=video_id), self._video_slot(video_id) as slot:
            return await self._ingest(slot, video_id, tenant_id, transcript, video_created_at)

    async def _ingest(
        self,
        slot: _VideoSlot,
        video_id: str,
        tenant_id: str,
        transcript: Transcript,
        video_created_at: datetime | None,
    ) -> IngestionResult:
        generation = slot.next_generation()

        owner = await self._chunk_store.get_video_tenant(video_id)
        if owner is not None and owner != tenant_id:
            self.logging.warning("Tenant %s tried to ingest video %s owned by another tenant.", tenant_id, video_id)
            raise AuthorizationError(f"Video '{video_id}' belongs to another tenant.")

        chunks = self._chunker.chunk(transcript)
        if not chunks:
            async with slot.lock:
                if slot.is_stale(generation):
                    return await self._superseded(video_id, tenant_id)
                await self._chunk_store.delete_chunks_for_video(video_id)
                slot.committed = generation
            self.logging.info("Video %s (tenant %s) has no transcript segments, RAG not available.", video_id, tenant_id)
            return IngestionResult(video_id=video_id, tenant_id=tenant_id, chunk_count=0, rag_available=False)

        try:
            batch = await self._embedding_generator.generate([c.text for c in chunks], video_id=video_id)
        except (ProviderError, PartialIngestionError) as e:
            async with slot.lock:
                if slot.is_stale(generation):
                    self.logging.error(
                        "Embedding failed for video %s (tenant %s): %s. A newer ingestion already committed, keeping it.",
                        video_id, tenant_id, e,
                    )
                else:
                    self.logging.error("Embedding failed for video %s (tenant %s): %s. Rolling back.", video_id, tenant_id, e)
                    await self._chunk_store.delete_chunks_for_video(video_id)
                    slot.committed = generation
            raise

        async with slot.lock:
            if slot.is_stale(generation):
                return await self._superseded(video_id, tenant_id)
            try:
                stored = await self._chunk_store.insert_chunks(
                    video_id=video_id,
                    tenant_id=tenant_id,
                    chunks=chunks,
                    vectors=batch.vectors,
                    embedding_model=batch.model,
                    video_created_at=video_created_at,
                )
            except RAGError:
                raise
            except Exception as e:
                self.logging.error("Storing chunks for video %s failed: %s", video_id, e)
                raise ProviderError("Chunk store write failed; the video was not indexed.") from e
            slot.committed = generation

        self.logging.info("Ingested video %s for tenant %s: %d chunks.", video_id, tenant_id, stored)
        return IngestionResult(video_id=video_id, tenant_id=tenant_id, chunk_count=stored, rag_available=stored > 0)

    async def delete_video(self, video_id: str, tenant_id: str) -> int:
        """Delete a video and all of its chunks. Returns the number of chunks removed.

        Ingestions of the video still in flight are superseded and write nothing.
        """
        video_id = require_text(video_id, "video_id")
        tenant_id = require_tenant_id(tenant_id)
        with self._video_slot(video_id) as slot:
            async with slot.lock:
                removed = await self._chunk_store.delete_video(video_id, tenant_id)
                slot.committed = slot.next_generation()
        return removed

    ##########################################
    ################ HELPERS #################
    ##########################################

    async def _superseded(self, video_id: str, tenant_id: str) -> IngestionResult:
        current = await self._chunk_store.count_chunks_for_video(video_id)
        self.logging.warning(
            "Ingestion of video %s (tenant %s) was superseded by a newer one, nothing written.", video_id, tenant_id
        )
        return IngestionResult(video_id=video_id, tenant_id=tenant_id, chunk_count=current, rag_available=current > 0)

    @contextmanager
    def _video_slot(self, video_id: str) -> Iterator[_VideoSlot]:
        slot = self._video_slots.get(video_id)
        if slot is None:
            slot = self._video_slots[video_id] = _VideoSlot()
        slot.users += 1
        try:
            yield slot
        finally:
            slot.users -= 1
            if slot.users == 0:
                del self._video_slots[video_id]
