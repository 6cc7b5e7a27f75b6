"""Tests for IngestionService: chunk, embed, store, roll back and overlapping jobs."""

from __future__ import annotations

import asyncio

import pytest

from shared.exceptions.RAGErrors import AuthorizationError, PartialIngestionError, ProviderError, ValidationError
from shared.helper.HelperConfig import HelperConfig
from shared.helper.RetryPolicy import RetryPolicy
from shared.models.transcript import Transcript, TranscriptSegment
from shared.rag.EmbeddingGenerator import EmbeddingGenerator
from shared.rag.TranscriptChunker import TranscriptChunker
from services.ingestion.IngestionService import IngestionService
from shared.stores.sql.ChunkStoreSql import ChunkStoreSql
from tests.fakes import FakeEmbedClient


def _service(
    helper_config: HelperConfig,
    retry_policy: RetryPolicy,
    chunk_store: ChunkStoreSql,
    client: FakeEmbedClient,
    max_words: int | None = None,
    batch_size: int | None = None,
) -> IngestionService:
    return IngestionService(
        helper_config,
        TranscriptChunker(helper_config, max_words=max_words),
        EmbeddingGenerator(helper_config, client, retry_policy, batch_size=batch_size),
        chunk_store,
    )


def _long_transcript(segments: int) -> Transcript:
    return Transcript(
        segments=[
            TranscriptSegment(index=i, start=i * 5.0, end=i * 5.0 + 5, text=f"segment number {i}")
            for i in range(segments)
        ]
    )


class TestIngestVideo:
    @pytest.mark.asyncio
    async def test_three_segments_become_one_chunk(
        self,
        helper_config: HelperConfig,
        retry_policy: RetryPolicy,
        chunk_store: ChunkStoreSql,
        three_segment_transcript: Transcript,
    ) -> None:
        service = _service(helper_config, retry_policy, chunk_store, FakeEmbedClient())

        result = await service.ingest_video("video-1", "tenant-a", three_segment_transcript)

        assert result.chunk_count == 1
        assert result.rag_available
        assert await chunk_store.count_chunks_for_video("video-1") == 1
        assert await chunk_store.get_video_tenant("video-1") == "tenant-a"

    @pytest.mark.asyncio
    async def test_zero_segments_is_not_an_error(
        self, helper_config: HelperConfig, retry_policy: RetryPolicy, chunk_store: ChunkStoreSql
    ) -> None:
        client = FakeEmbedClient()
        service = _service(helper_config, retry_policy, chunk_store, client)

        result = await service.ingest_video("video-1", "tenant-a", Transcript(text="", segments=[]))

        assert result.chunk_count == 0
        assert result.rag_available is False
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_reingest_replaces_chunks(
        self, helper_config: HelperConfig, retry_policy: RetryPolicy, chunk_store: ChunkStoreSql
    ) -> None:
        service = _service(helper_config, retry_policy, chunk_store, FakeEmbedClient(), max_words=3)

        await service.ingest_video("video-1", "tenant-a", _long_transcript(6))
        result = await service.ingest_video("video-1", "tenant-a", _long_transcript(2))

        assert result.chunk_count == 2
        assert await chunk_store.count_chunks_for_video("video-1") == 2

    @pytest.mark.asyncio
    async def test_blank_ids_are_rejected(
        self,
        helper_config: HelperConfig,
        retry_policy: RetryPolicy,
        chunk_store: ChunkStoreSql,
        three_segment_transcript: Transcript,
    ) -> None:
        client = FakeEmbedClient()
        service = _service(helper_config, retry_policy, chunk_store, client)

        with pytest.raises(ValidationError):
            await service.ingest_video("video-1", " ", three_segment_transcript)
        with pytest.raises(ValidationError):
            await service.ingest_video("", "tenant-a", three_segment_transcript)
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_video_of_other_tenant_is_rejected_before_embedding(
        self,
        helper_config: HelperConfig,
        retry_policy: RetryPolicy,
        chunk_store: ChunkStoreSql,
        three_segment_transcript: Transcript,
    ) -> None:
        client = FakeEmbedClient()
        service = _service(helper_config, retry_policy, chunk_store, client)
        await service.ingest_video("video-1", "tenant-a", three_segment_transcript)
        calls_before = len(client.calls)

        with pytest.raises(AuthorizationError):
            await service.ingest_video("video-1", "tenant-b", three_segment_transcript)
        assert len(client.calls) == calls_before


class TestIngestionRollback:
    """A failed ingestion leaves the video with no chunks at all."""

    @pytest.mark.asyncio
    async def test_partial_embedding_failure_leaves_zero_chunks(
        self, helper_config: HelperConfig, retry_policy: RetryPolicy, chunk_store: ChunkStoreSql
    ) -> None:
        """First batch embeds, second fails for good: nothing from this video is searchable."""
        good = _service(helper_config, retry_policy, chunk_store, FakeEmbedClient(), max_words=3)
        await good.ingest_video("video-1", "tenant-a", _long_transcript(4))
        assert await chunk_store.count_chunks_for_video("video-1") == 4

        failing_client = FakeEmbedClient(fail_on_calls={2, 3, 4})
        failing = _service(helper_config, retry_policy, chunk_store, failing_client, max_words=3, batch_size=2)

        with pytest.raises(PartialIngestionError):
            await failing.ingest_video("video-1", "tenant-a", _long_transcript(4))

        assert await chunk_store.count_chunks_for_video("video-1") == 0
        results = await chunk_store.search_chunks([1.0, 0.0, 0.0], "tenant-a", top_k=10, min_similarity=0.0)
        assert results == []

    @pytest.mark.asyncio
    async def test_first_batch_failure_is_a_provider_error(
        self,
        helper_config: HelperConfig,
        retry_policy: RetryPolicy,
        chunk_store: ChunkStoreSql,
        three_segment_transcript: Transcript,
    ) -> None:
        service = _service(helper_config, retry_policy, chunk_store, FakeEmbedClient(fail_on_calls={1, 2, 3}))

        with pytest.raises(ProviderError):
            await service.ingest_video("video-1", "tenant-a", three_segment_transcript)
        assert await chunk_store.count_chunks_for_video("video-1") == 0


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_parallel_ingestions_of_different_videos(
        self,
        helper_config: HelperConfig,
        retry_policy: RetryPolicy,
        chunk_store: ChunkStoreSql,
        three_segment_transcript: Transcript,
    ) -> None:
        service = _service(helper_config, retry_policy, chunk_store, FakeEmbedClient())

        results = await asyncio.gather(
            *(service.ingest_video(f"video-{n}", "tenant-a", three_segment_transcript) for n in range(5))
        )

        assert [r.chunk_count for r in results] == [1] * 5
        for n in range(5):
            assert await chunk_store.count_chunks_for_video(f"video-{n}") == 1

    @pytest.mark.asyncio
    async def test_delete_video(
        self,
        helper_config: HelperConfig,
        retry_policy: RetryPolicy,
        chunk_store: ChunkStoreSql,
        three_segment_transcript: Transcript,
    ) -> None:
        service = _service(helper_config, retry_policy, chunk_store, FakeEmbedClient())
        await service.ingest_video("video-1", "tenant-a", three_segment_transcript)

        assert await service.delete_video("video-1", "tenant-a") == 1
        assert await chunk_store.get_video_tenant("video-1") is None


class _GatedEmbedClient(FakeEmbedClient):
    """Holds back texts containing a gate key until that gate opens.

    Keys listed in `failing` then fail with a non-retryable ProviderError.
    `started[key]` is set as soon as such a text reaches the client.
    """

    def __init__(self, keys: list[str], failing: set[str] | None = None) -> None:
        super().__init__()
        self.gates = {key: asyncio.Event() for key in keys}
        self.started = {key: asyncio.Event() for key in keys}
        self.failing = failing or set()

    async def do_embed(self, texts: list[str] | str) -> list[list[float]]:
        texts = [texts] if isinstance(texts, str) else texts
        for key, gate in self.gates.items():
            if any(key in text for text in texts):
                self.started[key].set()
                await gate.wait()
                if key in self.failing:
                    raise ProviderError("embedding backend returned status 400.", status_code=400)
        return await super().do_embed(texts)


def _transcript_saying(word: str, segments: int = 1) -> Transcript:
    return Transcript(
        segments=[
            TranscriptSegment(index=i, start=i * 5.0, end=i * 5.0 + 5, text=f"{word} take {i}")
            for i in range(segments)
        ]
    )


class TestSameVideoReingestion:
    """Overlapping ingestions of one video: the job started last decides the outcome."""

    @pytest.mark.asyncio
    async def test_older_failure_keeps_newer_chunks(
        self, helper_config: HelperConfig, retry_policy: RetryPolicy, chunk_store: ChunkStoreSql
    ) -> None:
        client = _GatedEmbedClient(["old"], failing={"old"})
        service = _service(helper_config, retry_policy, chunk_store, client)

        old_job = asyncio.create_task(service.ingest_video("video-1", "tenant-a", _transcript_saying("old")))
        await client.started["old"].wait()
        new_result = await service.ingest_video("video-1", "tenant-a", _transcript_saying("new"))
        client.gates["old"].set()

        with pytest.raises(ProviderError):
            await old_job

        assert new_result.rag_available
        assert await chunk_store.count_chunks_for_video("video-1") == 1
        results = await chunk_store.search_chunks([1.0, 0.0, 0.0], "tenant-a", top_k=5, min_similarity=0.0)
        assert [r.chunk.text for r in results] == ["new take 0"]

    @pytest.mark.asyncio
    async def test_slow_older_job_does_not_overwrite_newer(
        self, helper_config: HelperConfig, retry_policy: RetryPolicy, chunk_store: ChunkStoreSql
    ) -> None:
        client = _GatedEmbedClient(["old"])
        service = _service(helper_config, retry_policy, chunk_store, client, max_words=3)

        old_job = asyncio.create_task(service.ingest_video("video-1", "tenant-a", _transcript_saying("old", 4)))
        await client.started["old"].wait()
        await service.ingest_video("video-1", "tenant-a", _transcript_saying("new", 2))
        client.gates["old"].set()
        old_result = await old_job

        results = await chunk_store.search_chunks([1.0, 0.0, 0.0], "tenant-a", top_k=10, min_similarity=0.0)
        assert sorted(r.chunk.text for r in results) == ["new take 0", "new take 1"]
        assert old_result.chunk_count == 2
        assert old_result.rag_available

    @pytest.mark.asyncio
    async def test_newer_failure_wins_over_older_success(
        self, helper_config: HelperConfig, retry_policy: RetryPolicy, chunk_store: ChunkStoreSql
    ) -> None:
        client = _GatedEmbedClient(["old", "new"], failing={"new"})
        client.gates["new"].set()
        service = _service(helper_config, retry_policy, chunk_store, client)

        old_job = asyncio.create_task(service.ingest_video("video-1", "tenant-a", _transcript_saying("old")))
        await client.started["old"].wait()
        with pytest.raises(ProviderError):
            await service.ingest_video("video-1", "tenant-a", _transcript_saying("new"))
        client.gates["old"].set()
        old_result = await old_job

        assert old_result.rag_available is False
        assert await chunk_store.count_chunks_for_video("video-1") == 0

    @pytest.mark.asyncio
    async def test_delete_supersedes_running_ingestion(
        self, helper_config: HelperConfig, retry_policy: RetryPolicy, chunk_store: ChunkStoreSql
    ) -> None:
        client = _GatedEmbedClient(["late"])
        service = _service(helper_config, retry_policy, chunk_store, client)
        await service.ingest_video("video-1", "tenant-a", _transcript_saying("first"))

        late_job = asyncio.create_task(service.ingest_video("video-1", "tenant-a", _transcript_saying("late")))
        await client.started["late"].wait()
        assert await service.delete_video("video-1", "tenant-a") == 1
        client.gates["late"].set()
        await late_job

        assert await chunk_store.get_video_tenant("video-1") is None
        assert await chunk_store.count_chunks_for_video("video-1") == 0

    @pytest.mark.asyncio
    async def test_video_slots_are_released(
        self,
        helper_config: HelperConfig,
        retry_policy: RetryPolicy,
        chunk_store: ChunkStoreSql,
        three_segment_transcript: Transcript,
    ) -> None:
        service = _service(helper_config, retry_policy, chunk_store, FakeEmbedClient(fail_on_calls={4, 5, 6}))
        await service.ingest_video("video-0", "tenant-a", three_segment_transcript)

        await asyncio.gather(
            *(service.ingest_video(f"video-{n % 3}", "tenant-a", three_segment_transcript) for n in range(6)),
            return_exceptions=True,
        )
        await service.delete_video("video-0", "tenant-a")

        assert service._video_slots == {}
