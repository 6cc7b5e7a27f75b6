"""Pytest configuration and fixtures for video_rag_bridge tests."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import pytest

from tests.fakes import FakeEmbedClient, FakeLLMClient
from shared.helper.HelperConfig import HelperConfig
from shared.helper.RetryPolicy import RetryPolicy
from shared.models.transcript import Transcript, TranscriptSegment
from shared.stores.sql.ChatStoreSql import ChatStoreSql
from shared.stores.sql.ChunkStoreSql import ChunkStoreSql
from shared.stores.sql.SqlDatabase import SqlDatabase

if TYPE_CHECKING:
    from collections.abc import Generator


async def _no_sleep(_: float) -> None:
    return None


@pytest.fixture
def logger() -> logging.Logger:
    """Plain logger; components accept any logging.Logger."""
    return logging.getLogger("video_rag_bridge.tests")


@pytest.fixture
def helper_config(logger: logging.Logger, monkeypatch: pytest.MonkeyPatch) -> HelperConfig:
    """HelperConfig with core tunables cleared so defaults apply."""
    for key in (
        "CHUNK_MAX_WORDS",
        "CHUNK_MAX_DURATION",
        "CHUNK_OVERLAP_WORDS",
        "CHUNK_SENTENCE_BOUNDARY",
        "EMBED_BATCH_SIZE",
        "RETRIEVAL_TOP_K",
        "RETRIEVAL_MIN_SIMILARITY",
        "RETRIEVAL_FALLBACK_MIN_SIMILARITY",
        "HISTORY_MAX_TURNS",
        "GENERATION_TIMEOUT",
    ):
        monkeypatch.delenv(key, raising=False)
    return HelperConfig(logger=logger)


@pytest.fixture
def retry_policy(logger: logging.Logger) -> RetryPolicy:
    """Retry policy with the default attempts and no real sleeping."""
    return RetryPolicy(logger=logger, max_attempts=3, base_delay=1.0, max_delay=30.0, jitter=1.0, sleep=_no_sleep)


@pytest.fixture
def database(helper_config: HelperConfig) -> Generator[SqlDatabase, None, None]:
    """Fresh in-memory SQLite database with all tables."""
    db = SqlDatabase(helper_config=helper_config, url="sqlite://")
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def chunk_store(helper_config: HelperConfig, database: SqlDatabase) -> ChunkStoreSql:
    return ChunkStoreSql(helper_config=helper_config, database=database)


@pytest.fixture
def chat_store(helper_config: HelperConfig, database: SqlDatabase) -> ChatStoreSql:
    return ChatStoreSql(helper_config=helper_config, database=database)


@pytest.fixture
def fake_embed_client() -> FakeEmbedClient:
    return FakeEmbedClient()


@pytest.fixture
def fake_llm_client() -> FakeLLMClient:
    return FakeLLMClient()


@pytest.fixture
def three_segment_transcript() -> Transcript:
    """Intro (0-10s), Setup steps (10-40s), Wrap-up (40-50s)."""
    return Transcript(
        text="Intro Setup steps Wrap-up",
        segments=[
            TranscriptSegment(index=0, start=0.0, end=10.0, text="Intro"),
            TranscriptSegment(index=1, start=10.0, end=40.0, text="Setup steps"),
            TranscriptSegment(index=2, start=40.0, end=50.0, text="Wrap-up"),
        ],
        language="en",
        duration=50.0,
    )
