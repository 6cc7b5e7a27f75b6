"""Unit tests for AnswerGenerator.

Covers the no-context short circuit, citation parsing, confidence and the
retry / unavailable path.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from shared.exceptions.RAGErrors import GenerationUnavailableError, ProviderError
from shared.helper.HelperConfig import HelperConfig
from shared.helper.RetryPolicy import RetryPolicy
from shared.models.chat import ChatMessage, MessageRole
from shared.models.chunk import Chunk, RetrievalResult, RetrievalStatus, ScoredChunk
from shared.models.transcript import TranscriptSegment
from shared.rag.AnswerGenerator import NO_CONTEXT_ANSWER, AnswerGenerator, format_timestamp
from tests.fakes import FakeLLMClient


def _scored(similarity: float, index: int = 0, video_id: str = "video-1", segments=None) -> ScoredChunk:
    segments = segments or [TranscriptSegment(index=0, start=index * 60.0, end=index * 60.0 + 30, text=f"chunk {index}")]
    return ScoredChunk(
        chunk=Chunk(
            id=f"chunk-{video_id}-{index}",
            video_id=video_id,
            tenant_id="tenant-a",
            chunk_index=index,
            text=" ".join(s.text for s in segments),
            start_timestamp=segments[0].start,
            end_timestamp=segments[-1].end,
            word_count=10,
            segments=segments,
        ),
        similarity=similarity,
    )


def _retrieval(chunks: list[ScoredChunk]) -> RetrievalResult:
    return RetrievalResult(
        question="q",
        tenant_id="tenant-a",
        chunks=chunks,
        top_k=5,
        min_similarity=0.7,
        status=RetrievalStatus.FOUND if chunks else RetrievalStatus.NO_RELEVANT_CONTEXT,
    )


class TestNoContext:
    @pytest.mark.asyncio
    async def test_no_relevant_context_skips_the_model(
        self, helper_config: HelperConfig, retry_policy: RetryPolicy
    ) -> None:
        llm = FakeLLMClient()
        generator = AnswerGenerator(helper_config, llm, retry_policy)

        answer = await generator.generate("What is quantum computing?", _retrieval([]))

        assert answer.answer == NO_CONTEXT_ANSWER
        assert answer.confidence == 0.0
        assert answer.citations == []
        assert llm.calls == []


class TestCitations:
    """Citations only ever point at retrieved chunks."""

    @pytest.mark.asyncio
    async def test_unknown_tags_are_dropped(self, helper_config: HelperConfig, retry_policy: RetryPolicy) -> None:
        llm = FakeLLMClient(["Use the installer [S1] and then configure it [S7].\nGROUNDED: yes"])
        generator = AnswerGenerator(helper_config, llm, retry_policy)
        chunks = [_scored(0.9, 0), _scored(0.8, 1)]

        answer = await generator.generate("How do I install?", _retrieval(chunks))

        assert [c.video_id for c in answer.citations] == ["video-1"]
        assert answer.citations[0].timestamp == 0.0
        assert "[S7]" not in answer.answer
        assert "GROUNDED" not in answer.answer
        assert answer.grounded

    @pytest.mark.asyncio
    async def test_grouped_tags_keep_first_use_order(
        self, helper_config: HelperConfig, retry_policy: RetryPolicy
    ) -> None:
        llm = FakeLLMClient(["Both parts matter [S2, S1]. Again [S2].\nGROUNDED: yes"])
        generator = AnswerGenerator(helper_config, llm, retry_policy)
        chunks = [_scored(0.9, 0), _scored(0.8, 1)]

        answer = await generator.generate("parts?", _retrieval(chunks))

        assert [c.timestamp for c in answer.citations] == [60.0, 0.0]

    @pytest.mark.asyncio
    async def test_citation_points_at_best_matching_segment(
        self, helper_config: HelperConfig, retry_policy: RetryPolicy
    ) -> None:
        """The cited timestamp is the start of the segment sharing words with the question."""
        segments = [
            TranscriptSegment(index=0, start=0.0, end=10.0, text="Intro"),
            TranscriptSegment(index=1, start=10.0, end=40.0, text="Setup steps"),
            TranscriptSegment(index=2, start=40.0, end=50.0, text="Wrap-up"),
        ]
        generator = AnswerGenerator(helper_config, FakeLLMClient(), retry_policy)

        answer = await generator.generate("What are the setup steps?", _retrieval([_scored(0.95, segments=segments)]))

        assert answer.citations[0].timestamp == 10.0
        assert answer.citations[0].snippet == "Setup steps"


class TestConfidence:
    def test_more_similar_sources_give_higher_confidence(self) -> None:
        low = AnswerGenerator.compute_confidence([0.71, 0.72], grounded=True)
        high = AnswerGenerator.compute_confidence([0.91, 0.95], grounded=True)

        assert 0.0 <= low < high <= 1.0

    def test_ungrounded_answers_are_discounted(self) -> None:
        assert AnswerGenerator.compute_confidence([0.9], grounded=False) == 0.45

    def test_no_citations_means_zero(self) -> None:
        assert AnswerGenerator.compute_confidence([], grounded=True) == 0.0

    @pytest.mark.asyncio
    async def test_uncited_answer_has_zero_confidence(
        self, helper_config: HelperConfig, retry_policy: RetryPolicy
    ) -> None:
        generator = AnswerGenerator(helper_config, FakeLLMClient(["The videos do not cover this.\nGROUNDED: no"]), retry_policy)

        answer = await generator.generate("Off topic?", _retrieval([_scored(0.8)]))

        assert answer.citations == []
        assert answer.confidence == 0.0
        assert not answer.grounded


class TestFollowUps:
    @staticmethod
    def _tagged(similarity: float, index: int, tags: list[str]) -> ScoredChunk:
        scored = _scored(similarity, index)
        return scored.model_copy(update={"chunk": scored.chunk.model_copy(update={"topic_tags": tags})})

    def test_low_confidence_asks_to_rephrase(self) -> None:
        suggestions = AnswerGenerator.suggest_follow_ups([self._tagged(0.9, 0, ["docker"])], confidence=0.3)

        assert suggestions == [
            "Could you rephrase your question to be more specific?",
            "What specific aspect would you like to know more about?",
        ]

    def test_topics_come_first_without_duplicates(self) -> None:
        chunks = [self._tagged(0.9, 0, ["docker", "volumes"]), self._tagged(0.8, 1, ["docker"])]

        suggestions = AnswerGenerator.suggest_follow_ups(chunks, confidence=0.8)

        assert suggestions == [
            "Can you explain more about docker?",
            "Can you explain more about volumes?",
            "Can you show me an example?",
        ]

    def test_untagged_chunks_get_general_questions(self) -> None:
        assert AnswerGenerator.suggest_follow_ups([_scored(0.9)], confidence=0.9) == [
            "Can you show me an example?",
            "What are the common mistakes to avoid?",
            "How can I practice this concept?",
        ]

    @pytest.mark.asyncio
    async def test_generated_answer_carries_suggestions(
        self, helper_config: HelperConfig, retry_policy: RetryPolicy
    ) -> None:
        generator = AnswerGenerator(helper_config, FakeLLMClient(["Mount a volume [S1].\nGROUNDED: yes"]), retry_policy)

        answer = await generator.generate("How do I keep data?", _retrieval([self._tagged(0.9, 0, ["volumes"])]))
        no_context = await generator.generate("Unrelated?", _retrieval([]))

        assert answer.suggested_questions[0] == "Can you explain more about volumes?"
        assert len(answer.suggested_questions) == 3
        assert no_context.suggested_questions[0].startswith("Could you rephrase")


class TestPrompt:
    def test_history_is_bounded_and_mapped(self, helper_config: HelperConfig, retry_policy: RetryPolicy) -> None:
        generator = AnswerGenerator(helper_config, FakeLLMClient(), retry_policy)
        generator.history_max_turns = 1
        now = datetime.now(timezone.utc)
        history = [
            ChatMessage(id=str(i), session_id="s", role=role, content=f"m{i}", created_at=now)
            for i, role in enumerate([MessageRole.QUESTION, MessageRole.ANSWER] * 3)
        ]

        messages = generator.build_messages("next?", [_scored(0.9)], history)

        assert messages[0]["role"] == "system"
        assert [(m["role"], m["content"]) for m in messages[1:3]] == [("user", "m4"), ("assistant", "m5")]
        assert messages[-1]["content"].startswith("Sources:\n\n[S1] (video video-1, 00:00-00:30)")
        assert messages[-1]["content"].endswith("Question: next?")

    @pytest.mark.parametrize(("seconds", "expected"), [(0, "00:00"), (75.9, "01:15"), (3725, "1:02:05")])
    def test_format_timestamp(self, seconds: float, expected: str) -> None:
        assert format_timestamp(seconds) == expected


class TestGenerationFailures:
    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, helper_config: HelperConfig, retry_policy: RetryPolicy) -> None:
        llm = FakeLLMClient([ProviderError("503", status_code=503, retryable=True), "Fine [S1].\nGROUNDED: yes"])
        generator = AnswerGenerator(helper_config, llm, retry_policy)

        answer = await generator.generate("q?", _retrieval([_scored(0.9)]))

        assert len(llm.calls) == 2
        assert answer.answer == "Fine [S1]."

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_generation_unavailable(
        self, helper_config: HelperConfig, retry_policy: RetryPolicy
    ) -> None:
        llm = FakeLLMClient([ProviderError("503", status_code=503, retryable=True)])
        generator = AnswerGenerator(helper_config, llm, retry_policy)

        with pytest.raises(GenerationUnavailableError) as exc_info:
            await generator.generate("q?", _retrieval([_scored(0.9)]))

        assert len(llm.calls) == 3
        assert exc_info.value.kind == "generation_unavailable"

    @pytest.mark.asyncio
    async def test_empty_reply_counts_as_failure(self, helper_config: HelperConfig, retry_policy: RetryPolicy) -> None:
        llm = FakeLLMClient(["   "])
        generator = AnswerGenerator(helper_config, llm, retry_policy)

        with pytest.raises(GenerationUnavailableError):
            await generator.generate("q?", _retrieval([_scored(0.9)]))
        assert len(llm.calls) == 3

    @pytest.mark.asyncio
    async def test_slow_model_times_out(self, helper_config: HelperConfig, retry_policy: RetryPolicy) -> None:
        class SlowLLM(FakeLLMClient):
            async def do_chat(self, messages):
                self.calls.append(messages)
                await asyncio.sleep(1)
                return "late"

        llm = SlowLLM()
        generator = AnswerGenerator(helper_config, llm, retry_policy)
        generator.timeout = 0.01

        with pytest.raises(GenerationUnavailableError):
            await generator.generate("q?", _retrieval([_scored(0.9)]))
        assert len(llm.calls) == 3
