"""Tests for SessionManager: ownership, history, feedback and concurrent turns."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from shared.exceptions.RAGErrors import AuthorizationError, NotFoundError, ValidationError
from shared.helper.HelperConfig import HelperConfig
from shared.models.chat import FeedbackSentiment, GeneratedAnswer, MessageRole, VideoReference
from shared.rag.SessionManager import DEFAULT_SESSION_TITLE, SessionManager
from shared.stores.sql.ChatStoreSql import ChatStoreSql
from shared.stores.sql.SqlDatabase import SqlDatabase


def _answer(text: str = "An answer [S1].") -> GeneratedAnswer:
    return GeneratedAnswer(
        answer=text,
        confidence=0.8,
        citations=[VideoReference(video_id="video-1", timestamp=10.0, snippet="Setup steps")],
        grounded=True,
    )


@pytest.fixture
def manager(helper_config: HelperConfig, chat_store: ChatStoreSql) -> SessionManager:
    return SessionManager(helper_config, chat_store)


class TestSessionLifecycle:
    def test_create_with_default_title(self, manager: SessionManager) -> None:
        session = manager.get_or_create_session("student-1", "tenant-a")

        assert session.title == DEFAULT_SESSION_TITLE
        assert session.student_id == "student-1"
        assert session.tenant_id == "tenant-a"

    def test_existing_session_is_loaded(self, manager: SessionManager) -> None:
        created = manager.get_or_create_session("student-1", "tenant-a", title="Python basics")

        loaded = manager.get_or_create_session("student-1", "tenant-a", session_id=created.id)

        assert loaded.id == created.id
        assert loaded.title == "Python basics"

    def test_unknown_session(self, manager: SessionManager) -> None:
        with pytest.raises(NotFoundError):
            manager.get_or_create_session("student-1", "tenant-a", session_id="missing")

    def test_list_most_recent_first(self, manager: SessionManager) -> None:
        first = manager.get_or_create_session("student-1", "tenant-a", title="first")
        second = manager.get_or_create_session("student-1", "tenant-a", title="second")
        manager.get_or_create_session("student-1", "tenant-b", title="other tenant")
        manager.append_turn(first.id, "student-1", "tenant-a", "question?", _answer())

        sessions = manager.list_sessions("student-1", "tenant-a")

        assert [s.id for s in sessions] == [first.id, second.id]

    def test_rename_and_delete(self, manager: SessionManager) -> None:
        session = manager.get_or_create_session("student-1", "tenant-a")
        manager.append_turn(session.id, "student-1", "tenant-a", "question?", _answer())

        renamed = manager.rename_session(session.id, "student-1", "tenant-a", "  Renamed  ")
        assert renamed.title == "Renamed"
        assert manager.get_or_create_session("student-1", "tenant-a", session_id=session.id).title == "Renamed"

        manager.delete_session(session.id, "student-1", "tenant-a")
        with pytest.raises(NotFoundError):
            manager.get_history(session.id, "student-1", "tenant-a")

    def test_blank_title_is_rejected(self, manager: SessionManager) -> None:
        session = manager.get_or_create_session("student-1", "tenant-a")

        with pytest.raises(ValidationError):
            manager.rename_session(session.id, "student-1", "tenant-a", "  ")


class TestOwnership:
    """Every access checks both student and tenant."""

    @pytest.fixture
    def session_id(self, manager: SessionManager) -> str:
        return manager.get_or_create_session("student-1", "tenant-a").id

    def test_other_student_is_rejected(self, manager: SessionManager, session_id: str) -> None:
        with pytest.raises(AuthorizationError):
            manager.get_history(session_id, "student-2", "tenant-a")
        with pytest.raises(AuthorizationError):
            manager.append_turn(session_id, "student-2", "tenant-a", "q?", _answer())
        with pytest.raises(AuthorizationError):
            manager.delete_session(session_id, "student-2", "tenant-a")

    def test_other_tenant_is_rejected(self, manager: SessionManager, session_id: str) -> None:
        with pytest.raises(AuthorizationError):
            manager.get_or_create_session("student-1", "tenant-b", session_id=session_id)

    def test_blank_tenant_is_rejected(self, manager: SessionManager, session_id: str) -> None:
        with pytest.raises(ValidationError):
            manager.get_history(session_id, "student-1", "")


class TestHistory:
    def test_history_is_chronological_and_limited(self, manager: SessionManager) -> None:
        session = manager.get_or_create_session("student-1", "tenant-a")
        for n in range(3):
            manager.append_turn(session.id, "student-1", "tenant-a", f"question {n}", _answer(f"answer {n}"))

        history = manager.get_history(session.id, "student-1", "tenant-a")
        recent = manager.get_history(session.id, "student-1", "tenant-a", limit=2)

        assert [m.content for m in history] == [
            "question 0", "answer 0", "question 1", "answer 1", "question 2", "answer 2",
        ]
        assert [m.content for m in recent] == ["question 2", "answer 2"]

    def test_answers_carry_citations_questions_do_not(self, manager: SessionManager) -> None:
        session = manager.get_or_create_session("student-1", "tenant-a")
        question, answer = manager.append_turn(session.id, "student-1", "tenant-a", "q?", _answer())

        assert question.role == MessageRole.QUESTION
        assert question.citations == []
        assert question.confidence is None
        assert answer.role == MessageRole.ANSWER
        assert answer.citations[0].timestamp == 10.0
        assert answer.confidence == 0.8

    def test_invalid_limit(self, manager: SessionManager) -> None:
        session = manager.get_or_create_session("student-1", "tenant-a")

        with pytest.raises(ValidationError):
            manager.get_history(session.id, "student-1", "tenant-a", limit=0)


class TestFeedback:
    def test_feedback_on_answer_can_be_overwritten(self, manager: SessionManager) -> None:
        session = manager.get_or_create_session("student-1", "tenant-a")
        _, answer = manager.append_turn(session.id, "student-1", "tenant-a", "q?", _answer())

        manager.record_feedback(answer.id, "student-1", "tenant-a", FeedbackSentiment.NEGATIVE, "unclear")
        updated = manager.record_feedback(answer.id, "student-1", "tenant-a", FeedbackSentiment.POSITIVE)

        assert updated.feedback.sentiment == FeedbackSentiment.POSITIVE
        assert updated.feedback.comment is None

    def test_feedback_on_question_is_rejected(self, manager: SessionManager) -> None:
        session = manager.get_or_create_session("student-1", "tenant-a")
        question, _ = manager.append_turn(session.id, "student-1", "tenant-a", "q?", _answer())

        with pytest.raises(ValidationError):
            manager.record_feedback(question.id, "student-1", "tenant-a", FeedbackSentiment.POSITIVE)

    def test_feedback_from_other_student_is_rejected(self, manager: SessionManager) -> None:
        session = manager.get_or_create_session("student-1", "tenant-a")
        _, answer = manager.append_turn(session.id, "student-1", "tenant-a", "q?", _answer())

        with pytest.raises(AuthorizationError):
            manager.record_feedback(answer.id, "student-2", "tenant-a", FeedbackSentiment.POSITIVE)

    def test_unknown_message(self, manager: SessionManager) -> None:
        with pytest.raises(NotFoundError):
            manager.record_feedback("missing", "student-1", "tenant-a", FeedbackSentiment.POSITIVE)


class TestFeedbackStats:
    def test_counts_answers_of_the_tenant_only(self, manager: SessionManager) -> None:
        first = manager.get_or_create_session("student-1", "tenant-a")
        second = manager.get_or_create_session("student-2", "tenant-a")
        other = manager.get_or_create_session("student-1", "tenant-b")
        _, liked = manager.append_turn(first.id, "student-1", "tenant-a", "q1?", _answer())
        manager.append_turn(first.id, "student-1", "tenant-a", "q2?", _answer())
        _, disliked = manager.append_turn(second.id, "student-2", "tenant-a", "q3?", _answer())
        _, elsewhere = manager.append_turn(other.id, "student-1", "tenant-b", "q4?", _answer())
        manager.record_feedback(liked.id, "student-1", "tenant-a", FeedbackSentiment.POSITIVE)
        manager.record_feedback(disliked.id, "student-2", "tenant-a", FeedbackSentiment.NEGATIVE)
        manager.record_feedback(elsewhere.id, "student-1", "tenant-b", FeedbackSentiment.POSITIVE)

        stats = manager.get_feedback_stats("tenant-a")

        assert (stats.total_answers, stats.positive_feedback, stats.negative_feedback) == (3, 1, 1)
        assert stats.feedback_rate == 66.7

    def test_tenant_without_answers(self, manager: SessionManager) -> None:
        stats = manager.get_feedback_stats("tenant-a")

        assert (stats.total_answers, stats.positive_feedback, stats.negative_feedback) == (0, 0, 0)
        assert stats.feedback_rate == 0.0

    def test_blank_tenant_is_rejected(self, manager: SessionManager) -> None:
        with pytest.raises(ValidationError):
            manager.get_feedback_stats(" ")


class TestConcurrentTurns:
    @pytest.mark.asyncio
    async def test_parallel_turns_on_one_session_are_all_kept(self, helper_config: HelperConfig, tmp_path: Path) -> None:
        """Racing appends each land as an adjacent question-answer pair."""
        database = SqlDatabase(helper_config=helper_config, url=f"sqlite:///{tmp_path / 'chat.db'}")
        database.create_all()
        manager = SessionManager(helper_config, ChatStoreSql(helper_config, database))
        session = manager.get_or_create_session("student-1", "tenant-a")

        await asyncio.gather(
            *(
                asyncio.to_thread(
                    manager.append_turn, session.id, "student-1", "tenant-a", f"question {n}?", _answer(f"answer {n}")
                )
                for n in range(8)
            )
        )
        history = manager.get_history(session.id, "student-1", "tenant-a", limit=100)
        database.dispose()

        assert len(history) == 16
        pairs = list(zip(history[0::2], history[1::2]))
        for question, answer in pairs:
            assert (question.role, answer.role) == (MessageRole.QUESTION, MessageRole.ANSWER)
            assert question.content == answer.content.replace("answer", "question") + "?"
        assert sorted(q.content for q, _ in pairs) == sorted(f"question {n}?" for n in range(8))
