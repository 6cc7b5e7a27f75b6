import json
import uuid
from datetime import datetime, timezone

from sqlalchemy import case, delete, func, select, update

from shared.helper.HelperConfig import HelperConfig
from shared.models.chat import (
    ChatMessage,
    ChatSession,
    FeedbackSentiment,
    GeneratedAnswer,
    MessageFeedback,
    MessageRole,
    VideoReference,
)
from shared.stores.sql.SqlDatabase import SqlDatabase
from shared.stores.sql.models import ChatMessageRow, ChatSessionRow


class ChatStoreSql:
    """Row-level persistence of chat sessions and messages.

    Performs no ownership checks; SessionManager does that before calling in.
    """

    def __init__(self, helper_config: HelperConfig, database: SqlDatabase):
        self.logging = helper_config.get_logger()
        self.database = database

    ##########################################
    ############### SESSIONS #################
    ##########################################

    def create_session(self, student_id: str, tenant_id: str, title: str) -> ChatSession:
        now = datetime.now(timezone.utc)
        row = ChatSessionRow(
            id=str(uuid.uuid4()),
            student_id=student_id,
            tenant_id=tenant_id,
            title=title,
            created_at=now,
            last_activity_at=now,
        )
        with self.database.session() as db:
            db.add(row)
        return self._session_to_model(row)

    def get_session(self, session_id: str) -> ChatSession | None:
        with self.database.session() as db:
            row = db.get(ChatSessionRow, session_id)
            return self._session_to_model(row) if row else None

    def list_sessions(self, student_id: str, tenant_id: str) -> list[ChatSession]:
        with self.database.session() as db:
            rows = db.execute(
                select(ChatSessionRow)
                .where(ChatSessionRow.student_id == student_id, ChatSessionRow.tenant_id == tenant_id)
                .order_by(ChatSessionRow.last_activity_at.desc(), ChatSessionRow.id)
            ).scalars().all()
            return [self._session_to_model(row) for row in rows]

    def rename_session(self, session_id: str, title: str) -> None:
        with self.database.session() as db:
            db.execute(update(ChatSessionRow).where(ChatSessionRow.id == session_id).values(title=title))

    def delete_session(self, session_id: str) -> int:
        """Delete a session and its messages. Returns the number of messages removed."""
        with self.database.session() as db:
            removed = db.execute(delete(ChatMessageRow).where(ChatMessageRow.session_id == session_id)).rowcount
            db.execute(delete(ChatSessionRow).where(ChatSessionRow.id == session_id))
        return removed or 0

    ##########################################
    ############### MESSAGES #################
    ##########################################

    def append_turn(self, session_id: str, question: str, answer: GeneratedAnswer) -> tuple[ChatMessage, ChatMessage]:
        """Insert a question and its answer and bump the session's last activity.

        Runs as a single transaction of two inserts and one UPDATE, so concurrent
        turns on the same session never lose each other's messages.
        """
        now = datetime.now(timezone.utc)
        question_row = ChatMessageRow(
            id=str(uuid.uuid4()),
            session_id=session_id,
            role=MessageRole.QUESTION.value,
            content=question,
            citations="[]",
            created_at=now,
        )
        answer_row = ChatMessageRow(
            id=str(uuid.uuid4()),
            session_id=session_id,
            role=MessageRole.ANSWER.value,
            content=answer.answer,
            confidence=answer.confidence,
            citations=json.dumps([c.model_dump() for c in answer.citations]),
            created_at=now,
        )
        with self.database.session() as db:
            db.add(question_row)
            db.flush()
            db.add(answer_row)
            db.flush()
            db.execute(
                update(ChatSessionRow).where(ChatSessionRow.id == session_id).values(last_activity_at=now)
            )
        return self._message_to_model(question_row), self._message_to_model(answer_row)

    def get_messages(self, session_id: str, limit: int | None = None) -> list[ChatMessage]:
        """Return the most recent messages of a session in chronological order."""
        with self.database.session() as db:
            stmt = select(ChatMessageRow).where(ChatMessageRow.session_id == session_id).order_by(ChatMessageRow.seq.desc())
            if limit is not None:
                stmt = stmt.limit(limit)
            rows = db.execute(stmt).scalars().all()
            return [self._message_to_model(row) for row in reversed(rows)]

    def get_message(self, message_id: str) -> ChatMessage | None:
        with self.database.session() as db:
            row = db.execute(select(ChatMessageRow).where(ChatMessageRow.id == message_id)).scalar_one_or_none()
            return self._message_to_model(row) if row else None

    def set_feedback(self, message_id: str, sentiment: FeedbackSentiment, comment: str | None = None) -> None:
        with self.database.session() as db:
            db.execute(
                update(ChatMessageRow)
                .where(ChatMessageRow.id == message_id)
                .values(feedback=sentiment.value, feedback_comment=comment)
            )

    def count_feedback(self, tenant_id: str) -> tuple[int, int, int]:
        """Return (answers, positive, negative) over all sessions of a tenant."""
        with self.database.session() as db:
            total, positive, negative = db.execute(
                select(
                    func.count(ChatMessageRow.seq),
                    func.sum(case((ChatMessageRow.feedback == FeedbackSentiment.POSITIVE.value, 1), else_=0)),
                    func.sum(case((ChatMessageRow.feedback == FeedbackSentiment.NEGATIVE.value, 1), else_=0)),
                )
                .join(ChatSessionRow, ChatMessageRow.session_id == ChatSessionRow.id)
                .where(ChatSessionRow.tenant_id == tenant_id, ChatMessageRow.role == MessageRole.ANSWER.value)
            ).one()
        return total or 0, positive or 0, negative or 0

    ##########################################
    ################ HELPERS #################
    ##########################################

    def _session_to_model(self, row: ChatSessionRow) -> ChatSession:
        return ChatSession(
            id=row.id,
            student_id=row.student_id,
            tenant_id=row.tenant_id,
            title=row.title,
            created_at=row.created_at,
            last_activity_at=row.last_activity_at,
        )

    def _message_to_model(self, row: ChatMessageRow) -> ChatMessage:
        feedback = None
        if row.feedback:
            feedback = MessageFeedback(sentiment=FeedbackSentiment(row.feedback), comment=row.feedback_comment)
        return ChatMessage(
            id=row.id,
            session_id=row.session_id,
            role=MessageRole(row.role),
            content=row.content,
            confidence=row.confidence,
            citations=[VideoReference(**c) for c in json.loads(row.citations or "[]")],
            feedback=feedback,
            created_at=row.created_at,
        )
