from shared.exceptions.RAGErrors import AuthorizationError, NotFoundError, ValidationError
from shared.helper.HelperConfig import HelperConfig
from shared.helper.guards import require_positive_int, require_tenant_id, require_text
from shared.models.chat import ChatMessage, ChatSession, FeedbackSentiment, FeedbackStats, GeneratedAnswer, MessageRole
from shared.stores.sql.ChatStoreSql import ChatStoreSql

DEFAULT_SESSION_TITLE = "New Conversation"
TITLE_MAX_CHARS = 255


class SessionManager:
    """Owns the chat session lifecycle: created, active, renamed, deleted.

    Every read and write first loads the session and checks that it belongs to
    the calling student and tenant. Past messages are never edited; the only
    mutations are appending turns, renaming, deleting and feedback on answers.
    """

    def __init__(self, helper_config: HelperConfig, chat_store: ChatStoreSql):
        self.logging = helper_config.get_logger()
        self.chat_store = chat_store
        self.history_max_turns = int(helper_config.get_positive_number_val("HISTORY_MAX_TURNS", default=10))

    ##########################################
    ############### SESSIONS #################
    ##########################################

    def get_or_create_session(
        self,
        student_id: str,
        tenant_id: str,
        session_id: str | None = None,
        title: str | None = None,
    ) -> ChatSession:
        """Load the caller's session, or create a new one when no id is given.

        Raises:
            ValidationError: If student or tenant id is blank.
            NotFoundError: If session_id is unknown.
            AuthorizationError: If the session belongs to another student or tenant.
        """
        student_id = require_text(student_id, "student_id")
        tenant_id = require_tenant_id(tenant_id)
        if session_id:
            return self._load_owned_session(session_id, student_id, tenant_id)

        title = (title or "").strip()[:TITLE_MAX_CHARS] or DEFAULT_SESSION_TITLE
        session = self.chat_store.create_session(student_id, tenant_id, title)
        self.logging.info("Created chat session %s for student %s (tenant %s).", session.id, student_id, tenant_id)
        return session

    def list_sessions(self, student_id: str, tenant_id: str) -> list[ChatSession]:
        """Return the student's sessions for a tenant, most recently active first."""
        student_id = require_text(student_id, "student_id")
        tenant_id = require_tenant_id(tenant_id)
        return self.chat_store.list_sessions(student_id, tenant_id)

    def rename_session(self, session_id: str, student_id: str, tenant_id: str, title: str) -> ChatSession:
        title = require_text(title, "title")[:TITLE_MAX_CHARS]
        session = self._load_owned_session(session_id, student_id, tenant_id)
        self.chat_store.rename_session(session.id, title)
        self.logging.info("Renamed chat session %s.", session.id)
        return session.model_copy(update={"title": title})

    def delete_session(self, session_id: str, student_id: str, tenant_id: str) -> None:
        """Delete a session and all its messages."""
        session = self._load_owned_session(session_id, student_id, tenant_id)
        removed = self.chat_store.delete_session(session.id)
        self.logging.info("Deleted chat session %s with %d messages.", session.id, removed)

    ##########################################
    ############### MESSAGES #################
    ##########################################

    def append_turn(
        self,
        session_id: str,
        student_id: str,
        tenant_id: str,
        question: str,
        answer: GeneratedAnswer,
    ) -> tuple[ChatMessage, ChatMessage]:
        """Persist a question and its answer as one atomic append.

        Returns:
            tuple[ChatMessage, ChatMessage]: The stored question and answer messages.
        """
        question = require_text(question, "question")
        session = self._load_owned_session(session_id, student_id, tenant_id)
        return self.chat_store.append_turn(session.id, question, answer)

    def get_history(
        self,
        session_id: str,
        student_id: str,
        tenant_id: str,
        limit: int | None = None,
    ) -> list[ChatMessage]:
        """Return the most recent `limit` messages in chronological order.

        limit defaults to HISTORY_MAX_TURNS question-answer turns.
        """
        limit = require_positive_int(limit if limit is not None else self.history_max_turns * 2, "limit")
        session = self._load_owned_session(session_id, student_id, tenant_id)
        return self.chat_store.get_messages(session.id, limit=limit)

    def record_feedback(
        self,
        message_id: str,
        student_id: str,
        tenant_id: str,
        sentiment: FeedbackSentiment,
        comment: str | None = None,
    ) -> ChatMessage:
        """Set or overwrite the feedback of an answer message.

        Raises:
            NotFoundError: If the message is unknown.
            AuthorizationError: If the message's session belongs to someone else.
            ValidationError: If the message is a question.
        """
        message_id = require_text(message_id, "message_id")
        message = self.chat_store.get_message(message_id)
        if message is None:
            raise NotFoundError(f"Message '{message_id}' not found.")
        self._load_owned_session(message.session_id, student_id, tenant_id)
        if message.role != MessageRole.ANSWER:
            raise ValidationError("Feedback can only be given on answers.")

        comment = comment.strip() if comment and comment.strip() else None
        self.chat_store.set_feedback(message.id, sentiment, comment)
        self.logging.info("Recorded %s feedback on message %s.", sentiment.value, message.id)
        return self.chat_store.get_message(message.id)

    def get_feedback_stats(self, tenant_id: str) -> FeedbackStats:
        """Summarize answer feedback across every session of a tenant."""
        tenant_id = require_tenant_id(tenant_id)
        total, positive, negative = self.chat_store.count_feedback(tenant_id)
        rate = round((positive + negative) / total * 100, 1) if total else 0.0
        return FeedbackStats(
            tenant_id=tenant_id,
            total_answers=total,
            positive_feedback=positive,
            negative_feedback=negative,
            feedback_rate=rate,
        )

    ##########################################
    ################ HELPERS #################
    ##########################################

    def _load_owned_session(self, session_id: str, student_id: str, tenant_id: str) -> ChatSession:
        session_id = require_text(session_id, "session_id")
        student_id = require_text(student_id, "student_id")
        tenant_id = require_tenant_id(tenant_id)

        session = self.chat_store.get_session(session_id)
        if session is None:
            raise NotFoundError(f"Session '{session_id}' not found.")
        if session.student_id != student_id:
            self.logging.warning("Student %s tried to access session %s of another student.", student_id, session_id)
            raise AuthorizationError("This session belongs to another student.")
        if session.tenant_id != tenant_id:
            self.logging.warning("Session %s accessed under tenant %s, but belongs to another tenant.", session_id, tenant_id)
            raise AuthorizationError("This session belongs to another tenant.")
        return session
