import asyncio

from shared.clients.reward.RewardNotifierInterface import RewardNotifierInterface
from shared.helper.HelperConfig import HelperConfig
from shared.helper.guards import require_tenant_id, require_text
from shared.logging.logging_setup import bind_log_context
from shared.models.chat import AskResult, ChatMessage, ChatSession, FeedbackSentiment, FeedbackStats
from shared.rag.AnswerGenerator import AnswerGenerator
from shared.rag.Retriever import Retriever
from shared.rag.SessionManager import SessionManager

TITLE_FROM_QUESTION_CHARS = 60


class ChatService:
    """Handles student questions: retrieve -> generate -> persist the turn.

    A call without session_id always starts a new session; concurrent anonymous
    calls therefore never share a session. The session is only created once an
    answer exists, so failed generations leave no empty sessions behind.
    """

    def __init__(
        self,
        helper_config: HelperConfig,
        retriever: Retriever,
        answer_generator: AnswerGenerator,
        session_manager: SessionManager,
        reward_notifier: RewardNotifierInterface | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._retriever = retriever
        self._answer_generator = answer_generator
        self._session_manager = session_manager
        self._reward_notifier = reward_notifier
        self._background_tasks: set[asyncio.Task] = set()

    ##########################################
    ############### CORE #####################
    ##########################################

    async def ask(
        self,
        question: str,
        tenant_id: str,
        student_id: str,
        session_id: str | None = None,
        video_ids: list[str] | None = None,
    ) -> AskResult:
        """Answer a question from the tenant's videos and record the turn.

        Args:
            question (str): The student's question.
            tenant_id (str): Verified tenant of the caller.
            student_id (str): Verified student id of the caller.
            session_id (str | None): Existing session to continue; a new one when omitted.
            video_ids (list[str] | None): Restrict retrieval to these videos.

        Returns:
            AskResult: Answer, confidence, citations, session id and answer message id.

        Raises:
            ValidationError: On blank question, tenant or student.
            NotFoundError: If session_id is unknown.
            AuthorizationError: If session_id belongs to someone else.
            GenerationUnavailableError: If no answer could be generated.
            ProviderError: If the question could not be embedded.
        """
        question = require_text(question, "question")
        tenant_id = require_tenant_id(tenant_id)
        student_id = require_text(student_id, "student_id")
        with bind_log_context(tenant=tenant_id, student=student_id, session=session_id):
            return await self._ask(question, tenant_id, student_id, session_id, video_ids)

    async def _ask(
        self, question: str, tenant_id: str, student_id: str, session_id: str | None, video_ids: list[str] | None
    ) -> AskResult:
        session: ChatSession | None = None
        history: list[ChatMessage] = []
        if session_id:
            session = await asyncio.to_thread(
                self._session_manager.get_or_create_session, student_id, tenant_id, session_id=session_id
            )
            history = await asyncio.to_thread(self._session_manager.get_history, session.id, student_id, tenant_id)

        retrieval = await self._retriever.retrieve(question, tenant_id, video_ids=video_ids)
        answer = await self._answer_generator.generate(question, retrieval, history)

        if session is None:
            session = await asyncio.to_thread(
                self._session_manager.get_or_create_session, student_id, tenant_id, title=self._make_title(question)
            )
        _, answer_message = await asyncio.to_thread(
            self._session_manager.append_turn, session.id, student_id, tenant_id, question, answer
        )

        self.logging.info(
            "Answered question in session %s (tenant %s): confidence=%.2f, citations=%d",
            session.id, tenant_id, answer.confidence, len(answer.citations),
        )
        self._notify_reward(student_id, tenant_id, session.id, answer_message.id)

        return AskResult(
            answer=answer.answer,
            confidence=answer.confidence,
            citations=answer.citations,
            session_id=session.id,
            message_id=answer_message.id,
            suggested_questions=answer.suggested_questions,
        )

    ##########################################
    ############### SESSIONS #################
    ##########################################

    # SessionManager talks to the database synchronously; keep it off the event loop

    async def get_history(
        self, session_id: str, student_id: str, tenant_id: str, limit: int | None = None
    ) -> list[ChatMessage]:
        return await asyncio.to_thread(self._session_manager.get_history, session_id, student_id, tenant_id, limit=limit)

    async def list_sessions(self, student_id: str, tenant_id: str) -> list[ChatSession]:
        return await asyncio.to_thread(self._session_manager.list_sessions, student_id, tenant_id)

    async def rename_session(self, session_id: str, student_id: str, tenant_id: str, title: str) -> ChatSession:
        return await asyncio.to_thread(self._session_manager.rename_session, session_id, student_id, tenant_id, title)

    async def delete_session(self, session_id: str, student_id: str, tenant_id: str) -> None:
        await asyncio.to_thread(self._session_manager.delete_session, session_id, student_id, tenant_id)

    async def record_feedback(
        self,
        message_id: str,
        student_id: str,
        tenant_id: str,
        sentiment: FeedbackSentiment,
        comment: str | None = None,
    ) -> ChatMessage:
        return await asyncio.to_thread(
            self._session_manager.record_feedback, message_id, student_id, tenant_id, sentiment, comment
        )

    async def get_feedback_stats(self, tenant_id: str) -> FeedbackStats:
        return await asyncio.to_thread(self._session_manager.get_feedback_stats, tenant_id)

    ##########################################
    ################ REWARDS #################
    ##########################################

    def _notify_reward(self, student_id: str, tenant_id: str, session_id: str, message_id: str) -> None:
        """Schedule the reward notification without awaiting it."""
        if self._reward_notifier is None:
            return
        task = asyncio.create_task(self._send_reward(student_id, tenant_id, session_id, message_id))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _send_reward(self, student_id: str, tenant_id: str, session_id: str, message_id: str) -> None:
        try:
            await self._reward_notifier.do_notify_answer(student_id, tenant_id, session_id, message_id)
        except Exception as e:
            self.logging.warning("Reward notification for message %s failed: %s", message_id, e)

    async def drain_background_tasks(self) -> None:
        """Wait for pending reward notifications, e.g. on shutdown."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    ##########################################
    ################ HELPERS #################
    ##########################################

    @staticmethod
    def _make_title(question: str) -> str:
        title = " ".join(question.split())
        if len(title) > TITLE_FROM_QUESTION_CHARS:
            return title[:TITLE_FROM_QUESTION_CHARS].rstrip() + "..."
        return title
