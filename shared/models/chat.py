"""Pydantic models for chat sessions, messages and answers."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class MessageRole(str, Enum):
    QUESTION = "question"
    ANSWER = "answer"


class FeedbackSentiment(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"


class VideoReference(BaseModel):
    """A citation pointing back into a source video.

    Attributes:
        video_id:  The cited video.
        timestamp: Position in seconds where the cited content starts.
        snippet:   Short excerpt of the cited transcript text.
    """

    video_id: str
    timestamp: float
    snippet: str | None = None


class MessageFeedback(BaseModel):
    sentiment: FeedbackSentiment
    comment: str | None = None


class ChatSession(BaseModel):
    """One conversation between a student and one tenant's content."""

    id: str
    student_id: str
    tenant_id: str
    title: str
    created_at: datetime
    last_activity_at: datetime


class ChatMessage(BaseModel):
    """One half of a question-answer exchange.

    confidence, citations and feedback are only ever set on answers.
    """

    id: str
    session_id: str
    role: MessageRole
    content: str
    confidence: float | None = None
    citations: list[VideoReference] = []
    feedback: MessageFeedback | None = None
    created_at: datetime


class GeneratedAnswer(BaseModel):
    """Output of the answer generator.

    Attributes:
        answer:     Answer text shown to the student.
        confidence: Derived reliability estimate in [0, 1].
        citations:  References to retrieved chunks the answer drew on.
        grounded:   Whether the model reported sufficient grounding.
        suggested_questions: Up to three follow-up questions for the student.
    """

    answer: str
    confidence: float = Field(ge=0.0, le=1.0)
    citations: list[VideoReference] = []
    grounded: bool = False
    suggested_questions: list[str] = []


class AskResult(BaseModel):
    """Result of one ask() call, returned to the API caller."""

    answer: str
    confidence: float
    citations: list[VideoReference]
    session_id: str
    message_id: str
    suggested_questions: list[str] = []


class FeedbackStats(BaseModel):
    """Feedback summary over all answers in one tenant's sessions.

    feedback_rate is the share of answers with any feedback, in percent,
    rounded to one decimal.
    """

    tenant_id: str
    total_answers: int
    positive_feedback: int
    negative_feedback: int
    feedback_rate: float
