from datetime import datetime

from pydantic import BaseModel, Field

from shared.models.chat import FeedbackSentiment
from shared.models.transcript import Transcript


class IngestRequest(BaseModel):
    transcript: Transcript
    video_created_at: datetime | None = None


class AskRequest(BaseModel):
    question: str = Field(min_length=1, max_length=4000)
    session_id: str | None = None
    video_ids: list[str] | None = None


class RenameSessionRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)


class FeedbackRequest(BaseModel):
    sentiment: FeedbackSentiment
    comment: str | None = Field(default=None, max_length=2000)
