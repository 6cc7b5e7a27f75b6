from pydantic import BaseModel

from shared.models.chat import ChatMessage, ChatSession


class HistoryResponse(BaseModel):
    session_id: str
    messages: list[ChatMessage]


class SessionListResponse(BaseModel):
    sessions: list[ChatSession]
    total: int


class DeleteVideoResponse(BaseModel):
    video_id: str
    deleted_chunks: int


class HealthResponse(BaseModel):
    status: str
    version: str
