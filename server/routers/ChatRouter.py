from fastapi import APIRouter, Depends, Query, Request, Response

from server.dependencies.auth import CallerIdentity, get_caller_identity, get_tenant_id, verify_api_key
from server.models.requests import AskRequest, FeedbackRequest, RenameSessionRequest
from server.models.responses import HistoryResponse, SessionListResponse
from shared.models.chat import AskResult, ChatMessage, ChatSession, FeedbackStats

router = APIRouter(prefix="/chat", tags=["chat"], dependencies=[Depends(verify_api_key)])


@router.post("")
async def ask(
    request: Request,
    body: AskRequest,
    caller: CallerIdentity = Depends(get_caller_identity),
) -> AskResult:
    """Answer a question from the caller's tenant videos.

    Without session_id a new session is started; pass the returned session_id to
    continue the conversation.

    Args:
        request (Request): FastAPI request (provides app.state.chat_service).
        body (AskRequest): Question, optional session id and video filter.
        caller (CallerIdentity): Verified student and tenant.

    Returns:
        AskResult: Answer, confidence, citations, follow-up questions, session id and message id.
    """
    chat_service = request.app.state.chat_service
    return await chat_service.ask(
        question=body.question,
        tenant_id=caller.tenant_id,
        student_id=caller.student_id,
        session_id=body.session_id,
        video_ids=body.video_ids,
    )


@router.get("/sessions")
async def list_sessions(
    request: Request,
    caller: CallerIdentity = Depends(get_caller_identity),
) -> SessionListResponse:
    """List the caller's sessions, most recently active first."""
    sessions = await request.app.state.chat_service.list_sessions(caller.student_id, caller.tenant_id)
    return SessionListResponse(sessions=sessions, total=len(sessions))


@router.get("/sessions/{session_id}/history")
async def get_history(
    request: Request,
    session_id: str,
    limit: int | None = Query(default=None, ge=1, le=200),
    caller: CallerIdentity = Depends(get_caller_identity),
) -> HistoryResponse:
    """Return the most recent messages of a session in chronological order."""
    messages = await request.app.state.chat_service.get_history(session_id, caller.student_id, caller.tenant_id, limit=limit)
    return HistoryResponse(session_id=session_id, messages=messages)


@router.patch("/sessions/{session_id}")
async def rename_session(
    request: Request,
    session_id: str,
    body: RenameSessionRequest,
    caller: CallerIdentity = Depends(get_caller_identity),
) -> ChatSession:
    return await request.app.state.chat_service.rename_session(session_id, caller.student_id, caller.tenant_id, body.title)


@router.delete("/sessions/{session_id}", status_code=204)
async def delete_session(
    request: Request,
    session_id: str,
    caller: CallerIdentity = Depends(get_caller_identity),
) -> Response:
    """Delete a session and all of its messages."""
    await request.app.state.chat_service.delete_session(session_id, caller.student_id, caller.tenant_id)
    return Response(status_code=204)


@router.post("/messages/{message_id}/feedback")
async def record_feedback(
    request: Request,
    message_id: str,
    body: FeedbackRequest,
    caller: CallerIdentity = Depends(get_caller_identity),
) -> ChatMessage:
    """Set or overwrite positive/negative feedback on an answer."""
    return await request.app.state.chat_service.record_feedback(
        message_id, caller.student_id, caller.tenant_id, body.sentiment, body.comment
    )


@router.get("/feedback/stats")
async def get_feedback_stats(
    request: Request,
    tenant_id: str = Depends(get_tenant_id),
) -> FeedbackStats:
    """Summarize positive/negative feedback over all answers of the tenant."""
    return await request.app.state.chat_service.get_feedback_stats(tenant_id)
