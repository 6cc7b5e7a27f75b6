from fastapi import APIRouter, Depends, Request

from server.dependencies.auth import get_tenant_id, verify_api_key
from server.models.requests import IngestRequest
from server.models.responses import DeleteVideoResponse
from shared.models.chunk import IngestionResult

router = APIRouter(prefix="/videos", tags=["ingestion"], dependencies=[Depends(verify_api_key)])


@router.post("/{video_id}/ingest")
async def ingest_video(
    request: Request,
    video_id: str,
    body: IngestRequest,
    tenant_id: str = Depends(get_tenant_id),
) -> IngestionResult:
    """Chunk, embed and store the transcript of a processed video.

    Called once per transcribed video by the video pipeline. Re-ingestion
    replaces all chunks of the video.

    Args:
        request (Request): FastAPI request (provides app.state.ingestion_service).
        video_id (str): The processed video.
        body (IngestRequest): Transcript and optional video creation time.
        tenant_id (str): Owning tenant from X-Tenant-Id.

    Returns:
        IngestionResult: Number of stored chunks and whether RAG is available.
    """
    ingestion_service = request.app.state.ingestion_service
    return await ingestion_service.ingest_video(
        video_id=video_id,
        tenant_id=tenant_id,
        transcript=body.transcript,
        video_created_at=body.video_created_at,
    )


@router.delete("/{video_id}")
async def delete_video(
    request: Request,
    video_id: str,
    tenant_id: str = Depends(get_tenant_id),
) -> DeleteVideoResponse:
    """Delete a video and all of its chunks."""
    ingestion_service = request.app.state.ingestion_service
    deleted = await ingestion_service.delete_video(video_id=video_id, tenant_id=tenant_id)
    return DeleteVideoResponse(video_id=video_id, deleted_chunks=deleted)
