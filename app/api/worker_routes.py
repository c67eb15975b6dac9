"""
Worker Routes - Internal endpoints for the out-of-process highlight worker.

Guarded by the shared ``X-API-Key`` (WORKER_API_KEY).
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import require_worker_key
from app.api.errors import APIError
from app.api.routes import video_response
from app.db.session import get_write_db
from app.exceptions import (
    DatabaseError,
    InvalidRequestError,
    InvalidStatusTransitionError,
    VideoNotFoundError,
)
from app.models.api import MarkErrorRequest, MomentBatchRequest, WorkerVideoResponse
from app.models.domain import VideoJobData
from app.observability import get_logger
from app.services.video_jobs import VideoJobService

logger = get_logger(__name__)

router = APIRouter(
    prefix="/internal/videos",
    tags=["worker"],
    dependencies=[Depends(require_worker_key)],
)


def _worker_error(exc: Exception) -> APIError:
    """Map job lifecycle exceptions to HTTP errors."""
    if isinstance(exc, VideoNotFoundError):
        return APIError(status.HTTP_404_NOT_FOUND, "VIDEO_NOT_FOUND")
    if isinstance(exc, InvalidStatusTransitionError):
        return APIError(
            status.HTTP_409_CONFLICT,
            "INVALID_STATUS_TRANSITION",
            current=exc.current,
            target=exc.target,
        )
    if isinstance(exc, InvalidRequestError):
        return APIError(status.HTTP_422_UNPROCESSABLE_ENTITY, exc.code, detail=exc.message)
    return APIError(status.HTTP_500_INTERNAL_SERVER_ERROR, "WORKER_UPDATE_ERROR")


def _worker_response(job: VideoJobData | None) -> WorkerVideoResponse:
    return WorkerVideoResponse(video=video_response(job) if job else None)


@router.post("/claim", response_model=WorkerVideoResponse)
async def claim_video(db: AsyncSession = Depends(get_write_db)) -> WorkerVideoResponse:
    """Claim the oldest pending job; ``video`` is null when the queue is empty."""
    try:
        job = await VideoJobService(db).claim_next_pending()
    except DatabaseError as exc:
        raise _worker_error(exc) from exc
    return _worker_response(job)


@router.post("/{video_id}/processing", response_model=WorkerVideoResponse)
async def mark_processing(
    video_id: UUID, db: AsyncSession = Depends(get_write_db)
) -> WorkerVideoResponse:
    try:
        job = await VideoJobService(db).mark_processing(video_id)
    except (VideoNotFoundError, InvalidStatusTransitionError, DatabaseError) as exc:
        raise _worker_error(exc) from exc
    return _worker_response(job)


@router.post("/{video_id}/moments", response_model=WorkerVideoResponse)
async def complete_video(
    video_id: UUID,
    request: MomentBatchRequest,
    db: AsyncSession = Depends(get_write_db),
) -> WorkerVideoResponse:
    """Replace the job's moments with a full batch of 10 and mark it done."""
    try:
        job = await VideoJobService(db).complete(video_id, request.moments)
    except (
        VideoNotFoundError,
        InvalidStatusTransitionError,
        InvalidRequestError,
        DatabaseError,
    ) as exc:
        raise _worker_error(exc) from exc
    return _worker_response(job)


@router.post("/{video_id}/error", response_model=WorkerVideoResponse)
async def mark_error(
    video_id: UUID,
    request: MarkErrorRequest,
    db: AsyncSession = Depends(get_write_db),
) -> WorkerVideoResponse:
    try:
        job = await VideoJobService(db).mark_error(video_id, request.error_message)
    except (VideoNotFoundError, InvalidStatusTransitionError, DatabaseError) as exc:
        raise _worker_error(exc) from exc
    return _worker_response(job)
