"""
Video Job Lifecycle - Status state machine and moment batches.

Jobs only move forward:

    pending -> processing -> done
    pending | processing -> error

Moments are replaced as a complete batch of 10 in the same transaction that
marks the job done, so readers see either the old set or the new one.
"""

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.db.models import Moment, VideoJob, utc_now
from app.exceptions import (
    DatabaseError,
    InvalidRequestError,
    InvalidStatusTransitionError,
    VideoNotFoundError,
)
from app.models.api import MOMENTS_PER_VIDEO, MomentInput, VideoStatus
from app.models.domain import MomentData, VideoJobData
from app.observability import get_logger, metrics

logger = get_logger(__name__)

ALLOWED_TRANSITIONS: dict[VideoStatus, frozenset[VideoStatus]] = {
    VideoStatus.PENDING: frozenset({VideoStatus.PROCESSING, VideoStatus.ERROR}),
    VideoStatus.PROCESSING: frozenset({VideoStatus.DONE, VideoStatus.ERROR}),
    VideoStatus.DONE: frozenset(),
    VideoStatus.ERROR: frozenset(),
}


def can_transition(current: VideoStatus, target: VideoStatus) -> bool:
    """Check a status change against the state machine."""
    return target in ALLOWED_TRANSITIONS[current]


def job_to_domain(job: VideoJob) -> VideoJobData:
    """Convert ORM video job to domain model."""
    return VideoJobData(
        video_id=job.id,
        user_id=job.user_id,
        source_url=job.source_url,
        requested_minutes=job.requested_minutes,
        status=VideoStatus(job.status),
        error_message=job.error_message,
        created_at=job.created_at,
        processed_at=job.processed_at,
    )


def _moment_to_domain(moment: Moment) -> MomentData:
    return MomentData(
        idx=moment.idx,
        start_sec=moment.start_sec,
        end_sec=moment.end_sec,
        title=moment.title,
        hook=moment.hook,
        reason=moment.reason,
        score=moment.score,
    )


def validate_moment_batch(moments: Sequence[MomentInput]) -> None:
    """A batch must hold exactly one moment for each idx 1..10."""
    indexes = sorted(m.idx for m in moments)
    if indexes != list(range(1, MOMENTS_PER_VIDEO + 1)):
        raise InvalidRequestError(
            "INVALID_MOMENTS",
            f"expected one moment for each idx 1..{MOMENTS_PER_VIDEO}, got {indexes}",
        )


class VideoJobService:
    """Reads for the dashboard, status writes for the highlight worker."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize video job service with database session."""
        self.session = session

    async def list_jobs(self, user_id: str, limit: int | None = None) -> list[VideoJobData]:
        """Newest jobs first, capped at ``limit`` (VIDEOS_LIST_LIMIT by default)."""
        stmt = (
            select(VideoJob)
            .where(VideoJob.user_id == user_id)
            .order_by(VideoJob.created_at.desc())
            .limit(limit or settings.videos_list_limit)
        )
        result = await self.session.execute(stmt)
        return [job_to_domain(job) for job in result.scalars().all()]

    async def get_job(self, video_id: UUID, user_id: str | None = None) -> VideoJobData:
        """
        Get one job, optionally enforcing ownership.

        Raises:
            VideoNotFoundError: no such job, or it belongs to someone else
        """
        job = await self.session.get(VideoJob, video_id)
        if job is None or (user_id is not None and job.user_id != user_id):
            raise VideoNotFoundError(video_id)
        return job_to_domain(job)

    async def list_moments(self, video_id: UUID, user_id: str | None = None) -> list[MomentData]:
        """
        Moments of a video ordered by idx.

        Raises:
            VideoNotFoundError: ownership check failed (only when ``user_id`` is given)
        """
        if user_id is not None:
            await self.get_job(video_id, user_id)

        stmt = select(Moment).where(Moment.video_id == video_id).order_by(Moment.idx)
        result = await self.session.execute(stmt)
        return [_moment_to_domain(m) for m in result.scalars().all()]

    async def claim_next_pending(self) -> VideoJobData | None:
        """
        Claim the oldest pending job for a worker and move it to processing.

        Rows locked by another claimer are skipped, so concurrent workers
        never receive the same job.
        """
        stmt = (
            select(VideoJob)
            .where(VideoJob.status == VideoStatus.PENDING.value)
            .order_by(VideoJob.created_at)
            .limit(1)
            .with_for_update(skip_locked=True)
        )
        result = await self.session.execute(stmt)
        job = result.scalar_one_or_none()
        if job is None:
            return None

        self._transition(job, VideoStatus.PROCESSING)
        await self._commit("claim")
        logger.info("video_job_claimed", video_id=str(job.id), user_id=job.user_id)
        return job_to_domain(job)

    async def mark_processing(self, video_id: UUID) -> VideoJobData:
        """pending -> processing."""
        job = await self._lock_job(video_id)
        self._transition(job, VideoStatus.PROCESSING)
        await self._commit("mark_processing")
        return job_to_domain(job)

    async def complete(self, video_id: UUID, moments: Sequence[MomentInput]) -> VideoJobData:
        """
        Replace all moments of a job and mark it done, atomically.

        Raises:
            InvalidRequestError: batch is not exactly 10 moments with idx 1..10
            VideoNotFoundError: no such job
            InvalidStatusTransitionError: job is not processing
        """
        validate_moment_batch(moments)

        job = await self._lock_job(video_id)
        self._transition(job, VideoStatus.DONE)

        await self.session.execute(delete(Moment).where(Moment.video_id == video_id))
        self.session.add_all(
            Moment(
                video_id=video_id,
                idx=m.idx,
                start_sec=m.start_sec,
                end_sec=m.end_sec,
                title=m.title,
                hook=m.hook,
                reason=m.reason,
                score=m.score,
            )
            for m in moments
        )
        job.processed_at = utc_now()
        job.error_message = None

        await self._commit("complete")
        logger.info("video_job_completed", video_id=str(video_id), moments=len(moments))
        return job_to_domain(job)

    async def mark_error(self, video_id: UUID, error_message: str) -> VideoJobData:
        """pending | processing -> error, keeping the worker's message."""
        job = await self._lock_job(video_id)
        self._transition(job, VideoStatus.ERROR)
        job.error_message = error_message
        job.processed_at = utc_now()
        await self._commit("mark_error")
        logger.warning("video_job_failed", video_id=str(video_id), error_message=error_message)
        return job_to_domain(job)

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    async def _lock_job(self, video_id: UUID) -> VideoJob:
        """Lock job row for update (SELECT FOR UPDATE)."""
        stmt = select(VideoJob).where(VideoJob.id == video_id).with_for_update()
        result = await self.session.execute(stmt)
        job = result.scalar_one_or_none()
        if job is None:
            raise VideoNotFoundError(video_id)
        return job

    def _transition(self, job: VideoJob, target: VideoStatus) -> None:
        current = VideoStatus(job.status)
        if not can_transition(current, target):
            raise InvalidStatusTransitionError(job.id, current.value, target.value)
        job.status = target.value
        metrics.record_transition(current.value, target.value)

    async def _commit(self, operation: str) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            metrics.record_error(type(exc).__name__, f"video_job_{operation}")
            logger.error("video_job_write_failed", operation=operation, error=str(exc))
            raise DatabaseError(f"Video job {operation} failed") from exc
