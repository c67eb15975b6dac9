"""
Video Submission Gate - Debit first, then create the job.

The debit commits on its own. If the job row can't be written afterwards the
debit is compensated with a committed refund before the error surfaces.
"""

import math
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import VideoJob, utc_now
from app.exceptions import DatabaseError, InsufficientCreditsError, InvalidRequestError
from app.models.api import LedgerReason, VideoStatus
from app.models.domain import SubmissionResult, UserIdentity
from app.observability import get_logger, metrics
from app.services.ledger import LedgerService
from app.services.video_jobs import job_to_domain

logger = get_logger(__name__)

SUBMITTED_MESSAGE = "Video received. Your top 10 moments will be ready soon."

# Balances and amounts are int4 columns
MAX_MINUTES = 2_147_483_647


def parse_source_url(value: Any) -> str:
    """Trimmed non-empty URL, else MISSING_URL. Falsy values count as missing."""
    url = str(value).strip() if value else ""
    if not url:
        raise InvalidRequestError("MISSING_URL", "url is required")
    return url


def parse_minutes(value: Any) -> int:
    """
    Coerce ``minutes`` to a positive integer.

    Accepts ints, integral floats and numeric strings ("10", "10.0").
    Rejects bools, NaN/inf, fractions, zero, negatives and anything above
    MAX_MINUTES with INVALID_MINUTES.
    """
    invalid = InvalidRequestError("INVALID_MINUTES", "minutes must be a positive integer")

    if isinstance(value, bool) or value is None:
        raise invalid

    if isinstance(value, int):
        minutes = value
    elif isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            raise invalid
        minutes = int(value)
    elif isinstance(value, str):
        try:
            number = Decimal(value.strip())
        except InvalidOperation:
            raise invalid from None
        if not number.is_finite() or number > MAX_MINUTES:
            raise invalid
        if number != number.to_integral_value():
            raise invalid
        minutes = int(number)
    else:
        raise invalid

    if minutes <= 0 or minutes > MAX_MINUTES:
        raise invalid
    return minutes


class VideoSubmissionService:
    """Gate in front of the highlight generator: 1 credit = 1 minute."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize submission service with database session."""
        self.session = session
        self.ledger = LedgerService(session)

    async def submit(self, identity: UserIdentity, url: Any, minutes: Any) -> SubmissionResult:
        """
        Debit ``minutes`` credits and queue a pending video job.

        Raises:
            InvalidRequestError: MISSING_URL / INVALID_MINUTES (no debit)
            InsufficientCreditsError: balance too low (no debit, no job)
            DatabaseError: job creation failed; the debit has been refunded
        """
        source_url = parse_source_url(url)
        requested_minutes = parse_minutes(minutes)

        await self.ledger.get_or_create_profile(identity)
        video_id = uuid4()

        try:
            debit = await self.ledger.try_debit(
                identity.user_id,
                requested_minutes,
                LedgerReason.VIDEO_SUBMISSION,
                reference=str(video_id),
            )
        except InsufficientCreditsError:
            metrics.record_submission("insufficient_credits")
            raise

        job = VideoJob(
            id=video_id,
            user_id=identity.user_id,
            source_url=source_url,
            requested_minutes=requested_minutes,
            status=VideoStatus.PENDING.value,
            created_at=utc_now(),
        )

        try:
            self.session.add(job)
            await self.session.flush()
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.error(
                "video_job_create_failed",
                user_id=identity.user_id,
                amount=requested_minutes,
                error=str(exc),
            )
            refund = await self.ledger.refund(
                identity.user_id, requested_minutes, reference=str(video_id)
            )
            metrics.record_submission("refunded")
            logger.warning(
                "video_submission_refunded",
                user_id=identity.user_id,
                amount=requested_minutes,
                balance_after=refund.balance_after,
            )
            raise DatabaseError("Video job could not be created; credits were refunded") from exc

        metrics.record_submission("accepted")
        logger.info(
            "video_submitted",
            user_id=identity.user_id,
            video_id=str(job.id),
            minutes=requested_minutes,
            credits_left=debit.balance_after,
        )

        return SubmissionResult(
            credits_left=debit.balance_after,
            job=job_to_domain(job),
            message=SUBMITTED_MESSAGE,
        )
