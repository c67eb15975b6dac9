"""
API Routes - Dashboard endpoints for credits, videos and checkout.

All requests/responses use Pydantic models; errors are ``APIError``.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_current_user, get_optional_user
from app.api.errors import APIError
from app.config import settings
from app.db.session import get_read_db, get_write_db
from app.exceptions import (
    CheckoutLinkMissingError,
    DatabaseError,
    InsufficientCreditsError,
    InvalidRequestError,
    ProfileNotFoundError,
    VideoNotFoundError,
    WriteVerificationError,
)
from app.models.api import (
    BalanceResponse,
    CheckoutResponse,
    CreateCheckoutRequest,
    HealthResponse,
    MomentListResponse,
    MomentResponse,
    ProfileResponse,
    SubmitVideoRequest,
    SubmitVideoResponse,
    VideoListResponse,
    VideoResponse,
)
from app.models.domain import MomentData, ProfileData, UserIdentity, VideoJobData
from app.observability import get_logger
from app.services.credit_packs import get_checkout_link
from app.services.ledger import LedgerService
from app.services.video_jobs import VideoJobService
from app.services.video_submission import VideoSubmissionService

logger = get_logger(__name__)

router = APIRouter()


def profile_response(profile: ProfileData) -> ProfileResponse:
    return ProfileResponse(
        id=profile.user_id,
        email=profile.email,
        plan=profile.plan,
        subscription_status=profile.subscription_status,
        credits=profile.credits,
        created_at=profile.created_at,
    )


def video_response(job: VideoJobData) -> VideoResponse:
    return VideoResponse(
        id=job.video_id,
        source_url=job.source_url,
        requested_minutes=job.requested_minutes,
        status=job.status,
        error_message=job.error_message,
        created_at=job.created_at,
        processed_at=job.processed_at,
    )


def moment_response(moment: MomentData) -> MomentResponse:
    return MomentResponse(
        idx=moment.idx,
        start_sec=moment.start_sec,
        end_sec=moment.end_sec,
        title=moment.title,
        hook=moment.hook,
        reason=moment.reason,
        score=moment.score,
    )


@router.get("/credits/balance", response_model=BalanceResponse)
async def get_balance(
    user: UserIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_write_db),
) -> BalanceResponse:
    """
    Current balance of the caller.

    Creates the profile (0 credits, free plan) on first access, so this is a
    write operation.
    """
    service = LedgerService(db)

    try:
        profile = await service.get_or_create_profile(user)
    except (WriteVerificationError, SQLAlchemyError) as exc:
        logger.error("balance_lookup_failed", user_id=user.user_id, error=str(exc))
        raise APIError(status.HTTP_500_INTERNAL_SERVER_ERROR, "BALANCE_ERROR") from exc

    return BalanceResponse(credits=profile.credits, profile=profile_response(profile))


@router.post("/videos/submit", response_model=SubmitVideoResponse)
async def submit_video(
    request: SubmitVideoRequest | None = None,
    user: UserIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_write_db),
) -> SubmitVideoResponse:
    """
    Debit ``minutes`` credits and queue a highlight job.

    402 carries the current balance and the required amount so the dashboard
    can show "you have N credits, need M".
    """
    body = request or SubmitVideoRequest()
    service = VideoSubmissionService(db)

    try:
        result = await service.submit(user, body.url, body.minutes)

    except InvalidRequestError as exc:
        raise APIError(status.HTTP_400_BAD_REQUEST, exc.code) from exc

    except InsufficientCreditsError as exc:
        raise APIError(
            status.HTTP_402_PAYMENT_REQUIRED,
            "INSUFFICIENT_CREDITS",
            credits=exc.balance,
            required=exc.required,
        ) from exc

    except (DatabaseError, ProfileNotFoundError, WriteVerificationError, SQLAlchemyError) as exc:
        logger.error("video_submit_failed", user_id=user.user_id, error=str(exc))
        raise APIError(status.HTTP_500_INTERNAL_SERVER_ERROR, "SUBMIT_ERROR") from exc

    return SubmitVideoResponse(
        message=result.message,
        credits_left=result.credits_left,
        video=video_response(result.job),
    )


@router.get("/videos/list", response_model=VideoListResponse)
async def list_videos(
    user: UserIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_read_db),
) -> VideoListResponse:
    """Caller's video jobs, newest first."""
    jobs = await VideoJobService(db).list_jobs(user.user_id)
    return VideoListResponse(videos=[video_response(job) for job in jobs])


@router.get("/videos/moments", response_model=MomentListResponse)
async def list_moments(
    video_id: str | None = Query(None),
    user: UserIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_read_db),
) -> MomentListResponse:
    """Moments of one of the caller's videos, ordered by idx."""
    if not video_id:
        raise APIError(status.HTTP_400_BAD_REQUEST, "MISSING_VIDEO_ID")

    try:
        video_uuid = UUID(video_id)
    except ValueError as exc:
        raise APIError(status.HTTP_404_NOT_FOUND, "VIDEO_NOT_FOUND") from exc

    try:
        moments = await VideoJobService(db).list_moments(video_uuid, user_id=user.user_id)
    except VideoNotFoundError as exc:
        raise APIError(status.HTTP_404_NOT_FOUND, "VIDEO_NOT_FOUND") from exc

    return MomentListResponse(moments=[moment_response(m) for m in moments])


@router.post("/payments/create", response_model=CheckoutResponse)
async def create_checkout(
    request: CreateCheckoutRequest,
    user: UserIdentity | None = Depends(get_optional_user),
) -> CheckoutResponse:
    """
    Return the gateway checkout link for a credit pack.

    ``pack`` is accepted as an alias of ``pack_id``. Authentication is optional.
    """
    pack_id = request.resolved_pack_id
    payer_email = request.payer_email.strip() if request.payer_email else None

    try:
        checkout_url = get_checkout_link(pack_id)

    except InvalidRequestError as exc:
        raise APIError(status.HTTP_400_BAD_REQUEST, exc.code) from exc

    except CheckoutLinkMissingError as exc:
        logger.warning("checkout_link_missing", pack_id=pack_id, missing=exc.missing)
        raise APIError(
            status.HTTP_400_BAD_REQUEST,
            "MISSING_DATA",
            details={
                "missing": exc.missing,
                "received": {"pack_id": pack_id, "payer_email": payer_email},
            },
        ) from exc

    logger.info(
        "checkout_link_issued",
        pack_id=pack_id,
        user_id=user.user_id if user else None,
    )
    return CheckoutResponse(checkout_url=checkout_url, pack_id=pack_id)


@router.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_read_db)) -> HealthResponse:
    """
    Health check for load balancer.

    Verifies database connectivity.
    """
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("health_check_failed", error=str(exc))
        raise APIError(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "DATABASE_UNAVAILABLE",
            database="disconnected",
        ) from exc

    return HealthResponse(service=settings.service_name, version=settings.api_version)
