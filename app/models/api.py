"""
API Models - Pydantic models for request/response validation.

Responses follow the dashboard contract: every body carries ``ok``.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

MOMENTS_PER_VIDEO = 10


class Plan(str, Enum):
    """Subscription plan enumeration."""

    FREE = "free"
    PRO = "pro"


class SubscriptionStatus(str, Enum):
    """Subscription status enumeration."""

    INACTIVE = "inactive"
    ACTIVE = "active"


class VideoStatus(str, Enum):
    """Video job status enumeration."""

    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"


class LedgerReason(str, Enum):
    """Why a balance changed."""

    VIDEO_SUBMISSION = "video_submission"
    PAYMENT = "payment"
    REFUND = "refund"


class WebhookOutcome(str, Enum):
    """Terminal outcome of a processed payment notification."""

    APPLIED = "applied"
    IGNORED = "ignored"
    DUPLICATE = "duplicate"


# ============================================================================
# Profile / Balance Models
# ============================================================================


class ProfileResponse(BaseModel):
    """Profile as shown on the dashboard."""

    id: str
    email: str | None = None
    plan: Plan
    subscription_status: SubscriptionStatus
    credits: int
    created_at: datetime | None = None


class BalanceResponse(BaseModel):
    """GET /credits/balance response."""

    ok: bool = True
    credits: int
    profile: ProfileResponse


# ============================================================================
# Video Models
# ============================================================================


class SubmitVideoRequest(BaseModel):
    """
    POST /videos/submit request body.

    Fields are loosely typed on purpose: the submission gate owns validation
    so it can answer with MISSING_URL / INVALID_MINUTES codes.
    """

    url: Any = None
    minutes: Any = None


class VideoResponse(BaseModel):
    """A video job row."""

    id: UUID
    source_url: str
    requested_minutes: int
    status: VideoStatus
    error_message: str | None = None
    created_at: datetime
    processed_at: datetime | None = None


class SubmitVideoResponse(BaseModel):
    """POST /videos/submit response."""

    ok: bool = True
    message: str
    credits_left: int
    video: VideoResponse


class VideoListResponse(BaseModel):
    """GET /videos/list response."""

    ok: bool = True
    videos: list[VideoResponse]


class MomentInput(BaseModel):
    """One highlight moment reported by the generator."""

    idx: int = Field(..., ge=1, le=MOMENTS_PER_VIDEO)
    start_sec: int = Field(..., ge=0)
    end_sec: int = Field(..., ge=1)
    title: str = Field(..., min_length=3, max_length=80)
    hook: str | None = None
    reason: str | None = None
    score: float | None = Field(None, ge=0, le=100)

    @model_validator(mode="after")
    def validate_range(self) -> "MomentInput":
        """A moment must end after it starts."""
        if self.end_sec <= self.start_sec:
            raise ValueError(f"end_sec ({self.end_sec}) must be greater than start_sec ({self.start_sec})")
        return self


class MomentBatchRequest(BaseModel):
    """A complete replacement batch of moments for one video."""

    moments: list[MomentInput]

    @field_validator("moments")
    @classmethod
    def validate_batch(cls, v: list[MomentInput]) -> list[MomentInput]:
        """Exactly 10 moments with unique idx values."""
        if len(v) != MOMENTS_PER_VIDEO:
            raise ValueError(f"expected exactly {MOMENTS_PER_VIDEO} moments, got {len(v)}")
        if len({m.idx for m in v}) != len(v):
            raise ValueError("moment idx values must be unique")
        return v


class MomentResponse(BaseModel):
    """A stored highlight moment."""

    idx: int
    start_sec: int
    end_sec: int
    title: str
    hook: str | None = None
    reason: str | None = None
    score: float | None = None


class MomentListResponse(BaseModel):
    """GET /videos/moments response."""

    ok: bool = True
    moments: list[MomentResponse]


class MarkErrorRequest(BaseModel):
    """Worker report of a failed generation."""

    error_message: str = Field(..., min_length=1, max_length=2000)


class WorkerVideoResponse(BaseModel):
    """Worker endpoint response."""

    ok: bool = True
    video: VideoResponse | None = None


# ============================================================================
# Payment Models
# ============================================================================


class CreateCheckoutRequest(BaseModel):
    """POST /payments/create request body (``pack`` is accepted as an alias)."""

    pack_id: str | None = None
    pack: str | None = None
    payer_email: str | None = None

    @property
    def resolved_pack_id(self) -> str:
        """Pack id with surrounding whitespace removed ('' when absent)."""
        return str(self.pack_id or self.pack or "").strip()


class CheckoutResponse(BaseModel):
    """POST /payments/create response."""

    ok: bool = True
    checkout_url: str
    pack_id: str


class WebhookResponse(BaseModel):
    """POST /webhook/{provider} response. Unset fields are omitted."""

    ok: bool = True
    applied: bool | None = None
    ignored: bool | None = None
    duplicate: bool | None = None
    status: str | None = None
    reason: str | None = None
    email: str | None = None
    credits_added: int | None = None
    plan: Plan | None = None


# ============================================================================
# Health Models
# ============================================================================


class HealthResponse(BaseModel):
    """GET /health response."""

    ok: bool = True
    service: str
    version: str
    database: str = "connected"
