"""
Domain Models - Internal business logic models using dataclasses.

All data structures crossing service boundaries are immutable dataclasses.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from app.models.api import Plan, SubscriptionStatus, VideoStatus, WebhookOutcome


@dataclass(frozen=True)
class UserIdentity:
    """Authenticated identity returned by the identity provider."""

    user_id: str
    email: str | None = None

    def __post_init__(self) -> None:
        """Validate identity fields."""
        if not self.user_id:
            raise ValueError("user_id cannot be empty")


@dataclass(frozen=True)
class ProfileData:
    """Immutable profile snapshot."""

    user_id: str
    email: str | None
    plan: Plan
    subscription_status: SubscriptionStatus
    credits: int
    created_at: datetime | None
    updated_at: datetime | None


@dataclass(frozen=True)
class DebitResult:
    """Outcome of a successful debit."""

    user_id: str
    amount: int
    balance_after: int

    def __post_init__(self) -> None:
        """Validate debit constraints."""
        if self.amount <= 0:
            raise ValueError(f"Debit amount must be positive: {self.amount}")
        if self.balance_after < 0:
            raise ValueError(f"Balance cannot be negative: {self.balance_after}")

    @property
    def balance_before(self) -> int:
        return self.balance_after + self.amount


@dataclass(frozen=True)
class CreditResult:
    """Outcome of a credit (grant or refund)."""

    user_id: str
    amount: int
    balance_after: int

    def __post_init__(self) -> None:
        """Validate credit constraints."""
        if self.amount < 0:
            raise ValueError(f"Credit amount cannot be negative: {self.amount}")

    @property
    def balance_before(self) -> int:
        return self.balance_after - self.amount


@dataclass(frozen=True)
class VideoJobData:
    """Immutable video job snapshot."""

    video_id: UUID
    user_id: str
    source_url: str
    requested_minutes: int
    status: VideoStatus
    error_message: str | None
    created_at: datetime
    processed_at: datetime | None


@dataclass(frozen=True)
class MomentData:
    """Immutable stored moment."""

    idx: int
    start_sec: int
    end_sec: int
    title: str
    hook: str | None
    reason: str | None
    score: float | None


@dataclass(frozen=True)
class SubmissionResult:
    """Result of a successful video submission."""

    credits_left: int
    job: VideoJobData
    message: str


@dataclass(frozen=True)
class PaymentNotification:
    """A parsed payment-gateway notification."""

    provider: str
    provider_tx_id: str | None
    email: str | None
    status: str
    description: str
    product_id: str | None
    raw_payload: dict[str, Any] = field(default_factory=dict)

    @property
    def is_paid(self) -> bool:
        return self.status == "paid"


@dataclass(frozen=True)
class CreditGrant:
    """What a payment entitles the payer to."""

    credits: int = 0
    plan: Plan | None = None
    source: str = "none"

    def __post_init__(self) -> None:
        """Validate grant constraints."""
        if self.credits < 0:
            raise ValueError(f"Grant credits cannot be negative: {self.credits}")

    @property
    def is_empty(self) -> bool:
        return self.credits == 0 and self.plan is None


@dataclass(frozen=True)
class WebhookResult:
    """Terminal result of processing one notification."""

    outcome: WebhookOutcome
    reason: str | None = None
    status: str | None = None
    email: str | None = None
    credits_added: int | None = None
    plan: Plan | None = None
