"""
Database Models - SQLAlchemy ORM models with strict typing.

All columns use Mapped[] type annotations. Column types are portable
(Uuid, JSON with a JSONB variant) so the schema also builds on SQLite.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


JSONPayload = JSON().with_variant(JSONB(), "postgresql")


class Profile(Base):
    """
    ORM model for profiles table.

    One row per identity-provider subject. ``credits`` is the only shared
    mutable balance in the system.
    """

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    plan: Mapped[str] = mapped_column(String(20), nullable=False, default="free")
    subscription_status: Mapped[str] = mapped_column(String(20), nullable=False, default="inactive")
    credits: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("credits >= 0", name="ck_profiles_credits_non_negative"),
        CheckConstraint("plan IN ('free', 'pro')", name="ck_profiles_plan"),
        CheckConstraint(
            "subscription_status IN ('inactive', 'active')",
            name="ck_profiles_subscription_status",
        ),
        Index("idx_profiles_email", "email"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Profile(id={self.id}, plan={self.plan}, credits={self.credits})>"


class VideoJob(Base):
    """
    ORM model for videos table.

    A unit of requested highlight work. Rows exist only after a debit.
    """

    __tablename__ = "videos"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("profiles.id", ondelete="RESTRICT"), nullable=False
    )

    source_url: Mapped[str] = mapped_column(Text, nullable=False)
    requested_minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("requested_minutes > 0", name="ck_videos_minutes_positive"),
        CheckConstraint(
            "status IN ('pending', 'processing', 'done', 'error')", name="ck_videos_status"
        ),
        Index("idx_videos_user_created", "user_id", "created_at"),
        Index("idx_videos_status", "status"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<VideoJob(id={self.id}, user_id={self.user_id}, status={self.status})>"


class Moment(Base):
    """
    ORM model for moments table.

    Owned by the highlight generator; replaced as a full batch of 10.
    """

    __tablename__ = "moments"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    video_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("videos.id", ondelete="CASCADE"), nullable=False
    )
    idx: Mapped[int] = mapped_column(Integer, nullable=False)
    start_sec: Mapped[int] = mapped_column(Integer, nullable=False)
    end_sec: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    hook: Mapped[str | None] = mapped_column(Text, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    score: Mapped[float | None] = mapped_column(Float, nullable=True)

    __table_args__ = (
        CheckConstraint("idx BETWEEN 1 AND 10", name="ck_moments_idx_range"),
        CheckConstraint("start_sec >= 0", name="ck_moments_start_non_negative"),
        CheckConstraint("end_sec > start_sec", name="ck_moments_end_after_start"),
        CheckConstraint("score IS NULL OR (score >= 0 AND score <= 100)", name="ck_moments_score"),
        UniqueConstraint("video_id", "idx", name="uq_moments_video_idx"),
    )


class PaymentEvent(Base):
    """
    ORM model for payment_events table.

    Idempotency record: the unique (provider, provider_tx_id) pair is the
    sole deduplication mechanism for webhook deliveries.
    """

    __tablename__ = "payment_events"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    provider_tx_id: Mapped[str] = mapped_column(Text, nullable=False)

    # Gateway-supplied values are stored unbounded
    email: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False)
    credits_applied: Mapped[int | None] = mapped_column(Integer, nullable=True)
    outcome: Mapped[str | None] = mapped_column(String(20), nullable=True)
    reason: Mapped[str | None] = mapped_column(String(50), nullable=True)
    raw_payload: Mapped[dict[str, Any]] = mapped_column(JSONPayload, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        UniqueConstraint("provider", "provider_tx_id", name="uq_payment_events_provider_tx"),
        Index("idx_payment_events_email", "email"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<PaymentEvent(provider={self.provider}, provider_tx_id={self.provider_tx_id}, "
            f"outcome={self.outcome})>"
        )


class CreditLedgerEntry(Base):
    """
    ORM model for credit_ledger table.

    Append-only audit trail of every balance mutation.
    """

    __tablename__ = "credit_ledger"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("profiles.id", ondelete="RESTRICT"), nullable=False
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(50), nullable=False)
    reference: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("amount <> 0", name="ck_credit_ledger_amount_non_zero"),
        CheckConstraint("balance_after >= 0", name="ck_credit_ledger_balance_non_negative"),
        Index("idx_credit_ledger_user_created", "user_id", "created_at"),
    )
