"""
Ledger Service - The only writer of profile balances.

Every balance mutation is a single conditional SQL statement, so the
non-negative invariant holds without application-level locks:

    UPDATE profiles SET credits = credits - :amt
    WHERE id = :id AND credits >= :amt
    RETURNING credits

A matching append-only ``credit_ledger`` row is written in the same
transaction.
"""

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import CreditLedgerEntry, Profile, utc_now
from app.exceptions import (
    InsufficientCreditsError,
    ProfileNotFoundError,
    WriteVerificationError,
)
from app.models.api import LedgerReason, Plan, SubscriptionStatus
from app.models.domain import CreditResult, DebitResult, ProfileData, UserIdentity
from app.observability import get_logger, metrics

logger = get_logger(__name__)


def _validate_amount(amount: int, *, allow_zero: bool) -> None:
    """Amounts are plain integers; bool is rejected even though it subclasses int."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"Amount must be an integer: {amount!r}")
    if amount < 0 or (amount == 0 and not allow_zero):
        raise ValueError(f"Amount out of range: {amount}")


class LedgerService:
    """
    Credits ledger over the profiles table.

    Mutating methods take ``commit``; pass ``commit=False`` to compose several
    mutations into the caller's transaction.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize ledger service with database session."""
        self.session = session

    async def get_or_create_profile(self, identity: UserIdentity) -> ProfileData:
        """
        Get existing profile or create one with zero credits (upsert).

        A concurrent insert for the same subject falls back to re-reading it.
        """
        profile = await self.session.get(Profile, identity.user_id)

        if profile is not None:
            if identity.email and not profile.email:
                profile.email = identity.email
                await self.session.commit()
                logger.info("profile_email_backfilled", user_id=identity.user_id)
            return self._profile_to_domain(profile)

        new_profile = Profile(
            id=identity.user_id,
            email=identity.email,
            plan=Plan.FREE.value,
            subscription_status=SubscriptionStatus.INACTIVE.value,
            credits=0,
        )
        self.session.add(new_profile)

        try:
            await self.session.flush()
        except IntegrityError:
            # Race condition - profile created by another request
            await self.session.rollback()
            profile = await self.session.get(Profile, identity.user_id)
            if profile is None:
                raise WriteVerificationError("Profile creation failed due to race condition")
            return self._profile_to_domain(profile)

        await self.session.commit()
        logger.info("profile_created", user_id=identity.user_id)

        return self._profile_to_domain(new_profile)

    async def find_profile_by_email(self, email: str) -> Profile | None:
        """Case-insensitive email lookup; the oldest profile wins on duplicates."""
        stmt = (
            select(Profile)
            .where(func.lower(Profile.email) == email.strip().lower())
            .order_by(Profile.created_at)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def try_debit(
        self,
        user_id: str,
        amount: int,
        reason: LedgerReason,
        reference: str | None = None,
        *,
        commit: bool = True,
    ) -> DebitResult:
        """
        Atomically subtract ``amount`` if and only if the balance covers it.

        Raises:
            ValueError: amount is not a positive integer
            InsufficientCreditsError: balance < amount (nothing changed)
            ProfileNotFoundError: profile doesn't exist
        """
        _validate_amount(amount, allow_zero=False)

        stmt = (
            update(Profile)
            .where(Profile.id == user_id, Profile.credits >= amount)
            .values(credits=Profile.credits - amount, updated_at=utc_now())
            .returning(Profile.credits)
        )
        result = await self.session.execute(stmt)
        balance_after = result.scalar_one_or_none()

        if balance_after is None:
            balance = await self.session.scalar(
                select(Profile.credits).where(Profile.id == user_id)
            )
            if balance is None:
                metrics.record_debit("not_found", amount)
                raise ProfileNotFoundError(user_id)

            metrics.record_debit("insufficient", amount)
            logger.info(
                "ledger_debit_rejected",
                user_id=user_id,
                balance=balance,
                required=amount,
            )
            raise InsufficientCreditsError(balance=balance, required=amount)

        if balance_after < 0:
            raise WriteVerificationError(
                f"Balance for {user_id} went negative after debit: {balance_after}"
            )

        self._record_entry(user_id, -amount, balance_after, reason, reference)
        await self.session.flush()
        if commit:
            await self.session.commit()

        metrics.record_debit("applied", amount)
        logger.info(
            "ledger_debit_applied",
            user_id=user_id,
            amount=amount,
            balance_after=balance_after,
            reason=reason.value,
            reference=reference,
        )

        return DebitResult(user_id=user_id, amount=amount, balance_after=balance_after)

    async def credit(
        self,
        amount: int,
        reason: LedgerReason,
        *,
        user_id: str | None = None,
        email: str | None = None,
        reference: str | None = None,
        commit: bool = True,
    ) -> CreditResult:
        """
        Add ``amount`` credits to a profile identified by id or email.

        ``amount == 0`` is a no-op that returns the current balance.

        Raises:
            ValueError: amount is negative or no profile key was given
            ProfileNotFoundError: profile doesn't exist
        """
        _validate_amount(amount, allow_zero=True)

        if user_id is None:
            if not email:
                raise ValueError("credit requires user_id or email")
            profile = await self.find_profile_by_email(email)
            if profile is None:
                raise ProfileNotFoundError(email)
            user_id = profile.id

        if amount == 0:
            balance = await self.session.scalar(
                select(Profile.credits).where(Profile.id == user_id)
            )
            if balance is None:
                raise ProfileNotFoundError(user_id)
            return CreditResult(user_id=user_id, amount=0, balance_after=balance)

        stmt = (
            update(Profile)
            .where(Profile.id == user_id)
            .values(credits=Profile.credits + amount, updated_at=utc_now())
            .returning(Profile.credits)
        )
        result = await self.session.execute(stmt)
        balance_after = result.scalar_one_or_none()
        if balance_after is None:
            raise ProfileNotFoundError(user_id)

        self._record_entry(user_id, amount, balance_after, reason, reference)
        await self.session.flush()
        if commit:
            await self.session.commit()

        metrics.record_credit(reason.value, amount)
        logger.info(
            "ledger_credit_applied",
            user_id=user_id,
            amount=amount,
            balance_after=balance_after,
            reason=reason.value,
            reference=reference,
        )

        return CreditResult(user_id=user_id, amount=amount, balance_after=balance_after)

    async def refund(
        self,
        user_id: str,
        amount: int,
        reference: str | None = None,
        *,
        commit: bool = True,
    ) -> CreditResult:
        """Compensating credit for a debit whose follow-up work failed."""
        return await self.credit(
            amount,
            LedgerReason.REFUND,
            user_id=user_id,
            reference=reference,
            commit=commit,
        )

    async def set_plan(
        self,
        user_id: str,
        plan: Plan,
        subscription_status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
        *,
        commit: bool = True,
    ) -> None:
        """
        Set plan and subscription status. Applying the same plan twice is a no-op.

        Raises:
            ProfileNotFoundError: profile doesn't exist
        """
        stmt = (
            update(Profile)
            .where(Profile.id == user_id)
            .values(
                plan=plan.value,
                subscription_status=subscription_status.value,
                updated_at=utc_now(),
            )
            .returning(Profile.id)
        )
        result = await self.session.execute(stmt)
        if result.scalar_one_or_none() is None:
            raise ProfileNotFoundError(user_id)

        if commit:
            await self.session.commit()

        logger.info(
            "ledger_plan_set",
            user_id=user_id,
            plan=plan.value,
            subscription_status=subscription_status.value,
        )

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    def _record_entry(
        self,
        user_id: str,
        amount: int,
        balance_after: int,
        reason: LedgerReason,
        reference: str | None,
    ) -> None:
        """Append an audit row; flushed with the balance update."""
        self.session.add(
            CreditLedgerEntry(
                user_id=user_id,
                amount=amount,
                balance_after=balance_after,
                reason=reason.value,
                reference=reference,
            )
        )

    def _profile_to_domain(self, profile: Profile) -> ProfileData:
        """Convert ORM profile to domain model."""
        return ProfileData(
            user_id=profile.id,
            email=profile.email,
            plan=Plan(profile.plan),
            subscription_status=SubscriptionStatus(profile.subscription_status),
            credits=profile.credits,
            created_at=profile.created_at,
            updated_at=profile.updated_at,
        )
