"""
Payment Webhook Processor - Applies gateway notifications exactly once.

The ``payment_events`` row is inserted first, in the same transaction as the
grant. A unique violation on (provider, provider_tx_id) means the delivery was
already processed; a rollback before commit leaves neither the event nor the
grant behind, so the gateway can safely retry.
"""

from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import PaymentEvent
from app.exceptions import DatabaseError
from app.models.api import LedgerReason, Plan, SubscriptionStatus, WebhookOutcome
from app.models.domain import CreditGrant, PaymentNotification, WebhookResult
from app.observability import get_logger, get_tracer, log_context, metrics
from app.services.credit_packs import get_pack
from app.services.ledger import LedgerService

logger = get_logger(__name__)
tracer = get_tracer(__name__)

PAID_STATUS = "paid"

# Description keywords recognised when no catalog product id is present
KEYWORD_CREDIT_AMOUNTS = (150, 300, 500)
KEYWORD_CREDIT_MARKER = "cr"
KEYWORD_PRO_MARKER = "pro"

TX_ID_FIELDS = ("id", "transaction_id", "transactionId", "payment_id", "paymentId")
EMAIL_FIELDS = ("customer.email", "buyer.email", "email", "metadata.email")
STATUS_FIELDS = ("status", "payment_status")
DESCRIPTION_FIELDS = ("description", "product.name", "productName", "title")
PRODUCT_ID_FIELDS = ("product.id", "product_id", "productId", "metadata.pack_id")


def _lookup(payload: dict[str, Any], path: str) -> Any:
    """Follow a dotted path through nested dicts; None when any hop is missing."""
    current: Any = payload
    for key in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def _first(payload: dict[str, Any], paths: tuple[str, ...]) -> str | None:
    """First non-empty value among ``paths``, as a stripped string."""
    for path in paths:
        value = _lookup(payload, path)
        if value is None or isinstance(value, (dict, list)):
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def parse_notification(provider: str, body: Any) -> PaymentNotification:
    """
    Extract the fields the processor needs from a gateway payload.

    The payment object may be the body itself or nested under ``data``.
    Anything that isn't a JSON object parses as an empty notification.
    """
    raw = body if isinstance(body, dict) else {}
    payment = raw.get("data") if isinstance(raw.get("data"), dict) else raw

    return PaymentNotification(
        provider=provider,
        provider_tx_id=_first(payment, TX_ID_FIELDS),
        email=_first(payment, EMAIL_FIELDS),
        status=(_first(payment, STATUS_FIELDS) or "").lower(),
        description=_first(payment, DESCRIPTION_FIELDS) or "",
        product_id=_first(payment, PRODUCT_ID_FIELDS),
        raw_payload=raw,
    )


def derive_grant(notification: PaymentNotification) -> CreditGrant:
    """
    Decide what a paid notification is worth.

    A known catalog product id wins. Otherwise the description is matched:
    150/300/500 together with "cr" grants that many credits, and "pro"
    activates the pro plan. The two keyword rules are independent.
    """
    pack = get_pack(notification.product_id)
    if pack is not None:
        return CreditGrant(credits=pack.credits, plan=pack.plan, source="catalog")

    description = notification.description.lower()

    credits = 0
    if KEYWORD_CREDIT_MARKER in description:
        for amount in KEYWORD_CREDIT_AMOUNTS:
            if str(amount) in description:
                credits = amount
                break

    plan = Plan.PRO if KEYWORD_PRO_MARKER in description else None

    if credits == 0 and plan is None:
        return CreditGrant()
    return CreditGrant(credits=credits, plan=plan, source="keyword")


class PaymentWebhookProcessor:
    """Turns one gateway notification into at most one balance grant."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize processor with database session."""
        self.session = session
        self.ledger = LedgerService(session)

    async def process(self, provider: str, body: Any) -> WebhookResult:
        """
        Process a notification end to end.

        Raises:
            DatabaseError: the store failed; nothing was committed
        """
        notification = parse_notification(provider, body)

        with log_context(provider=provider, provider_tx_id=notification.provider_tx_id):
            logger.info(
                "payment_webhook_received",
                status=notification.status,
                has_email=notification.email is not None,
                product_id=notification.product_id,
            )

            if not notification.is_paid:
                return self._finish(
                    notification,
                    WebhookResult(outcome=WebhookOutcome.IGNORED, status=notification.status),
                )

            if not notification.provider_tx_id:
                return self._finish(
                    notification,
                    WebhookResult(outcome=WebhookOutcome.IGNORED, reason="missing_tx_id"),
                )

            with tracer.start_as_current_span("payment_webhook.apply") as span:
                span.set_attribute("payment.provider", provider)
                span.set_attribute("payment.tx_id", notification.provider_tx_id)
                try:
                    result = await self._apply(notification)
                except SQLAlchemyError as exc:
                    await self.session.rollback()
                    metrics.record_error(type(exc).__name__, "payment_webhook")
                    logger.error("payment_webhook_store_failed", error=str(exc), exc_info=True)
                    raise DatabaseError("Payment notification could not be recorded") from exc
                span.set_attribute("payment.outcome", result.outcome.value)

            return self._finish(notification, result)

    async def _apply(self, notification: PaymentNotification) -> WebhookResult:
        """Dedup-insert, resolve, grant and commit as one transaction."""
        event = PaymentEvent(
            provider=notification.provider,
            provider_tx_id=notification.provider_tx_id,
            email=notification.email,
            status=notification.status,
            raw_payload=notification.raw_payload,
        )
        self.session.add(event)

        try:
            await self.session.flush()
        except IntegrityError:
            # Same (provider, provider_tx_id) already recorded
            await self.session.rollback()
            return WebhookResult(outcome=WebhookOutcome.DUPLICATE)

        if not notification.email:
            return await self._commit_ignored(event, "missing_email")

        profile = await self.ledger.find_profile_by_email(notification.email)
        if profile is None:
            return await self._commit_ignored(
                event, "profile_not_found", email=notification.email
            )

        grant = derive_grant(notification)
        if grant.is_empty:
            event.credits_applied = 0
            return await self._commit_ignored(
                event, "no_rule_matched", email=notification.email
            )

        reference = f"{notification.provider}:{notification.provider_tx_id}"
        if grant.credits > 0:
            await self.ledger.credit(
                grant.credits,
                LedgerReason.PAYMENT,
                user_id=profile.id,
                reference=reference,
                commit=False,
            )
        if grant.plan is not None:
            await self.ledger.set_plan(
                profile.id, grant.plan, SubscriptionStatus.ACTIVE, commit=False
            )

        event.credits_applied = grant.credits
        event.outcome = WebhookOutcome.APPLIED.value
        await self.session.commit()

        return WebhookResult(
            outcome=WebhookOutcome.APPLIED,
            email=notification.email,
            credits_added=grant.credits,
            plan=grant.plan,
        )

    async def _commit_ignored(
        self, event: PaymentEvent, reason: str, email: str | None = None
    ) -> WebhookResult:
        """Keep the dedup row so replays answer ``duplicate``."""
        event.outcome = WebhookOutcome.IGNORED.value
        event.reason = reason
        await self.session.commit()
        return WebhookResult(outcome=WebhookOutcome.IGNORED, reason=reason, email=email)

    def _finish(self, notification: PaymentNotification, result: WebhookResult) -> WebhookResult:
        metrics.record_webhook(notification.provider, result.outcome.value, result.reason)
        logger.info(
            f"payment_webhook_{result.outcome.value}",
            reason=result.reason,
            status=notification.status,
            credits_added=result.credits_added,
            plan=result.plan.value if result.plan else None,
        )
        return result
