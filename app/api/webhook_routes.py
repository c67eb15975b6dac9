"""
Webhook Routes - Payment gateway notifications.

The raw body is signature-checked before it is parsed.
"""

import json
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Path, Request, status
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.errors import APIError
from app.config import settings
from app.db.session import get_write_db
from app.exceptions import DatabaseError, WebhookVerificationError
from app.models.api import WebhookOutcome, WebhookResponse
from app.models.domain import WebhookResult
from app.observability import get_logger, metrics
from app.services.payment_webhook import PaymentWebhookProcessor
from app.services.webhook_signature import verify_signature

logger = get_logger(__name__)

router = APIRouter(prefix="/webhook", tags=["webhooks"])

ProviderName = Annotated[str, Path(pattern=r"^[A-Za-z0-9_-]{1,50}$")]


def _check_signature(provider: str, body: bytes, signature: str | None) -> None:
    if not settings.webhook_secret:
        if settings.webhook_allow_unsigned:
            logger.warning("webhook_signature_skipped", provider=provider)
            return
        logger.error("webhook_secret_missing", provider=provider)
        raise APIError(status.HTTP_503_SERVICE_UNAVAILABLE, "WEBHOOK_NOT_CONFIGURED")

    try:
        verify_signature(body, signature, settings.webhook_secret)
    except WebhookVerificationError as exc:
        logger.warning("webhook_signature_rejected", provider=provider, error=exc.message)
        metrics.record_webhook(provider, "rejected", "invalid_signature")
        raise APIError(status.HTTP_401_UNAUTHORIZED, "INVALID_SIGNATURE") from exc


def _decode_body(body: bytes) -> Any:
    """Parse JSON; an unparseable body becomes an empty notification."""
    try:
        return json.loads(body) if body else {}
    except ValueError:
        return {}


def webhook_response(result: WebhookResult) -> WebhookResponse:
    if result.outcome is WebhookOutcome.DUPLICATE:
        return WebhookResponse(duplicate=True)
    if result.outcome is WebhookOutcome.APPLIED:
        return WebhookResponse(
            applied=True,
            email=result.email,
            credits_added=result.credits_added,
            plan=result.plan,
        )
    return WebhookResponse(
        ignored=True,
        status=result.status,
        reason=result.reason,
        email=result.email,
    )


@router.get("/{provider}", response_class=PlainTextResponse)
async def webhook_liveness(provider: ProviderName) -> str:
    """Lets the gateway dashboard check the URL is reachable."""
    return f"webhook {provider.lower()} online"


@router.post("/{provider}", response_model=WebhookResponse, response_model_exclude_none=True)
async def receive_webhook(
    request: Request,
    provider: ProviderName,
    db: AsyncSession = Depends(get_write_db),
) -> WebhookResponse:
    """
    Apply a payment notification exactly once.

    Always 200 for ignored and duplicate deliveries so the gateway stops
    retrying; 500 only when nothing was committed.
    """
    provider = provider.lower()
    body = await request.body()

    _check_signature(provider, body, request.headers.get(settings.webhook_signature_header))

    processor = PaymentWebhookProcessor(db)
    try:
        result = await processor.process(provider, _decode_body(body))
    except DatabaseError as exc:
        raise APIError(status.HTTP_500_INTERNAL_SERVER_ERROR, "WEBHOOK_ERROR") from exc

    return webhook_response(result)
