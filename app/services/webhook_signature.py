"""
Webhook signature verification.

Gateways sign the raw request body with HMAC-SHA256 under a shared secret
and send the hex digest, optionally prefixed with ``sha256=``.
"""

import hashlib
import hmac

from app.exceptions import WebhookVerificationError

SIGNATURE_PREFIX = "sha256="


def compute_signature(payload: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of ``payload`` under ``secret``."""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_signature(payload: bytes, signature: str | None, secret: str) -> None:
    """
    Verify a webhook signature header against the raw body.

    Raises:
        WebhookVerificationError: header missing or digest mismatch
    """
    if not signature:
        raise WebhookVerificationError("Missing webhook signature")

    provided = signature.strip()
    if provided.lower().startswith(SIGNATURE_PREFIX):
        provided = provided[len(SIGNATURE_PREFIX) :]

    expected = compute_signature(payload, secret)
    if not hmac.compare_digest(expected.encode("ascii"), provided.lower().encode("utf-8")):
        raise WebhookVerificationError("Invalid webhook signature")
