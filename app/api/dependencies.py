"""
FastAPI Dependencies - Authentication and authorization.

All dependencies return typed objects.
"""

import hmac

from fastapi import Depends, Header, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.api.errors import APIError, unauthorized
from app.config import settings
from app.exceptions import AuthenticationError, IdentityProviderError
from app.models.domain import UserIdentity
from app.observability import get_logger
from app.services.identity import IdentityVerifier, get_identity_verifier

logger = get_logger(__name__)

# Bearer token scheme for dashboard auth
bearer_scheme = HTTPBearer(auto_error=False)


def identity_verifier() -> IdentityVerifier:
    """FastAPI dependency wrapper so tests can override the verifier."""
    try:
        return get_identity_verifier()
    except IdentityProviderError as exc:
        logger.error("identity_verifier_unconfigured", error=exc.message)
        raise APIError(status.HTTP_503_SERVICE_UNAVAILABLE, "AUTH_NOT_CONFIGURED") from exc


async def _verify(token: str, verifier: IdentityVerifier) -> UserIdentity:
    try:
        return await verifier.verify(token)
    except AuthenticationError as exc:
        logger.info("bearer_token_rejected", reason=exc.message)
        raise unauthorized("INVALID_TOKEN") from exc
    except IdentityProviderError as exc:
        raise APIError(status.HTTP_503_SERVICE_UNAVAILABLE, "AUTH_UNAVAILABLE") from exc


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    verifier: IdentityVerifier = Depends(identity_verifier),
) -> UserIdentity:
    """
    FastAPI dependency to resolve the caller from ``Authorization: Bearer``.

    Usage:
        @router.get("/credits/balance")
        async def balance(user: UserIdentity = Depends(get_current_user)):
            ...

    Raises:
        APIError 401 MISSING_BEARER_TOKEN / INVALID_TOKEN
        APIError 503 when the identity provider can't be reached
    """
    if credentials is None or not credentials.credentials:
        raise unauthorized("MISSING_BEARER_TOKEN")
    return await _verify(credentials.credentials, verifier)


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    verifier: IdentityVerifier = Depends(identity_verifier),
) -> UserIdentity | None:
    """
    Like ``get_current_user`` but anonymous callers get ``None``.

    A token that is present but invalid is still rejected.
    """
    if credentials is None or not credentials.credentials:
        return None
    return await _verify(credentials.credentials, verifier)


async def require_worker_key(
    x_api_key: str | None = Header(None, alias="X-API-Key", description="Worker API key"),
) -> None:
    """
    FastAPI dependency guarding the internal worker endpoints.

    Raises:
        APIError 503 WORKER_API_DISABLED when WORKER_API_KEY is unset
        APIError 401 INVALID_API_KEY on a missing or wrong key
    """
    if not settings.worker_api_key:
        raise APIError(status.HTTP_503_SERVICE_UNAVAILABLE, "WORKER_API_DISABLED")

    if not x_api_key or not hmac.compare_digest(
        x_api_key.encode("utf-8"), settings.worker_api_key.encode("utf-8")
    ):
        logger.warning("worker_api_key_rejected", key_present=bool(x_api_key))
        raise APIError(status.HTTP_401_UNAUTHORIZED, "INVALID_API_KEY")
