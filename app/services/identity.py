"""
Identity provider verification for dashboard bearer tokens.

Two strategies:
- LocalJWTVerifier: HS256 signature check with the provider's JWT secret.
- SupabaseIdentityVerifier: ask the provider's ``/auth/v1/user`` endpoint.
"""

from typing import Any, Protocol

import httpx
import jwt

from app.config import Settings, settings
from app.exceptions import AuthenticationError, IdentityProviderError
from app.models.domain import UserIdentity
from app.observability import get_logger

logger = get_logger(__name__)


class IdentityVerifier(Protocol):
    """Verifies a bearer token and returns who it belongs to."""

    async def verify(self, token: str) -> UserIdentity: ...


def _identity_from_claims(sub: Any, email: Any) -> UserIdentity:
    if not sub:
        raise AuthenticationError("Token has no subject")
    return UserIdentity(user_id=str(sub), email=str(email) if email else None)


class LocalJWTVerifier:
    """Verify provider-issued HS256 access tokens without a network call."""

    def __init__(self, secret: str, audience: str | None = "authenticated") -> None:
        self.secret = secret
        self.audience = audience

    async def verify(self, token: str) -> UserIdentity:
        try:
            payload: dict[str, Any] = jwt.decode(
                token,
                self.secret,
                algorithms=["HS256"],
                audience=self.audience,
                options={"verify_aud": self.audience is not None},
            )
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token expired")
        except jwt.InvalidTokenError as e:
            logger.warning("jwt_verification_failed", error=str(e))
            raise AuthenticationError("Invalid token")

        return _identity_from_claims(payload.get("sub"), payload.get("email"))


class SupabaseIdentityVerifier:
    """Verify tokens by calling the identity provider's user endpoint."""

    USER_PATH = "/auth/v1/user"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 5.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def verify(self, token: str) -> UserIdentity:
        try:
            response = await self.http_client.get(
                f"{self.base_url}{self.USER_PATH}",
                headers={"Authorization": f"Bearer {token}", "apikey": self.api_key},
            )
        except httpx.HTTPError as e:
            logger.error("identity_provider_unreachable", error=str(e))
            raise IdentityProviderError("Identity provider unreachable") from e

        if response.status_code in (401, 403):
            raise AuthenticationError("Invalid token")

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("identity_provider_error", status=e.response.status_code)
            raise IdentityProviderError(
                f"Identity provider returned {e.response.status_code}"
            ) from e

        try:
            user_data = response.json()
        except ValueError as e:
            logger.error("identity_provider_bad_response", error=str(e))
            raise IdentityProviderError("Identity provider returned invalid JSON") from e

        if not isinstance(user_data, dict):
            logger.error("identity_provider_bad_response", body_type=type(user_data).__name__)
            raise IdentityProviderError("Identity provider returned an unexpected body")

        return _identity_from_claims(user_data.get("id"), user_data.get("email"))

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None


def build_identity_verifier(config: Settings = settings) -> IdentityVerifier:
    """
    Pick the verification strategy from configuration.

    AUTH_JWT_SECRET enables local verification; otherwise SUPABASE_URL and
    SUPABASE_SERVICE_ROLE_KEY are required for the remote check.
    """
    if config.auth_jwt_secret:
        return LocalJWTVerifier(config.auth_jwt_secret, config.auth_jwt_audience or None)

    if not config.supabase_url or not config.supabase_service_role_key:
        raise IdentityProviderError(
            "Set AUTH_JWT_SECRET or SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY"
        )

    return SupabaseIdentityVerifier(
        config.supabase_url,
        config.supabase_service_role_key,
        timeout=config.auth_timeout_seconds,
    )


_verifier: IdentityVerifier | None = None


def get_identity_verifier() -> IdentityVerifier:
    """Process-wide verifier, built on first use."""
    global _verifier
    if _verifier is None:
        _verifier = build_identity_verifier()
    return _verifier


async def close_identity_verifier() -> None:
    """Release the verifier's HTTP client (for graceful shutdown)."""
    global _verifier
    if isinstance(_verifier, SupabaseIdentityVerifier):
        await _verifier.close()
    _verifier = None
