"""
Exception Classes - Strongly typed exception hierarchy.

Business outcomes (insufficient credits, unknown profile) are exceptions
with typed attributes so routes can map them to distinguishable responses.
"""

from uuid import UUID


class BillingError(Exception):
    """Base exception for all billing errors."""

    pass


class InsufficientCreditsError(BillingError):
    """Raised when a profile has insufficient credits for a debit."""

    def __init__(self, balance: int, required: int) -> None:
        self.balance = balance
        self.required = required
        super().__init__(f"Insufficient credits. Balance: {balance}, Required: {required}")


class ProfileNotFoundError(BillingError):
    """Raised when a profile doesn't exist."""

    def __init__(self, lookup: str) -> None:
        self.lookup = lookup
        super().__init__(f"Profile not found: {lookup}")


class VideoNotFoundError(BillingError):
    """Raised when a video job doesn't exist (or belongs to another user)."""

    def __init__(self, video_id: UUID | str) -> None:
        self.video_id = video_id
        super().__init__(f"Video not found: {video_id}")


class InvalidStatusTransitionError(BillingError):
    """Raised when a video job status change violates the state machine."""

    def __init__(self, video_id: UUID, current: str, target: str) -> None:
        self.video_id = video_id
        self.current = current
        self.target = target
        super().__init__(f"Video {video_id} cannot move from {current} to {target}")


class InvalidRequestError(BillingError):
    """Raised when request input fails business validation."""

    def __init__(self, code: str, message: str | None = None) -> None:
        self.code = code
        self.message = message or code
        super().__init__(f"Invalid request: {self.message}")


class WriteVerificationError(BillingError):
    """Raised when database write verification fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Write verification failed: {message}")


class DatabaseError(BillingError):
    """Raised when database operation fails unexpectedly."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Database error: {message}")


class WebhookVerificationError(BillingError):
    """Raised when webhook verification fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Webhook verification error: {message}")


class AuthenticationError(BillingError):
    """Raised when authentication fails (missing or invalid bearer token)."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Authentication failed: {message}")


class IdentityProviderError(BillingError):
    """Raised when the identity provider cannot be reached."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Identity provider error: {message}")


class CheckoutLinkMissingError(BillingError):
    """Raised when no checkout link is configured for a requested pack."""

    def __init__(self, pack_id: str, missing: str) -> None:
        self.pack_id = pack_id
        self.missing = missing
        super().__init__(f"No checkout link for pack {pack_id!r} (set {missing})")
