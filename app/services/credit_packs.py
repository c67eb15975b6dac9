"""
Credit pack catalog.

Maps pack IDs to what a purchase grants and to the setting holding the
gateway checkout link for that pack.
"""

from dataclasses import dataclass

from app.config import Settings, settings
from app.exceptions import CheckoutLinkMissingError, InvalidRequestError
from app.models.api import Plan

UNKNOWN_PACK_SETTING = "CHECKOUT_LINK_<PACK>"


@dataclass(frozen=True)
class CreditPack:
    """Credit pack configuration."""

    pack_id: str
    name: str
    credits: int = 0
    plan: Plan | None = None

    def __post_init__(self) -> None:
        """Validate pack configuration."""
        if not self.pack_id:
            raise ValueError("Pack ID required")
        if self.credits < 0:
            raise ValueError(f"Credits cannot be negative: {self.credits}")
        if self.credits == 0 and self.plan is None:
            raise ValueError(f"Pack {self.pack_id} grants nothing")

    @property
    def link_setting(self) -> str:
        """Settings attribute holding this pack's checkout link."""
        return f"checkout_link_{self.pack_id}"

    @property
    def link_env(self) -> str:
        """Environment variable holding this pack's checkout link."""
        return self.link_setting.upper()


# Pack catalog (product IDs must match the gateway dashboard)
CREDIT_PACKS: dict[str, CreditPack] = {
    "p150": CreditPack(pack_id="p150", name="150 Credits", credits=150),
    "p300": CreditPack(pack_id="p300", name="300 Credits", credits=300),
    "p500": CreditPack(pack_id="p500", name="500 Credits", credits=500),
    "pro": CreditPack(pack_id="pro", name="Pro Plan", plan=Plan.PRO),
}


def get_pack(pack_id: str | None) -> CreditPack | None:
    """Look up a pack by ID (case-insensitive). Returns None when unknown."""
    if not pack_id:
        return None
    return CREDIT_PACKS.get(pack_id.strip().lower())


def get_checkout_link(pack_id: str, config: Settings = settings) -> str:
    """
    Pick the configured checkout URL for a pack.

    Raises:
        InvalidRequestError: pack_id is empty (MISSING_PACK_ID)
        CheckoutLinkMissingError: pack is unknown or its link isn't configured
    """
    if not pack_id:
        raise InvalidRequestError("MISSING_PACK_ID", "pack_id is required")

    pack = get_pack(pack_id)
    if pack is None:
        raise CheckoutLinkMissingError(pack_id, UNKNOWN_PACK_SETTING)

    link = config.checkout_link(pack.link_setting)
    if not link:
        raise CheckoutLinkMissingError(pack_id, pack.link_env)

    return link
