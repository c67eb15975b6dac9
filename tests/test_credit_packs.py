"""
Tests for the credit pack catalog and checkout link selection.
"""

import pytest

from app.config import Settings
from app.exceptions import CheckoutLinkMissingError, InvalidRequestError
from app.models.api import Plan
from app.services.credit_packs import (
    CREDIT_PACKS,
    CreditPack,
    get_checkout_link,
    get_pack,
)


def make_settings(**links: str) -> Settings:
    return Settings(database_url="postgresql+asyncpg://u:p@localhost/db", **links)


class TestCreditPack:
    """Tests for pack definitions."""

    def test_catalog_contents(self) -> None:
        assert CREDIT_PACKS["p150"].credits == 150
        assert CREDIT_PACKS["p300"].credits == 300
        assert CREDIT_PACKS["p500"].credits == 500
        assert CREDIT_PACKS["pro"].plan == Plan.PRO

    def test_link_setting_names(self) -> None:
        assert CREDIT_PACKS["p150"].link_setting == "checkout_link_p150"
        assert CREDIT_PACKS["p150"].link_env == "CHECKOUT_LINK_P150"

    def test_pack_must_grant_something(self) -> None:
        with pytest.raises(ValueError, match="grants nothing"):
            CreditPack(pack_id="empty", name="Empty")

    def test_negative_credits_rejected(self) -> None:
        with pytest.raises(ValueError):
            CreditPack(pack_id="neg", name="Negative", credits=-1)

    @pytest.mark.parametrize("pack_id", ["p150", "P150", " p150 "])
    def test_lookup_is_case_insensitive(self, pack_id: str) -> None:
        pack = get_pack(pack_id)
        assert pack is not None
        assert pack.pack_id == "p150"

    @pytest.mark.parametrize("pack_id", [None, "", "p999"])
    def test_unknown_pack(self, pack_id: str | None) -> None:
        assert get_pack(pack_id) is None


class TestGetCheckoutLink:
    """Tests for checkout link resolution."""

    def test_configured_link(self) -> None:
        config = make_settings(checkout_link_p300="https://pay.example.com/p300")

        assert get_checkout_link("p300", config) == "https://pay.example.com/p300"

    def test_missing_pack_id(self) -> None:
        with pytest.raises(InvalidRequestError) as exc_info:
            get_checkout_link("", make_settings())

        assert exc_info.value.code == "MISSING_PACK_ID"

    def test_unconfigured_link_names_env_var(self) -> None:
        with pytest.raises(CheckoutLinkMissingError) as exc_info:
            get_checkout_link("pro", make_settings())

        assert exc_info.value.missing == "CHECKOUT_LINK_PRO"

    def test_unknown_pack(self) -> None:
        with pytest.raises(CheckoutLinkMissingError) as exc_info:
            get_checkout_link("p999", make_settings())

        assert exc_info.value.pack_id == "p999"
        assert exc_info.value.missing == "CHECKOUT_LINK_<PACK>"
