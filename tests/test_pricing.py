"""Unit tests for quote arithmetic."""

from __future__ import annotations

from decimal import Decimal

from storefront._money import from_minor_units, quantize, to_minor_units
from storefront.config import Settings
from storefront.pricing import (
    PricingPolicy,
    compute_discount,
    compute_shipping,
    subtotal_of,
)

TIERS = ((Decimal("75"), Decimal("0")), (Decimal("25"), Decimal("5")))


class TestShipping:
    def test_tiers_by_subtotal(self) -> None:
        """Free from 75, 5 from 25, standard below."""
        assert compute_shipping(Decimal("80.00"), TIERS, Decimal("10")) == Decimal("0.00")
        assert compute_shipping(Decimal("75.00"), TIERS, Decimal("10")) == Decimal("0.00")
        assert compute_shipping(Decimal("25.00"), TIERS, Decimal("10")) == Decimal("5.00")
        assert compute_shipping(Decimal("24.99"), TIERS, Decimal("10")) == Decimal("10.00")

    def test_empty_cart_ships_free(self) -> None:
        assert compute_shipping(Decimal("0"), TIERS, Decimal("10")) == Decimal("0.00")


class TestDiscount:
    def test_known_code_is_normalized(self) -> None:
        amount, code = compute_discount(
            Decimal("50.00"), " welcome10 ", {"WELCOME10": Decimal("10")}
        )
        assert amount == Decimal("5.00")
        assert code == "WELCOME10"

    def test_unknown_code_gives_nothing(self) -> None:
        assert compute_discount(Decimal("50.00"), "BOGUS", {}) == (Decimal("0.00"), None)

    def test_clamped_to_subtotal(self) -> None:
        amount, _ = compute_discount(Decimal("20.00"), "ALL", {"ALL": Decimal("150")})
        assert amount == Decimal("20.00")


class TestPolicy:
    def test_happy_path_quote(self) -> None:
        """2 × 10.00 → 20.00 + 1.60 tax + 10.00 shipping = 31.60."""
        policy = PricingPolicy()
        quote = policy.quote(subtotal_of([(Decimal("10.00"), 2)]))

        assert quote.subtotal == Decimal("20.00")
        assert quote.tax == Decimal("1.60")
        assert quote.shipping == Decimal("10.00")
        assert quote.total == Decimal("31.60")
        assert to_minor_units(quote.total, "USD") == 3160

    def test_total_invariant_with_discount(self) -> None:
        policy = PricingPolicy(discount_codes={"WELCOME10": Decimal("10")})
        quote = policy.quote(Decimal("80.00"), discount_code="welcome10")

        assert quote.discount == Decimal("8.00")
        assert quote.total == quote.subtotal + quote.tax + quote.shipping - quote.discount
        assert quote.discount_code == "WELCOME10"

    def test_zero_subtotal_is_all_zero(self) -> None:
        quote = PricingPolicy().quote(Decimal("0"))
        assert (quote.tax, quote.shipping, quote.total) == (Decimal("0.00"),) * 3

    def test_from_settings_sorts_tiers(self) -> None:
        settings = Settings(
            _env_file=None,  # type: ignore[call-arg]
            shipping_tiers=[(Decimal("25"), Decimal("5")), (Decimal("75"), Decimal("0"))],
        )
        policy = PricingPolicy.from_settings(settings)
        assert policy.shipping_tiers[0][0] == Decimal("75")
        assert policy.quote(Decimal("80")).shipping == Decimal("0.00")


class TestMoney:
    def test_half_up_rounding(self) -> None:
        assert quantize(Decimal("1.005"), "USD") == Decimal("1.01")

    def test_minor_units_roundtrip_for_zero_decimal_currency(self) -> None:
        assert to_minor_units(Decimal("500"), "JPY") == 500
        assert from_minor_units(500, "JPY") == Decimal("500")
