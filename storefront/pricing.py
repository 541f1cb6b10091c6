"""
Pricing — pure quote arithmetic.

Every amount is recomputed server-side from live unit prices; nothing here
touches the database, so the same inputs always give the same quote.

    policy = PricingPolicy.from_settings(settings)
    quote = policy.quote(Decimal("20.00"))
    # Quote(subtotal=20.00, tax=1.60, shipping=10.00, discount=0.00, total=31.60)
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal

from storefront._money import ZERO, quantize
from storefront.config import Settings


# ═══════════════════════════════════════════════════════════════════════════════
# Quote
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Quote:
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    total: Decimal
    discount_code: str | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Functions
# ═══════════════════════════════════════════════════════════════════════════════


def line_total(unit_price: Decimal, quantity: int, currency: str = "USD") -> Decimal:
    return quantize(unit_price * quantity, currency)


def subtotal_of(lines: Iterable[tuple[Decimal, int]], currency: str = "USD") -> Decimal:
    """Σ(unit_price × quantity) over (unit_price, quantity) pairs."""
    return quantize(sum((price * qty for price, qty in lines), ZERO), currency)


def compute_tax(
    subtotal: Decimal,
    rate: Decimal,
    destination_country: str | None = None,
    currency: str = "USD",
) -> Decimal:
    """Flat rate of the subtotal. destination_country is reserved for per-region rates."""
    return quantize(subtotal * rate, currency)


def compute_shipping(
    subtotal: Decimal,
    tiers: Sequence[tuple[Decimal, Decimal]],
    standard: Decimal,
    destination_country: str | None = None,
    currency: str = "USD",
) -> Decimal:
    """
    First tier whose threshold the subtotal reaches, else standard rate.

    tiers must be sorted by threshold, highest first. An empty cart ships free.
    """
    if subtotal <= ZERO:
        return quantize(ZERO, currency)
    for threshold, cost in tiers:
        if subtotal >= threshold:
            return quantize(cost, currency)
    return quantize(standard, currency)


def compute_discount(
    subtotal: Decimal,
    code: str | None,
    codes: Mapping[str, Decimal],
    currency: str = "USD",
) -> tuple[Decimal, str | None]:
    """
    Percent-off discount for a known code, clamped to the subtotal.

    Returns (amount, normalized code); unknown codes give (0, None).
    """
    if not code:
        return quantize(ZERO, currency), None
    normalized = code.strip().upper()
    percent = codes.get(normalized)
    if percent is None:
        return quantize(ZERO, currency), None
    amount = quantize(subtotal * percent / Decimal(100), currency)
    return min(amount, subtotal), normalized


# ═══════════════════════════════════════════════════════════════════════════════
# Policy
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class PricingPolicy:
    """Tax, shipping and discount configuration bundled for quoting."""

    currency: str = "USD"
    tax_rate: Decimal = Decimal("0.08")
    shipping_tiers: Sequence[tuple[Decimal, Decimal]] = (
        (Decimal("75"), Decimal("0")),
        (Decimal("25"), Decimal("5")),
    )
    standard_shipping: Decimal = Decimal("10")
    discount_codes: Mapping[str, Decimal] = field(default_factory=dict[str, Decimal])

    @classmethod
    def from_settings(cls, settings: Settings) -> PricingPolicy:
        return cls(
            currency=settings.currency,
            tax_rate=settings.tax_rate,
            shipping_tiers=tuple(settings.shipping_tiers),
            standard_shipping=settings.standard_shipping,
            discount_codes=dict(settings.discount_codes),
        )

    def quote(
        self,
        subtotal: Decimal,
        destination_country: str | None = None,
        discount_code: str | None = None,
    ) -> Quote:
        subtotal = quantize(subtotal, self.currency)
        if subtotal <= ZERO:
            zero = quantize(ZERO, self.currency)
            return Quote(zero, zero, zero, zero, zero)

        tax = compute_tax(subtotal, self.tax_rate, destination_country, self.currency)
        shipping = compute_shipping(
            subtotal,
            self.shipping_tiers,
            self.standard_shipping,
            destination_country,
            self.currency,
        )
        discount, code = compute_discount(
            subtotal, discount_code, self.discount_codes, self.currency
        )
        total = quantize(subtotal + tax + shipping - discount, self.currency)
        return Quote(subtotal, tax, shipping, discount, total, code)


__all__ = (
    "Quote",
    "PricingPolicy",
    "line_total",
    "subtotal_of",
    "compute_tax",
    "compute_shipping",
    "compute_discount",
)
