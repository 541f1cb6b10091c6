"""
Money helpers — Decimal amounts, minor-unit conversion.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

# ISO 4217 exponents that differ from 2
_EXPONENTS: dict[str, int] = {
    "JPY": 0,
    "KRW": 0,
    "VND": 0,
    "CLP": 0,
    "ISK": 0,
    "BHD": 3,
    "KWD": 3,
    "OMR": 3,
    "JOD": 3,
    "TND": 3,
}


def exponent(currency: str) -> int:
    return _EXPONENTS.get(currency.upper(), 2)


def quantize(amount: Decimal | int | str, currency: str = "USD") -> Decimal:
    """Round half-up to the currency's minor unit."""
    step = Decimal(1).scaleb(-exponent(currency))
    return Decimal(amount).quantize(step, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal, currency: str = "USD") -> int:
    """12.34 USD → 1234."""
    return int(quantize(amount, currency).scaleb(exponent(currency)))


def from_minor_units(units: int, currency: str = "USD") -> Decimal:
    """1234 → 12.34 USD."""
    return quantize(Decimal(units).scaleb(-exponent(currency)), currency)


ZERO = Decimal("0")


__all__ = (
    "exponent",
    "quantize",
    "to_minor_units",
    "from_minor_units",
    "ZERO",
)
