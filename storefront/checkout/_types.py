"""
Checkout session types — frozen price quotes with a one-way lifecycle.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from storefront._types import OwnerKey


# ═══════════════════════════════════════════════════════════════════════════════
# Status
# ═══════════════════════════════════════════════════════════════════════════════


class SessionStatus(Enum):
    """
    created → validated → consumed | expired | abandoned

    Note: consumed, expired and abandoned are terminal.
    """

    CREATED = "created"
    VALIDATED = "validated"
    CONSUMED = "consumed"
    EXPIRED = "expired"
    ABANDONED = "abandoned"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL = frozenset({SessionStatus.CONSUMED, SessionStatus.EXPIRED, SessionStatus.ABANDONED})

_ALLOWED: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.CREATED: frozenset(
        {
            SessionStatus.VALIDATED,
            SessionStatus.CONSUMED,
            SessionStatus.EXPIRED,
            SessionStatus.ABANDONED,
        }
    ),
    # Revalidating a validated session keeps it validated.
    SessionStatus.VALIDATED: frozenset(
        {
            SessionStatus.VALIDATED,
            SessionStatus.CONSUMED,
            SessionStatus.EXPIRED,
            SessionStatus.ABANDONED,
        }
    ),
}


def can_transition(current: SessionStatus, target: SessionStatus) -> bool:
    return target in _ALLOWED.get(current, frozenset())


class InvalidTransition(Exception):
    """Programming error: a terminal or backwards session transition."""

    def __init__(self, session_id: str, current: SessionStatus, target: SessionStatus) -> None:
        super().__init__(
            f"checkout session {session_id}: {current.value} → {target.value} not allowed"
        )
        self.session_id = session_id
        self.current = current
        self.target = target


# ═══════════════════════════════════════════════════════════════════════════════
# Snapshot
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CheckoutLineSnapshot:
    """Line frozen at quote time; does not follow the live cart or price."""

    product_id: str
    variant_id: str
    name: str
    unit_price: Decimal
    quantity: int
    line_total: Decimal

    def to_json(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "name": self.name,
            "unit_price": str(self.unit_price),
            "quantity": self.quantity,
            "line_total": str(self.line_total),
        }

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> CheckoutLineSnapshot:
        return cls(
            product_id=data["product_id"],
            variant_id=data["variant_id"],
            name=data["name"],
            unit_price=Decimal(data["unit_price"]),
            quantity=int(data["quantity"]),
            line_total=Decimal(data["line_total"]),
        )


@dataclass(frozen=True, slots=True)
class CheckoutSession:
    id: str
    owner: OwnerKey
    currency: str
    items: tuple[CheckoutLineSnapshot, ...]
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    total: Decimal
    discount_code: str | None
    destination_country: str | None
    status: SessionStatus
    created_at: datetime
    expires_at: datetime
    order_id: str | None = None

    def is_expired_at(self, now: datetime) -> bool:
        return now >= self.expires_at


__all__ = (
    "SessionStatus",
    "can_transition",
    "InvalidTransition",
    "CheckoutLineSnapshot",
    "CheckoutSession",
)
