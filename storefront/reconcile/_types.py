"""
Revalidation report types.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from storefront._errors import money_str
from storefront.pricing import Quote


class ConflictKind(Enum):
    QUANTITY_UNAVAILABLE = "quantity_unavailable"
    PRICE_CHANGED = "price_changed"


@dataclass(frozen=True, slots=True)
class Conflict:
    """
    One line that no longer matches live data.

    Note: requested/available are set for QUANTITY_UNAVAILABLE,
    snapshot_price/live_price for PRICE_CHANGED.
    """

    kind: ConflictKind
    variant_id: str
    product_id: str
    name: str
    requested: int | None = None
    available: int | None = None
    snapshot_price: Decimal | None = None
    live_price: Decimal | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.kind.value,
            "variant_id": self.variant_id,
            "product_id": self.product_id,
            "name": self.name,
        }
        if self.kind == ConflictKind.QUANTITY_UNAVAILABLE:
            data["requested"] = self.requested
            data["available"] = self.available
        else:
            data["snapshot_price"] = money_str(self.snapshot_price or Decimal(0))
            data["live_price"] = money_str(self.live_price or Decimal(0))
        return data


@dataclass(frozen=True, slots=True)
class ValidationReport:
    session_id: str | None
    conflicts: tuple[Conflict, ...]
    recomputed: Quote

    @property
    def stock_conflicts(self) -> tuple[Conflict, ...]:
        return tuple(c for c in self.conflicts if c.kind == ConflictKind.QUANTITY_UNAVAILABLE)

    @property
    def price_conflicts(self) -> tuple[Conflict, ...]:
        return tuple(c for c in self.conflicts if c.kind == ConflictKind.PRICE_CHANGED)

    @property
    def can_proceed(self) -> bool:
        return not self.stock_conflicts

    @property
    def requires_requote(self) -> bool:
        return bool(self.price_conflicts)


__all__ = (
    "ConflictKind",
    "Conflict",
    "ValidationReport",
)
