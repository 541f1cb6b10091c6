"""
Cart types.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from storefront._types import OwnerKey


@dataclass(frozen=True, slots=True)
class CartLine:
    """
    Persisted cart line. Unique per (owner, variant_id).

    Note: quantity == 0 is only ever returned, never stored; it reports a
    line that the operation removed.
    """

    id: str
    owner: OwnerKey
    product_id: str
    variant_id: str
    quantity: int
    created_at: datetime
    updated_at: datetime

    @property
    def removed(self) -> bool:
        return self.quantity == 0


@dataclass(frozen=True, slots=True)
class CartLineView:
    """Cart line joined with live catalog price and stock."""

    id: str
    product_id: str
    variant_id: str
    name: str
    unit_price: Decimal
    quantity: int
    line_total: Decimal
    available: int

    @property
    def out_of_stock(self) -> bool:
        return self.quantity > self.available


@dataclass(frozen=True, slots=True)
class CartView:
    lines: tuple[CartLineView, ...]
    item_count: int
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal
    has_out_of_stock: bool
    has_low_stock: bool

    @property
    def is_empty(self) -> bool:
        return not self.lines


class MergeStrategy(Enum):
    """How a guest cart folds into a user cart on sign-in."""

    MERGE = "merge"  # sum quantities
    REPLACE = "replace"  # guest quantity wins
    KEEP_EXISTING = "keep_existing"  # user quantity wins


@dataclass(frozen=True, slots=True)
class MergeReport:
    merged: int
    clamped: int
    skipped: int


__all__ = (
    "CartLine",
    "CartLineView",
    "CartView",
    "MergeStrategy",
    "MergeReport",
)
