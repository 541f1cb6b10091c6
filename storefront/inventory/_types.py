"""
Inventory types.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class MovementReason(Enum):
    SALE = "sale"
    ADJUSTMENT = "adjustment"
    RESTOCK = "restock"


@dataclass(frozen=True, slots=True)
class InventoryMovement:
    """One append-only stock change. delta_quantity is what was actually applied."""

    id: int
    variant_id: str
    delta_quantity: int
    reason: MovementReason
    reference_type: str | None
    reference_id: str | None
    note: str | None
    created_at: datetime


@dataclass(frozen=True, slots=True)
class StockChange:
    """
    Result of a counter mutation.

    Note: requested vs applied differ only when the change was clamped at
    zero. replayed — a sale for this reference was already recorded, nothing
    changed.
    """

    variant_id: str
    previous: int
    current: int
    requested: int
    applied: int
    replayed: bool = False

    @property
    def clamped(self) -> bool:
        return not self.replayed and self.requested != self.applied


@dataclass(frozen=True, slots=True)
class StockReconciliation:
    """available == initial + movement_sum when the ledger is consistent."""

    variant_id: str
    available: int
    initial: int
    movement_sum: int

    @property
    def consistent(self) -> bool:
        return self.available == self.initial + self.movement_sum


__all__ = (
    "MovementReason",
    "InventoryMovement",
    "StockChange",
    "StockReconciliation",
)
