"""
Inventory — stock counters and their movement log.

    from storefront.inventory import InventoryLedger, MovementReason

    await ledger.decrement("var-a", 2, reference_type="order", reference_id=oid, clamp=True)
    match await ledger.reconcile("var-a"):
        case Ok(report):
            assert report.consistent
        case Error(e):
            ...
"""

from storefront.inventory._types import (
    MovementReason,
    InventoryMovement,
    StockChange,
    StockReconciliation,
)
from storefront.inventory._ledger import InventoryLedger, MAX_CAS_ATTEMPTS

__all__ = (
    "MovementReason",
    "InventoryMovement",
    "StockChange",
    "StockReconciliation",
    "InventoryLedger",
    "MAX_CAS_ATTEMPTS",
)
