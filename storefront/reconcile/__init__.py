"""
Reconcile — pre-payment recheck of stock and prices.

    report: ValidationReport
    report.can_proceed        # no stock conflicts
    report.requires_requote   # some unit price drifted since the quote
    report.recomputed         # fresh Quote from live prices
"""

from storefront.reconcile._types import (
    ConflictKind,
    Conflict,
    ValidationReport,
)
from storefront.reconcile._service import ReconciliationService

__all__ = (
    "ConflictKind",
    "Conflict",
    "ValidationReport",
    "ReconciliationService",
)
