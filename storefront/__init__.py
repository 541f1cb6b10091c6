"""
storefront — checkout-to-order pipeline.

    from storefront import cart as C        # Owner-scoped carts
    from storefront import checkout as K    # Priced, expiring checkout sessions
    from storefront import orders as O      # Payment → exactly one order
    from storefront import inventory as I   # Stock counters + movement ledger

Wiring: storefront.pipeline.build_storefront; HTTP: storefront.api.create_app.
"""

from storefront import cart
from storefront import inventory
from storefront import checkout
from storefront import reconcile
from storefront import payments
from storefront import orders
from storefront._errors import CheckoutError, CheckoutErrorKind, Errors
from storefront._types import (
    OwnerKey,
    OwnerKind,
    Clock,
    utcnow,
)

__version__ = "0.1.0"

__all__ = (
    "cart",
    "inventory",
    "checkout",
    "reconcile",
    "payments",
    "orders",
    "CheckoutError",
    "CheckoutErrorKind",
    "Errors",
    "OwnerKey",
    "OwnerKind",
    "Clock",
    "utcnow",
)
