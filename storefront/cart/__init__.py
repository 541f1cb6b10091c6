"""
Cart — persisted shopping carts for users and guests.

    from storefront.cart import CartStore, MergeStrategy

    await store.add_line(owner, "var-tee-m", 2)
    await store.add_line(owner, "var-tee-m", 3)   # same line, quantity 5
    view = await store.get_cart(owner)            # live price + stock
    await store.merge(guest, user, MergeStrategy.MERGE)
"""

from storefront.cart._types import (
    CartLine,
    CartLineView,
    CartView,
    MergeStrategy,
    MergeReport,
)
from storefront.cart._store import CartStore

__all__ = (
    "CartLine",
    "CartLineView",
    "CartView",
    "MergeStrategy",
    "MergeReport",
    "CartStore",
)
