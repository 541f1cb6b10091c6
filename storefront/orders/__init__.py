"""
Orders — turn a captured payment into exactly one order.

    from storefront.orders import OrderMaterializer, FromSession

    match await materializer.materialize(intent_id, FromSession(sid), owner):
        case Ok(result) if result.replayed:
            ...  # same order as the first call
        case Ok(result):
            ...  # new order, stock decremented, cart cleared
        case Error(e):
            ...

Architecture:
    MaterializeSpec → FetchLinkNode → IntentNode → SourceNode
        → MaterializeOutcome (@polymorphic) → FinalResultNode
"""

from storefront.orders._types import (
    OrderStatus,
    PaymentStatus,
    FulfillmentStatus,
    Order,
    OrderItem,
    MaterializedOrder,
    OrderPage,
    FromSession,
    FromCart,
    OrderSource,
    OrderDraft,
)
from storefront.orders._numbers import OrderNumbers, random_order_numbers
from storefront.orders._ledger import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    OrderLedger,
    PaymentLink,
)
from storefront.orders._graph import MaterializeSpec, run_materialize
from storefront.orders._materializer import OrderMaterializer, ORDER_REFERENCE

__all__ = (
    # Types
    "OrderStatus",
    "PaymentStatus",
    "FulfillmentStatus",
    "Order",
    "OrderItem",
    "MaterializedOrder",
    "OrderPage",
    "FromSession",
    "FromCart",
    "OrderSource",
    "OrderDraft",
    # Numbers
    "OrderNumbers",
    "random_order_numbers",
    # Ledger
    "OrderLedger",
    "PaymentLink",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Graph
    "MaterializeSpec",
    "run_materialize",
    # Materializer
    "OrderMaterializer",
    "ORDER_REFERENCE",
)
