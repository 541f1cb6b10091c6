"""
Order types.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from storefront._types import OwnerKey
from storefront.checkout import CheckoutLineSnapshot


# ═══════════════════════════════════════════════════════════════════════════════
# Status
# ═══════════════════════════════════════════════════════════════════════════════


class OrderStatus(Enum):
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(Enum):
    PAID = "paid"
    REFUNDED = "refunded"


class FulfillmentStatus(Enum):
    UNFULFILLED = "unfulfilled"
    FULFILLED = "fulfilled"


# ═══════════════════════════════════════════════════════════════════════════════
# Records
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Order:
    id: str
    order_number: str
    owner: OwnerKey
    email: str | None
    status: OrderStatus
    payment_status: PaymentStatus
    fulfillment_status: FulfillmentStatus
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    total: Decimal
    currency: str
    payment_intent_id: str
    checkout_session_id: str | None
    created_at: datetime
    stock_committed_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class OrderItem:
    order_id: str
    product_id: str
    variant_id: str | None
    name_snapshot: str
    unit_price: Decimal
    quantity: int
    line_total: Decimal


@dataclass(frozen=True, slots=True)
class MaterializedOrder:
    """
    Result of materialization.

    Note: replayed=True means the order already existed for this payment
    and was returned unchanged.
    """

    order: Order
    items: tuple[OrderItem, ...]
    replayed: bool = False


@dataclass(frozen=True, slots=True)
class OrderPage:
    """One page of an owner's orders, newest first."""

    orders: tuple[Order, ...]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return -(-self.total // self.limit)


# ═══════════════════════════════════════════════════════════════════════════════
# Source of the order contents
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class FromSession:
    checkout_session_id: str


@dataclass(frozen=True, slots=True)
class FromCart:
    """Price the owner's live cart at materialization time."""


type OrderSource = FromSession | FromCart


@dataclass(frozen=True, slots=True)
class OrderDraft:
    """Everything needed to insert an order, resolved before the transaction opens."""

    payment_intent_id: str
    owner: OwnerKey
    email: str | None
    currency: str
    lines: tuple[CheckoutLineSnapshot, ...]
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    total: Decimal
    checkout_session_id: str | None = None


__all__ = (
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
)
