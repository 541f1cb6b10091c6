"""
HTTP schemas — pydantic models at the boundary.

Request bodies reject unknown fields and expose to_domain() where a domain
value exists; responses are built with from_domain(). Money is serialized
as decimal strings.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from storefront._types import OwnerKey
from storefront.cart import CartLine, CartView, MergeReport, MergeStrategy
from storefront.checkout import CheckoutSession
from storefront.orders import (
    FromCart,
    FromSession,
    MaterializedOrder,
    Order,
    OrderPage,
    OrderSource,
)
from storefront.payments import PaymentIntent, WebhookOutcome
from storefront.pricing import Quote
from storefront.reconcile import ValidationReport


class _Body(BaseModel):
    model_config = ConfigDict(extra="forbid")


# ═══════════════════════════════════════════════════════════════════════════════
# Requests
# ═══════════════════════════════════════════════════════════════════════════════


class AddLineIn(_Body):
    variant_id: str = Field(min_length=1)
    quantity: int = 1

    def to_domain(self) -> tuple[str, int]:
        return self.variant_id, self.quantity


class SetQuantityIn(_Body):
    quantity: int


class MergeCartIn(_Body):
    guest_session: str = Field(min_length=1)
    strategy: MergeStrategy = MergeStrategy.MERGE

    def to_domain(self) -> tuple[OwnerKey, MergeStrategy]:
        return OwnerKey.guest(self.guest_session), self.strategy


class CreateSessionIn(_Body):
    destination_country: str | None = None
    discount_code: str | None = None


class PreparePaymentIn(_Body):
    email: str | None = None


class MaterializeIn(_Body):
    payment_intent_id: str = Field(min_length=1)
    checkout_session_id: str | None = None
    email: str | None = None

    def to_domain(self) -> OrderSource:
        if self.checkout_session_id:
            return FromSession(self.checkout_session_id)
        return FromCart()


# ═══════════════════════════════════════════════════════════════════════════════
# Cart
# ═══════════════════════════════════════════════════════════════════════════════


class CartLineOut(BaseModel):
    id: str
    product_id: str
    variant_id: str
    name: str
    unit_price: Decimal
    quantity: int
    line_total: Decimal
    available: int
    out_of_stock: bool


class CartOut(BaseModel):
    lines: list[CartLineOut]
    item_count: int
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal
    has_out_of_stock: bool
    has_low_stock: bool

    @classmethod
    def from_domain(cls, cart: CartView) -> CartOut:
        return cls(
            lines=[
                CartLineOut(
                    id=line.id,
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                    name=line.name,
                    unit_price=line.unit_price,
                    quantity=line.quantity,
                    line_total=line.line_total,
                    available=line.available,
                    out_of_stock=line.out_of_stock,
                )
                for line in cart.lines
            ],
            item_count=cart.item_count,
            subtotal=cart.subtotal,
            tax=cart.tax,
            shipping=cart.shipping,
            total=cart.total,
            has_out_of_stock=cart.has_out_of_stock,
            has_low_stock=cart.has_low_stock,
        )


class CartLineChangeOut(BaseModel):
    id: str
    variant_id: str
    quantity: int
    removed: bool

    @classmethod
    def from_domain(cls, line: CartLine) -> CartLineChangeOut:
        return cls(
            id=line.id,
            variant_id=line.variant_id,
            quantity=line.quantity,
            removed=line.removed,
        )


class MergeOut(BaseModel):
    merged: int
    clamped: int
    skipped: int

    @classmethod
    def from_domain(cls, report: MergeReport) -> MergeOut:
        return cls(merged=report.merged, clamped=report.clamped, skipped=report.skipped)


# ═══════════════════════════════════════════════════════════════════════════════
# Checkout
# ═══════════════════════════════════════════════════════════════════════════════


class SessionLineOut(BaseModel):
    product_id: str
    variant_id: str
    name: str
    unit_price: Decimal
    quantity: int
    line_total: Decimal


class SessionOut(BaseModel):
    id: str
    status: str
    currency: str
    items: list[SessionLineOut]
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    total: Decimal
    discount_code: str | None
    destination_country: str | None
    created_at: datetime
    expires_at: datetime
    order_id: str | None

    @classmethod
    def from_domain(cls, session: CheckoutSession) -> SessionOut:
        return cls(
            id=session.id,
            status=session.status.value,
            currency=session.currency,
            items=[
                SessionLineOut(
                    product_id=item.product_id,
                    variant_id=item.variant_id,
                    name=item.name,
                    unit_price=item.unit_price,
                    quantity=item.quantity,
                    line_total=item.line_total,
                )
                for item in session.items
            ],
            subtotal=session.subtotal,
            tax=session.tax,
            shipping=session.shipping,
            discount=session.discount,
            total=session.total,
            discount_code=session.discount_code,
            destination_country=session.destination_country,
            created_at=session.created_at,
            expires_at=session.expires_at,
            order_id=session.order_id,
        )


class QuoteOut(BaseModel):
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    total: Decimal

    @classmethod
    def from_domain(cls, quote: Quote) -> QuoteOut:
        return cls(
            subtotal=quote.subtotal,
            tax=quote.tax,
            shipping=quote.shipping,
            discount=quote.discount,
            total=quote.total,
        )


class ValidationOut(BaseModel):
    session_id: str | None
    can_proceed: bool
    requires_requote: bool
    conflicts: list[dict[str, Any]]
    recomputed: QuoteOut

    @classmethod
    def from_domain(cls, report: ValidationReport) -> ValidationOut:
        return cls(
            session_id=report.session_id,
            can_proceed=report.can_proceed,
            requires_requote=report.requires_requote,
            conflicts=[c.to_dict() for c in report.conflicts],
            recomputed=QuoteOut.from_domain(report.recomputed),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Payments + orders
# ═══════════════════════════════════════════════════════════════════════════════


class PaymentIntentOut(BaseModel):
    id: str
    amount: int
    currency: str
    status: str
    client_secret: str | None

    @classmethod
    def from_domain(cls, intent: PaymentIntent) -> PaymentIntentOut:
        return cls(
            id=intent.id,
            amount=intent.amount,
            currency=intent.currency,
            status=intent.status.value,
            client_secret=intent.client_secret,
        )


class OrderItemOut(BaseModel):
    product_id: str
    variant_id: str | None
    name: str
    unit_price: Decimal
    quantity: int
    line_total: Decimal


class OrderOut(BaseModel):
    id: str
    order_number: str
    status: str
    payment_status: str
    fulfillment_status: str
    email: str | None
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    total: Decimal
    currency: str
    payment_intent_id: str
    checkout_session_id: str | None
    created_at: datetime
    items: list[OrderItemOut]
    replayed: bool = False

    @classmethod
    def from_domain(cls, materialized: MaterializedOrder) -> OrderOut:
        order = materialized.order
        return cls(
            id=order.id,
            order_number=order.order_number,
            status=order.status.value,
            payment_status=order.payment_status.value,
            fulfillment_status=order.fulfillment_status.value,
            email=order.email,
            subtotal=order.subtotal,
            tax=order.tax,
            shipping=order.shipping,
            discount=order.discount,
            total=order.total,
            currency=order.currency,
            payment_intent_id=order.payment_intent_id,
            checkout_session_id=order.checkout_session_id,
            created_at=order.created_at,
            items=[
                OrderItemOut(
                    product_id=item.product_id,
                    variant_id=item.variant_id,
                    name=item.name_snapshot,
                    unit_price=item.unit_price,
                    quantity=item.quantity,
                    line_total=item.line_total,
                )
                for item in materialized.items
            ],
            replayed=materialized.replayed,
        )


class OrderSummaryOut(BaseModel):
    id: str
    order_number: str
    status: str
    payment_status: str
    fulfillment_status: str
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    total: Decimal
    currency: str
    created_at: datetime

    @classmethod
    def from_domain(cls, order: Order) -> OrderSummaryOut:
        return cls(
            id=order.id,
            order_number=order.order_number,
            status=order.status.value,
            payment_status=order.payment_status.value,
            fulfillment_status=order.fulfillment_status.value,
            subtotal=order.subtotal,
            tax=order.tax,
            shipping=order.shipping,
            discount=order.discount,
            total=order.total,
            currency=order.currency,
            created_at=order.created_at,
        )


class PaginationOut(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class OrderPageOut(BaseModel):
    orders: list[OrderSummaryOut]
    pagination: PaginationOut

    @classmethod
    def from_domain(cls, page: OrderPage) -> OrderPageOut:
        return cls(
            orders=[OrderSummaryOut.from_domain(order) for order in page.orders],
            pagination=PaginationOut(
                page=page.page, limit=page.limit, total=page.total, total_pages=page.total_pages
            ),
        )


class WebhookOut(BaseModel):
    received: bool = True
    duplicate: bool
    order_id: str | None
    error: dict[str, Any] | None = None

    @classmethod
    def from_domain(cls, outcome: WebhookOutcome) -> WebhookOut:
        return cls(
            duplicate=outcome.duplicate,
            order_id=outcome.order_id,
            error=outcome.error.to_dict() if outcome.error is not None else None,
        )


__all__ = (
    "AddLineIn",
    "SetQuantityIn",
    "MergeCartIn",
    "CreateSessionIn",
    "PreparePaymentIn",
    "MaterializeIn",
    "CartLineOut",
    "CartOut",
    "CartLineChangeOut",
    "MergeOut",
    "SessionLineOut",
    "SessionOut",
    "QuoteOut",
    "ValidationOut",
    "PaymentIntentOut",
    "OrderItemOut",
    "OrderOut",
    "OrderSummaryOut",
    "PaginationOut",
    "OrderPageOut",
    "WebhookOut",
)
