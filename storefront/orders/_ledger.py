"""
Order ledger — orders, their items and the payment link side table.

The payment_links primary key on payment_intent_id decides which of two
concurrent materializations wins. The loser rolls back and reads the
winner's order.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront._errors import CheckoutError, Errors
from storefront._money import from_minor_units, to_minor_units
from storefront._types import Clock, Error, Ok, OwnerKey, OwnerKind, Result, utcnow
from storefront.checkout import CheckoutSessionManager
from storefront.db import (
    CheckoutSessionTable,
    OrderItemTable,
    OrderTable,
    PaymentLinkTable,
)
from storefront.orders._numbers import OrderNumbers, random_order_numbers
from storefront.orders._types import (
    FulfillmentStatus,
    MaterializedOrder,
    Order,
    OrderDraft,
    OrderItem,
    OrderPage,
    OrderStatus,
    PaymentStatus,
)

log = structlog.get_logger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 50


@dataclass(frozen=True, slots=True)
class PaymentLink:
    payment_intent_id: str
    order_id: str


def to_order(row: OrderTable) -> Order:
    currency = row.currency
    return Order(
        id=row.id,
        order_number=row.order_number,
        owner=OwnerKey(OwnerKind(row.owner_kind), row.owner_id),
        email=row.email,
        status=OrderStatus(row.status),
        payment_status=PaymentStatus(row.payment_status),
        fulfillment_status=FulfillmentStatus(row.fulfillment_status),
        subtotal=from_minor_units(row.subtotal_minor, currency),
        tax=from_minor_units(row.tax_minor, currency),
        shipping=from_minor_units(row.shipping_minor, currency),
        discount=from_minor_units(row.discount_minor, currency),
        total=from_minor_units(row.total_minor, currency),
        currency=currency,
        payment_intent_id=row.payment_intent_id,
        checkout_session_id=row.checkout_session_id,
        created_at=row.created_at,
        stock_committed_at=row.stock_committed_at,
    )


def to_item(row: OrderItemTable, currency: str) -> OrderItem:
    return OrderItem(
        order_id=row.order_id,
        product_id=row.product_id,
        variant_id=row.variant_id,
        name_snapshot=row.name_snapshot,
        unit_price=from_minor_units(row.unit_price_minor, currency),
        quantity=row.quantity,
        line_total=from_minor_units(row.line_total_minor, currency),
    )


class OrderLedger:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        sessions: CheckoutSessionManager,
        *,
        numbers: OrderNumbers | None = None,
        attempts: int = 5,
        clock: Clock = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._sessions = sessions
        self._numbers = numbers or random_order_numbers()
        self._attempts = attempts
        self._clock = clock

    # ───────────────────────────────────────────────────────────────────────────
    # Reads
    # ───────────────────────────────────────────────────────────────────────────

    async def find_link(self, payment_intent_id: str) -> Result[PaymentLink | None, CheckoutError]:
        try:
            async with self._session_factory() as session:
                row = await session.get(PaymentLinkTable, payment_intent_id)
                if row is None:
                    return Ok(None)
                return Ok(PaymentLink(row.payment_intent_id, row.order_id))
        except SQLAlchemyError as e:
            log.error("payment_link_read_failed", payment_intent_id=payment_intent_id, error=str(e))
            return Error(Errors.store_unavailable(str(e)))

    async def load(self, order_id: str) -> Result[MaterializedOrder, CheckoutError]:
        try:
            async with self._session_factory() as session:
                row = await session.get(OrderTable, order_id)
                if row is None:
                    return Error(Errors.not_found("order", order_id))
                items = await session.execute(
                    select(OrderItemTable)
                    .where(OrderItemTable.order_id == order_id)
                    .order_by(OrderItemTable.id)
                )
                return Ok(
                    MaterializedOrder(
                        order=to_order(row),
                        items=tuple(to_item(item, row.currency) for item in items.scalars()),
                    )
                )
        except SQLAlchemyError as e:
            log.error("order_read_failed", order_id=order_id, error=str(e))
            return Error(Errors.store_unavailable(str(e)))

    async def list_for_owner(
        self, owner: OwnerKey, page: int = 1, limit: int = DEFAULT_PAGE_SIZE
    ) -> Result[OrderPage, CheckoutError]:
        """
        Owner's orders, newest first.

        Out-of-range paging is clamped rather than rejected: page to at least 1,
        limit to 1..MAX_PAGE_SIZE.
        """
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        owned = (OrderTable.owner_kind == owner.kind.value) & (OrderTable.owner_id == owner.id)
        try:
            async with self._session_factory() as session:
                total = await session.scalar(
                    select(func.count()).select_from(OrderTable).where(owned)
                )
                rows = await session.execute(
                    select(OrderTable)
                    .where(owned)
                    .order_by(OrderTable.created_at.desc(), OrderTable.order_number.desc())
                    .offset((page - 1) * limit)
                    .limit(limit)
                )
                return Ok(
                    OrderPage(
                        orders=tuple(to_order(row) for row in rows.scalars()),
                        page=page,
                        limit=limit,
                        total=int(total or 0),
                    )
                )
        except SQLAlchemyError as e:
            log.error("order_list_failed", owner=str(owner), error=str(e))
            return Error(Errors.store_unavailable(str(e)))

    async def pending_stock(self, limit: int = 100) -> list[str]:
        """Ids of orders whose inventory step has not completed, oldest first."""
        async with self._session_factory() as session:
            rows = await session.execute(
                select(OrderTable.id)
                .where(OrderTable.stock_committed_at.is_(None))
                .order_by(OrderTable.created_at)
                .limit(limit)
            )
            return list(rows.scalars())

    # ───────────────────────────────────────────────────────────────────────────
    # Writes
    # ───────────────────────────────────────────────────────────────────────────

    async def commit(self, draft: OrderDraft) -> Result[MaterializedOrder, CheckoutError]:
        """
        Insert order, items and payment link in one transaction.

        Order number collision → roll back, retry with a new number.
        Payment link collision → a concurrent call won, return its order.
        """
        for attempt in range(1, self._attempts + 1):
            try:
                outcome = await self._commit_once(draft)
            except SQLAlchemyError as e:
                log.error(
                    "order_commit_failed",
                    payment_intent_id=draft.payment_intent_id,
                    error=str(e),
                )
                return Error(Errors.store_unavailable(str(e)))

            match outcome:
                case None:
                    log.warning(
                        "order_number_collision",
                        payment_intent_id=draft.payment_intent_id,
                        attempt=attempt,
                    )
                case _:
                    return outcome

        log.error(
            "order_number_exhausted",
            payment_intent_id=draft.payment_intent_id,
            attempts=self._attempts,
        )
        return Error(Errors.order_number_exhausted(self._attempts))

    async def _commit_once(
        self, draft: OrderDraft
    ) -> Result[MaterializedOrder, CheckoutError] | None:
        """One transaction. None means the order number collided."""
        now = self._clock()
        currency = draft.currency
        order_row = OrderTable(
            id=str(uuid.uuid4()),
            order_number=self._numbers(now),
            owner_kind=draft.owner.kind.value,
            owner_id=draft.owner.id,
            email=draft.email,
            status=OrderStatus.PROCESSING.value,
            payment_status=PaymentStatus.PAID.value,
            fulfillment_status=FulfillmentStatus.UNFULFILLED.value,
            subtotal_minor=to_minor_units(draft.subtotal, currency),
            tax_minor=to_minor_units(draft.tax, currency),
            shipping_minor=to_minor_units(draft.shipping, currency),
            discount_minor=to_minor_units(draft.discount, currency),
            total_minor=to_minor_units(draft.total, currency),
            currency=currency,
            payment_intent_id=draft.payment_intent_id,
            checkout_session_id=draft.checkout_session_id,
            created_at=now,
        )

        async with self._session_factory() as session:
            session.add(order_row)
            try:
                await session.flush()
            except IntegrityError:
                await session.rollback()
                return None

            item_rows = [
                OrderItemTable(
                    order_id=order_row.id,
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                    name_snapshot=line.name,
                    unit_price_minor=to_minor_units(line.unit_price, currency),
                    quantity=line.quantity,
                    line_total_minor=to_minor_units(line.line_total, currency),
                )
                for line in draft.lines
            ]
            session.add_all(item_rows)
            session.add(
                PaymentLinkTable(
                    payment_intent_id=draft.payment_intent_id,
                    order_id=order_row.id,
                    created_at=now,
                )
            )
            try:
                await session.flush()
            except IntegrityError:
                await session.rollback()
                return await self._winner(draft.payment_intent_id)

            if draft.checkout_session_id is not None:
                checkout = (
                    await session.execute(
                        select(CheckoutSessionTable)
                        .where(CheckoutSessionTable.id == draft.checkout_session_id)
                        .with_for_update()
                    )
                ).scalar_one_or_none()
                if checkout is not None:
                    if checkout.order_id is not None:
                        # Same session, different payment: keep the first order.
                        await session.rollback()
                        return Error(
                            Errors.session_consumed(checkout.id, checkout.order_id)
                        )
                    self._sessions.consume_in(checkout, order_row.id)

            await session.commit()

        log.info(
            "order_created",
            order_id=order_row.id,
            order_number=order_row.order_number,
            payment_intent_id=draft.payment_intent_id,
            total=str(draft.total),
        )
        return Ok(
            MaterializedOrder(
                order=to_order(order_row),
                items=tuple(to_item(row, currency) for row in item_rows),
            )
        )

    async def _winner(self, payment_intent_id: str) -> Result[MaterializedOrder, CheckoutError]:
        match await self.find_link(payment_intent_id):
            case Ok(PaymentLink(order_id=order_id)):
                log.info(
                    "order_commit_lost_race",
                    payment_intent_id=payment_intent_id,
                    order_id=order_id,
                )
                match await self.load(order_id):
                    case Ok(existing):
                        return Ok(
                            MaterializedOrder(existing.order, existing.items, replayed=True)
                        )
                    case Error(e):
                        return Error(e)
            case Ok(None):
                return Error(Errors.store_unavailable("payment link vanished after conflict"))
            case Error(e):
                return Error(e)

    async def mark_stock_committed(self, order_id: str) -> datetime:
        async with self._session_factory() as session:
            row = await session.get(OrderTable, order_id)
            if row is None:
                raise KeyError(order_id)
            committed_at = self._clock()
            row.stock_committed_at = committed_at
            await session.commit()
            return committed_at


__all__ = (
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "PaymentLink",
    "OrderLedger",
    "to_order",
    "to_item",
)
