"""Tests for order materialization: idempotency, commit, post-commit, recovery."""

from __future__ import annotations

import asyncio
import re
from collections.abc import Iterator
from datetime import datetime
from decimal import Decimal
from typing import Any

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from storefront._errors import CheckoutErrorKind
from storefront._money import to_minor_units
from storefront._types import OwnerKey
from storefront.checkout import CheckoutSession, SessionStatus
from storefront.db import OrderTable
from storefront.inventory import MovementReason
from storefront.orders import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    FromCart,
    FromSession,
    OrderLedger,
    OrderMaterializer,
)
from storefront.payments import IntentStatus, MemoryProcessor, PaymentIntent
from storefront.pipeline import Storefront
from tests._support import FrozenClock, RecordingSender, err, ok


async def paid_session(
    storefront: Storefront,
    processor: MemoryProcessor,
    owner: OwnerKey,
    variant_id: str = "var-tee-m",
    quantity: int = 2,
) -> tuple[CheckoutSession, PaymentIntent]:
    ok(await storefront.carts.add_line(owner, variant_id, quantity))
    session = ok(await storefront.sessions.create_session(owner))
    intent = ok(await storefront.prepare_payment(session.id, owner))
    processor.succeed(intent.id)
    return session, intent


async def order_count(storefront: Storefront) -> int:
    async with storefront.session_factory() as session:
        return int(await session.scalar(select(func.count()).select_from(OrderTable)) or 0)


class TestHappyPath:
    async def test_paid_session_becomes_order(
        self,
        storefront: Storefront,
        processor: MemoryProcessor,
        sender: RecordingSender,
        clock: FrozenClock,
        alice: OwnerKey,
    ) -> None:
        session, intent = await paid_session(storefront, processor, alice)

        result = ok(
            await storefront.orders.materialize(
                intent.id, FromSession(session.id), alice, email="alice@example.com"
            )
        )
        order = result.order

        assert not result.replayed
        assert order.total == Decimal("31.60")
        assert (order.subtotal, order.tax, order.shipping) == (
            Decimal("20.00"),
            Decimal("1.60"),
            Decimal("10.00"),
        )
        assert re.fullmatch(r"SF-240309-\d{5}", order.order_number)
        assert order.payment_status.value == "paid"
        assert order.fulfillment_status.value == "unfulfilled"
        assert order.stock_committed_at == clock.now
        assert [(i.name_snapshot, i.quantity) for i in result.items] == [("Tee (M)", 2)]

        assert ok(await storefront.inventory.get_available("var-tee-m")) == 8
        assert await storefront.carts.lines(alice) == []
        consumed = ok(await storefront.sessions.get(session.id, alice))
        assert consumed.status == SessionStatus.CONSUMED
        assert consumed.order_id == order.id

        await storefront.notifications.drain()
        assert [sent.id for sent, _ in sender.sent] == [order.id]

    async def test_order_from_live_cart(
        self, storefront: Storefront, processor: MemoryProcessor, alice: OwnerKey
    ) -> None:
        ok(await storefront.carts.add_line(alice, "var-mug", 2))
        intent = processor.add_intent(1972)

        result = ok(await storefront.orders.materialize(intent.id, FromCart(), alice))

        assert result.order.subtotal == Decimal("9.00")
        assert result.order.total == Decimal("19.72")
        assert result.order.checkout_session_id is None

    async def test_owner_is_required(
        self, storefront: Storefront, processor: MemoryProcessor
    ) -> None:
        with pytest.raises(TypeError):
            await storefront.orders.materialize("pi_x", FromCart())  # type: ignore[call-arg]
        assert processor.call_count == 0


class TestIdempotency:
    async def test_second_call_returns_same_order(
        self,
        storefront: Storefront,
        processor: MemoryProcessor,
        sender: RecordingSender,
        alice: OwnerKey,
    ) -> None:
        session, intent = await paid_session(storefront, processor, alice)
        first = ok(await storefront.orders.materialize(intent.id, FromSession(session.id), alice))
        calls = processor.call_count

        second = ok(await storefront.orders.materialize(intent.id, FromSession(session.id), alice))

        assert second.replayed
        assert second.order.id == first.order.id
        assert processor.call_count == calls
        assert ok(await storefront.inventory.get_available("var-tee-m")) == 8
        await storefront.notifications.drain()
        assert len(sender.sent) == 1

    async def test_concurrent_duplicates_make_one_order(
        self, storefront: Storefront, processor: MemoryProcessor, alice: OwnerKey
    ) -> None:
        session, intent = await paid_session(storefront, processor, alice)

        results = await asyncio.gather(
            storefront.orders.materialize(intent.id, FromSession(session.id), alice),
            storefront.orders.materialize(intent.id, FromSession(session.id), alice),
        )
        orders = [ok(r) for r in results]

        assert orders[0].order.id == orders[1].order.id
        assert sorted(o.replayed for o in orders) == [False, True]
        assert await order_count(storefront) == 1
        assert ok(await storefront.inventory.get_available("var-tee-m")) == 8

    async def test_second_payment_for_consumed_session(
        self, storefront: Storefront, processor: MemoryProcessor, alice: OwnerKey
    ) -> None:
        session, intent = await paid_session(storefront, processor, alice)
        first = ok(await storefront.orders.materialize(intent.id, FromSession(session.id), alice))
        other = processor.add_intent(3160)

        e = err(await storefront.orders.materialize(other.id, FromSession(session.id), alice))

        assert e.kind == CheckoutErrorKind.SESSION_CONSUMED
        assert e.details["order_id"] == first.order.id
        assert await order_count(storefront) == 1


class TestPreconditions:
    async def test_unpaid_intent(
        self, storefront: Storefront, processor: MemoryProcessor, alice: OwnerKey
    ) -> None:
        ok(await storefront.carts.add_line(alice, "var-tee-m", 1))
        session = ok(await storefront.sessions.create_session(alice))
        intent = ok(await storefront.prepare_payment(session.id, alice))

        e = err(await storefront.orders.materialize(intent.id, FromSession(session.id), alice))

        assert e.kind == CheckoutErrorKind.PAYMENT_NOT_COMPLETE
        assert await order_count(storefront) == 0

    async def test_failed_intent(
        self, storefront: Storefront, processor: MemoryProcessor, alice: OwnerKey
    ) -> None:
        ok(await storefront.carts.add_line(alice, "var-tee-m", 1))
        intent = processor.add_intent(2080, status=IntentStatus.FAILED)

        e = err(await storefront.orders.materialize(intent.id, FromCart(), alice))
        assert e.kind == CheckoutErrorKind.PAYMENT_NOT_COMPLETE

    async def test_provider_outage(
        self, storefront: Storefront, processor: MemoryProcessor, alice: OwnerKey
    ) -> None:
        session, intent = await paid_session(storefront, processor, alice)
        processor.outage = True

        e = err(await storefront.orders.materialize(intent.id, FromSession(session.id), alice))

        assert e.kind == CheckoutErrorKind.PAYMENT_PROVIDER_UNAVAILABLE
        assert e.retryable
        assert await order_count(storefront) == 0

    async def test_foreign_session(
        self,
        storefront: Storefront,
        processor: MemoryProcessor,
        alice: OwnerKey,
        bob: OwnerKey,
    ) -> None:
        session, intent = await paid_session(storefront, processor, alice)

        e = err(await storefront.orders.materialize(intent.id, FromSession(session.id), bob))
        assert e.kind == CheckoutErrorKind.SESSION_NOT_FOUND


class TestPaymentWins:
    async def test_oversold_line_clamps_stock(
        self, storefront: Storefront, processor: MemoryProcessor, alice: OwnerKey
    ) -> None:
        """3 ordered, 1 in stock: the order keeps 3, stock floors at 0."""
        ok(await storefront.carts.add_line(alice, "var-tee-l", 3))
        session = ok(await storefront.sessions.create_session(alice))
        intent = processor.add_intent(to_minor_units(session.total))

        result = ok(await storefront.orders.materialize(intent.id, FromSession(session.id), alice))

        assert result.items[0].quantity == 3
        assert ok(await storefront.inventory.get_available("var-tee-l")) == 0
        movements = await storefront.inventory.movements("var-tee-l")
        assert [(m.delta_quantity, m.reason, m.reference_id) for m in movements] == [
            (-1, MovementReason.SALE, result.order.id)
        ]
        assert ok(await storefront.inventory.reconcile("var-tee-l")).consistent

    async def test_expired_session_still_becomes_order(
        self,
        storefront: Storefront,
        processor: MemoryProcessor,
        clock: FrozenClock,
        alice: OwnerKey,
    ) -> None:
        session, intent = await paid_session(storefront, processor, alice)
        clock.advance(minutes=31)

        result = ok(await storefront.orders.materialize(intent.id, FromSession(session.id), alice))

        closed = ok(await storefront.sessions.get(session.id, alice))
        assert closed.status == SessionStatus.EXPIRED
        assert closed.order_id == result.order.id


class TestOrderNumbers:
    def _materializer(self, storefront: Storefront, ledger: OrderLedger) -> OrderMaterializer:
        return OrderMaterializer(
            ledger,
            storefront.payments,
            storefront.sessions,
            storefront.carts,
            storefront.catalog,
            storefront.pricing,
            storefront.inventory,
            storefront.notifications,
        )

    async def test_collision_retries_with_new_number(
        self, storefront: Storefront, processor: MemoryProcessor, alice: OwnerKey
    ) -> None:
        numbers: Iterator[str] = iter(["SF-240309-00001", "SF-240309-00001", "SF-240309-00002"])
        ledger = OrderLedger(
            storefront.session_factory, storefront.sessions, numbers=lambda _: next(numbers)
        )
        orders = self._materializer(storefront, ledger)

        ok(await storefront.carts.add_line(alice, "var-mug", 1))
        first = ok(await orders.materialize(processor.add_intent(1486).id, FromCart(), alice))
        ok(await storefront.carts.add_line(alice, "var-mug", 1))
        second = ok(await orders.materialize(processor.add_intent(1486).id, FromCart(), alice))

        assert first.order.order_number == "SF-240309-00001"
        assert second.order.order_number == "SF-240309-00002"

    async def test_exhaustion(
        self, storefront: Storefront, processor: MemoryProcessor, alice: OwnerKey
    ) -> None:
        ledger = OrderLedger(
            storefront.session_factory,
            storefront.sessions,
            numbers=lambda _: "SF-240309-00001",
            attempts=3,
        )
        orders = self._materializer(storefront, ledger)

        ok(await storefront.carts.add_line(alice, "var-mug", 1))
        ok(await orders.materialize(processor.add_intent(1486).id, FromCart(), alice))
        ok(await storefront.carts.add_line(alice, "var-mug", 1))
        second = processor.add_intent(1486)

        e = err(await orders.materialize(second.id, FromCart(), alice))

        assert e.kind == CheckoutErrorKind.ORDER_NUMBER_EXHAUSTED
        assert e.details["attempts"] == 3
        assert await order_count(storefront) == 1
        assert ok(await ledger.find_link(second.id)) is None


class TestPostCommit:
    async def test_recovery_finishes_stock_step(
        self,
        storefront: Storefront,
        processor: MemoryProcessor,
        alice: OwnerKey,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        async def broken(*args: Any, **kwargs: Any) -> Any:
            raise OperationalError("UPDATE product_variants", {}, Exception("disk I/O error"))

        session, intent = await paid_session(storefront, processor, alice)
        monkeypatch.setattr(storefront.inventory, "decrement", broken)

        result = ok(await storefront.orders.materialize(intent.id, FromSession(session.id), alice))

        assert result.order.stock_committed_at is None
        assert await storefront.orders.ledger.pending_stock() == [result.order.id]
        assert ok(await storefront.inventory.get_available("var-tee-m")) == 10

        monkeypatch.undo()
        recovered = await storefront.orders.recover_pending()

        assert recovered == [result.order.id]
        assert ok(await storefront.inventory.get_available("var-tee-m")) == 8
        assert await storefront.orders.ledger.pending_stock() == []
        again = ok(await storefront.orders.recover(result.order.id))
        assert isinstance(again.order.stock_committed_at, datetime)
        assert ok(await storefront.inventory.get_available("var-tee-m")) == 8

    async def test_notification_failure_is_not_an_order_failure(
        self,
        storefront: Storefront,
        processor: MemoryProcessor,
        sender: RecordingSender,
        alice: OwnerKey,
    ) -> None:
        sender.fail = True
        session, intent = await paid_session(storefront, processor, alice)

        result = ok(await storefront.orders.materialize(intent.id, FromSession(session.id), alice))
        await storefront.notifications.drain()

        assert not result.replayed
        assert sender.sent == []

    async def test_get_order_checks_owner(
        self,
        storefront: Storefront,
        processor: MemoryProcessor,
        alice: OwnerKey,
        bob: OwnerKey,
    ) -> None:
        session, intent = await paid_session(storefront, processor, alice)
        result = ok(await storefront.orders.materialize(intent.id, FromSession(session.id), alice))

        assert ok(await storefront.orders.get_order(result.order.id, alice)).order.id == (
            result.order.id
        )
        e = err(await storefront.orders.get_order(result.order.id, bob))
        assert e.kind == CheckoutErrorKind.NOT_FOUND


class TestHistory:
    async def place(
        self,
        storefront: Storefront,
        processor: MemoryProcessor,
        clock: FrozenClock,
        owner: OwnerKey,
    ) -> str:
        session, intent = await paid_session(storefront, processor, owner, "var-lamp", 1)
        result = ok(await storefront.orders.materialize(intent.id, FromSession(session.id), owner))
        clock.advance(minutes=1)
        return result.order.id

    async def test_newest_first_in_pages(
        self,
        storefront: Storefront,
        processor: MemoryProcessor,
        clock: FrozenClock,
        alice: OwnerKey,
        bob: OwnerKey,
    ) -> None:
        first = await self.place(storefront, processor, clock, alice)
        bob_order = await self.place(storefront, processor, clock, bob)
        second = await self.place(storefront, processor, clock, alice)
        third = await self.place(storefront, processor, clock, alice)

        page = ok(await storefront.orders.list_orders(alice, page=1, limit=2))
        assert [o.id for o in page.orders] == [third, second]
        assert (page.total, page.total_pages) == (3, 2)

        page = ok(await storefront.orders.list_orders(alice, page=2, limit=2))
        assert [o.id for o in page.orders] == [first]

        page = ok(await storefront.orders.list_orders(bob))
        assert [o.id for o in page.orders] == [bob_order]
        assert page.orders[0].owner == bob

    async def test_paging_is_clamped(self, storefront: Storefront, alice: OwnerKey) -> None:
        page = ok(await storefront.orders.list_orders(alice, page=0, limit=500))
        assert (page.page, page.limit) == (1, MAX_PAGE_SIZE)

        page = ok(await storefront.orders.list_orders(alice, page=-3, limit=0))
        assert (page.page, page.limit) == (1, 1)

    async def test_no_orders(self, storefront: Storefront, guest: OwnerKey) -> None:
        page = ok(await storefront.orders.list_orders(guest))

        assert page.orders == ()
        assert (page.total, page.total_pages, page.limit) == (0, 0, DEFAULT_PAGE_SIZE)

    async def test_page_past_the_end(
        self,
        storefront: Storefront,
        processor: MemoryProcessor,
        clock: FrozenClock,
        alice: OwnerKey,
    ) -> None:
        await self.place(storefront, processor, clock, alice)

        page = ok(await storefront.orders.list_orders(alice, page=4))

        assert page.orders == ()
        assert page.total == 1
