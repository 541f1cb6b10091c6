"""Tests for the payment adapter, tracking records and prepare_payment."""

from __future__ import annotations

from decimal import Decimal

import pytest

from storefront._errors import CheckoutErrorKind
from storefront._types import OwnerKey
from storefront.payments import (
    META_OWNER_ID,
    META_SESSION,
    IntentStatus,
    MemoryProcessor,
    PaymentAdapter,
    PaymentRecordStatus,
)
from storefront.pipeline import Storefront
from tests._support import err, ok, set_price, set_stock


class TestAdapter:
    @pytest.mark.parametrize("amount", [0, -100, 31.6, True])
    async def test_invalid_amount(self, amount: object) -> None:
        processor = MemoryProcessor()
        adapter = PaymentAdapter(processor)

        e = err(await adapter.create_intent(amount, "USD"))  # type: ignore[arg-type]

        assert e.kind == CheckoutErrorKind.INVALID_AMOUNT
        assert processor.call_count == 0

    async def test_create_and_retrieve(self) -> None:
        adapter = PaymentAdapter(MemoryProcessor())

        intent = ok(await adapter.create_intent(3160, "usd", {"k": "v"}))
        fetched = ok(await adapter.retrieve_intent(intent.id))

        assert fetched.amount == 3160
        assert fetched.currency == "USD"
        assert fetched.metadata == {"k": "v"}
        assert fetched.client_secret

    async def test_outage_is_retryable(self) -> None:
        adapter = PaymentAdapter(MemoryProcessor(outage=True))

        e = err(await adapter.create_intent(3160, "USD"))

        assert e.kind == CheckoutErrorKind.PAYMENT_PROVIDER_UNAVAILABLE
        assert e.retryable

    async def test_timeout_is_provider_unavailable(self) -> None:
        adapter = PaymentAdapter(MemoryProcessor(latency=1.0), timeout_seconds=0.01)

        e = err(await adapter.retrieve_intent("pi_slow"))

        assert e.kind == CheckoutErrorKind.PAYMENT_PROVIDER_UNAVAILABLE

    async def test_unknown_intent(self) -> None:
        e = err(await PaymentAdapter(MemoryProcessor()).retrieve_intent("pi_missing"))
        assert e.kind == CheckoutErrorKind.NOT_FOUND


class TestPreparePayment:
    async def test_intent_for_session_total(
        self, storefront: Storefront, processor: MemoryProcessor, alice: OwnerKey
    ) -> None:
        ok(await storefront.carts.add_line(alice, "var-tee-m", 2))
        session = ok(await storefront.sessions.create_session(alice))

        intent = ok(await storefront.prepare_payment(session.id, alice, email="a@example.com"))

        assert intent.amount == 3160
        assert intent.status == IntentStatus.REQUIRES_ACTION
        assert processor.intents[intent.id].metadata[META_SESSION] == session.id
        assert processor.intents[intent.id].metadata[META_OWNER_ID] == "alice"
        record = await storefront.payment_records.get(intent.id)
        assert record is not None
        assert record.status == PaymentRecordStatus.PENDING
        assert record.checkout_session_id == session.id

    async def test_stock_conflict_blocks_payment(
        self, storefront: Storefront, processor: MemoryProcessor, alice: OwnerKey
    ) -> None:
        ok(await storefront.carts.add_line(alice, "var-tee-m", 3))
        session = ok(await storefront.sessions.create_session(alice))
        await set_stock(storefront, "var-tee-m", 1)

        e = err(await storefront.prepare_payment(session.id, alice))

        assert e.kind == CheckoutErrorKind.OUT_OF_STOCK
        assert e.details["lines"][0]["requested"] == 3
        assert e.details["lines"][0]["available"] == 1
        assert processor.call_count == 0

    async def test_price_drift_is_stale_quote(
        self, storefront: Storefront, alice: OwnerKey
    ) -> None:
        ok(await storefront.carts.add_line(alice, "var-tee-m", 1))
        session = ok(await storefront.sessions.create_session(alice))
        await set_price(storefront, "var-tee-m", 900)

        e = err(await storefront.prepare_payment(session.id, alice))

        assert e.kind == CheckoutErrorKind.STALE_QUOTE
        assert e.details["lines"][0]["live_price"] == "9.00"

    async def test_provider_outage(
        self, storefront: Storefront, processor: MemoryProcessor, alice: OwnerKey
    ) -> None:
        ok(await storefront.carts.add_line(alice, "var-tee-m", 1))
        session = ok(await storefront.sessions.create_session(alice))
        processor.outage = True

        e = err(await storefront.prepare_payment(session.id, alice))

        assert e.kind == CheckoutErrorKind.PAYMENT_PROVIDER_UNAVAILABLE
        assert session.total == Decimal("20.80")
