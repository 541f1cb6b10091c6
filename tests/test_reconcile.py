"""Tests for pre-payment revalidation."""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal

import pytest

from storefront._errors import CheckoutErrorKind
from storefront._types import OwnerKey
from storefront.checkout import SessionStatus
from storefront.catalog import VariantInfo
from storefront.pipeline import Storefront
from storefront.reconcile import ConflictKind
from tests._support import FrozenClock, err, ok, set_price, set_stock


class TestRevalidateSession:
    async def test_clean_session_becomes_validated(
        self, storefront: Storefront, alice: OwnerKey
    ) -> None:
        ok(await storefront.carts.add_line(alice, "var-tee-m", 2))
        session = ok(await storefront.sessions.create_session(alice))

        report = ok(await storefront.reconciliation.revalidate(session))

        assert report.can_proceed
        assert not report.requires_requote
        assert report.recomputed.total == Decimal("31.60")
        validated = ok(await storefront.sessions.get(session.id, alice))
        assert validated.status == SessionStatus.VALIDATED

    async def test_stock_conflict(self, storefront: Storefront, alice: OwnerKey) -> None:
        """Requested 3, only 1 left after the quote."""
        ok(await storefront.carts.add_line(alice, "var-tee-m", 3))
        session = ok(await storefront.sessions.create_session(alice))
        await set_stock(storefront, "var-tee-m", 1)

        report = ok(await storefront.reconciliation.revalidate_session(session.id, alice))

        assert not report.can_proceed
        [conflict] = report.stock_conflicts
        assert conflict.kind == ConflictKind.QUANTITY_UNAVAILABLE
        assert (conflict.requested, conflict.available) == (3, 1)
        assert conflict.to_dict()["type"] == "quantity_unavailable"
        unchanged = ok(await storefront.sessions.get(session.id, alice))
        assert unchanged.status == SessionStatus.CREATED

    async def test_price_drift_requires_requote(
        self, storefront: Storefront, alice: OwnerKey
    ) -> None:
        ok(await storefront.carts.add_line(alice, "var-tee-m", 2))
        session = ok(await storefront.sessions.create_session(alice))
        await set_price(storefront, "var-tee-m", 1200)

        report = ok(await storefront.reconciliation.revalidate_session(session.id, alice))

        assert report.can_proceed
        assert report.requires_requote
        [drift] = report.price_conflicts
        assert (drift.snapshot_price, drift.live_price) == (Decimal("10.00"), Decimal("12.00"))
        assert report.recomputed.subtotal == Decimal("24.00")

    async def test_expired_session(
        self, storefront: Storefront, alice: OwnerKey, clock: FrozenClock
    ) -> None:
        ok(await storefront.carts.add_line(alice, "var-tee-m", 1))
        session = ok(await storefront.sessions.create_session(alice))
        clock.advance(minutes=31)

        e = err(await storefront.reconciliation.revalidate_session(session.id, alice))

        assert e.kind == CheckoutErrorKind.SESSION_EXPIRED
        assert e.details["can_proceed"] is False
        expired = ok(await storefront.sessions.get(session.id, alice))
        assert expired.status == SessionStatus.EXPIRED


class TestRevalidateCart:
    async def test_cart_stock_check(self, storefront: Storefront, alice: OwnerKey) -> None:
        ok(await storefront.carts.add_line(alice, "var-mug", 5))

        report = ok(await storefront.reconciliation.revalidate(alice))

        assert report.session_id is None
        assert [c.available for c in report.stock_conflicts] == [3]

    async def test_empty_cart(self, storefront: Storefront, alice: OwnerKey) -> None:
        e = err(await storefront.reconciliation.revalidate_cart(alice))
        assert e.kind == CheckoutErrorKind.EMPTY_CART


class TestClosedWhileRevalidating:
    """The session closes between the status check and the validated update."""

    async def test_consumed_meanwhile(
        self, storefront: Storefront, alice: OwnerKey, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        ok(await storefront.carts.add_line(alice, "var-tee-m", 2))
        session = ok(await storefront.sessions.create_session(alice))
        live = storefront.catalog.get_variants

        async def consumed_first(variant_ids: Iterable[str]) -> dict[str, VariantInfo]:
            await storefront.sessions.mark_consumed(session.id, "order-from-webhook")
            return await live(variant_ids)

        monkeypatch.setattr(storefront.catalog, "get_variants", consumed_first)

        e = err(await storefront.reconciliation.revalidate_session(session.id, alice))

        assert e.kind == CheckoutErrorKind.SESSION_CONSUMED
        assert e.details["order_id"] == "order-from-webhook"
        closed = ok(await storefront.sessions.get(session.id, alice))
        assert closed.status == SessionStatus.CONSUMED

    async def test_cancelled_meanwhile(
        self, storefront: Storefront, alice: OwnerKey, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        ok(await storefront.carts.add_line(alice, "var-tee-m", 2))
        session = ok(await storefront.sessions.create_session(alice))
        live = storefront.catalog.get_variants

        async def cancelled_first(variant_ids: Iterable[str]) -> dict[str, VariantInfo]:
            ok(await storefront.sessions.abandon(session.id, alice))
            return await live(variant_ids)

        monkeypatch.setattr(storefront.catalog, "get_variants", cancelled_first)

        e = err(await storefront.reconciliation.revalidate_session(session.id, alice))

        assert e.kind == CheckoutErrorKind.SESSION_EXPIRED
        assert e.details["can_proceed"] is False

    async def test_ttl_elapsed_meanwhile(
        self,
        storefront: Storefront,
        clock: FrozenClock,
        alice: OwnerKey,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        ok(await storefront.carts.add_line(alice, "var-tee-m", 2))
        session = ok(await storefront.sessions.create_session(alice))
        live = storefront.catalog.get_variants

        async def slow(variant_ids: Iterable[str]) -> dict[str, VariantInfo]:
            clock.advance(minutes=31)
            return await live(variant_ids)

        monkeypatch.setattr(storefront.catalog, "get_variants", slow)

        e = err(await storefront.reconciliation.revalidate_session(session.id, alice))

        assert e.kind == CheckoutErrorKind.SESSION_EXPIRED
        expired = ok(await storefront.sessions.get(session.id, alice))
        assert expired.status == SessionStatus.EXPIRED
