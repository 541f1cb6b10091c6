"""Tests for checkout sessions: snapshot, pricing, TTL and lifecycle."""

from __future__ import annotations

from decimal import Decimal

import pytest

from storefront._errors import CheckoutErrorKind
from storefront._types import OwnerKey
from storefront._money import to_minor_units
from storefront.checkout import InvalidTransition, SessionStatus, can_transition, transition
from storefront.db import CheckoutSessionTable
from storefront.pipeline import Storefront
from tests._support import FrozenClock, err, ok, set_price


class TestCreateSession:
    async def test_happy_path_totals(self, storefront: Storefront, alice: OwnerKey) -> None:
        ok(await storefront.carts.add_line(alice, "var-tee-m", 2))

        session = ok(await storefront.sessions.create_session(alice))

        assert session.status == SessionStatus.CREATED
        assert (session.subtotal, session.tax, session.shipping, session.total) == (
            Decimal("20.00"),
            Decimal("1.60"),
            Decimal("10.00"),
            Decimal("31.60"),
        )
        assert session.items[0].unit_price == Decimal("10.00")
        assert session.currency == "USD"

    async def test_currency_is_the_store_currency(
        self, storefront: Storefront, alice: OwnerKey
    ) -> None:
        """Amounts are stored in the minor units of the currency prices are in."""
        ok(await storefront.carts.add_line(alice, "var-tee-m", 2))

        session = ok(await storefront.sessions.create_session(alice, destination_country="JP"))

        assert session.currency == storefront.settings.currency
        assert to_minor_units(session.total, session.currency) == 3160
        with pytest.raises(TypeError):
            await storefront.sessions.create_session(alice, currency="JPY")  # type: ignore[call-arg]

    async def test_empty_cart(self, storefront: Storefront, alice: OwnerKey) -> None:
        e = err(await storefront.sessions.create_session(alice))
        assert e.kind == CheckoutErrorKind.EMPTY_CART

    async def test_sold_out_line(self, storefront: Storefront, alice: OwnerKey) -> None:
        ok(await storefront.carts.add_line(alice, "var-tee-m", 1))
        line = ok(await storefront.carts.add_line(alice, "var-cap", 1))

        e = err(await storefront.sessions.create_session(alice))

        assert e.kind == CheckoutErrorKind.OUT_OF_STOCK
        assert e.details["lines"] == [
            {"line_id": line.id, "variant_id": "var-cap", "requested": 1, "available": 0}
        ]

    async def test_discount_code(self, storefront: Storefront, alice: OwnerKey) -> None:
        ok(await storefront.carts.add_line(alice, "var-lamp", 1))

        session = ok(await storefront.sessions.create_session(alice, discount_code="welcome10"))

        assert session.discount == Decimal("8.00")
        assert session.shipping == Decimal("0.00")
        assert session.total == Decimal("78.40")
        assert session.discount_code == "WELCOME10"

    async def test_snapshot_ignores_later_price_change(
        self, storefront: Storefront, alice: OwnerKey
    ) -> None:
        ok(await storefront.carts.add_line(alice, "var-tee-m", 2))
        created = ok(await storefront.sessions.create_session(alice))

        await set_price(storefront, "var-tee-m", 1500)
        session = ok(await storefront.sessions.get(created.id, alice))

        assert session.total == Decimal("31.60")


class TestLifecycle:
    async def test_expires_after_ttl(
        self, storefront: Storefront, alice: OwnerKey, clock: FrozenClock
    ) -> None:
        """30 minute TTL: still open at 29, expired at 31."""
        ok(await storefront.carts.add_line(alice, "var-tee-m", 1))
        created = ok(await storefront.sessions.create_session(alice))

        clock.advance(minutes=29)
        assert ok(await storefront.sessions.get(created.id, alice)).status == (
            SessionStatus.CREATED
        )

        clock.advance(minutes=2)
        assert ok(await storefront.sessions.get(created.id, alice)).status == (
            SessionStatus.EXPIRED
        )

    async def test_foreign_session_is_not_found(
        self, storefront: Storefront, alice: OwnerKey, bob: OwnerKey
    ) -> None:
        ok(await storefront.carts.add_line(alice, "var-tee-m", 1))
        created = ok(await storefront.sessions.create_session(alice))

        e = err(await storefront.sessions.get(created.id, bob))
        assert e.kind == CheckoutErrorKind.SESSION_NOT_FOUND

    async def test_abandon_is_terminal(self, storefront: Storefront, alice: OwnerKey) -> None:
        ok(await storefront.carts.add_line(alice, "var-tee-m", 1))
        created = ok(await storefront.sessions.create_session(alice))

        abandoned = ok(await storefront.sessions.abandon(created.id, alice))
        again = ok(await storefront.sessions.abandon(created.id, alice))

        assert abandoned.status == SessionStatus.ABANDONED
        assert again.status == SessionStatus.ABANDONED
        e = err(await storefront.sessions.mark_validated(created.id))
        assert e.kind == CheckoutErrorKind.SESSION_EXPIRED

    def test_transitions_are_one_way(self) -> None:
        assert can_transition(SessionStatus.CREATED, SessionStatus.VALIDATED)
        assert can_transition(SessionStatus.VALIDATED, SessionStatus.CONSUMED)
        assert not can_transition(SessionStatus.VALIDATED, SessionStatus.CREATED)
        assert not can_transition(SessionStatus.CONSUMED, SessionStatus.VALIDATED)
        assert not can_transition(SessionStatus.EXPIRED, SessionStatus.CONSUMED)

    def test_closed_row_refuses_to_move(self) -> None:
        row = CheckoutSessionTable(id="cs-1", status=SessionStatus.CONSUMED.value)

        with pytest.raises(InvalidTransition):
            transition(row, SessionStatus.VALIDATED)
        assert row.status == "consumed"
