"""Tests for the owner-scoped cart store."""

from __future__ import annotations

from decimal import Decimal

from storefront._errors import CheckoutErrorKind
from storefront._types import OwnerKey
from storefront.cart import MergeStrategy
from storefront.pipeline import Storefront
from tests._support import err, ok, set_stock


class TestAddLine:
    async def test_add_merges_into_existing_line(
        self, storefront: Storefront, alice: OwnerKey
    ) -> None:
        """2 + 3 of the same variant → one line of 5."""
        first = ok(await storefront.carts.add_line(alice, "var-tee-m", 2))
        second = ok(await storefront.carts.add_line(alice, "var-tee-m", 3))

        assert second.id == first.id
        assert second.quantity == 5
        assert len(await storefront.carts.lines(alice)) == 1

    async def test_unknown_variant_is_not_found(
        self, storefront: Storefront, alice: OwnerKey
    ) -> None:
        e = err(await storefront.carts.add_line(alice, "var-ghost", 1))
        assert e.kind == CheckoutErrorKind.NOT_FOUND

    async def test_negative_total_removes_line(
        self, storefront: Storefront, alice: OwnerKey
    ) -> None:
        ok(await storefront.carts.add_line(alice, "var-mug", 2))
        line = ok(await storefront.carts.add_line(alice, "var-mug", -5))

        assert line.removed
        assert await storefront.carts.lines(alice) == []

    async def test_add_does_not_reserve_stock(
        self, storefront: Storefront, alice: OwnerKey
    ) -> None:
        ok(await storefront.carts.add_line(alice, "var-mug", 2))
        assert ok(await storefront.inventory.get_available("var-mug")) == 3


class TestOwnership:
    async def test_foreign_line_is_not_found(
        self, storefront: Storefront, alice: OwnerKey, bob: OwnerKey
    ) -> None:
        line = ok(await storefront.carts.add_line(alice, "var-tee-m", 1))

        assert err(await storefront.carts.set_quantity(bob, line.id, 4)).kind == (
            CheckoutErrorKind.NOT_FOUND
        )
        assert err(await storefront.carts.remove_line(bob, line.id)).kind == (
            CheckoutErrorKind.NOT_FOUND
        )
        assert (await storefront.carts.lines(alice))[0].quantity == 1

    async def test_set_quantity_zero_deletes(
        self, storefront: Storefront, alice: OwnerKey
    ) -> None:
        line = ok(await storefront.carts.add_line(alice, "var-tee-m", 1))
        changed = ok(await storefront.carts.set_quantity(alice, line.id, 0))

        assert changed.removed
        assert await storefront.carts.count(alice) == 0


class TestCartView:
    async def test_view_uses_live_price_and_quote(
        self, storefront: Storefront, alice: OwnerKey
    ) -> None:
        ok(await storefront.carts.add_line(alice, "var-tee-m", 2))
        cart = await storefront.carts.get_cart(alice)

        assert cart.item_count == 2
        assert cart.subtotal == Decimal("20.00")
        assert cart.tax == Decimal("1.60")
        assert cart.shipping == Decimal("10.00")
        assert cart.total == Decimal("31.60")
        assert cart.lines[0].name == "Tee (M)"

    async def test_stock_flags(self, storefront: Storefront, alice: OwnerKey) -> None:
        """Mug has 3 left (low stock); asking for 4 is out of stock."""
        ok(await storefront.carts.add_line(alice, "var-mug", 4))
        cart = await storefront.carts.get_cart(alice)

        assert cart.has_low_stock
        assert cart.has_out_of_stock
        assert cart.lines[0].available == 3

    async def test_empty_cart_has_zero_totals(
        self, storefront: Storefront, alice: OwnerKey
    ) -> None:
        cart = await storefront.carts.get_cart(alice)
        assert cart.is_empty
        assert cart.total == Decimal("0.00")

    async def test_clear_is_idempotent(self, storefront: Storefront, alice: OwnerKey) -> None:
        ok(await storefront.carts.add_line(alice, "var-tee-m", 1))
        ok(await storefront.carts.add_line(alice, "var-mug", 1))

        assert await storefront.carts.clear(alice) == 2
        assert await storefront.carts.clear(alice) == 0


class TestMerge:
    async def test_merge_sums_quantities(
        self, storefront: Storefront, guest: OwnerKey, alice: OwnerKey
    ) -> None:
        ok(await storefront.carts.add_line(alice, "var-tee-m", 2))
        ok(await storefront.carts.add_line(guest, "var-tee-m", 3))

        report = await storefront.carts.merge(guest, alice, MergeStrategy.MERGE)

        assert report.merged == 1
        assert (await storefront.carts.lines(alice))[0].quantity == 5
        assert await storefront.carts.lines(guest) == []

    async def test_replace_and_keep_existing(
        self, storefront: Storefront, guest: OwnerKey, alice: OwnerKey
    ) -> None:
        ok(await storefront.carts.add_line(alice, "var-tee-m", 2))
        ok(await storefront.carts.add_line(guest, "var-tee-m", 3))
        ok(await storefront.carts.add_line(guest, "var-mug", 1))

        report = await storefront.carts.merge(guest, alice, MergeStrategy.KEEP_EXISTING)

        assert report.skipped == 1
        lines = {line.variant_id: line.quantity for line in await storefront.carts.lines(alice)}
        assert lines == {"var-tee-m": 2, "var-mug": 1}

        other = OwnerKey.guest("guest-second")
        ok(await storefront.carts.add_line(other, "var-tee-m", 7))
        await storefront.carts.merge(other, alice, MergeStrategy.REPLACE)
        lines = {line.variant_id: line.quantity for line in await storefront.carts.lines(alice)}
        assert lines["var-tee-m"] == 7

    async def test_merge_clamps_to_stock(
        self, storefront: Storefront, guest: OwnerKey, alice: OwnerKey
    ) -> None:
        ok(await storefront.carts.add_line(alice, "var-mug", 2))
        ok(await storefront.carts.add_line(guest, "var-mug", 2))
        ok(await storefront.carts.add_line(guest, "var-tee-l", 1))
        await set_stock(storefront, "var-tee-l", 0)

        report = await storefront.carts.merge(guest, alice)

        assert report.clamped == 2
        assert report.skipped == 1
        lines = {line.variant_id: line.quantity for line in await storefront.carts.lines(alice)}
        assert lines == {"var-mug": 3}
