"""Shared test helpers."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import update

from storefront._errors import CheckoutError
from storefront._types import Error, Ok, Result
from storefront.catalog import ProductSeed, VariantSeed
from storefront.db import VariantTable
from storefront.orders import Order, OrderItem
from storefront.pipeline import Storefront

CATALOG = (
    ProductSeed(
        "prod-tee",
        "Tee",
        Decimal("10.00"),
        [VariantSeed("var-tee-m", 10, "M"), VariantSeed("var-tee-l", 1, "L")],
    ),
    ProductSeed("prod-mug", "Mug", Decimal("4.50"), [VariantSeed("var-mug", 3)]),
    ProductSeed("prod-cap", "Cap", Decimal("12.00"), [VariantSeed("var-cap", 0)]),
    ProductSeed("prod-lamp", "Lamp", Decimal("80.00"), [VariantSeed("var-lamp", 20)]),
)


def ok[T](result: Result[T, CheckoutError]) -> T:
    match result:
        case Ok(value):
            return value
        case Error(e):
            pytest.fail(f"expected Ok, got {e.code}: {e.message}")


def err[T](result: Result[T, CheckoutError]) -> CheckoutError:
    match result:
        case Ok(value):
            pytest.fail(f"expected Error, got Ok({value!r})")
        case Error(e):
            return e


class FrozenClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


class RecordingSender:
    def __init__(self) -> None:
        self.sent: list[tuple[Order, tuple[OrderItem, ...]]] = []
        self.fail = False

    async def send_order_confirmation(self, order: Order, items: Sequence[OrderItem]) -> None:
        if self.fail:
            raise RuntimeError("mail relay down")
        self.sent.append((order, tuple(items)))


async def set_stock(storefront: Storefront, variant_id: str, quantity: int) -> None:
    """Out-of-band stock change, as another process would make it."""
    async with storefront.session_factory() as session:
        await session.execute(
            update(VariantTable).where(VariantTable.id == variant_id).values(quantity=quantity)
        )
        await session.commit()


async def set_price(storefront: Storefront, variant_id: str, price_minor: int) -> None:
    async with storefront.session_factory() as session:
        await session.execute(
            update(VariantTable)
            .where(VariantTable.id == variant_id)
            .values(price_minor=price_minor)
        )
        await session.commit()
