"""
Cart store — persisted cart lines keyed by owner.

Adding never reserves stock; availability is re-read on every view and
again at checkout.
"""

from __future__ import annotations

import uuid
from typing import Any, cast

import structlog
from sqlalchemy import ColumnElement, CursorResult, delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront._errors import CheckoutError, Errors
from storefront._types import Clock, Error, Ok, OwnerKey, OwnerKind, Result, utcnow
from storefront.catalog import Catalog
from storefront.cart._types import (
    CartLine,
    CartLineView,
    CartView,
    MergeReport,
    MergeStrategy,
)
from storefront.db import CartLineTable
from storefront.pricing import PricingPolicy, line_total, subtotal_of

log = structlog.get_logger(__name__)


def _owner_filter(owner: OwnerKey) -> tuple[ColumnElement[bool], ColumnElement[bool]]:
    return (
        CartLineTable.owner_kind == owner.kind.value,
        CartLineTable.owner_id == owner.id,
    )


def _to_line(row: CartLineTable, quantity: int | None = None) -> CartLine:
    return CartLine(
        id=row.id,
        owner=OwnerKey(OwnerKind(row.owner_kind), row.owner_id),
        product_id=row.product_id,
        variant_id=row.variant_id,
        quantity=row.quantity if quantity is None else quantity,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class CartStore:
    """
    Cart lines for users and guests.

    Example:
        store = CartStore(session_factory, catalog, PricingPolicy())
        await store.add_line(OwnerKey.guest("tok"), "var-tee-m", 2)
        view = await store.get_cart(OwnerKey.guest("tok"))
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        catalog: Catalog,
        pricing: PricingPolicy,
        *,
        low_stock_threshold: int = 5,
        clock: Clock = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._catalog = catalog
        self._pricing = pricing
        self._low_stock_threshold = low_stock_threshold
        self._clock = clock

    # ───────────────────────────────────────────────────────────────────────────
    # Writes
    # ───────────────────────────────────────────────────────────────────────────

    async def add_line(
        self, owner: OwnerKey, variant_id: str, quantity: int
    ) -> Result[CartLine, CheckoutError]:
        """
        Add quantity to the owner's line for variant_id, creating it if needed.

        Negative quantities subtract; a result of 0 or less removes the line.
        """
        variant = await self._catalog.get_variant(variant_id)
        if variant is None:
            return Error(Errors.not_found("variant", variant_id))

        try:
            line = await self._add_once(owner, variant.product_id, variant_id, quantity)
        except IntegrityError:
            # A concurrent first add for the same variant won the insert.
            log.debug("cart_line_insert_race", owner=str(owner), variant_id=variant_id)
            line = await self._add_once(owner, variant.product_id, variant_id, quantity)
        return Ok(line)

    async def _add_once(
        self, owner: OwnerKey, product_id: str, variant_id: str, quantity: int
    ) -> CartLine:
        now = self._clock()
        async with self._session_factory() as session:
            row = (
                await session.execute(
                    select(CartLineTable).where(
                        *_owner_filter(owner), CartLineTable.variant_id == variant_id
                    )
                )
            ).scalar_one_or_none()

            if row is None:
                row = CartLineTable(
                    id=str(uuid.uuid4()),
                    owner_kind=owner.kind.value,
                    owner_id=owner.id,
                    product_id=product_id,
                    variant_id=variant_id,
                    quantity=max(quantity, 0),
                    created_at=now,
                    updated_at=now,
                )
                if row.quantity == 0:
                    return _to_line(row)
                session.add(row)
                await session.commit()
                return _to_line(row)

            new_quantity = max(row.quantity + quantity, 0)
            if new_quantity == 0:
                await session.delete(row)
                await session.commit()
                return _to_line(row, quantity=0)

            row.quantity = new_quantity
            row.updated_at = now
            await session.commit()
            return _to_line(row)

    async def set_quantity(
        self, owner: OwnerKey, line_id: str, quantity: int
    ) -> Result[CartLine, CheckoutError]:
        """Set an owned line's quantity; 0 or less removes it."""
        async with self._session_factory() as session:
            row = await self._owned_line(session, owner, line_id)
            if row is None:
                return Error(Errors.not_found("cart line", line_id))

            if quantity <= 0:
                await session.delete(row)
                await session.commit()
                return Ok(_to_line(row, quantity=0))

            row.quantity = quantity
            row.updated_at = self._clock()
            await session.commit()
            return Ok(_to_line(row))

    async def remove_line(
        self, owner: OwnerKey, line_id: str
    ) -> Result[CartLine, CheckoutError]:
        async with self._session_factory() as session:
            row = await self._owned_line(session, owner, line_id)
            if row is None:
                return Error(Errors.not_found("cart line", line_id))
            await session.delete(row)
            await session.commit()
            return Ok(_to_line(row, quantity=0))

    async def clear(self, owner: OwnerKey) -> int:
        """Delete every line of the owner. Returns how many were removed."""
        async with self._session_factory() as session:
            result = await session.execute(delete(CartLineTable).where(*_owner_filter(owner)))
            await session.commit()
            return cast(CursorResult[Any], result).rowcount

    async def merge(
        self,
        guest: OwnerKey,
        user: OwnerKey,
        strategy: MergeStrategy = MergeStrategy.MERGE,
    ) -> MergeReport:
        """
        Fold a guest cart into a user cart, then delete the guest cart.

        Resulting quantities never exceed live stock; a line clamped to zero
        is skipped.
        """
        guest_lines = await self.lines(guest)
        if not guest_lines:
            return MergeReport(merged=0, clamped=0, skipped=0)

        stock = await self._catalog.get_variants(line.variant_id for line in guest_lines)
        merged = clamped = skipped = 0
        now = self._clock()

        async with self._session_factory() as session:
            existing = {
                row.variant_id: row
                for row in (
                    await session.execute(select(CartLineTable).where(*_owner_filter(user)))
                ).scalars()
            }

            for line in guest_lines:
                variant = stock.get(line.variant_id)
                current = existing.get(line.variant_id)

                if variant is None:
                    skipped += 1
                    continue

                if current is not None and strategy == MergeStrategy.KEEP_EXISTING:
                    skipped += 1
                    continue

                if current is not None and strategy == MergeStrategy.MERGE:
                    wanted = current.quantity + line.quantity
                else:
                    wanted = line.quantity

                quantity = min(wanted, max(variant.quantity, 0))
                if quantity < wanted:
                    clamped += 1
                if quantity == 0:
                    skipped += 1
                    continue

                if current is None:
                    session.add(
                        CartLineTable(
                            id=str(uuid.uuid4()),
                            owner_kind=user.kind.value,
                            owner_id=user.id,
                            product_id=line.product_id,
                            variant_id=line.variant_id,
                            quantity=quantity,
                            created_at=line.created_at,
                            updated_at=now,
                        )
                    )
                else:
                    current.quantity = quantity
                    current.updated_at = now
                merged += 1

            await session.execute(delete(CartLineTable).where(*_owner_filter(guest)))
            await session.commit()

        log.info(
            "cart_merged",
            guest=str(guest),
            user=str(user),
            strategy=strategy.value,
            merged=merged,
            clamped=clamped,
            skipped=skipped,
        )
        return MergeReport(merged=merged, clamped=clamped, skipped=skipped)

    # ───────────────────────────────────────────────────────────────────────────
    # Reads
    # ───────────────────────────────────────────────────────────────────────────

    async def lines(self, owner: OwnerKey) -> list[CartLine]:
        async with self._session_factory() as session:
            rows = await session.execute(
                select(CartLineTable)
                .where(*_owner_filter(owner))
                .order_by(CartLineTable.created_at, CartLineTable.id)
            )
            return [_to_line(row) for row in rows.scalars()]

    async def count(self, owner: OwnerKey) -> int:
        """Total quantity across the owner's lines."""
        async with self._session_factory() as session:
            total = await session.scalar(
                select(func.coalesce(func.sum(CartLineTable.quantity), 0)).where(
                    *_owner_filter(owner)
                )
            )
            return int(total or 0)

    async def get_cart(self, owner: OwnerKey) -> CartView:
        """Cart joined with live price and stock, with a fresh quote."""
        lines = await self.lines(owner)
        variants = await self._catalog.get_variants(line.variant_id for line in lines)
        currency = self._pricing.currency

        views: list[CartLineView] = []
        for line in lines:
            variant = variants.get(line.variant_id)
            if variant is None:
                # Variant deleted from the catalog; the line cascades away.
                continue
            views.append(
                CartLineView(
                    id=line.id,
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                    name=variant.name,
                    unit_price=variant.price,
                    quantity=line.quantity,
                    line_total=line_total(variant.price, line.quantity, currency),
                    available=variant.quantity,
                )
            )

        quote = self._pricing.quote(
            subtotal_of(((v.unit_price, v.quantity) for v in views), currency)
        )
        return CartView(
            lines=tuple(views),
            item_count=sum(v.quantity for v in views),
            subtotal=quote.subtotal,
            tax=quote.tax,
            shipping=quote.shipping,
            total=quote.total,
            has_out_of_stock=any(v.out_of_stock for v in views),
            has_low_stock=any(
                0 < v.available <= self._low_stock_threshold for v in views
            ),
        )

    async def _owned_line(
        self, session: AsyncSession, owner: OwnerKey, line_id: str
    ) -> CartLineTable | None:
        return (
            await session.execute(
                select(CartLineTable).where(CartLineTable.id == line_id, *_owner_filter(owner))
            )
        ).scalar_one_or_none()


__all__ = ("CartStore",)
