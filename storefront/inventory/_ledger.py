"""
Inventory ledger — stock counters with an append-only movement log.

Every counter update is a compare-and-swap:

    UPDATE product_variants SET quantity = :new
    WHERE id = :variant AND quantity = :seen

retried until it hits, so concurrent writers never interleave into a lost
update. The movement row is written in the same transaction.
"""

from __future__ import annotations

from typing import Any, cast

import structlog
from sqlalchemy import CursorResult, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront._errors import CheckoutError, Errors
from storefront._types import Clock, Error, Ok, Result, utcnow
from storefront.db import InventoryMovementTable, VariantTable
from storefront.inventory._types import (
    InventoryMovement,
    MovementReason,
    StockChange,
    StockReconciliation,
)

log = structlog.get_logger(__name__)

# CAS retries before giving up; only reached under pathological contention.
MAX_CAS_ATTEMPTS = 50


class InventoryLedger:
    """
    Stock counters for product variants.

    Example:
        ledger = InventoryLedger(session_factory)
        await ledger.decrement(
            "var-tee-m", 2,
            reason=MovementReason.SALE,
            reference_type="order", reference_id=order.id,
            clamp=True,
        )
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        clock: Clock = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    # ───────────────────────────────────────────────────────────────────────────
    # Mutations
    # ───────────────────────────────────────────────────────────────────────────

    async def decrement(
        self,
        variant_id: str,
        quantity: int,
        *,
        reason: MovementReason = MovementReason.SALE,
        reference_type: str | None = None,
        reference_id: str | None = None,
        clamp: bool = False,
        note: str | None = None,
    ) -> Result[StockChange, CheckoutError]:
        """
        Take quantity out of stock.

        clamp=False: insufficient stock → OUT_OF_STOCK, nothing changes.
        clamp=True: stock floors at zero and the shortfall is logged.
        A sale with a reference is applied at most once per variant.
        """
        if quantity < 0:
            raise ValueError(f"decrement quantity must be >= 0, got {quantity}")
        return await self._apply(
            variant_id,
            -quantity,
            reason=reason,
            reference_type=reference_type,
            reference_id=reference_id,
            clamp=clamp,
            note=note,
        )

    async def increment(
        self,
        variant_id: str,
        quantity: int,
        *,
        reason: MovementReason = MovementReason.RESTOCK,
        reference_type: str | None = None,
        reference_id: str | None = None,
        note: str | None = None,
    ) -> Result[StockChange, CheckoutError]:
        if quantity < 0:
            raise ValueError(f"increment quantity must be >= 0, got {quantity}")
        return await self._apply(
            variant_id,
            quantity,
            reason=reason,
            reference_type=reference_type,
            reference_id=reference_id,
            clamp=False,
            note=note,
        )

    async def adjust(
        self,
        variant_id: str,
        delta: int,
        *,
        note: str | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
    ) -> Result[StockChange, CheckoutError]:
        """Manual correction in either direction, floored at zero."""
        return await self._apply(
            variant_id,
            delta,
            reason=MovementReason.ADJUSTMENT,
            reference_type=reference_type,
            reference_id=reference_id,
            clamp=True,
            note=note,
        )

    async def _apply(
        self,
        variant_id: str,
        delta: int,
        *,
        reason: MovementReason,
        reference_type: str | None,
        reference_id: str | None,
        clamp: bool,
        note: str | None,
    ) -> Result[StockChange, CheckoutError]:
        once_per_reference = reason == MovementReason.SALE and reference_id is not None

        async with self._session_factory() as session:
            if once_per_reference and await self._sale_recorded(
                session, variant_id, reference_type, reference_id
            ):
                return Ok(await self._replayed(session, variant_id, delta))

            for _ in range(MAX_CAS_ATTEMPTS):
                seen = await session.scalar(
                    select(VariantTable.quantity).where(VariantTable.id == variant_id)
                )
                if seen is None:
                    return Error(Errors.not_found("variant", variant_id))

                target = seen + delta
                if target < 0:
                    if not clamp:
                        return Error(
                            Errors.out_of_stock(
                                [
                                    {
                                        "variant_id": variant_id,
                                        "requested": -delta,
                                        "available": seen,
                                    }
                                ]
                            )
                        )
                    target = 0

                swapped = cast(
                    CursorResult[Any],
                    await session.execute(
                        update(VariantTable)
                        .where(VariantTable.id == variant_id, VariantTable.quantity == seen)
                        .values(quantity=target)
                    ),
                )
                if swapped.rowcount == 1:
                    break
                await session.rollback()
            else:
                raise RuntimeError(
                    f"stock update for {variant_id} lost {MAX_CAS_ATTEMPTS} races in a row"
                )

            applied = target - seen
            session.add(
                InventoryMovementTable(
                    variant_id=variant_id,
                    delta_quantity=applied,
                    reason=reason.value,
                    reference_type=reference_type,
                    reference_id=reference_id,
                    note=note,
                    created_at=self._clock(),
                )
            )
            try:
                await session.commit()
            except IntegrityError:
                # Concurrent replay of the same sale won; our update is undone.
                await session.rollback()
                return Ok(await self._replayed(session, variant_id, delta))

        if applied != delta:
            log.warning(
                "inventory_oversold",
                variant_id=variant_id,
                requested=-delta,
                available=seen,
                reference_type=reference_type,
                reference_id=reference_id,
            )

        log.debug(
            "inventory_changed",
            variant_id=variant_id,
            reason=reason.value,
            previous=seen,
            current=target,
        )
        return Ok(
            StockChange(
                variant_id=variant_id,
                previous=seen,
                current=target,
                requested=delta,
                applied=applied,
            )
        )

    async def _sale_recorded(
        self,
        session: AsyncSession,
        variant_id: str,
        reference_type: str | None,
        reference_id: str | None,
    ) -> bool:
        found = await session.scalar(
            select(InventoryMovementTable.id).where(
                InventoryMovementTable.variant_id == variant_id,
                InventoryMovementTable.reason == MovementReason.SALE.value,
                InventoryMovementTable.reference_type == reference_type,
                InventoryMovementTable.reference_id == reference_id,
            )
        )
        return found is not None

    async def _replayed(
        self, session: AsyncSession, variant_id: str, delta: int
    ) -> StockChange:
        current = await session.scalar(
            select(VariantTable.quantity).where(VariantTable.id == variant_id)
        )
        quantity = current or 0
        return StockChange(
            variant_id=variant_id,
            previous=quantity,
            current=quantity,
            requested=delta,
            applied=0,
            replayed=True,
        )

    # ───────────────────────────────────────────────────────────────────────────
    # Reads
    # ───────────────────────────────────────────────────────────────────────────

    async def get_available(self, variant_id: str) -> Result[int, CheckoutError]:
        async with self._session_factory() as session:
            quantity = await session.scalar(
                select(VariantTable.quantity).where(VariantTable.id == variant_id)
            )
            if quantity is None:
                return Error(Errors.not_found("variant", variant_id))
            return Ok(quantity)

    async def movements(self, variant_id: str) -> list[InventoryMovement]:
        """Movement log for a variant, oldest first."""
        async with self._session_factory() as session:
            rows = await session.execute(
                select(InventoryMovementTable)
                .where(InventoryMovementTable.variant_id == variant_id)
                .order_by(InventoryMovementTable.id)
            )
            return [
                InventoryMovement(
                    id=row.id,
                    variant_id=row.variant_id,
                    delta_quantity=row.delta_quantity,
                    reason=MovementReason(row.reason),
                    reference_type=row.reference_type,
                    reference_id=row.reference_id,
                    note=row.note,
                    created_at=row.created_at,
                )
                for row in rows.scalars()
            ]

    async def reconcile(self, variant_id: str) -> Result[StockReconciliation, CheckoutError]:
        """Compare the counter against its baseline plus every movement."""
        async with self._session_factory() as session:
            variant = await session.get(VariantTable, variant_id)
            if variant is None:
                return Error(Errors.not_found("variant", variant_id))
            movement_sum = await session.scalar(
                select(func.coalesce(func.sum(InventoryMovementTable.delta_quantity), 0)).where(
                    InventoryMovementTable.variant_id == variant_id
                )
            )
            report = StockReconciliation(
                variant_id=variant_id,
                available=variant.quantity,
                initial=variant.initial_quantity,
                movement_sum=int(movement_sum or 0),
            )

        if not report.consistent:
            log.error(
                "inventory_inconsistent",
                variant_id=variant_id,
                available=report.available,
                expected=report.initial + report.movement_sum,
            )
        return Ok(report)


__all__ = ("InventoryLedger", "MAX_CAS_ATTEMPTS")
