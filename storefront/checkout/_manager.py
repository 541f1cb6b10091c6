"""
Checkout session manager — snapshot a cart into a priced, expiring quote.
"""

from __future__ import annotations

import uuid
from datetime import timedelta
from typing import Any, cast

import structlog
from sqlalchemy import CursorResult, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront._errors import CheckoutError, Errors
from storefront._money import from_minor_units, to_minor_units
from storefront._types import Clock, Error, Ok, OwnerKey, OwnerKind, Result, utcnow
from storefront.cart import CartStore
from storefront.catalog import Catalog
from storefront.checkout._types import (
    CheckoutLineSnapshot,
    CheckoutSession,
    InvalidTransition,
    SessionStatus,
    can_transition,
)
from storefront.db import CheckoutSessionTable
from storefront.pricing import PricingPolicy, line_total, subtotal_of

log = structlog.get_logger(__name__)

_OPEN = (SessionStatus.CREATED.value, SessionStatus.VALIDATED.value)


def to_session(row: CheckoutSessionTable) -> CheckoutSession:
    currency = row.currency
    return CheckoutSession(
        id=row.id,
        owner=OwnerKey(OwnerKind(row.owner_kind), row.owner_id),
        currency=currency,
        items=tuple(CheckoutLineSnapshot.from_json(item) for item in row.items),
        subtotal=from_minor_units(row.subtotal_minor, currency),
        tax=from_minor_units(row.tax_minor, currency),
        shipping=from_minor_units(row.shipping_minor, currency),
        discount=from_minor_units(row.discount_minor, currency),
        total=from_minor_units(row.total_minor, currency),
        discount_code=row.discount_code,
        destination_country=row.destination_country,
        status=SessionStatus(row.status),
        created_at=row.created_at,
        expires_at=row.expires_at,
        order_id=row.order_id,
    )


def transition(row: CheckoutSessionTable, target: SessionStatus) -> None:
    """Move a loaded row to target status or raise InvalidTransition."""
    current = SessionStatus(row.status)
    if not can_transition(current, target):
        raise InvalidTransition(row.id, current, target)
    row.status = target.value


class CheckoutSessionManager:
    """
    Creates and advances checkout sessions.

    Example:
        manager = CheckoutSessionManager(session_factory, carts, catalog, pricing)
        match await manager.create_session(owner):
            case Ok(session):
                print(session.total)
            case Error(e):
                print(e.kind)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        carts: CartStore,
        catalog: Catalog,
        pricing: PricingPolicy,
        *,
        ttl: timedelta = timedelta(minutes=30),
        clock: Clock = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._carts = carts
        self._catalog = catalog
        self._pricing = pricing
        self._ttl = ttl
        self._clock = clock

    @property
    def clock(self) -> Clock:
        return self._clock

    # ───────────────────────────────────────────────────────────────────────────
    # Create
    # ───────────────────────────────────────────────────────────────────────────

    async def create_session(
        self,
        owner: OwnerKey,
        *,
        destination_country: str | None = None,
        discount_code: str | None = None,
    ) -> Result[CheckoutSession, CheckoutError]:
        """
        Freeze the owner's cart into a quote.

        Prices and currency come from the live catalog and the pricing policy,
        never from the caller. Stock is checked but not reserved.
        """
        currency = self._pricing.currency
        lines = await self._carts.lines(owner)
        if not lines:
            return Error(Errors.empty_cart())

        variants = await self._catalog.get_variants(line.variant_id for line in lines)

        unavailable = [
            {
                "line_id": line.id,
                "variant_id": line.variant_id,
                "requested": line.quantity,
                "available": max(variants[line.variant_id].quantity, 0)
                if line.variant_id in variants
                else 0,
            }
            for line in lines
            if line.variant_id not in variants or variants[line.variant_id].quantity <= 0
        ]
        if unavailable:
            log.info("checkout_out_of_stock", owner=str(owner), lines=len(unavailable))
            return Error(Errors.out_of_stock(unavailable))

        items = tuple(
            CheckoutLineSnapshot(
                product_id=line.product_id,
                variant_id=line.variant_id,
                name=variants[line.variant_id].name,
                unit_price=variants[line.variant_id].price,
                quantity=line.quantity,
                line_total=line_total(variants[line.variant_id].price, line.quantity, currency),
            )
            for line in lines
        )
        quote = self._pricing.quote(
            subtotal_of(((item.unit_price, item.quantity) for item in items), currency),
            destination_country,
            discount_code,
        )

        now = self._clock()
        row = CheckoutSessionTable(
            id=str(uuid.uuid4()),
            owner_kind=owner.kind.value,
            owner_id=owner.id,
            currency=currency,
            destination_country=destination_country,
            items=[item.to_json() for item in items],
            subtotal_minor=to_minor_units(quote.subtotal, currency),
            tax_minor=to_minor_units(quote.tax, currency),
            shipping_minor=to_minor_units(quote.shipping, currency),
            discount_minor=to_minor_units(quote.discount, currency),
            total_minor=to_minor_units(quote.total, currency),
            discount_code=quote.discount_code,
            status=SessionStatus.CREATED.value,
            created_at=now,
            expires_at=now + self._ttl,
        )
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()

        log.info(
            "checkout_session_created",
            session_id=row.id,
            owner=str(owner),
            total=str(quote.total),
            currency=currency,
        )
        return Ok(to_session(row))

    # ───────────────────────────────────────────────────────────────────────────
    # Read
    # ───────────────────────────────────────────────────────────────────────────

    async def get(
        self, session_id: str, owner: OwnerKey
    ) -> Result[CheckoutSession, CheckoutError]:
        """Owned session, with lazy expiry applied. Foreign sessions are not found."""
        found = await self.load(session_id)
        match found:
            case Ok(checkout) if checkout.owner != owner:
                return Error(Errors.session_not_found(session_id))
            case _:
                return found

    async def load(self, session_id: str) -> Result[CheckoutSession, CheckoutError]:
        """Session by id regardless of owner, with lazy expiry applied."""
        await self.expire_if_due(session_id)
        async with self._session_factory() as session:
            row = await session.get(CheckoutSessionTable, session_id)
            if row is None:
                return Error(Errors.session_not_found(session_id))
            return Ok(to_session(row))

    # ───────────────────────────────────────────────────────────────────────────
    # Transitions
    # ───────────────────────────────────────────────────────────────────────────

    async def expire_if_due(self, session_id: str) -> bool:
        """Mark an open session expired once its TTL has elapsed."""
        async with self._session_factory() as session:
            row = await session.get(CheckoutSessionTable, session_id)
            if row is None or SessionStatus(row.status).is_terminal:
                return False
            if self._clock() < row.expires_at:
                return False
            transition(row, SessionStatus.EXPIRED)
            await session.commit()

        log.info("checkout_session_expired", session_id=session_id)
        return True

    async def mark_validated(self, session_id: str) -> Result[CheckoutSession, CheckoutError]:
        """
        Move an open, unexpired session to validated.

        A session closed by a concurrent request (consumed, expired, abandoned)
        is reported as an error instead of raising.
        """
        moved = await self._move_open(session_id, SessionStatus.VALIDATED)
        if moved is not None:
            return Ok(moved)

        if await self.expire_if_due(session_id):
            return Error(Errors.session_expired(session_id))
        match await self.load(session_id):
            case Ok(checkout) if checkout.status == SessionStatus.CONSUMED:
                return Error(Errors.session_consumed(session_id, checkout.order_id))
            case Ok(checkout):
                log.info(
                    "checkout_session_closed_concurrently",
                    session_id=session_id,
                    status=checkout.status.value,
                )
                return Error(Errors.session_expired(session_id))
            case Error(e):
                return Error(e)

    async def mark_consumed(self, session_id: str, order_id: str) -> CheckoutSession:
        async with self._session_factory() as session:
            row = await session.get(CheckoutSessionTable, session_id)
            if row is None:
                raise KeyError(session_id)
            self.consume_in(row, order_id)
            await session.commit()
            return to_session(row)

    def consume_in(self, row: CheckoutSessionTable, order_id: str) -> None:
        """
        Attach an order to a loaded row inside the caller's transaction.

        Note: a captured payment always wins. An expired or abandoned session
        keeps its terminal status and only records the order id.
        """
        row.order_id = order_id
        if can_transition(SessionStatus(row.status), SessionStatus.CONSUMED):
            transition(row, SessionStatus.CONSUMED)
        else:
            log.warning(
                "order_from_closed_session",
                session_id=row.id,
                status=row.status,
                order_id=order_id,
            )

    async def abandon(
        self, session_id: str, owner: OwnerKey
    ) -> Result[CheckoutSession, CheckoutError]:
        """Explicit cancel. Abandoning an already closed session is a no-op."""
        match await self.get(session_id, owner):
            case Error(e):
                return Error(e)
            case Ok(checkout) if checkout.status.is_terminal:
                return Ok(checkout)
            case Ok(_):
                pass

        moved = await self._move_open(session_id, SessionStatus.ABANDONED)
        if moved is None:
            # Closed between the read and the update; report where it ended up.
            return await self.get(session_id, owner)
        return Ok(moved)

    async def _move_open(
        self, session_id: str, target: SessionStatus
    ) -> CheckoutSession | None:
        """
        Conditional update: only an open session whose TTL has not elapsed
        moves. None when the row no longer matched.
        """
        async with self._session_factory() as session:
            moved = cast(
                CursorResult[Any],
                await session.execute(
                    update(CheckoutSessionTable)
                    .where(
                        CheckoutSessionTable.id == session_id,
                        CheckoutSessionTable.status.in_(_OPEN),
                        CheckoutSessionTable.expires_at > self._clock(),
                    )
                    .values(status=target.value)
                ),
            )
            await session.commit()
            if moved.rowcount != 1:
                return None
            row = await session.get(CheckoutSessionTable, session_id)
            log.debug("checkout_session_transition", session_id=session_id, status=target.value)
            return to_session(row) if row is not None else None


__all__ = (
    "CheckoutSessionManager",
    "to_session",
    "transition",
)
