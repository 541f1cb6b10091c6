"""
Order materializer — exactly one order per captured payment.

The graph (storefront.orders._graph) decides and commits. The post-commit
phase is best effort:

    1. stock decrement per line (clamped, idempotent per order+variant)
    2. clear the owner's cart
    3. order confirmation in the background

A failure in 1 or 2 is logged and leaves stock_committed_at empty;
recover() / recover_pending() finish the job later.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime

import structlog
from sqlalchemy.exc import SQLAlchemyError

from storefront._errors import CheckoutError, Errors
from storefront._types import Error, Ok, OwnerKey, Result
from storefront.cart import CartStore
from storefront.catalog import Catalog
from storefront.checkout import CheckoutSessionManager
from storefront.inventory import InventoryLedger, MovementReason
from storefront.notifications import NotificationDispatcher
from storefront.orders._graph import MaterializeSpec, run_materialize
from storefront.orders._ledger import DEFAULT_PAGE_SIZE, OrderLedger
from storefront.orders._types import MaterializedOrder, OrderPage, OrderSource
from storefront.payments import PaymentAdapter
from storefront.pricing import PricingPolicy

log = structlog.get_logger(__name__)

ORDER_REFERENCE = "order"


class OrderMaterializer:
    """
    Example:
        match await materializer.materialize(intent_id, FromSession(sid), owner, email=email):
            case Ok(MaterializedOrder(order=order, replayed=replayed)):
                ...
            case Error(e):
                ...  # PAYMENT_NOT_COMPLETE, PAYMENT_PROVIDER_UNAVAILABLE, ...
    """

    def __init__(
        self,
        ledger: OrderLedger,
        payments: PaymentAdapter,
        sessions: CheckoutSessionManager,
        carts: CartStore,
        catalog: Catalog,
        pricing: PricingPolicy,
        inventory: InventoryLedger,
        notifications: NotificationDispatcher,
    ) -> None:
        self._ledger = ledger
        self._payments = payments
        self._sessions = sessions
        self._carts = carts
        self._catalog = catalog
        self._pricing = pricing
        self._inventory = inventory
        self._notifications = notifications

    @property
    def ledger(self) -> OrderLedger:
        return self._ledger

    async def materialize(
        self,
        payment_intent_id: str,
        source: OrderSource,
        owner: OwnerKey,
        *,
        email: str | None = None,
    ) -> Result[MaterializedOrder, CheckoutError]:
        spec = MaterializeSpec(
            payment_intent_id=payment_intent_id,
            source=source,
            owner=owner,
            email=email,
            ledger=self._ledger,
            payments=self._payments,
            sessions=self._sessions,
            carts=self._carts,
            catalog=self._catalog,
            pricing=self._pricing,
        )
        result = await run_materialize(spec)

        match result:
            case Ok(materialized) if not materialized.replayed:
                return Ok(await self._after_commit(materialized))
            case Error(e):
                log.info(
                    "materialize_rejected",
                    payment_intent_id=payment_intent_id,
                    error=e.code,
                )
                return result
            case _:
                return result

    async def get_order(
        self, order_id: str, owner: OwnerKey
    ) -> Result[MaterializedOrder, CheckoutError]:
        """Owned order. Someone else's order is reported as not found."""
        match await self._ledger.load(order_id):
            case Ok(found) if found.order.owner != owner:
                return Error(Errors.not_found("order", order_id))
            case other:
                return other

    async def list_orders(
        self, owner: OwnerKey, page: int = 1, limit: int = DEFAULT_PAGE_SIZE
    ) -> Result[OrderPage, CheckoutError]:
        return await self._ledger.list_for_owner(owner, page, limit)

    # ───────────────────────────────────────────────────────────────────────────
    # Post-commit
    # ───────────────────────────────────────────────────────────────────────────

    async def _after_commit(self, materialized: MaterializedOrder) -> MaterializedOrder:
        order = materialized.order

        committed_at = await self._commit_stock(materialized)
        if committed_at is not None:
            materialized = replace(
                materialized, order=replace(order, stock_committed_at=committed_at)
            )

        try:
            await self._carts.clear(order.owner)
        except SQLAlchemyError as e:
            log.error("order_cart_clear_failed", order_id=order.id, error=str(e))

        self._notifications.order_confirmed(materialized.order, materialized.items)
        return materialized

    async def _commit_stock(self, materialized: MaterializedOrder) -> datetime | None:
        """Decrement stock for every line. None when the step must be retried."""
        order = materialized.order
        try:
            for item in materialized.items:
                if item.variant_id is None:
                    continue
                match await self._inventory.decrement(
                    item.variant_id,
                    item.quantity,
                    reason=MovementReason.SALE,
                    reference_type=ORDER_REFERENCE,
                    reference_id=order.id,
                    clamp=True,
                ):
                    case Ok(change) if change.clamped:
                        log.warning(
                            "order_oversold",
                            order_id=order.id,
                            variant_id=item.variant_id,
                            requested=item.quantity,
                            applied=-change.applied,
                        )
                    case Ok(_):
                        pass
                    case Error(e):
                        # Variant gone from the catalog; nothing left to decrement.
                        log.error(
                            "order_stock_line_skipped",
                            order_id=order.id,
                            variant_id=item.variant_id,
                            error=e.code,
                        )
            return await self._ledger.mark_stock_committed(order.id)
        except SQLAlchemyError as e:
            log.error(
                "order_stock_commit_failed",
                order_id=order.id,
                error=str(e),
                exc_info=True,
            )
            return None

    # ───────────────────────────────────────────────────────────────────────────
    # Recovery
    # ───────────────────────────────────────────────────────────────────────────

    async def recover(self, order_id: str) -> Result[MaterializedOrder, CheckoutError]:
        """Finish the inventory step of an order if it never completed."""
        match await self._ledger.load(order_id):
            case Error(e):
                return Error(e)
            case Ok(found):
                materialized = found

        if materialized.order.stock_committed_at is not None:
            return Ok(materialized)

        committed_at = await self._commit_stock(materialized)
        if committed_at is None:
            return Error(Errors.store_unavailable(f"stock step for {order_id} failed again"))

        log.info("order_recovered", order_id=order_id)
        return Ok(
            replace(
                materialized,
                order=replace(materialized.order, stock_committed_at=committed_at),
            )
        )

    async def recover_pending(self, limit: int = 100) -> list[str]:
        """Run recover() for every order missing its stock step. Returns recovered ids."""
        recovered: list[str] = []
        for order_id in await self._ledger.pending_stock(limit):
            match await self.recover(order_id):
                case Ok(_):
                    recovered.append(order_id)
                case Error(e):
                    log.warning("order_recovery_failed", order_id=order_id, error=e.code)
        return recovered


__all__ = ("OrderMaterializer", "ORDER_REFERENCE")
