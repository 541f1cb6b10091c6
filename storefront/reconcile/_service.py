"""
Reconciliation — re-check a quote against live stock and prices.

Runs right before payment. Every read goes through the catalog, which opens
a fresh database session, so committed cart and stock writes are visible.
"""

from __future__ import annotations

import structlog

from storefront._errors import CheckoutError, Errors
from storefront._types import Error, Ok, OwnerKey, Result
from storefront.cart import CartStore
from storefront.catalog import Catalog, VariantInfo
from storefront.checkout import CheckoutSession, CheckoutSessionManager, SessionStatus
from storefront.pricing import PricingPolicy, subtotal_of
from storefront.reconcile._types import Conflict, ConflictKind, ValidationReport

log = structlog.get_logger(__name__)


def _stock_conflict(
    variant_id: str, product_id: str, name: str, requested: int, live: VariantInfo | None
) -> Conflict | None:
    available = max(live.quantity, 0) if live is not None else 0
    if requested <= available:
        return None
    return Conflict(
        kind=ConflictKind.QUANTITY_UNAVAILABLE,
        variant_id=variant_id,
        product_id=product_id,
        name=name,
        requested=requested,
        available=available,
    )


class ReconciliationService:
    """
    Example:
        match await service.revalidate_session(session_id, owner):
            case Ok(report) if report.can_proceed:
                ...
            case Ok(report):
                ...  # report.stock_conflicts
            case Error(e):
                ...  # SESSION_EXPIRED, SESSION_NOT_FOUND
    """

    def __init__(
        self,
        catalog: Catalog,
        sessions: CheckoutSessionManager,
        carts: CartStore,
        pricing: PricingPolicy,
    ) -> None:
        self._catalog = catalog
        self._sessions = sessions
        self._carts = carts
        self._pricing = pricing

    async def revalidate(
        self, target: CheckoutSession | OwnerKey
    ) -> Result[ValidationReport, CheckoutError]:
        """Revalidate a checkout session, or the live cart of an owner."""
        match target:
            case CheckoutSession():
                return await self.revalidate_session(target.id, target.owner)
            case OwnerKey():
                return await self.revalidate_cart(target)

    async def revalidate_session(
        self, session_id: str, owner: OwnerKey
    ) -> Result[ValidationReport, CheckoutError]:
        """
        Compare a session snapshot with live data.

        Expired sessions fail with SESSION_EXPIRED and are marked expired.
        A session without stock conflicts becomes validated.
        """
        match await self._sessions.get(session_id, owner):
            case Error(e):
                return Error(e)
            case Ok(found):
                checkout = found

        match checkout.status:
            case SessionStatus.EXPIRED | SessionStatus.ABANDONED:
                log.info(
                    "revalidate_rejected",
                    session_id=session_id,
                    status=checkout.status.value,
                )
                return Error(Errors.session_expired(session_id))
            case SessionStatus.CONSUMED:
                return Error(Errors.session_consumed(session_id, checkout.order_id))
            case _:
                pass

        live = await self._catalog.get_variants(item.variant_id for item in checkout.items)
        conflicts: list[Conflict] = []
        priced: list[tuple[VariantInfo, int]] = []

        for item in checkout.items:
            variant = live.get(item.variant_id)
            stock = _stock_conflict(
                item.variant_id, item.product_id, item.name, item.quantity, variant
            )
            if stock is not None:
                conflicts.append(stock)
            if variant is None:
                continue
            priced.append((variant, item.quantity))
            if variant.price != item.unit_price:
                conflicts.append(
                    Conflict(
                        kind=ConflictKind.PRICE_CHANGED,
                        variant_id=item.variant_id,
                        product_id=item.product_id,
                        name=item.name,
                        snapshot_price=item.unit_price,
                        live_price=variant.price,
                    )
                )

        recomputed = self._pricing.quote(
            subtotal_of(((v.price, qty) for v, qty in priced), checkout.currency),
            checkout.destination_country,
            checkout.discount_code,
        )
        report = ValidationReport(
            session_id=session_id, conflicts=tuple(conflicts), recomputed=recomputed
        )

        if report.can_proceed:
            # The session may have been consumed, cancelled or expired meanwhile.
            match await self._sessions.mark_validated(session_id):
                case Error(e):
                    log.info("revalidate_lost_race", session_id=session_id, error=e.code)
                    return Error(e)
                case Ok(_):
                    pass

        log.info(
            "session_revalidated",
            session_id=session_id,
            can_proceed=report.can_proceed,
            requires_requote=report.requires_requote,
            conflicts=len(conflicts),
        )
        return Ok(report)

    async def revalidate_cart(self, owner: OwnerKey) -> Result[ValidationReport, CheckoutError]:
        """Stock check of the live cart. Carts carry no snapshot, so prices never drift."""
        lines = await self._carts.lines(owner)
        if not lines:
            return Error(Errors.empty_cart())

        live = await self._catalog.get_variants(line.variant_id for line in lines)
        conflicts: list[Conflict] = []
        for line in lines:
            variant = live.get(line.variant_id)
            stock = _stock_conflict(
                line.variant_id,
                line.product_id,
                variant.name if variant is not None else line.variant_id,
                line.quantity,
                variant,
            )
            if stock is not None:
                conflicts.append(stock)

        subtotal = subtotal_of(
            (
                (live[line.variant_id].price, line.quantity)
                for line in lines
                if line.variant_id in live
            ),
            self._pricing.currency,
        )
        recomputed = self._pricing.quote(subtotal)
        return Ok(
            ValidationReport(session_id=None, conflicts=tuple(conflicts), recomputed=recomputed)
        )


__all__ = ("ReconciliationService",)
