"""
FastAPI application — thin routes over the Storefront facade.

    app = create_app()               # builds from Settings() on startup
    app = create_app(storefront)     # tests: reuse an already built facade
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated, Any

import structlog
from fastapi import FastAPI, Header, HTTPException, Request, Response

from storefront._types import Error, Ok
from storefront.api._deps import OwnerDep, StorefrontDep, UserDep
from storefront.api._errors import (
    CheckoutHTTPError,
    checkout_error_handler,
    error_response,
    ok_or_raise,
)
from storefront.api._schemas import (
    AddLineIn,
    CartLineChangeOut,
    CartOut,
    CreateSessionIn,
    MaterializeIn,
    MergeCartIn,
    MergeOut,
    OrderOut,
    OrderPageOut,
    PaymentIntentOut,
    PreparePaymentIn,
    SessionOut,
    SetQuantityIn,
    ValidationOut,
    WebhookOut,
)
from storefront.config import Settings
from storefront.orders import DEFAULT_PAGE_SIZE
from storefront.payments import InvalidSignature
from storefront.pipeline import Storefront, build_storefront

log = structlog.get_logger(__name__)


def create_app(
    storefront: Storefront | None = None, *, settings: Settings | None = None
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if storefront is not None:
            app.state.storefront = storefront
            yield
            await storefront.notifications.drain()
            return

        built = await build_storefront(settings)
        app.state.storefront = built
        try:
            yield
        finally:
            await built.close()

    app = FastAPI(title="storefront", lifespan=lifespan)
    app.add_exception_handler(CheckoutHTTPError, checkout_error_handler)
    if storefront is not None:
        app.state.storefront = storefront

    # ───────────────────────────────────────────────────────────────────────────
    # Cart
    # ───────────────────────────────────────────────────────────────────────────

    @app.get("/cart")
    async def get_cart(sf: StorefrontDep, owner: OwnerDep) -> CartOut:
        return CartOut.from_domain(await sf.carts.get_cart(owner))

    @app.get("/cart/count")
    async def cart_count(sf: StorefrontDep, owner: OwnerDep) -> dict[str, int]:
        return {"count": await sf.carts.count(owner)}

    @app.post("/cart/lines")
    async def add_line(body: AddLineIn, sf: StorefrontDep, owner: OwnerDep) -> CartLineChangeOut:
        variant_id, quantity = body.to_domain()
        line = ok_or_raise(await sf.carts.add_line(owner, variant_id, quantity))
        return CartLineChangeOut.from_domain(line)

    @app.patch("/cart/lines/{line_id}")
    async def set_quantity(
        line_id: str, body: SetQuantityIn, sf: StorefrontDep, owner: OwnerDep
    ) -> CartLineChangeOut:
        line = ok_or_raise(await sf.carts.set_quantity(owner, line_id, body.quantity))
        return CartLineChangeOut.from_domain(line)

    @app.delete("/cart/lines/{line_id}")
    async def remove_line(line_id: str, sf: StorefrontDep, owner: OwnerDep) -> CartLineChangeOut:
        line = ok_or_raise(await sf.carts.remove_line(owner, line_id))
        return CartLineChangeOut.from_domain(line)

    @app.delete("/cart")
    async def clear_cart(sf: StorefrontDep, owner: OwnerDep) -> dict[str, int]:
        return {"removed": await sf.carts.clear(owner)}

    @app.post("/cart/merge")
    async def merge_cart(body: MergeCartIn, sf: StorefrontDep, user: UserDep) -> MergeOut:
        guest, strategy = body.to_domain()
        return MergeOut.from_domain(await sf.carts.merge(guest, user, strategy))

    # ───────────────────────────────────────────────────────────────────────────
    # Checkout sessions
    # ───────────────────────────────────────────────────────────────────────────

    @app.post("/checkout/sessions", status_code=201)
    async def create_session(
        body: CreateSessionIn, sf: StorefrontDep, owner: OwnerDep
    ) -> SessionOut:
        session = ok_or_raise(
            await sf.sessions.create_session(
                owner,
                destination_country=body.destination_country,
                discount_code=body.discount_code,
            )
        )
        return SessionOut.from_domain(session)

    @app.get("/checkout/sessions/{session_id}")
    async def get_session(session_id: str, sf: StorefrontDep, owner: OwnerDep) -> SessionOut:
        return SessionOut.from_domain(ok_or_raise(await sf.sessions.get(session_id, owner)))

    @app.post("/checkout/sessions/{session_id}/validate")
    async def validate_session(
        session_id: str, sf: StorefrontDep, owner: OwnerDep
    ) -> ValidationOut:
        report = ok_or_raise(await sf.reconciliation.revalidate_session(session_id, owner))
        return ValidationOut.from_domain(report)

    @app.post("/checkout/sessions/{session_id}/cancel")
    async def cancel_session(session_id: str, sf: StorefrontDep, owner: OwnerDep) -> SessionOut:
        return SessionOut.from_domain(ok_or_raise(await sf.sessions.abandon(session_id, owner)))

    @app.post("/checkout/sessions/{session_id}/payment", status_code=201)
    async def prepare_payment(
        session_id: str, body: PreparePaymentIn, sf: StorefrontDep, owner: OwnerDep
    ) -> PaymentIntentOut:
        intent = ok_or_raise(await sf.prepare_payment(session_id, owner, email=body.email))
        return PaymentIntentOut.from_domain(intent)

    # ───────────────────────────────────────────────────────────────────────────
    # Orders
    # ───────────────────────────────────────────────────────────────────────────

    @app.post("/orders", status_code=201)
    async def materialize_order(
        body: MaterializeIn, response: Response, sf: StorefrontDep, owner: OwnerDep
    ) -> OrderOut:
        materialized = ok_or_raise(
            await sf.orders.materialize(
                body.payment_intent_id, body.to_domain(), owner, email=body.email
            )
        )
        if materialized.replayed:
            response.status_code = 200
        return OrderOut.from_domain(materialized)

    @app.get("/orders")
    async def list_orders(
        sf: StorefrontDep, user: UserDep, page: int = 1, limit: int = DEFAULT_PAGE_SIZE
    ) -> OrderPageOut:
        history = ok_or_raise(await sf.orders.list_orders(user, page, limit))
        return OrderPageOut.from_domain(history)

    @app.get("/orders/{order_id}")
    async def get_order(order_id: str, sf: StorefrontDep, owner: OwnerDep) -> OrderOut:
        return OrderOut.from_domain(ok_or_raise(await sf.orders.get_order(order_id, owner)))

    # ───────────────────────────────────────────────────────────────────────────
    # Webhooks
    # ───────────────────────────────────────────────────────────────────────────

    @app.post("/webhooks/stripe", response_model=None)
    async def stripe_webhook(
        request: Request,
        sf: StorefrontDep,
        stripe_signature: Annotated[str | None, Header()] = None,
    ) -> Any:
        payload = await request.body()
        try:
            outcome = await sf.webhooks.handle(payload, stripe_signature)
        except InvalidSignature as e:
            log.warning("webhook_signature_rejected", error=str(e))
            raise HTTPException(status_code=400, detail="invalid signature") from e

        match outcome:
            case Ok(handled):
                return WebhookOut.from_domain(handled)
            case Error(e):
                return error_response(e)

    return app


__all__ = ("create_app",)
