"""
Pipeline — every component wired from one Settings object.

    storefront = await build_storefront(Settings())
    try:
        match await storefront.carts.add_line(owner, "var-tee-m", 2):
            ...
        match await storefront.sessions.create_session(owner):
            case Ok(session):
                match await storefront.prepare_payment(session.id, owner):
                    case Ok(intent):
                        ...  # hand intent.client_secret to the client
    finally:
        await storefront.close()
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from storefront._errors import CheckoutError, Errors
from storefront._log import configure_logging
from storefront._money import to_minor_units
from storefront._types import Clock, Error, Ok, OwnerKey, Result, utcnow
from storefront.cart import CartStore
from storefront.catalog import SQLAlchemyCatalog
from storefront.checkout import CheckoutSessionManager
from storefront.config import Settings
from storefront.db import create_database
from storefront.inventory import InventoryLedger
from storefront.notifications import LogSender, NotificationDispatcher, NotificationSender
from storefront.orders import (
    FromSession,
    OrderLedger,
    OrderMaterializer,
    OrderNumbers,
    random_order_numbers,
)
from storefront.payments import (
    META_EMAIL,
    META_OWNER_ID,
    META_OWNER_KIND,
    META_SESSION,
    MemoryProcessor,
    PaymentAdapter,
    PaymentIntent,
    PaymentProcessor,
    PlaceOrder,
    PaymentRecords,
    StripeProcessor,
    WebhookProcessor,
)
from storefront.pricing import PricingPolicy
from storefront.reconcile import ReconciliationService

log = structlog.get_logger(__name__)


@dataclass(slots=True)
class Storefront:
    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    catalog: SQLAlchemyCatalog
    pricing: PricingPolicy
    carts: CartStore
    inventory: InventoryLedger
    sessions: CheckoutSessionManager
    reconciliation: ReconciliationService
    payments: PaymentAdapter
    payment_records: PaymentRecords
    orders: OrderMaterializer
    notifications: NotificationDispatcher
    webhooks: WebhookProcessor

    async def prepare_payment(
        self, session_id: str, owner: OwnerKey, *, email: str | None = None
    ) -> Result[PaymentIntent, CheckoutError]:
        """
        Revalidate a session and open a payment intent for its total.

        Stock conflicts → OUT_OF_STOCK, price drift → STALE_QUOTE (start a
        new session to re-quote). The intent metadata carries the session
        and owner so the webhook can materialize the order.
        """
        match await self.reconciliation.revalidate_session(session_id, owner):
            case Error(e):
                return Error(e)
            case Ok(report) if not report.can_proceed:
                return Error(Errors.out_of_stock([c.to_dict() for c in report.stock_conflicts]))
            case Ok(report) if report.requires_requote:
                return Error(Errors.stale_quote([c.to_dict() for c in report.price_conflicts]))
            case Ok(_):
                pass

        match await self.sessions.get(session_id, owner):
            case Error(e):
                return Error(e)
            case Ok(found):
                checkout = found

        metadata = {
            META_SESSION: checkout.id,
            META_OWNER_KIND: owner.kind.value,
            META_OWNER_ID: owner.id,
        }
        if email:
            metadata[META_EMAIL] = email

        amount = to_minor_units(checkout.total, checkout.currency)
        match await self.payments.create_intent(
            amount, checkout.currency, metadata, receipt_email=email
        ):
            case Error(e):
                return Error(e)
            case Ok(intent):
                await self.payment_records.create(
                    intent, checkout_session_id=checkout.id, owner=owner
                )
                log.info(
                    "payment_prepared",
                    session_id=checkout.id,
                    payment_intent_id=intent.id,
                    amount=amount,
                    currency=checkout.currency,
                )
                return Ok(intent)

    async def close(self) -> None:
        await self.notifications.drain()
        await self.engine.dispose()


def order_placer(orders: OrderMaterializer) -> PlaceOrder:
    """Webhook hook: materialize from the session and report the order id."""

    async def place(
        payment_intent_id: str,
        checkout_session_id: str,
        owner: OwnerKey,
        email: str | None,
    ) -> Result[str, CheckoutError]:
        match await orders.materialize(
            payment_intent_id, FromSession(checkout_session_id), owner, email=email
        ):
            case Ok(materialized):
                return Ok(materialized.order.id)
            case Error(e):
                return Error(e)

    return place


def default_processor(settings: Settings) -> PaymentProcessor:
    """Stripe when a secret key is configured, the in-memory processor otherwise."""
    if settings.stripe_secret_key:
        return StripeProcessor(settings.stripe_secret_key, settings.stripe_webhook_secret)
    log.warning("payment_processor_in_memory")
    return MemoryProcessor(webhook_secret=settings.stripe_webhook_secret)


async def build_storefront(
    settings: Settings | None = None,
    *,
    processor: PaymentProcessor | None = None,
    sender: NotificationSender | None = None,
    clock: Clock = utcnow,
    numbers: OrderNumbers | None = None,
    configure_logs: bool = True,
) -> Storefront:
    settings = settings or Settings()
    if configure_logs:
        configure_logging(settings.log_level, settings.log_json)

    session_factory, engine = await create_database(settings.database_url)

    pricing = PricingPolicy.from_settings(settings)
    catalog = SQLAlchemyCatalog(session_factory, settings.currency)
    carts = CartStore(
        session_factory,
        catalog,
        pricing,
        low_stock_threshold=settings.low_stock_threshold,
        clock=clock,
    )
    inventory = InventoryLedger(session_factory, clock=clock)
    sessions = CheckoutSessionManager(
        session_factory, carts, catalog, pricing, ttl=settings.session_ttl, clock=clock
    )
    reconciliation = ReconciliationService(catalog, sessions, carts, pricing)

    processor = processor or default_processor(settings)
    payments = PaymentAdapter(processor, timeout_seconds=settings.payment_timeout_seconds)
    payment_records = PaymentRecords(session_factory, clock=clock)

    notifications = NotificationDispatcher(sender or LogSender())
    ledger = OrderLedger(
        session_factory,
        sessions,
        numbers=numbers or random_order_numbers(settings.order_number_prefix),
        attempts=settings.order_number_attempts,
        clock=clock,
    )
    orders = OrderMaterializer(
        ledger, payments, sessions, carts, catalog, pricing, inventory, notifications
    )

    storefront = Storefront(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        catalog=catalog,
        pricing=pricing,
        carts=carts,
        inventory=inventory,
        sessions=sessions,
        reconciliation=reconciliation,
        payments=payments,
        payment_records=payment_records,
        orders=orders,
        notifications=notifications,
        webhooks=WebhookProcessor(
            session_factory,
            processor,
            payment_records,
            place_order=order_placer(orders),
            clock=clock,
        ),
    )
    log.info("storefront_ready", database_url=settings.database_url, currency=settings.currency)
    return storefront


__all__ = ("Storefront", "build_storefront", "default_processor", "order_placer")
