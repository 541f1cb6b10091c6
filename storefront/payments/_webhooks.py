"""
Webhook processor — processor events into payment records and orders.

Each event id is processed once: the webhook_events row is inserted first
and a duplicate insert short-circuits. When processing raises or fails with
a retryable error the row is removed again, so the processor's redelivery
gets another chance.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import structlog
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront._errors import CheckoutError
from storefront._types import Clock, Error, Ok, OwnerKey, OwnerKind, Result, utcnow
from storefront.db import WebhookEventTable
from storefront.payments._records import PaymentRecords
from storefront.payments._types import (
    EventType,
    PaymentEvent,
    PaymentProcessor,
    PaymentRecordStatus,
)

log = structlog.get_logger(__name__)

# Intent metadata keys written by the pipeline when it creates an intent.
META_SESSION = "checkout_session_id"
META_OWNER_KIND = "owner_kind"
META_OWNER_ID = "owner_id"
META_EMAIL = "email"

_RECORD_STATUS: dict[str, PaymentRecordStatus] = {
    EventType.INTENT_SUCCEEDED.value: PaymentRecordStatus.SUCCEEDED,
    EventType.INTENT_FAILED.value: PaymentRecordStatus.FAILED,
    EventType.CHARGE_REFUNDED.value: PaymentRecordStatus.REFUNDED,
}


class PlaceOrder(Protocol):
    """Materialize an order for a captured intent; returns the order id."""

    async def __call__(
        self,
        payment_intent_id: str,
        checkout_session_id: str,
        owner: OwnerKey,
        email: str | None,
    ) -> Result[str, CheckoutError]: ...


@dataclass(frozen=True, slots=True)
class WebhookOutcome:
    event_id: str
    event_type: str
    duplicate: bool = False
    payment_status: PaymentRecordStatus | None = None
    order_id: str | None = None
    error: CheckoutError | None = None


def owner_from_metadata(metadata: dict[str, str]) -> OwnerKey | None:
    kind, owner_id = metadata.get(META_OWNER_KIND), metadata.get(META_OWNER_ID)
    if not kind or not owner_id:
        return None
    try:
        return OwnerKey(OwnerKind(kind), owner_id)
    except ValueError:
        return None


class WebhookProcessor:
    """
    Example:
        webhooks = WebhookProcessor(session_factory, processor, records, place_order=place)
        match await webhooks.handle(body, request.headers.get("stripe-signature")):
            case Ok(outcome):
                ...  # outcome.duplicate, outcome.order_id
            case Error(e):
                ...  # retryable, answer 5xx so the processor redelivers
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        processor: PaymentProcessor,
        records: PaymentRecords,
        *,
        place_order: PlaceOrder | None = None,
        provider: str = "stripe",
        clock: Clock = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._processor = processor
        self._records = records
        self._place_order = place_order
        self._provider = provider
        self._clock = clock

    async def handle(
        self, payload: bytes, signature: str | None
    ) -> Result[WebhookOutcome, CheckoutError]:
        """
        Verify, de-duplicate and apply one event.

        Raises InvalidSignature for payloads that fail verification.
        """
        event = self._processor.parse_event(payload, signature)

        if not await self._record(event):
            log.info("webhook_duplicate", event_id=event.id, event_type=event.type)
            return Ok(WebhookOutcome(event.id, event.type, duplicate=True))

        log.info(
            "webhook_received",
            event_id=event.id,
            event_type=event.type,
            payment_intent_id=event.payment_intent_id,
        )
        try:
            outcome = await self._apply(event)
        except Exception:
            # Unrecorded so the processor's redelivery is not taken for a duplicate.
            log.error(
                "webhook_apply_failed",
                event_id=event.id,
                event_type=event.type,
                exc_info=True,
            )
            await self._forget(event.id)
            raise

        match outcome:
            case Error(e) if e.retryable:
                await self._forget(event.id)
                log.warning("webhook_retry_requested", event_id=event.id, error=e.code)
            case _:
                pass
        return outcome

    async def _apply(self, event: PaymentEvent) -> Result[WebhookOutcome, CheckoutError]:
        status = _RECORD_STATUS.get(event.type)
        if status is None or event.payment_intent_id is None:
            return Ok(WebhookOutcome(event.id, event.type))

        await self._records.set_status(event.payment_intent_id, status)
        if status != PaymentRecordStatus.SUCCEEDED:
            return Ok(WebhookOutcome(event.id, event.type, payment_status=status))

        metadata = dict(event.metadata)
        session_id = metadata.get(META_SESSION)
        owner = owner_from_metadata(metadata)
        if self._place_order is None or session_id is None or owner is None:
            return Ok(WebhookOutcome(event.id, event.type, payment_status=status))

        placed = await self._place_order(
            event.payment_intent_id, session_id, owner, metadata.get(META_EMAIL)
        )
        match placed:
            case Ok(order_id):
                return Ok(
                    WebhookOutcome(event.id, event.type, payment_status=status, order_id=order_id)
                )
            case Error(e) if e.retryable:
                return Error(e)
            case Error(e):
                log.error(
                    "webhook_order_failed",
                    event_id=event.id,
                    payment_intent_id=event.payment_intent_id,
                    error=e.code,
                    message=e.message,
                )
                return Ok(WebhookOutcome(event.id, event.type, payment_status=status, error=e))

    async def _record(self, event: PaymentEvent) -> bool:
        try:
            async with self._session_factory() as session:
                session.add(
                    WebhookEventTable(
                        event_id=event.id,
                        provider=self._provider,
                        event_type=event.type,
                        received_at=self._clock(),
                    )
                )
                await session.commit()
                return True
        except IntegrityError:
            return False

    async def _forget(self, event_id: str) -> None:
        async with self._session_factory() as session:
            await session.execute(
                delete(WebhookEventTable).where(WebhookEventTable.event_id == event_id)
            )
            await session.commit()


__all__ = (
    "META_SESSION",
    "META_OWNER_KIND",
    "META_OWNER_ID",
    "META_EMAIL",
    "PlaceOrder",
    "WebhookOutcome",
    "WebhookProcessor",
    "owner_from_metadata",
)
