"""
Payment processors — Stripe and an in-process stand-in.

Processors raise; storefront.payments.PaymentAdapter turns exceptions into
Result values.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any

import stripe
import structlog

from storefront.payments._types import (
    IntentNotFound,
    IntentStatus,
    InvalidSignature,
    PaymentEvent,
    PaymentIntent,
    ProcessorError,
)

log = structlog.get_logger(__name__)


def _intent_id_of(obj: Mapping[str, Any]) -> str | None:
    """payment_intent objects carry their own id; charges point at one."""
    if obj.get("object") == "payment_intent":
        return obj.get("id")
    intent = obj.get("payment_intent")
    if isinstance(intent, Mapping):
        return intent.get("id")
    return intent


def event_from_dict(event: Mapping[str, Any]) -> PaymentEvent:
    obj: Mapping[str, Any] = event.get("data", {}).get("object", {})
    return PaymentEvent(
        id=str(event["id"]),
        type=str(event["type"]),
        payment_intent_id=_intent_id_of(obj),
        metadata={str(k): str(v) for k, v in (obj.get("metadata") or {}).items()},
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Stripe
# ═══════════════════════════════════════════════════════════════════════════════


_STRIPE_STATUS: dict[str, IntentStatus] = {
    "requires_payment_method": IntentStatus.REQUIRES_ACTION,
    "requires_confirmation": IntentStatus.REQUIRES_ACTION,
    "requires_action": IntentStatus.REQUIRES_ACTION,
    "requires_capture": IntentStatus.PROCESSING,
    "processing": IntentStatus.PROCESSING,
    "succeeded": IntentStatus.SUCCEEDED,
    "canceled": IntentStatus.FAILED,
}


class StripeProcessor:
    """
    Stripe PaymentIntents through the SDK's async API.

    Example:
        processor = StripeProcessor(settings.stripe_secret_key, settings.stripe_webhook_secret)
    """

    def __init__(self, api_key: str, webhook_secret: str | None = None) -> None:
        self._api_key = api_key
        self._webhook_secret = webhook_secret

    def _to_intent(self, pi: stripe.PaymentIntent) -> PaymentIntent:
        return PaymentIntent(
            id=pi.id,
            amount=pi.amount,
            currency=pi.currency.upper(),
            status=_STRIPE_STATUS.get(pi.status, IntentStatus.PROCESSING),
            client_secret=pi.client_secret,
            metadata=dict(pi.metadata or {}),
            receipt_email=pi.receipt_email,
        )

    async def create_payment_intent(
        self,
        amount: int,
        currency: str,
        metadata: Mapping[str, str],
        receipt_email: str | None = None,
    ) -> PaymentIntent:
        params: dict[str, Any] = {
            "amount": amount,
            "currency": currency.lower(),
            "metadata": dict(metadata),
            "automatic_payment_methods": {"enabled": True},
        }
        if receipt_email:
            params["receipt_email"] = receipt_email
        try:
            pi = await stripe.PaymentIntent.create_async(api_key=self._api_key, **params)
        except stripe.StripeError as e:
            raise ProcessorError(f"stripe create failed: {e.user_message or e}") from e
        return self._to_intent(pi)

    async def retrieve_payment_intent(self, intent_id: str) -> PaymentIntent:
        try:
            pi = await stripe.PaymentIntent.retrieve_async(intent_id, api_key=self._api_key)
        except stripe.InvalidRequestError as e:
            if e.http_status == 404:
                raise IntentNotFound(intent_id) from e
            raise ProcessorError(f"stripe retrieve failed: {e.user_message or e}") from e
        except stripe.StripeError as e:
            raise ProcessorError(f"stripe retrieve failed: {e.user_message or e}") from e
        return self._to_intent(pi)

    def parse_event(self, payload: bytes, signature: str | None) -> PaymentEvent:
        if not self._webhook_secret or not signature:
            raise InvalidSignature("webhook secret or signature missing")
        try:
            event = stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        except stripe.SignatureVerificationError as e:
            log.warning("webhook_signature_invalid", error=str(e))
            raise InvalidSignature(str(e)) from e
        except ValueError as e:
            raise InvalidSignature(f"malformed payload: {e}") from e
        return event_from_dict(event.to_dict())


# ═══════════════════════════════════════════════════════════════════════════════
# In-process processor
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass
class MemoryProcessor:
    """
    Processor double for tests and local runs.

    Example:
        processor = MemoryProcessor()
        intent = await processor.create_payment_intent(3160, "USD", {})
        processor.succeed(intent.id)

        processor.outage = True    # every call raises ProcessorError
        processor.latency = 5.0    # every call sleeps first
    """

    webhook_secret: str | None = None
    outage: bool = False
    latency: float = 0.0

    def __post_init__(self) -> None:
        self.intents: dict[str, PaymentIntent] = {}
        self.calls: list[str] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def _enter(self, call: str) -> None:
        self.calls.append(call)
        if self.latency:
            await asyncio.sleep(self.latency)
        if self.outage:
            raise ProcessorError(f"{call}: processor unavailable")

    async def create_payment_intent(
        self,
        amount: int,
        currency: str,
        metadata: Mapping[str, str],
        receipt_email: str | None = None,
    ) -> PaymentIntent:
        await self._enter("create_payment_intent")
        intent_id = f"pi_{uuid.uuid4().hex[:24]}"
        intent = PaymentIntent(
            id=intent_id,
            amount=amount,
            currency=currency.upper(),
            status=IntentStatus.REQUIRES_ACTION,
            client_secret=f"{intent_id}_secret_{uuid.uuid4().hex[:12]}",
            metadata=dict(metadata),
            receipt_email=receipt_email,
        )
        self.intents[intent_id] = intent
        return intent

    async def retrieve_payment_intent(self, intent_id: str) -> PaymentIntent:
        await self._enter("retrieve_payment_intent")
        intent = self.intents.get(intent_id)
        if intent is None:
            raise IntentNotFound(intent_id)
        return intent

    def parse_event(self, payload: bytes, signature: str | None) -> PaymentEvent:
        if self.webhook_secret is not None and signature != self.webhook_secret:
            raise InvalidSignature("signature mismatch")
        try:
            event = json.loads(payload)
            return event_from_dict(event)
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise InvalidSignature(f"malformed payload: {e}") from e

    # ───────────────────────────────────────────────────────────────────────────
    # Test controls
    # ───────────────────────────────────────────────────────────────────────────

    def set_status(self, intent_id: str, status: IntentStatus) -> PaymentIntent:
        intent = replace(self.intents[intent_id], status=status)
        self.intents[intent_id] = intent
        return intent

    def succeed(self, intent_id: str) -> PaymentIntent:
        return self.set_status(intent_id, IntentStatus.SUCCEEDED)

    def fail(self, intent_id: str) -> PaymentIntent:
        return self.set_status(intent_id, IntentStatus.FAILED)

    def add_intent(
        self,
        amount: int,
        currency: str = "USD",
        status: IntentStatus = IntentStatus.SUCCEEDED,
        metadata: Mapping[str, str] | None = None,
        intent_id: str | None = None,
    ) -> PaymentIntent:
        """Register an intent directly, bypassing create_payment_intent."""
        intent = PaymentIntent(
            id=intent_id or f"pi_{uuid.uuid4().hex[:24]}",
            amount=amount,
            currency=currency.upper(),
            status=status,
            metadata=dict(metadata or {}),
        )
        self.intents[intent.id] = intent
        return intent

    def event_payload(self, event_type: str, intent_id: str, event_id: str | None = None) -> bytes:
        """Stripe-shaped event body for an intent this processor knows."""
        intent = self.intents[intent_id]
        obj: dict[str, Any]
        if event_type.startswith("charge."):
            obj = {
                "object": "charge",
                "id": f"ch_{uuid.uuid4().hex[:24]}",
                "payment_intent": intent_id,
                "metadata": dict(intent.metadata),
            }
        else:
            obj = {"object": "payment_intent", "id": intent_id, "metadata": dict(intent.metadata)}
        return json.dumps(
            {
                "id": event_id or f"evt_{uuid.uuid4().hex[:24]}",
                "type": event_type,
                "data": {"object": obj},
            }
        ).encode()


__all__ = (
    "StripeProcessor",
    "MemoryProcessor",
    "event_from_dict",
)
