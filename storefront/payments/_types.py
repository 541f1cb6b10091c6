"""
Payment types — intents, processor events, tracking records.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Protocol

from storefront._types import OwnerKey


# ═══════════════════════════════════════════════════════════════════════════════
# Intent
# ═══════════════════════════════════════════════════════════════════════════════


class IntentStatus(Enum):
    REQUIRES_ACTION = "requires_action"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class PaymentIntent:
    """Processor-side payment. amount is in minor units."""

    id: str
    amount: int
    currency: str
    status: IntentStatus
    client_secret: str | None = None
    metadata: Mapping[str, str] = field(default_factory=dict[str, str])
    receipt_email: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == IntentStatus.SUCCEEDED


# ═══════════════════════════════════════════════════════════════════════════════
# Events
# ═══════════════════════════════════════════════════════════════════════════════


class EventType(Enum):
    INTENT_SUCCEEDED = "payment_intent.succeeded"
    INTENT_FAILED = "payment_intent.payment_failed"
    CHARGE_REFUNDED = "charge.refunded"


@dataclass(frozen=True, slots=True)
class PaymentEvent:
    """
    Processor webhook event, reduced to what the pipeline reacts to.

    Note: type stays a raw string; events we do not handle are recorded and
    acknowledged.
    """

    id: str
    type: str
    payment_intent_id: str | None
    metadata: Mapping[str, str] = field(default_factory=dict[str, str])


# ═══════════════════════════════════════════════════════════════════════════════
# Processor boundary
# ═══════════════════════════════════════════════════════════════════════════════


class ProcessorError(Exception):
    """Processor call failed (network, 5xx, auth). Always retryable for callers."""


class IntentNotFound(ProcessorError):
    def __init__(self, intent_id: str) -> None:
        super().__init__(f"payment intent {intent_id} not found")
        self.intent_id = intent_id


class InvalidSignature(Exception):
    """Webhook payload failed signature verification or could not be parsed."""


class PaymentProcessor(Protocol):
    async def create_payment_intent(
        self,
        amount: int,
        currency: str,
        metadata: Mapping[str, str],
        receipt_email: str | None = None,
    ) -> PaymentIntent: ...

    async def retrieve_payment_intent(self, intent_id: str) -> PaymentIntent: ...

    def parse_event(self, payload: bytes, signature: str | None) -> PaymentEvent: ...


# ═══════════════════════════════════════════════════════════════════════════════
# Tracking record
# ═══════════════════════════════════════════════════════════════════════════════


class PaymentRecordStatus(Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"


@dataclass(frozen=True, slots=True)
class PaymentRecord:
    payment_intent_id: str
    amount: int
    currency: str
    status: PaymentRecordStatus
    checkout_session_id: str | None
    owner: OwnerKey | None
    created_at: datetime
    updated_at: datetime


__all__ = (
    "IntentStatus",
    "PaymentIntent",
    "EventType",
    "PaymentEvent",
    "ProcessorError",
    "IntentNotFound",
    "InvalidSignature",
    "PaymentProcessor",
    "PaymentRecordStatus",
    "PaymentRecord",
)
