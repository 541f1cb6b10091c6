"""
Payments — processor adapter, tracking records and webhooks.

    from storefront.payments import PaymentAdapter, MemoryProcessor

    adapter = PaymentAdapter(MemoryProcessor(), timeout_seconds=10)
    match await adapter.create_intent(3160, "USD", {"checkout_session_id": sid}):
        case Ok(intent):
            ...
        case Error(e):
            ...  # INVALID_AMOUNT, PAYMENT_PROVIDER_UNAVAILABLE (retryable)
"""

from storefront.payments._types import (
    IntentStatus,
    PaymentIntent,
    EventType,
    PaymentEvent,
    ProcessorError,
    IntentNotFound,
    InvalidSignature,
    PaymentProcessor,
    PaymentRecordStatus,
    PaymentRecord,
)
from storefront.payments._processor import (
    StripeProcessor,
    MemoryProcessor,
)
from storefront.payments._adapter import PaymentAdapter
from storefront.payments._records import PaymentRecords
from storefront.payments._webhooks import (
    META_SESSION,
    META_OWNER_KIND,
    META_OWNER_ID,
    META_EMAIL,
    PlaceOrder,
    WebhookOutcome,
    WebhookProcessor,
)

__all__ = (
    # Types
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
    # Processors
    "StripeProcessor",
    "MemoryProcessor",
    # Adapter
    "PaymentAdapter",
    # Records + webhooks
    "PaymentRecords",
    "META_SESSION",
    "META_OWNER_KIND",
    "META_OWNER_ID",
    "META_EMAIL",
    "PlaceOrder",
    "WebhookOutcome",
    "WebhookProcessor",
)
