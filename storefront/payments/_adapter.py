"""
Payment adapter — processor calls as Result values.

Every call is bounded by a timeout. Anything the processor raises becomes
PAYMENT_PROVIDER_UNAVAILABLE (retryable); it is never reported as a failed
payment.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping

import structlog
from combinators import lift as L

from storefront._errors import CheckoutError, Errors
from storefront._types import Error, Result
from storefront.payments._types import IntentNotFound, PaymentIntent, PaymentProcessor

log = structlog.get_logger(__name__)


class PaymentAdapter:
    """
    Example:
        adapter = PaymentAdapter(MemoryProcessor(), timeout_seconds=10)
        match await adapter.create_intent(3160, "USD", {"checkout_session_id": sid}):
            case Ok(intent):
                return intent.client_secret
            case Error(e):
                ...  # INVALID_AMOUNT, PAYMENT_PROVIDER_UNAVAILABLE
    """

    def __init__(self, processor: PaymentProcessor, *, timeout_seconds: float = 10.0) -> None:
        self._processor = processor
        self._timeout = timeout_seconds

    @property
    def processor(self) -> PaymentProcessor:
        return self._processor

    async def create_intent(
        self,
        amount_minor_units: int,
        currency: str,
        metadata: Mapping[str, str] | None = None,
        *,
        receipt_email: str | None = None,
    ) -> Result[PaymentIntent, CheckoutError]:
        # bool is an int subclass; True is not one cent.
        if (
            isinstance(amount_minor_units, bool)
            or not isinstance(amount_minor_units, int)
            or amount_minor_units <= 0
        ):
            return Error(Errors.invalid_amount(amount_minor_units))

        return await self._call(
            "create_intent",
            lambda: self._processor.create_payment_intent(
                amount_minor_units, currency, dict(metadata or {}), receipt_email
            ),
        )

    async def retrieve_intent(self, intent_id: str) -> Result[PaymentIntent, CheckoutError]:
        return await self._call(
            "retrieve_intent",
            lambda: self._processor.retrieve_payment_intent(intent_id),
        )

    async def _call(
        self, operation: str, call: Callable[[], Awaitable[PaymentIntent]]
    ) -> Result[PaymentIntent, CheckoutError]:
        async def bounded() -> PaymentIntent:
            async with asyncio.timeout(self._timeout):
                return await call()

        def on_error(e: Exception) -> CheckoutError:
            match e:
                case IntentNotFound(intent_id=intent_id):
                    return Errors.not_found("payment intent", intent_id)
                case TimeoutError():
                    log.warning(
                        "payment_provider_timeout", operation=operation, timeout=self._timeout
                    )
                    return Errors.provider_unavailable(f"{operation} timed out")
                case _:
                    log.warning("payment_provider_error", operation=operation, error=str(e))
                    return Errors.provider_unavailable(str(e))

        return await L.catching_async(bounded, on_error=on_error)


__all__ = ("PaymentAdapter",)
