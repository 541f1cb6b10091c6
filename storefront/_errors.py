"""
Checkout errors — one error type, many kinds.

Operations return Result[T, CheckoutError]; kinds are user-actionable except
ORDER_NUMBER_EXHAUSTED and STORE_UNAVAILABLE, which are operator signals.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum, auto
from typing import Any


class CheckoutErrorKind(Enum):
    """Kinds of checkout pipeline errors."""

    EMPTY_CART = auto()
    OUT_OF_STOCK = auto()  # details: per-line requested/available
    SESSION_EXPIRED = auto()
    SESSION_NOT_FOUND = auto()
    SESSION_CONSUMED = auto()  # session already turned into another order
    INVALID_AMOUNT = auto()
    PAYMENT_NOT_COMPLETE = auto()
    PAYMENT_PROVIDER_UNAVAILABLE = auto()  # retryable, never a payment failure
    ORDER_NUMBER_EXHAUSTED = auto()
    NOT_FOUND = auto()  # includes ownership violations
    STALE_QUOTE = auto()  # details: per-line price drift
    STORE_UNAVAILABLE = auto()


_RETRYABLE = frozenset(
    {
        CheckoutErrorKind.PAYMENT_PROVIDER_UNAVAILABLE,
        CheckoutErrorKind.PAYMENT_NOT_COMPLETE,
        CheckoutErrorKind.STORE_UNAVAILABLE,
    }
)


@dataclass(frozen=True, slots=True)
class CheckoutError:
    """
    Checkout pipeline error.

    Note: details — structured payload for the client (e.g. stock conflicts),
    always JSON-friendly.
    """

    kind: CheckoutErrorKind
    message: str
    details: dict[str, Any] = field(default_factory=dict[str, Any])

    @property
    def code(self) -> str:
        return self.kind.name.lower()

    @property
    def retryable(self) -> bool:
        return self.kind in _RETRYABLE

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "retryable": self.retryable,
        }


# ═══════════════════════════════════════════════════════════════════════════════
# Constructors
# ═══════════════════════════════════════════════════════════════════════════════


class Errors:
    """Named constructors for every error kind."""

    @staticmethod
    def empty_cart() -> CheckoutError:
        return CheckoutError(CheckoutErrorKind.EMPTY_CART, "Cart is empty")

    @staticmethod
    def out_of_stock(lines: list[dict[str, Any]]) -> CheckoutError:
        return CheckoutError(
            CheckoutErrorKind.OUT_OF_STOCK,
            "One or more items are out of stock",
            {"lines": lines},
        )

    @staticmethod
    def session_expired(session_id: str) -> CheckoutError:
        return CheckoutError(
            CheckoutErrorKind.SESSION_EXPIRED,
            f"Checkout session {session_id} has expired, re-quote from the cart",
            {"session_id": session_id, "can_proceed": False},
        )

    @staticmethod
    def session_not_found(session_id: str) -> CheckoutError:
        return CheckoutError(
            CheckoutErrorKind.SESSION_NOT_FOUND,
            f"Checkout session {session_id} not found",
            {"session_id": session_id},
        )

    @staticmethod
    def session_consumed(session_id: str, order_id: str | None) -> CheckoutError:
        return CheckoutError(
            CheckoutErrorKind.SESSION_CONSUMED,
            f"Checkout session {session_id} was already used for an order",
            {"session_id": session_id, "order_id": order_id},
        )

    @staticmethod
    def invalid_amount(amount: object) -> CheckoutError:
        return CheckoutError(
            CheckoutErrorKind.INVALID_AMOUNT,
            "Payment amount must be a positive integer in minor units",
            {"amount": repr(amount)},
        )

    @staticmethod
    def payment_not_complete(intent_id: str, status: str) -> CheckoutError:
        return CheckoutError(
            CheckoutErrorKind.PAYMENT_NOT_COMPLETE,
            "Payment not completed. Please complete payment first.",
            {"payment_intent_id": intent_id, "status": status},
        )

    @staticmethod
    def provider_unavailable(reason: str) -> CheckoutError:
        return CheckoutError(
            CheckoutErrorKind.PAYMENT_PROVIDER_UNAVAILABLE,
            "Payment provider unavailable, retry later",
            {"reason": reason},
        )

    @staticmethod
    def order_number_exhausted(attempts: int) -> CheckoutError:
        return CheckoutError(
            CheckoutErrorKind.ORDER_NUMBER_EXHAUSTED,
            f"Could not allocate a unique order number after {attempts} attempts",
            {"attempts": attempts},
        )

    @staticmethod
    def not_found(entity: str, entity_id: str) -> CheckoutError:
        return CheckoutError(
            CheckoutErrorKind.NOT_FOUND,
            f"{entity} {entity_id} not found",
            {"entity": entity, "id": entity_id},
        )

    @staticmethod
    def stale_quote(drift: list[dict[str, Any]]) -> CheckoutError:
        return CheckoutError(
            CheckoutErrorKind.STALE_QUOTE,
            "Prices changed since the quote was made, please review the new totals",
            {"lines": drift},
        )

    @staticmethod
    def store_unavailable(reason: str) -> CheckoutError:
        return CheckoutError(
            CheckoutErrorKind.STORE_UNAVAILABLE,
            "Order store unavailable, retry later",
            {"reason": reason},
        )


def money_str(value: Decimal) -> str:
    """Decimal → JSON-safe string for error details."""
    return format(value, "f")


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "CheckoutErrorKind",
    "CheckoutError",
    "Errors",
    "money_str",
)
