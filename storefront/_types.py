"""
Core types for storefront.

Re-exports from kungfu + identity of a cart/order owner.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

# Re-export from kungfu
from kungfu import Result, Ok, Error, Option, Some, Nothing, LazyCoroResult

# ═══════════════════════════════════════════════════════════════════════════════
# Owner Identity
# ═══════════════════════════════════════════════════════════════════════════════


class OwnerKind(Enum):
    USER = "user"
    GUEST = "guest"


@dataclass(frozen=True, slots=True)
class OwnerKey:
    """
    Who a cart, checkout session or order belongs to.

    Either an authenticated user id or an anonymous session token, never both.
    Passed explicitly into every call — nothing reads ambient session state.
    """

    kind: OwnerKind
    id: str

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("OwnerKey.id must be non-empty")

    @classmethod
    def user(cls, user_id: str) -> OwnerKey:
        return cls(OwnerKind.USER, user_id)

    @classmethod
    def guest(cls, token: str) -> OwnerKey:
        return cls(OwnerKind.GUEST, token)

    @property
    def is_guest(self) -> bool:
        return self.kind == OwnerKind.GUEST

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"


# ═══════════════════════════════════════════════════════════════════════════════
# Clock
# ═══════════════════════════════════════════════════════════════════════════════

type Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Naive UTC now, the format every timestamp column stores."""
    return datetime.now(UTC).replace(tzinfo=None)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    # Re-exports from kungfu
    "Result",
    "Ok",
    "Error",
    "Option",
    "Some",
    "Nothing",
    "LazyCoroResult",
    # Identity
    "OwnerKind",
    "OwnerKey",
    # Clock
    "Clock",
    "utcnow",
)
