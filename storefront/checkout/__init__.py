"""
Checkout — sessions that freeze a cart into a priced quote.

    from storefront.checkout import CheckoutSessionManager, SessionStatus

    match await manager.create_session(owner, destination_country="US"):
        case Ok(session):
            ...  # session.total, session.expires_at
        case Error(e):
            ...  # EMPTY_CART, OUT_OF_STOCK
"""

from storefront.checkout._types import (
    SessionStatus,
    can_transition,
    InvalidTransition,
    CheckoutLineSnapshot,
    CheckoutSession,
)
from storefront.checkout._manager import (
    CheckoutSessionManager,
    to_session,
    transition,
)

__all__ = (
    "SessionStatus",
    "can_transition",
    "InvalidTransition",
    "CheckoutLineSnapshot",
    "CheckoutSession",
    "CheckoutSessionManager",
    "to_session",
    "transition",
)
