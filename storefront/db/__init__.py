"""
DB — SQLAlchemy tables and engine setup.

    from storefront import db

    session_factory, engine = await db.create_database("sqlite+aiosqlite:///shop.db")
"""

from storefront.db._tables import (
    Base,
    ProductTable,
    VariantTable,
    CartLineTable,
    CheckoutSessionTable,
    OrderTable,
    OrderItemTable,
    PaymentLinkTable,
    PaymentTable,
    WebhookEventTable,
    InventoryMovementTable,
)
from storefront.db._engine import create_database

__all__ = (
    "Base",
    "ProductTable",
    "VariantTable",
    "CartLineTable",
    "CheckoutSessionTable",
    "OrderTable",
    "OrderItemTable",
    "PaymentLinkTable",
    "PaymentTable",
    "WebhookEventTable",
    "InventoryMovementTable",
    "create_database",
)
