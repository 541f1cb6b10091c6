"""
Settings — environment-driven configuration.

Every field can be set from the environment with the STOREFRONT_ prefix:

    STOREFRONT_DATABASE_URL=postgresql+asyncpg://...
    STOREFRONT_TAX_RATE=0.0725
    STOREFRONT_SHIPPING_TIERS='[[75, 0], [25, 5]]'
    STOREFRONT_DISCOUNT_CODES='{"WELCOME10": 10}'
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Storefront pipeline configuration."""

    model_config = SettingsConfigDict(
        env_prefix="STOREFRONT_",
        env_file=".env",
        extra="ignore",
        frozen=True,
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./storefront.db",
        description="SQLAlchemy async database URL",
    )
    currency: str = Field(default="USD", min_length=3, max_length=3)

    # Pricing
    tax_rate: Decimal = Field(default=Decimal("0.08"), ge=0, le=1)
    shipping_tiers: list[tuple[Decimal, Decimal]] = Field(
        default_factory=lambda: [
            (Decimal("75"), Decimal("0")),
            (Decimal("25"), Decimal("5")),
        ],
        description="(subtotal threshold, shipping cost), first match from highest wins",
    )
    standard_shipping: Decimal = Field(default=Decimal("10"), ge=0)
    discount_codes: dict[str, Decimal] = Field(
        default_factory=dict,
        description="Upper-cased code → percent off the subtotal",
    )

    # Checkout
    session_ttl_minutes: int = Field(default=30, gt=0)
    low_stock_threshold: int = Field(default=5, ge=0)

    # Orders
    order_number_prefix: str = "SF"
    order_number_attempts: int = Field(default=5, ge=1)

    # Payments
    payment_timeout_seconds: float = Field(default=10.0, gt=0)
    stripe_secret_key: str | None = None
    stripe_webhook_secret: str | None = None

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, v: str) -> str:
        return v.upper()

    @field_validator("shipping_tiers")
    @classmethod
    def _sort_tiers(cls, v: list[tuple[Decimal, Decimal]]) -> list[tuple[Decimal, Decimal]]:
        return sorted(v, key=lambda tier: tier[0], reverse=True)

    @field_validator("discount_codes")
    @classmethod
    def _upper_codes(cls, v: dict[str, Decimal]) -> dict[str, Decimal]:
        return {code.strip().upper(): pct for code, pct in v.items()}

    @property
    def session_ttl(self) -> timedelta:
        return timedelta(minutes=self.session_ttl_minutes)


__all__ = ("Settings",)
