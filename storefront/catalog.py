"""
Catalog — read-only view of products and variants.

The pipeline never writes catalog rows, except the stock counter, which is
owned by storefront.inventory.

    catalog = SQLAlchemyCatalog(session_factory, currency="USD")
    variant = await catalog.get_variant("var-tee-m")
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront._money import from_minor_units, to_minor_units
from storefront.db import ProductTable, VariantTable


# ═══════════════════════════════════════════════════════════════════════════════
# Types
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class ProductInfo:
    id: str
    name: str
    price: Decimal


@dataclass(frozen=True, slots=True)
class VariantInfo:
    """
    Variant joined with its product.

    Note: price — effective unit price (variant override or product price).
    """

    id: str
    product_id: str
    name: str
    price: Decimal
    quantity: int


class Catalog(Protocol):
    async def get_product(self, product_id: str) -> ProductInfo | None: ...

    async def get_variant(self, variant_id: str) -> VariantInfo | None: ...

    async def get_variants(self, variant_ids: Iterable[str]) -> dict[str, VariantInfo]: ...


# ═══════════════════════════════════════════════════════════════════════════════
# SQLAlchemy implementation
# ═══════════════════════════════════════════════════════════════════════════════


def _display_name(product: ProductTable, variant: VariantTable) -> str:
    if variant.name:
        return f"{product.name} ({variant.name})"
    return product.name


class SQLAlchemyCatalog:
    """Every call opens its own session, so reads always see committed stock."""

    def __init__(
        self, session_factory: async_sessionmaker[AsyncSession], currency: str = "USD"
    ) -> None:
        self._session_factory = session_factory
        self._currency = currency

    def _variant_info(self, product: ProductTable, variant: VariantTable) -> VariantInfo:
        price_minor = (
            variant.price_minor if variant.price_minor is not None else product.price_minor
        )
        return VariantInfo(
            id=variant.id,
            product_id=product.id,
            name=_display_name(product, variant),
            price=from_minor_units(price_minor, self._currency),
            quantity=variant.quantity,
        )

    async def get_product(self, product_id: str) -> ProductInfo | None:
        async with self._session_factory() as session:
            row = await session.get(ProductTable, product_id)
            if row is None:
                return None
            return ProductInfo(
                id=row.id,
                name=row.name,
                price=from_minor_units(row.price_minor, self._currency),
            )

    async def get_variant(self, variant_id: str) -> VariantInfo | None:
        found = await self.get_variants([variant_id])
        return found.get(variant_id)

    async def get_variants(self, variant_ids: Iterable[str]) -> dict[str, VariantInfo]:
        ids = list(dict.fromkeys(variant_ids))
        if not ids:
            return {}
        async with self._session_factory() as session:
            rows = await session.execute(
                select(ProductTable, VariantTable)
                .join(VariantTable, VariantTable.product_id == ProductTable.id)
                .where(VariantTable.id.in_(ids))
            )
            return {
                variant.id: self._variant_info(product, variant)
                for product, variant in rows.tuples()
            }


# ═══════════════════════════════════════════════════════════════════════════════
# Seeding (tests, local runs)
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class VariantSeed:
    id: str
    quantity: int
    name: str = ""
    price: Decimal | None = None


@dataclass(frozen=True, slots=True)
class ProductSeed:
    id: str
    name: str
    price: Decimal
    variants: Sequence[VariantSeed]


async def seed_catalog(
    session_factory: async_sessionmaker[AsyncSession],
    products: Iterable[ProductSeed],
    currency: str = "USD",
) -> None:
    """Insert products and variants; stock starts at the seeded quantity."""
    async with session_factory() as session:
        async with session.begin():
            for product in products:
                session.add(
                    ProductTable(
                        id=product.id,
                        name=product.name,
                        price_minor=to_minor_units(product.price, currency),
                    )
                )
                for variant in product.variants:
                    session.add(
                        VariantTable(
                            id=variant.id,
                            product_id=product.id,
                            name=variant.name,
                            price_minor=(
                                to_minor_units(variant.price, currency)
                                if variant.price is not None
                                else None
                            ),
                            quantity=variant.quantity,
                            initial_quantity=variant.quantity,
                        )
                    )


__all__ = (
    "ProductInfo",
    "VariantInfo",
    "Catalog",
    "SQLAlchemyCatalog",
    "ProductSeed",
    "VariantSeed",
    "seed_catalog",
)
