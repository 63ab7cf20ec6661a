"""Priced product lookup used when an order is created.

The markup rules live elsewhere; this only resolves what the catalog
currently sells a product for so it can be snapshotted onto the order item.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tradehub.models.enums import ProductSource
from tradehub.models.product import Product


@dataclass(frozen=True)
class PricedProduct:
    product_id: UUID
    name: str
    sku: str
    product_source: ProductSource
    vendor_article_id: str | None
    base_price: Decimal
    price: Decimal
    is_available: bool
    available_quantity: int


class PriceLookup(Protocol):
    async def get_priced_products(self, product_ids: list[UUID]) -> dict[UUID, PricedProduct]:
        ...


class CatalogPriceLookup:
    """Reads the current customer price straight from the product catalog."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_priced_products(self, product_ids: list[UUID]) -> dict[UUID, PricedProduct]:
        if not product_ids:
            return {}
        result = await self.db.execute(
            select(Product).where(Product.product_id.in_(set(product_ids)))
        )
        return {
            p.product_id: PricedProduct(
                product_id=p.product_id,
                name=p.name,
                sku=p.sku,
                product_source=p.product_source,
                vendor_article_id=p.vendor_article_id,
                base_price=p.base_price,
                price=p.price,
                is_available=p.is_available,
                available_quantity=p.available_quantity,
            )
            for p in result.scalars().all()
        }
