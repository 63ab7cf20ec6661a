"""Seed data script for development and testing.

Creates:
- VENDOR_PRODUCT_COUNT vendor-sourced products (article ids ART-0001...)
- OWN_PRODUCT_COUNT own-inventory products
- One demo guest order mixing both sources (unpaid)

Environment Variables:
    RESET_DATA: Set to "true" to clear orders and products before seeding (default: false)
    VENDOR_PRODUCT_COUNT: Number of vendor products (default: 5)
    OWN_PRODUCT_COUNT: Number of own products (default: 3)
    INITIAL_STOCK: available_quantity of every seeded product (default: 20)

Usage:
    # First time setup
    python -m scripts.seed_data

    # Start over
    RESET_DATA=true python -m scripts.seed_data
"""

import asyncio
import os
import random
from decimal import Decimal

# Configuration from environment variables
RESET_DATA = os.getenv("RESET_DATA", "false").lower() == "true"
VENDOR_PRODUCT_COUNT = int(os.getenv("VENDOR_PRODUCT_COUNT", "5"))
OWN_PRODUCT_COUNT = int(os.getenv("OWN_PRODUCT_COUNT", "3"))
INITIAL_STOCK = int(os.getenv("INITIAL_STOCK", "20"))

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from tradehub.core.context import CallerContext
from tradehub.core.database import async_session_maker, engine
from tradehub.models import Product, ProductSource
from tradehub.schemas.order import AddressCreate, CartItem, OrderCreate
from tradehub.services.order_service import OrderService


async def reset_data(session: AsyncSession) -> None:
    """Clear reservations, orders, addresses and products."""
    print("Resetting data...")
    for table in ["reservations", "order_items", "orders", "addresses", "products"]:
        await session.execute(text(f"DELETE FROM {table}"))
    await session.commit()
    print("  Cleared reservations, orders, addresses, products")


async def seed_products(session: AsyncSession) -> list[Product]:
    """Create vendor and own products with a full ledger."""
    print("Seeding products...")

    # Check if products already exist
    result = await session.execute(select(Product).limit(1))
    if result.scalar_one_or_none():
        print("  Products already exist, skipping...")
        result = await session.execute(select(Product))
        return list(result.scalars().all())

    products = []
    for i in range(1, VENDOR_PRODUCT_COUNT + 1):
        base_price = Decimal(str(round(random.uniform(5.0, 80.0), 2)))
        products.append(
            Product(
                sku=f"VEN-{i:04d}",
                name=f"Vendor Product {i}",
                product_source=ProductSource.vendor,
                vendor_article_id=f"ART-{i:04d}",
                base_price=base_price,
                price=(base_price * Decimal("1.35")).quantize(Decimal("0.01")),
                stock_quantity=INITIAL_STOCK,
                available_quantity=INITIAL_STOCK,
            )
        )

    for i in range(1, OWN_PRODUCT_COUNT + 1):
        base_price = Decimal(str(round(random.uniform(10.0, 120.0), 2)))
        products.append(
            Product(
                sku=f"OWN-{i:04d}",
                name=f"Own Product {i}",
                product_source=ProductSource.own,
                base_price=base_price,
                price=(base_price * Decimal("1.5")).quantize(Decimal("0.01")),
                stock_quantity=INITIAL_STOCK,
                available_quantity=INITIAL_STOCK,
            )
        )

    session.add_all(products)
    await session.commit()

    print(f"  Created {VENDOR_PRODUCT_COUNT} vendor and {OWN_PRODUCT_COUNT} own products")
    return products


async def seed_demo_order(session: AsyncSession, products: list[Product]) -> None:
    """Create one unpaid guest order with a vendor line and an own line."""
    vendor = next((p for p in products if p.product_source is ProductSource.vendor), None)
    own = next((p for p in products if p.product_source is ProductSource.own), None)
    if vendor is None or own is None:
        print("  Need at least one vendor and one own product for the demo order, skipping...")
        return

    print("Seeding demo order...")
    order = await OrderService(session).create_order(
        CallerContext.system(),
        OrderCreate(
            guest_email="guest@example.com",
            items=[
                CartItem(product_id=vendor.product_id, quantity=2),
                CartItem(product_id=own.product_id, quantity=1),
            ],
            billing_address=AddressCreate(
                first_name="Erika",
                last_name="Mustermann",
                address_line1="Hauptstr. 1",
                city="Berlin",
                postal_code="10115",
                country="DE",
            ),
            payment_method="card",
        ),
    )
    print(f"  Created order {order.order_number} (total={order.total})")
    print(f"  Guest token: {order.guest_token}")


async def main():
    """Main seed function."""
    print("=" * 60)
    print("TradeHub - Seed Data Script")
    print("=" * 60)
    print(f"  RESET_DATA: {RESET_DATA}")
    print(f"  VENDOR_PRODUCT_COUNT: {VENDOR_PRODUCT_COUNT}")
    print(f"  OWN_PRODUCT_COUNT: {OWN_PRODUCT_COUNT}")
    print(f"  INITIAL_STOCK: {INITIAL_STOCK}")
    print("=" * 60)

    async with async_session_maker() as session:
        if RESET_DATA:
            await reset_data(session)

        products = await seed_products(session)
        await seed_demo_order(session, products)

    print("=" * 60)
    print("Seed data complete!")
    print(f"  Products: {len(products)}")
    print("=" * 60)

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
