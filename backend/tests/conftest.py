"""Pytest configuration and fixtures for testing."""

import itertools
from decimal import Decimal
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tradehub.core.database import Base
from tradehub.models import (
    Address,
    ItemFulfillmentStatus,
    Order,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    Product,
    ProductSource,
    Reservation,
)
from tradehub.services.vendor_client import (
    VendorApiClient,
    VendorReleaseResult,
    VendorReservationResult,
    VendorSalesOrderResult,
)


# In-memory database shared by every session of one test
@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db(engine) -> AsyncGenerator[AsyncSession, None]:
    """Session configured like the application's (no expiry on commit)."""
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with maker() as session:
        yield session


async def reload(db: AsyncSession, model, pk):
    """Fetch the committed row state, bypassing the identity map."""
    result = await db.execute(
        select(model)
        .where(model.__mapper__.primary_key[0] == pk)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def reservations_for(db: AsyncSession, order_id) -> list[Reservation]:
    result = await db.execute(
        select(Reservation)
        .where(Reservation.order_id == order_id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def items_for(db: AsyncSession, order_id) -> list[OrderItem]:
    result = await db.execute(
        select(OrderItem)
        .where(OrderItem.order_id == order_id)
        .order_by(OrderItem.product_sku)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


_sku_counter = itertools.count(1)


@pytest.fixture
def make_product(db: AsyncSession):
    """Factory for products with a full ledger."""

    async def _make(
        source: ProductSource = ProductSource.vendor,
        available: int = 10,
        reserved: int = 0,
        price: str = "10.00",
        is_available: bool = True,
    ) -> Product:
        n = next(_sku_counter)
        product = Product(
            sku=f"SKU-{n:05d}",
            name=f"Product {n}",
            product_source=source,
            vendor_article_id=f"ART-{n:05d}" if source is ProductSource.vendor else None,
            base_price=Decimal(price) / 2,
            price=Decimal(price),
            stock_quantity=available + reserved,
            available_quantity=available,
            reserved_quantity=reserved,
            is_available=is_available,
        )
        db.add(product)
        await db.commit()
        return product

    return _make


@pytest.fixture
def make_order(db: AsyncSession):
    """Factory for orders with one item per (product, quantity) pair."""

    async def _make(
        lines: list[tuple[Product, int]],
        status: OrderStatus = OrderStatus.pending,
        payment_status: PaymentStatus = PaymentStatus.unpaid,
        guest_email: str | None = "guest@example.com",
    ) -> Order:
        address = Address(
            first_name="Erika",
            last_name="Mustermann",
            address_line1="Hauptstr. 1",
            city="Berlin",
            postal_code="10115",
            country="DE",
        )
        db.add(address)
        await db.flush()

        subtotal = sum((p.price * q for p, q in lines), Decimal("0"))
        order = Order(
            order_number=f"TT{uuid4().hex[:12].upper()}",
            guest_email=guest_email,
            status=status,
            payment_status=payment_status,
            subtotal=subtotal,
            tax=Decimal("0.00"),
            shipping_cost=Decimal("0.00"),
            total=subtotal,
            billing_address_id=address.address_id,
            shipping_address_id=address.address_id,
        )
        db.add(order)
        await db.flush()

        for product, quantity in lines:
            db.add(
                OrderItem(
                    order_id=order.order_id,
                    product_id=product.product_id,
                    product_name=product.name,
                    product_sku=product.sku,
                    product_source=product.product_source,
                    vendor_article_id=product.vendor_article_id,
                    quantity=quantity,
                    base_price=product.base_price,
                    price=product.price,
                    subtotal=product.price * quantity,
                    fulfillment_status=ItemFulfillmentStatus.pending,
                )
            )
        await db.commit()
        return order

    return _make


# Mock vendor client fixture
@pytest.fixture
def mock_vendor() -> AsyncMock:
    """Create a mock vendor client that accepts every call."""
    vendor = AsyncMock(spec=VendorApiClient)
    counter = itertools.count(1)

    async def reserve(article_id, quantity):
        return VendorReservationResult(success=True, reservation_id=f"VR-{next(counter)}")

    vendor.reserve_item = AsyncMock(side_effect=reserve)
    vendor.release_item = AsyncMock(return_value=VendorReleaseResult(success=True))
    vendor.submit_sales_order = AsyncMock(
        return_value=VendorSalesOrderResult(success=True, order_id="VO-1001")
    )
    return vendor


def reserve_failing_for(*article_ids: str):
    """side_effect for reserve_item that rejects the given articles."""
    counter = itertools.count(1)

    async def reserve(article_id, quantity):
        if article_id in article_ids:
            return VendorReservationResult(success=False, message="Out of stock at vendor")
        return VendorReservationResult(success=True, reservation_id=f"VR-{next(counter)}")

    return reserve


# Mock Redis client fixture
@pytest.fixture
def mock_redis() -> AsyncMock:
    """Create a mock Redis client."""
    redis = AsyncMock()

    # Mock common Redis operations
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=1)
    redis.register_script = MagicMock(return_value=AsyncMock(return_value=1))

    return redis
