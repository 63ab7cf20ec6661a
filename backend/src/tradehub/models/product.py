"""Product model with the stock ledger counters."""

import uuid
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Index, Integer, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from tradehub.core.database import Base
from tradehub.models.base import TimestampMixin, enum_column
from tradehub.models.enums import ProductSource


class Product(Base, TimestampMixin):
    """Sellable product, sourced from the vendor or from own inventory.

    The three ledger counters are only ever written through
    InventoryService.reserve_stock / release_stock.
    """

    __tablename__ = "products"

    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    sku: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    product_source: Mapped[ProductSource] = mapped_column(
        enum_column(ProductSource),
        nullable=False,
        default=ProductSource.vendor,
    )
    vendor_article_id: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )
    base_price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
    )
    price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
    )
    stock_quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    available_quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    reserved_quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    is_available: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    __table_args__ = (
        CheckConstraint("available_quantity >= 0", name="chk_product_available_nonneg"),
        CheckConstraint("reserved_quantity >= 0", name="chk_product_reserved_nonneg"),
        CheckConstraint("price >= 0", name="chk_product_price_nonneg"),
        Index("idx_products_vendor_article", "vendor_article_id"),
    )
