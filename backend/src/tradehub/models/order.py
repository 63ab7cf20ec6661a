"""Order and order item models."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import List

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tradehub.core.database import Base
from tradehub.models.base import TimestampMixin, enum_column
from tradehub.models.enums import (
    FulfillmentStatus,
    ItemFulfillmentStatus,
    OrderStatus,
    PaymentStatus,
    ProductSource,
)


class Order(Base, TimestampMixin):
    """Customer order.

    ``vendor_order_id`` is written at most once, by the vendor batch job,
    after a successful CreateSalesOrder call.
    """

    __tablename__ = "orders"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    order_number: Mapped[str] = mapped_column(
        String(32),
        unique=True,
        nullable=False,
    )
    customer_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    guest_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[OrderStatus] = mapped_column(
        enum_column(OrderStatus),
        nullable=False,
        default=OrderStatus.pending,
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        enum_column(PaymentStatus),
        nullable=False,
        default=PaymentStatus.unpaid,
    )
    fulfillment_status: Mapped[FulfillmentStatus] = mapped_column(
        enum_column(FulfillmentStatus),
        nullable=False,
        default=FulfillmentStatus.pending,
    )
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    payment_transaction_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    tax: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    shipping_cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")
    billing_address_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("addresses.address_id"), nullable=True
    )
    shipping_address_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("addresses.address_id"), nullable=True
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    vendor_order_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    vendor_order_created_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    own_items_fulfilled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)
    # Optimistic lock, bumped by every status-changing claim
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Relationships (load explicitly with selectinload)
    items: Mapped[List["OrderItem"]] = relationship(
        "OrderItem", back_populates="order", order_by="OrderItem.created_at"
    )

    __table_args__ = (
        CheckConstraint(
            "customer_id IS NOT NULL OR guest_email IS NOT NULL",
            name="chk_order_has_customer",
        ),
        Index("idx_orders_status_payment", "status", "payment_status"),
        Index("idx_orders_vendor_order", "vendor_order_id"),
    )


class OrderItem(Base, TimestampMixin):
    """Order line with a price snapshot taken at order creation."""

    __tablename__ = "order_items"

    item_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("orders.order_id", ondelete="CASCADE"),
        nullable=False,
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("products.product_id"),
        nullable=False,
    )
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    product_sku: Mapped[str] = mapped_column(String(100), nullable=False)
    product_source: Mapped[ProductSource] = mapped_column(
        enum_column(ProductSource),
        nullable=False,
    )
    vendor_article_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    base_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    fulfillment_status: Mapped[ItemFulfillmentStatus] = mapped_column(
        enum_column(ItemFulfillmentStatus),
        nullable=False,
        default=ItemFulfillmentStatus.pending,
    )
    reserved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    stock_deducted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    shipped_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    released_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    order: Mapped["Order"] = relationship("Order", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="chk_order_item_quantity_positive"),
        CheckConstraint(
            "product_source = 'own' OR vendor_article_id IS NOT NULL",
            name="chk_order_item_vendor_article",
        ),
        Index("idx_order_items_order", "order_id"),
        Index("idx_order_items_source_status", "product_source", "fulfillment_status"),
    )
