"""Vendor reservation record, one per vendor-sourced order line."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from tradehub.core.database import Base
from tradehub.models.base import TimestampMixin, enum_column
from tradehub.models.enums import ReservationStatus


class Reservation(Base, TimestampMixin):
    """Correlates an order line with a stock hold at the vendor.

    The compensation_* columns record the outcome of the best-effort vendor
    release performed when the hold is given back.
    """

    __tablename__ = "reservations"

    reservation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("orders.order_id", ondelete="CASCADE"),
        nullable=False,
    )
    order_item_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("order_items.item_id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("products.product_id"),
        nullable=False,
    )
    vendor_article_id: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[ReservationStatus] = mapped_column(
        enum_column(ReservationStatus),
        nullable=False,
        default=ReservationStatus.pending,
    )
    vendor_reservation_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    compensation_attempted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    compensation_succeeded: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    compensation_failed_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    reserved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    unreserved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    ordered_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="chk_reservation_quantity_positive"),
        CheckConstraint(
            "status <> 'reserved' OR vendor_reservation_id IS NOT NULL",
            name="chk_reservation_reserved_has_vendor_id",
        ),
        Index("idx_reservations_order_status", "order_id", "status"),
    )
