"""SQLAlchemy ORM models."""

from tradehub.models.address import Address
from tradehub.models.base import TimestampMixin
from tradehub.models.enums import (
    FulfillmentStatus,
    ItemFulfillmentStatus,
    OrderStatus,
    PaymentStatus,
    ProductSource,
    ReservationStatus,
)
from tradehub.models.order import Order, OrderItem
from tradehub.models.product import Product
from tradehub.models.reservation import Reservation

__all__ = [
    "TimestampMixin",
    "Address",
    "Product",
    "Order",
    "OrderItem",
    "Reservation",
    "ProductSource",
    "OrderStatus",
    "PaymentStatus",
    "FulfillmentStatus",
    "ItemFulfillmentStatus",
    "ReservationStatus",
]
