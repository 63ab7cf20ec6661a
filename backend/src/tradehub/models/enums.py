"""Status enums shared by the order, item and reservation tables."""

import enum


class ProductSource(str, enum.Enum):
    vendor = "vendor"
    own = "own"


class OrderStatus(str, enum.Enum):
    pending = "pending"
    payment_pending = "payment_pending"
    reserved = "reserved"
    processing = "processing"
    vendor_ordered = "vendor_ordered"
    shipped = "shipped"
    delivered = "delivered"
    cancelled = "cancelled"


class PaymentStatus(str, enum.Enum):
    unpaid = "unpaid"
    paid = "paid"
    failed = "failed"
    refunded = "refunded"


class FulfillmentStatus(str, enum.Enum):
    """Order-level fulfillment progress, independent of payment."""

    pending = "pending"
    vendor_pending = "vendor_pending"
    own_fulfilled = "own_fulfilled"
    partially_fulfilled = "partially_fulfilled"
    vendor_fulfilled = "vendor_fulfilled"
    fulfilled = "fulfilled"
    failed = "failed"


class ItemFulfillmentStatus(str, enum.Enum):
    pending = "pending"
    reserved = "reserved"
    stock_deducted = "stock_deducted"
    fulfilled = "fulfilled"
    vendor_ordered = "vendor_ordered"
    shipped = "shipped"
    released = "released"
    failed = "failed"


class ReservationStatus(str, enum.Enum):
    pending = "pending"
    reserved = "reserved"
    failed = "failed"
    unreserved = "unreserved"
    ordered = "ordered"


# Orders in these states may still be cancelled.
CANCELLABLE_ORDER_STATUSES = frozenset(
    {OrderStatus.pending, OrderStatus.payment_pending, OrderStatus.reserved}
)
