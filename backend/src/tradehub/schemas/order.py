"""Order schemas for request/response validation."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from tradehub.models.enums import (
    FulfillmentStatus,
    ItemFulfillmentStatus,
    OrderStatus,
    PaymentStatus,
    ProductSource,
)


class AddressCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    company: str | None = Field(None, max_length=255)
    address_line1: str = Field(..., min_length=1, max_length=255)
    address_line2: str | None = Field(None, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    state: str | None = Field(None, max_length=100)
    postal_code: str = Field(..., min_length=1, max_length=20)
    country: str = Field(..., min_length=2, max_length=2)
    phone: str | None = Field(None, max_length=50)


class AddressResponse(AddressCreate):
    address_id: UUID

    model_config = {"from_attributes": True}


class CartItem(BaseModel):
    product_id: UUID
    quantity: int = Field(..., gt=0)


class OrderCreate(BaseModel):
    """Schema for order creation. The customer comes from the caller context."""

    guest_email: str | None = Field(None, max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    items: list[CartItem] = Field(..., min_length=1)
    billing_address: AddressCreate
    shipping_address: AddressCreate | None = None
    payment_method: str | None = Field(None, max_length=50)
    notes: str | None = None


class OrderCreatedResponse(BaseModel):
    order_id: UUID
    order_number: str
    total: Decimal
    status: OrderStatus
    message: str
    guest_token: str | None = None


class PaymentSuccessRequest(BaseModel):
    transaction_id: str = Field(..., min_length=1, max_length=255)


class PaymentSuccessResponse(BaseModel):
    order_number: str
    status: OrderStatus
    message: str


class ReasonRequest(BaseModel):
    reason: str | None = Field(None, max_length=500)


class OrderItemResponse(BaseModel):
    """Order line as shown to customers."""

    item_id: UUID
    product_id: UUID
    product_name: str
    product_sku: str
    quantity: int
    price: Decimal
    subtotal: Decimal

    model_config = {"from_attributes": True}


class AdminOrderItemResponse(OrderItemResponse):
    product_source: ProductSource
    vendor_article_id: str | None
    base_price: Decimal
    fulfillment_status: ItemFulfillmentStatus
    reserved_at: datetime | None
    stock_deducted_at: datetime | None
    shipped_at: datetime | None
    released_at: datetime | None


class OrderDetailResponse(BaseModel):
    """Customer-facing order view without internal fulfillment fields."""

    order_id: UUID
    order_number: str
    status: OrderStatus
    payment_status: PaymentStatus
    payment_method: str | None
    subtotal: Decimal
    tax: Decimal
    shipping_cost: Decimal
    total: Decimal
    currency: str
    notes: str | None
    billing_address: AddressResponse | None = None
    shipping_address: AddressResponse | None = None
    items: list[OrderItemResponse]
    created_at: datetime

    model_config = {"from_attributes": True}


class AdminOrderDetailResponse(OrderDetailResponse):
    """Privileged order view including vendor and fulfillment internals."""

    customer_id: UUID | None
    guest_email: str | None
    fulfillment_status: FulfillmentStatus
    payment_transaction_id: str | None
    paid_at: datetime | None
    vendor_order_id: str | None
    vendor_order_created_at: datetime | None
    own_items_fulfilled_at: datetime | None
    admin_notes: str | None
    items: list[AdminOrderItemResponse]


class OrderSummaryResponse(BaseModel):
    """One row of the admin order list."""

    order_id: UUID
    order_number: str
    customer_id: UUID | None
    guest_email: str | None
    status: OrderStatus
    payment_status: PaymentStatus
    fulfillment_status: FulfillmentStatus
    total: Decimal
    currency: str
    vendor_order_id: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class OrderListResponse(BaseModel):
    orders: list[OrderSummaryResponse]
    pagination: Pagination


class OrderStatusUpdate(BaseModel):
    """Admin shipping progress. Cancellation has its own endpoint."""

    status: OrderStatus
