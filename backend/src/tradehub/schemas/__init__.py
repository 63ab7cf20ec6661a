"""Pydantic schemas for request/response validation."""

from tradehub.schemas.order import (
    AddressCreate,
    AdminOrderDetailResponse,
    CartItem,
    OrderCreate,
    OrderCreatedResponse,
    OrderDetailResponse,
    PaymentSuccessRequest,
    PaymentSuccessResponse,
    ReasonRequest,
)
from tradehub.schemas.reservation import ReservationStatusSummary
from tradehub.schemas.vendor_order import VendorOrderBatchResult, VendorOrderError, VendorOrderRunResponse

__all__ = [
    "AddressCreate",
    "CartItem",
    "OrderCreate",
    "OrderCreatedResponse",
    "OrderDetailResponse",
    "AdminOrderDetailResponse",
    "PaymentSuccessRequest",
    "PaymentSuccessResponse",
    "ReasonRequest",
    "ReservationStatusSummary",
    "VendorOrderBatchResult",
    "VendorOrderError",
    "VendorOrderRunResponse",
]
