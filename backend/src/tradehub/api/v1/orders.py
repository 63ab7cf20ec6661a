"""Order API endpoints: creation, payment callbacks, cancellation and queries."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Header, status

from tradehub.api.deps import Caller, DbSession, PrivilegedCaller, VendorClientDep
from tradehub.schemas.order import (
    AdminOrderDetailResponse,
    OrderCreate,
    OrderCreatedResponse,
    OrderDetailResponse,
    PaymentSuccessRequest,
    PaymentSuccessResponse,
    ReasonRequest,
)
from tradehub.schemas.reservation import ReservationStatusSummary
from tradehub.services.cancellation_service import CancellationService
from tradehub.services.fulfillment_service import FulfillmentService
from tradehub.services.order_service import OrderService
from tradehub.services.reservation_service import ReservationService

router = APIRouter()

OrderToken = Annotated[str | None, Header(alias="X-Order-Token")]


@router.post("", response_model=OrderCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    order_data: OrderCreate,
    db: DbSession,
    ctx: Caller,
):
    """Create an order from a cart.

    Guest orders get an access token back in ``guest_token``; send it as
    ``X-Order-Token`` to read or cancel the order later.
    """
    service = OrderService(db)
    return await service.create_order(ctx, order_data)


@router.get("/{order_id}", response_model=None)
async def get_order(
    order_id: UUID,
    db: DbSession,
    ctx: Caller,
    order_token: OrderToken = None,
) -> AdminOrderDetailResponse | OrderDetailResponse:
    """Get order details. Internal fields are only shown to admin callers."""
    service = OrderService(db)
    await service.check_access(ctx, order_id, order_token)
    return await service.get_order_details(order_id, is_privileged=ctx.is_privileged)


@router.post("/{order_id}/payment-success", response_model=PaymentSuccessResponse)
async def payment_success(
    order_id: UUID,
    payment: PaymentSuccessRequest,
    db: DbSession,
    vendor_client: VendorClientDep,
    ctx: PrivilegedCaller,
):
    """Payment provider callback: record the payment and run fulfillment."""
    service = FulfillmentService(db, vendor_client)
    return await service.process_payment_success(order_id, payment.transaction_id)


@router.post("/{order_id}/payment-failure", status_code=status.HTTP_204_NO_CONTENT)
async def payment_failure(
    order_id: UUID,
    body: ReasonRequest,
    db: DbSession,
    vendor_client: VendorClientDep,
    ctx: PrivilegedCaller,
):
    """Payment provider callback: the payment failed, cancel the order."""
    service = CancellationService(db, vendor_client)
    await service.process_payment_failure(order_id, body.reason)


@router.post("/{order_id}/cancel", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_order(
    order_id: UUID,
    body: ReasonRequest,
    db: DbSession,
    vendor_client: VendorClientDep,
    ctx: Caller,
    order_token: OrderToken = None,
):
    """Cancel an order that has not been handed to the vendor yet."""
    await OrderService(db).check_access(ctx, order_id, order_token)
    service = CancellationService(db, vendor_client)
    await service.cancel_order(order_id, body.reason)


@router.get("/{order_id}/reservations", response_model=ReservationStatusSummary)
async def get_reservations(
    order_id: UUID,
    db: DbSession,
    vendor_client: VendorClientDep,
    ctx: PrivilegedCaller,
):
    """Reservation counts per status (admin only)."""
    await OrderService(db).check_access(ctx, order_id)
    service = ReservationService(db, vendor_client)
    return await service.get_reservation_status(order_id)
