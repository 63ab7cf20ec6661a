"""Admin API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query

from tradehub.api.deps import DbSession, PrivilegedCaller, RedisServiceDep, VendorClientDep
from tradehub.models.enums import OrderStatus, PaymentStatus
from tradehub.schemas.order import AdminOrderDetailResponse, OrderListResponse, OrderStatusUpdate
from tradehub.schemas.vendor_order import VendorOrderRunResponse
from tradehub.services.order_service import OrderService
from tradehub.services.vendor_order_service import run_vendor_order_batch

router = APIRouter()


@router.get("/orders", response_model=OrderListResponse)
async def list_orders(
    db: DbSession,
    ctx: PrivilegedCaller,
    status: OrderStatus | None = None,
    payment_status: PaymentStatus | None = None,
    search: str | None = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    """List orders, newest first, with optional status filters."""
    service = OrderService(db)
    return await service.list_orders(
        status=status,
        payment_status=payment_status,
        search=search,
        page=page,
        limit=limit,
    )


@router.put("/orders/{order_id}/status", response_model=AdminOrderDetailResponse)
async def update_order_status(
    order_id: UUID,
    body: OrderStatusUpdate,
    db: DbSession,
    ctx: PrivilegedCaller,
):
    """Mark an order shipped or delivered."""
    service = OrderService(db)
    return await service.update_order_status(order_id, body.status)


@router.post("/vendor-orders/run", response_model=VendorOrderRunResponse)
async def run_vendor_orders(
    db: DbSession,
    vendor_client: VendorClientDep,
    redis_service: RedisServiceDep,
    ctx: PrivilegedCaller,
):
    """Trigger the vendor sales-order batch now.

    Returns ``skipped_locked=true`` without doing anything when another run
    is in progress.
    """
    return await run_vendor_order_batch(db, vendor_client, redis_service)
