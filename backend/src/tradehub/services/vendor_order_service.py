"""Vendor sales-order batch: hand reserved vendor lines over to the vendor.

Picks paid orders whose vendor lines are all reserved and that have no
vendor order yet, submits one CreateSalesOrder per order and records the
vendor order id. Running it twice never submits an order twice: the
``vendor_order_id IS NULL`` predicate drops processed orders from the
candidate set.

Runs must not overlap; callers hold the Redis lock in ``redis_service``.
"""

import logging
from uuid import UUID

from sqlalchemy import and_, exists, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tradehub.core.config import settings
from tradehub.core.exceptions import ConsistencyViolation, TradeHubError, VendorApiError
from tradehub.middleware.metrics import record_batch_order
from tradehub.models.address import Address
from tradehub.models.enums import (
    FulfillmentStatus,
    ItemFulfillmentStatus,
    OrderStatus,
    PaymentStatus,
    ProductSource,
)
from tradehub.models.order import Order, OrderItem
from tradehub.schemas.vendor_order import VendorOrderBatchResult, VendorOrderError, VendorOrderRunResponse
from tradehub.services.redis_service import VENDOR_ORDER_BATCH_LOCK, RedisService
from tradehub.services.reservation_service import ReservationService
from tradehub.services.vendor_client import VendorApiClient, VendorSalesOrderLine

logger = logging.getLogger(__name__)

BATCH_CANDIDATE_STATUSES = (OrderStatus.reserved, OrderStatus.processing)


class VendorOrderBatchService:
    """Submits consolidated vendor sales orders for reserved orders."""

    def __init__(
        self,
        db: AsyncSession,
        vendor_client: VendorApiClient,
        reservations: ReservationService | None = None,
    ):
        self.db = db
        self.vendor_client = vendor_client
        self.reservations = reservations or ReservationService(db, vendor_client)

    async def get_candidates(self) -> list[tuple[UUID, str]]:
        """Orders ready for a vendor sales order, oldest payment first.

        Returns:
            (order_id, order_number) pairs
        """
        has_reserved_vendor_line = exists().where(
            and_(
                OrderItem.order_id == Order.order_id,
                OrderItem.product_source == ProductSource.vendor,
                OrderItem.fulfillment_status == ItemFulfillmentStatus.reserved,
            )
        )
        result = await self.db.execute(
            select(Order.order_id, Order.order_number)
            .where(Order.status.in_(BATCH_CANDIDATE_STATUSES))
            .where(Order.payment_status == PaymentStatus.paid)
            .where(Order.vendor_order_id.is_(None))
            .where(has_reserved_vendor_line)
            .order_by(Order.paid_at)
        )
        return [(row.order_id, row.order_number) for row in result.all()]

    async def run(self) -> VendorOrderBatchResult:
        """Process every candidate order.

        A failure on one order is recorded and the run moves on to the next.
        """
        candidates = await self.get_candidates()
        logger.info(f"Vendor order batch: {len(candidates)} candidate order(s)")

        result = VendorOrderBatchResult()
        for order_id, order_number in candidates:
            try:
                vendor_order_id = await self.submit_order(order_id)
            except (TradeHubError, SQLAlchemyError) as e:
                if isinstance(e, SQLAlchemyError):
                    await self.db.rollback()
                message = e.message if isinstance(e, TradeHubError) else str(e)
                logger.error(f"Vendor order for {order_number} failed: {message}")
                record_batch_order("error")
                result.errors.append(VendorOrderError(order_number=order_number, error=message))
                continue

            if vendor_order_id is None:
                record_batch_order("skipped")
                continue

            record_batch_order("submitted")
            logger.info(f"Order {order_number} submitted to vendor as {vendor_order_id}")
            result.orders_processed += 1
            result.processed_orders.append(order_number)

        logger.info(
            f"Vendor order batch done: {result.orders_processed} processed, "
            f"{len(result.errors)} error(s)"
        )
        return result

    async def submit_order(self, order_id: UUID) -> str | None:
        """Submit one order's vendor lines.

        Returns:
            The vendor order id, or None when the order was skipped because
            not every vendor line is reserved

        Raises:
            VendorApiError: Transport failure or vendor rejection
            ConsistencyViolation: Order already carries a vendor order id, or
                was cancelled while the vendor order was being placed
        """
        result = await self.db.execute(
            select(Order).where(Order.order_id == order_id).execution_options(populate_existing=True)
        )
        order = result.scalar_one()
        order_number = order.order_number
        guest_email = order.guest_email
        address_id = order.shipping_address_id or order.billing_address_id

        items_result = await self.db.execute(
            select(OrderItem)
            .where(OrderItem.order_id == order_id)
            .execution_options(populate_existing=True)
        )
        items = list(items_result.scalars().all())
        vendor_items = [i for i in items if i.product_source is ProductSource.vendor]
        own_fulfilled = any(
            i.product_source is ProductSource.own
            and i.fulfillment_status is ItemFulfillmentStatus.fulfilled
            for i in items
        )

        summary = await self.reservations.get_reservation_status(order_id)
        if not summary.all_reserved or summary.total < len(vendor_items):
            logger.warning(
                f"Skipping order {order_number}: {summary.reserved} of "
                f"{len(vendor_items)} vendor line(s) reserved"
            )
            return None

        lines = [
            VendorSalesOrderLine(article_id=i.vendor_article_id, quantity=i.quantity)
            for i in vendor_items
        ]
        address = await self.db.get(Address, address_id) if address_id else None
        if address is None:
            raise ConsistencyViolation(
                f"Order {order_number} has no shipping address",
                details={"order_id": str(order_id)},
            )

        submitted = await self.vendor_client.submit_sales_order(
            order_number=order_number,
            items=lines,
            shipping_address=address.as_vendor_payload(),
            payment_terms=settings.VENDOR_PAYMENT_TERMS,
            customer_email=guest_email,
        )
        if not submitted.success:
            raise VendorApiError(
                submitted.message or "Vendor order creation failed",
                details={"order_number": order_number},
            )

        fulfillment_status = (
            FulfillmentStatus.partially_fulfilled if own_fulfilled else FulfillmentStatus.vendor_fulfilled
        )
        # The order may have been cancelled during the vendor round-trip
        written = await self.db.execute(
            update(Order)
            .execution_options(synchronize_session=False)
            .where(Order.order_id == order_id)
            .where(Order.vendor_order_id.is_(None))
            .where(Order.status.in_(BATCH_CANDIDATE_STATUSES))
            .where(Order.payment_status == PaymentStatus.paid)
            .values(
                vendor_order_id=submitted.order_id,
                vendor_order_created_at=func.now(),
                status=OrderStatus.vendor_ordered,
                fulfillment_status=fulfillment_status,
                version=Order.version + 1,
            )
        )
        if written.rowcount != 1:
            await self.db.rollback()
            await self._reject_late_write(order_id, order_number, submitted.order_id)

        await self.reservations.mark_ordered(order_id)
        await self.db.execute(
            update(OrderItem)
            .execution_options(synchronize_session=False)
            .where(OrderItem.order_id == order_id)
            .where(OrderItem.product_source == ProductSource.vendor)
            .where(OrderItem.fulfillment_status == ItemFulfillmentStatus.reserved)
            .values(fulfillment_status=ItemFulfillmentStatus.vendor_ordered)
        )
        await self.db.commit()
        return submitted.order_id

    async def _reject_late_write(
        self, order_id: UUID, order_number: str, vendor_order_id: str | None
    ) -> None:
        """Raise for a vendor order that can no longer be recorded on its order."""
        result = await self.db.execute(
            select(Order.status, Order.vendor_order_id).where(Order.order_id == order_id)
        )
        row = result.one()
        details = {
            "order_id": str(order_id),
            "status": row.status.value,
            "vendor_order_id": vendor_order_id,
        }

        if row.vendor_order_id is not None:
            logger.error(
                f"Order {order_number} already has vendor order {row.vendor_order_id}, "
                f"vendor order {vendor_order_id} is a duplicate"
            )
            raise ConsistencyViolation(
                f"Order {order_number} already has a vendor order id", details=details
            )

        if row.status is OrderStatus.cancelled:
            message = (
                f"Vendor order {vendor_order_id} was placed for cancelled order "
                f"{order_number}; manual reconciliation required"
            )
        else:
            message = (
                f"Order {order_number} left the batch states ({row.status.value}) while "
                f"vendor order {vendor_order_id} was placed; manual reconciliation required"
            )
        logger.error(message)
        raise ConsistencyViolation(message, details=details)


async def run_vendor_order_batch(
    db: AsyncSession,
    vendor_client: VendorApiClient,
    redis_service: RedisService,
) -> VendorOrderRunResponse:
    """Run the batch under the cluster-wide lock.

    Returns a result with ``skipped_locked=True`` when another run holds
    the lock.
    """
    acquired, owner_id = await redis_service.acquire_lock(
        VENDOR_ORDER_BATCH_LOCK, ttl=settings.VENDOR_ORDER_LOCK_TTL_SECONDS
    )
    if not acquired:
        logger.info("Vendor order batch already running elsewhere, skipping")
        record_batch_order("locked")
        return VendorOrderRunResponse(skipped_locked=True)

    try:
        result = await VendorOrderBatchService(db, vendor_client).run()
    finally:
        await redis_service.release_lock(VENDOR_ORDER_BATCH_LOCK, owner_id)
    return VendorOrderRunResponse(**result.model_dump())
