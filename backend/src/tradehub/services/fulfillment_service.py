"""Payment-success handler: the order fulfillment saga.

Steps:
1. Claim the order and record the payment
2. Reserve vendor lines through the reservation coordinator
3. Deduct own lines directly from local stock
4. Compensate own deductions when the vendor leg failed first
5. Derive order status and fulfillment status from the leg outcomes

Every step commits on its own, so a crash leaves a state that the next
attempt (from payment_pending) or cancellation can pick up.
"""

import logging
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tradehub.core.exceptions import (
    ConsistencyViolation,
    FulfillmentFailedError,
    OrderNotFoundError,
    ReservationFailedError,
)
from tradehub.middleware.metrics import record_fulfillment_outcome
from tradehub.models.enums import (
    FulfillmentStatus,
    ItemFulfillmentStatus,
    OrderStatus,
    PaymentStatus,
    ProductSource,
)
from tradehub.models.order import Order, OrderItem
from tradehub.schemas.order import PaymentSuccessResponse
from tradehub.services.inventory_service import InventoryService
from tradehub.services.outcomes import FailureKind, OwnLine, SagaFailure, VendorLine
from tradehub.services.own_stock_service import OwnStockService
from tradehub.services.reservation_service import ReservationService
from tradehub.services.vendor_client import VendorApiClient

logger = logging.getLogger(__name__)

PAYABLE_ORDER_STATUSES = (OrderStatus.pending, OrderStatus.payment_pending)

FULFILLMENT_FAILED_MESSAGE = (
    "Payment successful but product reservation failed. Please contact support."
)
PAYMENT_PROCESSED_MESSAGE = "Payment processed successfully. Your order is being prepared."

# (has vendor lines, has own lines, vendor leg ok, own leg ok)
#   -> (status, fulfillment status, mark own items fulfilled)
_STATE_TABLE: dict[tuple[bool, bool, bool, bool], tuple[OrderStatus, FulfillmentStatus, bool]] = {
    (True, True, True, True): (OrderStatus.processing, FulfillmentStatus.partially_fulfilled, True),
    (True, True, True, False): (OrderStatus.reserved, FulfillmentStatus.vendor_pending, False),
    (True, True, False, True): (OrderStatus.processing, FulfillmentStatus.own_fulfilled, True),
    (True, False, True, False): (OrderStatus.reserved, FulfillmentStatus.vendor_pending, False),
    (False, True, False, True): (OrderStatus.processing, FulfillmentStatus.own_fulfilled, True),
}


def derive_order_state(
    has_vendor: bool, has_own: bool, vendor_ok: bool, own_ok: bool
) -> tuple[OrderStatus, FulfillmentStatus, bool] | None:
    """Look up the post-saga state, or None when no row matches."""
    return _STATE_TABLE.get((has_vendor, has_own, vendor_ok and has_vendor, own_ok and has_own))


class FulfillmentService:
    """Runs the fulfillment saga for a paid order."""

    def __init__(
        self,
        db: AsyncSession,
        vendor_client: VendorApiClient,
        reservations: ReservationService | None = None,
        own_stock: OwnStockService | None = None,
    ):
        self.db = db
        inventory = InventoryService(db)
        self.reservations = reservations or ReservationService(db, vendor_client, inventory)
        self.own_stock = own_stock or OwnStockService(db, inventory)

    async def process_payment_success(
        self, order_id: UUID, transaction_id: str
    ) -> PaymentSuccessResponse:
        """Record the payment and secure stock for every line of the order.

        Args:
            order_id: Order UUID
            transaction_id: External payment transaction id

        Returns:
            Order number, resulting status and a customer-facing message

        Raises:
            OrderNotFoundError: Unknown order
            ConsistencyViolation: Order is not awaiting payment
            FulfillmentFailedError: Payment is captured but stock could not be
                secured; the order is left in payment_pending for a retry
        """
        order_number = await self._claim_for_payment(order_id, transaction_id)

        items = await self._load_items(order_id)
        vendor_lines = [
            VendorLine(
                order_item_id=i.item_id,
                product_id=i.product_id,
                vendor_article_id=i.vendor_article_id,
                quantity=i.quantity,
            )
            for i in items
            if i.product_source is ProductSource.vendor
        ]
        own_lines = [
            OwnLine(order_item_id=i.item_id, product_id=i.product_id, quantity=i.quantity)
            for i in items
            if i.product_source is ProductSource.own
        ]

        failures: list[SagaFailure] = []

        vendor_ok = False
        if vendor_lines:
            try:
                await self.reservations.reserve_order_items(order_id, vendor_lines)
                vendor_ok = True
            except ReservationFailedError as e:
                # Own lines still proceed during a vendor outage
                failures.append(SagaFailure(kind=FailureKind.vendor_reservation, error=e.message))

        deducted: list[OwnLine] = []
        for line in own_lines:
            outcome = await self.own_stock.deduct(line)
            if outcome.success:
                deducted.append(line)
            else:
                failures.append(
                    SagaFailure(
                        kind=FailureKind.own_stock_deduction,
                        error=outcome.error or "Stock deduction failed",
                        product_id=line.product_id,
                    )
                )

        if failures and failures[0].kind is FailureKind.vendor_reservation and deducted:
            await self._compensate_own_lines(order_id, deducted)
            await self._set_state(order_id, OrderStatus.payment_pending)
            record_fulfillment_outcome("compensated")
            logger.error(
                f"Order {order_number}: vendor reservation failed, "
                f"released {len(deducted)} own deduction(s)"
            )
            raise FulfillmentFailedError(
                FULFILLMENT_FAILED_MESSAGE,
                details={"order_number": order_number, "failures": self._describe(failures)},
            )

        derived = derive_order_state(bool(vendor_lines), bool(own_lines), vendor_ok, bool(deducted))
        if derived is None:
            await self._set_state(
                order_id, OrderStatus.payment_pending, FulfillmentStatus.failed
            )
            record_fulfillment_outcome("failed")
            logger.error(f"Order {order_number}: no line could be fulfilled: {failures}")
            raise FulfillmentFailedError(
                FULFILLMENT_FAILED_MESSAGE,
                details={"order_number": order_number, "failures": self._describe(failures)},
            )

        status, fulfillment_status, mark_own_fulfilled = derived
        if not await self._set_state(order_id, status, fulfillment_status, mark_own_fulfilled):
            await self._abandon_cancelled(order_id, deducted)
            raise ConsistencyViolation(
                f"Order {order_number} was cancelled during payment processing",
                details={"order_id": str(order_id)},
            )

        record_fulfillment_outcome(status.value)
        if failures:
            logger.warning(f"Order {order_number} fulfilled partially: {failures}")
        logger.info(
            f"Order {order_number} paid: status={status.value}, "
            f"fulfillment={fulfillment_status.value}"
        )
        return PaymentSuccessResponse(
            order_number=order_number,
            status=status,
            message=PAYMENT_PROCESSED_MESSAGE,
        )

    async def _claim_for_payment(self, order_id: UUID, transaction_id: str) -> str:
        """Record the payment, only if the order is still awaiting it.

        The version predicate makes two concurrent claims on the same
        snapshot resolve to a single winner.
        """
        result = await self.db.execute(
            select(Order.order_number, Order.status, Order.version).where(
                Order.order_id == order_id
            )
        )
        row = result.one_or_none()
        if row is None:
            raise OrderNotFoundError(order_id)
        order_number, status, version = row

        if status not in PAYABLE_ORDER_STATUSES:
            raise ConsistencyViolation(
                f"Order {order_number} cannot accept a payment in status {status.value}",
                details={"order_id": str(order_id), "status": status.value},
            )

        claimed = await self.db.execute(
            update(Order)
            .execution_options(synchronize_session=False)
            .where(Order.order_id == order_id)
            .where(Order.version == version)
            .where(Order.status.in_(PAYABLE_ORDER_STATUSES))
            .values(
                payment_status=PaymentStatus.paid,
                payment_transaction_id=transaction_id,
                paid_at=func.now(),
                version=Order.version + 1,
            )
        )
        if claimed.rowcount != 1:
            raise ConsistencyViolation(
                f"Order {order_number} was modified concurrently",
                details={"order_id": str(order_id)},
            )
        await self.db.commit()
        logger.info(f"Payment {transaction_id} recorded for order {order_number}")
        return order_number

    async def _load_items(self, order_id: UUID) -> list[OrderItem]:
        result = await self.db.execute(
            select(OrderItem)
            .where(OrderItem.order_id == order_id)
            .order_by(OrderItem.created_at)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def _compensate_own_lines(self, order_id: UUID, lines: list[OwnLine]) -> None:
        for line in lines:
            await self.own_stock.release(line.order_item_id)
        logger.info(f"Compensated {len(lines)} own deduction(s) for order {order_id}")

    async def _set_state(
        self,
        order_id: UUID,
        status: OrderStatus,
        fulfillment_status: FulfillmentStatus | None = None,
        mark_own_fulfilled: bool = False,
    ) -> bool:
        """Write the saga result unless the order was cancelled meanwhile."""
        values = {"status": status, "version": Order.version + 1}
        if fulfillment_status is not None:
            values["fulfillment_status"] = fulfillment_status
        if mark_own_fulfilled:
            values["own_items_fulfilled_at"] = func.now()

        result = await self.db.execute(
            update(Order)
            .execution_options(synchronize_session=False)
            .where(Order.order_id == order_id)
            .where(Order.status != OrderStatus.cancelled)
            .values(**values)
        )
        if result.rowcount != 1:
            await self.db.commit()
            return False

        if mark_own_fulfilled:
            await self.db.execute(
                update(OrderItem)
                .execution_options(synchronize_session=False)
                .where(OrderItem.order_id == order_id)
                .where(OrderItem.product_source == ProductSource.own)
                .where(OrderItem.fulfillment_status == ItemFulfillmentStatus.stock_deducted)
                .values(fulfillment_status=ItemFulfillmentStatus.fulfilled)
            )
        await self.db.commit()
        return True

    async def _abandon_cancelled(self, order_id: UUID, deducted: list[OwnLine]) -> None:
        """Undo this attempt's holds on an order cancelled mid-saga."""
        await self.reservations.unreserve_order(order_id)
        await self._compensate_own_lines(order_id, deducted)
        record_fulfillment_outcome("cancelled")
        logger.warning(f"Order {order_id} cancelled during payment processing, holds released")

    @staticmethod
    def _describe(failures: list[SagaFailure]) -> list[dict]:
        return [
            {
                "type": f.kind.value,
                "error": f.error,
                "product_id": str(f.product_id) if f.product_id else None,
            }
            for f in failures
        ]
