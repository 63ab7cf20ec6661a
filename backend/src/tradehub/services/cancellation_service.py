"""Order cancellation and payment-failure handling."""

import logging
from uuid import UUID

from sqlalchemy import case, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tradehub.core.exceptions import ConsistencyViolation, OrderNotFoundError, TradeHubError
from tradehub.models.enums import CANCELLABLE_ORDER_STATUSES, OrderStatus, PaymentStatus
from tradehub.models.order import Order
from tradehub.services.inventory_service import InventoryService
from tradehub.services.own_stock_service import OwnStockService
from tradehub.services.reservation_service import ReservationService
from tradehub.services.vendor_client import VendorApiClient

logger = logging.getLogger(__name__)


def _with_note(notes: str | None, note: str) -> str:
    return f"{notes}\n{note}" if notes else note


class CancellationService:
    """Cancels orders and gives back whatever stock they hold."""

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

    async def process_payment_failure(self, order_id: UUID, reason: str | None = None) -> None:
        """Mark the payment failed and cancel the order.

        Releasing held stock is best-effort here: a failure is logged and
        never blocks the cancellation.
        """
        order_number, admin_notes = await self._load(order_id)

        await self.db.execute(
            update(Order)
            .execution_options(synchronize_session=False)
            .where(Order.order_id == order_id)
            .values(
                payment_status=PaymentStatus.failed,
                status=OrderStatus.cancelled,
                admin_notes=_with_note(admin_notes, f"Payment failed: {reason or 'unknown'}"),
                version=Order.version + 1,
            )
        )
        await self.db.commit()
        logger.info(f"Order {order_number} cancelled after payment failure: {reason}")

        try:
            await self._release_holds(order_id)
        except (TradeHubError, SQLAlchemyError) as e:
            logger.error(f"Failed to release stock for order {order_number} after payment failure: {e}")

    async def cancel_order(self, order_id: UUID, reason: str | None = None) -> None:
        """Cancel an order that has not been handed to the vendor yet.

        Raises:
            OrderNotFoundError: Unknown order
            ConsistencyViolation: Order is past the cancellable states;
                nothing is changed
        """
        order_number, admin_notes = await self._load(order_id)

        # Status flip first: a saga still running for this order sees the
        # cancellation when it writes its result and releases its own holds
        result = await self.db.execute(
            update(Order)
            .execution_options(synchronize_session=False)
            .where(Order.order_id == order_id)
            .where(Order.status.in_(CANCELLABLE_ORDER_STATUSES))
            .values(
                status=OrderStatus.cancelled,
                payment_status=case(
                    (Order.payment_status == PaymentStatus.paid, PaymentStatus.refunded.value),
                    else_=Order.payment_status,
                ),
                admin_notes=_with_note(admin_notes, f"Cancelled: {reason or 'no reason given'}"),
                version=Order.version + 1,
            )
        )
        if result.rowcount != 1:
            status = await self.db.scalar(select(Order.status).where(Order.order_id == order_id))
            raise ConsistencyViolation(
                f"Order {order_number} cannot be cancelled in status {status.value}",
                details={"order_id": str(order_id), "status": status.value},
            )
        await self.db.commit()

        compensations, released_own = await self._release_holds(order_id)
        logger.info(
            f"Order {order_number} cancelled: {len(compensations)} reservation(s) and "
            f"{released_own} own deduction(s) released"
        )

    async def _load(self, order_id: UUID) -> tuple[str, str | None]:
        result = await self.db.execute(
            select(Order.order_number, Order.admin_notes).where(Order.order_id == order_id)
        )
        row = result.one_or_none()
        if row is None:
            raise OrderNotFoundError(order_id)
        return row.order_number, row.admin_notes

    async def _release_holds(self, order_id: UUID):
        compensations = await self.reservations.unreserve_order(order_id)
        released_own = await self.own_stock.release_order(order_id)
        return compensations, released_own
