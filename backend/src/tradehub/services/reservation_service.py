"""Reservation coordinator: all-or-nothing vendor reservation with compensation.

Flow per vendor line:
1. Create (or re-use) the line's reservation record as pending
2. ReserveArticle at the vendor
3. On success: store the vendor id, mark reserved and move the units
   available -> reserved in the ledger, committed together
4. On failure: mark failed with the error and keep going

If any line failed, every line that succeeded is unreserved again and a
single ReservationFailedError lists all failures.
"""

import logging
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tradehub.core.exceptions import (
    NotAvailableError,
    ReservationFailedError,
    ValidationError,
    VendorApiError,
)
from tradehub.middleware.metrics import record_compensation
from tradehub.models.enums import ItemFulfillmentStatus, ProductSource, ReservationStatus
from tradehub.models.order import OrderItem
from tradehub.models.reservation import Reservation
from tradehub.schemas.reservation import ReservationStatusSummary
from tradehub.services.inventory_service import InventoryService
from tradehub.services.outcomes import CompensationOutcome, LineOutcome, VendorLine
from tradehub.services.vendor_client import VendorApiClient

logger = logging.getLogger(__name__)


class ReservationService:
    """Reserves groups of vendor lines, all or none."""

    def __init__(
        self,
        db: AsyncSession,
        vendor_client: VendorApiClient,
        inventory: InventoryService | None = None,
    ):
        self.db = db
        self.vendor_client = vendor_client
        self.inventory = inventory or InventoryService(db)

    async def reserve_order_items(
        self, order_id: UUID, lines: list[VendorLine]
    ) -> list[LineOutcome]:
        """Reserve every line or none of them.

        Args:
            order_id: Order UUID
            lines: Vendor lines of the order

        Returns:
            One successful outcome per line

        Raises:
            ReservationFailedError: At least one line failed; all successful
                lines have been unreserved before this is raised
        """
        outcomes = []
        for line in lines:
            outcomes.append(await self._reserve_line(order_id, line))

        failures = [o for o in outcomes if not o.success]
        if not failures:
            logger.info(f"Reserved {len(outcomes)} vendor line(s) for order {order_id}")
            return outcomes

        logger.warning(
            f"{len(failures)} of {len(outcomes)} vendor line(s) failed for order "
            f"{order_id}, compensating the rest"
        )
        for outcome in outcomes:
            if outcome.success and outcome.reservation_id is not None:
                await self.unreserve(outcome.reservation_id)

        raise ReservationFailedError(
            [
                {"product_id": str(o.product_id), "order_item_id": str(o.order_item_id), "error": o.error}
                for o in failures
            ]
        )

    async def _reserve_line(self, order_id: UUID, line: VendorLine) -> LineOutcome:
        reservation = await self._open_record(order_id, line)
        reservation_id = reservation.reservation_id

        if reservation.status in (ReservationStatus.reserved, ReservationStatus.ordered):
            # Held by an earlier attempt of this order
            return LineOutcome(
                order_item_id=line.order_item_id,
                product_id=line.product_id,
                success=True,
                reservation_id=reservation_id,
                vendor_reservation_id=reservation.vendor_reservation_id,
            )

        try:
            result = await self.vendor_client.reserve_item(line.vendor_article_id, line.quantity)
        except VendorApiError as e:
            return await self._fail_line(reservation_id, line, e.message)

        if not result.success:
            return await self._fail_line(reservation_id, line, result.message or "Reservation failed")

        try:
            await self.inventory.reserve_stock(line.product_id, line.quantity, ProductSource.vendor)
        except NotAvailableError as e:
            # The vendor holds units we cannot account for locally: give them back
            compensation = await self._release_at_vendor(reservation_id, result.reservation_id)
            return await self._fail_line(
                reservation_id,
                line,
                e.message,
                vendor_reservation_id=result.reservation_id,
                compensation=compensation,
            )

        await self.db.execute(
            update(Reservation)
            .execution_options(synchronize_session=False)
            .where(Reservation.reservation_id == reservation_id)
            .values(
                status=ReservationStatus.reserved,
                vendor_reservation_id=result.reservation_id,
                reserved_at=func.now(),
                error_message=None,
            )
        )
        await self.db.execute(
            update(OrderItem)
            .execution_options(synchronize_session=False)
            .where(OrderItem.item_id == line.order_item_id)
            .values(fulfillment_status=ItemFulfillmentStatus.reserved, reserved_at=func.now())
        )
        await self.db.commit()

        return LineOutcome(
            order_item_id=line.order_item_id,
            product_id=line.product_id,
            success=True,
            reservation_id=reservation_id,
            vendor_reservation_id=result.reservation_id,
        )

    async def _open_record(self, order_id: UUID, line: VendorLine) -> Reservation:
        """Create the line's reservation record, or reset a failed/unreserved one."""
        result = await self.db.execute(
            select(Reservation)
            .where(Reservation.order_item_id == line.order_item_id)
            .execution_options(populate_existing=True)
        )
        reservation = result.scalar_one_or_none()

        if reservation is None:
            reservation = Reservation(
                order_id=order_id,
                order_item_id=line.order_item_id,
                product_id=line.product_id,
                vendor_article_id=line.vendor_article_id,
                quantity=line.quantity,
                status=ReservationStatus.pending,
                compensation_attempted=False,
            )
            self.db.add(reservation)
        elif reservation.status in (ReservationStatus.reserved, ReservationStatus.ordered):
            return reservation
        else:
            reservation.status = ReservationStatus.pending
            reservation.vendor_reservation_id = None
            reservation.error_message = None
            reservation.compensation_attempted = False
            reservation.compensation_succeeded = None
            reservation.compensation_failed_reason = None

        await self.db.commit()
        return reservation

    async def _fail_line(
        self,
        reservation_id: UUID,
        line: VendorLine,
        error: str,
        vendor_reservation_id: str | None = None,
        compensation: CompensationOutcome | None = None,
    ) -> LineOutcome:
        values = {"status": ReservationStatus.failed, "error_message": error}
        if vendor_reservation_id is not None:
            values["vendor_reservation_id"] = vendor_reservation_id
        if compensation is not None:
            values.update(self._compensation_values(compensation))

        await self.db.execute(
            update(Reservation)
            .execution_options(synchronize_session=False)
            .where(Reservation.reservation_id == reservation_id)
            .values(**values)
        )
        await self.db.execute(
            update(OrderItem)
            .execution_options(synchronize_session=False)
            .where(OrderItem.item_id == line.order_item_id)
            .values(fulfillment_status=ItemFulfillmentStatus.failed)
        )
        await self.db.commit()

        logger.warning(f"Vendor reservation failed for product {line.product_id}: {error}")
        return LineOutcome(
            order_item_id=line.order_item_id,
            product_id=line.product_id,
            success=False,
            reservation_id=reservation_id,
            error=error,
        )

    async def unreserve(self, reservation_id: UUID) -> CompensationOutcome | None:
        """Give back one reservation.

        No-op (returns None) unless the record is reserved with a vendor id.
        The reserved -> unreserved flip and the ledger release commit together,
        so a second call finds nothing to release. The vendor release is
        best-effort: its failure is stored on the record, never raised.
        """
        result = await self.db.execute(
            select(Reservation)
            .where(Reservation.reservation_id == reservation_id)
            .execution_options(populate_existing=True)
        )
        reservation = result.scalar_one_or_none()
        if reservation is None:
            raise ValidationError(f"Reservation {reservation_id} not found")

        if reservation.status is not ReservationStatus.reserved or not reservation.vendor_reservation_id:
            return None

        product_id = reservation.product_id
        quantity = reservation.quantity
        vendor_reservation_id = reservation.vendor_reservation_id
        order_item_id = reservation.order_item_id

        flipped = await self.db.execute(
            update(Reservation)
            .execution_options(synchronize_session=False)
            .where(Reservation.reservation_id == reservation_id)
            .where(Reservation.status == ReservationStatus.reserved)
            .values(
                status=ReservationStatus.unreserved,
                unreserved_at=func.now(),
                compensation_attempted=True,
            )
        )
        if flipped.rowcount != 1:
            # Released concurrently
            return None

        await self.inventory.release_stock(product_id, quantity, ProductSource.vendor)
        await self.db.execute(
            update(OrderItem)
            .execution_options(synchronize_session=False)
            .where(OrderItem.item_id == order_item_id)
            .where(OrderItem.fulfillment_status == ItemFulfillmentStatus.reserved)
            .values(fulfillment_status=ItemFulfillmentStatus.released, released_at=func.now())
        )
        await self.db.commit()

        compensation = await self._release_at_vendor(reservation_id, vendor_reservation_id)
        await self.db.execute(
            update(Reservation)
            .execution_options(synchronize_session=False)
            .where(Reservation.reservation_id == reservation_id)
            .values(**self._compensation_values(compensation))
        )
        await self.db.commit()
        return compensation

    async def unreserve_order(self, order_id: UUID) -> list[CompensationOutcome]:
        """Unreserve every reserved record of an order."""
        result = await self.db.execute(
            select(Reservation.reservation_id)
            .where(Reservation.order_id == order_id)
            .where(Reservation.status == ReservationStatus.reserved)
        )
        outcomes = []
        for reservation_id in result.scalars().all():
            outcome = await self.unreserve(reservation_id)
            if outcome is not None:
                outcomes.append(outcome)
        return outcomes

    async def get_reservation_status(self, order_id: UUID) -> ReservationStatusSummary:
        """Count an order's reservations per status."""
        result = await self.db.execute(
            select(Reservation.status, func.count(Reservation.reservation_id))
            .where(Reservation.order_id == order_id)
            .group_by(Reservation.status)
        )
        counts = {status: count for status, count in result.all()}
        return ReservationStatusSummary.from_counts(counts)

    async def mark_ordered(self, order_id: UUID) -> int:
        """Move an order's reserved records to ordered. Does not commit."""
        result = await self.db.execute(
            update(Reservation)
            .execution_options(synchronize_session=False)
            .where(Reservation.order_id == order_id)
            .where(Reservation.status == ReservationStatus.reserved)
            .values(status=ReservationStatus.ordered, ordered_at=func.now())
        )
        return result.rowcount

    async def _release_at_vendor(
        self, reservation_id: UUID, vendor_reservation_id: str
    ) -> CompensationOutcome:
        try:
            result = await self.vendor_client.release_item(vendor_reservation_id)
        except VendorApiError as e:
            reason = e.message
        else:
            if result.success:
                record_compensation("released")
                return CompensationOutcome(attempted=True, succeeded=True)
            reason = result.message or "Unreserve failed"

        record_compensation("vendor_release_failed")
        logger.error(
            f"Vendor release failed for reservation {reservation_id} "
            f"({vendor_reservation_id}): {reason}"
        )
        return CompensationOutcome(attempted=True, succeeded=False, failed_reason=reason)

    @staticmethod
    def _compensation_values(outcome: CompensationOutcome) -> dict:
        values = {
            "compensation_attempted": outcome.attempted,
            "compensation_succeeded": outcome.succeeded,
            "compensation_failed_reason": outcome.failed_reason,
        }
        if not outcome.succeeded and outcome.failed_reason:
            values["error_message"] = f"Vendor release failed: {outcome.failed_reason}"
        return values
