"""Direct stock deduction for own-inventory order lines."""

import logging
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tradehub.core.exceptions import NotAvailableError
from tradehub.models.enums import ItemFulfillmentStatus, ProductSource
from tradehub.models.order import OrderItem
from tradehub.services.inventory_service import InventoryService
from tradehub.services.outcomes import LineOutcome, OwnLine

logger = logging.getLogger(__name__)


class OwnStockService:
    """Deducts and releases own-inventory stock for order lines."""

    def __init__(self, db: AsyncSession, inventory: InventoryService | None = None):
        self.db = db
        self.inventory = inventory or InventoryService(db)

    async def deduct(self, line: OwnLine) -> LineOutcome:
        """Permanently take the line's units out of available stock.

        Insufficient stock is an expected outcome: the item is marked failed
        and a failed LineOutcome is returned.
        """
        try:
            await self.inventory.reserve_stock(line.product_id, line.quantity, ProductSource.own)
        except NotAvailableError as e:
            await self.db.execute(
                update(OrderItem)
                .execution_options(synchronize_session=False)
                .where(OrderItem.item_id == line.order_item_id)
                .values(fulfillment_status=ItemFulfillmentStatus.failed)
            )
            await self.db.commit()
            logger.warning(f"Own stock deduction failed for product {line.product_id}: {e.message}")
            return LineOutcome(
                order_item_id=line.order_item_id,
                product_id=line.product_id,
                success=False,
                error=e.message,
            )

        await self.db.execute(
            update(OrderItem)
            .execution_options(synchronize_session=False)
            .where(OrderItem.item_id == line.order_item_id)
            .values(
                fulfillment_status=ItemFulfillmentStatus.stock_deducted,
                stock_deducted_at=func.now(),
            )
        )
        await self.db.commit()
        return LineOutcome(order_item_id=line.order_item_id, product_id=line.product_id, success=True)

    async def release(self, order_item_id: UUID) -> bool:
        """Undo a deduction once.

        The item flips stock_deducted -> released in the same commit as the
        ledger release; returns False when there was nothing to release.
        """
        result = await self.db.execute(
            select(OrderItem.product_id, OrderItem.quantity).where(OrderItem.item_id == order_item_id)
        )
        row = result.one_or_none()
        if row is None:
            return False
        product_id, quantity = row

        flipped = await self.db.execute(
            update(OrderItem)
            .execution_options(synchronize_session=False)
            .where(OrderItem.item_id == order_item_id)
            .where(OrderItem.fulfillment_status == ItemFulfillmentStatus.stock_deducted)
            .values(fulfillment_status=ItemFulfillmentStatus.released, released_at=func.now())
        )
        if flipped.rowcount != 1:
            return False

        await self.inventory.release_stock(product_id, quantity, ProductSource.own)
        await self.db.commit()
        logger.info(f"Released own stock deduction of {quantity} x {product_id}")
        return True

    async def release_order(self, order_id: UUID) -> int:
        """Release every outstanding own deduction of an order."""
        result = await self.db.execute(
            select(OrderItem.item_id)
            .where(OrderItem.order_id == order_id)
            .where(OrderItem.product_source == ProductSource.own)
            .where(OrderItem.fulfillment_status == ItemFulfillmentStatus.stock_deducted)
        )
        released = 0
        for item_id in result.scalars().all():
            if await self.release(item_id):
                released += 1
        return released
