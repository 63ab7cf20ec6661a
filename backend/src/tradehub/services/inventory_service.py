"""Stock ledger: the only code path that writes product stock counters.

Two flows share the same primitives:
- vendor flow: available -> reserved (stock_quantity unchanged)
- own flow: available is decremented directly, reserved is untouched;
  the deduction is permanent unless explicitly released

Both ``reserve_stock`` and ``release_stock`` are single conditional UPDATE
statements, never read-then-write, so concurrent sagas cannot oversell.
Neither commits: callers group the ledger write with the matching status
write and commit them together.
"""

import logging
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tradehub.core.exceptions import NotAvailableError, PersistenceError, ValidationError
from tradehub.models.enums import ProductSource
from tradehub.models.product import Product

logger = logging.getLogger(__name__)


class InventoryService:
    """Atomic reserve/release primitives over the product stock ledger."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def reserve_stock(
        self, product_id: UUID, quantity: int, flow: ProductSource
    ) -> None:
        """Take ``quantity`` units out of available stock.

        Args:
            product_id: Product UUID
            quantity: Units to take, must be positive
            flow: ProductSource.vendor moves the units into reserved_quantity,
                ProductSource.own deducts them from available only

        Raises:
            ValidationError: Non-positive quantity
            NotAvailableError: available_quantity < quantity (or unknown product)
            PersistenceError: Storage failure
        """
        if quantity <= 0:
            raise ValidationError(f"Quantity must be positive, got {quantity}")

        values = {"available_quantity": Product.available_quantity - quantity}
        if flow is ProductSource.vendor:
            values["reserved_quantity"] = Product.reserved_quantity + quantity

        stmt = (
            update(Product)
            .execution_options(synchronize_session=False)
            .where(Product.product_id == product_id)
            .where(Product.available_quantity >= quantity)
            .values(**values)
        )
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Stock reserve failed for product {product_id}") from e

        if result.rowcount != 1:
            raise NotAvailableError(
                f"Insufficient stock for product {product_id}",
                details={"product_id": str(product_id), "requested": quantity},
            )

        logger.debug(f"Reserved {quantity} x {product_id} ({flow.value} flow)")

    async def release_stock(
        self, product_id: UUID, quantity: int, flow: ProductSource
    ) -> None:
        """Give ``quantity`` units back to available stock, mirroring how they were taken.

        Not idempotent on its own: callers pair it with a one-time status flip
        in the same unit of work (see ReservationService.unreserve and
        OwnStockService.release).

        Raises:
            ValidationError: Non-positive quantity
            PersistenceError: Storage failure or reserved counter would go negative
        """
        if quantity <= 0:
            raise ValidationError(f"Quantity must be positive, got {quantity}")

        values = {"available_quantity": Product.available_quantity + quantity}
        stmt = (
            update(Product)
            .execution_options(synchronize_session=False)
            .where(Product.product_id == product_id)
        )
        if flow is ProductSource.vendor:
            values["reserved_quantity"] = Product.reserved_quantity - quantity
            stmt = stmt.where(Product.reserved_quantity >= quantity)

        try:
            result = await self.db.execute(stmt.values(**values))
        except SQLAlchemyError as e:
            raise PersistenceError(f"Stock release failed for product {product_id}") from e

        if result.rowcount != 1:
            raise PersistenceError(
                f"Stock release for product {product_id} matched no ledger row",
                details={"product_id": str(product_id), "quantity": quantity},
            )

        logger.debug(f"Released {quantity} x {product_id} ({flow.value} flow)")
