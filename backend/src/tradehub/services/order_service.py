"""Order service for order creation and query operations."""

import hashlib
import hmac
import logging
import math
import secrets
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy import and_, exists, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tradehub.core.config import settings
from tradehub.core.context import CallerContext
from tradehub.core.exceptions import (
    ConsistencyViolation,
    NotAvailableError,
    OrderNotFoundError,
    PersistenceError,
    ValidationError,
)
from tradehub.models.address import Address
from tradehub.models.enums import (
    FulfillmentStatus,
    ItemFulfillmentStatus,
    OrderStatus,
    PaymentStatus,
    ProductSource,
)
from tradehub.models.order import Order, OrderItem
from tradehub.schemas.order import (
    AddressCreate,
    AddressResponse,
    AdminOrderDetailResponse,
    CartItem,
    OrderCreate,
    OrderCreatedResponse,
    OrderDetailResponse,
    OrderListResponse,
    OrderSummaryResponse,
    Pagination,
)
from tradehub.services.pricing import CatalogPriceLookup, PriceLookup, PricedProduct

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# Admin shipping progress: target status -> condition the order must meet.
# Own-only orders ship from processing; anything with vendor lines waits for
# the vendor sales order.
_has_vendor_line = exists().where(
    and_(
        OrderItem.order_id == Order.order_id,
        OrderItem.product_source == ProductSource.vendor,
    )
)
SHIPPING_TRANSITIONS = {
    OrderStatus.shipped: or_(
        Order.status == OrderStatus.vendor_ordered,
        and_(Order.status == OrderStatus.processing, ~_has_vendor_line),
    ),
    OrderStatus.delivered: Order.status == OrderStatus.shipped,
}

# Lines that are with the warehouse or the vendor when the order ships
SHIPPABLE_ITEM_STATUSES = (ItemFulfillmentStatus.fulfilled, ItemFulfillmentStatus.vendor_ordered)


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_totals(lines: list[tuple[PricedProduct, int]]) -> dict[str, Decimal]:
    """Subtotal, tax, shipping and total for priced cart lines.

    Shipping is free once the subtotal reaches FREE_SHIPPING_THRESHOLD.
    """
    subtotal = sum((product.price * quantity for product, quantity in lines), Decimal("0"))
    tax = subtotal * settings.TAX_RATE_PERCENT / Decimal("100")
    shipping = Decimal("0") if subtotal >= settings.FREE_SHIPPING_THRESHOLD else settings.SHIPPING_COST
    return {
        "subtotal": _money(subtotal),
        "tax": _money(tax),
        "shipping": _money(shipping),
        "total": _money(subtotal) + _money(tax) + _money(shipping),
    }


def generate_order_number(now: datetime | None = None) -> str:
    """Prefix + yymmdd + 6 uppercase hex characters, e.g. TT261019A1B2C3."""
    now = now or datetime.now(timezone.utc)
    return f"{settings.ORDER_NUMBER_PREFIX}{now:%y%m%d}{secrets.token_hex(3).upper()}"


def generate_guest_token(order_number: str, guest_email: str) -> str:
    """HMAC token granting a guest access to one order."""
    data = f"{order_number}|{guest_email.strip().lower()}"
    return hmac.new(settings.APP_KEY.encode(), data.encode(), hashlib.sha256).hexdigest()


class OrderService:
    """Service class for order operations."""

    def __init__(self, db: AsyncSession, price_lookup: PriceLookup | None = None):
        self.db = db
        self.price_lookup = price_lookup or CatalogPriceLookup(db)

    async def create_order(self, ctx: CallerContext, data: OrderCreate) -> OrderCreatedResponse:
        """Create a pending, unpaid order from cart items.

        Stock is checked but not touched; the ledger moves only once payment
        succeeds.

        Args:
            ctx: Caller context (customer id, ip, user agent)
            data: Cart, addresses and payment method

        Returns:
            Order id, number, total and status

        Raises:
            ValidationError: Missing identity or unknown/unavailable product
            NotAvailableError: Requested quantity exceeds available stock
            PersistenceError: Storage failure
        """
        if ctx.customer_id is None and not data.guest_email:
            raise ValidationError("Either a customer or a guest email is required")

        lines = await self._price_cart(data.items)
        totals = calculate_totals(lines)

        try:
            billing = self._build_address(data.billing_address, ctx.customer_id)
            self.db.add(billing)
            shipping = billing
            if data.shipping_address is not None:
                shipping = self._build_address(data.shipping_address, ctx.customer_id)
                self.db.add(shipping)
            await self.db.flush()

            sources = {product.product_source for product, _ in lines}
            order = Order(
                order_number=await self._unique_order_number(),
                customer_id=ctx.customer_id,
                guest_email=data.guest_email,
                status=OrderStatus.pending,
                payment_status=PaymentStatus.unpaid,
                fulfillment_status=(
                    FulfillmentStatus.vendor_pending
                    if sources == {ProductSource.vendor}
                    else FulfillmentStatus.pending
                ),
                payment_method=data.payment_method,
                subtotal=totals["subtotal"],
                tax=totals["tax"],
                shipping_cost=totals["shipping"],
                total=totals["total"],
                currency=settings.CURRENCY,
                billing_address_id=billing.address_id,
                shipping_address_id=shipping.address_id,
                notes=data.notes,
                ip_address=ctx.ip_address,
                user_agent=ctx.user_agent,
            )
            self.db.add(order)
            await self.db.flush()

            for product, quantity in lines:
                self.db.add(
                    OrderItem(
                        order_id=order.order_id,
                        product_id=product.product_id,
                        product_name=product.name,
                        product_sku=product.sku,
                        product_source=product.product_source,
                        vendor_article_id=(
                            product.vendor_article_id
                            if product.product_source is ProductSource.vendor
                            else None
                        ),
                        quantity=quantity,
                        base_price=product.base_price,
                        price=product.price,
                        subtotal=_money(product.price * quantity),
                        fulfillment_status=ItemFulfillmentStatus.pending,
                    )
                )

            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError("Order could not be stored") from e

        logger.info(f"Created order {order.order_number} with {len(lines)} item(s), total {order.total}")

        response = OrderCreatedResponse(
            order_id=order.order_id,
            order_number=order.order_number,
            total=order.total,
            status=OrderStatus.pending,
            message="Order created successfully. Please proceed with payment.",
        )
        if data.guest_email and ctx.customer_id is None:
            response.guest_token = generate_guest_token(order.order_number, data.guest_email)
            response.message += " Save your order access token to track your order."
        return response

    async def _price_cart(self, items: list[CartItem]) -> list[tuple[PricedProduct, int]]:
        quantities: dict[UUID, int] = {}
        for item in items:
            if item.quantity <= 0:
                raise ValidationError(f"Quantity must be positive for product {item.product_id}")
            quantities[item.product_id] = quantities.get(item.product_id, 0) + item.quantity

        priced = await self.price_lookup.get_priced_products(list(quantities))

        lines = []
        for product_id, quantity in quantities.items():
            product = priced.get(product_id)
            if product is None or not product.is_available:
                raise ValidationError(
                    f"Product {product_id} is not available",
                    details={"product_id": str(product_id)},
                )
            if product.product_source is ProductSource.vendor and not product.vendor_article_id:
                raise ValidationError(
                    f"Vendor product {product_id} has no vendor article id",
                    details={"product_id": str(product_id)},
                )
            if product.available_quantity < quantity:
                raise NotAvailableError(
                    f"Insufficient stock for product {product.name}",
                    details={
                        "product_id": str(product_id),
                        "requested": quantity,
                        "available": product.available_quantity,
                    },
                )
            lines.append((product, quantity))
        return lines

    @staticmethod
    def _build_address(data: AddressCreate, customer_id: UUID | None) -> Address:
        return Address(customer_id=customer_id, **data.model_dump())

    async def _unique_order_number(self) -> str:
        for _ in range(5):
            number = generate_order_number()
            exists = await self.db.execute(
                select(Order.order_id).where(Order.order_number == number)
            )
            if exists.scalar_one_or_none() is None:
                return number
        raise PersistenceError("Could not allocate a unique order number")

    async def get_order_by_id(self, order_id: UUID) -> Order | None:
        """Get order by ID (fresh from the database).

        Args:
            order_id: Order UUID

        Returns:
            Order or None if not found
        """
        result = await self.db.execute(
            select(Order)
            .where(Order.order_id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_order_items(self, order_id: UUID) -> list[OrderItem]:
        result = await self.db.execute(
            select(OrderItem)
            .where(OrderItem.order_id == order_id)
            .order_by(OrderItem.created_at, OrderItem.item_id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get_order_details(
        self, order_id: UUID, is_privileged: bool
    ) -> OrderDetailResponse | AdminOrderDetailResponse:
        """Full order with items and addresses.

        Non-privileged callers get OrderDetailResponse, which has no vendor
        article ids, fulfillment statuses, vendor order id or admin notes.

        Raises:
            OrderNotFoundError: Unknown order
        """
        result = await self.db.execute(
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.order_id == order_id)
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(order_id)

        addresses = await self._load_addresses(order)
        view_cls = AdminOrderDetailResponse if is_privileged else OrderDetailResponse
        view = view_cls.model_validate(order)
        view.billing_address = addresses.get(order.billing_address_id)
        view.shipping_address = addresses.get(order.shipping_address_id)
        return view

    async def check_access(
        self, ctx: CallerContext, order_id: UUID, guest_token: str | None = None
    ) -> None:
        """Allow privileged callers, the owning customer, or a guest holding the token.

        Raises:
            OrderNotFoundError: Unknown order, or the caller may not see it
        """
        if ctx.is_privileged:
            return

        result = await self.db.execute(
            select(Order.customer_id, Order.order_number, Order.guest_email).where(
                Order.order_id == order_id
            )
        )
        row = result.one_or_none()
        if row is None:
            raise OrderNotFoundError(order_id)

        if ctx.customer_id is not None and row.customer_id == ctx.customer_id:
            return
        if guest_token and row.guest_email:
            expected = generate_guest_token(row.order_number, row.guest_email)
            if hmac.compare_digest(guest_token, expected):
                return
        # Same answer as a missing order, so ids cannot be probed
        raise OrderNotFoundError(order_id)

    async def _load_addresses(self, order: Order) -> dict[UUID, AddressResponse]:
        ids = {a for a in (order.billing_address_id, order.shipping_address_id) if a is not None}
        if not ids:
            return {}
        result = await self.db.execute(select(Address).where(Address.address_id.in_(ids)))
        return {a.address_id: AddressResponse.model_validate(a) for a in result.scalars().all()}

    async def list_orders(
        self,
        status: OrderStatus | None = None,
        payment_status: PaymentStatus | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> OrderListResponse:
        """Admin order list, newest first.

        Args:
            status: Only orders in this status
            payment_status: Only orders with this payment status
            search: Substring of the order number or guest email
            page: 1-based page number
            limit: Page size
        """
        filters = []
        if status is not None:
            filters.append(Order.status == status)
        if payment_status is not None:
            filters.append(Order.payment_status == payment_status)
        if search:
            pattern = f"%{search}%"
            filters.append(or_(Order.order_number.ilike(pattern), Order.guest_email.ilike(pattern)))

        total = await self.db.scalar(select(func.count(Order.order_id)).where(*filters))
        result = await self.db.execute(
            select(Order)
            .where(*filters)
            .order_by(Order.created_at.desc(), Order.order_number)
            .offset((page - 1) * limit)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return OrderListResponse(
            orders=[OrderSummaryResponse.model_validate(o) for o in result.scalars().all()],
            pagination=Pagination(
                page=page, limit=limit, total=total, pages=math.ceil(total / limit)
            ),
        )

    async def update_order_status(
        self, order_id: UUID, new_status: OrderStatus
    ) -> AdminOrderDetailResponse:
        """Move an order along its shipping progress.

        Shipping stamps ``shipped_at`` on every line that is with the
        warehouse or the vendor.

        Raises:
            ValidationError: Target status is not a shipping step
            OrderNotFoundError: Unknown order
            ConsistencyViolation: Order is not in a state that allows the step
        """
        condition = SHIPPING_TRANSITIONS.get(new_status)
        if condition is None:
            raise ValidationError(
                f"Status {new_status.value} cannot be set directly",
                details={"allowed": [s.value for s in SHIPPING_TRANSITIONS]},
            )

        current = await self.db.scalar(select(Order.status).where(Order.order_id == order_id))
        if current is None:
            raise OrderNotFoundError(order_id)

        values = {"status": new_status, "version": Order.version + 1}
        if new_status is OrderStatus.shipped:
            values["fulfillment_status"] = FulfillmentStatus.fulfilled

        result = await self.db.execute(
            update(Order)
            .execution_options(synchronize_session=False)
            .where(Order.order_id == order_id)
            .where(condition)
            .values(**values)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            raise ConsistencyViolation(
                f"Order cannot move from {current.value} to {new_status.value}",
                details={"order_id": str(order_id), "status": current.value},
            )

        if new_status is OrderStatus.shipped:
            await self.db.execute(
                update(OrderItem)
                .execution_options(synchronize_session=False)
                .where(OrderItem.order_id == order_id)
                .where(OrderItem.fulfillment_status.in_(SHIPPABLE_ITEM_STATUSES))
                .values(fulfillment_status=ItemFulfillmentStatus.shipped, shipped_at=func.now())
            )
        await self.db.commit()

        logger.info(f"Order {order_id} moved from {current.value} to {new_status.value}")
        return await self.get_order_details(order_id, is_privileged=True)
