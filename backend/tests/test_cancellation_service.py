"""Tests for order cancellation and payment-failure handling."""

import pytest
from unittest.mock import AsyncMock
from uuid import uuid4

from sqlalchemy import update

from conftest import items_for, reload, reservations_for
from tradehub.core.exceptions import ConsistencyViolation, OrderNotFoundError, VendorApiError
from tradehub.models import (
    ItemFulfillmentStatus,
    Order,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    Product,
    ProductSource,
    ReservationStatus,
)
from tradehub.services.cancellation_service import CancellationService
from tradehub.services.fulfillment_service import FulfillmentService


async def _pay(db, mock_vendor, order):
    await FulfillmentService(db, mock_vendor).process_payment_success(order.order_id, "txn-1")


async def _force_status(db, order_id, status):
    await db.execute(
        update(Order)
        .execution_options(synchronize_session=False)
        .where(Order.order_id == order_id)
        .values(status=status)
    )
    await db.commit()


class TestCancelOrder:
    """Test customer/admin cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_reserved_order_refunds_and_releases(
        self, db, make_product, make_order, mock_vendor
    ):
        vendor = await make_product(available=10)
        order = await make_order([(vendor, 2)])
        await _pay(db, mock_vendor, order)

        await CancellationService(db, mock_vendor).cancel_order(order.order_id, "changed my mind")

        order = await reload(db, Order, order.order_id)
        assert order.status is OrderStatus.cancelled
        assert order.payment_status is PaymentStatus.refunded
        assert "Cancelled: changed my mind" in order.admin_notes

        vendor = await reload(db, Product, vendor.product_id)
        assert (vendor.available_quantity, vendor.reserved_quantity) == (10, 0)

        reservations = await reservations_for(db, order.order_id)
        assert [r.status for r in reservations] == [ReservationStatus.unreserved]
        mock_vendor.release_item.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cancel_releases_own_deductions(self, db, make_product, make_order, mock_vendor):
        vendor = await make_product(available=10)
        own = await make_product(source=ProductSource.own, available=5)
        order = await make_order([(vendor, 1), (own, 2)])
        await _pay(db, mock_vendor, order)
        # Fulfilled own lines are kept on cancel; put the line back to deducted
        await _force_status(db, order.order_id, OrderStatus.reserved)
        await db.execute(
            update(OrderItem)
            .execution_options(synchronize_session=False)
            .where(OrderItem.product_id == own.product_id)
            .values(fulfillment_status=ItemFulfillmentStatus.stock_deducted)
        )
        await db.commit()

        await CancellationService(db, mock_vendor).cancel_order(order.order_id)

        items = {i.product_source: i for i in await items_for(db, order.order_id)}
        assert items[ProductSource.own].fulfillment_status is ItemFulfillmentStatus.released
        assert items[ProductSource.vendor].fulfillment_status is ItemFulfillmentStatus.released
        own = await reload(db, Product, own.product_id)
        assert own.available_quantity == 5

    @pytest.mark.asyncio
    async def test_cancel_unpaid_order_keeps_payment_status(
        self, db, make_product, make_order, mock_vendor
    ):
        product = await make_product(available=10)
        order = await make_order([(product, 1)])

        await CancellationService(db, mock_vendor).cancel_order(order.order_id)

        order = await reload(db, Order, order.order_id)
        assert order.status is OrderStatus.cancelled
        assert order.payment_status is PaymentStatus.unpaid
        mock_vendor.release_item.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status",
        [
            OrderStatus.processing,
            OrderStatus.vendor_ordered,
            OrderStatus.shipped,
            OrderStatus.delivered,
            OrderStatus.cancelled,
        ],
    )
    async def test_cancel_rejected_past_cancellable_states(
        self, db, make_product, make_order, mock_vendor, status
    ):
        product = await make_product(available=10)
        order = await make_order([(product, 1)], status=status, payment_status=PaymentStatus.paid)

        with pytest.raises(ConsistencyViolation):
            await CancellationService(db, mock_vendor).cancel_order(order.order_id)

        order = await reload(db, Order, order.order_id)
        assert order.status is status
        assert order.payment_status is PaymentStatus.paid
        assert order.admin_notes is None
        mock_vendor.release_item.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancel_twice_releases_once(self, db, make_product, make_order, mock_vendor):
        vendor = await make_product(available=5)
        order = await make_order([(vendor, 2)])
        await _pay(db, mock_vendor, order)
        service = CancellationService(db, mock_vendor)

        await service.cancel_order(order.order_id)
        with pytest.raises(ConsistencyViolation):
            await service.cancel_order(order.order_id)

        vendor = await reload(db, Product, vendor.product_id)
        assert (vendor.available_quantity, vendor.reserved_quantity) == (5, 0)
        mock_vendor.release_item.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unknown_order(self, db, mock_vendor):
        with pytest.raises(OrderNotFoundError):
            await CancellationService(db, mock_vendor).cancel_order(uuid4())


class TestProcessPaymentFailure:
    """Test the payment-failure callback."""

    @pytest.mark.asyncio
    async def test_marks_failed_and_cancels(self, db, make_product, make_order, mock_vendor):
        product = await make_product(available=10)
        order = await make_order([(product, 1)], status=OrderStatus.payment_pending)

        await CancellationService(db, mock_vendor).process_payment_failure(order.order_id, "card declined")

        order = await reload(db, Order, order.order_id)
        assert order.status is OrderStatus.cancelled
        assert order.payment_status is PaymentStatus.failed
        assert order.admin_notes == "Payment failed: card declined"

    @pytest.mark.asyncio
    async def test_releases_held_reservations(self, db, make_product, make_order, mock_vendor):
        product = await make_product(available=10)
        order = await make_order([(product, 4)])
        await _pay(db, mock_vendor, order)

        await CancellationService(db, mock_vendor).process_payment_failure(order.order_id)

        product = await reload(db, Product, product.product_id)
        assert (product.available_quantity, product.reserved_quantity) == (10, 0)
        reservations = await reservations_for(db, order.order_id)
        assert reservations[0].status is ReservationStatus.unreserved

    @pytest.mark.asyncio
    async def test_vendor_release_error_is_not_raised(self, db, make_product, make_order, mock_vendor):
        product = await make_product(available=10)
        order = await make_order([(product, 1)])
        await _pay(db, mock_vendor, order)
        mock_vendor.release_item = AsyncMock(side_effect=VendorApiError("Vendor down"))

        await CancellationService(db, mock_vendor).process_payment_failure(order.order_id, "chargeback")

        order = await reload(db, Order, order.order_id)
        assert order.status is OrderStatus.cancelled
        assert order.payment_status is PaymentStatus.failed

        reservation = (await reservations_for(db, order.order_id))[0]
        assert reservation.status is ReservationStatus.unreserved
        assert reservation.compensation_succeeded is False
        assert reservation.compensation_failed_reason == "Vendor down"

    @pytest.mark.asyncio
    async def test_unknown_order(self, db, mock_vendor):
        with pytest.raises(OrderNotFoundError):
            await CancellationService(db, mock_vendor).process_payment_failure(uuid4())
