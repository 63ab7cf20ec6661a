"""Tests for the reservation coordinator.

The coordinator's result is binary: every line ends reserved with the
ledger moved, or no line stays reserved.
"""

import pytest
from unittest.mock import AsyncMock
from uuid import uuid4

from conftest import items_for, reload, reservations_for, reserve_failing_for
from tradehub.core.exceptions import ReservationFailedError, ValidationError, VendorApiError
from tradehub.models import ItemFulfillmentStatus, Product, ProductSource, ReservationStatus
from tradehub.services.inventory_service import InventoryService
from tradehub.services.outcomes import VendorLine
from tradehub.services.reservation_service import ReservationService
from tradehub.services.vendor_client import VendorReleaseResult


def vendor_lines(items) -> list[VendorLine]:
    return [
        VendorLine(
            order_item_id=i.item_id,
            product_id=i.product_id,
            vendor_article_id=i.vendor_article_id,
            quantity=i.quantity,
        )
        for i in items
    ]


class TestReserveOrderItems:
    """Test all-or-nothing reservation of vendor lines."""

    @pytest.mark.asyncio
    async def test_all_lines_reserved(self, db, make_product, make_order, mock_vendor):
        p1 = await make_product(available=10)
        p2 = await make_product(available=5)
        order = await make_order([(p1, 2), (p2, 1)])
        items = await items_for(db, order.order_id)
        service = ReservationService(db, mock_vendor)

        outcomes = await service.reserve_order_items(order.order_id, vendor_lines(items))

        assert all(o.success for o in outcomes)
        assert {o.vendor_reservation_id for o in outcomes} == {"VR-1", "VR-2"}

        p1 = await reload(db, Product, p1.product_id)
        p2 = await reload(db, Product, p2.product_id)
        assert (p1.available_quantity, p1.reserved_quantity) == (8, 2)
        assert (p2.available_quantity, p2.reserved_quantity) == (4, 1)

        reservations = await reservations_for(db, order.order_id)
        assert len(reservations) == 2
        assert all(r.status is ReservationStatus.reserved for r in reservations)
        assert all(r.vendor_reservation_id for r in reservations)
        assert all(r.reserved_at is not None for r in reservations)

        items = await items_for(db, order.order_id)
        assert all(i.fulfillment_status is ItemFulfillmentStatus.reserved for i in items)

    @pytest.mark.asyncio
    async def test_one_failure_compensates_the_rest(self, db, make_product, make_order, mock_vendor):
        """Three lines, the second rejected: nothing stays reserved."""
        p1 = await make_product(available=10)
        p2 = await make_product(available=10)
        p3 = await make_product(available=10)
        order = await make_order([(p1, 1), (p2, 1), (p3, 1)])
        items = await items_for(db, order.order_id)
        mock_vendor.reserve_item = AsyncMock(side_effect=reserve_failing_for(p2.vendor_article_id))
        service = ReservationService(db, mock_vendor)

        with pytest.raises(ReservationFailedError) as exc_info:
            await service.reserve_order_items(order.order_id, vendor_lines(items))

        # Every line was attempted, no early abort
        assert mock_vendor.reserve_item.await_count == 3
        failures = exc_info.value.failures
        assert len(failures) == 1
        assert failures[0]["product_id"] == str(p2.product_id)
        assert "Out of stock at vendor" in exc_info.value.message

        # Both successful holds were given back at the vendor
        assert mock_vendor.release_item.await_count == 2

        for product in (p1, p2, p3):
            product = await reload(db, Product, product.product_id)
            assert (product.available_quantity, product.reserved_quantity) == (10, 0)

        reservations = await reservations_for(db, order.order_id)
        by_product = {r.product_id: r for r in reservations}
        assert by_product[p1.product_id].status is ReservationStatus.unreserved
        assert by_product[p3.product_id].status is ReservationStatus.unreserved
        assert by_product[p2.product_id].status is ReservationStatus.failed
        assert by_product[p2.product_id].error_message == "Out of stock at vendor"
        assert not any(r.status is ReservationStatus.reserved for r in reservations)

    @pytest.mark.asyncio
    async def test_transport_error_is_a_line_failure(self, db, make_product, make_order, mock_vendor):
        p1 = await make_product(available=10)
        order = await make_order([(p1, 1)])
        items = await items_for(db, order.order_id)
        mock_vendor.reserve_item = AsyncMock(side_effect=VendorApiError("Vendor API timeout on ReserveArticle"))
        service = ReservationService(db, mock_vendor)

        with pytest.raises(ReservationFailedError) as exc_info:
            await service.reserve_order_items(order.order_id, vendor_lines(items))

        assert exc_info.value.failures[0]["error"] == "Vendor API timeout on ReserveArticle"
        reservations = await reservations_for(db, order.order_id)
        assert reservations[0].status is ReservationStatus.failed

    @pytest.mark.asyncio
    async def test_local_shortage_releases_vendor_hold(self, db, make_product, make_order, mock_vendor):
        """Vendor accepts but the local ledger is short: the vendor hold is returned."""
        p1 = await make_product(available=3)
        order = await make_order([(p1, 2)])
        items = await items_for(db, order.order_id)
        # Someone else took the stock between order creation and payment
        await InventoryService(db).reserve_stock(p1.product_id, 2, ProductSource.own)
        await db.commit()
        service = ReservationService(db, mock_vendor)

        with pytest.raises(ReservationFailedError):
            await service.reserve_order_items(order.order_id, vendor_lines(items))

        mock_vendor.release_item.assert_awaited_once_with("VR-1")
        reservation = (await reservations_for(db, order.order_id))[0]
        assert reservation.status is ReservationStatus.failed
        assert reservation.compensation_attempted is True
        assert reservation.compensation_succeeded is True

        p1 = await reload(db, Product, p1.product_id)
        assert (p1.available_quantity, p1.reserved_quantity) == (1, 0)

    @pytest.mark.asyncio
    async def test_retry_reuses_reservation_record(self, db, make_product, make_order, mock_vendor):
        p1 = await make_product(available=10)
        order = await make_order([(p1, 1)])
        items = await items_for(db, order.order_id)
        mock_vendor.reserve_item = AsyncMock(side_effect=reserve_failing_for(p1.vendor_article_id))
        service = ReservationService(db, mock_vendor)

        with pytest.raises(ReservationFailedError):
            await service.reserve_order_items(order.order_id, vendor_lines(items))

        mock_vendor.reserve_item = AsyncMock(side_effect=reserve_failing_for())
        outcomes = await service.reserve_order_items(order.order_id, vendor_lines(items))

        assert outcomes[0].success
        reservations = await reservations_for(db, order.order_id)
        assert len(reservations) == 1
        assert reservations[0].status is ReservationStatus.reserved
        assert reservations[0].error_message is None

    @pytest.mark.asyncio
    async def test_already_reserved_line_not_reserved_twice(self, db, make_product, make_order, mock_vendor):
        p1 = await make_product(available=10)
        order = await make_order([(p1, 2)])
        items = await items_for(db, order.order_id)
        service = ReservationService(db, mock_vendor)

        await service.reserve_order_items(order.order_id, vendor_lines(items))
        await service.reserve_order_items(order.order_id, vendor_lines(items))

        assert mock_vendor.reserve_item.await_count == 1
        p1 = await reload(db, Product, p1.product_id)
        assert (p1.available_quantity, p1.reserved_quantity) == (8, 2)


class TestUnreserve:
    """Test single-record unreserve and its compensation outcome."""

    async def _reserved_order(self, db, make_product, make_order, mock_vendor):
        product = await make_product(available=10)
        order = await make_order([(product, 3)])
        items = await items_for(db, order.order_id)
        service = ReservationService(db, mock_vendor)
        outcomes = await service.reserve_order_items(order.order_id, vendor_lines(items))
        return service, product, order, outcomes[0].reservation_id

    @pytest.mark.asyncio
    async def test_unreserve_releases_ledger_and_vendor(self, db, make_product, make_order, mock_vendor):
        service, product, order, reservation_id = await self._reserved_order(
            db, make_product, make_order, mock_vendor
        )

        outcome = await service.unreserve(reservation_id)

        assert outcome.attempted and outcome.succeeded
        mock_vendor.release_item.assert_awaited_once_with("VR-1")
        product = await reload(db, Product, product.product_id)
        assert (product.available_quantity, product.reserved_quantity) == (10, 0)

        reservation = (await reservations_for(db, order.order_id))[0]
        assert reservation.status is ReservationStatus.unreserved
        assert reservation.unreserved_at is not None
        assert reservation.compensation_succeeded is True

        item = (await items_for(db, order.order_id))[0]
        assert item.fulfillment_status is ItemFulfillmentStatus.released

    @pytest.mark.asyncio
    async def test_double_unreserve_releases_once(self, db, make_product, make_order, mock_vendor):
        service, product, _, reservation_id = await self._reserved_order(
            db, make_product, make_order, mock_vendor
        )

        await service.unreserve(reservation_id)
        second = await service.unreserve(reservation_id)

        assert second is None
        assert mock_vendor.release_item.await_count == 1
        product = await reload(db, Product, product.product_id)
        assert (product.available_quantity, product.reserved_quantity) == (10, 0)

    @pytest.mark.asyncio
    async def test_unreserve_failed_record_is_noop(self, db, make_product, make_order, mock_vendor):
        product = await make_product(available=10)
        order = await make_order([(product, 1)])
        items = await items_for(db, order.order_id)
        mock_vendor.reserve_item = AsyncMock(side_effect=reserve_failing_for(product.vendor_article_id))
        service = ReservationService(db, mock_vendor)
        with pytest.raises(ReservationFailedError):
            await service.reserve_order_items(order.order_id, vendor_lines(items))
        reservation = (await reservations_for(db, order.order_id))[0]

        result = await service.unreserve(reservation.reservation_id)

        assert result is None
        mock_vendor.release_item.assert_not_awaited()
        product = await reload(db, Product, product.product_id)
        assert (product.available_quantity, product.reserved_quantity) == (10, 0)

    @pytest.mark.asyncio
    async def test_unknown_reservation_rejected(self, db, mock_vendor):
        with pytest.raises(ValidationError):
            await ReservationService(db, mock_vendor).unreserve(uuid4())

    @pytest.mark.asyncio
    async def test_vendor_release_error_is_recorded_not_raised(
        self, db, make_product, make_order, mock_vendor
    ):
        service, product, order, reservation_id = await self._reserved_order(
            db, make_product, make_order, mock_vendor
        )
        mock_vendor.release_item = AsyncMock(side_effect=VendorApiError("Vendor API unreachable"))

        outcome = await service.unreserve(reservation_id)

        assert outcome.attempted is True
        assert outcome.succeeded is False
        assert outcome.failed_reason == "Vendor API unreachable"

        reservation = (await reservations_for(db, order.order_id))[0]
        assert reservation.status is ReservationStatus.unreserved
        assert reservation.compensation_attempted is True
        assert reservation.compensation_succeeded is False
        assert reservation.compensation_failed_reason == "Vendor API unreachable"
        assert reservation.error_message == "Vendor release failed: Vendor API unreachable"

        # The local ledger is released regardless
        product = await reload(db, Product, product.product_id)
        assert (product.available_quantity, product.reserved_quantity) == (10, 0)

    @pytest.mark.asyncio
    async def test_vendor_release_rejection_is_recorded(self, db, make_product, make_order, mock_vendor):
        service, _, order, reservation_id = await self._reserved_order(
            db, make_product, make_order, mock_vendor
        )
        mock_vendor.release_item = AsyncMock(
            return_value=VendorReleaseResult(success=False, message="Unknown reservation")
        )

        outcome = await service.unreserve(reservation_id)

        assert outcome.succeeded is False
        reservation = (await reservations_for(db, order.order_id))[0]
        assert reservation.compensation_failed_reason == "Unknown reservation"

    @pytest.mark.asyncio
    async def test_unreserve_order_releases_every_record(self, db, make_product, make_order, mock_vendor):
        p1 = await make_product(available=10)
        p2 = await make_product(available=10)
        order = await make_order([(p1, 1), (p2, 2)])
        items = await items_for(db, order.order_id)
        service = ReservationService(db, mock_vendor)
        await service.reserve_order_items(order.order_id, vendor_lines(items))

        outcomes = await service.unreserve_order(order.order_id)

        assert len(outcomes) == 2
        summary = await service.get_reservation_status(order.order_id)
        assert summary.unreserved == 2
        assert summary.reserved == 0


class TestReservationStatus:
    """Test per-status counts."""

    @pytest.mark.asyncio
    async def test_all_reserved(self, db, make_product, make_order, mock_vendor):
        p1 = await make_product(available=10)
        p2 = await make_product(available=10)
        order = await make_order([(p1, 1), (p2, 1)])
        items = await items_for(db, order.order_id)
        service = ReservationService(db, mock_vendor)
        await service.reserve_order_items(order.order_id, vendor_lines(items))

        summary = await service.get_reservation_status(order.order_id)

        assert summary.total == 2
        assert summary.reserved == 2
        assert summary.all_reserved is True

    @pytest.mark.asyncio
    async def test_mixed_statuses(self, db, make_product, make_order, mock_vendor):
        p1 = await make_product(available=10)
        p2 = await make_product(available=10)
        order = await make_order([(p1, 1), (p2, 1)])
        items = await items_for(db, order.order_id)
        mock_vendor.reserve_item = AsyncMock(side_effect=reserve_failing_for(p2.vendor_article_id))
        service = ReservationService(db, mock_vendor)
        with pytest.raises(ReservationFailedError):
            await service.reserve_order_items(order.order_id, vendor_lines(items))

        summary = await service.get_reservation_status(order.order_id)

        assert summary.total == 2
        assert summary.failed == 1
        assert summary.unreserved == 1
        assert summary.all_reserved is False

    @pytest.mark.asyncio
    async def test_mark_ordered(self, db, make_product, make_order, mock_vendor):
        p1 = await make_product(available=10)
        order = await make_order([(p1, 1)])
        items = await items_for(db, order.order_id)
        service = ReservationService(db, mock_vendor)
        await service.reserve_order_items(order.order_id, vendor_lines(items))

        count = await service.mark_ordered(order.order_id)
        await db.commit()

        assert count == 1
        reservation = (await reservations_for(db, order.order_id))[0]
        assert reservation.status is ReservationStatus.ordered
        assert reservation.ordered_at is not None
