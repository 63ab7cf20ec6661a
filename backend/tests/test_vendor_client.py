"""Tests for the vendor HTTP client using httpx.MockTransport."""

import json

import httpx
import pytest

from tradehub.core.exceptions import VendorApiError
from tradehub.services.vendor_client import VendorApiClient, VendorSalesOrderLine


def _client(handler) -> VendorApiClient:
    return VendorApiClient(
        base_url="https://vendor.test/api",
        api_key="secret-key",
        transport=httpx.MockTransport(handler),
    )


class TestReserveItem:
    """Test ReserveArticle parsing."""

    @pytest.mark.asyncio
    async def test_success_with_return_val(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"status": "ok", "ReturnVal": "R-42"})

        async with _client(handler) as client:
            result = await client.reserve_item("ART-1", 3)

        assert result.success
        assert result.reservation_id == "R-42"
        assert seen == {
            "path": "/api/ReserveArticle",
            "auth": "secret-key",
            "body": {"articleId": "ART-1", "quantity": 3},
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload,expected",
        [
            ({"error": 0, "reservationId": "R-7"}, "R-7"),
            ({"error": "0", "id": 7}, "7"),
            ({"success": True, "ReturnVal": 7}, "7"),
        ],
    )
    async def test_alternative_success_shapes(self, payload, expected):
        async with _client(lambda request: httpx.Response(200, json=payload)) as client:
            result = await client.reserve_item("ART-1", 1)

        assert result.success
        assert result.reservation_id == expected

    @pytest.mark.asyncio
    async def test_business_rejection_is_a_result(self):
        payload = {"error": 1, "message": "Out of stock"}
        async with _client(lambda request: httpx.Response(200, json=payload)) as client:
            result = await client.reserve_item("ART-1", 1)

        assert not result.success
        assert result.message == "Out of stock"

    @pytest.mark.asyncio
    async def test_success_without_id_is_rejected(self):
        async with _client(lambda request: httpx.Response(200, json={"status": "ok"})) as client:
            result = await client.reserve_item("ART-1", 1)

        assert not result.success

    @pytest.mark.asyncio
    async def test_timeout_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        async with _client(handler) as client:
            with pytest.raises(VendorApiError) as exc_info:
                await client.reserve_item("ART-1", 1)

        assert exc_info.value.code == "VENDOR_TIMEOUT"

    @pytest.mark.asyncio
    async def test_connection_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(VendorApiError) as exc_info:
                await client.reserve_item("ART-1", 1)

        assert exc_info.value.code == "VENDOR_UNREACHABLE"

    @pytest.mark.asyncio
    async def test_http_error_raises_with_status(self):
        payload = {"message": "Internal failure"}
        async with _client(lambda request: httpx.Response(500, json=payload)) as client:
            with pytest.raises(VendorApiError) as exc_info:
                await client.reserve_item("ART-1", 1)

        assert exc_info.value.message == "Vendor API Error (HTTP 500): Internal failure"
        assert exc_info.value.details["status_code"] == 500

    @pytest.mark.asyncio
    async def test_http_error_without_json_body(self):
        async with _client(lambda request: httpx.Response(502, text="Bad Gateway")) as client:
            with pytest.raises(VendorApiError) as exc_info:
                await client.reserve_item("ART-1", 1)

        assert exc_info.value.message == "Vendor API Error (HTTP 502): Unknown error"

    @pytest.mark.asyncio
    async def test_non_json_success_body_raises(self):
        async with _client(lambda request: httpx.Response(200, text="<html>")) as client:
            with pytest.raises(VendorApiError):
                await client.reserve_item("ART-1", 1)


class TestReleaseItem:
    """Test UnreserveArticle parsing."""

    @pytest.mark.asyncio
    async def test_release(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"status": "ok"})

        async with _client(handler) as client:
            result = await client.release_item("R-42")

        assert result.success
        assert seen == {"path": "/api/UnreserveArticle", "body": {"reservationId": "R-42"}}

    @pytest.mark.asyncio
    async def test_release_rejected(self):
        payload = {"status": "error", "error_msg": "Unknown reservation"}
        async with _client(lambda request: httpx.Response(200, json=payload)) as client:
            result = await client.release_item("R-42")

        assert not result.success
        assert result.message == "Unknown reservation"


class TestSubmitSalesOrder:
    """Test CreateSalesOrder request and parsing."""

    @pytest.mark.asyncio
    async def test_request_body(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True, "orderId": "VO-1001"})

        async with _client(handler) as client:
            result = await client.submit_sales_order(
                order_number="TT261019ABCDEF",
                items=[VendorSalesOrderLine(article_id="ART-1", quantity=2)],
                shipping_address={"city": "Berlin"},
                payment_terms="prepayment",
            )

        assert result.success
        assert result.order_id == "VO-1001"
        body = seen["body"]
        assert body["orderNumber"] == "TT261019ABCDEF"
        assert body["items"] == [{"articleId": "ART-1", "quantity": 2}]
        assert body["shippingAddress"] == {"city": "Berlin"}
        assert body["paymentTerms"] == "prepayment"
        assert body["customerEmail"]

    @pytest.mark.asyncio
    async def test_rejection_keeps_raw_payload(self):
        payload = {"success": False, "message": "Unknown article"}
        async with _client(lambda request: httpx.Response(200, json=payload)) as client:
            result = await client.submit_sales_order(
                order_number="TT1",
                items=[],
                shipping_address={},
                payment_terms="prepayment",
                customer_email="a@example.com",
            )

        assert not result.success
        assert result.message == "Unknown article"
        assert result.raw == payload
