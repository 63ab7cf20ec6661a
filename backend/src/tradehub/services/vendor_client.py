"""HTTP client for the upstream vendor B2B API (reserve, release, sales order)."""

import logging
import time
from dataclasses import dataclass, field
from typing import Any

import httpx

from tradehub.core.config import settings
from tradehub.core.exceptions import VendorApiError
from tradehub.middleware.metrics import record_vendor_call

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VendorReservationResult:
    success: bool
    reservation_id: str | None = None
    message: str | None = None


@dataclass(frozen=True)
class VendorReleaseResult:
    success: bool
    message: str | None = None


@dataclass(frozen=True)
class VendorSalesOrderLine:
    article_id: str
    quantity: int


@dataclass(frozen=True)
class VendorSalesOrderResult:
    success: bool
    order_id: str | None = None
    message: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


def _is_success(payload: dict[str, Any]) -> bool:
    """The vendor signals success in one of three shapes."""
    if payload.get("status") == "ok":
        return True
    if "error" in payload and payload.get("error") in (0, "0"):
        return True
    return payload.get("success") is True


def _first_present(payload: dict[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = payload.get(key)
        if value not in (None, ""):
            return str(value)
    return None


def _error_message(payload: dict[str, Any], default: str) -> str:
    return _first_present(payload, "message", "error_msg") or default


class VendorApiClient:
    """Async client for the vendor reservation protocol.

    Transport failures, timeouts and HTTP errors raise VendorApiError.
    Business rejections come back as results with ``success=False``.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        connect_timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.VENDOR_API_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.VENDOR_API_KEY
        self.timeout = httpx.Timeout(
            timeout or settings.VENDOR_API_TIMEOUT_SECONDS,
            connect=connect_timeout or settings.VENDOR_API_CONNECT_TIMEOUT_SECONDS,
        )
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=transport,
            follow_redirects=True,
            headers={
                # The vendor expects the raw key, without a "Bearer" prefix
                "Authorization": self.api_key,
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "VendorApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def reserve_item(self, article_id: str, quantity: int) -> VendorReservationResult:
        """Place a stock hold for ``quantity`` units of ``article_id``."""
        payload = await self._post(
            "ReserveArticle",
            "/ReserveArticle",
            {"articleId": article_id, "quantity": quantity},
        )
        if not _is_success(payload):
            return VendorReservationResult(
                success=False, message=_error_message(payload, "Reservation failed")
            )

        reservation_id = _first_present(payload, "ReturnVal", "reservationId", "id")
        if reservation_id is None:
            return VendorReservationResult(
                success=False, message="Vendor accepted reservation without an id"
            )
        return VendorReservationResult(success=True, reservation_id=reservation_id)

    async def release_item(self, reservation_id: str) -> VendorReleaseResult:
        """Give back a stock hold. Callers treat this as best-effort."""
        payload = await self._post(
            "UnreserveArticle",
            "/UnreserveArticle",
            {"reservationId": reservation_id},
        )
        if not _is_success(payload):
            return VendorReleaseResult(
                success=False, message=_error_message(payload, "Unreserve failed")
            )
        return VendorReleaseResult(success=True)

    async def submit_sales_order(
        self,
        order_number: str,
        items: list[VendorSalesOrderLine],
        shipping_address: dict[str, Any],
        payment_terms: str,
        customer_email: str | None = None,
    ) -> VendorSalesOrderResult:
        """Submit one consolidated sales order for previously reserved lines."""
        body = {
            "orderNumber": order_number,
            "customerEmail": customer_email or settings.VENDOR_FALLBACK_CUSTOMER_EMAIL,
            "paymentTerms": payment_terms,
            "shippingAddress": shipping_address,
            "items": [
                {"articleId": line.article_id, "quantity": line.quantity} for line in items
            ],
        }
        payload = await self._post("CreateSalesOrder", "/CreateSalesOrder", body)
        if not _is_success(payload):
            return VendorSalesOrderResult(
                success=False,
                message=_error_message(payload, "Vendor order creation failed"),
                raw=payload,
            )

        order_id = _first_present(payload, "orderId", "ReturnVal", "id")
        if order_id is None:
            return VendorSalesOrderResult(
                success=False,
                message="Vendor accepted sales order without an id",
                raw=payload,
            )
        return VendorSalesOrderResult(success=True, order_id=order_id, raw=payload)

    async def _post(self, operation: str, endpoint: str, body: dict[str, Any]) -> dict[str, Any]:
        start = time.perf_counter()
        try:
            response = await self._client.post(endpoint, json=body)
        except httpx.TimeoutException as e:
            record_vendor_call(operation, "timeout", time.perf_counter() - start)
            logger.error(f"Vendor {operation} timed out")
            raise VendorApiError(
                f"Vendor API timeout on {operation}",
                code="VENDOR_TIMEOUT",
                details={"operation": operation},
            ) from e
        except httpx.RequestError as e:
            record_vendor_call(operation, "unreachable", time.perf_counter() - start)
            logger.error(f"Vendor {operation} unreachable: {e}")
            raise VendorApiError(
                f"Vendor API unreachable on {operation}: {e}",
                code="VENDOR_UNREACHABLE",
                details={"operation": operation},
            ) from e

        duration = time.perf_counter() - start
        if response.status_code >= 400:
            record_vendor_call(operation, "http_error", duration)
            message = "Unknown error"
            try:
                message = _error_message(response.json(), message)
            except ValueError:
                pass
            logger.error(
                f"Vendor {operation} failed with HTTP {response.status_code} "
                f"in {duration * 1000:.0f}ms: {message}"
            )
            raise VendorApiError(
                f"Vendor API Error (HTTP {response.status_code}): {message}",
                details={"operation": operation, "status_code": response.status_code},
            )

        try:
            payload = response.json()
        except ValueError as e:
            record_vendor_call(operation, "bad_response", duration)
            raise VendorApiError(
                f"Vendor API returned a non-JSON body on {operation}",
                details={"operation": operation},
            ) from e

        if not isinstance(payload, dict):
            payload = {"ReturnVal": payload}

        outcome = "ok" if _is_success(payload) else "rejected"
        record_vendor_call(operation, outcome, duration)
        logger.info(f"Vendor {operation} {outcome} in {duration * 1000:.0f}ms")
        return payload
