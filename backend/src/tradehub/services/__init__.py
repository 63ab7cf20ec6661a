"""Business logic services."""

from tradehub.services.cancellation_service import CancellationService
from tradehub.services.fulfillment_service import FulfillmentService
from tradehub.services.inventory_service import InventoryService
from tradehub.services.order_service import OrderService
from tradehub.services.own_stock_service import OwnStockService
from tradehub.services.redis_service import RedisService
from tradehub.services.reservation_service import ReservationService
from tradehub.services.vendor_client import VendorApiClient
from tradehub.services.vendor_order_service import VendorOrderBatchService, run_vendor_order_batch

__all__ = [
    "CancellationService",
    "FulfillmentService",
    "InventoryService",
    "OrderService",
    "OwnStockService",
    "RedisService",
    "ReservationService",
    "VendorApiClient",
    "VendorOrderBatchService",
    "run_vendor_order_batch",
]
