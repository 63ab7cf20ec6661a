"""
Error taxonomy for order fulfillment.

    TradeHubError
    ├── ValidationError          bad input
    ├── OrderNotFoundError       unknown order id
    ├── NotAvailableError        insufficient stock in the ledger
    ├── VendorApiError           network / timeout / vendor rejection
    │   └── ReservationFailedError   aggregate of per-item reservation failures
    ├── PersistenceError         storage failure
    ├── ConsistencyViolation     illegal state transition
    └── FulfillmentFailedError   payment captured but fulfillment failed

Per-item outcomes inside the reservation coordinator and own-stock deduction
are collected as result values; only the aggregate and saga-level failures
above are raised to callers.
"""
from typing import Any, Dict, List, Optional


class TradeHubError(Exception):
    """Base exception carrying a message, a machine-readable code and details."""

    default_code: str = "TRADEHUB_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(TradeHubError):
    default_code = "VALIDATION_ERROR"


class OrderNotFoundError(TradeHubError):
    default_code = "ORDER_NOT_FOUND"

    def __init__(self, order_id: Any):
        super().__init__(f"Order {order_id} not found", details={"order_id": str(order_id)})


class NotAvailableError(TradeHubError):
    default_code = "NOT_AVAILABLE"


class VendorApiError(TradeHubError):
    default_code = "VENDOR_API_ERROR"


class ReservationFailedError(VendorApiError):
    """Raised by the reservation coordinator when at least one line failed.

    ``failures`` lists every failed line; every line that had succeeded was
    compensated before this is raised.
    """

    default_code = "VENDOR_RESERVATION_FAILED"

    def __init__(self, failures: List[Dict[str, Any]]):
        self.failures = failures
        summary = "; ".join(f"{f['product_id']}: {f['error']}" for f in failures)
        super().__init__(
            f"Failed to reserve all vendor products: {summary}",
            details={"failures": failures},
        )


class PersistenceError(TradeHubError):
    default_code = "PERSISTENCE_ERROR"


class ConsistencyViolation(TradeHubError):
    default_code = "CONSISTENCY_VIOLATION"


class FulfillmentFailedError(TradeHubError):
    """Payment was captured but the order could not be fulfilled.

    Requires manual or automated retry; the order is left in payment_pending.
    """

    default_code = "FULFILLMENT_FAILED"
