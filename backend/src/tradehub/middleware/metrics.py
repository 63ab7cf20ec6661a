"""Prometheus metrics: HTTP middleware plus fulfillment and vendor counters."""
import time
from typing import Callable

from prometheus_client import Counter, Gauge, Histogram, generate_latest
from prometheus_client import CONTENT_TYPE_LATEST
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


# =============================================================================
# Prometheus Metrics Definitions
# =============================================================================

# Request metrics
REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_requests_active",
    "Number of active HTTP requests",
)

# Vendor API metrics
VENDOR_CALL_LATENCY = Histogram(
    "vendor_api_call_duration_seconds",
    "Vendor API call latency in seconds",
    ["operation", "outcome"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
)

# Fulfillment metrics
FULFILLMENT_OUTCOMES = Counter(
    "fulfillment_saga_total",
    "Payment-success saga outcomes",
    ["outcome"],  # processing, reserved, compensated, failed, cancelled
)

RESERVATION_COMPENSATIONS = Counter(
    "reservation_compensations_total",
    "Vendor reservation releases performed during compensation",
    ["result"],  # released, vendor_release_failed
)

VENDOR_BATCH_ORDERS = Counter(
    "vendor_batch_orders_total",
    "Orders handled by the vendor sales-order batch",
    ["result"],  # submitted, skipped, error, locked
)


# =============================================================================
# Metrics Middleware
# =============================================================================

class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware to collect Prometheus metrics for all HTTP requests."""

    # Endpoints to normalize for metrics (reduce cardinality)
    ENDPOINT_PATTERNS = {
        "/api/v1/orders": "/api/v1/orders",
        "/api/v1/admin": "/api/v1/admin",
    }

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Skip metrics endpoint to avoid recursion
        if request.url.path == "/metrics":
            return await call_next(request)

        ACTIVE_REQUESTS.inc()
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception:
            status_code = 500
            raise
        finally:
            ACTIVE_REQUESTS.dec()
            latency = time.perf_counter() - start_time

            endpoint = self._normalize_endpoint(request.url.path)

            REQUEST_COUNT.labels(
                method=request.method,
                endpoint=endpoint,
                status=status_code,
            ).inc()

            REQUEST_LATENCY.labels(
                method=request.method,
                endpoint=endpoint,
            ).observe(latency)

        return response

    def _normalize_endpoint(self, path: str) -> str:
        """Normalize endpoint path to reduce metric cardinality."""
        for pattern, normalized in self.ENDPOINT_PATTERNS.items():
            if path.startswith(pattern):
                return normalized

        if path in ("/health", "/metrics"):
            return path

        return "/other"


# =============================================================================
# Metrics Endpoint
# =============================================================================

async def metrics_endpoint(request: Request) -> Response:
    """Prometheus metrics scrape endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


# =============================================================================
# Helper Functions for Manual Metric Recording
# =============================================================================

def record_vendor_call(operation: str, outcome: str, duration: float) -> None:
    """Record a vendor API round-trip."""
    VENDOR_CALL_LATENCY.labels(operation=operation, outcome=outcome).observe(duration)


def record_fulfillment_outcome(outcome: str) -> None:
    FULFILLMENT_OUTCOMES.labels(outcome=outcome).inc()


def record_compensation(result: str) -> None:
    RESERVATION_COMPENSATIONS.labels(result=result).inc()


def record_batch_order(result: str) -> None:
    VENDOR_BATCH_ORDERS.labels(result=result).inc()
