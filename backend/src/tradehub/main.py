import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tradehub.api.v1 import admin, orders
from tradehub.core.config import settings
from tradehub.core.database import get_db
from tradehub.core.exceptions import (
    ConsistencyViolation,
    FulfillmentFailedError,
    NotAvailableError,
    OrderNotFoundError,
    PersistenceError,
    TradeHubError,
    ValidationError,
    VendorApiError,
)
from tradehub.core.redis import close_redis, get_redis, ping_redis
from tradehub.middleware.metrics import PrometheusMiddleware, metrics_endpoint
from tradehub.services.redis_service import RedisService
from tradehub.services.vendor_client import VendorApiClient
from tradehub.services.vendor_order_service import run_vendor_order_batch

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Background task control
_vendor_order_task: asyncio.Task | None = None

# Most specific first; the first isinstance match wins
_ERROR_STATUS: list[tuple[type[TradeHubError], int]] = [
    (ValidationError, 422),
    (OrderNotFoundError, status.HTTP_404_NOT_FOUND),
    (NotAvailableError, status.HTTP_409_CONFLICT),
    (ConsistencyViolation, status.HTTP_409_CONFLICT),
    (FulfillmentFailedError, status.HTTP_502_BAD_GATEWAY),
    (VendorApiError, status.HTTP_502_BAD_GATEWAY),
    (PersistenceError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def status_for(exc: TradeHubError) -> int:
    for exc_type, code in _ERROR_STATUS:
        if isinstance(exc, exc_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def vendor_order_loop(vendor_client: VendorApiClient):
    """Background task to submit vendor sales orders every interval."""
    interval = settings.VENDOR_ORDER_BATCH_INTERVAL_SECONDS
    while True:
        try:
            # Use async generator to get db session
            async for db in get_db():
                redis = await get_redis()
                result = await run_vendor_order_batch(db, vendor_client, RedisService(redis))
                if result.errors:
                    logger.warning(
                        f"Vendor order batch finished with {len(result.errors)} error(s)"
                    )
                break  # Only run once per iteration

            await asyncio.sleep(interval)

        except asyncio.CancelledError:
            logger.info("Vendor order loop cancelled")
            break
        except Exception as e:
            logger.error(f"Error in vendor order loop: {e}")
            await asyncio.sleep(interval)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    global _vendor_order_task

    # Startup
    logger.info("Starting application...")
    app.state.vendor_client = VendorApiClient()

    if settings.VENDOR_ORDER_BATCH_ENABLED:
        logger.info("Starting vendor order batch loop...")
        _vendor_order_task = asyncio.create_task(vendor_order_loop(app.state.vendor_client))

    yield

    # Shutdown
    logger.info("Stopping background tasks")

    if _vendor_order_task:
        _vendor_order_task.cancel()
        try:
            await _vendor_order_task
        except asyncio.CancelledError:
            pass

    await app.state.vendor_client.close()
    await close_redis()


app = FastAPI(
    title="TradeHub",
    version="1.0.0",
    description="Order fulfillment and inventory reservation service",
    lifespan=lifespan,
)

# Prometheus Metrics Middleware (must be first to capture all requests)
app.add_middleware(PrometheusMiddleware)

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(TradeHubError)
async def tradehub_error_handler(request: Request, exc: TradeHubError) -> JSONResponse:
    code = status_for(exc)
    if code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc.message}")
    return JSONResponse(status_code=code, content=exc.to_dict())


# Include API routers
app.include_router(orders.router, prefix="/api/v1/orders", tags=["orders"])
app.include_router(admin.router, prefix="/api/v1/admin", tags=["admin"])


@app.get("/health")
async def health_check():
    """Health check endpoint.

    Redis being down only stops the vendor batch, so it degrades rather
    than fails the check.
    """
    redis_ok = await ping_redis()
    return {
        "status": "healthy" if redis_ok else "degraded",
        "redis": "ok" if redis_ok else "unavailable",
    }


# Prometheus metrics endpoint
app.add_route("/metrics", metrics_endpoint)
