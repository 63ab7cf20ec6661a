"""Submit vendor sales orders for every fully reserved, paid order.

Meant for cron. Holds the same Redis lock as the in-app batch loop, so
overlapping runs are skipped.

Exit code: 0 when the run had no errors (or was skipped because another
run holds the lock), 1 otherwise.

Usage:
    cd backend && python -m scripts.run_vendor_orders
"""

import asyncio
import logging
import sys

from tradehub.core.config import settings
from tradehub.core.database import async_session_maker, engine
from tradehub.core.redis import close_redis, get_redis
from tradehub.services.redis_service import RedisService
from tradehub.services.vendor_client import VendorApiClient
from tradehub.services.vendor_order_service import run_vendor_order_batch

logger = logging.getLogger("scripts.run_vendor_orders")


async def main() -> int:
    redis = await get_redis()
    try:
        async with VendorApiClient() as vendor_client, async_session_maker() as session:
            result = await run_vendor_order_batch(session, vendor_client, RedisService(redis))
    finally:
        await close_redis()
        await engine.dispose()

    if result.skipped_locked:
        logger.info("Another run holds the lock, nothing to do")
        return 0

    print(f"Processed {result.orders_processed} order(s)")
    for order_number in result.processed_orders:
        print(f"  {order_number}")
    for error in result.errors:
        print(f"  FAILED {error.order_number}: {error.error}")

    return 0 if result.success else 1


if __name__ == "__main__":
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    sys.exit(asyncio.run(main()))
