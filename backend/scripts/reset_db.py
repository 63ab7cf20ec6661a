"""Empty every TradeHub table and drop a stale vendor batch lock.

Rows are deleted child tables first, following the model metadata, so new
tables are picked up without touching this script. Only the batch lock key
is removed from Redis; other keys on a shared Redis are left alone.

Usage:
    cd backend && python -m scripts.reset_db
"""

import asyncio

from redis.exceptions import RedisError

from tradehub.core.database import Base, async_session_maker, engine
from tradehub.core.redis import close_redis, get_redis
from tradehub.models import Product  # noqa: F401  registers every model on Base
from tradehub.services.redis_service import VENDOR_ORDER_BATCH_LOCK


async def main():
    async with async_session_maker() as session:
        for table in reversed(Base.metadata.sorted_tables):
            result = await session.execute(table.delete())
            print(f"{table.name}: {result.rowcount} row(s) deleted")
        await session.commit()

    try:
        redis = await get_redis()
        removed = await redis.delete(f"lock:{VENDOR_ORDER_BATCH_LOCK}")
        print(f"vendor batch lock: {'removed' if removed else 'not held'}")
    except RedisError as e:
        print(f"Redis not reachable, lock left as is: {e}")
    finally:
        await close_redis()

    await engine.dispose()
    print("Reset complete. Re-seed with: python -m scripts.seed_data")


if __name__ == "__main__":
    asyncio.run(main())
