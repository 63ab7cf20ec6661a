from tradehub.core.config import settings
from tradehub.core.context import CallerContext
from tradehub.core.database import Base, async_session_maker, engine, get_db
from tradehub.core.redis import close_redis, get_redis, ping_redis

__all__ = [
    "settings",
    "CallerContext",
    "Base",
    "engine",
    "async_session_maker",
    "get_db",
    "get_redis",
    "close_redis",
    "ping_redis",
]
