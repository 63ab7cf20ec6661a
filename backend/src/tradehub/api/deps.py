"""API dependencies for caller identity, database and service access."""

import hmac
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from tradehub.core.config import settings
from tradehub.core.context import CallerContext
from tradehub.core.database import get_db
from tradehub.core.redis import get_redis
from tradehub.services.redis_service import RedisService
from tradehub.services.vendor_client import VendorApiClient


def _is_admin_key(key: str | None) -> bool:
    if not key or not settings.ADMIN_API_KEY:
        return False
    return hmac.compare_digest(key, settings.ADMIN_API_KEY)


async def get_caller_context(
    request: Request,
    x_admin_key: Annotated[str | None, Header()] = None,
    x_customer_id: Annotated[UUID | None, Header()] = None,
) -> CallerContext:
    """Build the caller context from request headers.

    Customer identity comes from the upstream gateway in ``X-Customer-Id``;
    privileged callers present ``X-Admin-Key``.
    """
    return CallerContext(
        customer_id=x_customer_id,
        is_privileged=_is_admin_key(x_admin_key),
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


async def get_privileged_context(
    ctx: Annotated[CallerContext, Depends(get_caller_context)],
) -> CallerContext:
    """Get caller context and verify it is privileged.

    Raises:
        HTTPException: If the admin key is missing or wrong
    """
    if not ctx.is_privileged:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return ctx


def get_vendor_client(request: Request) -> VendorApiClient:
    """Process-wide vendor client, created in the app lifespan."""
    return request.app.state.vendor_client


async def get_redis_service() -> RedisService:
    """Get RedisService instance with shared Redis connection pool."""
    redis = await get_redis()
    return RedisService(redis)


# Type aliases for cleaner dependency injection
Caller = Annotated[CallerContext, Depends(get_caller_context)]
PrivilegedCaller = Annotated[CallerContext, Depends(get_privileged_context)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
VendorClientDep = Annotated[VendorApiClient, Depends(get_vendor_client)]
RedisServiceDep = Annotated[RedisService, Depends(get_redis_service)]
