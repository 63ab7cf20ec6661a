"""API v1 routers."""

from tradehub.api.v1 import admin, orders

__all__ = ["admin", "orders"]
