"""Explicit caller context threaded through service calls."""

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True)
class CallerContext:
    """Who is calling and from where.

    Built once per request by the API layer and passed down; services never
    look the caller up from shared state.
    """

    customer_id: UUID | None = None
    is_privileged: bool = False
    ip_address: str | None = None
    user_agent: str | None = None

    @classmethod
    def system(cls) -> "CallerContext":
        """Context for scheduled jobs and scripts."""
        return cls(is_privileged=True, user_agent="tradehub-system")
