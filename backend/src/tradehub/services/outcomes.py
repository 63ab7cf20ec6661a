"""Result values for per-item steps of the fulfillment saga.

Expected per-item failures are returned as values and collected, not raised.
"""

from dataclasses import dataclass
from enum import Enum
from uuid import UUID


@dataclass(frozen=True)
class VendorLine:
    """A vendor-sourced order line to reserve at the vendor."""

    order_item_id: UUID
    product_id: UUID
    vendor_article_id: str
    quantity: int


@dataclass(frozen=True)
class OwnLine:
    """An own-inventory order line to deduct from local stock."""

    order_item_id: UUID
    product_id: UUID
    quantity: int


@dataclass(frozen=True)
class LineOutcome:
    order_item_id: UUID
    product_id: UUID
    success: bool
    reservation_id: UUID | None = None
    vendor_reservation_id: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class CompensationOutcome:
    """Outcome of a best-effort vendor release, persisted on the reservation."""

    attempted: bool
    succeeded: bool
    failed_reason: str | None = None


class FailureKind(str, Enum):
    vendor_reservation = "vendor_reservation"
    own_stock_deduction = "own_stock_deduction"


@dataclass(frozen=True)
class SagaFailure:
    kind: FailureKind
    error: str
    product_id: UUID | None = None
