"""Vendor sales-order batch schemas."""

from pydantic import BaseModel, Field


class VendorOrderError(BaseModel):
    order_number: str
    error: str


class VendorOrderBatchResult(BaseModel):
    orders_processed: int = 0
    processed_orders: list[str] = Field(default_factory=list)
    errors: list[VendorOrderError] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


class VendorOrderRunResponse(VendorOrderBatchResult):
    """Batch result as returned by the admin trigger endpoint."""

    skipped_locked: bool = False
