"""Reservation schemas."""

from pydantic import BaseModel

from tradehub.models.enums import ReservationStatus


class ReservationStatusSummary(BaseModel):
    """Per-status reservation counts for one order."""

    total: int = 0
    pending: int = 0
    reserved: int = 0
    failed: int = 0
    unreserved: int = 0
    ordered: int = 0
    all_reserved: bool = False

    @classmethod
    def from_counts(cls, counts: dict[ReservationStatus, int]) -> "ReservationStatusSummary":
        per_status = {status.value: int(counts.get(status, 0)) for status in ReservationStatus}
        total = sum(per_status.values())
        return cls(
            total=total,
            all_reserved=per_status["reserved"] == total,
            **per_status,
        )
