"""Cancellation penalty records and derived cleaner account status."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, field_validator

from booking_lifecycle.utils import ensure_utc


class CancellationPenaltyRecord(BaseModel):
    """Append-only entry written when a cleaner cancels inside the penalty window."""

    model_config = ConfigDict(frozen=True)

    cleaner_id: str
    appointment_id: str
    occurred_at: datetime
    days_before_appointment: int

    @field_validator("occurred_at")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class CleanerAccountStatus(BaseModel):
    """Computed on demand from the ledger, never stored."""
    cleaner_id: str
    recent_penalty_count: int
    is_frozen: bool
    freeze_pending: bool = False


class CancellationPreview(BaseModel):
    """Dry-run result shown to the cleaner before they confirm a cancellation."""
    cleaner_id: str
    appointment_id: str
    days_until_appointment: int
    is_within_penalty_window: bool
    recent_penalty_count: int
    will_result_in_freeze: bool
    requires_acknowledgment: bool
    warning_message: str
    acknowledgment_message: str
