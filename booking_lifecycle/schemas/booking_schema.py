"""Booking request data models."""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from booking_lifecycle.utils import ensure_utc


class RequestState(str, Enum):
    """Lifecycle state of a booking request. Everything except PENDING is terminal."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset(
    {RequestState.ACCEPTED, RequestState.DECLINED, RequestState.EXPIRED, RequestState.CANCELLED}
)

# Offered arrival windows, as shown to the client
TIME_WINDOWS = ("anytime", "10-3", "11-4", "12-2")


def new_request_id() -> str:
    return f"BR-{uuid.uuid4().hex[:10]}"


class BookingRequest(BaseModel):
    """A proposed appointment awaiting the counterparty's response.

    Records are immutable. State changes produce a new record through the
    store's guarded transition; resolved requests are kept as an audit trail.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_request_id)
    appointment_id: str
    initiator_id: str
    counterparty_id: str
    state: RequestState = RequestState.PENDING
    created_at: datetime
    expires_at: datetime
    appointment_date: date
    price: Optional[Decimal] = None
    time_window: str = "anytime"
    decline_reason: Optional[str] = None
    suggested_alternative_dates: tuple[date, ...] = ()
    rebooking_attempts: int = Field(default=0, ge=0)
    previous_request_id: Optional[str] = None
    resolved_at: Optional[datetime] = None
    activated_at: Optional[datetime] = None

    @field_validator("created_at", "expires_at", "resolved_at", "activated_at")
    @classmethod
    def _to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None

    @field_validator("time_window")
    @classmethod
    def _known_time_window(cls, value: str) -> str:
        if value not in TIME_WINDOWS:
            raise ValueError(f"time_window must be one of {list(TIME_WINDOWS)}, got {value!r}")
        return value

    @model_validator(mode="after")
    def _check_invariants(self) -> "BookingRequest":
        if self.expires_at <= self.created_at:
            raise ValueError("expires_at must be later than created_at")
        if self.state != RequestState.DECLINED:
            if self.suggested_alternative_dates:
                raise ValueError("suggested_alternative_dates are only allowed on declined requests")
            if self.decline_reason is not None:
                raise ValueError("decline_reason is only allowed on declined requests")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def is_overdue(self, now: datetime) -> bool:
        """True once the response deadline has passed, whatever the stored state."""
        return now >= self.expires_at
