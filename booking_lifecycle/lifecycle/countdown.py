"""
Countdown evaluator for a booking request's response deadline.

Pure function of (expires_at, now). Readers re-evaluate on a fixed
interval instead of scheduling a timer per request, so any number of
screens or workers can poll it with no shared state.

Usage:
    status = evaluate(request.expires_at, clock.now())
    if status.is_urgent_tier:
        ...
"""

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterator, Optional

from booking_lifecycle.clock import Clock
from booking_lifecycle.utils import ensure_utc

MS_PER_MINUTE = 60 * 1000
MS_PER_HOUR = 60 * MS_PER_MINUTE

# Tier boundaries are read by downstream screens as business thresholds
URGENT_THRESHOLD_MS = 1 * MS_PER_HOUR
WARNING_THRESHOLD_MS = 6 * MS_PER_HOUR

EXPIRED_LABEL = "Expired"


@dataclass(frozen=True)
class CountdownStatus:
    """Time remaining before a response deadline, with its urgency tier."""
    time_remaining_label: str
    is_expired: bool
    is_warning_tier: bool
    is_urgent_tier: bool
    hours: int
    minutes: int
    remaining_ms: int


def evaluate(expires_at: datetime, now: datetime) -> CountdownStatus:
    """Compute the countdown for a deadline.

    Hours and minutes are truncated, never rounded up: 59m59s reads "59m left".
    """
    delta = ensure_utc(expires_at) - ensure_utc(now)
    remaining_ms = (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000

    if remaining_ms <= 0:
        return CountdownStatus(
            time_remaining_label=EXPIRED_LABEL,
            is_expired=True,
            is_warning_tier=False,
            is_urgent_tier=True,
            hours=0,
            minutes=0,
            remaining_ms=0,
        )

    hours = remaining_ms // MS_PER_HOUR
    minutes = (remaining_ms % MS_PER_HOUR) // MS_PER_MINUTE
    is_urgent = remaining_ms < URGENT_THRESHOLD_MS
    is_warning = not is_urgent and remaining_ms < WARNING_THRESHOLD_MS

    return CountdownStatus(
        time_remaining_label=format_label(hours, minutes),
        is_expired=False,
        is_warning_tier=is_warning,
        is_urgent_tier=is_urgent,
        hours=hours,
        minutes=minutes,
        remaining_ms=remaining_ms,
    )


def format_label(hours: int, minutes: int) -> str:
    if hours > 0:
        return f"{hours}h {minutes}m left"
    return f"{minutes}m left"


def poll(
    expires_at: datetime,
    clock: Clock,
    interval_sec: float = 60,
    sleep: Callable[[float], None] = time.sleep,
    max_ticks: Optional[int] = None,
) -> Iterator[CountdownStatus]:
    """Yield a fresh evaluation every `interval_sec` until the deadline passes.

    The final yielded status is the expired one. `max_ticks` bounds the
    number of evaluations for callers that only want a few refreshes.
    """
    ticks = 0
    while True:
        status = evaluate(expires_at, clock.now())
        yield status
        ticks += 1
        if status.is_expired or (max_ticks is not None and ticks >= max_ticks):
            return
        sleep(interval_sec)
