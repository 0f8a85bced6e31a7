"""Injectable time sources.

Everything that needs "now" takes a Clock so expiry and penalty windows
can be pinned in tests and races reproduced deterministically.
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional

from booking_lifecycle.utils import ensure_utc


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current time as a timezone-aware UTC datetime."""
        raise NotImplementedError


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Manually driven clock. Time only moves when told to."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self._lock = threading.Lock()
        self._now = ensure_utc(start) if start else datetime.now(timezone.utc)

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def set(self, value: datetime) -> None:
        with self._lock:
            self._now = ensure_utc(value)

    def advance(self, **kwargs: float) -> datetime:
        """Move forward by a timedelta built from kwargs (hours=2, minutes=5...)."""
        with self._lock:
            self._now = self._now + timedelta(**kwargs)
            return self._now
