"""
Cancellation penalty persistence.

Append-only: records are never updated or removed, they simply age out of
the rolling window when counted. An appointment is penalized at most once
per cleaner, so retrying a cancellation never double counts it.

The store also remembers cleaners whose threshold-crossing freeze has not
reached the account service yet, so the freeze can be retried.
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from booking_lifecycle.schemas.penalty_schema import CancellationPenaltyRecord


class PenaltyRecordRepository(ABC):
    @abstractmethod
    def count_since(self, cleaner_id: str, window_start: datetime) -> int:
        raise NotImplementedError

    @abstractmethod
    def list_for_cleaner(self, cleaner_id: str) -> list[CancellationPenaltyRecord]:
        raise NotImplementedError

    @abstractmethod
    def find(self, cleaner_id: str, appointment_id: str) -> Optional[CancellationPenaltyRecord]:
        raise NotImplementedError

    @abstractmethod
    def append_and_count(
        self, record: CancellationPenaltyRecord, window_start: datetime
    ) -> tuple[int, int]:
        """Append a record and return the cleaner's in-window count (before, after).

        Must be atomic so two simultaneous cancellations cannot both observe
        the same `before` count. A record for an appointment the cleaner was
        already penalized for is not appended, and before equals after.
        """
        raise NotImplementedError

    @abstractmethod
    def mark_freeze_pending(self, cleaner_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def clear_freeze_pending(self, cleaner_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def is_freeze_pending(self, cleaner_id: str) -> bool:
        raise NotImplementedError


class InMemoryPenaltyStore(PenaltyRecordRepository):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, list[CancellationPenaltyRecord]] = {}
        self._freeze_pending: set[str] = set()

    def count_since(self, cleaner_id: str, window_start: datetime) -> int:
        with self._lock:
            return self._count_locked(cleaner_id, window_start)

    def list_for_cleaner(self, cleaner_id: str) -> list[CancellationPenaltyRecord]:
        with self._lock:
            return list(self._records.get(cleaner_id, []))

    def find(self, cleaner_id: str, appointment_id: str) -> Optional[CancellationPenaltyRecord]:
        with self._lock:
            return self._find_locked(cleaner_id, appointment_id)

    def append_and_count(
        self, record: CancellationPenaltyRecord, window_start: datetime
    ) -> tuple[int, int]:
        with self._lock:
            before = self._count_locked(record.cleaner_id, window_start)
            if self._find_locked(record.cleaner_id, record.appointment_id) is not None:
                return before, before
            self._records.setdefault(record.cleaner_id, []).append(record)
            after = self._count_locked(record.cleaner_id, window_start)
        return before, after

    def mark_freeze_pending(self, cleaner_id: str) -> None:
        with self._lock:
            self._freeze_pending.add(cleaner_id)

    def clear_freeze_pending(self, cleaner_id: str) -> None:
        with self._lock:
            self._freeze_pending.discard(cleaner_id)

    def is_freeze_pending(self, cleaner_id: str) -> bool:
        with self._lock:
            return cleaner_id in self._freeze_pending

    def _find_locked(self, cleaner_id: str, appointment_id: str) -> Optional[CancellationPenaltyRecord]:
        for record in self._records.get(cleaner_id, []):
            if record.appointment_id == appointment_id:
                return record
        return None

    def _count_locked(self, cleaner_id: str, window_start: datetime) -> int:
        return sum(
            1 for r in self._records.get(cleaner_id, []) if r.occurred_at >= window_start
        )
