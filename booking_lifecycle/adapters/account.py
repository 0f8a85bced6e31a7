"""
In-process cleaner account freezing.

In production, this would flag the cleaner's account (frozen, frozen_at,
reason) and unassign them from future jobs.
"""

import logging
import threading
from typing import TypedDict

from booking_lifecycle.ports import AccountFreezePort

logger = logging.getLogger(__name__)


class FreezeRecord(TypedDict):
    cleaner_id: str
    reason: str


class InMemoryAccountFreezer(AccountFreezePort):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._frozen: dict[str, FreezeRecord] = {}

    def freeze(self, cleaner_id: str, reason: str) -> None:
        with self._lock:
            self._frozen[cleaner_id] = {"cleaner_id": cleaner_id, "reason": reason}
        logger.info("Cleaner account frozen: %s (%s)", cleaner_id, reason)

    def is_frozen(self, cleaner_id: str) -> bool:
        with self._lock:
            return cleaner_id in self._frozen

    def reason_for(self, cleaner_id: str) -> str:
        with self._lock:
            return self._frozen[cleaner_id]["reason"]
