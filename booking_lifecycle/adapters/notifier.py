"""
In-process notification delivery.

In production, this would fan out to push, email, in-app and socket
channels. Here events are either logged or kept in an outbox that demos
and tests can inspect.
"""

import logging
import threading
from typing import Any, Optional, TypedDict

from booking_lifecycle.ports import NotificationPort

logger = logging.getLogger(__name__)


class Notification(TypedDict):
    """A single delivered event."""

    actor_id: str
    event_type: str
    payload: dict[str, Any]


class RecordingNotifier(NotificationPort):
    """Keeps every notification in memory, in delivery order."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._outbox: list[Notification] = []

    def notify(self, actor_id: str, event_type: str, payload: dict[str, Any]) -> None:
        with self._lock:
            self._outbox.append(
                {"actor_id": actor_id, "event_type": event_type, "payload": dict(payload)}
            )

    def sent(
        self, event_type: Optional[str] = None, actor_id: Optional[str] = None
    ) -> list[Notification]:
        """Notifications filtered by event type and/or recipient."""
        with self._lock:
            return [
                n for n in self._outbox
                if (event_type is None or n["event_type"] == event_type)
                and (actor_id is None or n["actor_id"] == actor_id)
            ]

    def reset(self) -> None:
        """Clear the outbox. Used by test fixtures for isolation."""
        with self._lock:
            self._outbox.clear()


class LoggingNotifier(NotificationPort):
    def notify(self, actor_id: str, event_type: str, payload: dict[str, Any]) -> None:
        logger.info("Notify %s: %s %s", actor_id, event_type, payload.get("request_id", ""))
