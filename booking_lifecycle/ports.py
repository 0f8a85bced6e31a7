"""
Collaborator interfaces consumed by the lifecycle services.

Implementations (HTTP clients, databases, push delivery) live outside this
library. In-process reference adapters are in booking_lifecycle.adapters.
"""

from abc import ABC, abstractmethod
from typing import Any


class AppointmentActivationPort(ABC):
    @abstractmethod
    def activate(self, appointment_id: str) -> None:
        """Finalize the appointment after acceptance. Raise on failure."""
        raise NotImplementedError


class NotificationPort(ABC):
    @abstractmethod
    def notify(self, actor_id: str, event_type: str, payload: dict[str, Any]) -> None:
        """Deliver an event to an actor. Delivery guarantees are the adapter's concern."""
        raise NotImplementedError


class AccountFreezePort(ABC):
    @abstractmethod
    def freeze(self, cleaner_id: str, reason: str) -> None:
        """Freeze a cleaner account. Raise on failure."""
        raise NotImplementedError
