"""
In-process appointment activation.

In production, this would call the appointments service to finalize the
appointment (assign the cleaner, open it for payment capture).
"""

import logging
import threading

from booking_lifecycle.ports import AppointmentActivationPort

logger = logging.getLogger(__name__)


class NoopActivation(AppointmentActivationPort):
    """Records activated appointment ids and always succeeds."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.activated: list[str] = []

    def activate(self, appointment_id: str) -> None:
        with self._lock:
            self.activated.append(appointment_id)
        logger.debug("Appointment activated: %s", appointment_id)
