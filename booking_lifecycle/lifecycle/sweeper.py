"""
Periodic expiry sweep.

Finds pending requests whose deadline has passed and expires them. The
sweep races freely with accepts and with lazy read-time expiry: whichever
reaches the store's compare-and-set first wins, and the sweep just counts
the requests it lost.
"""

import threading
from dataclasses import dataclass, field
from typing import Optional

from booking_lifecycle.errors import AlreadyResolvedError
from booking_lifecycle.lifecycle.state_machine import BookingLifecycle
from booking_lifecycle.logging_context import get_lifecycle_logger, request_scope

logger = get_lifecycle_logger(__name__)


@dataclass
class SweepReport:
    """Outcome of one sweep pass."""
    examined: int = 0
    expired: list[str] = field(default_factory=list)
    lost_races: int = 0


class ExpirySweeper:
    def __init__(self, lifecycle: BookingLifecycle) -> None:
        self._lifecycle = lifecycle

    def run_once(self) -> SweepReport:
        report = SweepReport()
        overdue = self._lifecycle.store.list_overdue_pending(self._lifecycle.clock.now())
        for request in overdue:
            report.examined += 1
            with request_scope(request.id, "sweep"):
                try:
                    if self._lifecycle.expire(request.id):
                        report.expired.append(request.id)
                    else:
                        report.lost_races += 1
                except AlreadyResolvedError as exc:
                    logger.info("Sweep skipped %s: already %s", request.id, exc.current_state)
                    report.lost_races += 1

        logger.info(
            "Expiry sweep completed. Examined: %d, Expired: %d, Lost races: %d",
            report.examined, len(report.expired), report.lost_races,
        )
        return report

    def run_forever(self, stop_event: threading.Event, interval_sec: float) -> None:
        """Sweep every interval_sec until stop_event is set."""
        logger.info("Expiry sweeper started (interval %ss)", interval_sec)
        while not stop_event.is_set():
            try:
                self.run_once()
            except Exception:
                logger.exception("Expiry sweep failed; retrying next interval")
            stop_event.wait(interval_sec)
        logger.info("Expiry sweeper stopped")

    def start_background(
        self, interval_sec: float, stop_event: Optional[threading.Event] = None
    ) -> tuple[threading.Thread, threading.Event]:
        """Run the sweep loop on a daemon thread. Returns (thread, stop_event)."""
        stop_event = stop_event or threading.Event()
        thread = threading.Thread(
            target=self.run_forever,
            args=(stop_event, interval_sec),
            name="expiry-sweeper",
            daemon=True,
        )
        thread.start()
        return thread, stop_event
