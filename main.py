"""
Booking lifecycle worker entry point.

Runs the periodic expiry sweep, or the offline console demo for development.
The worker here is wired to the in-process store and logging notifier;
deployments substitute their own repository and notification adapters.

Usage:
    Expiry sweep: python main.py sweep
    Single pass:  python main.py sweep --once
    Console mode: python main.py console
"""

import logging
import signal
import sys
import threading

from booking_lifecycle.config import settings

logger = logging.getLogger(__name__)


def _build_sweeper():
    from booking_lifecycle.adapters.notifier import LoggingNotifier
    from booking_lifecycle.lifecycle import BookingLifecycle, ExpirySweeper
    from booking_lifecycle.store.booking_store import InMemoryBookingRequestStore

    lifecycle = BookingLifecycle(
        InMemoryBookingRequestStore(), notifier=LoggingNotifier(), config=settings
    )
    return ExpirySweeper(lifecycle)


def _run_sweep_mode(once: bool = False) -> None:
    """Sweep overdue requests every EXPIRY_SWEEP_INTERVAL_SECONDS until interrupted."""
    sweeper = _build_sweeper()
    if once:
        sweeper.run_once()
        return

    stop = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Received signal %s, stopping sweeper", signum)
        stop.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)
    logger.info("Starting %s expiry sweeper", settings.service_name)
    sweeper.run_forever(stop, settings.polling.sweep_interval_sec)


def _run_console_mode() -> None:
    """Start the offline console demo."""
    from console_demo import ConsoleSession

    session = ConsoleSession()
    session.run()


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "console":
        _run_console_mode()
    else:
        _run_sweep_mode(once="--once" in sys.argv[2:])
