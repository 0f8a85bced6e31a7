"""
Offline console demo: walks booking requests through their lifecycle.

Uses the real state machine, countdown, rebooking coordinator and penalty
ledger against in-memory stores and a manually driven clock, so days of
request time pass in a second. No database, no network calls.

Usage:
    python console_demo.py
    python console_demo.py --scenario expire
    python console_demo.py --scenario penalty
"""

import argparse
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from booking_lifecycle.adapters.account import InMemoryAccountFreezer
from booking_lifecycle.adapters.notifier import RecordingNotifier
from booking_lifecycle.clock import FixedClock
from booking_lifecycle.config import settings
from booking_lifecycle.errors import BookingLifecycleError, BusinessRuleError
from booking_lifecycle.lifecycle import (
    BookingLifecycle,
    CancellationPenaltyLedger,
    ExpirySweeper,
    RebookingCoordinator,
    evaluate,
)
from booking_lifecycle.schemas.booking_schema import BookingRequest
from booking_lifecycle.store.booking_store import InMemoryBookingRequestStore
from booking_lifecycle.store.penalty_store import InMemoryPenaltyStore

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

DEMO_START = datetime(2025, 3, 15, 10, 0, tzinfo=timezone.utc)

SCENARIOS: dict[str, str] = {
    "decline": "Client declines with a suggested date, owner rebooks, client accepts",
    "expire": "Client never answers; the sweep expires the request and rebooking hits the cap",
    "penalty": "Cleaner cancels three jobs at short notice and the account is frozen",
}


class ConsoleSession:
    """One demo run with its own clock, stores and outbox."""

    def __init__(self) -> None:
        self.clock = FixedClock(DEMO_START)
        self.notifier = RecordingNotifier()
        self.freezer = InMemoryAccountFreezer()
        self.lifecycle = BookingLifecycle(
            InMemoryBookingRequestStore(), self.clock, notifier=self.notifier, config=settings
        )
        self.coordinator = RebookingCoordinator(self.lifecycle, notifier=self.notifier, config=settings)
        self.sweeper = ExpirySweeper(self.lifecycle)
        self.ledger = CancellationPenaltyLedger(
            InMemoryPenaltyStore(),
            self.clock,
            notifier=self.notifier,
            account_freezer=self.freezer,
            config=settings,
        )
        self._seen_notifications = 0

    def actor_say(self, actor: str, text: str) -> None:
        print(f"{GREEN}{BOLD}[{actor}]{RESET} {GREEN}{text}{RESET}")

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    def error(self, exc: BookingLifecycleError) -> None:
        colour = YELLOW if isinstance(exc, BusinessRuleError) else RED
        print(f"{colour}  !! {exc.user_message} ({exc.code}){RESET}")

    def pass_time(self, **kwargs) -> None:
        now = self.clock.advance(**kwargs)
        print(f"{BLUE}--- {now:%a %d %b %H:%M} UTC ---{RESET}")

    def show_countdown(self, request: BookingRequest) -> None:
        status = evaluate(request.expires_at, self.clock.now())
        colour = RED if status.is_urgent_tier else YELLOW if status.is_warning_tier else DIM
        print(f"{colour}  [{request.id}] {status.time_remaining_label}{RESET}")

    def flush_notifications(self) -> None:
        sent = self.notifier.sent()
        for n in sent[self._seen_notifications:]:
            self.system_log(f"notify {n['actor_id']}: {n['event_type']}")
        self._seen_notifications = len(sent)

    def run_scenario(self, name: str) -> None:
        print(f"\n{BOLD}{SCENARIOS[name]}{RESET}\n")
        getattr(self, f"_scenario_{name}")()
        print()

    def run(self) -> None:
        for name in SCENARIOS:
            ConsoleSession().run_scenario(name)

    # ------------------------------------------------------------------ #
    # Scenarios
    # ------------------------------------------------------------------ #

    def _scenario_decline(self) -> None:
        request = self.lifecycle.propose(
            "owner-1", "client-7", "apt-42", date(2025, 3, 18), price=Decimal("95.00")
        )
        self.actor_say("owner-1", f"Proposed a clean on {request.appointment_date} for $95.00")
        self.flush_notifications()
        self.show_countdown(request)

        self.pass_time(hours=10)
        self.show_countdown(request)
        declined = self.lifecycle.decline(
            request.id, reason="schedule conflict", suggested_dates=["2025-03-20"]
        )
        self.actor_say(
            "client-7",
            f"Declined ({declined.decline_reason}), suggested "
            f"{', '.join(d.isoformat() for d in declined.suggested_alternative_dates)}",
        )
        self.flush_notifications()

        rebooked = self.coordinator.rebook(
            request.id, declined.suggested_alternative_dates[0], new_time_window="10-3"
        )
        self.actor_say(
            "owner-1",
            f"Rebooked for {rebooked.appointment_date} ({rebooked.time_window}), "
            f"attempt {rebooked.rebooking_attempts}",
        )
        self.flush_notifications()

        self.pass_time(hours=44)
        self.show_countdown(rebooked)
        self.lifecycle.accept(rebooked.id, actor_id="client-7")
        self.actor_say("client-7", "Accepted")
        self.flush_notifications()

        try:
            self.lifecycle.decline(rebooked.id, actor_id="client-7")
        except BookingLifecycleError as exc:
            self.error(exc)

    def _scenario_expire(self) -> None:
        request = self.lifecycle.propose("owner-1", "client-9", "apt-77", date(2025, 3, 19))
        self.actor_say("owner-1", f"Proposed a clean on {request.appointment_date}")
        self.flush_notifications()

        for hours in (40, 7, 1):
            self.pass_time(hours=hours)
            self.show_countdown(request)

        report = self.sweeper.run_once()
        self.system_log(f"sweep expired {len(report.expired)} of {report.examined} overdue")
        self.flush_notifications()

        try:
            self.lifecycle.accept(request.id, actor_id="client-9")
        except BookingLifecycleError as exc:
            self.error(exc)

        current = request
        for day in (21, 22, 23, 24):
            try:
                current = self.coordinator.rebook(current.id, date(2025, 3, day))
            except BookingLifecycleError as exc:
                self.error(exc)
                break
            self.actor_say(
                "owner-1", f"Rebooked for 2025-03-{day} (attempt {current.rebooking_attempts})"
            )
            self.lifecycle.decline(current.id, actor_id="client-9")
            self.actor_say("client-9", "Declined")

        chain = self.coordinator.chain(current.id)
        self.system_log(" -> ".join(f"{r.id} ({r.state.value})" for r in chain))

    def _scenario_penalty(self) -> None:
        for job, days_before in enumerate((6, 3, 2, 1), start=1):
            appointment_date = self.clock.now().date() + timedelta(days=days_before)
            appointment_id = f"job-{job}"
            preview = self.ledger.preview("cleaner-3", appointment_id, appointment_date)
            colour = RED if preview.will_result_in_freeze else YELLOW
            print(f"{colour}  {preview.warning_message}{RESET}")
            if preview.requires_acknowledgment:
                self.actor_say("cleaner-3", preview.acknowledgment_message)

            outcome = self.ledger.commit_cancellation(
                "cleaner-3", appointment_id, appointment_date, acknowledged=True
            )
            self.system_log(
                f"{appointment_id}: penalty={outcome.penalty_applied} "
                f"frozen={outcome.account_frozen} recent={outcome.recent_penalty_count}"
            )
            self.flush_notifications()
            if outcome.account_frozen:
                break
            self.pass_time(days=9)

        status = self.ledger.account_status("cleaner-3")
        self.system_log(
            f"cleaner-3 frozen={status.is_frozen} "
            f"({status.recent_penalty_count} penalties in window)"
        )


def main() -> None:
    parser = argparse.ArgumentParser(description="Offline booking lifecycle demo")
    parser.add_argument(
        "--scenario",
        choices=sorted(SCENARIOS),
        default=None,
        help="Play a single scenario instead of all of them",
    )
    args = parser.parse_args()

    session = ConsoleSession()
    if args.scenario:
        session.run_scenario(args.scenario)
    else:
        session.run()


if __name__ == "__main__":
    main()
