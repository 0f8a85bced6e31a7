"""Integration tests: lifecycle + countdown + rebooking + penalty ledger together."""

import threading
from datetime import date, timedelta
from decimal import Decimal

import pytest

from booking_lifecycle.errors import AlreadyResolvedError, WindowExpiredError
from booking_lifecycle.lifecycle.countdown import evaluate
from booking_lifecycle.schemas.booking_schema import RequestState
from tests.conftest import T0, days_out, propose


class TestDeclineAndRebookFlow:
    """Owner proposes, client declines with a suggestion, owner rebooks, client accepts."""

    def test_full_flow(self, lifecycle, coordinator, clock, notifier, activation):
        request = lifecycle.propose(
            "owner-1", "client-7", "apt-42", date(2025, 3, 18), price=Decimal("95.00")
        )
        assert evaluate(request.expires_at, clock.now()).time_remaining_label == "48h 0m left"

        # Client sees the request and declines ten hours in
        clock.advance(hours=10)
        status = evaluate(request.expires_at, clock.now())
        assert status.time_remaining_label == "38h 0m left"
        assert not status.is_warning_tier

        declined = lifecycle.decline(
            request.id, reason="schedule conflict", suggested_dates=["2025-03-20"]
        )
        assert declined.suggested_alternative_dates == (date(2025, 3, 20),)

        summary = lifecycle.responses_for_initiator("owner-1")
        assert [r.id for r in summary.declined] == [request.id]
        assert summary.pending == []

        # Owner picks the suggested date
        rebooked = coordinator.rebook(
            request.id, declined.suggested_alternative_dates[0], new_time_window="11-4"
        )
        assert rebooked.rebooking_attempts == 1
        assert rebooked.created_at == T0 + timedelta(hours=10)
        assert rebooked.expires_at == T0 + timedelta(hours=58)
        assert rebooked.price == Decimal("95.00")

        clock.advance(hours=43)
        status = evaluate(rebooked.expires_at, clock.now())
        assert status.is_warning_tier
        assert status.time_remaining_label == "5h 0m left"

        accepted = lifecycle.accept(rebooked.id, actor_id="client-7")
        assert accepted.state == RequestState.ACCEPTED
        assert activation.activated == ["apt-42"]

        events = [n["event_type"] for n in notifier.sent()]
        assert events == [
            "booking_request.created",
            "booking_request.declined",
            "booking_request.rebooked",
            "booking_request.accepted",
        ]

    def test_expired_then_rebooked(self, lifecycle, coordinator, sweeper, clock):
        request = lifecycle.propose("owner-1", "client-7", "apt-42", date(2025, 3, 18))
        clock.advance(hours=48, minutes=30)
        assert evaluate(request.expires_at, clock.now()).is_expired

        report = sweeper.run_once()
        assert report.expired == [request.id]

        with pytest.raises(WindowExpiredError):
            lifecycle.accept(request.id)

        summary = lifecycle.responses_for_initiator("owner-1")
        assert [r.id for r in summary.expired] == [request.id]

        rebooked = coordinator.rebook(request.id, date(2025, 3, 21))
        assert lifecycle.pending_for("client-7") == [rebooked]


class TestAcceptRacingSweep:
    def test_accept_after_sweep_sees_expiry(self, lifecycle, sweeper, clock, store):
        request = lifecycle.propose("owner-1", "client-7", "apt-42", date(2025, 3, 18))
        clock.advance(hours=49)
        sweeper.run_once()
        with pytest.raises(WindowExpiredError):
            lifecycle.accept(request.id)
        assert store.get(request.id).state == RequestState.EXPIRED

    def test_sweep_after_accept_leaves_it_accepted(self, lifecycle, sweeper, clock, store):
        request = lifecycle.propose("owner-1", "client-7", "apt-42", date(2025, 3, 18))
        clock.advance(hours=47)
        lifecycle.accept(request.id)
        clock.advance(hours=2)
        assert sweeper.run_once().examined == 0
        with pytest.raises(AlreadyResolvedError):
            lifecycle.expire(request.id)
        assert store.get(request.id).state == RequestState.ACCEPTED

    @pytest.mark.parametrize("attempt", range(10))
    def test_accept_and_sweep_at_the_deadline(self, lifecycle, sweeper, clock, store, notifier, attempt):
        request = propose(lifecycle, appointment_id=f"apt-race-{attempt}", appointment_date=days_out(clock, 3))
        clock.advance(hours=48)
        barrier = threading.Barrier(2)
        outcome = {}

        def accept():
            barrier.wait()
            try:
                lifecycle.accept(request.id)
                outcome["accept"] = "accepted"
            except WindowExpiredError:
                outcome["accept"] = "expired"

        def sweep():
            barrier.wait()
            outcome["report"] = sweeper.run_once()

        threads = [threading.Thread(target=accept), threading.Thread(target=sweep)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert outcome["accept"] == "expired"
        assert store.get(request.id).state == RequestState.EXPIRED
        expired_notices = notifier.sent("booking_request.expired")
        assert sorted(n["actor_id"] for n in expired_notices) == ["client-7", "owner-1"]
        assert notifier.sent("booking_request.accepted") == []

        report = outcome["report"]
        assert report.examined <= 1
        assert len(report.expired) + report.lost_races == report.examined


class TestCleanerCancellationFlow:
    """Cleaner cancels three assigned jobs at short notice and gets frozen."""

    def test_preview_acknowledge_commit(self, ledger, clock, freezer):
        for job in range(3):
            appointment_date = days_out(clock, 2)
            preview = ledger.preview("cleaner-1", f"apt-{job}", appointment_date)
            assert preview.requires_acknowledgment
            outcome = ledger.commit_cancellation(
                "cleaner-1", f"apt-{job}", appointment_date, acknowledged=True
            )
            assert outcome.account_frozen == preview.will_result_in_freeze
            clock.advance(days=10)

        assert freezer.is_frozen("cleaner-1")
        assert ledger.account_status("cleaner-1").is_frozen
