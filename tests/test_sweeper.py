"""Tests for the periodic expiry sweep."""

import threading
import time
from datetime import date, timedelta

from booking_lifecycle.lifecycle.state_machine import BookingLifecycle
from booking_lifecycle.lifecycle.sweeper import ExpirySweeper
from booking_lifecycle.schemas.booking_schema import RequestState
from booking_lifecycle.store.booking_store import InMemoryBookingRequestStore
from tests.conftest import APPOINTMENT_DATE, propose


class AcceptDuringScanStore(InMemoryBookingRequestStore):
    """Accepts the first overdue request right after the sweep has listed it."""

    def list_overdue_pending(self, now):
        overdue = super().list_overdue_pending(now)
        if overdue:
            self.transition(overdue[0].id, RequestState.PENDING, RequestState.ACCEPTED)
        return overdue


class FailingScanStore(InMemoryBookingRequestStore):
    def __init__(self, stop_after: int, stop_event: threading.Event):
        super().__init__()
        self.calls = 0
        self._stop_after = stop_after
        self._stop_event = stop_event

    def list_overdue_pending(self, now):
        self.calls += 1
        if self.calls >= self._stop_after:
            self._stop_event.set()
        raise RuntimeError("database connection reset")


class TestRunOnce:
    def test_expires_only_overdue_requests(self, lifecycle, sweeper, clock, store):
        old = propose(lifecycle, appointment_date=date(2025, 3, 18))
        older = propose(lifecycle, appointment_date=date(2025, 3, 19))
        clock.advance(hours=30)
        fresh = propose(lifecycle, appointment_date=date(2025, 3, 20))
        clock.advance(hours=20)

        report = sweeper.run_once()

        assert report.examined == 2
        assert sorted(report.expired) == sorted([old.id, older.id])
        assert report.lost_races == 0
        assert store.get(old.id).state == RequestState.EXPIRED
        assert store.get(fresh.id).state == RequestState.PENDING

    def test_second_sweep_finds_nothing(self, lifecycle, sweeper, clock):
        propose(lifecycle)
        clock.advance(hours=49)
        sweeper.run_once()
        report = sweeper.run_once()
        assert report.examined == 0
        assert report.expired == []

    def test_sweep_notifies_both_parties(self, lifecycle, sweeper, clock, notifier):
        propose(lifecycle)
        clock.advance(hours=49)
        sweeper.run_once()
        assert {n["actor_id"] for n in notifier.sent("booking_request.expired")} == {
            "owner-1", "client-7",
        }

    def test_nothing_to_do(self, sweeper):
        report = sweeper.run_once()
        assert report.examined == 0

    def test_lost_race_is_counted(self, clock, config):
        store = AcceptDuringScanStore()
        lifecycle = BookingLifecycle(store, clock, config=config)
        first = propose(lifecycle)
        second = propose(lifecycle, appointment_date=APPOINTMENT_DATE + timedelta(days=1))
        clock.advance(hours=49)

        report = ExpirySweeper(lifecycle).run_once()

        assert report.examined == 2
        assert report.lost_races == 1
        assert report.expired == [second.id]
        assert store.get(first.id).state == RequestState.ACCEPTED

    def test_already_expired_by_reader_is_a_lost_race(self, lifecycle, clock):
        request = propose(lifecycle)
        clock.advance(hours=49)
        stale = lifecycle.store.list_overdue_pending(clock.now())
        lifecycle.fetch(request.id)

        assert [r.id for r in stale] == [request.id]
        assert lifecycle.expire(request.id) is False


class TestRunForever:
    def test_keeps_running_after_failures(self, clock, config):
        stop = threading.Event()
        store = FailingScanStore(stop_after=3, stop_event=stop)
        sweeper = ExpirySweeper(BookingLifecycle(store, clock, config=config))

        sweeper.run_forever(stop, interval_sec=0)

        assert store.calls == 3

    def test_background_thread_sweeps_and_stops(self, lifecycle, sweeper, clock, store):
        request = propose(lifecycle)
        clock.advance(hours=49)

        thread, stop = sweeper.start_background(interval_sec=0.01)
        deadline = time.monotonic() + 2
        while store.get(request.id).state != RequestState.EXPIRED and time.monotonic() < deadline:
            time.sleep(0.01)
        stop.set()
        thread.join(timeout=2)

        assert store.get(request.id).state == RequestState.EXPIRED
        assert not thread.is_alive()
