"""Shared test fixtures and helpers."""

from datetime import date, datetime, timedelta, timezone
from typing import Optional

import pytest

from booking_lifecycle.adapters.account import InMemoryAccountFreezer
from booking_lifecycle.adapters.activation import NoopActivation
from booking_lifecycle.adapters.notifier import RecordingNotifier
from booking_lifecycle.clock import FixedClock
from booking_lifecycle.config import AppConfig, LifecyclePolicy, PenaltyPolicy, PollingConfig
from booking_lifecycle.lifecycle.penalty_ledger import CancellationPenaltyLedger
from booking_lifecycle.lifecycle.rebooking import RebookingCoordinator
from booking_lifecycle.lifecycle.state_machine import BookingLifecycle
from booking_lifecycle.lifecycle.sweeper import ExpirySweeper
from booking_lifecycle.schemas.booking_schema import BookingRequest, RequestState
from booking_lifecycle.store.booking_store import InMemoryBookingRequestStore
from booking_lifecycle.store.penalty_store import InMemoryPenaltyStore

T0 = datetime(2025, 3, 15, 10, 0, tzinfo=timezone.utc)
APPOINTMENT_DATE = date(2025, 3, 18)


@pytest.fixture
def config():
    # Pinned explicitly so a developer's .env cannot change test outcomes
    return AppConfig(
        lifecycle=LifecyclePolicy(
            response_window_hours=48, max_rebooking_attempts=3, max_suggested_dates=3
        ),
        penalty=PenaltyPolicy(penalty_window_days=4, rolling_window_months=3, freeze_threshold=3),
        polling=PollingConfig(countdown_refresh_sec=60, sweep_interval_sec=300),
    )


@pytest.fixture
def clock():
    return FixedClock(T0)


@pytest.fixture
def store():
    return InMemoryBookingRequestStore()


@pytest.fixture
def penalty_store():
    return InMemoryPenaltyStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def activation():
    return NoopActivation()


@pytest.fixture
def freezer():
    return InMemoryAccountFreezer()


@pytest.fixture
def lifecycle(store, clock, activation, notifier, config):
    return BookingLifecycle(
        store=store, clock=clock, activation=activation, notifier=notifier, config=config
    )


@pytest.fixture
def ledger(penalty_store, clock, notifier, freezer, config):
    return CancellationPenaltyLedger(
        store=penalty_store,
        clock=clock,
        notifier=notifier,
        account_freezer=freezer,
        config=config,
    )


@pytest.fixture
def coordinator(lifecycle, notifier, config):
    return RebookingCoordinator(lifecycle, notifier=notifier, config=config)


@pytest.fixture
def sweeper(lifecycle):
    return ExpirySweeper(lifecycle)


def make_request(
    request_id: str = "BR-test000001",
    state: RequestState = RequestState.PENDING,
    created_at: datetime = T0,
    window_hours: int = 48,
    appointment_date: date = APPOINTMENT_DATE,
    previous_request_id: Optional[str] = None,
    rebooking_attempts: int = 0,
    **kwargs,
) -> BookingRequest:
    """Helper to build a BookingRequest with sensible defaults."""
    return BookingRequest(
        id=request_id,
        appointment_id=kwargs.pop("appointment_id", "apt-42"),
        initiator_id=kwargs.pop("initiator_id", "owner-1"),
        counterparty_id=kwargs.pop("counterparty_id", "client-7"),
        state=state,
        created_at=created_at,
        expires_at=created_at + timedelta(hours=window_hours),
        appointment_date=appointment_date,
        previous_request_id=previous_request_id,
        rebooking_attempts=rebooking_attempts,
        **kwargs,
    )


def propose(lifecycle: BookingLifecycle, **overrides) -> BookingRequest:
    """Propose a request from owner-1 to client-7 unless overridden."""
    params = {
        "initiator_id": "owner-1",
        "counterparty_id": "client-7",
        "appointment_id": "apt-42",
        "appointment_date": APPOINTMENT_DATE,
    }
    params.update(overrides)
    return lifecycle.propose(**params)


def days_out(clock: FixedClock, days: int) -> date:
    """Calendar date `days` after the clock's current date."""
    return clock.now().date() + timedelta(days=days)
