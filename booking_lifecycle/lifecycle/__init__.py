from booking_lifecycle.lifecycle.countdown import CountdownStatus, evaluate
from booking_lifecycle.lifecycle.penalty_ledger import CancellationPenaltyLedger, PenaltyOutcome
from booking_lifecycle.lifecycle.rebooking import RebookingCoordinator
from booking_lifecycle.lifecycle.state_machine import (
    BookingLifecycle,
    InitiatorResponseSummary,
    LifecycleAction,
)
from booking_lifecycle.lifecycle.sweeper import ExpirySweeper, SweepReport

__all__ = [
    "BookingLifecycle",
    "LifecycleAction",
    "InitiatorResponseSummary",
    "CountdownStatus",
    "evaluate",
    "CancellationPenaltyLedger",
    "PenaltyOutcome",
    "RebookingCoordinator",
    "ExpirySweeper",
    "SweepReport",
]
