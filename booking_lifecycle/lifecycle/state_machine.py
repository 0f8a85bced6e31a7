"""
Finite state machine for booking request resolution.

A request is proposed in PENDING and resolved exactly once, into ACCEPTED,
DECLINED, CANCELLED or EXPIRED. Every legal move is listed in TRANSITIONS;
anything else is rejected. State changes only happen through the store's
compare-and-set, so an accept racing the expiry sweep produces one
terminal state and a clear error for the loser.

Usage:
    lifecycle = BookingLifecycle(store=InMemoryBookingRequestStore(), clock=clock)
    request = lifecycle.propose("owner-1", "client-7", "apt-42", date(2025, 3, 18))
    lifecycle.decline(request.id, reason="schedule conflict")
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Optional

from booking_lifecycle.adapters.activation import NoopActivation
from booking_lifecycle.clock import Clock, SystemClock
from booking_lifecycle.config import AppConfig, settings
from booking_lifecycle.errors import (
    ActorNotPermittedError,
    AlreadyResolvedError,
    CollaboratorUnavailableError,
    DuplicatePendingRequestError,
    InvalidTransitionError,
    WindowExpiredError,
)
from booking_lifecycle.lifecycle.validation import (
    normalize_decline_reason,
    normalize_suggested_dates,
)
from booking_lifecycle.logging_context import get_lifecycle_logger, request_scope
from booking_lifecycle.ports import AppointmentActivationPort, NotificationPort
from booking_lifecycle.schemas.booking_schema import BookingRequest, RequestState
from booking_lifecycle.store.booking_store import ActorRole, BookingRequestRepository

logger = get_lifecycle_logger(__name__)


class LifecycleAction(str, Enum):
    """Events that resolve a booking request."""
    ACCEPT = "accept"
    DECLINE = "decline"
    CANCEL = "cancel"
    EXPIRE = "expire"


@dataclass(frozen=True)
class Transition:
    """A single valid state transition and the event it announces."""
    from_state: RequestState
    to_state: RequestState
    action: LifecycleAction
    event_type: str


TRANSITIONS: list[Transition] = [
    Transition(RequestState.PENDING, RequestState.ACCEPTED,
               LifecycleAction.ACCEPT, "booking_request.accepted"),
    Transition(RequestState.PENDING, RequestState.DECLINED,
               LifecycleAction.DECLINE, "booking_request.declined"),
    Transition(RequestState.PENDING, RequestState.CANCELLED,
               LifecycleAction.CANCEL, "booking_request.cancelled"),
    Transition(RequestState.PENDING, RequestState.EXPIRED,
               LifecycleAction.EXPIRE, "booking_request.expired"),
]


def resolve_transition(state: RequestState, action: LifecycleAction) -> Transition:
    """Look up the transition for (state, action).

    Raises:
        InvalidTransitionError: If no valid transition exists.
    """
    for t in TRANSITIONS:
        if t.from_state == state and t.action == action:
            return t
    valid = [a.value for a in get_valid_actions(state)]
    raise InvalidTransitionError(
        f"No valid transition from '{state.value}' with action '{action.value}'. "
        f"Valid actions: {valid}",
        current_state=state.value,
    )


def get_valid_actions(state: RequestState) -> list[LifecycleAction]:
    """Return all actions valid from a state. Empty for terminal states."""
    return [t.action for t in TRANSITIONS if t.from_state == state]


@dataclass
class InitiatorResponseSummary:
    """An initiator's outstanding and unsuccessful proposals, grouped for display."""
    pending: list[BookingRequest] = field(default_factory=list)
    declined: list[BookingRequest] = field(default_factory=list)
    expired: list[BookingRequest] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.pending) + len(self.declined) + len(self.expired)


class BookingLifecycle:
    """
    Drives booking requests from proposal to resolution.

    Accept, decline and cancel are actor actions; expire comes from the
    sweeper or from lazy checks whenever an overdue request is read.
    Every successful transition notifies the affected party.
    """

    def __init__(
        self,
        store: BookingRequestRepository,
        clock: Optional[Clock] = None,
        activation: Optional[AppointmentActivationPort] = None,
        notifier: Optional[NotificationPort] = None,
        config: Optional[AppConfig] = None,
    ) -> None:
        self._store = store
        self._clock = clock or SystemClock()
        self._activation = activation or NoopActivation()
        self._notifier = notifier
        self._policy = (config or settings).lifecycle

    @property
    def store(self) -> BookingRequestRepository:
        return self._store

    @property
    def clock(self) -> Clock:
        return self._clock

    # ------------------------------------------------------------------ #
    # Proposal
    # ------------------------------------------------------------------ #

    def propose(
        self,
        initiator_id: str,
        counterparty_id: str,
        appointment_id: str,
        appointment_date: date,
        price: Optional[Decimal] = None,
        time_window: str = "anytime",
    ) -> BookingRequest:
        """Create a PENDING request the counterparty must answer within the response window."""
        now = self._clock.now()
        for existing in self._store.list_pending_for_actor(initiator_id, now, role="initiator"):
            if (
                existing.counterparty_id == counterparty_id
                and existing.appointment_date == appointment_date
            ):
                raise DuplicatePendingRequestError(
                    f"Request {existing.id} is already pending for {appointment_date.isoformat()}",
                    request_id=existing.id,
                )

        request = BookingRequest(
            appointment_id=appointment_id,
            initiator_id=initiator_id,
            counterparty_id=counterparty_id,
            created_at=now,
            expires_at=self.deadline_from(now),
            appointment_date=appointment_date,
            price=price,
            time_window=time_window,
        )
        self._store.add(request)
        with request_scope(request.id, "propose"):
            logger.info(
                "Booking request proposed: %s by %s to %s for %s (expires %s)",
                request.id, initiator_id, counterparty_id,
                appointment_date.isoformat(), request.expires_at.isoformat(),
            )
            self._publish(counterparty_id, "booking_request.created", request)
        return request

    def deadline_from(self, created_at: datetime) -> datetime:
        return created_at + timedelta(hours=self._policy.response_window_hours)

    # ------------------------------------------------------------------ #
    # Actor actions
    # ------------------------------------------------------------------ #

    def accept(self, request_id: str, actor_id: Optional[str] = None) -> BookingRequest:
        """Accept a pending request and activate its appointment.

        Raises:
            WindowExpiredError: The deadline passed.
            AlreadyResolvedError: The request was already resolved.
            CollaboratorUnavailableError: Accepted, but activation failed;
                call retry_activation() later.
        """
        with request_scope(request_id, "accept"):
            request = self._actionable(request_id, LifecycleAction.ACCEPT, actor_id)
            accepted = self._apply(request, LifecycleAction.ACCEPT)
            self._publish(accepted.initiator_id, "booking_request.accepted", accepted)
            return self._activate(accepted)

    def decline(
        self,
        request_id: str,
        reason: Optional[str] = None,
        suggested_dates: Optional[Iterable[object]] = None,
        actor_id: Optional[str] = None,
    ) -> BookingRequest:
        """Decline a pending request, optionally with a reason and up to 3 alternative dates."""
        with request_scope(request_id, "decline"):
            request = self._actionable(request_id, LifecycleAction.DECLINE, actor_id)
            dates = normalize_suggested_dates(suggested_dates, self._policy.max_suggested_dates)
            declined = self._apply(
                request,
                LifecycleAction.DECLINE,
                decline_reason=normalize_decline_reason(reason),
                suggested_alternative_dates=dates,
            )
            self._publish(
                declined.initiator_id,
                "booking_request.declined",
                declined,
                decline_reason=declined.decline_reason,
                suggested_dates=[d.isoformat() for d in declined.suggested_alternative_dates],
            )
            return declined

    def cancel(self, request_id: str, actor_id: Optional[str] = None) -> BookingRequest:
        """Withdraw a pending request before the counterparty answers. No penalties apply."""
        with request_scope(request_id, "cancel"):
            request = self._actionable(request_id, LifecycleAction.CANCEL, actor_id)
            cancelled = self._apply(request, LifecycleAction.CANCEL)
            self._publish(cancelled.counterparty_id, "booking_request.cancelled", cancelled)
            return cancelled

    def retry_activation(self, request_id: str) -> BookingRequest:
        """Re-run appointment activation for an accepted request whose activation failed."""
        request = self._store.get(request_id)
        if request.state != RequestState.ACCEPTED:
            raise InvalidTransitionError(
                f"Only accepted requests can be activated, {request_id} is {request.state.value}",
                request_id=request_id,
                current_state=request.state.value,
            )
        if request.activated_at is not None:
            return request
        with request_scope(request_id, "retry_activation"):
            return self._activate(request)

    # ------------------------------------------------------------------ #
    # Expiry
    # ------------------------------------------------------------------ #

    def expire(self, request_id: str) -> bool:
        """Expire a request whose deadline has passed.

        Returns True only if this call performed the transition. Already
        expired requests and pending requests that are not yet due are
        no-ops.

        Raises:
            AlreadyResolvedError: If the request was accepted, declined or cancelled.
        """
        request = self._store.get(request_id)
        if request.state == RequestState.EXPIRED:
            return False
        if request.is_terminal:
            raise AlreadyResolvedError(
                f"Request {request_id} is already {request.state.value}",
                request_id=request_id,
                current_state=request.state.value,
            )
        now = self._clock.now()
        if not request.is_overdue(now):
            return False
        with request_scope(request_id, "expire"):
            return self._expire_overdue(request)

    def fetch(self, request_id: str) -> BookingRequest:
        """Read a request, expiring it first if its deadline passed unnoticed."""
        request = self._store.get(request_id)
        now = self._clock.now()
        if request.state == RequestState.PENDING and request.is_overdue(now):
            with request_scope(request_id, "lazy_expire"):
                self._expire_overdue(request)
            return self._store.get(request_id)
        return request

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def pending_for(self, actor_id: str, role: Optional[ActorRole] = None) -> list[BookingRequest]:
        """Actionable pending requests for an actor. Overdue ones never appear."""
        return self._store.list_pending_for_actor(actor_id, self._clock.now(), role)

    def responses_for_initiator(self, initiator_id: str) -> InitiatorResponseSummary:
        """Group an initiator's requests that still need attention by outcome."""
        now = self._clock.now()
        summary = InitiatorResponseSummary()
        requests = sorted(
            self._store.list_for_initiator(initiator_id),
            key=lambda r: (r.expires_at, r.appointment_date),
        )
        for request in requests:
            if request.state == RequestState.DECLINED:
                summary.declined.append(request)
            elif request.state == RequestState.EXPIRED or (
                request.state == RequestState.PENDING and request.is_overdue(now)
            ):
                summary.expired.append(request)
            elif request.state == RequestState.PENDING:
                summary.pending.append(request)
        return summary

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _actionable(
        self, request_id: str, action: LifecycleAction, actor_id: Optional[str]
    ) -> BookingRequest:
        """Load a request and confirm `action` may still be taken on it."""
        request = self._store.get(request_id)
        self._check_actor(request, action, actor_id)

        if request.state == RequestState.EXPIRED:
            raise WindowExpiredError(f"Request {request_id} expired", request_id=request_id)
        if request.is_terminal:
            raise AlreadyResolvedError(
                f"Request {request_id} is already {request.state.value}",
                request_id=request_id,
                current_state=request.state.value,
            )

        now = self._clock.now()
        if request.is_overdue(now):
            self._expire_overdue(request)
            raise WindowExpiredError(
                f"Request {request_id} expired at {request.expires_at.isoformat()}",
                request_id=request_id,
            )
        return request

    def _apply(self, request: BookingRequest, action: LifecycleAction, **changes: Any) -> BookingRequest:
        transition = resolve_transition(request.state, action)
        try:
            updated = self._store.transition(
                request.id,
                expected=transition.from_state,
                target=transition.to_state,
                resolved_at=self._clock.now(),
                **changes,
            )
        except AlreadyResolvedError as exc:
            logger.warning(
                "Lost race on %s: %s found request %s",
                request.id, action.value, exc.current_state,
            )
            if exc.current_state == RequestState.EXPIRED.value and action != LifecycleAction.EXPIRE:
                raise WindowExpiredError(
                    f"Request {request.id} expired", request_id=request.id
                ) from exc
            raise

        logger.info(
            "Booking request transition: %s -> %s (action: %s)",
            transition.from_state.value, transition.to_state.value, action.value,
        )
        return updated

    def _expire_overdue(self, request: BookingRequest) -> bool:
        """Move an overdue PENDING request to EXPIRED. False if someone else already did."""
        try:
            expired = self._apply(request, LifecycleAction.EXPIRE)
        except AlreadyResolvedError as exc:
            if exc.current_state == RequestState.EXPIRED.value:
                return False
            raise
        logger.info("Booking request %s expired (deadline %s)", request.id, request.expires_at.isoformat())
        self._publish(expired.initiator_id, "booking_request.expired", expired)
        self._publish(expired.counterparty_id, "booking_request.expired", expired)
        return True

    def _activate(self, request: BookingRequest) -> BookingRequest:
        try:
            self._activation.activate(request.appointment_id)
        except Exception as exc:
            logger.error(
                "Appointment activation failed for %s (appointment %s): %s",
                request.id, request.appointment_id, exc,
            )
            raise CollaboratorUnavailableError(
                "appointment_activation", str(exc), request_id=request.id
            ) from exc
        return self._store.stamp_activation(request.id, self._clock.now())

    @staticmethod
    def _check_actor(request: BookingRequest, action: LifecycleAction, actor_id: Optional[str]) -> None:
        if actor_id is None:
            return
        expected = request.initiator_id if action == LifecycleAction.CANCEL else request.counterparty_id
        if actor_id != expected:
            raise ActorNotPermittedError(
                f"{actor_id} cannot {action.value} request {request.id}",
                request_id=request.id,
            )

    def _publish(self, actor_id: str, event_type: str, request: BookingRequest, **extra: Any) -> None:
        publish_event(self._notifier, actor_id, event_type, request, **extra)


def publish_event(
    notifier: Optional[NotificationPort],
    actor_id: str,
    event_type: str,
    request: BookingRequest,
    **extra: Any,
) -> None:
    """Fire-and-forget notification. Delivery failures are logged, never raised."""
    if notifier is None:
        return
    payload = build_payload(request, **extra)
    try:
        notifier.notify(actor_id, event_type, payload)
    except Exception:
        logger.warning(
            "Notification %s to %s failed for %s", event_type, actor_id, request.id,
            exc_info=True,
        )


def build_payload(request: BookingRequest, **extra: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "request_id": request.id,
        "appointment_id": request.appointment_id,
        "appointment_date": request.appointment_date.isoformat(),
        "state": request.state.value,
        "expires_at": request.expires_at.isoformat(),
        "rebooking_attempts": request.rebooking_attempts,
    }
    if request.previous_request_id:
        payload["previous_request_id"] = request.previous_request_id
    payload.update(extra)
    return payload
