"""
Booking request persistence.

The repository is the single source of truth for request state. The only
way to change `state` is `transition`, an atomic compare-and-set: callers
say which state they expect and the store refuses if it moved underneath
them. This is what guarantees at most one terminal transition per request
when an accept and the expiry sweep race each other.
"""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Literal, Optional

from booking_lifecycle.errors import (
    AlreadyResolvedError,
    BookingRequestNotFoundError,
    NotRebookableError,
)
from booking_lifecycle.schemas.booking_schema import BookingRequest, RequestState, TERMINAL_STATES

logger = logging.getLogger(__name__)

ActorRole = Literal["initiator", "counterparty"]


class BookingRequestRepository(ABC):
    @abstractmethod
    def add(self, request: BookingRequest) -> BookingRequest:
        raise NotImplementedError

    @abstractmethod
    def get(self, request_id: str) -> BookingRequest:
        """Raises BookingRequestNotFoundError for unknown ids."""
        raise NotImplementedError

    @abstractmethod
    def list_pending_for_actor(
        self, actor_id: str, now: datetime, role: Optional[ActorRole] = None
    ) -> list[BookingRequest]:
        """Pending requests that are still actionable at `now`."""
        raise NotImplementedError

    @abstractmethod
    def list_for_initiator(self, initiator_id: str) -> list[BookingRequest]:
        raise NotImplementedError

    @abstractmethod
    def list_overdue_pending(self, now: datetime) -> list[BookingRequest]:
        raise NotImplementedError

    @abstractmethod
    def find_successor(self, request_id: str) -> Optional[BookingRequest]:
        raise NotImplementedError

    @abstractmethod
    def transition(
        self,
        request_id: str,
        expected: RequestState,
        target: RequestState,
        **changes: Any,
    ) -> BookingRequest:
        """Atomically move `expected` -> `target`, applying `changes`.

        Raises:
            AlreadyResolvedError: If the stored state is not `expected`, or
                `expected` is itself terminal.
        """
        raise NotImplementedError

    @abstractmethod
    def stamp_activation(self, request_id: str, activated_at: datetime) -> BookingRequest:
        raise NotImplementedError


class InMemoryBookingRequestStore(BookingRequestRepository):
    """Thread-safe in-process store. One lock guards every read and write."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._requests: dict[str, BookingRequest] = {}
        self._successors: dict[str, str] = {}

    def add(self, request: BookingRequest) -> BookingRequest:
        with self._lock:
            if request.id in self._requests:
                raise ValueError(f"Booking request {request.id} already exists")
            previous = request.previous_request_id
            if previous is not None:
                if previous not in self._requests:
                    raise BookingRequestNotFoundError(
                        f"Previous request {previous} not found", request_id=previous
                    )
                if previous in self._successors:
                    raise NotRebookableError(
                        f"Request {previous} was already rebooked as {self._successors[previous]}",
                        request_id=previous,
                    )
                self._successors[previous] = request.id
            self._requests[request.id] = request
        logger.debug("Booking request stored: %s", request.id)
        return request

    def get(self, request_id: str) -> BookingRequest:
        with self._lock:
            return self._get_locked(request_id)

    def list_pending_for_actor(
        self, actor_id: str, now: datetime, role: Optional[ActorRole] = None
    ) -> list[BookingRequest]:
        with self._lock:
            matches = [
                r for r in self._requests.values()
                if r.state == RequestState.PENDING
                and not r.is_overdue(now)
                and _involves(r, actor_id, role)
            ]
        return sorted(matches, key=lambda r: r.expires_at)

    def list_for_initiator(self, initiator_id: str) -> list[BookingRequest]:
        with self._lock:
            return [r for r in self._requests.values() if r.initiator_id == initiator_id]

    def list_overdue_pending(self, now: datetime) -> list[BookingRequest]:
        with self._lock:
            overdue = [
                r for r in self._requests.values()
                if r.state == RequestState.PENDING and r.is_overdue(now)
            ]
        return sorted(overdue, key=lambda r: r.expires_at)

    def find_successor(self, request_id: str) -> Optional[BookingRequest]:
        with self._lock:
            successor_id = self._successors.get(request_id)
            return self._requests.get(successor_id) if successor_id else None

    def transition(
        self,
        request_id: str,
        expected: RequestState,
        target: RequestState,
        **changes: Any,
    ) -> BookingRequest:
        with self._lock:
            current = self._get_locked(request_id)
            if expected in TERMINAL_STATES or current.state != expected:
                raise AlreadyResolvedError(
                    f"Request {request_id} is {current.state.value}, expected {expected.value}",
                    request_id=request_id,
                    current_state=current.state.value,
                )
            updated = _rebuild(current, state=target, **changes)
            self._requests[request_id] = updated
        logger.debug("Stored transition %s: %s -> %s", request_id, expected.value, target.value)
        return updated

    def stamp_activation(self, request_id: str, activated_at: datetime) -> BookingRequest:
        with self._lock:
            current = self._get_locked(request_id)
            if current.state != RequestState.ACCEPTED:
                raise AlreadyResolvedError(
                    f"Request {request_id} is {current.state.value}, only accepted requests activate",
                    request_id=request_id,
                    current_state=current.state.value,
                )
            updated = _rebuild(current, activated_at=activated_at)
            self._requests[request_id] = updated
        return updated

    def __len__(self) -> int:
        with self._lock:
            return len(self._requests)

    def _get_locked(self, request_id: str) -> BookingRequest:
        try:
            return self._requests[request_id]
        except KeyError:
            raise BookingRequestNotFoundError(
                f"Booking request {request_id} not found", request_id=request_id
            ) from None


def _involves(request: BookingRequest, actor_id: str, role: Optional[ActorRole]) -> bool:
    if role == "initiator":
        return request.initiator_id == actor_id
    if role == "counterparty":
        return request.counterparty_id == actor_id
    return actor_id in (request.initiator_id, request.counterparty_id)


def _rebuild(current: BookingRequest, **changes: Any) -> BookingRequest:
    """Re-validate on every change; model_copy would skip the invariants."""
    data = current.model_dump()
    data.update(changes)
    return BookingRequest.model_validate(data)
