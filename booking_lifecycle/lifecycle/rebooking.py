"""
Rebooking coordinator.

When a counterparty declines or lets a request expire, the initiator can
propose new terms. The new request links back to the one it replaces
through previous_request_id; the original is never modified, so the full
history is recovered by walking those links. Each chain allows at most
max_rebooking_attempts successors, counted on its most recent request.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from booking_lifecycle.config import AppConfig, settings
from booking_lifecycle.errors import NotRebookableError, RebookingLimitReachedError
from booking_lifecycle.lifecycle.state_machine import BookingLifecycle, publish_event
from booking_lifecycle.logging_context import get_lifecycle_logger, request_scope
from booking_lifecycle.ports import NotificationPort
from booking_lifecycle.schemas.booking_schema import BookingRequest, RequestState

logger = get_lifecycle_logger(__name__)

REBOOKABLE_STATES = frozenset({RequestState.DECLINED, RequestState.EXPIRED})


class RebookingCoordinator:
    def __init__(
        self,
        lifecycle: BookingLifecycle,
        notifier: Optional[NotificationPort] = None,
        config: Optional[AppConfig] = None,
    ) -> None:
        self._lifecycle = lifecycle
        self._notifier = notifier
        self._store = lifecycle.store
        self._clock = lifecycle.clock
        self._policy = (config or settings).lifecycle

    def rebook(
        self,
        original_request_id: str,
        new_date: date,
        new_price: Optional[Decimal] = None,
        new_time_window: str = "anytime",
    ) -> BookingRequest:
        """Propose new terms for a declined or expired request.

        The attempt cap is read from the newest request in the chain, so a
        full chain reports the limit whichever of its requests is named.

        Raises:
            BookingRequestNotFoundError: Unknown original id.
            RebookingLimitReachedError: The chain already used every attempt.
            NotRebookableError: Original is not declined/expired, or was
                already rebooked.
        """
        with request_scope(original_request_id, "rebook"):
            original = self._lifecycle.fetch(original_request_id)
            latest = self.latest_in_chain(original.id)
            if latest.id != original.id:
                latest = self._lifecycle.fetch(latest.id)

            if latest.rebooking_attempts >= self._policy.max_rebooking_attempts:
                logger.info(
                    "Rebooking limit reached for %s (%d attempts, latest %s)",
                    original.id, latest.rebooking_attempts, latest.id,
                )
                raise RebookingLimitReachedError(
                    f"Request chain for {original.id} already used "
                    f"{latest.rebooking_attempts} rebooking attempts",
                    request_id=original.id,
                )
            if original.state not in REBOOKABLE_STATES:
                raise NotRebookableError(
                    f"Request {original.id} is {original.state.value}; "
                    "only declined or expired requests can be rebooked",
                    request_id=original.id,
                )
            if latest.id != original.id:
                raise NotRebookableError(
                    f"Request {original.id} was already rebooked; latest is {latest.id}",
                    request_id=original.id,
                )

            now = self._clock.now()
            request = BookingRequest(
                appointment_id=original.appointment_id,
                initiator_id=original.initiator_id,
                counterparty_id=original.counterparty_id,
                created_at=now,
                expires_at=self._lifecycle.deadline_from(now),
                appointment_date=new_date,
                price=new_price if new_price is not None else original.price,
                time_window=new_time_window,
                rebooking_attempts=original.rebooking_attempts + 1,
                previous_request_id=original.id,
            )
            # The store rejects a second successor, so concurrent rebooks cannot fork the chain
            self._store.add(request)

        with request_scope(request.id, "rebook"):
            logger.info(
                "Rebooked %s as %s for %s (attempt %d of %d)",
                original.id, request.id, new_date.isoformat(),
                request.rebooking_attempts, self._policy.max_rebooking_attempts,
            )
            publish_event(
                self._notifier,
                request.counterparty_id,
                "booking_request.rebooked",
                request,
                previous_state=original.state.value,
            )
        return request

    def chain(self, request_id: str) -> list[BookingRequest]:
        """All requests in the chain ending at request_id, oldest first."""
        chain = [self._store.get(request_id)]
        while chain[-1].previous_request_id is not None:
            chain.append(self._store.get(chain[-1].previous_request_id))
        chain.reverse()
        return chain

    def latest_in_chain(self, request_id: str) -> BookingRequest:
        """Follow successors forward to the most recent request."""
        current = self._store.get(request_id)
        while True:
            successor = self._store.find_successor(current.id)
            if successor is None:
                return current
            current = successor
