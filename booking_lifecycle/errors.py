"""
Typed errors for the booking request lifecycle.

Two families that callers must present differently:
- BusinessRuleError: the caller's action was not valid ("this request
  already expired", "maximum rebooking attempts reached").
- CollaboratorUnavailableError: the action was valid but an external
  system (activation, persistence, account service) could not complete it.
"""

from typing import Optional


class BookingLifecycleError(Exception):
    """Base class. Every error has a stable code and a user-facing message."""

    code: str = "booking_lifecycle_error"
    user_message: str = "Something went wrong with this booking request."

    def __init__(self, detail: Optional[str] = None, *, request_id: Optional[str] = None) -> None:
        self.detail = detail or self.user_message
        self.request_id = request_id
        super().__init__(self.detail)


class BusinessRuleError(BookingLifecycleError):
    """The requested action is not allowed in the current situation."""


class AlreadyResolvedError(BusinessRuleError):
    """Transition attempted on a request that already reached a terminal state."""

    code = "already_resolved"
    user_message = "This request is no longer valid. It has already been resolved."

    def __init__(
        self,
        detail: Optional[str] = None,
        *,
        request_id: Optional[str] = None,
        current_state: Optional[str] = None,
    ) -> None:
        self.current_state = current_state
        super().__init__(detail, request_id=request_id)


class InvalidTransitionError(AlreadyResolvedError):
    """No transition exists for this state and action."""

    code = "invalid_transition"


class WindowExpiredError(BusinessRuleError):
    """Accept or decline attempted after the response deadline."""

    code = "window_expired"
    user_message = "This request already expired."


class RebookingLimitReachedError(BusinessRuleError):
    code = "rebooking_limit_reached"
    user_message = "Maximum rebooking attempts reached."


class BookingRequestNotFoundError(BusinessRuleError):
    code = "not_found"
    user_message = "This booking request could not be found."


class InvalidSuggestedDatesError(BusinessRuleError):
    code = "invalid_suggested_dates"
    user_message = "Please suggest up to 3 valid alternative dates."


class NotRebookableError(BusinessRuleError):
    """Only declined or expired requests without a successor can be rebooked."""

    code = "not_rebookable"
    user_message = "This request cannot be rebooked."


class DuplicatePendingRequestError(BusinessRuleError):
    code = "duplicate_pending_request"
    user_message = "A pending booking already exists for this date."


class AcknowledgmentRequiredError(BusinessRuleError):
    code = "acknowledgment_required"
    user_message = "Please acknowledge the cancellation penalty before cancelling."


class ActorNotPermittedError(BusinessRuleError):
    code = "actor_not_permitted"
    user_message = "You are not allowed to respond to this request."


class CollaboratorUnavailableError(BookingLifecycleError):
    """An external collaborator failed. Never conflated with business rule errors."""

    code = "collaborator_unavailable"
    user_message = "We couldn't complete your request right now. Please try again."

    def __init__(
        self,
        collaborator: str,
        detail: Optional[str] = None,
        *,
        request_id: Optional[str] = None,
    ) -> None:
        self.collaborator = collaborator
        super().__init__(detail or f"{collaborator} unavailable", request_id=request_id)
