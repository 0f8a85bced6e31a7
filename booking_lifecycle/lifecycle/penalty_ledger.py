"""
Cancellation penalty ledger for cleaners.

A cleaner who cancels an assigned job within the penalty window (4 days
by default) before the appointment gets a penalty record. Reaching the
freeze threshold (3) within the rolling window (3 months) freezes the
account. The freeze fires once, on the cancellation that crosses the
threshold; later penalties do not re-trigger it.

Cancelling is a two-step flow: preview() shows the consequences, and
commit_cancellation() records them only after the cleaner acknowledges.
Both use the same computation so they agree for the same inputs.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from booking_lifecycle.clock import Clock, SystemClock
from booking_lifecycle.config import AppConfig, settings
from booking_lifecycle.errors import AcknowledgmentRequiredError, CollaboratorUnavailableError
from booking_lifecycle.ports import AccountFreezePort, NotificationPort
from booking_lifecycle.schemas.penalty_schema import (
    CancellationPenaltyRecord,
    CancellationPreview,
    CleanerAccountStatus,
)
from booking_lifecycle.store.penalty_store import PenaltyRecordRepository
from booking_lifecycle.utils import calendar_days_between, ensure_utc, subtract_months

logger = logging.getLogger(__name__)

PENALTY_REVIEW_NOTE = "Last minute cancellation"


@dataclass(frozen=True)
class PenaltyOutcome:
    """Result of a committed cancellation."""
    penalty_applied: bool
    account_frozen: bool
    days_before_appointment: int
    recent_penalty_count: int
    record: Optional[CancellationPenaltyRecord] = None


class CancellationPenaltyLedger:
    """Records qualifying cancellations and derives freeze eligibility."""

    def __init__(
        self,
        store: PenaltyRecordRepository,
        clock: Optional[Clock] = None,
        notifier: Optional[NotificationPort] = None,
        account_freezer: Optional[AccountFreezePort] = None,
        config: Optional[AppConfig] = None,
    ) -> None:
        self._store = store
        self._clock = clock or SystemClock()
        self._notifier = notifier
        self._freezer = account_freezer
        self._policy = (config or settings).penalty

    @property
    def freeze_reason(self) -> str:
        return (
            f"{self._policy.freeze_threshold} or more last-minute cancellations "
            f"within {self._policy.rolling_window_months} months"
        )

    def window_start(self, now: datetime) -> datetime:
        return subtract_months(now, self._policy.rolling_window_months)

    def is_within_penalty_window(self, days_before_appointment: int) -> bool:
        return days_before_appointment <= self._policy.penalty_window_days

    # ------------------------------------------------------------------ #
    # Preview / commit
    # ------------------------------------------------------------------ #

    def preview(
        self,
        cleaner_id: str,
        appointment_id: str,
        appointment_date: date,
        now: Optional[datetime] = None,
    ) -> CancellationPreview:
        """Dry run: what would cancelling this assignment cost? Writes nothing."""
        now = self._resolve_now(now)
        days = calendar_days_between(appointment_date, now)
        within = self.is_within_penalty_window(days)
        recent = self._store.count_since(cleaner_id, self.window_start(now))
        threshold = self._policy.freeze_threshold
        will_freeze = within and recent < threshold <= recent + 1

        return CancellationPreview(
            cleaner_id=cleaner_id,
            appointment_id=appointment_id,
            days_until_appointment=days,
            is_within_penalty_window=within,
            recent_penalty_count=recent,
            will_result_in_freeze=will_freeze,
            requires_acknowledgment=within,
            warning_message=self._warning_message(within, recent, will_freeze),
            acknowledgment_message=self._acknowledgment_message(within, will_freeze),
        )

    def record_if_qualifying(
        self,
        cleaner_id: str,
        appointment_id: str,
        appointment_date: date,
        now: Optional[datetime] = None,
    ) -> PenaltyOutcome:
        """Record a penalty when the cancellation falls inside the penalty window.

        Returns whether a penalty was applied and whether this cancellation
        froze the account.

        Recording the same appointment twice for a cleaner adds nothing. If
        the first attempt crossed the threshold but the freeze failed, the
        repeat call retries the freeze.

        Raises:
            CollaboratorUnavailableError: If freezing the account failed. The
                penalty record is kept.
        """
        now = self._resolve_now(now)
        days = calendar_days_between(appointment_date, now)
        window_start = self.window_start(now)

        if not self.is_within_penalty_window(days):
            logger.info(
                "Cancellation by %s for %s is %d days out, no penalty",
                cleaner_id, appointment_id, days,
            )
            return PenaltyOutcome(
                penalty_applied=False,
                account_frozen=False,
                days_before_appointment=days,
                recent_penalty_count=self._store.count_since(cleaner_id, window_start),
            )

        record = CancellationPenaltyRecord(
            cleaner_id=cleaner_id,
            appointment_id=appointment_id,
            occurred_at=now,
            days_before_appointment=days,
        )
        before, after = self._store.append_and_count(record, window_start)
        if before == after:
            return self._replay(cleaner_id, appointment_id, days, after)
        threshold = self._policy.freeze_threshold
        froze = before < threshold <= after

        logger.info(
            "Cancellation penalty recorded for %s (appointment %s, %d days out): %d in window",
            cleaner_id, appointment_id, days, after,
        )
        self._notify(cleaner_id, "cancellation_penalty.applied", {
            "appointment_id": appointment_id,
            "days_before_appointment": days,
            "recent_penalty_count": after,
            "review_note": PENALTY_REVIEW_NOTE,
        })

        if froze:
            self._store.mark_freeze_pending(cleaner_id)
            self._freeze(cleaner_id, after)

        return PenaltyOutcome(
            penalty_applied=True,
            account_frozen=froze,
            days_before_appointment=days,
            recent_penalty_count=after,
            record=record,
        )

    def commit_cancellation(
        self,
        cleaner_id: str,
        appointment_id: str,
        appointment_date: date,
        acknowledged: bool,
        now: Optional[datetime] = None,
    ) -> PenaltyOutcome:
        """Record the cancellation after the cleaner has seen the preview.

        Raises:
            AcknowledgmentRequiredError: The cancellation carries a penalty and
                the cleaner has not acknowledged it.
        """
        now = self._resolve_now(now)
        preview = self.preview(cleaner_id, appointment_id, appointment_date, now)
        if preview.requires_acknowledgment and not acknowledged:
            raise AcknowledgmentRequiredError(preview.acknowledgment_message)
        return self.record_if_qualifying(cleaner_id, appointment_id, appointment_date, now)

    # ------------------------------------------------------------------ #
    # Account status
    # ------------------------------------------------------------------ #

    def retry_freeze(self, cleaner_id: str, now: Optional[datetime] = None) -> bool:
        """Re-send a freeze whose earlier attempt failed.

        Returns True when a pending freeze was delivered, False when nothing
        was pending.

        Raises:
            CollaboratorUnavailableError: The account service failed again. The
                freeze stays pending.
        """
        if not self._store.is_freeze_pending(cleaner_id):
            return False
        now = self._resolve_now(now)
        self._freeze(cleaner_id, self._store.count_since(cleaner_id, self.window_start(now)))
        return True

    def account_status(self, cleaner_id: str, now: Optional[datetime] = None) -> CleanerAccountStatus:
        """Penalty standing derived from the rolling count.

        is_frozen means the in-window count is at or above the threshold, so
        it turns False again as penalties age out. The freeze applied through
        the account port is not lifted by this ledger; unfreezing belongs to
        the account service, which may still hold the account frozen.
        freeze_pending is True while a threshold-crossing freeze has not been
        delivered.
        """
        now = self._resolve_now(now)
        count = self._store.count_since(cleaner_id, self.window_start(now))
        return CleanerAccountStatus(
            cleaner_id=cleaner_id,
            recent_penalty_count=count,
            is_frozen=count >= self._policy.freeze_threshold,
            freeze_pending=self._store.is_freeze_pending(cleaner_id),
        )

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _resolve_now(self, now: Optional[datetime]) -> datetime:
        return ensure_utc(now) if now is not None else self._clock.now()

    def _replay(self, cleaner_id: str, appointment_id: str, days: int, count: int) -> PenaltyOutcome:
        logger.info("Cancellation penalty for %s on %s already recorded", cleaner_id, appointment_id)
        record = self._store.find(cleaner_id, appointment_id)
        return PenaltyOutcome(
            penalty_applied=True,
            account_frozen=self.retry_freeze(cleaner_id),
            days_before_appointment=record.days_before_appointment if record else days,
            recent_penalty_count=count,
            record=record,
        )

    def _freeze(self, cleaner_id: str, count: int) -> None:
        reason = self.freeze_reason
        logger.warning("Freezing cleaner %s: %s (%d in window)", cleaner_id, reason, count)
        if self._freezer is not None:
            try:
                self._freezer.freeze(cleaner_id, reason)
            except Exception as exc:
                logger.error("Account freeze failed for %s: %s", cleaner_id, exc)
                raise CollaboratorUnavailableError("account_freeze", str(exc)) from exc
        self._store.clear_freeze_pending(cleaner_id)
        self._notify(cleaner_id, "account.frozen", {"reason": reason, "recent_penalty_count": count})

    def _notify(self, actor_id: str, event_type: str, payload: dict) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier.notify(actor_id, event_type, payload)
        except Exception:
            logger.warning("Notification %s to %s failed", event_type, actor_id, exc_info=True)

    def _warning_message(self, within: bool, recent: int, will_freeze: bool) -> str:
        if not within:
            return "You can cancel this job without penalty."

        window_days = self._policy.penalty_window_days
        months = self._policy.rolling_window_months
        if will_freeze:
            return (
                f"WARNING: Cancelling within {window_days} days of the cleaning will result "
                f"in an automatic 1-star rating. You already have {recent} "
                f"{_plural_penalty(recent)} in the last {months} months. "
                "THIS CANCELLATION WILL FREEZE YOUR ACCOUNT."
            )

        message = (
            f"Cancelling within {window_days} days of the cleaning will result in an "
            f'automatic 1-star rating with the note "{PENALTY_REVIEW_NOTE}". '
            f"You currently have {recent} {_plural_penalty(recent)} in the last {months} months."
        )
        remaining = self._policy.freeze_threshold - 1 - recent
        if remaining > 0:
            message += f" {remaining} more will result in your account being frozen."
        return message

    @staticmethod
    def _acknowledgment_message(within: bool, will_freeze: bool) -> str:
        if not within:
            return ""
        if will_freeze:
            return (
                "I understand this cancellation will result in a 1-star rating "
                "and my account will be frozen."
            )
        return "I understand this cancellation will result in an automatic 1-star rating."


def _plural_penalty(count: int) -> str:
    return "cancellation penalty" if count == 1 else "cancellation penalties"
