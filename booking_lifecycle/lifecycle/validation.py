"""Input validation for counterparty responses."""

import logging
from datetime import date
from typing import Iterable, Optional

from booking_lifecycle.errors import InvalidSuggestedDatesError
from booking_lifecycle.utils import parse_calendar_date

logger = logging.getLogger(__name__)

MAX_DECLINE_REASON_LENGTH = 500


def normalize_suggested_dates(
    values: Optional[Iterable[object]], max_dates: int
) -> tuple[date, ...]:
    """Parse and deduplicate suggested dates by calendar day, keeping first-seen order.

    Accepts dates, datetimes or ISO strings. Duplicates collapse before the
    limit is checked, so the same day given twice counts once.

    Raises:
        InvalidSuggestedDatesError: On malformed values or more than `max_dates`.
    """
    if values is None:
        return ()
    if isinstance(values, (str, bytes)):
        raise InvalidSuggestedDatesError("Suggested dates must be a list, not a single string")

    unique: list[date] = []
    for raw in values:
        try:
            parsed = parse_calendar_date(raw)
        except ValueError as exc:
            raise InvalidSuggestedDatesError(f"Malformed suggested date {raw!r}: {exc}") from None
        if parsed not in unique:
            unique.append(parsed)

    if len(unique) > max_dates:
        raise InvalidSuggestedDatesError(
            f"At most {max_dates} suggested dates allowed, got {len(unique)}"
        )
    return tuple(unique)


def normalize_decline_reason(reason: Optional[str]) -> Optional[str]:
    """Trim the free-text reason; blank reasons are stored as None."""
    if reason is None:
        return None
    cleaned = reason.strip()
    if not cleaned:
        return None
    if len(cleaned) > MAX_DECLINE_REASON_LENGTH:
        logger.debug("Decline reason truncated from %d chars", len(cleaned))
        cleaned = cleaned[:MAX_DECLINE_REASON_LENGTH]
    return cleaned
