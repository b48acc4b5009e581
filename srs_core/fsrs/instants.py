"""
Instants - validated timestamps for the scheduler.

Every timestamp the core handles is a timezone-aware UTC datetime. Stores
hand us ISO strings, naive datetimes or garbage; `repair_instant` is the one
place where invalid values are substituted.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Optional

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400.0


def to_instant(value: object) -> datetime:
    """
    Convert a datetime or ISO-8601 string to an aware UTC datetime.

    Naive datetimes are taken to be UTC.

    Raises:
        ValueError: if the value cannot be interpreted as an instant
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("empty timestamp")
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    else:
        raise ValueError(f"unsupported timestamp type: {type(value).__name__}")

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def repair_instant(
    value: object,
    fallback: datetime,
    field: str = "timestamp",
    card_id: Optional[str] = None
) -> datetime:
    """
    Parse a stored timestamp, substituting `fallback` when it is missing or invalid.

    A warning is logged for every substitution so corrupt rows stay visible
    without blocking the review.

    Args:
        value: Stored value (datetime, ISO string, None, anything else)
        fallback: Instant to use instead, normally "now"
        field: Field name for the log message
        card_id: Card id for the log message

    Returns:
        Aware UTC datetime
    """
    if value is None:
        logger.warning("Card %s: missing %s, using %s", card_id, field, fallback.isoformat())
        return to_instant(fallback)
    try:
        return to_instant(value)
    except (ValueError, TypeError, OverflowError) as exc:
        logger.warning(
            "Card %s: unparsable %s %r (%s), using %s",
            card_id, field, value, exc, fallback.isoformat()
        )
        return to_instant(fallback)


def days_between(earlier: datetime, later: datetime) -> float:
    """Fractional days from `earlier` to `later` (negative under clock skew)."""
    return (later - earlier).total_seconds() / SECONDS_PER_DAY


def whole_days_between(earlier: Optional[datetime], later: datetime) -> int:
    """Whole days elapsed, floored at 0. None means never reviewed."""
    if earlier is None:
        return 0
    days = days_between(earlier, later)
    if not math.isfinite(days) or days <= 0:
        return 0
    return int(math.floor(days))


def add_days(instant: datetime, days: float) -> datetime:
    return instant + timedelta(days=days)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
