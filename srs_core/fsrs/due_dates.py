"""
Due-date helpers.

Classify how far a due time is from "now" and render short labels for
callers that display queues. No scheduling decisions are made here.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from srs_core.fsrs import instants
from srs_core.fsrs.constants import CardStatus, STEP_STATES
from srs_core.fsrs.memory_state import CardMemoryState


DueStatus = Literal["overdue", "due-now", "due-soon", "future"]
TimeUnit = Literal["minutes", "hours", "days"]

MINUTES_PER_HOUR = 60
MINUTES_PER_DAY = 24 * 60


@dataclass(frozen=True)
class DueDateInfo:
    status: DueStatus
    label: str
    time_value: int
    time_unit: TimeUnit


def get_due_date_info(due: datetime, now: datetime) -> DueDateInfo:
    """
    Describe a due time relative to now.

    - overdue: due time has passed ("5m overdue", "3h overdue", "2d overdue")
    - due-now: due within the next minute
    - due-soon: due within the next day
    - future: due later ("Due in 3d", or the date once a week or more away)
    """
    due = instants.to_instant(due)
    now = instants.to_instant(now)
    diff_minutes = (due - now).total_seconds() / 60.0

    if diff_minutes < 0:
        minutes = math.ceil(-diff_minutes)
        if minutes < MINUTES_PER_HOUR:
            return DueDateInfo("overdue", f"{minutes}m overdue", minutes, "minutes")
        if minutes < MINUTES_PER_DAY:
            hours = math.ceil(minutes / MINUTES_PER_HOUR)
            return DueDateInfo("overdue", f"{hours}h overdue", hours, "hours")
        days = math.ceil(minutes / MINUTES_PER_DAY)
        return DueDateInfo("overdue", f"{days}d overdue", days, "days")

    minutes = math.ceil(diff_minutes)
    if minutes <= 1:
        return DueDateInfo("due-now", "Due now", 0, "minutes")
    if minutes <= MINUTES_PER_HOUR:
        return DueDateInfo("due-soon", f"Due in {minutes}m", minutes, "minutes")
    if minutes < MINUTES_PER_DAY:
        hours = math.ceil(minutes / MINUTES_PER_HOUR)
        return DueDateInfo("due-soon", f"Due in {hours}h", hours, "hours")

    days = math.ceil(minutes / MINUTES_PER_DAY)
    if days == 1:
        return DueDateInfo("due-soon", "Due tomorrow", 1, "days")
    if days < 7:
        return DueDateInfo("future", f"Due in {days}d", days, "days")
    return DueDateInfo("future", due.strftime("%Y-%m-%d"), days, "days")


def is_due_for_study(due: datetime, now: datetime) -> bool:
    """True when a card is overdue, due now or due within the day."""
    return get_due_date_info(due, now).status in ("overdue", "due-now", "due-soon")


def _plural(value: int, unit: str) -> str:
    return f"{value} {unit}{'' if value == 1 else 's'}"


def describe_next_review(card: CardMemoryState, now: datetime) -> str:
    """
    Human-readable wait until the card is due ("10 minutes", "2 hours", "3 days").

    Cards in learning steps are described in minutes or hours; long-term
    cards in whole days (at least one).
    """
    seconds = (instants.to_instant(card.due) - instants.to_instant(now)).total_seconds()

    if card.state in STEP_STATES or card.state == CardStatus.NEW:
        minutes = max(0, math.ceil(seconds / 60.0))
        if minutes < MINUTES_PER_HOUR:
            return _plural(minutes, "minute")
        return _plural(math.ceil(minutes / MINUTES_PER_HOUR), "hour")

    days = max(1, math.ceil(seconds / instants.SECONDS_PER_DAY))
    return _plural(days, "day")
