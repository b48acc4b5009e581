"""
Pool utilities for study sessions.

Availability filters per study mode and the priority rules that order a
session queue. Priorities are (band, rank) tuples; lower sorts first.

Bands:
    FAILED_READY    failed in-session card whose dwell time has elapsed
    LEARNING        Learning / Relearning cards
    NEW             New cards
    REVIEW          Review cards
    FAILED_WAITING  failed in-session card still inside its dwell time
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable

from srs_core.fsrs.constants import CardStatus, STEP_STATES
from srs_core.fsrs.memory_state import CardMemoryState
from srs_core.ports import CatalogCard
from srs_core.session.session_types import SessionCard, SessionConfig, StudyMode


BAND_FAILED_READY = 0
BAND_LEARNING = 1
BAND_NEW = 2
BAND_REVIEW = 3
BAND_FAILED_WAITING = 4

# Failed cards that are ready are ordered by fail count, spaced out
FAILED_RANK_STEP = 10


# ---- Availability ----

def is_available_now(memory: CardMemoryState, now: datetime) -> bool:
    """New, Learning and Relearning cards are always available; Review cards once due."""
    if memory.state == CardStatus.REVIEW:
        return memory.due <= now
    return True


def matches_mode(memory: CardMemoryState, config: SessionConfig, now: datetime) -> bool:
    """
    Mode-specific predicate, applied on top of availability.

    - daily_review / deck_specific: everything available
    - catch_up: overdue only (due strictly before now, not New)
    - new_cards: New only
    - custom: the include_* flags, any one of which admits a card
    """
    mode = config.mode
    if mode in (StudyMode.DAILY_REVIEW, StudyMode.DECK_SPECIFIC):
        return True
    if mode == StudyMode.CATCH_UP:
        return memory.state != CardStatus.NEW and memory.due < now
    if mode == StudyMode.NEW_CARDS:
        return memory.state == CardStatus.NEW
    if mode == StudyMode.CUSTOM:
        if config.include_new and memory.state == CardStatus.NEW:
            return True
        if config.include_review and memory.state == CardStatus.REVIEW:
            return True
        if config.include_learning and memory.state in STEP_STATES:
            return True
        return False
    return False


def select_cards(
    cards: Iterable[CatalogCard],
    config: SessionConfig,
    now: datetime
) -> list[CatalogCard]:
    """
    Filter catalog cards for a session and apply the max_cards cap.

    Catalog order is preserved.
    """
    selected = [
        card for card in cards
        if matches_mode(card.memory, config, now) and is_available_now(card.memory, now)
    ]
    if config.max_cards is not None:
        selected = selected[:config.max_cards]
    return selected


# ---- Priority ----

def initial_priority(status: CardStatus, index: int) -> tuple[int, int]:
    """Learning/Relearning first, then New, then Review; ties by catalog order."""
    if status in STEP_STATES:
        return (BAND_LEARNING, index)
    if status == CardStatus.NEW:
        return (BAND_NEW, index)
    return (BAND_REVIEW, index)


def failed_card_priority(
    card: SessionCard,
    now: datetime,
    dwell_time: timedelta
) -> tuple[int, int]:
    """
    Priority for a card failed in this session.

    Until dwell_time has passed since it was last shown the card sorts after
    all fresh cards; afterwards it sorts ahead of them.
    """
    last_shown = card.last_shown_at or now
    if now - last_shown < dwell_time:
        return (BAND_FAILED_WAITING, card.times_failed_in_session)
    return (BAND_FAILED_READY, card.times_failed_in_session * FAILED_RANK_STEP)


def refresh_priorities(
    queue: list[SessionCard],
    now: datetime,
    dwell_time: timedelta
) -> None:
    """Recompute failed-card priorities against the clock and resort in place."""
    for card in queue:
        if card.failed_in_session:
            card.session_priority = failed_card_priority(card, now, dwell_time)
    queue.sort(key=lambda c: c.session_priority)
