"""
Scheduler - FSRS Algorithm Logic

Pure FSRS scheduling and state updates (no database calls).

Main workflow:
1. Caller loads the card state and the learner's parameters
2. Compute elapsed days and retrievability
3. Apply the rule for the card's state (New, Learning/Relearning, Review)
4. Return the new card state + a matching review log entry

The input card is never modified, so previewing all four ratings and
committing one of them share this code path.
"""

from __future__ import annotations

import logging
import random
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional, Union

from srs_core.errors import ValidationError
from srs_core.fsrs import instants, ltm_updates, stm_updates
from srs_core.fsrs.constants import CardStatus, Rating, STEP_STATES
from srs_core.fsrs.memory_state import (
    CardMemoryState,
    ReviewLogEntry,
    calculate_retrievability,
)
from srs_core.fsrs.parameters import SchedulingParameters

logger = logging.getLogger(__name__)

_ENTRY_NAMESPACE = uuid.UUID("6f1c2a4e-3b7d-4c1a-9e58-0d2f8a7b9c31")

RatingLike = Union[Rating, int, str]


@dataclass(frozen=True)
class ScheduleResult:
    """Outcome of grading one card with one rating."""
    card: CardMemoryState
    log: ReviewLogEntry


def coerce_rating(rating: RatingLike) -> Rating:
    """
    Accept a Rating, its value (1-4) or its name ("good", "AGAIN").

    Raises:
        ValidationError: for anything else
    """
    if isinstance(rating, Rating):
        return rating
    if isinstance(rating, bool):
        raise ValidationError(f"Invalid rating {rating!r}")
    if isinstance(rating, int):
        try:
            return Rating(rating)
        except ValueError:
            raise ValidationError(f"Rating must be 1-4, got {rating}") from None
    if isinstance(rating, str):
        try:
            return Rating[rating.strip().upper()]
        except KeyError:
            raise ValidationError(f"Unknown rating {rating!r}") from None
    raise ValidationError(f"Invalid rating {rating!r}")


def process_review(
    card: CardMemoryState,
    rating: RatingLike,
    now: datetime,
    parameters: SchedulingParameters,
    seed: Optional[Union[int, str]] = None
) -> ScheduleResult:
    """
    Grade a card and return its next state plus the review log entry.

    This is the core FSRS algorithm. No database calls, no clock reads.

    Args:
        card: Current card state (not modified)
        rating: AGAIN, HARD, GOOD or EASY
        now: Review instant
        parameters: The learner's scheduling parameters
        seed: Fuzz seed; derived from the card and `now` when omitted

    Returns:
        ScheduleResult with the updated card and the log entry
    """
    rating = coerce_rating(rating)
    try:
        now = instants.to_instant(now)
    except ValueError as exc:
        raise ValidationError(f"Invalid review time {now!r}: {exc}") from exc

    elapsed_days = instants.whole_days_between(card.last_review, now)

    if card.state == CardStatus.NEW:
        retrievability_before = None
    else:
        retrievability_before = calculate_retrievability(card.stability, elapsed_days)

    rng = _fuzz_rng(card, now, seed) if parameters.enable_fuzz else None

    if card.state == CardStatus.NEW:
        updated = _review_new(card, rating, now, parameters, elapsed_days, rng)
    elif card.state in STEP_STATES:
        updated = _review_step(card, rating, now, parameters, elapsed_days, rng)
    else:
        updated = _review_long_term(
            card, rating, now, parameters, elapsed_days, retrievability_before, rng
        )

    logger.debug(
        "Card %s: %s graded %s -> %s, due %s",
        card.card_id, card.state.value, rating.name, updated.state.value, updated.due.isoformat()
    )

    log = ReviewLogEntry(
        entry_id=_entry_id(card, rating, now),
        card_id=card.card_id,
        learner_id=card.learner_id,
        rating=rating,
        reviewed_at=now,
        state_before=card,
        state_after=updated,
        retrievability_before=retrievability_before,
        elapsed_days=elapsed_days,
        scheduled_days=updated.scheduled_days,
    )
    return ScheduleResult(card=updated, log=log)


def preview_review(
    card: CardMemoryState,
    now: datetime,
    parameters: SchedulingParameters,
    seed: Optional[Union[int, str]] = None
) -> dict[Rating, ScheduleResult]:
    """
    Compute the outcome of every rating without committing any of them.

    Returns:
        Mapping with exactly one ScheduleResult per Rating
    """
    return {
        rating: process_review(card, rating, now, parameters, seed)
        for rating in Rating
    }


# ---- State rules ----

def _review_new(
    card: CardMemoryState,
    rating: Rating,
    now: datetime,
    parameters: SchedulingParameters,
    elapsed_days: int,
    rng: Optional[random.Random]
) -> CardMemoryState:
    """First grading: seed D/S from the rating and enter Learning (or graduate)."""
    w = parameters.w
    seeded = replace(
        card,
        difficulty=ltm_updates.initial_difficulty(rating, w),
        stability=ltm_updates.initial_stability(rating, w),
    )

    delays = parameters.learning_delays
    step = stm_updates.first_step(rating, len(delays))
    if step is None:
        return _graduate(seeded, now, parameters, elapsed_days, rng)
    return _enter_step(seeded, CardStatus.LEARNING, step, delays[step], now, elapsed_days)


def _review_step(
    card: CardMemoryState,
    rating: Rating,
    now: datetime,
    parameters: SchedulingParameters,
    elapsed_days: int,
    rng: Optional[random.Random]
) -> CardMemoryState:
    """Learning/Relearning: walk the step list, graduating at its end."""
    relearning = card.state == CardStatus.RELEARNING
    delays = parameters.relearning_delays if relearning else parameters.learning_delays

    step = stm_updates.next_step(card.learning_step_index, rating, len(delays))
    if step is not None:
        return _enter_step(card, card.state, step, delays[step], now, elapsed_days)

    if relearning:
        # Post-lapse memory was already computed when the card lapsed.
        return _graduate(card, now, parameters, elapsed_days, rng)

    w = parameters.w
    seeded = replace(
        card,
        difficulty=ltm_updates.initial_difficulty(rating, w),
        stability=ltm_updates.initial_stability(rating, w),
    )
    return _graduate(seeded, now, parameters, elapsed_days, rng)


def _review_long_term(
    card: CardMemoryState,
    rating: Rating,
    now: datetime,
    parameters: SchedulingParameters,
    elapsed_days: int,
    retrievability: float,
    rng: Optional[random.Random]
) -> CardMemoryState:
    """Review state: FSRS difficulty/stability update and interval."""
    w = parameters.w
    difficulty = ltm_updates.next_difficulty(card.difficulty, rating, w)

    if rating == Rating.AGAIN:
        stability = ltm_updates.lapse_stability(card.difficulty, card.stability, retrievability, w)
        lapsed = replace(
            card,
            difficulty=difficulty,
            stability=stability,
            lapses=card.lapses + 1,
        )
        delays = parameters.relearning_delays
        if delays:
            return _enter_step(lapsed, CardStatus.RELEARNING, 0, delays[0], now, elapsed_days)
        return _graduate(lapsed, now, parameters, elapsed_days, rng)

    # Hard/Good/Easy intervals are computed together so they stay ordered.
    candidates = {}
    for success in (Rating.HARD, Rating.GOOD, Rating.EASY):
        new_stability = ltm_updates.recall_stability(
            card.difficulty, card.stability, retrievability, success, w
        )
        interval = ltm_updates.next_interval(
            new_stability, parameters.request_retention, parameters.maximum_interval
        )
        interval = ltm_updates.apply_fuzz(interval, elapsed_days, parameters.maximum_interval, rng)
        candidates[success] = (new_stability, interval)

    hard, good, easy = ltm_updates.order_success_intervals(
        candidates[Rating.HARD][1],
        candidates[Rating.GOOD][1],
        candidates[Rating.EASY][1],
        parameters.maximum_interval,
    )
    interval = {Rating.HARD: hard, Rating.GOOD: good, Rating.EASY: easy}[rating]

    return replace(
        card,
        state=CardStatus.REVIEW,
        difficulty=difficulty,
        stability=candidates[rating][0],
        elapsed_days=elapsed_days,
        scheduled_days=interval,
        reps=card.reps + 1,
        due=now + timedelta(days=interval),
        last_review=now,
        learning_step_index=None,
    )


# ---- Helpers ----

def _enter_step(
    card: CardMemoryState,
    state: CardStatus,
    step: int,
    delay: timedelta,
    now: datetime,
    elapsed_days: int
) -> CardMemoryState:
    return replace(
        card,
        state=state,
        elapsed_days=elapsed_days,
        scheduled_days=0,
        reps=card.reps + 1,
        due=now + delay,
        last_review=now,
        learning_step_index=step,
    )


def _graduate(
    card: CardMemoryState,
    now: datetime,
    parameters: SchedulingParameters,
    elapsed_days: int,
    rng: Optional[random.Random]
) -> CardMemoryState:
    """Move a card to Review with the long-term interval of its stability."""
    interval = ltm_updates.next_interval(
        card.stability, parameters.request_retention, parameters.maximum_interval
    )
    interval = ltm_updates.apply_fuzz(interval, elapsed_days, parameters.maximum_interval, rng)
    return replace(
        card,
        state=CardStatus.REVIEW,
        elapsed_days=elapsed_days,
        scheduled_days=interval,
        reps=card.reps + 1,
        due=now + timedelta(days=interval),
        last_review=now,
        learning_step_index=None,
    )


def _fuzz_rng(
    card: CardMemoryState,
    now: datetime,
    seed: Optional[Union[int, str]]
) -> random.Random:
    if seed is None:
        seed = f"{card.card_id}:{now.isoformat()}:{card.reps}:{card.difficulty * card.stability:.6f}"
    return random.Random(seed)


def _entry_id(card: CardMemoryState, rating: Rating, now: datetime) -> str:
    # Deterministic so previews of the same review are identical.
    name = f"{card.learner_id}:{card.card_id}:{card.reps}:{int(rating)}:{now.isoformat()}"
    return str(uuid.uuid5(_ENTRY_NAMESPACE, name))
