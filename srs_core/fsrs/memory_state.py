"""
Memory State - FSRS Card State and Retrievability

Defines the per-card scheduling state and derived quantities for FSRS.

Key concepts:
- Stability (S): days until recall probability decays to the target (power-law curve)
- Difficulty (D): how hard the card is to learn (1-10 scale)
- Retrievability (R): probability of successful recall at time t
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from srs_core.errors import DataIntegrityError
from srs_core.fsrs import instants
from srs_core.fsrs.constants import (
    CardStatus,
    D_MAX,
    D_MIN,
    DECAY,
    FACTOR,
    INITIAL_DIFFICULTY,
    INITIAL_STABILITY,
    Rating,
    S_MIN,
    STEP_STATES,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CardMemoryState:
    """
    Memory state for one card of one learner.

    Immutable: the scheduler returns new values via dataclasses.replace.
    """
    card_id: str
    learner_id: str
    state: CardStatus

    # Long-term memory parameters
    difficulty: float  # D, range 1-10
    stability: float   # S, in days

    # Interval bookkeeping
    elapsed_days: int
    scheduled_days: int

    # Review tracking
    reps: int
    lapses: int
    due: datetime
    last_review: Optional[datetime] = None

    # Position in the (re)learning step list, None outside step states
    learning_step_index: Optional[int] = None

    def to_record(self) -> dict[str, Any]:
        """Plain dict with ISO timestamps, suitable for JSON columns."""
        return {
            "card_id": self.card_id,
            "learner_id": self.learner_id,
            "state": self.state.value,
            "difficulty": self.difficulty,
            "stability": self.stability,
            "elapsed_days": self.elapsed_days,
            "scheduled_days": self.scheduled_days,
            "reps": self.reps,
            "lapses": self.lapses,
            "due": self.due.isoformat(),
            "last_review": self.last_review.isoformat() if self.last_review else None,
            "learning_step_index": self.learning_step_index,
        }

    @classmethod
    def from_record(
        cls,
        record: dict[str, Any],
        now: Optional[datetime] = None,
        strict: bool = False
    ) -> "CardMemoryState":
        """
        Build a state from a stored record, repairing invalid fields.

        Args:
            record: Stored values (see to_record)
            now: Substitute for unparsable timestamps (defaults to current time)
            strict: Raise DataIntegrityError instead of repairing

        Returns:
            CardMemoryState satisfying all invariants
        """
        now = instants.to_instant(now) if now is not None else instants.utcnow()
        card_id = str(record.get("card_id", ""))
        problems: list[str] = []

        # State
        raw_state = record.get("state")
        try:
            state = CardStatus(raw_state)
        except ValueError:
            state = CardStatus.REVIEW if _as_int(record.get("reps"), 0) > 0 else CardStatus.NEW
            problems.append(f"unknown state {raw_state!r}, using {state.value}")

        # Difficulty / stability
        difficulty = _as_float(record.get("difficulty"))
        if difficulty is None:
            problems.append(f"invalid difficulty {record.get('difficulty')!r}")
            difficulty = INITIAL_DIFFICULTY
        elif not D_MIN <= difficulty <= D_MAX:
            problems.append(f"difficulty {difficulty} outside [{D_MIN}, {D_MAX}]")
            difficulty = clamp_difficulty(difficulty)

        stability = _as_float(record.get("stability"))
        if stability is None or stability <= 0:
            problems.append(f"invalid stability {record.get('stability')!r}")
            stability = INITIAL_STABILITY

        # Counters
        counters = {}
        for name in ("elapsed_days", "scheduled_days", "reps", "lapses"):
            value = _as_int(record.get(name), None)
            if value is None or value < 0:
                problems.append(f"invalid {name} {record.get(name)!r}")
                value = 0
            counters[name] = value

        if counters["lapses"] > counters["reps"]:
            problems.append(f"lapses {counters['lapses']} exceed reps {counters['reps']}")
            counters["lapses"] = counters["reps"]

        # Timestamps
        due = _checked_instant(record.get("due"), now, "due", card_id, strict)
        last_review = None
        if state != CardStatus.NEW:
            last_review = _checked_instant(record.get("last_review"), now, "last_review", card_id, strict)
        elif record.get("last_review") is not None:
            problems.append("new card carries last_review, dropping it")

        if state == CardStatus.NEW and counters["reps"] > 0:
            problems.append(f"new card with reps={counters['reps']}, resetting counters")
            counters["reps"] = 0
            counters["lapses"] = 0

        if last_review is not None and due < last_review:
            problems.append("due precedes last_review")
            due = last_review

        # Step index
        step_index = record.get("learning_step_index")
        if state in STEP_STATES:
            parsed = _as_int(step_index, None)
            if parsed is None or parsed < 0:
                problems.append(f"invalid learning_step_index {step_index!r}")
                parsed = 0
            step_index = parsed
        else:
            step_index = None

        if problems:
            if strict:
                raise DataIntegrityError(f"Card {card_id}: " + "; ".join(problems))
            for problem in problems:
                logger.warning("Card %s: %s (repaired)", card_id, problem)

        return cls(
            card_id=card_id,
            learner_id=str(record.get("learner_id", "")),
            state=state,
            difficulty=difficulty,
            stability=stability,
            elapsed_days=counters["elapsed_days"],
            scheduled_days=counters["scheduled_days"],
            reps=counters["reps"],
            lapses=counters["lapses"],
            due=due,
            last_review=last_review,
            learning_step_index=step_index,
        )


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _as_int(value: Any, default: Optional[int]) -> Optional[int]:
    number = _as_float(value)
    if number is None or number != int(number):
        return default
    return int(number)


def _checked_instant(
    value: Any,
    now: datetime,
    field: str,
    card_id: str,
    strict: bool
) -> datetime:
    if not strict:
        return instants.repair_instant(value, now, field, card_id)
    try:
        return instants.to_instant(value)
    except (ValueError, TypeError, OverflowError) as exc:
        raise DataIntegrityError(f"Card {card_id}: invalid {field} {value!r}") from exc


# ---- Invariants ----

def clamp_difficulty(difficulty: float) -> float:
    return max(D_MIN, min(D_MAX, difficulty))


def clamp_stability(stability: float) -> float:
    return max(S_MIN, stability)


def check_invariants(card: CardMemoryState) -> list[str]:
    """
    List invariant violations of a card state (empty when valid).
    """
    problems = []
    if not D_MIN <= card.difficulty <= D_MAX:
        problems.append(f"difficulty {card.difficulty} outside [{D_MIN}, {D_MAX}]")
    if not card.stability > 0:
        problems.append(f"stability {card.stability} not positive")
    if card.elapsed_days < 0 or card.scheduled_days < 0:
        problems.append("negative day counters")
    if card.reps < 0 or card.lapses < 0 or card.lapses > card.reps:
        problems.append(f"invalid reps/lapses {card.reps}/{card.lapses}")
    if card.state == CardStatus.NEW and (card.reps != 0 or card.last_review is not None):
        problems.append("new card has review history")
    if card.last_review is not None and card.due < card.last_review:
        problems.append("due precedes last_review")
    if (card.state in STEP_STATES) != (card.learning_step_index is not None):
        problems.append("learning_step_index does not match state")
    return problems


# ---- Retrievability ----

def calculate_retrievability(stability: float, elapsed_days: float) -> float:
    """
    Calculate retrievability using the power-law forgetting curve.

    Formula: R = (1 + t / (9 * S)) ^ -1

    Interpretation:
    - Immediately after review: R = 1.0
    - At t = S: R = 0.9
    - R decays slower than exponential for long gaps

    Args:
        stability: Current stability in days
        elapsed_days: Time since last review in days

    Returns:
        Retrievability between 0 and 1
    """
    if stability <= 0:
        return 0.0
    if elapsed_days <= 0:
        return 1.0
    return (1.0 + FACTOR * elapsed_days / stability) ** DECAY


def get_retrievability(card: CardMemoryState, now: datetime) -> float:
    """
    Current recall probability of a card, clamped to [0, 1].

    New cards (never reviewed) report 1.0.
    """
    if card.state == CardStatus.NEW or card.last_review is None:
        return 1.0
    elapsed = instants.days_between(card.last_review, instants.to_instant(now))
    value = calculate_retrievability(card.stability, max(0.0, elapsed))
    if not math.isfinite(value):
        return 0.0
    return max(0.0, min(1.0, value))


# ---- Construction ----

def new_card_state(
    card_id: str,
    learner_id: str,
    created_at: Optional[datetime] = None
) -> CardMemoryState:
    """
    Initialize state for a newly authored card.

    Args:
        card_id: Card identifier
        learner_id: Owning learner
        created_at: Authoring time, also the initial due time (default: now)

    Returns:
        CardMemoryState in the New state
    """
    created = instants.to_instant(created_at) if created_at is not None else instants.utcnow()
    return CardMemoryState(
        card_id=card_id,
        learner_id=learner_id,
        state=CardStatus.NEW,
        difficulty=INITIAL_DIFFICULTY,
        stability=INITIAL_STABILITY,
        elapsed_days=0,
        scheduled_days=0,
        reps=0,
        lapses=0,
        due=created,
        last_review=None,
        learning_step_index=None,
    )


# ---- Review log entry ----

@dataclass(frozen=True)
class ReviewLogEntry:
    """
    Immutable record of one graded review.

    Holds full snapshots of the card before and after the review so undo can
    restore the earlier state verbatim.
    """
    entry_id: str
    card_id: str
    learner_id: str
    rating: Rating
    reviewed_at: datetime
    state_before: CardMemoryState
    state_after: CardMemoryState
    retrievability_before: Optional[float]
    elapsed_days: int
    scheduled_days: int

    # Store version written by this review (set at commit)
    card_version: Optional[int] = None

    def to_record(self) -> dict[str, Any]:
        return {
            "entry_id": self.entry_id,
            "card_id": self.card_id,
            "learner_id": self.learner_id,
            "rating": int(self.rating),
            "reviewed_at": self.reviewed_at.isoformat(),
            "state_before": self.state_before.to_record(),
            "state_after": self.state_after.to_record(),
            "retrievability_before": self.retrievability_before,
            "elapsed_days": self.elapsed_days,
            "scheduled_days": self.scheduled_days,
            "card_version": self.card_version,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "ReviewLogEntry":
        # Snapshots were written by the scheduler itself, so parse strictly.
        return cls(
            entry_id=record["entry_id"],
            card_id=record["card_id"],
            learner_id=record["learner_id"],
            rating=Rating(int(record["rating"])),
            reviewed_at=instants.to_instant(record["reviewed_at"]),
            state_before=CardMemoryState.from_record(record["state_before"], strict=True),
            state_after=CardMemoryState.from_record(record["state_after"], strict=True),
            retrievability_before=record.get("retrievability_before"),
            elapsed_days=int(record.get("elapsed_days", 0)),
            scheduled_days=int(record.get("scheduled_days", 0)),
            card_version=record.get("card_version"),
        )
