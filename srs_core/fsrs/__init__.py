"""
FSRS - Free Spaced Repetition Scheduler

Main API for the scheduling core.

This package implements the FSRS v4 algorithm with:
- Learning / relearning steps for new and lapsed cards
- Long-term updates of Stability and Difficulty for graduated cards
- Power-law forgetting curve: R = (1 + t / (9 S))^-1
- Intervals chosen for a target retention, with optional fuzz

Quick start:
    from srs_core import fsrs

    params = fsrs.SchedulingParameters(enable_fuzz=False)
    card = fsrs.new_card_state("card-1", "learner-1")

    # Grade a card (algorithm only, no DB calls)
    result = fsrs.process_review(card, fsrs.Rating.GOOD, now, params)

    # All four outcomes, nothing committed
    outcomes = fsrs.preview_review(card, now, params)

SQL persistence lives in srs_core.fsrs.database (import it directly).
"""

# Core scheduler API (algorithm logic)
from srs_core.fsrs.scheduler import (
    ScheduleResult,
    coerce_rating,
    preview_review,
    process_review,
)

# Constants and parameters
from srs_core.fsrs.constants import (
    CardStatus,
    D_MAX,
    D_MIN,
    DEFAULT_ALGORITHM_VERSION,
    Rating,
    S_MIN,
    WEIGHT_SETS,
)
from srs_core.fsrs.parameters import SchedulingParameters, parse_step

# Memory state
from srs_core.fsrs.memory_state import (
    CardMemoryState,
    ReviewLogEntry,
    calculate_retrievability,
    get_retrievability,
    new_card_state,
)

# Display helpers
from srs_core.fsrs.due_dates import (
    DueDateInfo,
    describe_next_review,
    get_due_date_info,
    is_due_for_study,
)


__all__ = [
    # Core algorithm
    "ScheduleResult",
    "coerce_rating",
    "preview_review",
    "process_review",

    # Enums
    "CardStatus",
    "Rating",

    # Memory state
    "CardMemoryState",
    "ReviewLogEntry",
    "calculate_retrievability",
    "get_retrievability",
    "new_card_state",

    # Parameters
    "SchedulingParameters",
    "parse_step",
    "DEFAULT_ALGORITHM_VERSION",
    "WEIGHT_SETS",
    "S_MIN",
    "D_MIN",
    "D_MAX",

    # Due dates
    "DueDateInfo",
    "describe_next_review",
    "get_due_date_info",
    "is_due_for_study",
]
