"""
FSRS Constants and Parameters

Enums, numeric bounds and versioned weight sets for the FSRS algorithm.
Per-learner settings live in parameters.py; nothing here is mutated at runtime.
"""

from __future__ import annotations

from enum import Enum, IntEnum


# ---- Ratings ----

class Rating(IntEnum):
    """Learner's grade for one recall attempt."""
    AGAIN = 1   # Recall failed
    HARD = 2    # Recalled with serious effort
    GOOD = 3    # Recalled after a short pause
    EASY = 4    # Recalled instantly


# ---- Card states ----

class CardStatus(str, Enum):
    """Scheduling state of a card."""
    NEW = "New"
    LEARNING = "Learning"
    REVIEW = "Review"
    RELEARNING = "Relearning"


STEP_STATES = (CardStatus.LEARNING, CardStatus.RELEARNING)


# ---- Bounds ----

D_MIN = 1.0      # Minimum difficulty
D_MAX = 10.0     # Maximum difficulty
S_MIN = 0.01     # Minimum stability (days)

# Curve shape: R = (1 + FACTOR * t / S) ^ DECAY
DECAY = -1.0
FACTOR = 1.0 / 9.0


# ---- New card defaults ----

INITIAL_DIFFICULTY = 5.0
INITIAL_STABILITY = 0.4   # Placeholder until the first grading seeds S


# ---- Default scheduling parameters ----

DEFAULT_REQUEST_RETENTION = 0.9
DEFAULT_MAXIMUM_INTERVAL = 36500  # 100 years
DEFAULT_ENABLE_FUZZ = True
DEFAULT_LEARNING_STEPS = ("1m", "10m")
DEFAULT_RELEARNING_STEPS = ("10m",)

# In-session retry gate when no learning steps are configured
FALLBACK_DWELL_SECONDS = 60


# ---- Versioned weight sets ----
# Index layout (FSRS v4):
#   w[0]-w[3]   initial stability per rating (AGAIN..EASY)
#   w[4]-w[5]   initial difficulty intercept / slope
#   w[6]-w[7]   difficulty delta / mean-reversion weight
#   w[8]-w[10]  recall stability: scale, stability decay, retrievability gain
#   w[11]-w[14] lapse stability: scale, difficulty, stability, retrievability
#   w[15]-w[16] hard penalty / easy bonus

DEFAULT_ALGORITHM_VERSION = "fsrs-4"

WEIGHT_SETS: dict[str, tuple[float, ...]] = {
    "fsrs-4": (
        0.4, 0.6, 2.4, 5.8,
        4.93, 0.94, 0.86, 0.01,
        1.49, 0.14, 0.94,
        2.18, 0.05, 0.34, 1.26,
        0.29, 2.61,
    ),
}


# ---- Fuzz ranges ----
# (start_days, end_days, factor): the fuzz delta grows by `factor` per day
# of interval inside each band.

FUZZ_RANGES = (
    (2.5, 7.0, 0.15),
    (7.0, 20.0, 0.1),
    (20.0, float("inf"), 0.05),
)
FUZZ_MIN_INTERVAL = 2.5
