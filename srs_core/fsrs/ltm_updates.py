"""
Long-Term Memory (LTM) Updates

Implements the FSRS difficulty, stability and interval formulas used for
Review-state cards and for seeding cards that graduate from learning.

Key principles:
- Difficulty is pulled by the rating and reverts slowly toward the default
- Successful recall grows stability most when recall was risky (low R)
- A lapse shrinks stability, never grows it
- The next interval inverts the forgetting curve at the target retention
"""

from __future__ import annotations

import math
import random
from typing import Optional, Sequence

from srs_core.fsrs.constants import (
    DECAY,
    FACTOR,
    FUZZ_MIN_INTERVAL,
    FUZZ_RANGES,
    Rating,
)
from srs_core.fsrs.memory_state import clamp_difficulty, clamp_stability


# ---- Initialization ----

def initial_stability(rating: Rating, w: Sequence[float]) -> float:
    """
    Stability after the first grading: S_0 = w[rating - 1].
    """
    return clamp_stability(w[int(rating) - 1])


def initial_difficulty(rating: Rating, w: Sequence[float]) -> float:
    """
    Difficulty after the first grading: D_0 = w[4] - w[5] * (rating - 3).

    Clamped to [1, 10].
    """
    return clamp_difficulty(w[4] - w[5] * (int(rating) - 3))


# ---- Difficulty ----

def next_difficulty(difficulty: float, rating: Rating, w: Sequence[float]) -> float:
    """
    Update difficulty with mean reversion.

    Formula:
        D' = w[7] * D_0(GOOD) + (1 - w[7]) * (D - w[6] * (rating - 3))

    Again/Hard push D up, Easy pulls it down; the w[7] term keeps
    difficulty from drifting to the bounds.
    """
    shifted = difficulty - w[6] * (int(rating) - 3)
    reverted = w[7] * initial_difficulty(Rating.GOOD, w) + (1.0 - w[7]) * shifted
    return clamp_difficulty(reverted)


# ---- Stability ----

def recall_stability(
    difficulty: float,
    stability: float,
    retrievability: float,
    rating: Rating,
    w: Sequence[float]
) -> float:
    """
    New stability after a successful recall (Hard/Good/Easy).

    Formula:
        S' = S * (1 + e^w[8] * (11 - D) * S^-w[9] * (e^(w[10] * (1 - R)) - 1)
                 * hard_penalty * easy_bonus)

    Spaced, risky success (low R) produces the largest gains.
    """
    if rating == Rating.AGAIN:
        raise ValueError("Use lapse_stability for AGAIN")

    hard_penalty = w[15] if rating == Rating.HARD else 1.0
    easy_bonus = w[16] if rating == Rating.EASY else 1.0

    growth = (
        math.exp(w[8])
        * (11.0 - difficulty)
        * stability ** (-w[9])
        * (math.exp(w[10] * (1.0 - retrievability)) - 1.0)
        * hard_penalty
        * easy_bonus
    )
    return clamp_stability(stability * (1.0 + growth))


def lapse_stability(
    difficulty: float,
    stability: float,
    retrievability: float,
    w: Sequence[float]
) -> float:
    """
    New stability after a lapse (Again on a Review card).

    Formula:
        S' = w[11] * D^-w[12] * ((S + 1)^w[13] - 1) * e^(w[14] * (1 - R))

    The result never exceeds the pre-lapse stability.
    """
    forgotten = (
        w[11]
        * difficulty ** (-w[12])
        * ((stability + 1.0) ** w[13] - 1.0)
        * math.exp(w[14] * (1.0 - retrievability))
    )
    return clamp_stability(min(forgotten, stability))


# ---- Intervals ----

def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def next_interval(stability: float, request_retention: float, maximum_interval: int) -> int:
    """
    Days until retrievability decays to the requested retention.

    Inverts R = (1 + t / (9 * S))^-1 at R = r:
        t = 9 * S * (1/r - 1)

    Rounded and clamped to [1, maximum_interval].
    """
    raw = stability / FACTOR * (request_retention ** (1.0 / DECAY) - 1.0)
    return max(1, min(_round_half_up(raw), maximum_interval))


def apply_fuzz(
    interval: int,
    elapsed_days: int,
    maximum_interval: int,
    rng: Optional[random.Random]
) -> int:
    """
    Spread an interval inside a bounded window so cards reviewed together drift apart.

    Intervals shorter than FUZZ_MIN_INTERVAL are left alone. The result stays
    within [2, maximum_interval] and, when the interval exceeds elapsed_days,
    above elapsed_days.
    """
    if rng is None or interval < FUZZ_MIN_INTERVAL:
        return interval

    delta = 1.0
    for start, end, factor in FUZZ_RANGES:
        delta += factor * max(min(interval, end) - start, 0.0)

    interval = min(interval, maximum_interval)
    min_ivl = max(2, _round_half_up(interval - delta))
    max_ivl = min(_round_half_up(interval + delta), maximum_interval)
    if interval > elapsed_days:
        min_ivl = max(min_ivl, elapsed_days + 1)
    min_ivl = min(min_ivl, max_ivl)

    return int(rng.random() * (max_ivl - min_ivl + 1) + min_ivl)


def order_success_intervals(
    hard: int,
    good: int,
    easy: int,
    maximum_interval: int
) -> tuple[int, int, int]:
    """
    Keep Hard <= Good < Easy after rounding and fuzz.
    """
    hard = min(hard, good)
    good = max(good, hard + 1)
    easy = max(easy, good + 1)
    return (
        min(hard, maximum_interval),
        min(good, maximum_interval),
        min(easy, maximum_interval),
    )
