"""
Short-Term Memory (STM) Updates

Step transitions for cards in Learning or Relearning.

Learning steps are a short list of sub-day delays ("1m", "10m") a card passes
through before the long-term formulas take over. The rules here only decide
the next step index; due times are computed by the scheduler.
"""

from __future__ import annotations

from typing import Optional

from srs_core.fsrs.constants import Rating


def first_step(rating: Rating, step_count: int) -> Optional[int]:
    """
    Step index for a New card's first grading, or None to graduate.

    - AGAIN, HARD: step 0
    - GOOD: step 1 when it exists, otherwise step 0
    - EASY: graduates
    An empty step list graduates on any rating.
    """
    if step_count == 0 or rating == Rating.EASY:
        return None
    if rating == Rating.GOOD and step_count > 1:
        return 1
    return 0


def next_step(current_index: Optional[int], rating: Rating, step_count: int) -> Optional[int]:
    """
    Step index after grading a (re)learning card, or None to graduate.

    - AGAIN: back to step 0
    - HARD: repeat the current step
    - GOOD: advance; graduates from the last step
    - EASY: graduates immediately

    A stored index beyond a shortened step list is treated as the last step.
    """
    if step_count == 0:
        return None

    index = min(max(current_index or 0, 0), step_count - 1)

    if rating == Rating.AGAIN:
        return 0
    if rating == Rating.HARD:
        return index
    if rating == Rating.GOOD:
        return index + 1 if index + 1 < step_count else None
    return None
