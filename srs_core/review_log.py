"""
Review log and undo.

Commits scheduler transitions to the card store together with their log
entry, and rolls back the most recent review of a card from that entry.

Append-only history:
- exactly one ReviewLogEntry per committed review
- entries are never modified; undo deletes the entry it consumed
- undo is one level deep: the entry records the card version its review
  wrote, and only applies while that version is still current
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Optional, Union

from srs_core.errors import (
    LearnerMismatchError,
    NothingToUndoError,
    ValidationError,
)
from srs_core.fsrs.constants import Rating
from srs_core.fsrs.memory_state import CardMemoryState, ReviewLogEntry
from srs_core.fsrs.parameters import SchedulingParameters
from srs_core.fsrs.scheduler import (
    RatingLike,
    ScheduleResult,
    coerce_rating,
    preview_review,
    process_review,
)
from srs_core.memory_store import InMemoryParameterStore
from srs_core.ports import CardStore, Clock, ParameterStore, ReviewLogStore, StoredCard, SystemClock

logger = logging.getLogger(__name__)


class ReviewService:
    """
    Grade, preview and undo reviews for one learner's cards.

    The card-state write is authoritative. When the card store also offers
    `commit_review` (the SQL store), state and log entry are written in one
    transaction; otherwise a failed log append is logged and tolerated.
    """

    def __init__(
        self,
        card_store: CardStore,
        log_store: ReviewLogStore,
        parameter_store: Optional[ParameterStore] = None,
        clock: Optional[Clock] = None
    ):
        self.card_store = card_store
        self.log_store = log_store
        self.parameter_store = parameter_store or InMemoryParameterStore()
        self.clock = clock or SystemClock()

    # ---- Reviews ----

    def review(
        self,
        card_id: str,
        learner_id: str,
        rating: RatingLike,
        seed: Optional[Union[int, str]] = None
    ) -> ScheduleResult:
        """
        Grade a card and commit the new state plus its log entry.

        Args:
            card_id: Card to grade
            learner_id: Owning learner
            rating: AGAIN, HARD, GOOD or EASY
            seed: Optional fuzz seed

        Returns:
            ScheduleResult; its log carries the committed card version

        Raises:
            ValidationError: bad rating or unknown card
            ConcurrencyConflict: the card changed since it was read
        """
        rating = coerce_rating(rating)
        stored = self._load(card_id, learner_id)
        parameters = self.parameter_store.get(learner_id)
        now = self.clock.now()

        result = process_review(stored.state, rating, now, parameters, seed)

        commit_review = getattr(self.card_store, "commit_review", None)
        if callable(commit_review) and self.log_store is self.card_store:
            version = commit_review(stored.version, result.card, result.log)
            log = replace(result.log, card_version=version)
        else:
            version = self.card_store.compare_and_swap(stored.version, result.card)
            log = replace(result.log, card_version=version)
            try:
                self.log_store.append(log)
            except Exception as exc:
                logger.warning(
                    "Review of card %s committed but log append failed: %s",
                    card_id, exc, exc_info=True
                )

        logger.info(
            "Learner %s graded card %s %s: %s, next due %s",
            learner_id, card_id, rating.name, result.card.state.value, result.card.due.isoformat()
        )
        return ScheduleResult(card=result.card, log=log)

    def preview(
        self,
        card_id: str,
        learner_id: str,
        seed: Optional[Union[int, str]] = None
    ) -> dict[Rating, ScheduleResult]:
        """All four candidate outcomes for a card; nothing is written."""
        stored = self._load(card_id, learner_id)
        parameters = self.parameter_store.get(learner_id)
        return preview_review(stored.state, self.clock.now(), parameters, seed)

    # ---- Undo ----

    def undo(self, card_id: str, learner_id: str) -> CardMemoryState:
        """
        Roll back the most recent review of a card.

        Restores the pre-review snapshot verbatim and deletes the log entry.

        Raises:
            NothingToUndoError: no entry, or the card changed since that review
                (including a previous undo)
            LearnerMismatchError: only another learner has reviewed this card
            ValidationError: the card was deleted since the review
            ConcurrencyConflict: the card changed while restoring
        """
        entry = self.log_store.latest(card_id, learner_id)
        if entry is None:
            foreign = self.log_store.latest(card_id)
            if foreign is not None and self.card_store.get(card_id, learner_id) is None:
                raise LearnerMismatchError(
                    f"Review {foreign.entry_id} of card {card_id} does not belong to learner {learner_id}"
                )
            raise NothingToUndoError(f"No review found to undo for card {card_id}")
        if entry.learner_id != learner_id:
            raise LearnerMismatchError(
                f"Review {entry.entry_id} of card {card_id} does not belong to learner {learner_id}"
            )

        stored = self.card_store.get(card_id, learner_id)
        if stored is None:
            raise ValidationError(f"Card {card_id} was deleted since it was reviewed")
        if entry.card_version is None or entry.card_version != stored.version:
            raise NothingToUndoError(
                f"Card {card_id} changed since its last review; nothing to undo"
            )

        commit_undo = getattr(self.card_store, "commit_undo", None)
        if callable(commit_undo) and self.log_store is self.card_store:
            commit_undo(stored.version, entry.state_before, entry.entry_id)
        else:
            self.card_store.compare_and_swap(stored.version, entry.state_before)
            self.log_store.discard(entry.entry_id)

        logger.info(
            "Learner %s undid %s review of card %s", learner_id, entry.rating.name, card_id
        )
        return entry.state_before

    def history(self, card_id: str) -> list[ReviewLogEntry]:
        return self.log_store.history(card_id)

    # ---- Settings ----

    def parameters(self, learner_id: str) -> SchedulingParameters:
        return self.parameter_store.get(learner_id)

    def update_parameters(self, learner_id: str, **changes: Any) -> SchedulingParameters:
        """
        Validate and persist a settings change.

        Raises:
            ValidationError: unknown or out-of-range values (nothing is saved)
        """
        updated = self.parameter_store.get(learner_id).updated(**changes)
        self.parameter_store.update(learner_id, updated)
        logger.info("Learner %s updated scheduling parameters: %s", learner_id, sorted(changes))
        return updated

    # ---- Helpers ----

    def _load(self, card_id: str, learner_id: str) -> StoredCard:
        stored = self.card_store.get(card_id, learner_id)
        if stored is None:
            raise ValidationError(f"Unknown card {card_id} for learner {learner_id}")
        return stored
