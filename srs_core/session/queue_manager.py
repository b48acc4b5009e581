"""
Study session queue manager.

Builds a prioritized queue of available cards for one learner, hands cards
out one at a time, grades them through the review service and re-queues
cards answered Again until they are recalled.

Lifecycle:
    IDLE --initialize()--> ACTIVE --queue empties / end_session()--> COMPLETE
    IDLE --initialize() with no cards--> FAILED (terminal)
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from srs_core.errors import SessionStateError
from srs_core.fsrs.constants import Rating
from srs_core.fsrs.parameters import SchedulingParameters
from srs_core.fsrs.scheduler import RatingLike, coerce_rating
from srs_core.ports import CardCatalog, Clock, SystemClock
from srs_core.review_log import ReviewService
from srs_core.session.pool_utils import (
    failed_card_priority,
    initial_priority,
    refresh_priorities,
    select_cards,
)
from srs_core.session.session_types import (
    AnswerOutcome,
    SessionCard,
    SessionConfig,
    SessionStats,
    SessionStatus,
)

logger = logging.getLogger(__name__)


class StudySession:
    """
    One study session for one learner.

    Args:
        learner_id: Learner whose cards are studied
        config: SessionConfig (mode, filters, cap)
        catalog: Source of candidate cards
        reviewer: ReviewService used to grade answers
        parameters: Scheduling parameters for the dwell time
            (default: the learner's saved parameters)
        clock: Time source (default: system clock)
    """

    def __init__(
        self,
        learner_id: str,
        config: SessionConfig,
        catalog: CardCatalog,
        reviewer: ReviewService,
        parameters: Optional[SchedulingParameters] = None,
        clock: Optional[Clock] = None
    ):
        self.learner_id = learner_id
        self.config = config
        self.catalog = catalog
        self.reviewer = reviewer
        self.parameters = parameters or reviewer.parameters(learner_id)
        self.clock = clock or SystemClock()

        self.status = SessionStatus.IDLE
        self._queue: list[SessionCard] = []
        self._total = 0
        self._studied = 0
        self._correct = 0
        self._incorrect = 0
        self._started_at: Optional[datetime] = None
        self._duration: Optional[timedelta] = None
        self._response_times: list[timedelta] = []
        self._presented_at: Optional[datetime] = None
        self._shown: Optional[SessionCard] = None

    # ---- Lifecycle ----

    def initialize(self) -> bool:
        """
        Load and order the session queue.

        Returns:
            True when the session is active, False when no card is available
            (the session is then FAILED and cannot be used).
        """
        if self.status != SessionStatus.IDLE:
            raise SessionStateError(f"Cannot initialize a session that is {self.status.value}")

        now = self.clock.now()
        candidates = self.catalog.list_cards(
            self.learner_id,
            deck_id=self.config.deck_id,
            tags=self.config.tags or None
        )
        selected = select_cards(candidates, self.config, now)

        if not selected:
            self.status = SessionStatus.FAILED
            logger.info(
                "No cards available for %s session of learner %s",
                self.config.mode.value, self.learner_id
            )
            return False

        queue = []
        for index, card in enumerate(selected):
            session_card = SessionCard.from_catalog(card)
            session_card.session_priority = initial_priority(session_card.status, index)
            queue.append(session_card)
        queue.sort(key=lambda c: c.session_priority)

        self._queue = queue
        self._total = len(queue)
        self._started_at = now
        self.status = SessionStatus.ACTIVE
        logger.info(
            "Started %s session for learner %s with %d cards",
            self.config.mode.value, self.learner_id, self._total
        )
        return True

    def end_session(self) -> SessionStats:
        """Stop an active session early."""
        self._require_active("end")
        self._complete(self.clock.now())
        return self.stats()

    # ---- Queue ----

    def current_card(self) -> Optional[SessionCard]:
        """
        Card to show next, or None once the session is complete.

        Failed cards are re-prioritized against the clock first.
        """
        if self.status == SessionStatus.COMPLETE:
            return None
        self._require_active("show a card from")

        now = self.clock.now()
        refresh_priorities(self._queue, now, self.parameters.dwell_time)
        if self._presented_at is None:
            self._presented_at = now
        self._shown = self._queue[0]
        return self._shown

    def skip_current_card(self) -> SessionCard:
        """
        Move the current card behind the rest of the queue without grading it.

        Statistics are untouched. Returns the new current card, which is the
        same card when it is the only one left.
        """
        self._require_active("skip a card in")
        now = self.clock.now()
        card = self._card_to_grade(now)

        if card.failed_in_session:
            card.last_shown_at = now
        band, rank = max(c.session_priority for c in self._queue)
        card.session_priority = (band, rank + 1)
        self._queue.remove(card)
        self._queue.append(card)
        self._queue.sort(key=lambda c: c.session_priority)

        self._shown = None
        self._presented_at = None
        logger.debug("Skipped card %s", card.card_id)
        return self.current_card()

    def answer(self, rating: RatingLike) -> AnswerOutcome:
        """
        Grade the current card.

        Again keeps the card in the session behind fresh cards until its dwell
        time passes; any other rating removes it.

        Raises:
            SessionStateError: session not active
            ValidationError: invalid rating
            Any reviewer error; the queue and statistics are left untouched
        """
        self._require_active("answer in")
        rating = coerce_rating(rating)
        card = self._card_to_grade(self.clock.now())

        schedule = self.reviewer.review(card.card_id, self.learner_id, rating)

        now = self.clock.now()
        response_time = None
        if self._presented_at is not None:
            response_time = max(timedelta(0), now - self._presented_at)
            self._response_times.append(response_time)
        self._presented_at = None
        self._shown = None

        card.status = schedule.card.state
        card.due = schedule.card.due
        self._studied += 1

        if rating == Rating.AGAIN:
            self._incorrect += 1
            card.failed_in_session = True
            card.times_failed_in_session += 1
            card.last_shown_at = now
            card.session_priority = failed_card_priority(card, now, self.parameters.dwell_time)
            self._queue.sort(key=lambda c: c.session_priority)
            requeued = True
        else:
            self._correct += 1
            self._queue.remove(card)
            requeued = False

        if not self._queue:
            self._complete(now)

        logger.debug(
            "Session answer %s on card %s (%d left)", rating.name, card.card_id, len(self._queue)
        )
        return AnswerOutcome(
            card=card,
            rating=rating,
            schedule=schedule,
            requeued=requeued,
            session_complete=self.status == SessionStatus.COMPLETE,
            response_time=response_time
        )

    def cards(self) -> list[SessionCard]:
        """Queued cards in their current order."""
        return list(self._queue)

    def remaining_count(self) -> int:
        return len(self._queue)

    # ---- Statistics ----

    def stats(self) -> SessionStats:
        average = None
        if self._response_times:
            average = sum(self._response_times, timedelta(0)) / len(self._response_times)
        duration = self._duration
        if duration is None and self._started_at is not None:
            duration = self.clock.now() - self._started_at
        return SessionStats(
            total_cards=self._total,
            cards_studied=self._studied,
            cards_remaining=len(self._queue),
            correct_answers=self._correct,
            incorrect_answers=self._incorrect,
            started_at=self._started_at,
            duration=duration,
            average_response_time=average
        )

    # ---- Helpers ----

    def _require_active(self, action: str) -> None:
        if self.status != SessionStatus.ACTIVE:
            raise SessionStateError(f"Cannot {action} a session that is {self.status.value}")

    def _card_to_grade(self, now: datetime) -> SessionCard:
        # The card last handed out by current_card(), else the refreshed head
        if self._shown is not None and any(c is self._shown for c in self._queue):
            return self._shown
        refresh_priorities(self._queue, now, self.parameters.dwell_time)
        return self._queue[0]

    def _complete(self, now: datetime) -> None:
        self.status = SessionStatus.COMPLETE
        self._duration = now - self._started_at
        logger.info(
            "Session for learner %s complete: %d studied, %d correct",
            self.learner_id, self._studied, self._correct
        )
