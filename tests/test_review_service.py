"""ReviewService: committing reviews, the review log, undo and settings."""

from __future__ import annotations

import logging
from datetime import timedelta

import pytest
from hypothesis import given, settings

from srs_core.errors import (
    ConcurrencyConflict,
    LearnerMismatchError,
    NothingToUndoError,
    ValidationError,
)
from srs_core.fsrs.constants import CardStatus, Rating
from srs_core.fsrs.memory_state import new_card_state
from srs_core.fsrs.parameters import SchedulingParameters
from srs_core.memory_store import InMemoryCardStore, InMemoryParameterStore, InMemoryReviewLogStore
from srs_core.ports import FixedClock
from srs_core.review_log import ReviewService
from tests.conftest import LEARNER, T0, card_states, make_card, ratings


class RacingCardStore(InMemoryCardStore):
    """Another writer commits right after every read."""

    def get(self, card_id, learner_id):
        stored = super().get(card_id, learner_id)
        if stored is not None:
            self.compare_and_swap(stored.version, stored.state)
        return stored


class BrokenLogStore(InMemoryReviewLogStore):

    def append(self, entry):
        raise RuntimeError("log backend unavailable")


def test_review_commits_state_and_log(service, card_store, log_store, clock):
    card_store.create(make_card())

    result = service.review("card-1", LEARNER, Rating.GOOD)

    stored = card_store.get("card-1", LEARNER)
    assert stored.version == 2
    assert stored.state == result.card
    assert stored.state.last_review == clock.now()

    history = log_store.history("card-1")
    assert len(history) == 1
    assert history[0].card_version == 2
    assert history[0].state_after == result.card
    assert result.log.card_version == 2


def test_undo_restores_pre_review_state(service, card_store, log_store, clock):
    original = make_card()
    card_store.create(original)
    service.review("card-1", LEARNER, Rating.AGAIN)

    restored = service.undo("card-1", LEARNER)

    assert restored == original
    assert card_store.get("card-1", LEARNER).state == original
    assert log_store.history("card-1") == []


@settings(max_examples=200, deadline=None)
@given(card=card_states(), rating=ratings)
def test_undo_restores_any_single_review(card, rating):
    card_store = InMemoryCardStore()
    log_store = InMemoryReviewLogStore()
    service = ReviewService(
        card_store, log_store, InMemoryParameterStore(SchedulingParameters()), FixedClock(T0)
    )
    card_store.create(card)

    service.review(card.card_id, LEARNER, rating)
    restored = service.undo(card.card_id, LEARNER)

    assert restored == card
    assert card_store.get(card.card_id, LEARNER).state == card
    assert log_store.history(card.card_id) == []


def test_undo_is_one_level_deep(service, card_store, clock):
    card_store.create(new_card_state("card-1", LEARNER, created_at=T0))
    service.review("card-1", LEARNER, "good")
    clock.advance(minutes=10)
    service.review("card-1", LEARNER, "good")

    service.undo("card-1", LEARNER)
    with pytest.raises(NothingToUndoError):
        service.undo("card-1", LEARNER)


def test_undo_without_reviews(service, card_store):
    card_store.create(make_card())
    with pytest.raises(NothingToUndoError):
        service.undo("card-1", LEARNER)


def test_undo_twice_after_single_review(service, card_store):
    card_store.create(make_card())
    service.review("card-1", LEARNER, Rating.HARD)
    service.undo("card-1", LEARNER)

    with pytest.raises(NothingToUndoError):
        service.undo("card-1", LEARNER)


def test_undo_by_another_learner(service, card_store):
    card_store.create(make_card())
    service.review("card-1", LEARNER, Rating.GOOD)

    with pytest.raises(LearnerMismatchError):
        service.undo("card-1", "someone-else")


def test_undo_ignores_other_learners_reviews(service, card_store, clock):
    alice = make_card(card_id="shared", learner_id="alice")
    card_store.create(alice)
    card_store.create(make_card(card_id="shared", learner_id="bob"))

    service.review("shared", "alice", Rating.GOOD)
    clock.advance(minutes=1)
    service.review("shared", "bob", Rating.GOOD)

    assert service.undo("shared", "alice") == alice
    assert card_store.get("shared", "bob").version == 2
    with pytest.raises(NothingToUndoError):
        service.undo("shared", "alice")


def test_undo_after_card_deleted(service, card_store):
    card_store.create(make_card())
    service.review("card-1", LEARNER, Rating.GOOD)
    card_store.delete("card-1", LEARNER)

    with pytest.raises(ValidationError):
        service.undo("card-1", LEARNER)


def test_undo_after_card_changed_elsewhere(service, card_store):
    card_store.create(make_card())
    service.review("card-1", LEARNER, Rating.GOOD)
    stored = card_store.get("card-1", LEARNER)
    card_store.compare_and_swap(stored.version, stored.state)

    with pytest.raises(NothingToUndoError):
        service.undo("card-1", LEARNER)


def test_concurrent_write_is_rejected(log_store, parameter_store, clock):
    card_store = RacingCardStore()
    card_store.create(make_card())
    service = ReviewService(card_store, log_store, parameter_store, clock)

    with pytest.raises(ConcurrencyConflict) as excinfo:
        service.review("card-1", LEARNER, Rating.GOOD)

    assert excinfo.value.expected_version == 1
    assert excinfo.value.actual_version == 2
    assert log_store.history("card-1") == []


def test_log_append_failure_is_tolerated(card_store, parameter_store, clock, caplog):
    card_store.create(make_card())
    service = ReviewService(card_store, BrokenLogStore(), parameter_store, clock)

    with caplog.at_level(logging.WARNING, logger="srs_core.review_log"):
        result = service.review("card-1", LEARNER, Rating.GOOD)

    assert card_store.get("card-1", LEARNER).state == result.card
    assert any("log append failed" in message for message in caplog.messages)


def test_review_rejects_bad_input(service, card_store):
    card_store.create(make_card())

    with pytest.raises(ValidationError):
        service.review("card-1", LEARNER, 7)
    with pytest.raises(ValidationError):
        service.review("missing", LEARNER, Rating.GOOD)

    assert card_store.get("card-1", LEARNER).version == 1


def test_preview_writes_nothing(service, card_store, log_store):
    card_store.create(make_card())

    outcomes = service.preview("card-1", LEARNER)

    assert len(outcomes) == 4
    assert outcomes[Rating.AGAIN].card.state == CardStatus.RELEARNING
    assert card_store.get("card-1", LEARNER).version == 1
    assert log_store.history("card-1") == []


def test_repeated_reviews_keep_history_order(service, card_store, clock):
    card_store.create(new_card_state("card-1", LEARNER, created_at=T0))
    for rating in (Rating.AGAIN, Rating.GOOD, Rating.GOOD):
        service.review("card-1", LEARNER, rating)
        clock.advance(timedelta(minutes=15))

    history = service.history("card-1")
    assert [entry.rating for entry in history] == [Rating.AGAIN, Rating.GOOD, Rating.GOOD]
    assert history[-1].state_after.state == CardStatus.REVIEW
    assert [entry.card_version for entry in history] == [2, 3, 4]


def test_update_parameters(service):
    updated = service.update_parameters(LEARNER, request_retention=0.8)
    assert service.parameters(LEARNER).request_retention == 0.8
    assert updated.request_retention == 0.8

    with pytest.raises(ValidationError):
        service.update_parameters(LEARNER, request_retention=1.5)
    assert service.parameters(LEARNER).request_retention == 0.8


def test_lower_retention_lengthens_intervals(service, card_store):
    card_store.create(make_card())
    short = service.preview("card-1", LEARNER)[Rating.GOOD].card.scheduled_days

    service.update_parameters(LEARNER, request_retention=0.7)
    longer = service.preview("card-1", LEARNER)[Rating.GOOD].card.scheduled_days

    assert longer > short
