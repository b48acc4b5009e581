"""Study sessions: queue building, in-session retries and lifecycle."""

from __future__ import annotations

from datetime import timedelta

import pytest

from srs_core.errors import SessionStateError, ValidationError
from srs_core.fsrs.constants import CardStatus, Rating
from srs_core.fsrs.memory_state import new_card_state
from srs_core.session import (
    SessionConfig,
    SessionStatus,
    StudyMode,
    StudySession,
    format_session_duration,
)
from tests.conftest import LEARNER, T0, catalog_entry, make_card


def add_cards(card_store, catalog, cards, deck_id="deck-1", tags=()):
    for card in cards:
        card_store.create(card)
        catalog.add(catalog_entry(card, deck_id=deck_id, tags=tags))


def due_review_cards(count, prefix="review"):
    return [
        make_card(card_id=f"{prefix}-{i}", due=T0 - timedelta(days=1))
        for i in range(count)
    ]


@pytest.fixture
def make_session(catalog, service, clock):
    def _make(config=None, reviewer=None):
        return StudySession(
            LEARNER,
            config or SessionConfig(),
            catalog,
            reviewer or service,
            clock=clock,
        )
    return _make


def test_again_requeues_until_recalled(card_store, catalog, make_session, clock):
    add_cards(card_store, catalog, due_review_cards(5))
    session = make_session()
    assert session.initialize() is True

    first = session.current_card()
    outcome = session.answer(Rating.AGAIN)
    assert outcome.requeued is True
    assert session.remaining_count() == 5
    assert session.current_card().card_id != first.card_id

    clock.advance(minutes=2)
    assert session.current_card().card_id == first.card_id
    outcome = session.answer(Rating.GOOD)
    assert outcome.requeued is False

    remaining = [card.card_id for card in session.cards()]
    assert len(remaining) == 4
    assert len(set(remaining)) == 4
    assert first.card_id not in remaining

    stats = session.stats()
    assert stats.cards_studied == 2
    assert stats.correct_answers == 1
    assert stats.incorrect_answers == 1
    assert stats.cards_remaining == 4
    assert stats.total_cards == 5


def test_failed_card_waits_for_dwell_time(card_store, catalog, make_session, clock):
    add_cards(card_store, catalog, due_review_cards(2))
    session = make_session()
    session.initialize()

    failed = session.current_card().card_id
    session.answer(Rating.AGAIN)

    clock.advance(seconds=30)
    assert session.current_card().card_id != failed

    clock.advance(seconds=31)
    assert session.current_card().card_id == failed


def test_failed_card_is_shown_when_nothing_else_is_left(card_store, catalog, make_session):
    add_cards(card_store, catalog, due_review_cards(1))
    session = make_session()
    session.initialize()

    session.answer(Rating.AGAIN)
    assert session.current_card().card_id == "review-0"
    assert session.status == SessionStatus.ACTIVE


def test_initial_order_learning_new_review(card_store, catalog, make_session):
    cards = [
        make_card(card_id="review", due=T0 - timedelta(hours=1)),
        new_card_state("new", LEARNER, created_at=T0),
        make_card(card_id="learning", state=CardStatus.LEARNING, last_review=T0, due=T0 + timedelta(minutes=5)),
        make_card(card_id="relearning", state=CardStatus.RELEARNING, last_review=T0, due=T0 + timedelta(minutes=5), lapses=1),
    ]
    add_cards(card_store, catalog, cards)
    session = make_session()
    session.initialize()

    assert [c.card_id for c in session.cards()] == ["learning", "relearning", "new", "review"]


def test_review_cards_not_yet_due_are_skipped(card_store, catalog, make_session):
    add_cards(card_store, catalog, [
        make_card(card_id="later", due=T0 + timedelta(days=2)),
        make_card(card_id="due", due=T0),
    ])
    session = make_session()
    session.initialize()

    assert [c.card_id for c in session.cards()] == ["due"]


def test_catch_up_only_overdue(card_store, catalog, make_session):
    add_cards(card_store, catalog, [
        make_card(card_id="overdue", due=T0 - timedelta(days=3)),
        make_card(card_id="due-now", due=T0),
        new_card_state("new", LEARNER, created_at=T0 - timedelta(days=5)),
    ])
    session = make_session(SessionConfig(mode=StudyMode.CATCH_UP))
    session.initialize()

    assert [c.card_id for c in session.cards()] == ["overdue"]


def test_new_cards_mode(card_store, catalog, make_session):
    add_cards(card_store, catalog, due_review_cards(2) + [new_card_state("new", LEARNER, created_at=T0)])
    session = make_session(SessionConfig(mode="new_cards"))
    session.initialize()

    assert [c.card_id for c in session.cards()] == ["new"]


def test_custom_mode_filters(card_store, catalog, make_session):
    add_cards(card_store, catalog, due_review_cards(1) + [
        new_card_state("new", LEARNER, created_at=T0),
        make_card(card_id="learning", state=CardStatus.LEARNING, last_review=T0, due=T0 + timedelta(minutes=1)),
    ])
    config = SessionConfig(mode=StudyMode.CUSTOM, include_learning=True, include_review=True)
    session = make_session(config)
    session.initialize()

    assert [c.card_id for c in session.cards()] == ["learning", "review-0"]


def test_deck_tags_and_cap(card_store, catalog, make_session):
    add_cards(card_store, catalog, due_review_cards(3, "a"), deck_id="deck-a", tags=("verbs",))
    add_cards(card_store, catalog, due_review_cards(3, "b"), deck_id="deck-b", tags=("nouns",))

    deck = make_session(SessionConfig(mode=StudyMode.DECK_SPECIFIC, deck_id="deck-b", max_cards=2))
    deck.initialize()
    assert [c.card_id for c in deck.cards()] == ["b-0", "b-1"]

    tagged = make_session(SessionConfig(tags=("verbs",)))
    tagged.initialize()
    assert {c.card_id for c in tagged.cards()} == {"a-0", "a-1", "a-2"}


def test_deck_specific_requires_deck():
    with pytest.raises(ValidationError):
        SessionConfig(mode=StudyMode.DECK_SPECIFIC)
    with pytest.raises(ValidationError):
        SessionConfig(mode="weekly")
    with pytest.raises(ValidationError):
        SessionConfig(max_cards=0)


def test_zero_available_cards_fails(card_store, catalog, make_session):
    add_cards(card_store, catalog, [make_card(card_id="later", due=T0 + timedelta(days=2))])
    session = make_session()

    assert session.initialize() is False
    assert session.status == SessionStatus.FAILED
    with pytest.raises(SessionStateError):
        session.current_card()
    with pytest.raises(SessionStateError):
        session.answer(Rating.GOOD)
    with pytest.raises(SessionStateError):
        session.initialize()


def test_answer_before_initialize(make_session):
    with pytest.raises(SessionStateError):
        make_session().answer(Rating.GOOD)


def test_reviewer_failure_leaves_queue_untouched(card_store, catalog, service, make_session):
    add_cards(card_store, catalog, due_review_cards(2))

    class FailingReviewer:
        def parameters(self, learner_id):
            return service.parameters(learner_id)

        def review(self, card_id, learner_id, rating):
            raise RuntimeError("store offline")

    session = make_session(reviewer=FailingReviewer())
    session.initialize()
    before = [c.card_id for c in session.cards()]

    with pytest.raises(RuntimeError):
        session.answer(Rating.GOOD)

    assert [c.card_id for c in session.cards()] == before
    assert session.stats().cards_studied == 0


def test_invalid_rating_leaves_queue_untouched(card_store, catalog, make_session):
    add_cards(card_store, catalog, due_review_cards(1))
    session = make_session()
    session.initialize()

    with pytest.raises(ValidationError):
        session.answer(9)
    assert session.remaining_count() == 1
    assert card_store.get("review-0", LEARNER).version == 1


def test_session_completes_when_queue_empties(card_store, catalog, make_session, clock):
    add_cards(card_store, catalog, due_review_cards(3))
    session = make_session()
    session.initialize()

    outcome = None
    for _ in range(3):
        session.current_card()
        clock.advance(seconds=5)
        outcome = session.answer(Rating.GOOD)

    assert outcome.session_complete is True
    assert session.status == SessionStatus.COMPLETE
    assert session.current_card() is None

    stats = session.stats()
    assert stats.cards_remaining == 0
    assert stats.duration == timedelta(seconds=15)
    assert stats.average_response_time == timedelta(seconds=5)
    assert stats.accuracy_percentage == 100.0
    assert stats.progress_percentage == 100.0

    with pytest.raises(SessionStateError):
        session.answer(Rating.GOOD)


def test_answer_updates_card_status(card_store, catalog, make_session):
    add_cards(card_store, catalog, due_review_cards(2))
    session = make_session()
    session.initialize()

    outcome = session.answer(Rating.AGAIN)
    assert outcome.card.status == CardStatus.RELEARNING
    assert card_store.get(outcome.card.card_id, LEARNER).state.state == CardStatus.RELEARNING


def test_end_session_early(card_store, catalog, make_session, clock):
    add_cards(card_store, catalog, due_review_cards(3))
    session = make_session()
    session.initialize()
    clock.advance(minutes=4, seconds=5)

    stats = session.end_session()

    assert session.status == SessionStatus.COMPLETE
    assert stats.cards_remaining == 3
    assert format_session_duration(stats.duration) == "4m 5s"


def test_format_session_duration():
    assert format_session_duration(timedelta(seconds=42.9)) == "42s"
    assert format_session_duration(timedelta(minutes=61)) == "61m 0s"
    assert format_session_duration(None) == "0s"


def test_answer_grades_the_card_that_was_shown(card_store, catalog, make_session, clock):
    add_cards(card_store, catalog, due_review_cards(2))
    session = make_session()
    session.initialize()

    session.answer(Rating.AGAIN)
    clock.advance(seconds=30)
    shown = session.current_card()
    assert shown.card_id == "review-1"

    clock.advance(seconds=31)
    outcome = session.answer(Rating.GOOD)

    assert outcome.card.card_id == "review-1"
    assert [c.card_id for c in session.cards()] == ["review-0"]


def test_answer_without_current_card_uses_refreshed_order(card_store, catalog, make_session, clock):
    add_cards(card_store, catalog, due_review_cards(2))
    session = make_session()
    session.initialize()

    session.answer(Rating.AGAIN)
    clock.advance(seconds=61)
    outcome = session.answer(Rating.GOOD)

    assert outcome.card.card_id == "review-0"
    assert card_store.get("review-1", LEARNER).version == 1


def test_skip_moves_card_to_the_back(card_store, catalog, make_session):
    add_cards(card_store, catalog, due_review_cards(3))
    session = make_session()
    session.initialize()

    assert session.current_card().card_id == "review-0"
    assert session.skip_current_card().card_id == "review-1"
    assert [c.card_id for c in session.cards()] == ["review-1", "review-2", "review-0"]

    stats = session.stats()
    assert stats.cards_studied == 0
    assert stats.cards_remaining == 3
    assert card_store.get("review-0", LEARNER).version == 1

    outcome = session.answer(Rating.GOOD)
    assert outcome.card.card_id == "review-1"


def test_skip_last_card_returns_it_again(card_store, catalog, make_session):
    add_cards(card_store, catalog, due_review_cards(1))
    session = make_session()
    session.initialize()

    assert session.skip_current_card().card_id == "review-0"
    assert session.status == SessionStatus.ACTIVE


def test_skip_outside_active_session(card_store, catalog, make_session):
    session = make_session()
    with pytest.raises(SessionStateError):
        session.skip_current_card()

    add_cards(card_store, catalog, due_review_cards(1))
    session = make_session()
    session.initialize()
    session.answer(Rating.GOOD)
    with pytest.raises(SessionStateError):
        session.skip_current_card()
