"""Shared fixtures for the scheduling core tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
from hypothesis import strategies as st

from srs_core.fsrs.constants import CardStatus, Rating
from srs_core.fsrs.memory_state import CardMemoryState, new_card_state
from srs_core.fsrs.parameters import SchedulingParameters
from srs_core.memory_store import (
    InMemoryCardCatalog,
    InMemoryCardStore,
    InMemoryParameterStore,
    InMemoryReviewLogStore,
)
from srs_core.ports import CatalogCard, FixedClock
from srs_core.review_log import ReviewService

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
LEARNER = "learner-1"


def make_card(
    card_id: str = "card-1",
    state: CardStatus = CardStatus.REVIEW,
    stability: float = 10.0,
    difficulty: float = 5.0,
    last_review: Optional[datetime] = None,
    due: Optional[datetime] = None,
    reps: int = 3,
    lapses: int = 0,
    learning_step_index: Optional[int] = None,
    learner_id: str = LEARNER,
) -> CardMemoryState:
    """Card state for tests; defaults to a Review card last seen 12 days before T0."""
    if state == CardStatus.NEW:
        return CardMemoryState(
            card_id=card_id,
            learner_id=learner_id,
            state=state,
            difficulty=difficulty,
            stability=stability,
            elapsed_days=0,
            scheduled_days=0,
            reps=0,
            lapses=0,
            due=due or T0,
            last_review=None,
            learning_step_index=None,
        )
    last_review = last_review or T0 - timedelta(days=12)
    if state in (CardStatus.LEARNING, CardStatus.RELEARNING) and learning_step_index is None:
        learning_step_index = 0
    return CardMemoryState(
        card_id=card_id,
        learner_id=learner_id,
        state=state,
        difficulty=difficulty,
        stability=stability,
        elapsed_days=0,
        scheduled_days=10 if state == CardStatus.REVIEW else 0,
        reps=reps,
        lapses=lapses,
        due=due or last_review + timedelta(days=10),
        last_review=last_review,
        learning_step_index=learning_step_index,
    )


ratings = st.sampled_from(list(Rating))


@st.composite
def card_states(draw, card_id="card-p", learner_id=LEARNER):
    """Any valid card state last touched at or before T0."""
    state = draw(st.sampled_from(list(CardStatus)))
    if state == CardStatus.NEW:
        return new_card_state(card_id, learner_id, created_at=T0 - timedelta(days=draw(st.integers(0, 30))))
    reps = draw(st.integers(1, 200))
    return make_card(
        card_id=card_id,
        state=state,
        stability=draw(st.floats(0.01, 36500.0)),
        difficulty=draw(st.floats(1.0, 10.0)),
        last_review=T0 - timedelta(days=draw(st.floats(0.0, 5000.0))),
        reps=reps,
        lapses=draw(st.integers(0, reps)),
        learning_step_index=draw(st.integers(0, 4)) if state in (CardStatus.LEARNING, CardStatus.RELEARNING) else None,
        learner_id=learner_id,
    )


def catalog_entry(memory: CardMemoryState, deck_id: str = "deck-1", tags=()) -> CatalogCard:
    return CatalogCard(
        card_id=memory.card_id,
        learner_id=memory.learner_id,
        front=f"front of {memory.card_id}",
        back=f"back of {memory.card_id}",
        deck_id=deck_id,
        memory=memory,
        tags=tuple(tags),
    )


@pytest.fixture
def clock():
    return FixedClock(T0)


@pytest.fixture
def params():
    return SchedulingParameters(enable_fuzz=False)


@pytest.fixture
def card_store():
    return InMemoryCardStore()


@pytest.fixture
def log_store():
    return InMemoryReviewLogStore()


@pytest.fixture
def parameter_store(params):
    return InMemoryParameterStore(params)


@pytest.fixture
def service(card_store, log_store, parameter_store, clock):
    return ReviewService(card_store, log_store, parameter_store, clock)


@pytest.fixture
def catalog(card_store):
    return InMemoryCardCatalog(card_store)
