"""
In-process implementations of the storage ports.

Useful for tests and for embedding the core in a caller that keeps its own
persistence. Not thread-safe; one writer per card, as everywhere else.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Optional, Sequence

from srs_core.config import default_parameters
from srs_core.errors import ConcurrencyConflict, ValidationError
from srs_core.fsrs.memory_state import CardMemoryState, ReviewLogEntry
from srs_core.fsrs.parameters import SchedulingParameters
from srs_core.ports import (
    CardCatalog,
    CardStore,
    CatalogCard,
    ParameterStore,
    ReviewLogStore,
    StoredCard,
)


class InMemoryCardStore(CardStore):

    def __init__(self):
        self._cards: dict[tuple[str, str], StoredCard] = {}

    def get(self, card_id: str, learner_id: str) -> Optional[StoredCard]:
        return self._cards.get((card_id, learner_id))

    def create(self, state: CardMemoryState) -> int:
        key = (state.card_id, state.learner_id)
        if key in self._cards:
            raise ValidationError(f"Card {state.card_id} already exists for learner {state.learner_id}")
        self._cards[key] = StoredCard(state=state, version=1)
        return 1

    def compare_and_swap(self, expected_version: int, state: CardMemoryState) -> int:
        key = (state.card_id, state.learner_id)
        current = self._cards.get(key)
        if current is None or current.version != expected_version:
            raise ConcurrencyConflict(
                state.card_id, expected_version, current.version if current else None
            )
        new_version = expected_version + 1
        self._cards[key] = StoredCard(state=state, version=new_version)
        return new_version

    def delete(self, card_id: str, learner_id: str) -> None:
        self._cards.pop((card_id, learner_id), None)


class InMemoryReviewLogStore(ReviewLogStore):

    def __init__(self):
        self._entries: list[ReviewLogEntry] = []

    def append(self, entry: ReviewLogEntry) -> None:
        self._entries.append(entry)

    def latest(self, card_id: str, learner_id: Optional[str] = None) -> Optional[ReviewLogEntry]:
        for entry in reversed(self._entries):
            if entry.card_id == card_id and (learner_id is None or entry.learner_id == learner_id):
                return entry
        return None

    def discard(self, entry_id: str) -> None:
        self._entries = [e for e in self._entries if e.entry_id != entry_id]

    def history(self, card_id: str) -> list[ReviewLogEntry]:
        return [e for e in self._entries if e.card_id == card_id]


class InMemoryCardCatalog(CardCatalog):
    """
    Catalog over a list of display records whose memory state is read live
    from a CardStore, so sessions always see the latest committed state.
    """

    def __init__(self, card_store: CardStore, cards: Sequence[CatalogCard] = ()):
        self._card_store = card_store
        self._cards: list[CatalogCard] = list(cards)

    def add(self, card: CatalogCard) -> None:
        self._cards.append(card)

    def list_cards(
        self,
        learner_id: str,
        deck_id: Optional[str] = None,
        tags: Optional[Sequence[str]] = None
    ) -> list[CatalogCard]:
        wanted_tags = set(tags or ())
        result = []
        for card in self._cards:
            if card.learner_id != learner_id:
                continue
            if deck_id is not None and card.deck_id != deck_id:
                continue
            if wanted_tags and not wanted_tags.intersection(card.tags):
                continue
            stored = self._card_store.get(card.card_id, learner_id)
            if stored is None:
                continue
            result.append(replace(card, memory=stored.state))
        return result


class InMemoryParameterStore(ParameterStore):

    def __init__(self, default: Optional[SchedulingParameters] = None):
        self._default = default or default_parameters()
        self._parameters: dict[str, SchedulingParameters] = {}

    def get(self, learner_id: str) -> SchedulingParameters:
        return self._parameters.get(learner_id, self._default)

    def update(self, learner_id: str, parameters: SchedulingParameters) -> None:
        self._parameters[learner_id] = parameters
