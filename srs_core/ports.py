"""
Ports (interfaces) for the scheduling core.

These define the contracts that storage adapters must implement. The review
service and study sessions depend on these abstractions, not on concrete
stores.

Implementations:
    - srs_core.memory_store: in-process dictionaries
    - srs_core.fsrs.database: SQLAlchemy tables
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Sequence

from srs_core.fsrs import instants
from srs_core.fsrs.memory_state import CardMemoryState, ReviewLogEntry
from srs_core.fsrs.parameters import SchedulingParameters


@dataclass(frozen=True)
class StoredCard:
    """Card state as read from a CardStore, with its optimistic-lock version."""
    state: CardMemoryState
    version: int


@dataclass(frozen=True)
class CatalogCard:
    """Display fields plus the current memory state, used to seed sessions."""
    card_id: str
    learner_id: str
    front: str
    back: str
    deck_id: Optional[str]
    memory: CardMemoryState
    deck_name: str = "Uncategorized Deck"
    folder_name: str = "Personal"
    tags: tuple[str, ...] = field(default_factory=tuple)
    created_at: Optional[datetime] = None


class CardStore(ABC):
    """
    Port for reading and writing CardMemoryState by (card id, learner id).
    """

    @abstractmethod
    def get(self, card_id: str, learner_id: str) -> Optional[StoredCard]:
        """
        Fetch a card's state.

        Returns:
            StoredCard, or None when the card does not exist (or was deleted).
        """

    @abstractmethod
    def create(self, state: CardMemoryState) -> int:
        """
        Insert a new card state.

        Returns:
            The initial version.
        """

    @abstractmethod
    def compare_and_swap(self, expected_version: int, state: CardMemoryState) -> int:
        """
        Replace a card's state if its version is still `expected_version`.

        Returns:
            The new version.

        Raises:
            ConcurrencyConflict: the stored version differs or the card is gone.
        """

    @abstractmethod
    def delete(self, card_id: str, learner_id: str) -> None:
        """Remove a card's state (the owning card was deleted)."""


class ReviewLogStore(ABC):
    """
    Port for the append-only review log.
    """

    @abstractmethod
    def append(self, entry: ReviewLogEntry) -> None:
        """Append one entry."""

    @abstractmethod
    def latest(self, card_id: str, learner_id: Optional[str] = None) -> Optional[ReviewLogEntry]:
        """Most recent entry for a card (for one learner when given), or None."""

    @abstractmethod
    def discard(self, entry_id: str) -> None:
        """Delete one entry by id (consumed by undo)."""

    @abstractmethod
    def history(self, card_id: str) -> list[ReviewLogEntry]:
        """All entries for a card, oldest first."""


class CardCatalog(ABC):
    """
    Port for the read-only card listing used to seed study sessions.
    """

    @abstractmethod
    def list_cards(
        self,
        learner_id: str,
        deck_id: Optional[str] = None,
        tags: Optional[Sequence[str]] = None
    ) -> list[CatalogCard]:
        """
        List a learner's cards in catalog order.

        Args:
            learner_id: Owning learner
            deck_id: Restrict to one deck
            tags: Restrict to cards carrying any of these tags
        """


class ParameterStore(ABC):
    """
    Port for per-learner scheduling parameters.
    """

    @abstractmethod
    def get(self, learner_id: str) -> SchedulingParameters:
        """Parameters for a learner (defaults when none were saved)."""

    @abstractmethod
    def update(self, learner_id: str, parameters: SchedulingParameters) -> None:
        """Persist a learner's parameters."""


# ---- Clocks ----

class Clock(ABC):
    """Source of "now"."""

    @abstractmethod
    def now(self) -> datetime:
        """Current instant (aware UTC)."""


class SystemClock(Clock):
    def now(self) -> datetime:
        return instants.utcnow()


class FixedClock(Clock):
    """
    Manually driven clock for deterministic tests and replays.
    """

    def __init__(self, start: datetime):
        self._now = instants.to_instant(start)

    def now(self) -> datetime:
        return self._now

    def set(self, instant: datetime) -> None:
        self._now = instants.to_instant(instant)

    def advance(self, delta: Optional[timedelta] = None, **kwargs: float) -> datetime:
        """Move forward by `delta` or by timedelta keyword arguments."""
        self._now = self._now + (delta if delta is not None else timedelta(**kwargs))
        return self._now
