"""
Session types for study sessions.

SessionCard is mutable and session-scoped: it is owned by one StudySession,
never persisted, and discarded when the session ends.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from srs_core.errors import ValidationError
from srs_core.fsrs.constants import CardStatus, Rating
from srs_core.fsrs.scheduler import ScheduleResult
from srs_core.ports import CatalogCard


class StudyMode(str, Enum):
    DAILY_REVIEW = "daily_review"
    DECK_SPECIFIC = "deck_specific"
    CATCH_UP = "catch_up"
    NEW_CARDS = "new_cards"
    CUSTOM = "custom"


class SessionStatus(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    COMPLETE = "complete"
    FAILED = "failed_to_initialize"


@dataclass(frozen=True)
class SessionConfig:
    """
    What to study.

    Args:
        mode: StudyMode (or its string value)
        deck_id: Required for deck_specific; restricts any other mode too
        max_cards: Cap on session size, applied in catalog order
        include_new / include_review / include_learning: custom-mode filters
        tags: Keep cards carrying any of these tags
    """
    mode: StudyMode = StudyMode.DAILY_REVIEW
    deck_id: Optional[str] = None
    max_cards: Optional[int] = None
    include_new: bool = False
    include_review: bool = False
    include_learning: bool = False
    tags: tuple[str, ...] = ()

    def __post_init__(self):
        try:
            object.__setattr__(self, "mode", StudyMode(self.mode))
        except ValueError as exc:
            raise ValidationError(f"Unknown study mode: {self.mode!r}") from exc
        if self.mode == StudyMode.DECK_SPECIFIC and not self.deck_id:
            raise ValidationError("deck_specific sessions need a deck_id")
        if self.max_cards is not None and self.max_cards < 1:
            raise ValidationError(f"max_cards must be positive, got {self.max_cards}")
        object.__setattr__(self, "tags", tuple(self.tags))


@dataclass
class SessionCard:
    """
    A card queued in an active session.
    """
    card_id: str
    front: str
    back: str
    deck_id: Optional[str]
    deck_name: str
    folder_name: str
    status: CardStatus
    due: datetime
    created_at: Optional[datetime] = None
    tags: tuple[str, ...] = ()

    # Queue bookkeeping; lower sorts first
    session_priority: tuple[int, int] = (0, 0)
    failed_in_session: bool = False
    times_failed_in_session: int = 0
    last_shown_at: Optional[datetime] = None

    @classmethod
    def from_catalog(cls, card: CatalogCard) -> "SessionCard":
        return cls(
            card_id=card.card_id,
            front=card.front,
            back=card.back,
            deck_id=card.deck_id,
            deck_name=card.deck_name,
            folder_name=card.folder_name,
            status=card.memory.state,
            due=card.memory.due,
            created_at=card.created_at,
            tags=tuple(card.tags),
        )


@dataclass(frozen=True)
class SessionStats:
    """Snapshot of session progress."""
    total_cards: int
    cards_studied: int
    cards_remaining: int
    correct_answers: int
    incorrect_answers: int
    started_at: Optional[datetime]
    duration: Optional[timedelta] = None
    average_response_time: Optional[timedelta] = None

    @property
    def progress_percentage(self) -> float:
        if self.total_cards == 0:
            return 0.0
        return min(100.0, self.cards_studied / self.total_cards * 100.0)

    @property
    def accuracy_percentage(self) -> float:
        if self.cards_studied == 0:
            return 0.0
        return self.correct_answers / self.cards_studied * 100.0


@dataclass(frozen=True)
class AnswerOutcome:
    """
    Result of answering the current card.

    requeued is True when the card stays in the session (Again).
    """
    card: SessionCard
    rating: Rating
    schedule: ScheduleResult
    requeued: bool
    session_complete: bool
    response_time: Optional[timedelta] = field(default=None)


def format_session_duration(duration: Optional[timedelta]) -> str:
    """Render a duration as "4m 5s" or "42s" (whole seconds, floored)."""
    if duration is None:
        return "0s"
    seconds = max(0, int(duration.total_seconds()))
    minutes, remaining_seconds = divmod(seconds, 60)
    if minutes > 0:
        return f"{minutes}m {remaining_seconds}s"
    return f"{remaining_seconds}s"
