"""
Database - FSRS Database I/O Operations

Handles all database operations for card state, review logs, the card
catalog and learner settings. Uses SQLAlchemy ORM; any backend SQLAlchemy
supports works (Postgres in production, SQLite in tests).

This module handles ONLY database I/O.
Algorithm logic is handled by the scheduler module.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from sqlalchemy import create_engine, func, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from srs_core.config import default_parameters, get_database_url
from srs_core.errors import ConcurrencyConflict, ValidationError
from srs_core.fsrs import instants
from srs_core.fsrs.memory_state import CardMemoryState, ReviewLogEntry
from srs_core.fsrs.models import (
    Base,
    CardStateRow,
    CatalogCardRow,
    LearnerParametersRow,
    ReviewLogRow,
)
from srs_core.fsrs.parameters import SchedulingParameters
from srs_core.ports import (
    CardCatalog,
    CardStore,
    CatalogCard,
    ParameterStore,
    ReviewLogStore,
    StoredCard,
)

logger = logging.getLogger(__name__)


# ---- Engine / sessions ----

def get_engine(database_url: Optional[str] = None) -> Engine:
    """
    Get SQLAlchemy engine for database connection.

    In-memory SQLite shares one connection so every session sees the same
    database; other backends use connection pooling.

    Args:
        database_url: Connection string (default: SRS_DATABASE_URL)

    Returns:
        SQLAlchemy Engine instance
    """
    url = database_url or get_database_url()
    if url.startswith("sqlite") and (":memory:" in url or url.rstrip("/") == "sqlite:"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=False
        )
    if url.startswith("sqlite"):
        return create_engine(url, echo=False)
    return create_engine(
        url,
        pool_size=5,           # Keep 5 connections open
        max_overflow=10,       # Allow up to 10 extra connections
        pool_pre_ping=True,    # Verify connections before use
        echo=False
    )


def get_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """
    Initialize database schema if tables don't exist.

    Safe to call multiple times - only creates missing tables.
    """
    existing_tables = set(inspect(engine).get_table_names())
    missing = set(Base.metadata.tables) - existing_tables
    if missing:
        Base.metadata.create_all(engine)
        logger.info("Created tables: %s", sorted(missing))
        return

    card_columns = {col["name"] for col in inspect(engine).get_columns("card_state")}
    if "version" not in card_columns:
        raise RuntimeError(
            "card_state table is missing the version column. "
            "Please migrate the database to the versioned schema."
        )


def reset_db(engine: Engine) -> None:
    """
    DANGEROUS: Delete all data and recreate tables.

    All review history will be lost!
    """
    Base.metadata.drop_all(engine)
    logger.warning("All scheduling tables dropped")
    init_db(engine)


# ---- Row conversion ----

def _state_columns(state: CardMemoryState) -> dict[str, Any]:
    return {
        "state": state.state.value,
        "difficulty": state.difficulty,
        "stability": state.stability,
        "elapsed_days": state.elapsed_days,
        "scheduled_days": state.scheduled_days,
        "reps": state.reps,
        "lapses": state.lapses,
        "due": state.due.isoformat(),
        "last_review": state.last_review.isoformat() if state.last_review else None,
        "learning_step_index": state.learning_step_index,
    }


def _row_to_state(row: CardStateRow) -> CardMemoryState:
    # Rows may come from older clients or manual edits; from_record repairs.
    return CardMemoryState.from_record({
        "card_id": row.card_id,
        "learner_id": row.learner_id,
        "state": row.state,
        "difficulty": row.difficulty,
        "stability": row.stability,
        "elapsed_days": row.elapsed_days,
        "scheduled_days": row.scheduled_days,
        "reps": row.reps,
        "lapses": row.lapses,
        "due": row.due,
        "last_review": row.last_review,
        "learning_step_index": row.learning_step_index,
    })


def _row_to_entry(row: ReviewLogRow) -> ReviewLogEntry:
    return ReviewLogEntry.from_record({
        "entry_id": row.entry_id,
        "card_id": row.card_id,
        "learner_id": row.learner_id,
        "rating": row.rating,
        "reviewed_at": row.reviewed_at,
        "state_before": row.state_before,
        "state_after": row.state_after,
        "retrievability_before": row.retrievability_before,
        "elapsed_days": row.elapsed_days,
        "scheduled_days": row.scheduled_days,
        "card_version": row.card_version,
    })


def _entry_row(entry: ReviewLogEntry, sequence: int) -> ReviewLogRow:
    return ReviewLogRow(
        entry_id=entry.entry_id,
        card_id=entry.card_id,
        learner_id=entry.learner_id,
        sequence=sequence,
        rating=int(entry.rating),
        reviewed_at=entry.reviewed_at.isoformat(),
        state_before=entry.state_before.to_record(),
        state_after=entry.state_after.to_record(),
        retrievability_before=entry.retrievability_before,
        elapsed_days=entry.elapsed_days,
        scheduled_days=entry.scheduled_days,
        card_version=entry.card_version
    )


# ---- Card state + review log ----

class SqlStore(CardStore, ReviewLogStore):
    """
    Card state and review log in one database.

    commit_review / commit_undo write the card state and its log entry in a
    single transaction.
    """

    def __init__(self, engine: Optional[Engine] = None):
        self.engine = engine or get_engine()
        self._Session = get_session_factory(self.engine)

    # CardStore

    def get(self, card_id: str, learner_id: str) -> Optional[StoredCard]:
        session = self._Session()
        try:
            row = session.query(CardStateRow).filter(
                CardStateRow.card_id == card_id,
                CardStateRow.learner_id == learner_id
            ).first()
            if row is None:
                return None
            return StoredCard(state=_row_to_state(row), version=row.version)
        finally:
            session.close()

    def create(self, state: CardMemoryState) -> int:
        session = self._Session()
        try:
            exists = session.query(CardStateRow.version).filter(
                CardStateRow.card_id == state.card_id,
                CardStateRow.learner_id == state.learner_id
            ).first()
            if exists is not None:
                raise ValidationError(
                    f"Card {state.card_id} already exists for learner {state.learner_id}"
                )
            session.add(CardStateRow(
                card_id=state.card_id,
                learner_id=state.learner_id,
                version=1,
                **_state_columns(state)
            ))
            session.commit()
            return 1
        finally:
            session.close()

    def compare_and_swap(self, expected_version: int, state: CardMemoryState) -> int:
        session = self._Session()
        try:
            version = self._swap(session, expected_version, state)
            session.commit()
            return version
        finally:
            session.close()

    def delete(self, card_id: str, learner_id: str) -> None:
        session = self._Session()
        try:
            session.query(CardStateRow).filter(
                CardStateRow.card_id == card_id,
                CardStateRow.learner_id == learner_id
            ).delete(synchronize_session=False)
            session.commit()
        finally:
            session.close()

    # ReviewLogStore

    def append(self, entry: ReviewLogEntry) -> None:
        session = self._Session()
        try:
            session.add(_entry_row(entry, self._next_sequence(session)))
            session.commit()
        finally:
            session.close()

    def latest(self, card_id: str, learner_id: Optional[str] = None) -> Optional[ReviewLogEntry]:
        session = self._Session()
        try:
            query = session.query(ReviewLogRow).filter(ReviewLogRow.card_id == card_id)
            if learner_id is not None:
                query = query.filter(ReviewLogRow.learner_id == learner_id)
            row = query.order_by(ReviewLogRow.sequence.desc()).first()
            return _row_to_entry(row) if row is not None else None
        finally:
            session.close()

    def discard(self, entry_id: str) -> None:
        session = self._Session()
        try:
            self._discard(session, entry_id)
            session.commit()
        finally:
            session.close()

    @staticmethod
    def _discard(session: Session, entry_id: str) -> None:
        session.query(ReviewLogRow).filter(
            ReviewLogRow.entry_id == entry_id
        ).delete(synchronize_session=False)

    def history(self, card_id: str) -> list[ReviewLogEntry]:
        session = self._Session()
        try:
            rows = session.query(ReviewLogRow).filter(
                ReviewLogRow.card_id == card_id
            ).order_by(ReviewLogRow.sequence).all()
            return [_row_to_entry(row) for row in rows]
        finally:
            session.close()

    # Atomic review / undo

    def commit_review(
        self,
        expected_version: int,
        state: CardMemoryState,
        entry: ReviewLogEntry
    ) -> int:
        """
        Swap in the reviewed state and append its log entry together.

        Returns:
            The new card version (also stored on the log row)
        """
        session = self._Session()
        try:
            version = self._swap(session, expected_version, state)
            row = _entry_row(entry, self._next_sequence(session))
            row.card_version = version
            session.add(row)
            session.commit()
            return version
        finally:
            session.close()

    def commit_undo(
        self,
        expected_version: int,
        state: CardMemoryState,
        entry_id: str
    ) -> int:
        """Restore a pre-review state and delete the consumed log entry together."""
        session = self._Session()
        try:
            version = self._swap(session, expected_version, state)
            self._discard(session, entry_id)
            session.commit()
            return version
        finally:
            session.close()

    # Helpers

    def _swap(self, session: Session, expected_version: int, state: CardMemoryState) -> int:
        new_version = expected_version + 1
        updated = session.query(CardStateRow).filter(
            CardStateRow.card_id == state.card_id,
            CardStateRow.learner_id == state.learner_id,
            CardStateRow.version == expected_version
        ).update(
            {**_state_columns(state), "version": new_version},
            synchronize_session=False
        )
        if updated != 1:
            actual = session.query(CardStateRow.version).filter(
                CardStateRow.card_id == state.card_id,
                CardStateRow.learner_id == state.learner_id
            ).scalar()
            raise ConcurrencyConflict(state.card_id, expected_version, actual)
        return new_version

    @staticmethod
    def _next_sequence(session: Session) -> int:
        return (session.query(func.max(ReviewLogRow.sequence)).scalar() or 0) + 1


# ---- Catalog ----

class SqlCardCatalog(CardCatalog):
    """
    Card display fields from the `cards` table, joined with live card state.
    """

    def __init__(self, store: SqlStore):
        self.store = store
        self._Session = store._Session

    def add(self, card: CatalogCard) -> None:
        """Insert or replace a card's display fields."""
        session = self._Session()
        try:
            position = (session.query(func.max(CatalogCardRow.position)).scalar() or 0) + 1
            row = session.get(CatalogCardRow, card.card_id)
            if row is None:
                row = CatalogCardRow(card_id=card.card_id, position=position)
                session.add(row)
            row.learner_id = card.learner_id
            row.deck_id = card.deck_id
            row.deck_name = card.deck_name
            row.folder_name = card.folder_name
            row.front = card.front
            row.back = card.back
            row.tags = list(card.tags)
            row.created_at = card.created_at.isoformat() if card.created_at else None
            session.commit()
        finally:
            session.close()

    def list_cards(
        self,
        learner_id: str,
        deck_id: Optional[str] = None,
        tags: Optional[Sequence[str]] = None
    ) -> list[CatalogCard]:
        session = self._Session()
        try:
            query = session.query(CatalogCardRow).filter(CatalogCardRow.learner_id == learner_id)
            if deck_id is not None:
                query = query.filter(CatalogCardRow.deck_id == deck_id)
            rows = query.order_by(CatalogCardRow.position).all()
        finally:
            session.close()

        wanted_tags = set(tags or ())
        result = []
        for row in rows:
            row_tags = tuple(row.tags or ())
            if wanted_tags and not wanted_tags.intersection(row_tags):
                continue
            stored = self.store.get(row.card_id, learner_id)
            if stored is None:
                logger.warning("Catalog card %s has no memory state, skipping", row.card_id)
                continue
            created_at = None
            if row.created_at:
                created_at = instants.repair_instant(
                    row.created_at, stored.state.due, "created_at", row.card_id
                )
            result.append(CatalogCard(
                card_id=row.card_id,
                learner_id=row.learner_id,
                front=row.front,
                back=row.back,
                deck_id=row.deck_id,
                memory=stored.state,
                deck_name=row.deck_name,
                folder_name=row.folder_name,
                tags=row_tags,
                created_at=created_at
            ))
        return result


# ---- Learner settings ----

class SqlParameterStore(ParameterStore):

    def __init__(self, engine: Engine, default: Optional[SchedulingParameters] = None):
        self._Session = get_session_factory(engine)
        self._default = default or default_parameters()

    def get(self, learner_id: str) -> SchedulingParameters:
        session = self._Session()
        try:
            row = session.get(LearnerParametersRow, learner_id)
            if row is None:
                return self._default
            return SchedulingParameters.from_record(row.parameters)
        finally:
            session.close()

    def update(self, learner_id: str, parameters: SchedulingParameters) -> None:
        session = self._Session()
        try:
            row = session.get(LearnerParametersRow, learner_id)
            if row is None:
                row = LearnerParametersRow(learner_id=learner_id)
                session.add(row)
            row.parameters = parameters.to_record()
            row.updated_at = instants.utcnow().isoformat()
            session.commit()
        finally:
            session.close()
