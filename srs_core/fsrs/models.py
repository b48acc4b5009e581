"""
SQLAlchemy ORM Models for FSRS Database

Defines card state, review log, card catalog and learner settings tables.

Timestamps in card_state are stored as ISO-8601 strings; rows written by
older clients or edited by hand are parsed (and repaired) on read.
"""

from sqlalchemy import Column, Float, Index, Integer, JSON, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class CardStateRow(Base):
    """
    Persistent memory state for one card of one learner.
    """
    __tablename__ = 'card_state'

    # Primary key: composite of card_id and learner_id
    card_id = Column(String(255), primary_key=True, nullable=False)
    learner_id = Column(String(255), primary_key=True, nullable=False)

    state = Column(String(20), nullable=False, default="New")

    # Long-term memory parameters
    difficulty = Column(Float, nullable=False)
    stability = Column(Float, nullable=False)

    # Interval bookkeeping
    elapsed_days = Column(Integer, nullable=False, default=0)
    scheduled_days = Column(Integer, nullable=False, default=0)

    # Review tracking
    reps = Column(Integer, nullable=False, default=0)
    lapses = Column(Integer, nullable=False, default=0)
    due = Column(String(64), nullable=True)
    last_review = Column(String(64), nullable=True)
    learning_step_index = Column(Integer, nullable=True)

    # Optimistic lock, bumped on every write
    version = Column(Integer, nullable=False, default=1)

    def __repr__(self):
        return f"<CardStateRow({self.learner_id}, {self.card_id}, {self.state}, v{self.version})>"


class ReviewLogRow(Base):
    """
    Log entry for a single graded review.

    Captures full card snapshots before and after the review.
    """
    __tablename__ = 'review_logs'

    entry_id = Column(String(36), primary_key=True)

    card_id = Column(String(255), nullable=False)
    learner_id = Column(String(255), nullable=False)

    # Unique monotonic insertion order; ties on reviewed_at are broken by this
    sequence = Column(Integer, nullable=False, unique=True)

    rating = Column(Integer, nullable=False)  # 1=AGAIN, 2=HARD, 3=GOOD, 4=EASY
    reviewed_at = Column(String(64), nullable=False)

    state_before = Column(JSON, nullable=False)
    state_after = Column(JSON, nullable=False)
    retrievability_before = Column(Float, nullable=True)
    elapsed_days = Column(Integer, nullable=False, default=0)
    scheduled_days = Column(Integer, nullable=False, default=0)

    # card_state.version written by this review
    card_version = Column(Integer, nullable=True)

    __table_args__ = (
        Index("idx_review_logs_card", "card_id", "sequence"),
    )

    def __repr__(self):
        return f"<ReviewLogRow({self.entry_id}, {self.card_id}, rating={self.rating})>"


class CatalogCardRow(Base):
    """
    Display fields of a card, read to seed study sessions.
    """
    __tablename__ = 'cards'

    card_id = Column(String(255), primary_key=True)
    learner_id = Column(String(255), nullable=False, index=True)
    deck_id = Column(String(255), nullable=True)
    deck_name = Column(String(255), nullable=False, default="Uncategorized Deck")
    folder_name = Column(String(255), nullable=False, default="Personal")
    front = Column(Text, nullable=False)
    back = Column(Text, nullable=False)
    tags = Column(JSON, nullable=False, default=list)
    position = Column(Integer, nullable=False, default=0)
    created_at = Column(String(64), nullable=True)

    def __repr__(self):
        return f"<CatalogCardRow({self.card_id}, deck={self.deck_id})>"


class LearnerParametersRow(Base):
    """
    Saved scheduling parameters of one learner.
    """
    __tablename__ = 'learner_parameters'

    learner_id = Column(String(255), primary_key=True)
    parameters = Column(JSON, nullable=False)
    updated_at = Column(String(64), nullable=False)

    def __repr__(self):
        return f"<LearnerParametersRow({self.learner_id})>"
