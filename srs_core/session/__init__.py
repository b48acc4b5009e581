"""Study sessions: queue building, answering and statistics."""

from srs_core.session.queue_manager import StudySession
from srs_core.session.session_types import (
    AnswerOutcome,
    SessionCard,
    SessionConfig,
    SessionStats,
    SessionStatus,
    StudyMode,
    format_session_duration,
)

__all__ = [
    "StudySession",
    "AnswerOutcome",
    "SessionCard",
    "SessionConfig",
    "SessionStats",
    "SessionStatus",
    "StudyMode",
    "format_session_duration",
]
