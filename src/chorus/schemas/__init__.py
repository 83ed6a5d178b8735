"""Data models and type definitions for the chorus dialogue scheduler."""

from .messages import (
    EmotionResult,
    GateDecision,
    HistoryRecord,
    MessageHistoryEntry,
    SessionResult,
    TalkRequest,
    TickResult,
    Utterance,
)
from .types import MoodKind, RejectReason, TalkStatus, TalkType

__all__ = [
    "EmotionResult",
    "GateDecision",
    "HistoryRecord",
    "MessageHistoryEntry",
    "MoodKind",
    "RejectReason",
    "SessionResult",
    "TalkRequest",
    "TalkStatus",
    "TalkType",
    "TickResult",
    "Utterance",
]
