"""Core enumerations shared by the dialogue scheduler."""

from enum import Enum


class TalkType(str, Enum):
    """Kind of exchange that produced an utterance.

    Consumers branch on this value: ``URGENT`` utterances survive the hazard
    drain in the playback scheduler, everything else may be cut.
    """

    NORMAL = "normal"
    URGENT = "urgent"
    LEVEL_UP = "level_up"
    REPLY = "reply"
    USER = "user"
    EVENT = "event"


class TalkStatus(str, Enum):
    """Consumption status of an utterance in the history ledger."""

    PENDING = "pending"
    SPOKEN = "spoken"
    IGNORED = "ignored"


class RejectReason(str, Enum):
    """Why the generation gate turned a trigger down (or ``ACCEPTED``)."""

    ACCEPTED = "accepted"
    DISABLED = "disabled"
    AI_INACTIVE = "ai_inactive"
    NO_PROVIDER = "no_provider"
    BUSY = "busy"
    UNKNOWN_INITIATOR = "unknown_initiator"
    INITIATOR_BUSY = "initiator_busy"
    CANNOT_GENERATE = "cannot_generate"
    DUPLICATE_STATUS = "duplicate_status"
    LAUNCH_FAILED = "launch_failed"


class MoodKind(str, Enum):
    """Mood memory an agent gains after speaking an emotionally tagged line."""

    PRAISED = "praised"
    CHATTED = "chatted"
    INSULTED = "insulted"
