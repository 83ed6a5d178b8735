"""Pydantic models for utterances, requests and history records."""

import uuid

from pydantic import BaseModel, ConfigDict, Field

from chorus.schemas.types import RejectReason, TalkStatus, TalkType


def _new_id() -> str:
    return uuid.uuid4().hex


class EmotionResult(BaseModel):
    """Emotion annotation attached to an utterance by the AI collaborator.

    ``score`` is nominally 1-100; ``label`` is a free-form tag such as
    ``"praise"`` or ``"insult"`` so that different models stay compatible.
    """

    score: int = Field(..., description="Numeric reward, nominally 1-100")
    label: str = Field(default="", description="Emotion tag, e.g. 'praise_target'")

    def __str__(self) -> str:
        return f"{self.label}({self.score})"


class Utterance(BaseModel):
    """One generated line of dialogue, possibly part of a reply chain.

    Utterances are created while a session streams, enqueued into exactly one
    agent's queue and consumed exactly once. Apart from the late-bound
    ``emotion`` annotation they are not changed after enqueue.
    """

    id: str = Field(default_factory=_new_id, description="Unique utterance id")
    speaker_name: str = Field(..., description="Display name of the speaker")
    text: str = Field(..., description="Line of dialogue")
    talk_type: TalkType = Field(default=TalkType.NORMAL)
    parent_id: str = Field(
        default="", description="Id of the utterance this one replies to"
    )
    emotion: EmotionResult | None = Field(default=None)

    model_config = ConfigDict(validate_assignment=True)

    def is_reply(self) -> bool:
        """Return True if this utterance continues a reply chain."""
        return bool(self.parent_id)

    def __str__(self) -> str:
        return self.text


class TalkRequest(BaseModel):
    """A trigger asking for a new exchange started by ``initiator_id``."""

    initiator_id: str
    prompt: str
    recipient_id: str | None = None
    talk_type: TalkType = TalkType.NORMAL
    context: str = Field(default="", description="Filled in by the gate")
    created_tick: int = 0


class HistoryRecord(BaseModel):
    """Consumption record for a single utterance id."""

    utterance_id: str
    status: TalkStatus = TalkStatus.PENDING
    spoken_tick: int = -1


class MessageHistoryEntry(BaseModel):
    """A completed exchange as remembered by one agent."""

    prompt: str
    exchange: str = Field(..., description="Serialized ordered utterances")
    tick: int = -1


class GateDecision(BaseModel):
    """Outcome of a generation gate evaluation."""

    accepted: bool
    reason: RejectReason
    request: TalkRequest | None = Field(
        default=None, description="Request as prepared for hand-off"
    )
    participants: list[str] = Field(default_factory=list)
    involved: list[str] = Field(default_factory=list)

    @classmethod
    def reject(cls, reason: RejectReason) -> "GateDecision":
        return cls(accepted=False, reason=reason)


class SessionResult(BaseModel):
    """Outcome of one streaming session."""

    request: TalkRequest
    utterances: list[Utterance] = Field(default_factory=list)
    dropped: int = 0
    error: str | None = None
    duration_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.error is None


class TickResult(BaseModel):
    """What the playback scheduler did on a single tick."""

    tick: int
    spoken_agent_id: str | None = None
    utterance: Utterance | None = None
    ignored: list[str] = Field(default_factory=list)

    @property
    def spoke(self) -> bool:
        return self.spoken_agent_id is not None
