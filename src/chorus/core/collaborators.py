"""Protocols for the collaborators the dialogue core depends on.

The core never looks at domain attributes (faction, health, needs), never
writes prompts and never draws anything. Those concerns belong to the host
simulation and are reached through the protocols below. Simple default
implementations are provided for tests, demos and hosts that have no
opinion.
"""

from collections.abc import AsyncIterator, Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from chorus.schemas.messages import EmotionResult, TalkRequest, Utterance
from chorus.schemas.types import TalkType

if TYPE_CHECKING:
    from chorus.core.registry import AgentState


@runtime_checkable
class EligibilityPolicy(Protocol):
    """Decides which agents may take part in dialogue."""

    def is_talk_eligible(self, agent_id: str) -> bool:
        """Whether the agent may have dialogue state at all."""
        ...

    def can_generate_talk(self, state: "AgentState") -> bool:
        """Whether the agent may start a new exchange right now."""
        ...

    def can_display_talk(self, state: "AgentState") -> bool:
        """Whether the agent may currently show (or receive) dialogue."""
        ...


@runtime_checkable
class StatusProvider(Protocol):
    """Summarizes an agent's situation for de-duplication and prompting."""

    def get_status_summary(
        self, agent_id: str, nearby: Sequence[str]
    ) -> tuple[str, bool]:
        """Return ``(status_text, is_hazardous)`` for the agent."""
        ...

    def is_hazardous(self, agent_id: str) -> bool:
        """Whether the agent is in danger right now."""
        ...


@runtime_checkable
class ProximityProvider(Protocol):
    """Lists agents near another, closest first."""

    def nearby_agents(self, agent_id: str) -> list[str]: ...


@runtime_checkable
class ContextBuilder(Protocol):
    """Builds prompt text; owned by the host."""

    def build_context(self, agent_ids: Sequence[str]) -> str:
        """Shared context (personas, setting) for the participants."""
        ...

    def decorate_prompt(
        self, request: TalkRequest, participants: Sequence[str], status: str
    ) -> str:
        """Final prompt text for the request."""
        ...

    def display_name(self, agent_id: str) -> str:
        """Name the model will use when it writes this agent's lines."""
        ...


@runtime_checkable
class ChatStreamer(Protocol):
    """The AI collaborator.

    ``stream_chat`` yields utterances strictly in order. Each yielded
    utterance names its speaker through ``speaker_name``, which must match a
    key of ``participants_by_name`` to be accepted.
    """

    def stream_chat(
        self,
        request: TalkRequest,
        history: Sequence[tuple[str, str]],
        participants_by_name: Mapping[str, str],
    ) -> AsyncIterator[Utterance]: ...


@runtime_checkable
class Clock(Protocol):
    """The authoritative simulation clock."""

    def current_tick(self) -> int: ...

    def has_interval_elapsed(self, since_tick: int, min_interval: int) -> bool: ...


@runtime_checkable
class DisplaySink(Protocol):
    """Receives every spoken utterance."""

    def show_utterance(self, agent_id: str, utterance: Utterance) -> None: ...


@runtime_checkable
class MoodEffect(Protocol):
    """Applies the mood consequence of a spoken, emotion-tagged utterance."""

    def apply_mood_effect(
        self, agent_id: str, emotion: EmotionResult, talk_type: TalkType
    ) -> None: ...


class AllowAllEligibility:
    """Every known agent may talk; generation waits for the previous one."""

    def is_talk_eligible(self, agent_id: str) -> bool:
        return True

    def can_generate_talk(self, state: "AgentState") -> bool:
        return not state.is_generating

    def can_display_talk(self, state: "AgentState") -> bool:
        return True


class StaticStatusProvider:
    """Status provider backed by plain dictionaries.

    Useful for tests and scripted simulations: ``statuses`` maps agent ids to
    status text and ``hazardous`` holds the ids currently in danger.
    """

    def __init__(
        self,
        statuses: dict[str, str] | None = None,
        hazardous: set[str] | None = None,
    ):
        self.statuses = statuses if statuses is not None else {}
        self.hazardous = hazardous if hazardous is not None else set()

    def get_status_summary(
        self, agent_id: str, nearby: Sequence[str]
    ) -> tuple[str, bool]:
        status = self.statuses.get(agent_id, "idle")
        nearby_text = ", ".join(nearby) if nearby else "none"
        hazardous = self.is_hazardous(agent_id) or any(
            self.is_hazardous(other) for other in nearby
        )
        return f"{agent_id} ({status})\nNearby: {nearby_text}", hazardous

    def is_hazardous(self, agent_id: str) -> bool:
        return agent_id in self.hazardous


class StaticProximity:
    """Proximity provider backed by a dictionary of neighbor lists."""

    def __init__(self, neighbors: dict[str, list[str]] | None = None):
        self.neighbors = neighbors if neighbors is not None else {}

    def nearby_agents(self, agent_id: str) -> list[str]:
        return list(self.neighbors.get(agent_id, []))


class SimpleContextBuilder:
    """Context builder that lists participants and appends the status."""

    def __init__(self, names: dict[str, str] | None = None):
        self.names = names if names is not None else {}

    def display_name(self, agent_id: str) -> str:
        return self.names.get(agent_id, agent_id)

    def build_context(self, agent_ids: Sequence[str]) -> str:
        return "Participants: " + ", ".join(self.display_name(a) for a in agent_ids)

    def decorate_prompt(
        self, request: TalkRequest, participants: Sequence[str], status: str
    ) -> str:
        return f"{request.prompt}\n[Status]\n{status}"


class CallbackDisplay:
    """Display sink that forwards to a callable."""

    def __init__(self, callback: Callable[[str, Utterance], None]):
        self._callback = callback

    def show_utterance(self, agent_id: str, utterance: Utterance) -> None:
        self._callback(agent_id, utterance)
