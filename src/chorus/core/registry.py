"""Per-agent dialogue state and the registry that owns it.

Agent state is kept in an arena keyed by a stable agent id. States are
created explicitly on the first successful eligibility check and removed
explicitly when the host reports that the agent left the simulation; the
registry never relies on the lifetime of host objects.
"""

import threading
from collections import deque
from collections.abc import Iterator

from chorus.core.collaborators import EligibilityPolicy
from chorus.schemas.messages import TalkRequest, Utterance
from chorus.schemas.types import TalkType
from chorus.utils.telemetry import (
    get_logger,
    record_queue_depth,
    update_registered_agents,
)


class AgentState:
    """Mutable dialogue state of one agent.

    The utterance queue is the only source of truth for what the agent will
    say next. The streaming orchestrator appends at the tail and the playback
    scheduler removes from the head; both go through the per-agent lock, since
    the stream may deliver from a different thread than the tick loop.
    """

    def __init__(self, agent_id: str) -> None:
        self.agent_id = agent_id
        self.is_generating = False
        self.last_status_text: str | None = None
        self.reject_count = 0
        self.last_spoken_tick = -1
        self.pending_requests: deque[TalkRequest] = deque()
        self._queue: deque[Utterance] = deque()
        self._lock = threading.Lock()

    def enqueue(self, utterance: Utterance) -> None:
        with self._lock:
            self._queue.append(utterance)
            depth = len(self._queue)
        record_queue_depth(self.agent_id, depth)

    def peek(self) -> Utterance | None:
        with self._lock:
            return self._queue[0] if self._queue else None

    def dequeue(self) -> Utterance | None:
        with self._lock:
            utterance = self._queue.popleft() if self._queue else None
            depth = len(self._queue)
        record_queue_depth(self.agent_id, depth)
        return utterance

    def queue_size(self) -> int:
        with self._lock:
            return len(self._queue)

    def has_pending_talk(self) -> bool:
        return self.queue_size() > 0

    def queued(self) -> list[Utterance]:
        """Snapshot of the queue, head first."""
        with self._lock:
            return list(self._queue)

    def add_talk_request(
        self,
        prompt: str,
        talk_type: TalkType = TalkType.EVENT,
        tick: int = 0,
        recipient_id: str | None = None,
        max_pending: int | None = None,
    ) -> TalkRequest:
        """Queue a deferred trigger to be offered to the gate on a later tick.

        When ``max_pending`` is reached the oldest deferred request is dropped.
        """
        request = TalkRequest(
            initiator_id=self.agent_id,
            recipient_id=recipient_id,
            prompt=prompt,
            talk_type=talk_type,
            created_tick=tick,
        )
        self.pending_requests.append(request)
        if max_pending is not None:
            while len(self.pending_requests) > max_pending:
                self.pending_requests.popleft()
        return request

    def __repr__(self) -> str:
        return (
            f"AgentState(agent_id={self.agent_id}, queued={self.queue_size()}, "
            f"generating={self.is_generating}, rejects={self.reject_count})"
        )


class AgentRegistry:
    """Arena of ``AgentState`` indexed by agent id, in registration order.

    Registration order matters: the playback scheduler scans agents in this
    order and prefers the earliest registered agent with a ready utterance.
    """

    def __init__(self, eligibility: EligibilityPolicy) -> None:
        self._eligibility = eligibility
        self._states: dict[str, AgentState] = {}
        self._logger = get_logger("chorus.registry")

    def get(self, agent_id: str | None) -> AgentState | None:
        """Return the state of a registered agent, or None."""
        if agent_id is None:
            return None
        return self._states.get(agent_id)

    def ensure(self, agent_id: str) -> AgentState | None:
        """Return the agent's state, creating it if the agent is eligible.

        Returns:
            The state, or None when the agent is not eligible to talk
        """
        state = self._states.get(agent_id)
        if state is not None:
            return state

        if not self._eligibility.is_talk_eligible(agent_id):
            return None

        state = AgentState(agent_id)
        self._states[agent_id] = state
        update_registered_agents(len(self._states))
        self._logger.debug("Agent registered", agent_id=agent_id)
        return state

    def remove(self, agent_id: str) -> AgentState | None:
        """Forget an agent that left the simulation.

        Returns:
            The removed state, or None if the agent was not registered
        """
        state = self._states.pop(agent_id, None)
        if state is not None:
            update_registered_agents(len(self._states))
            record_queue_depth(agent_id, 0)
            self._logger.debug(
                "Agent removed",
                agent_id=agent_id,
                discarded_utterances=state.queue_size(),
            )
        return state

    def agent_ids(self) -> list[str]:
        return list(self._states)

    def states(self) -> list[AgentState]:
        """Snapshot of all states in registration order."""
        return list(self._states.values())

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._states

    def __iter__(self) -> Iterator[AgentState]:
        return iter(self.states())

    def __len__(self) -> int:
        return len(self._states)
