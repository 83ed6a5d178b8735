"""Playback scheduler: releases queued utterances one tick at a time."""

from chorus.config import DialogueConfig
from chorus.core.collaborators import (
    Clock,
    DisplaySink,
    EligibilityPolicy,
    MoodEffect,
    StatusProvider,
)
from chorus.core.history import HistoryLedger
from chorus.core.registry import AgentRegistry, AgentState
from chorus.schemas.messages import TickResult, Utterance
from chorus.schemas.types import TalkType
from chorus.utils.telemetry import get_logger, record_consumed_utterance


class PlaybackScheduler:
    """Decides, per tick, which single agent (if any) speaks.

    Agents are scanned in registration order and the first agent whose head
    utterance is ready speaks; nobody else does on that tick. Along the way
    the scheduler prunes utterances that can no longer be shown (the parent
    was ignored or the agent cannot display dialogue) and, for agents in
    danger, drops everything ahead of the first urgent utterance.

    Only the scheduler removes utterances from agent queues.
    """

    def __init__(
        self,
        registry: AgentRegistry,
        ledger: HistoryLedger,
        clock: Clock,
        eligibility: EligibilityPolicy,
        status_provider: StatusProvider,
        display: DisplaySink | None = None,
        mood: MoodEffect | None = None,
        config: DialogueConfig | None = None,
    ):
        self.registry = registry
        self.ledger = ledger
        self.clock = clock
        self.eligibility = eligibility
        self.status_provider = status_provider
        self.display = display
        self.mood = mood
        self.config = config or DialogueConfig()
        self._logger = get_logger("chorus.scheduler")

    def tick(self) -> TickResult:
        """Run one scheduling pass. At most one utterance is spoken."""
        result = TickResult(tick=self.clock.current_tick())

        for state in self.registry.states():
            if not state.has_pending_talk():
                continue

            utterance = state.peek()
            if utterance is None:
                state.dequeue()
                continue

            if self.ledger.is_ignored(
                utterance.parent_id
            ) or not self.eligibility.can_display_talk(state):
                pruned = self.consume_talk(state, ignored=True)
                if pruned is not None:
                    result.ignored.append(pruned.id)
                    self._logger.warning(
                        "Pruned stale utterance",
                        agent_id=state.agent_id,
                        utterance_id=pruned.id,
                        parent_id=pruned.parent_id,
                    )
                continue

            if not utterance.is_reply() and not self.clock.has_interval_elapsed(
                state.last_spoken_tick, self.config.talk_interval_ticks
            ):
                continue

            reply_interval = self.config.reply_interval_ticks
            if self.status_provider.is_hazardous(state.agent_id):
                reply_interval = self.config.hazard_reply_interval_ticks
                result.ignored.extend(self._drain_non_urgent(state))
                utterance = state.peek()
                if utterance is None:
                    continue

            if utterance.is_reply() and not self._reply_ready(
                utterance, reply_interval
            ):
                continue

            spoken = self.consume_talk(state)
            if spoken is None:
                continue

            state.last_spoken_tick = result.tick
            result.spoken_agent_id = state.agent_id
            result.utterance = spoken
            self._show(state.agent_id, spoken)
            break

        return result

    def _drain_non_urgent(self, state: AgentState) -> list[str]:
        drained = []
        while True:
            head = state.peek()
            if head is None or head.talk_type == TalkType.URGENT:
                break
            consumed = self.consume_talk(state, ignored=True)
            if consumed is not None:
                drained.append(consumed.id)

        if drained:
            self._logger.info(
                "Dropped non-urgent utterances for agent in danger",
                agent_id=state.agent_id,
                count=len(drained),
            )
        return drained

    def _reply_ready(self, utterance: Utterance, reply_interval: int) -> bool:
        parent_tick = self.ledger.get_spoken_tick(utterance.parent_id)
        if parent_tick == -1:
            return False
        return self.clock.has_interval_elapsed(parent_tick, reply_interval)

    def _show(self, agent_id: str, utterance: Utterance) -> None:
        if self.display is None:
            return
        try:
            self.display.show_utterance(agent_id, utterance)
        except Exception as e:
            self._logger.error(
                "Display collaborator failed",
                agent_id=agent_id,
                utterance_id=utterance.id,
                error=str(e),
            )

    def consume_talk(self, state: AgentState, ignored: bool = False) -> Utterance | None:
        """Dequeue the head utterance and record it in the ledger.

        Mood effects are applied on the spoken path only.

        Returns:
            The consumed utterance, or None if the queue was empty
        """
        utterance = state.dequeue()
        if utterance is None:
            return None

        if ignored:
            self.ledger.add_ignored(utterance.id)
            record_consumed_utterance("ignored")
            return utterance

        tick = self.clock.current_tick()
        recorded = self.ledger.add_spoken(utterance.id, tick)
        record_consumed_utterance("spoken")
        self._logger.info(
            "Utterance spoken",
            agent_id=state.agent_id,
            utterance_id=utterance.id,
            talk_type=utterance.talk_type.value,
            tick=tick,
        )

        if recorded and utterance.emotion is not None and self.mood is not None:
            try:
                self.mood.apply_mood_effect(
                    state.agent_id, utterance.emotion, utterance.talk_type
                )
            except Exception as e:
                self._logger.warning(
                    "Mood effect failed", agent_id=state.agent_id, error=str(e)
                )

        return utterance

    def get_talk(self, agent_id: str) -> str | None:
        """Pull-model display: speak the agent's head utterance now.

        Returns:
            The utterance text, or None for an unknown agent or empty queue
        """
        state = self.registry.get(agent_id)
        if state is None:
            return None

        utterance = self.consume_talk(state)
        if utterance is None:
            return None

        state.last_spoken_tick = self.clock.current_tick()
        return utterance.text
