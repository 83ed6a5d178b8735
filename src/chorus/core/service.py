"""Dialogue service: wires the gate, orchestrator and scheduler together.

This is the surface a host simulation talks to. Triggers come in through
``on_trigger`` (or the convenience helpers), the tick loop calls ``on_tick``
once per tick, and agents leaving the simulation are reported through
``agent_removed``. The top-level handlers never raise: any failure is logged
and the simulation carries on without dialogue for that cycle.
"""

import asyncio
from collections.abc import Callable

from chorus.config import Config
from chorus.core.clock import SimulationClock
from chorus.core.collaborators import (
    AllowAllEligibility,
    ChatStreamer,
    Clock,
    ContextBuilder,
    DisplaySink,
    EligibilityPolicy,
    MoodEffect,
    ProximityProvider,
    SimpleContextBuilder,
    StaticProximity,
    StaticStatusProvider,
    StatusProvider,
)
from chorus.core.gate import GenerationGate, SingleFlightGuard
from chorus.core.history import HistoryLedger
from chorus.core.orchestrator import DialogueOrchestrator
from chorus.core.registry import AgentRegistry, AgentState
from chorus.core.scheduler import PlaybackScheduler
from chorus.schemas.messages import SessionResult, TalkRequest, TickResult
from chorus.schemas.types import RejectReason, TalkType
from chorus.utils.telemetry import get_logger

# Rejections that say nothing about other agents' pending requests.
AGENT_SPECIFIC_REJECTIONS = frozenset(
    {
        RejectReason.UNKNOWN_INITIATOR,
        RejectReason.INITIATOR_BUSY,
        RejectReason.CANNOT_GENERATE,
        RejectReason.DUPLICATE_STATUS,
    }
)


class DialogueService:
    """Facade over the dialogue core for one simulation.

    Args:
        streamer: AI collaborator producing utterances
        config: Full configuration; defaults are used when omitted
        clock: Simulation clock (a fresh ``SimulationClock`` by default)
        eligibility: Eligibility policy (everyone may talk by default)
        status_provider: Status summaries and hazard checks
        proximity: Nearby-agent lookup
        context_builder: Prompt and display-name builder
        display: Receives spoken utterances
        mood: Optional mood effect, only used when the feature flag is on
        ai_active: Returns False while the simulation speed forbids AI calls
        has_provider: Returns True when a provider is configured; defaults to
            ``config.llm.is_configured``
        loop: Event loop running in a background thread, for hosts whose tick
            loop runs outside asyncio
    """

    def __init__(
        self,
        streamer: ChatStreamer,
        config: Config | None = None,
        clock: Clock | None = None,
        eligibility: EligibilityPolicy | None = None,
        status_provider: StatusProvider | None = None,
        proximity: ProximityProvider | None = None,
        context_builder: ContextBuilder | None = None,
        display: DisplaySink | None = None,
        mood: MoodEffect | None = None,
        ai_active: Callable[[], bool] | None = None,
        has_provider: Callable[[], bool] | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        self.config = config or Config()
        self.clock = clock or SimulationClock()
        self.eligibility = eligibility or AllowAllEligibility()
        self.status_provider = status_provider or StaticStatusProvider()
        self.proximity = proximity or StaticProximity()
        self.context_builder = context_builder or SimpleContextBuilder()

        if has_provider is None:

            def has_provider() -> bool:
                return self.config.llm.is_configured

        self.registry = AgentRegistry(self.eligibility)
        self.ledger = HistoryLedger()
        self.guard = SingleFlightGuard()
        self.orchestrator = DialogueOrchestrator(
            self.registry,
            self.ledger,
            streamer,
            self.context_builder,
            self.clock,
            loop=loop,
        )
        self.gate = GenerationGate(
            self.registry,
            self.orchestrator,
            self.eligibility,
            self.status_provider,
            self.proximity,
            self.context_builder,
            config=self.config.dialogue,
            ai_active=ai_active,
            has_provider=has_provider,
            guard=self.guard,
        )
        self.scheduler = PlaybackScheduler(
            self.registry,
            self.ledger,
            self.clock,
            self.eligibility,
            self.status_provider,
            display=display,
            mood=mood if self.config.features.mood_effects else None,
            config=self.config.dialogue,
        )
        self._logger = get_logger("chorus.service")

    def register_agent(self, agent_id: str) -> AgentState | None:
        """Create dialogue state for an agent if it is eligible."""
        return self.registry.ensure(agent_id)

    def agent_removed(self, agent_id: str) -> None:
        """Forget an agent that left the simulation."""
        self.registry.remove(agent_id)

    def on_trigger(self, request: TalkRequest) -> bool:
        """Offer a trigger to the generation gate.

        Returns:
            True if a streaming session was started
        """
        try:
            self.registry.ensure(request.initiator_id)
            if request.recipient_id is not None:
                self.registry.ensure(request.recipient_id)
            return self.gate.request_generation(request)
        except Exception as e:
            self._logger.error(
                "Trigger handling failed",
                agent_id=request.initiator_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

    def trigger(
        self,
        initiator_id: str,
        prompt: str,
        recipient_id: str | None = None,
        talk_type: TalkType = TalkType.NORMAL,
    ) -> bool:
        """Build a request stamped with the current tick and offer it."""
        request = TalkRequest(
            initiator_id=initiator_id,
            recipient_id=recipient_id,
            prompt=prompt,
            talk_type=talk_type,
            created_tick=self.clock.current_tick(),
        )
        return self.on_trigger(request)

    def on_tick(self) -> TickResult | None:
        """Per-tick entry point: offer a deferred request, then play back.

        Returns:
            What the scheduler did, or None if it failed
        """
        if self.config.features.deferred_requests:
            try:
                self._offer_deferred_request()
            except Exception as e:
                self._logger.error("Deferred request handling failed", error=str(e))

        try:
            return self.scheduler.tick()
        except Exception as e:
            self._logger.error(
                "Playback tick failed",
                tick=self.clock.current_tick(),
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

    def _offer_deferred_request(self) -> None:
        tick = self.clock.current_tick()
        ttl = self.config.dialogue.request_ttl_ticks

        for state in self.registry.states():
            while state.pending_requests and (
                tick - state.pending_requests[0].created_tick > ttl
            ):
                expired = state.pending_requests.popleft()
                self._logger.debug(
                    "Deferred request expired",
                    agent_id=state.agent_id,
                    talk_type=expired.talk_type.value,
                    created_tick=expired.created_tick,
                )

        if self.guard.busy:
            return

        for state in self.registry.states():
            if not state.pending_requests or state.is_generating:
                continue

            decision = self.gate.submit(state.pending_requests[0])
            if decision.accepted:
                state.pending_requests.popleft()
                return
            if decision.reason not in AGENT_SPECIFIC_REJECTIONS:
                return

    def add_talk_request(
        self,
        agent_id: str,
        prompt: str,
        talk_type: TalkType = TalkType.EVENT,
        recipient_id: str | None = None,
    ) -> TalkRequest | None:
        """Queue a deferred trigger for a later tick.

        Returns:
            The queued request, or None if the agent is not eligible
        """
        state = self.registry.ensure(agent_id)
        if state is None:
            return None
        return state.add_talk_request(
            prompt,
            talk_type=talk_type,
            tick=self.clock.current_tick(),
            recipient_id=recipient_id,
            max_pending=self.config.dialogue.max_pending_requests,
        )

    def notify_level_up(
        self, agent_id: str, skill: str, old_level: int, new_level: int, descriptor: str
    ) -> TalkRequest | None:
        """Queue a level-up exchange when a skill level actually increased."""
        if new_level <= old_level:
            return None

        name = self.context_builder.display_name(agent_id)
        prompt = f"{name} leveled up {skill} from {old_level} to {new_level} ({descriptor})"
        return self.add_talk_request(agent_id, prompt, talk_type=TalkType.LEVEL_UP)

    def get_talk(self, agent_id: str) -> str | None:
        """Pull-model display hook; see ``PlaybackScheduler.get_talk``."""
        return self.scheduler.get_talk(agent_id)

    async def wait_idle(self) -> list[SessionResult]:
        return await self.orchestrator.wait_idle()

    async def shutdown(self) -> None:
        await self.orchestrator.shutdown()
        self._logger.info("Dialogue service shut down", stats=self.ledger.get_stats())
