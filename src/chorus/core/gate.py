"""Generation gate: admission control for new dialogue exchanges.

The gate runs synchronously on the simulation thread whenever something
noteworthy happens to an agent. It decides whether a new exchange may be
requested, picks the participants and hands the request to the streaming
orchestrator without waiting for it.
"""

import threading
from collections.abc import Callable
from typing import Protocol

from chorus.config import DialogueConfig
from chorus.core.collaborators import (
    ContextBuilder,
    EligibilityPolicy,
    ProximityProvider,
    StatusProvider,
)
from chorus.core.registry import AgentRegistry
from chorus.schemas.messages import GateDecision, TalkRequest
from chorus.schemas.types import RejectReason, TalkType
from chorus.utils.telemetry import get_logger, record_generation_request


class SingleFlightGuard:
    """Token allowing at most one streaming session system-wide.

    The gate acquires it when it admits a request; the session releases it
    when it ends, on every exit path.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._holder: str | None = None

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._holder is not None

    @property
    def holder(self) -> str | None:
        with self._lock:
            return self._holder

    def try_acquire(self, holder: str) -> bool:
        """Take the token for ``holder``; False if someone already has it."""
        with self._lock:
            if self._holder is not None:
                return False
            self._holder = holder
            return True

    def release(self, holder: str) -> None:
        """Give the token back. Releasing a token you do not hold is a no-op."""
        with self._lock:
            if self._holder == holder:
                self._holder = None


class SessionLauncher(Protocol):
    """Starts a streaming session in the background."""

    def start_session(
        self,
        request: TalkRequest,
        participants: list[str],
        involved: list[str],
        on_finished: Callable[[], None] | None = None,
    ) -> object: ...


class GenerationGate:
    """Decides, per trigger, whether a new generation request is admissible.

    Preconditions are checked in order and the first failure rejects the
    request silently (a ``GateDecision`` with the reason, never an
    exception):

    1. Dialogue is enabled and the simulation speed allows AI activity
    2. A provider is configured
    3. No session is in flight anywhere
    4. The initiator is registered, not mid-generation and allowed to generate

    An ineligible recipient is dropped rather than rejecting the request.
    Requests whose initiator status has not changed since the last accepted
    one are rejected ``dedup_reject_limit`` times in a row, after which one is
    admitted anyway so a legitimately static status cannot starve an agent.
    """

    def __init__(
        self,
        registry: AgentRegistry,
        launcher: SessionLauncher,
        eligibility: EligibilityPolicy,
        status_provider: StatusProvider,
        proximity: ProximityProvider,
        context_builder: ContextBuilder,
        config: DialogueConfig | None = None,
        ai_active: Callable[[], bool] | None = None,
        has_provider: Callable[[], bool] | None = None,
        guard: SingleFlightGuard | None = None,
    ):
        self.registry = registry
        self.launcher = launcher
        self.eligibility = eligibility
        self.status_provider = status_provider
        self.proximity = proximity
        self.context_builder = context_builder
        self.config = config or DialogueConfig()
        self.guard = guard or SingleFlightGuard()
        self._ai_active = ai_active or (lambda: True)
        self._has_provider = has_provider or (lambda: True)
        self._logger = get_logger("chorus.gate")

    def evaluate(self, request: TalkRequest) -> GateDecision:
        """Run the admission checks and, on success, take the flight token.

        The caller's request is not modified; the returned decision carries
        the prepared copy (recipient possibly dropped, talk type possibly
        escalated, context and prompt filled in). An accepted decision holds
        the flight token: the caller must start a session that releases it,
        or call ``guard.release`` itself.

        Rejections are counted here; acceptances are counted by ``submit``
        once the session has actually started.
        """
        if not self.config.enabled:
            return self._reject(request, RejectReason.DISABLED)
        if not self._ai_active():
            return self._reject(request, RejectReason.AI_INACTIVE)
        if not self._has_provider():
            return self._reject(request, RejectReason.NO_PROVIDER)
        if self.guard.busy:
            return self._reject(request, RejectReason.BUSY)

        initiator = self.registry.get(request.initiator_id)
        if initiator is None:
            return self._reject(request, RejectReason.UNKNOWN_INITIATOR)
        if initiator.is_generating:
            return self._reject(request, RejectReason.INITIATOR_BUSY)
        if not self.eligibility.can_generate_talk(initiator):
            return self._reject(request, RejectReason.CANNOT_GENERATE)

        prepared = request.model_copy()

        if prepared.recipient_id is not None:
            recipient = self.registry.get(prepared.recipient_id)
            if (
                recipient is None
                or prepared.recipient_id == prepared.initiator_id
                or not self.eligibility.can_display_talk(recipient)
            ):
                self._logger.debug(
                    "Dropping ineligible recipient",
                    agent_id=prepared.initiator_id,
                    recipient_id=prepared.recipient_id,
                )
                prepared.recipient_id = None

        nearby = self.proximity.nearby_agents(prepared.initiator_id)
        status, hazardous = self.status_provider.get_status_summary(
            prepared.initiator_id, nearby
        )
        if hazardous:
            prepared.talk_type = TalkType.URGENT

        if (
            status == initiator.last_status_text
            and initiator.reject_count < self.config.dedup_reject_limit
        ):
            initiator.reject_count += 1
            return self._reject(request, RejectReason.DUPLICATE_STATUS)

        if not self.guard.try_acquire(prepared.initiator_id):
            return self._reject(request, RejectReason.BUSY)

        initiator.reject_count = 0
        initiator.last_status_text = status

        participants = self.select_participants(
            prepared.initiator_id, prepared.recipient_id, nearby
        )
        involved = list(dict.fromkeys([*participants, *nearby]))

        prepared.context = self.context_builder.build_context(participants)
        prepared.prompt = self.context_builder.decorate_prompt(
            prepared, participants, status
        )

        return GateDecision(
            accepted=True,
            reason=RejectReason.ACCEPTED,
            request=prepared,
            participants=participants,
            involved=involved,
        )

    def select_participants(
        self, initiator_id: str, recipient_id: str | None, nearby: list[str]
    ) -> list[str]:
        """Initiator, recipient, then displayable nearby agents; capped and unique."""
        candidates = [initiator_id]
        if recipient_id is not None:
            candidates.append(recipient_id)
        for agent_id in nearby:
            state = self.registry.get(agent_id)
            if state is not None and self.eligibility.can_display_talk(state):
                candidates.append(agent_id)

        return list(dict.fromkeys(candidates))[: self.config.max_participants]

    def submit(self, request: TalkRequest) -> GateDecision:
        """Evaluate a trigger and, if admitted, start the session in the background.

        A request that passes the checks but whose session cannot be started
        comes back rejected with ``LAUNCH_FAILED`` and the token released.
        The initiator's dedup state is restored so the retry is not counted
        as a repeat of a status that never produced an exchange.
        """
        initiator = self.registry.get(request.initiator_id)
        previous = (
            (initiator.last_status_text, initiator.reject_count)
            if initiator is not None
            else None
        )

        decision = self.evaluate(request)
        if not decision.accepted or decision.request is None:
            return decision

        prepared = decision.request
        holder = prepared.initiator_id
        try:
            self.launcher.start_session(
                prepared,
                decision.participants,
                decision.involved,
                on_finished=lambda: self.guard.release(holder),
            )
        except RuntimeError as e:
            self.guard.release(holder)
            if initiator is not None and previous is not None:
                initiator.last_status_text, initiator.reject_count = previous
            self._logger.error(
                "Could not start streaming session", agent_id=holder, error=str(e)
            )
            return self._reject(request, RejectReason.LAUNCH_FAILED)

        record_generation_request(True, RejectReason.ACCEPTED.value)
        self._logger.info(
            "Generation request accepted",
            agent_id=holder,
            recipient_id=prepared.recipient_id,
            talk_type=prepared.talk_type.value,
            participants=decision.participants,
        )
        return decision

    def request_generation(self, request: TalkRequest) -> bool:
        """Like ``submit``, but only report whether a session was started."""
        return self.submit(request).accepted

    def _reject(self, request: TalkRequest, reason: RejectReason) -> GateDecision:
        record_generation_request(False, reason.value)
        self._logger.debug(
            "Generation request rejected",
            agent_id=request.initiator_id,
            reason=reason.value,
        )
        return GateDecision.reject(reason)
