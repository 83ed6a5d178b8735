"""Streaming orchestrator: turns one AI call into queued per-agent utterances.

A session pulls utterances from the chat streamer one at a time, links each
to the previous one so the session forms a single linear reply chain, and
appends it to the speaking agent's queue. When the stream ends, for any
reason, the whole exchange is written to every involved agent's message
history and the initiator's ``is_generating`` flag is cleared.
"""

import asyncio
import concurrent.futures
import time
from collections.abc import Callable

from chorus.core.collaborators import ChatStreamer, Clock, ContextBuilder
from chorus.core.history import HistoryLedger
from chorus.core.registry import AgentRegistry
from chorus.schemas.messages import SessionResult, TalkRequest, Utterance
from chorus.utils.errors import UnknownSpeakerError
from chorus.utils.serialization import serialize_exchange
from chorus.utils.telemetry import (
    async_performance_timer,
    get_logger,
    record_session,
    record_streamed_utterance,
    update_active_sessions,
)

SessionHandle = asyncio.Task | concurrent.futures.Future


class DialogueOrchestrator:
    """Runs streaming sessions in the background.

    Sessions run on the running asyncio loop of the caller, or, when the
    simulation thread has no loop, on a dedicated ``loop`` running in another
    thread. Only one session is expected in flight at a time (the generation
    gate enforces it); queue appends are nevertheless guarded per agent since
    the tick thread reads the same queues.

    Args:
        registry: Agent state registry (queues are appended to, never popped)
        ledger: History ledger receiving the completed exchange
        streamer: AI collaborator yielding utterances in order
        context_builder: Provides display names used to resolve speakers
        clock: Simulation clock, used to stamp history entries
        loop: Optional event loop running in a background thread
    """

    def __init__(
        self,
        registry: AgentRegistry,
        ledger: HistoryLedger,
        streamer: ChatStreamer,
        context_builder: ContextBuilder,
        clock: Clock,
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        self.registry = registry
        self.ledger = ledger
        self.streamer = streamer
        self.context_builder = context_builder
        self.clock = clock
        self._loop = loop
        self._sessions: set[SessionHandle] = set()
        self._results: list[SessionResult] = []
        self._logger = get_logger("chorus.orchestrator")

    @property
    def active_sessions(self) -> int:
        return len(self._sessions)

    @property
    def results(self) -> list[SessionResult]:
        """Results of finished sessions, oldest first."""
        return list(self._results)

    def start_session(
        self,
        request: TalkRequest,
        participants: list[str],
        involved: list[str],
        on_finished: Callable[[], None] | None = None,
    ) -> SessionHandle:
        """Start a session without waiting for it.

        The initiator is flagged as generating before this returns.

        Raises:
            RuntimeError: If there is no event loop to run the session on
        """
        initiator = self.registry.get(request.initiator_id)
        if initiator is not None:
            initiator.is_generating = True

        finished = False

        def finish_once() -> None:
            nonlocal finished
            if finished:
                return
            finished = True
            if on_finished is not None:
                on_finished()

        coro = self.run_session(request, participants, involved, finish_once)

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        handle: SessionHandle
        try:
            if self._loop is not None and self._loop is not running:
                # Raises RuntimeError if the host loop is already closed.
                handle = asyncio.run_coroutine_threadsafe(coro, self._loop)
            elif running is not None:
                handle = running.create_task(
                    coro, name=f"dialogue-{request.initiator_id}"
                )
            else:
                raise RuntimeError(
                    "No event loop available to run the streaming session"
                )
        except RuntimeError:
            coro.close()
            if initiator is not None:
                initiator.is_generating = False
            finish_once()
            raise

        def on_done(done: SessionHandle) -> None:
            self._sessions.discard(done)
            update_active_sessions(len(self._sessions))
            # A session cancelled before its first step never runs its cleanup.
            if done.cancelled():
                if initiator is not None:
                    initiator.is_generating = False
                finish_once()

        self._sessions.add(handle)
        handle.add_done_callback(on_done)
        update_active_sessions(len(self._sessions))
        return handle

    async def run_session(
        self,
        request: TalkRequest,
        participants: list[str],
        involved: list[str],
        on_finished: Callable[[], None] | None = None,
    ) -> SessionResult:
        """Stream one exchange into the agents' queues.

        Transport errors end the session early but are not raised: the
        utterances received so far stay queued and are still written to
        history. Cancellation is re-raised after the same cleanup.
        """
        initiator_id = request.initiator_id
        initiator = self.registry.get(initiator_id)
        if initiator is not None:
            initiator.is_generating = True

        lookup_ids = list(dict.fromkeys([*participants, *involved]))
        participants_by_name = {
            self.context_builder.display_name(agent_id): agent_id
            for agent_id in lookup_ids
        }

        received: list[Utterance] = []
        dropped = 0
        error: str | None = None
        start_time = time.perf_counter()

        try:
            history = self.ledger.get_message_history(initiator_id)
            async with async_performance_timer(
                "dialogue_session",
                agent_id=initiator_id,
                tick=self.clock.current_tick(),
                logger=self._logger,
            ):
                async for utterance in self.streamer.stream_chat(
                    request, history, participants_by_name
                ):
                    if self._accept(utterance, participants_by_name, received):
                        record_streamed_utterance("enqueued")
                    else:
                        dropped += 1
                        record_streamed_utterance("dropped")

        except asyncio.CancelledError:
            error = "cancelled"
            raise
        except Exception as e:
            error = f"{type(e).__name__}: {e}"
            self._logger.error(
                "Streaming session failed",
                agent_id=initiator_id,
                error=str(e),
                error_type=type(e).__name__,
                received=len(received),
            )
        finally:
            duration = time.perf_counter() - start_time
            try:
                self._write_history(involved or participants, request, received)
            finally:
                if initiator is not None:
                    initiator.is_generating = False
                record_session(
                    duration, error.split(":")[0] if error is not None else None
                )
                if on_finished is not None:
                    on_finished()

        result = SessionResult(
            request=request,
            utterances=received,
            dropped=dropped,
            error=error,
            duration_ms=duration * 1000,
        )
        self._results.append(result)

        self._logger.info(
            "Streaming session finished",
            agent_id=initiator_id,
            utterances=len(received),
            dropped=dropped,
            error=error,
            duration_ms=result.duration_ms,
        )
        return result

    def _accept(
        self,
        utterance: Utterance,
        participants_by_name: dict[str, str],
        received: list[Utterance],
    ) -> bool:
        try:
            speaker_id = self.resolve_speaker(utterance.speaker_name, participants_by_name)
        except UnknownSpeakerError as e:
            self._logger.warning(
                "Dropping utterance from unknown speaker",
                speaker_name=e.speaker_name,
                known=e.known_names,
            )
            return False

        state = self.registry.get(speaker_id)
        if state is None:
            self._logger.warning(
                "Dropping utterance for unregistered agent", agent_id=speaker_id
            )
            return False

        utterance.speaker_name = self.context_builder.display_name(speaker_id)
        if received:
            utterance.parent_id = received[-1].id

        received.append(utterance)
        state.enqueue(utterance)

        self._logger.debug(
            "Utterance enqueued",
            agent_id=speaker_id,
            utterance_id=utterance.id,
            parent_id=utterance.parent_id,
            talk_type=utterance.talk_type.value,
            text=utterance.text,
        )
        return True

    @staticmethod
    def resolve_speaker(name: str, participants_by_name: dict[str, str]) -> str:
        """Map a streamed speaker name to an agent id.

        Exact matches win; otherwise a case- and whitespace-insensitive match
        is accepted.

        Raises:
            UnknownSpeakerError: If no participant has that name
        """
        if name in participants_by_name:
            return participants_by_name[name]

        wanted = name.strip().casefold()
        for known, agent_id in participants_by_name.items():
            if known.strip().casefold() == wanted:
                return agent_id

        raise UnknownSpeakerError(name, list(participants_by_name))

    def _write_history(
        self, agent_ids: list[str], request: TalkRequest, received: list[Utterance]
    ) -> None:
        if not received:
            return

        exchange = serialize_exchange(received)
        tick = self.clock.current_tick()
        for agent_id in agent_ids:
            self.ledger.add_message_history(agent_id, request.prompt, exchange, tick)

    async def wait_idle(self) -> list[SessionResult]:
        """Wait for every in-flight session to finish.

        Returns:
            Results of the sessions that were awaited
        """
        pending = [
            asyncio.wrap_future(handle)
            if isinstance(handle, concurrent.futures.Future)
            else handle
            for handle in list(self._sessions)
        ]
        if not pending:
            return []

        outcomes = await asyncio.gather(*pending, return_exceptions=True)
        return [outcome for outcome in outcomes if isinstance(outcome, SessionResult)]

    async def shutdown(self) -> None:
        """Cancel in-flight sessions, e.g. when the simulation is torn down."""
        for handle in list(self._sessions):
            handle.cancel()
        await self.wait_idle()
        update_active_sessions(0)
