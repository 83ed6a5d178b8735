"""History ledger for utterance consumption and per-agent message history.

The ledger answers two questions for the playback scheduler: was an
utterance's parent ignored, and at which tick was the parent spoken. It also
remembers every completed exchange per agent so future prompts can refer
back to it.
"""

import threading
from collections.abc import Callable

from chorus.schemas.messages import HistoryRecord, MessageHistoryEntry
from chorus.schemas.types import TalkStatus
from chorus.utils.telemetry import get_logger

HistoryObserver = Callable[[HistoryRecord], None]


class HistoryLedger:
    """Append/update-only record of spoken and ignored utterances.

    Core Features
    -------------
    - **Write-once status**: the first spoken/ignored write for an id wins and
      later writes are no-ops, so pruning and display cannot double-record
    - **Spoken tick lookup**: ``get_spoken_tick`` returns -1 for anything not
      spoken (unknown, pending or ignored)
    - **Message history**: ordered ``(prompt, exchange)`` pairs per agent
    - **Observers**: callbacks notified after each spoken record

    Records are never deleted during a session. Both the tick loop and the
    streaming session touch the ledger, so all access is guarded by a lock.
    """

    def __init__(self) -> None:
        self._records: dict[str, HistoryRecord] = {}
        self._messages: dict[str, list[MessageHistoryEntry]] = {}
        self._observers: list[HistoryObserver] = []
        self._lock = threading.Lock()
        self._logger = get_logger("chorus.history")

    def add_spoken(self, utterance_id: str, tick: int) -> bool:
        """Mark an utterance as spoken at ``tick``.

        Returns:
            True if this call recorded the status, False if it was already set
        """
        if tick < 0:
            raise ValueError("Spoken tick must be non-negative")

        record = self._write_once(utterance_id, TalkStatus.SPOKEN, tick)
        if record is None:
            return False

        for observer in list(self._observers):
            try:
                observer(record)
            except Exception as e:
                self._logger.warning(
                    "History observer failed", utterance_id=utterance_id, error=str(e)
                )
        return True

    def add_ignored(self, utterance_id: str) -> bool:
        """Mark an utterance as consumed without being spoken.

        Returns:
            True if this call recorded the status, False if it was already set
        """
        return self._write_once(utterance_id, TalkStatus.IGNORED, -1) is not None

    def _write_once(
        self, utterance_id: str, status: TalkStatus, tick: int
    ) -> HistoryRecord | None:
        if not utterance_id:
            raise ValueError("utterance_id cannot be empty")

        with self._lock:
            existing = self._records.get(utterance_id)
            if existing is not None and existing.status != TalkStatus.PENDING:
                self._logger.debug(
                    "Ignoring repeated status write",
                    utterance_id=utterance_id,
                    existing=existing.status.value,
                    attempted=status.value,
                )
                return None

            record = HistoryRecord(
                utterance_id=utterance_id, status=status, spoken_tick=tick
            )
            self._records[utterance_id] = record
            return record

    def is_ignored(self, utterance_id: str | None) -> bool:
        """Whether the utterance was consumed as ignored; False for empty ids."""
        if not utterance_id:
            return False
        with self._lock:
            record = self._records.get(utterance_id)
        return record is not None and record.status == TalkStatus.IGNORED

    def get_spoken_tick(self, utterance_id: str | None) -> int:
        """Tick at which the utterance was spoken, or -1 if it never was."""
        if not utterance_id:
            return -1
        with self._lock:
            record = self._records.get(utterance_id)
        if record is None or record.status != TalkStatus.SPOKEN:
            return -1
        return record.spoken_tick

    def get_record(self, utterance_id: str) -> HistoryRecord | None:
        with self._lock:
            return self._records.get(utterance_id)

    def records(self) -> list[HistoryRecord]:
        with self._lock:
            return list(self._records.values())

    def add_message_history(
        self, agent_id: str, prompt: str, exchange: str, tick: int = -1
    ) -> None:
        """Remember a completed exchange for one agent."""
        entry = MessageHistoryEntry(prompt=prompt, exchange=exchange, tick=tick)
        with self._lock:
            self._messages.setdefault(agent_id, []).append(entry)

    def get_message_history(self, agent_id: str) -> list[tuple[str, str]]:
        """Ordered ``(prompt, exchange)`` pairs remembered by the agent."""
        with self._lock:
            entries = list(self._messages.get(agent_id, []))
        return [(entry.prompt, entry.exchange) for entry in entries]

    def get_message_entries(self, agent_id: str) -> list[MessageHistoryEntry]:
        with self._lock:
            return list(self._messages.get(agent_id, []))

    def subscribe(self, observer: HistoryObserver) -> Callable[[], None]:
        """Register a callback run after every spoken record.

        Returns:
            A function that unsubscribes the observer
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def get_stats(self) -> dict[str, int]:
        with self._lock:
            spoken = sum(
                1 for r in self._records.values() if r.status == TalkStatus.SPOKEN
            )
            ignored = sum(
                1 for r in self._records.values() if r.status == TalkStatus.IGNORED
            )
            agents = len(self._messages)
        return {"spoken": spoken, "ignored": ignored, "agents_with_history": agents}
