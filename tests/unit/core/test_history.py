"""Unit tests for the history ledger."""

import pytest

from chorus.core.history import HistoryLedger
from chorus.schemas.types import TalkStatus


class TestStatusRecords:
    """Test spoken/ignored bookkeeping."""

    def test_add_spoken_records_tick(self):
        """Spoken utterances remember the tick they were spoken on."""
        ledger = HistoryLedger()

        assert ledger.add_spoken("u1", 42) is True
        assert ledger.get_spoken_tick("u1") == 42
        assert not ledger.is_ignored("u1")

    def test_add_ignored(self):
        """Ignored utterances are flagged and have no spoken tick."""
        ledger = HistoryLedger()

        assert ledger.add_ignored("u1") is True
        assert ledger.is_ignored("u1")
        assert ledger.get_spoken_tick("u1") == -1

    def test_first_write_wins(self):
        """Later writes for the same id are no-ops."""
        ledger = HistoryLedger()

        ledger.add_ignored("u1")
        assert ledger.add_spoken("u1", 10) is False
        assert ledger.is_ignored("u1")

        ledger.add_spoken("u2", 5)
        assert ledger.add_spoken("u2", 99) is False
        assert ledger.add_ignored("u2") is False
        assert ledger.get_spoken_tick("u2") == 5

    def test_unknown_and_empty_ids(self):
        """Unknown or empty ids are neither ignored nor spoken."""
        ledger = HistoryLedger()

        assert not ledger.is_ignored("missing")
        assert not ledger.is_ignored("")
        assert not ledger.is_ignored(None)
        assert ledger.get_spoken_tick("missing") == -1
        assert ledger.get_spoken_tick("") == -1

    def test_invalid_writes_rejected(self):
        """Negative ticks and empty ids are programming errors."""
        ledger = HistoryLedger()

        with pytest.raises(ValueError):
            ledger.add_spoken("u1", -1)
        with pytest.raises(ValueError):
            ledger.add_ignored("")

    def test_each_id_recorded_once(self):
        """Every consumed id appears exactly once in the records."""
        ledger = HistoryLedger()
        ledger.add_spoken("a", 1)
        ledger.add_spoken("a", 2)
        ledger.add_ignored("b")
        ledger.add_ignored("b")

        records = {r.utterance_id: r for r in ledger.records()}
        assert len(ledger.records()) == 2
        assert records["a"].status == TalkStatus.SPOKEN
        assert records["a"].spoken_tick == 1
        assert records["b"].status == TalkStatus.IGNORED
        assert ledger.get_stats()["spoken"] == 1
        assert ledger.get_stats()["ignored"] == 1


class TestMessageHistory:
    """Test per-agent exchange history."""

    def test_history_is_ordered_per_agent(self):
        """Exchanges come back in insertion order for each agent."""
        ledger = HistoryLedger()
        ledger.add_message_history("ann", "p1", "[1]", tick=3)
        ledger.add_message_history("bo", "p1", "[1]")
        ledger.add_message_history("ann", "p2", "[2]", tick=7)

        assert ledger.get_message_history("ann") == [("p1", "[1]"), ("p2", "[2]")]
        assert ledger.get_message_history("bo") == [("p1", "[1]")]
        assert ledger.get_message_history("cy") == []
        assert [e.tick for e in ledger.get_message_entries("ann")] == [3, 7]


class TestObservers:
    """Test history observers."""

    def test_observer_notified_on_spoken_only(self):
        """Observers run after spoken records, not ignored ones."""
        ledger = HistoryLedger()
        seen = []
        ledger.subscribe(seen.append)

        ledger.add_spoken("u1", 4)
        ledger.add_ignored("u2")
        ledger.add_spoken("u1", 5)

        assert [r.utterance_id for r in seen] == ["u1"]

    def test_failing_observer_does_not_break_recording(self):
        """An observer exception is logged and the record still stands."""
        ledger = HistoryLedger()

        def boom(record):
            raise RuntimeError("overlay gone")

        ledger.subscribe(boom)
        assert ledger.add_spoken("u1", 1) is True
        assert ledger.get_spoken_tick("u1") == 1

    def test_unsubscribe(self):
        """Unsubscribed observers are no longer called."""
        ledger = HistoryLedger()
        seen = []
        unsubscribe = ledger.subscribe(seen.append)
        unsubscribe()
        unsubscribe()

        ledger.add_spoken("u1", 1)
        assert seen == []
