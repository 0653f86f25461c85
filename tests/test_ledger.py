# Area: Round Tests
"""Tests for the Answer Ledger."""

import sqlite3

import pytest

from live_battle._room.models import BattleRoom, NO_ANSWER
from live_battle._room.repo_answers import AnswerRepository
from live_battle._room.repo_rooms import RoomRepository
from live_battle._round.ledger import AnswerLedger
from live_battle.errors import (
    DuplicateSubmission,
    InvalidCommand,
    InvalidStateTransition,
    QuestionWindowClosed,
)

LIMIT_MS = 30000


class TestAnswerLedger:
    """Tests for AnswerLedger."""

    @pytest.fixture
    def repo(self, database, question_factory):
        # Ledger rows reference a room row
        RoomRepository(database).save_room(BattleRoom(
            id="room-1", code="ABC123", host_id="alice", max_participants=2,
            questions=(question_factory("q1"), question_factory("q2")),
        ))
        return AnswerRepository(database)

    @pytest.fixture
    def ledger(self, repo):
        ledger = AnswerLedger("room-1", repo)
        ledger.open_window("q1")
        return ledger

    def test_submit_records_entry(self, ledger):
        entry = ledger.submit("q1", "alice", 2, 1200, LIMIT_MS)
        assert entry.selected_index == 2
        assert entry.submitted_at_offset_ms == 1200
        assert entry.scored is False
        assert ledger.get("q1", "alice") == entry

    def test_offset_is_clamped_to_limit(self, ledger):
        entry = ledger.submit("q1", "alice", 0, 99999, LIMIT_MS)
        assert entry.submitted_at_offset_ms == LIMIT_MS

    def test_second_submission_is_rejected_not_overwritten(self, ledger):
        ledger.submit("q1", "alice", 1, 500, LIMIT_MS)
        with pytest.raises(DuplicateSubmission):
            ledger.submit("q1", "alice", 2, 900, LIMIT_MS)
        assert ledger.get("q1", "alice").selected_index == 1
        assert len(ledger.entries_for("q1")) == 1

    def test_submit_to_closed_window(self, ledger):
        ledger.close_window()
        with pytest.raises(QuestionWindowClosed):
            ledger.submit("q1", "alice", 1, 500, LIMIT_MS)

    def test_submit_to_other_question(self, ledger):
        with pytest.raises(QuestionWindowClosed):
            ledger.submit("q2", "alice", 1, 500, LIMIT_MS)

    @pytest.mark.parametrize("selected", [-2, 4, 99])
    def test_out_of_range_index(self, ledger, selected):
        with pytest.raises(InvalidCommand):
            ledger.submit("q1", "alice", selected, 500, LIMIT_MS)
        assert ledger.entries_for("q1") == []

    def test_explicit_decline_is_accepted(self, ledger):
        entry = ledger.submit("q1", "alice", NO_ANSWER, 500, LIMIT_MS)
        assert entry.timed_out is True

    def test_timeout_entries_only_for_missing(self, ledger):
        ledger.submit("q1", "alice", 1, 500, LIMIT_MS)
        created = ledger.timeout_entries("q1", ["alice", "bob"], LIMIT_MS)
        assert [e.user_id for e in created] == ["bob"]
        assert created[0].selected_index == NO_ANSWER
        assert created[0].submitted_at_offset_ms == LIMIT_MS
        # Nothing is recorded until the question is settled
        assert ledger.answered_users("q1") == {"alice"}

    def test_timeout_equals_decline_at_full_offset(self, ledger):
        declined = ledger.submit("q1", "alice", NO_ANSWER, LIMIT_MS, LIMIT_MS)
        timed_out = ledger.timeout_entries("q1", ["bob"], LIMIT_MS)[0]
        assert (declined.selected_index, declined.submitted_at_offset_ms, declined.scored) == (
            timed_out.selected_index, timed_out.submitted_at_offset_ms, timed_out.scored
        )

    def test_entries_keep_arrival_order(self, ledger):
        ledger.submit("q1", "carol", 0, 100, LIMIT_MS)
        ledger.submit("q1", "alice", 0, 200, LIMIT_MS)
        assert [e.user_id for e in ledger.entries_for("q1")] == ["carol", "alice"]

    def test_settle_records_timeouts_and_scores_once(self, ledger, repo):
        ledger.submit("q1", "alice", 0, 100, LIMIT_MS)
        timeouts = ledger.timeout_entries("q1", ["alice", "bob"], LIMIT_MS)
        ledger.settle("q1", timeouts, {"alice": 15, "bob": 0})

        assert ledger.get("q1", "alice").scored is True
        assert ledger.get("q1", "bob").selected_index == NO_ANSWER
        assert ledger.is_scored("q1") is True
        rows = {r["user_id"]: r for r in repo.get_entries("room-1", "q1")}
        assert (rows["alice"]["points"], rows["bob"]["points"]) == (15, 0)
        assert rows["bob"]["scored"] == 1

        with pytest.raises(InvalidStateTransition):
            ledger.settle("q1", [], {"alice": 15})

    def test_failed_settle_leaves_memory_unchanged(self, ledger, repo, database):
        ledger.submit("q1", "alice", 0, 100, LIMIT_MS)
        timeouts = ledger.timeout_entries("q1", ["bob"], LIMIT_MS)

        def broken(*args, **kwargs):
            raise sqlite3.OperationalError("disk I/O error")

        repo.mark_scored = broken
        with pytest.raises(sqlite3.OperationalError):
            with database.transaction():
                ledger.settle("q1", timeouts, {"alice": 15, "bob": 0})

        assert ledger.get("q1", "bob") is None
        assert ledger.get("q1", "alice").scored is False
        assert [r["user_id"] for r in repo.get_entries("room-1", "q1")] == ["alice"]

    def test_rejected_insert_leaves_no_sequence_gap(self, ledger, repo):
        ledger.submit("q1", "alice", 0, 100, LIMIT_MS)
        # A row this ledger has not seen yet
        other = AnswerLedger("room-1", repo)
        other.open_window("q1")
        other._seq = 10
        other.submit("q1", "bob", 1, 200, LIMIT_MS)

        with pytest.raises(DuplicateSubmission):
            ledger.submit("q1", "bob", 2, 300, LIMIT_MS)
        ledger.submit("q1", "carol", 3, 400, LIMIT_MS)

        seqs = {r["user_id"]: r["seq"] for r in repo.get_entries("room-1", "q1")}
        assert seqs == {"alice": 1, "bob": 11, "carol": 2}

    def test_durable_key_rejects_duplicates_across_ledgers(self, ledger, repo):
        """A second ledger over the same storage still cannot add a duplicate."""
        ledger.submit("q1", "alice", 0, 100, LIMIT_MS)
        other = AnswerLedger("room-1", repo)
        other.open_window("q1")
        with pytest.raises(DuplicateSubmission):
            other.submit("q1", "alice", 3, 100, LIMIT_MS)
        assert len(repo.get_entries("room-1", "q1")) == 1

    def test_load_rebuilds_entries(self, ledger, repo):
        ledger.submit("q1", "alice", 0, 100, LIMIT_MS)
        ledger.submit("q1", "bob", 2, 300, LIMIT_MS)
        ledger.settle("q1", [], {"alice": 15, "bob": 0})

        loaded = AnswerLedger.load("room-1", repo)
        assert loaded.open_question is None
        assert [e.user_id for e in loaded.entries_for("q1")] == ["alice", "bob"]
        assert loaded.is_scored("q1") is True

        loaded.open_window("q2")
        loaded.submit("q2", "alice", 1, 50, LIMIT_MS)
        assert [r["seq"] for r in repo.get_entries("room-1")] == [1, 2, 3]
