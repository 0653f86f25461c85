# Area: Round Tests
"""Tests for DeadlineTracker — phase deadline tracking."""

from unittest.mock import patch

from live_battle._round.deadline_tracker import DeadlineTracker


MOCK_TIME = "live_battle._round.deadline_tracker.time"


class TestDeadlineTracker:
    """Unit tests for DeadlineTracker."""

    def test_set_and_check_not_expired(self):
        tracker = DeadlineTracker()
        with patch(MOCK_TIME) as mock_time:
            mock_time.monotonic.return_value = 100.0
            tracker.set_deadline("question[0]", 30)
            assert tracker.is_expired("question[0]") is False

    def test_expires_at_deadline(self):
        tracker = DeadlineTracker()
        with patch(MOCK_TIME) as mock_time:
            mock_time.monotonic.return_value = 100.0
            tracker.set_deadline("question[0]", 30)

            mock_time.monotonic.return_value = 129.9
            assert tracker.is_expired("question[0]") is False

            mock_time.monotonic.return_value = 130.0
            assert tracker.is_expired("question[0]") is True

    def test_elapsed_ms(self):
        tracker = DeadlineTracker()
        with patch(MOCK_TIME) as mock_time:
            mock_time.monotonic.return_value = 100.0
            tracker.set_deadline("question[1]", 30)

            mock_time.monotonic.return_value = 115.25
            assert tracker.elapsed_ms("question[1]") == 15250

    def test_opened_ago_backdates_elapsed(self):
        tracker = DeadlineTracker()
        with patch(MOCK_TIME) as mock_time:
            mock_time.monotonic.return_value = 100.0
            tracker.set_deadline("question[0]", 10, opened_ago=20)
            assert tracker.elapsed_ms("question[0]") == 20000

            mock_time.monotonic.return_value = 109.9
            assert tracker.is_expired("question[0]") is False
            mock_time.monotonic.return_value = 110.0
            assert tracker.is_expired("question[0]") is True

    def test_untracked_key(self):
        tracker = DeadlineTracker()
        assert tracker.elapsed_ms("question[9]") is None
        assert tracker.is_expired("question[9]") is True

    def test_cancel_removes_deadline(self):
        tracker = DeadlineTracker()
        with patch(MOCK_TIME) as mock_time:
            mock_time.monotonic.return_value = 100.0
            tracker.set_deadline("countdown", 3)
            tracker.cancel("countdown")
            assert tracker.elapsed_ms("countdown") is None
            assert tracker.is_expired("countdown") is True

    def test_cancel_unknown_key_is_noop(self):
        tracker = DeadlineTracker()
        tracker.cancel("reveal[4]")

    def test_clear_removes_all(self):
        tracker = DeadlineTracker()
        with patch(MOCK_TIME) as mock_time:
            mock_time.monotonic.return_value = 100.0
            tracker.set_deadline("question[0]", 30)
            tracker.set_deadline("reveal[0]", 5)
            tracker.clear()

            assert tracker.elapsed_ms("question[0]") is None
            assert tracker.elapsed_ms("reveal[0]") is None

    def test_overwrite_resets_deadline(self):
        tracker = DeadlineTracker()
        with patch(MOCK_TIME) as mock_time:
            mock_time.monotonic.return_value = 100.0
            tracker.set_deadline("question[0]", 10)
            mock_time.monotonic.return_value = 105.0
            tracker.set_deadline("question[0]", 10)

            mock_time.monotonic.return_value = 111.0
            assert tracker.is_expired("question[0]") is False
