# Area: Round Tests
"""Tests for the Round Controller: phases, timers, scoring and races."""

import asyncio
import sqlite3
from unittest.mock import patch

import pytest

from live_battle._engine_config import EngineConfig
from live_battle._room.enums import CloseTrigger, RoomStatus
from live_battle._room.models import NO_ANSWER, Phase
from live_battle._room.repo_rooms import RoomRepository
from live_battle._round.controller import resolve_offset
from live_battle._shared.events import (
    AnswerAccepted,
    BattleComplete,
    PhaseChanged,
    QuestionRevealed,
    RoomStateChanged,
)
from live_battle.errors import (
    DuplicateSubmission,
    NotHost,
    QuestionWindowClosed,
    UnknownParticipant,
)

MOCK_TIME = "live_battle._round.deadline_tracker.time"


async def start_battle(arena, players, wait_for_phase, **room_kwargs):
    """Create a room, seat and ready every player, wait for question 0."""
    host, *others = players
    room = await arena.create_room(host, max_participants=max(len(players), 2), **room_kwargs)
    for user_id in others:
        await arena.join(room.id, user_id)
    for user_id in players:
        await arena.set_ready(room.id, user_id)
    await wait_for_phase(arena, room.id, Phase.question(0))
    return room


@pytest.fixture
def host_paced_config():
    return EngineConfig(
        countdown_seconds=0, reveal_seconds=0, host_paced_reveal=True,
        reveal_max_wait_seconds=30, log_file="",
    )


class TestResolveOffset:
    """Tests for resolve_offset()."""

    def test_no_client_offset_uses_server_time(self):
        assert resolve_offset(4200, None, 1000) == 4200

    def test_client_offset_inside_allowance(self):
        assert resolve_offset(4200, 3500, 1000) == 3500

    def test_client_offset_clamped_to_allowance(self):
        assert resolve_offset(4200, 100, 1000) == 3200

    def test_client_cannot_claim_later_than_server(self):
        assert resolve_offset(4200, 9000, 1000) == 4200

    def test_never_negative(self):
        assert resolve_offset(300, 0, 1000) == 0


class TestCountdown:
    """The battle starts only when enough participants are all ready."""

    def test_waits_for_everyone_ready(self, arena_factory, question_factory):
        async def scenario():
            arena = arena_factory([question_factory()])
            room = await arena.create_room("alice", max_participants=3)
            await arena.join(room.id, "bob")
            await arena.set_ready(room.id, "alice")
            await asyncio.sleep(0.02)
            assert room.status == RoomStatus.WAITING
            await arena.shutdown()

        asyncio.run(scenario())

    def test_respects_min_participants(self, arena_factory, question_factory):
        async def scenario():
            config = EngineConfig(countdown_seconds=0, reveal_seconds=0, min_participants=3, log_file="")
            arena = arena_factory([question_factory()], config=config)
            room = await arena.create_room("alice", max_participants=3)
            await arena.join(room.id, "bob")
            await arena.set_ready(room.id, "alice")
            await arena.set_ready(room.id, "bob")
            await asyncio.sleep(0.02)
            assert room.status == RoomStatus.WAITING
            await arena.shutdown()

        asyncio.run(scenario())

    def test_leave_of_unready_player_starts_countdown(
        self, arena_factory, question_factory, wait_for_phase
    ):
        async def scenario():
            arena = arena_factory([question_factory()])
            room = await arena.create_room("alice", max_participants=3)
            await arena.join(room.id, "bob")
            await arena.join(room.id, "carol")
            await arena.set_ready(room.id, "alice")
            await arena.set_ready(room.id, "bob")
            await arena.leave(room.id, "carol")
            await wait_for_phase(arena, room.id, Phase.question(0))
            await arena.shutdown()

        asyncio.run(scenario())

    def test_countdown_event_carries_deadline(self, arena_factory, question_factory, recorder):
        async def scenario():
            config = EngineConfig(countdown_seconds=5, log_file="")
            arena = arena_factory([question_factory()], config=config)
            room = await arena.create_room("alice", max_participants=2)
            await arena.join(room.id, "bob")
            await arena.set_ready(room.id, "alice")
            await arena.set_ready(room.id, "bob")
            assert room.phase == Phase.countdown()
            assert "countdown" in arena.controller(room.id).pending_timers()
            await arena.shutdown()

        asyncio.run(scenario())
        countdown = [e for e in recorder.of_type(PhaseChanged) if e.phase == "countdown"]
        assert len(countdown) == 1
        assert countdown[0].duration_ms == 5000
        assert countdown[0].deadline_ms is not None


class TestFullBattle:
    """End-to-end battles driven through the arena."""

    def test_two_players_three_questions(
        self, arena_factory, question_factory, recorder, wait_for_phase
    ):
        questions = [question_factory(f"q{i}", correct_index=i) for i in range(3)]

        async def scenario():
            arena = arena_factory(questions)
            room = await start_battle(arena, ["alice", "bob"], wait_for_phase)
            for i, question in enumerate(questions):
                await wait_for_phase(arena, room.id, Phase.question(i))
                await arena.submit_answer(room.id, "alice", question.id, question.correct_index)
                await arena.submit_answer(room.id, "bob", question.id, (question.correct_index + 1) % 4)
            return await arena.wait_until_finished(room.id, timeout=2)

        room = asyncio.run(scenario())
        assert room.status == RoomStatus.COMPLETE
        assert room.current_question_index == 3
        assert [s.user_id for s in room.standings] == ["alice", "bob"]
        assert room.standings[0].correct_count == 3
        assert room.standings[1].total_score == 0

        revealed = recorder.of_type(QuestionRevealed)
        assert [e.question_id for e in revealed] == ["q0", "q1", "q2"]
        assert all(e.trigger == "all_answered" for e in revealed)
        complete = recorder.of_type(BattleComplete)
        assert len(complete) == 1
        assert complete[0].standings[0].rank == 1
        assert [h["correct"] for h in complete[0].history["bob"]] == [False, False, False]
        assert [h["question_id"] for h in complete[0].history["alice"]] == ["q0", "q1", "q2"]

    def test_speed_bonus_orders_equal_answers(
        self, arena_factory, question_factory, recorder, wait_for_phase
    ):
        """Both correct; the answer at 0 ms earns 15 and the one at 15 s earns 13."""
        question = question_factory("q1", correct_index=2, time_limit_seconds=30, base_points=10)

        async def scenario(mock_time):
            arena = arena_factory([question])
            room = await start_battle(arena, ["alice", "bob"], wait_for_phase)
            await arena.submit_answer(room.id, "alice", "q1", 2)
            mock_time.monotonic.return_value = 1015.0
            await arena.submit_answer(room.id, "bob", "q1", 2)
            return await arena.wait_until_finished(room.id, timeout=2)

        with patch(MOCK_TIME) as mock_time:
            mock_time.monotonic.return_value = 1000.0
            room = asyncio.run(scenario(mock_time))

        revealed = recorder.of_type(QuestionRevealed)[0]
        assert revealed.per_player_points == {"alice": 15, "bob": 13}
        assert revealed.correct_index == 2
        assert [(s.user_id, s.total_score, s.rank) for s in room.standings] == [
            ("alice", 15, 1), ("bob", 13, 2),
        ]

    def test_question_event_hides_correct_answer(
        self, arena_factory, question_factory, recorder, wait_for_phase
    ):
        async def scenario():
            arena = arena_factory([question_factory("q1", time_limit_seconds=30)])
            await start_battle(arena, ["alice", "bob"], wait_for_phase)
            await arena.shutdown()

        asyncio.run(scenario())
        opened = [e for e in recorder.of_type(PhaseChanged) if e.phase == "question"][0]
        assert opened.question["id"] == "q1"
        assert "correct_index" not in opened.question
        assert opened.duration_ms == 30000

    def test_scores_never_decrease(
        self, arena_factory, question_factory, recorder, wait_for_phase
    ):
        questions = [question_factory(f"q{i}") for i in range(3)]

        async def scenario():
            arena = arena_factory(questions)
            room = await start_battle(arena, ["alice", "bob"], wait_for_phase)
            for i, question in enumerate(questions):
                await wait_for_phase(arena, room.id, Phase.question(i))
                await arena.submit_answer(room.id, "alice", question.id, i % 2)
                await arena.submit_answer(room.id, "bob", question.id, 0)
            await arena.wait_until_finished(room.id, timeout=2)

        asyncio.run(scenario())
        last = {}
        for event in recorder.of_type(RoomStateChanged):
            for p in event.participants:
                assert p.score >= last.get(p.user_id, 0)
                last[p.user_id] = p.score


class TestSubmissions:
    """Tests for answer submission rules."""

    def test_concurrent_duplicate_submissions(
        self, arena_factory, question_factory, recorder, wait_for_phase
    ):
        async def scenario():
            arena = arena_factory([question_factory("q1")])
            room = await start_battle(arena, ["alice", "bob", "carol"], wait_for_phase)
            results = await asyncio.gather(
                arena.submit_answer(room.id, "alice", "q1", 0),
                arena.submit_answer(room.id, "alice", "q1", 1),
                return_exceptions=True,
            )
            controller = arena.controller(room.id)
            entries = controller.ledger.entries_for("q1")
            await arena.shutdown()
            return results, entries

        results, entries = asyncio.run(scenario())
        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], DuplicateSubmission)
        assert len(entries) == 1
        assert len(recorder.of_type(AnswerAccepted)) == 1

    def test_submit_for_wrong_question(self, arena_factory, question_factory, wait_for_phase):
        async def scenario():
            arena = arena_factory([question_factory("q1"), question_factory("q2")])
            room = await start_battle(arena, ["alice", "bob"], wait_for_phase)
            try:
                with pytest.raises(QuestionWindowClosed):
                    await arena.submit_answer(room.id, "alice", "q2", 0)
                with pytest.raises(UnknownParticipant):
                    await arena.submit_answer(room.id, "mallory", "q1", 0)
            finally:
                await arena.shutdown()

        asyncio.run(scenario())

    def test_submit_before_start(self, arena_factory, question_factory):
        async def scenario():
            arena = arena_factory([question_factory("q1")])
            room = await arena.create_room("alice", max_participants=2)
            with pytest.raises(QuestionWindowClosed):
                await arena.submit_answer(room.id, "alice", "q1", 0)

        asyncio.run(scenario())

    def test_submit_after_deadline_before_timer(
        self, arena_factory, question_factory, wait_for_phase
    ):
        async def scenario(mock_time):
            arena = arena_factory([question_factory("q1", time_limit_seconds=30)])
            room = await start_battle(arena, ["alice", "bob"], wait_for_phase)
            mock_time.monotonic.return_value = 1031.0
            try:
                with pytest.raises(QuestionWindowClosed):
                    await arena.submit_answer(room.id, "alice", "q1", 0)
                assert room.phase == Phase.question(0)
            finally:
                await arena.shutdown()

        with patch(MOCK_TIME) as mock_time:
            mock_time.monotonic.return_value = 1000.0
            asyncio.run(scenario(mock_time))

    def test_client_offset_is_bounded_by_server_time(
        self, arena_factory, question_factory, wait_for_phase
    ):
        async def scenario(mock_time):
            arena = arena_factory([question_factory("q1")])
            room = await start_battle(arena, ["alice", "bob", "carol"], wait_for_phase)
            mock_time.monotonic.return_value = 1010.0
            early = await arena.submit_answer(room.id, "alice", "q1", 0, client_offset_ms=10)
            honest = await arena.submit_answer(room.id, "bob", "q1", 0, client_offset_ms=9500)
            await arena.shutdown()
            return early, honest

        with patch(MOCK_TIME) as mock_time:
            mock_time.monotonic.return_value = 1000.0
            early, honest = asyncio.run(scenario(mock_time))
        assert early.submitted_at_offset_ms == 9000
        assert honest.submitted_at_offset_ms == 9500


class TestTimeouts:
    """Tests for the question timer."""

    def test_unanswered_question_closes_on_timeout(
        self, arena_factory, question_factory, recorder, wait_for_phase
    ):
        async def scenario():
            arena = arena_factory([question_factory("q1", time_limit_seconds=0.1)])
            room = await start_battle(arena, ["alice", "bob"], wait_for_phase)
            await arena.submit_answer(room.id, "alice", "q1", 0)
            room = await arena.wait_until_finished(room.id, timeout=3)
            entries = arena.controller(room.id).ledger.entries_for("q1")
            return room, entries

        room, entries = asyncio.run(scenario())
        revealed = recorder.of_type(QuestionRevealed)
        assert len(revealed) == 1
        assert revealed[0].trigger == "timeout"
        assert revealed[0].per_player_points["bob"] == 0

        bob = [e for e in entries if e.user_id == "bob"][0]
        assert bob.selected_index == NO_ANSWER
        assert bob.submitted_at_offset_ms == 100
        assert bob.scored is True
        assert room.status == RoomStatus.COMPLETE

    def test_late_timer_does_not_rescore(
        self, arena_factory, question_factory, recorder, wait_for_phase, host_paced_config
    ):
        """A timer that fires after the last answer closed the question is a no-op."""
        async def scenario():
            arena = arena_factory([question_factory("q1"), question_factory("q2")], config=host_paced_config)
            room = await start_battle(arena, ["alice", "bob"], wait_for_phase)
            await arena.submit_answer(room.id, "alice", "q1", 0)
            await arena.submit_answer(room.id, "bob", "q1", 0)
            assert room.phase == Phase.reveal(0)
            scores = {u: p.score for u, p in room.participants.items()}

            controller = arena.controller(room.id)
            controller._schedule_timer(
                "late", 0, lambda: controller._close_question(0, CloseTrigger.TIMEOUT),
            )
            await asyncio.sleep(0.05)
            after = {u: p.score for u, p in room.participants.items()}
            await arena.shutdown()
            return scores, after, room

        scores, after, room = asyncio.run(scenario())
        assert scores == after
        assert room.phase == Phase.reveal(0)
        assert len(recorder.of_type(QuestionRevealed)) == 1


class TestHostAdvance:
    """Tests for host-paced reveals."""

    def test_host_advances_reveal(
        self, arena_factory, question_factory, wait_for_phase, host_paced_config
    ):
        async def scenario():
            arena = arena_factory([question_factory("q1"), question_factory("q2")], config=host_paced_config)
            room = await start_battle(arena, ["alice", "bob"], wait_for_phase)
            try:
                assert await arena.host_advance(room.id, "alice") is False
                await arena.submit_answer(room.id, "alice", "q1", 0)
                await arena.submit_answer(room.id, "bob", "q1", 1)
                await asyncio.sleep(0.02)
                assert room.phase == Phase.reveal(0)

                with pytest.raises(NotHost):
                    await arena.host_advance(room.id, "bob")
                assert await arena.host_advance(room.id, "alice") is True
                assert room.phase == Phase.question(1)
            finally:
                await arena.shutdown()

        asyncio.run(scenario())

    def test_reveal_wait_is_capped(self, arena_factory, question_factory, wait_for_phase):
        config = EngineConfig(
            countdown_seconds=0, reveal_seconds=0, host_paced_reveal=True,
            reveal_max_wait_seconds=0.05, log_file="",
        )

        async def scenario():
            arena = arena_factory([question_factory("q1")], config=config)
            room = await start_battle(arena, ["alice", "bob"], wait_for_phase)
            await arena.submit_answer(room.id, "alice", "q1", 0)
            await arena.submit_answer(room.id, "bob", "q1", 0)
            return await arena.wait_until_finished(room.id, timeout=2)

        assert asyncio.run(scenario()).status == RoomStatus.COMPLETE


class TestConnections:
    """Tests for disconnects, reconnects and aborts."""

    def test_disconnect_before_third_question(
        self, arena_factory, question_factory, wait_for_phase
    ):
        questions = [question_factory(f"q{i}") for i in range(5)]

        async def scenario():
            arena = arena_factory(questions)
            room = await start_battle(arena, ["alice", "bob"], wait_for_phase)
            for i in range(2):
                await wait_for_phase(arena, room.id, Phase.question(i))
                await arena.submit_answer(room.id, "alice", f"q{i}", 0)
                await arena.submit_answer(room.id, "bob", f"q{i}", 0)

            await wait_for_phase(arena, room.id, Phase.question(2))
            await arena.disconnect(room.id, "bob")
            for i in range(2, 5):
                await wait_for_phase(arena, room.id, Phase.question(i))
                await arena.submit_answer(room.id, "alice", f"q{i}", 0)
            return await arena.wait_until_finished(room.id, timeout=2)

        room = asyncio.run(scenario())
        assert room.status == RoomStatus.COMPLETE
        standings = {s.user_id: s for s in room.standings}
        assert standings["alice"].correct_count == 5
        assert standings["bob"].correct_count == 2
        assert standings["bob"].answered_count == 5
        assert standings["alice"].rank == 1

    def test_disconnect_closes_question_when_rest_answered(
        self, arena_factory, question_factory, recorder, wait_for_phase
    ):
        async def scenario():
            arena = arena_factory([question_factory("q1")])
            room = await start_battle(arena, ["alice", "bob", "carol"], wait_for_phase)
            await arena.submit_answer(room.id, "alice", "q1", 0)
            await arena.submit_answer(room.id, "bob", "q1", 0)
            await arena.disconnect(room.id, "carol")
            return await arena.wait_until_finished(room.id, timeout=2)

        room = asyncio.run(scenario())
        assert room.status == RoomStatus.COMPLETE
        assert recorder.of_type(QuestionRevealed)[0].trigger == "all_answered"

    def test_reconnected_player_is_waited_for(
        self, arena_factory, question_factory, wait_for_phase
    ):
        async def scenario():
            arena = arena_factory([question_factory("q1"), question_factory("q2")])
            room = await start_battle(arena, ["alice", "bob"], wait_for_phase)
            await arena.disconnect(room.id, "bob")
            await arena.submit_answer(room.id, "alice", "q1", 0)
            await wait_for_phase(arena, room.id, Phase.question(1))
            await arena.reconnect(room.id, "bob")
            await arena.submit_answer(room.id, "alice", "q2", 0)
            try:
                assert room.phase == Phase.question(1)
            finally:
                await arena.shutdown()

        asyncio.run(scenario())

    def test_everyone_disconnected_abandons(
        self, arena_factory, question_factory, recorder, wait_for_phase
    ):
        async def scenario():
            arena = arena_factory([question_factory("q1")])
            room = await start_battle(arena, ["alice", "bob"], wait_for_phase)
            await arena.disconnect(room.id, "alice")
            await arena.disconnect(room.id, "bob")
            return await arena.wait_until_finished(room.id, timeout=1), arena

        room, arena = asyncio.run(scenario())
        assert room.status == RoomStatus.ABANDONED
        assert arena.controller(room.id).pending_timers() == {}
        abandoned = [e for e in recorder.of_type(PhaseChanged) if e.phase == "abandoned"]
        assert abandoned[0].reason == "all participants disconnected"

    def test_abort(self, arena_factory, question_factory, wait_for_phase):
        async def scenario():
            arena = arena_factory([question_factory("q1")])
            room = await start_battle(arena, ["alice", "bob"], wait_for_phase)
            assert await arena.abort(room.id, "operator stop") is True
            assert await arena.abort(room.id) is False
            with pytest.raises(QuestionWindowClosed):
                await arena.submit_answer(room.id, "alice", "q1", 0)
            return room

        room = asyncio.run(scenario())
        assert room.status == RoomStatus.ABANDONED
        assert room.standings is None

    def test_abort_during_reveal_discards_partial_scores(
        self, arena_factory, question_factory, wait_for_phase, database
    ):
        config = EngineConfig(countdown_seconds=0, reveal_seconds=5, log_file="")

        async def scenario():
            arena = arena_factory(
                [question_factory("q1"), question_factory("q2")], config=config, database=database,
            )
            room = await start_battle(arena, ["alice", "bob"], wait_for_phase)
            await arena.submit_answer(room.id, "alice", "q1", 0)
            await arena.submit_answer(room.id, "bob", "q1", 2)
            assert room.phase == Phase.reveal(0)
            assert room.participants["alice"].score > 0
            await arena.abort(room.id, "operator stop")
            return room

        room = asyncio.run(scenario())
        assert room.status == RoomStatus.ABANDONED
        assert {p.user_id: p.score for p in room.participants.values()} == {"alice": 0, "bob": 0}
        repo = RoomRepository(database)
        assert {p["user_id"]: p["score"] for p in repo.get_participants(room.id)} == {"alice": 0, "bob": 0}
        assert repo.get_standings(room.id) == []


class TestStorageFailures:
    """A failed write while closing a question changes nothing."""

    def test_failed_close_keeps_question_open(
        self, arena_factory, question_factory, wait_for_phase, database
    ):
        async def scenario():
            arena = arena_factory([question_factory("q1")], database=database)
            room = await start_battle(arena, ["alice", "bob"], wait_for_phase)
            controller = arena.controller(room.id)

            def broken(*args, **kwargs):
                raise sqlite3.OperationalError("disk I/O error")

            arena.store.answers_repo.mark_scored = broken
            await arena.submit_answer(room.id, "alice", "q1", 0)
            with pytest.raises(sqlite3.OperationalError):
                await arena.submit_answer(room.id, "bob", "q1", 0)
            try:
                return room, controller.ledger.all_entries()
            finally:
                await arena.shutdown()

        room, entries = asyncio.run(scenario())
        assert room.phase == Phase.question(0)
        assert room.round_results == []
        assert {p.score for p in room.participants.values()} == {0}
        assert [e.scored for e in entries] == [False, False]

        row = RoomRepository(database).get_room(room.id)
        assert (row["phase_kind"], row["question_index"]) == ("question", 0)
        scores = {p["user_id"]: p["score"] for p in RoomRepository(database).get_participants(room.id)}
        assert scores == {"alice": 0, "bob": 0}
