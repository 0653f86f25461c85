# Area: Round
"""
live_battle._round.controller — Round Controller
================================================

Drives one room through its phases:

    waiting -> countdown -> question[i] -> reveal[i] -> question[i+1] | complete

with ``abandoned`` reachable from any non-terminal phase.

Every mutation of the room runs under the controller's asyncio lock.
Timers are tasks that sleep, then take the same lock before acting, so a
timer expiry and a last answer can never both close a question: the
first one through the lock moves the phase, the second finds the phase
changed and its ``StaleTransition`` is dropped.

Phase durations are measured on the monotonic clock (DeadlineTracker).
Wall-clock deadlines are stored with the phase so a restarted process can
re-arm its timers.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional

from .deadline_tracker import DeadlineTracker
from .ledger import AnswerLedger
from .ranking import answer_history, resolve
from .scoring import score_breakdown
from .._engine_config import EngineConfig
from .._room.enums import AdvanceTrigger, CloseTrigger, ConnectionState, PhaseKind, RoomStatus
from .._room.models import AnswerEntry, BattleRoom, Participant, Phase, RoundResult
from .._room.snapshot import build_room_snapshot
from .._room.state_machine import RoomPhaseMachine
from .._room.store import RoomStore
from .._shared.events import (
    AnswerAccepted,
    BattleComplete,
    PhaseChanged,
    QuestionRevealed,
    StandingView,
)
from ..callbacks import ResultsSink
from .._shared.logging_config import log_engine_error
from ..errors import (
    BattleEngineError,
    NotHost,
    QuestionWindowClosed,
    StaleTransition,
    UnknownParticipant,
)

logger = logging.getLogger("live_battle.round")


def resolve_offset(
    server_elapsed_ms: int,
    client_offset_ms: Optional[int],
    latency_allowance_ms: int,
) -> int:
    """
    Decide the offset credited to a submission.

    The client's own timing is accepted only inside
    ``[server_elapsed - allowance, server_elapsed]``; without one the
    server-measured elapsed time is used.
    """
    if client_offset_ms is None:
        return server_elapsed_ms
    low = max(0, server_elapsed_ms - latency_allowance_ms)
    return max(low, min(int(client_offset_ms), server_elapsed_ms))


class RoundController:
    """
    Owns the lock, timers and ledger of one room.

    Args:
        room_id: Room this controller drives
        store: Room state store
        ledger: The room's answer ledger
        config: Engine timing settings
        results_sink: Receives final standings
        on_finished: Called once the room reaches a terminal phase
    """

    def __init__(
        self,
        room_id: str,
        store: RoomStore,
        ledger: AnswerLedger,
        config: EngineConfig,
        results_sink: Optional[ResultsSink] = None,
        on_finished: Optional[Callable[[str], None]] = None,
    ):
        self.room_id = room_id
        self.store = store
        self.ledger = ledger
        self.config = config
        self.results_sink = results_sink
        self.on_finished = on_finished
        self.lock = asyncio.Lock()
        self.finished = asyncio.Event()
        self.deadlines = DeadlineTracker()
        self._timers: Dict[str, asyncio.Task] = {}

    @property
    def room(self) -> BattleRoom:
        return self.store.get_room(self.room_id)

    # ── Timers ───────────────────────────────────────────────

    def _schedule_timer(self, key: str, delay_s: float, callback: Callable[[], None]) -> None:
        self._cancel_timer(key)

        async def runner() -> None:
            try:
                await asyncio.sleep(max(0.0, delay_s))
            except asyncio.CancelledError:
                return
            async with self.lock:
                if self._timers.get(key) is asyncio.current_task():
                    del self._timers[key]
                try:
                    callback()
                except StaleTransition as e:
                    logger.debug(f"Timer {self.room_id}:{key} lost race: {e}")
                except BattleEngineError as e:
                    log_engine_error(e)
                except Exception:
                    logger.error(
                        f"Timer {self.room_id}:{key} failed", exc_info=True,
                        extra={"room_id": self.room_id},
                    )

        self._timers[key] = asyncio.create_task(runner(), name=f"{self.room_id}:{key}")

    def _cancel_timer(self, key: str) -> None:
        task = self._timers.pop(key, None)
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _cancel_all_timers(self) -> None:
        for key in list(self._timers):
            self._cancel_timer(key)

    def pending_timers(self) -> Dict[str, asyncio.Task]:
        return dict(self._timers)

    # ── Membership (waiting room) ────────────────────────────

    async def join(self, user_id: str, display_name: Optional[str] = None) -> Participant:
        async with self.lock:
            return self.store.join(self.room_id, user_id, display_name)

    async def leave(self, user_id: str) -> BattleRoom:
        async with self.lock:
            room = self.store.leave(self.room_id, user_id)
            if room.status == RoomStatus.ABANDONED:
                self._emit_phase(room, reason="all participants left")
                self._finish()
            else:
                self._maybe_start_countdown()
            return room

    async def set_ready(self, user_id: str, ready: bool = True) -> Participant:
        async with self.lock:
            participant = self.store.set_ready(self.room_id, user_id, ready)
            self._maybe_start_countdown()
            return participant

    def _maybe_start_countdown(self) -> bool:
        room = self.room
        if room.status != RoomStatus.WAITING:
            return False
        participants = list(room.participants.values())
        if len(participants) < self.config.min_participants:
            return False
        if not all(p.is_ready for p in participants):
            return False

        duration = self.config.countdown_seconds
        deadline = time.time() + duration
        room = self.store.transition_phase(
            self.room_id, Phase.waiting(), Phase.countdown(), phase_deadline=deadline,
        )
        self.deadlines.set_deadline(str(room.phase), duration)
        self._emit_phase(room, deadline=deadline, duration=duration)
        self._schedule_timer("countdown", duration, lambda: self._start_question(0))
        logger.info(f"Countdown started in {self.room_id} ({duration}s)")
        return True

    # ── Question window ──────────────────────────────────────

    def _start_question(self, index: int) -> None:
        expected = Phase.countdown() if index == 0 else Phase.reveal(index - 1)
        room = self.room
        question = room.questions[index]
        duration = question.time_limit_seconds
        deadline = time.time() + duration

        room = self.store.transition_phase(
            self.room_id, expected, Phase.question(index), phase_deadline=deadline,
        )
        self.deadlines.cancel(str(expected))
        self._open_window(room, index, duration)
        self._emit_phase(
            room, deadline=deadline, duration=duration, question=question.public_view(),
        )
        logger.info(
            f"Question {index + 1}/{room.question_count} open in {self.room_id}: "
            f"{question.id} ({duration}s)"
        )

    def _open_window(self, room: BattleRoom, index: int, remaining: float,
                     opened_ago: float = 0.0) -> None:
        self.ledger.open_window(room.questions[index].id)
        self.deadlines.set_deadline(str(Phase.question(index)), remaining, opened_ago)
        self._schedule_timer(
            "question", remaining,
            lambda: self._close_question(index, CloseTrigger.TIMEOUT),
        )

    async def submit(
        self,
        user_id: str,
        question_id: str,
        selected_index: int,
        client_offset_ms: Optional[int] = None,
    ) -> AnswerEntry:
        """
        Record an answer for the open question.

        The window closes early once every connected participant has an
        entry.

        Raises:
            UnknownParticipant: User is not in the room
            QuestionWindowClosed: Not the open question, or past its deadline
            DuplicateSubmission: Already answered
            InvalidCommand: Selected index out of range
        """
        async with self.lock:
            room = self.room
            if user_id not in room.participants:
                raise UnknownParticipant(self.room_id, user_id)
            question = room.current_question()
            if room.phase.kind != PhaseKind.QUESTION or question.id != question_id:
                raise QuestionWindowClosed(self.room_id, question_id)

            label = str(room.phase)
            # The deadline can pass before the timer task gets the lock
            if self.deadlines.is_expired(label):
                raise QuestionWindowClosed(self.room_id, question_id)

            offset = resolve_offset(
                self.deadlines.elapsed_ms(label),
                client_offset_ms,
                self.config.latency_allowance_ms,
            )
            entry = self.ledger.submit(
                question_id, user_id, selected_index, offset, question.time_limit_ms,
            )
            self.store.publish(AnswerAccepted(
                room_id=self.room_id,
                phase=room.phase.kind.value,
                question_index=room.phase.question_index,
                user_id=user_id,
                question_id=question_id,
            ))
            logger.debug(f"Answer accepted: {user_id} {question_id} @{offset}ms")

            if self._all_connected_answered(room):
                self._close_question(room.phase.question_index, CloseTrigger.ALL_ANSWERED)
            return entry

    def _all_connected_answered(self, room: BattleRoom) -> bool:
        question = room.current_question()
        connected = {p.user_id for p in room.connected_participants()}
        return bool(connected) and connected <= self.ledger.answered_users(question.id)

    def _close_question(self, index: int, trigger: CloseTrigger) -> None:
        """
        Move question[index] to reveal[index] and score it.

        The round result is built before anything changes. The phase move,
        score updates, timeout entries and ledger flags then commit
        together; on failure storage and memory are both left as they were.

        Raises:
            StaleTransition: The question was already closed
        """
        room = self.room
        question = room.questions[index]
        reveal_wait = (
            self.config.reveal_max_wait_seconds if self.config.host_paced_reveal
            else self.config.reveal_seconds
        )
        deadline = time.time() + reveal_wait

        timeouts = self.ledger.timeout_entries(
            question.id, room.participants, question.time_limit_ms,
        )
        breakdown = tuple(
            score_breakdown(e, question)
            for e in self.ledger.entries_for(question.id) + timeouts
        )
        result = RoundResult(question.id, index, breakdown)

        with self.store.batch(self.room_id):
            room = self.store.transition_phase(
                self.room_id, Phase.question(index), Phase.reveal(index),
                phase_deadline=deadline,
            )
            scores = self.store.apply_round_result(self.room_id, result)
            self.ledger.settle(question.id, timeouts, result.points)

        self.ledger.close_window()
        self._cancel_timer("question")
        self.deadlines.cancel(str(Phase.question(index)))

        self.store.publish(QuestionRevealed(
            room_id=self.room_id,
            phase=PhaseKind.REVEAL.value,
            question_index=index,
            question_id=question.id,
            correct_index=question.correct_index,
            explanation=question.explanation,
            per_player_points=dict(result.points),
            breakdown=[b.to_dict() for b in breakdown],
            scores=scores,
            trigger=trigger.value,
        ))
        self._emit_phase(room, deadline=deadline, duration=reveal_wait, reason=trigger.value)
        logger.info(f"Question {question.id} closed in {self.room_id} by {trigger.value}")
        self._arm_reveal(index, reveal_wait)

    def _arm_reveal(self, index: int, delay_s: float) -> None:
        self.deadlines.set_deadline(str(Phase.reveal(index)), delay_s)
        trigger = AdvanceTrigger.WAIT_CAP if self.config.host_paced_reveal else AdvanceTrigger.AUTO
        self._schedule_timer("reveal", delay_s, lambda: self._advance(index, trigger))

    # ── Reveal -> next ───────────────────────────────────────

    async def host_advance(self, user_id: str) -> bool:
        """
        End the current reveal early.

        Returns:
            True if the room advanced, False if it was not in a reveal
            phase (for example the reveal timer already advanced it)

        Raises:
            UnknownParticipant: User is not in the room
            NotHost: User is not the host
        """
        async with self.lock:
            room = self.room
            participant = room.participants.get(user_id)
            if participant is None:
                raise UnknownParticipant(self.room_id, user_id)
            if not participant.is_host:
                raise NotHost(self.room_id, user_id)
            if room.phase.kind != PhaseKind.REVEAL:
                logger.debug(f"Host advance ignored in {self.room_id}: phase={room.phase}")
                return False
            self._advance(room.phase.question_index, AdvanceTrigger.HOST)
            return True

    def _advance(self, index: int, trigger: AdvanceTrigger) -> None:
        room = self.room
        if room.phase != Phase.reveal(index):
            raise StaleTransition(self.room_id, str(Phase.reveal(index)), str(room.phase))
        self._cancel_timer("reveal")
        logger.debug(f"Advance from reveal[{index}] in {self.room_id} by {trigger.value}")
        following = RoomPhaseMachine(room.question_count, room.phase).next_after_reveal()
        if following.kind == PhaseKind.COMPLETE:
            self._complete()
        else:
            self._start_question(following.question_index)

    def _complete(self) -> None:
        room = self.room
        last = Phase.reveal(room.question_count - 1)
        standings = resolve(
            room.participants.values(), self.ledger.all_entries(), room.questions,
        )

        with self.store.batch():
            room = self.store.transition_phase(self.room_id, last, Phase.complete())
            self.store.record_standings(self.room_id, standings)

        self._emit_phase(room)
        self.store.publish(BattleComplete(
            room_id=self.room_id,
            phase=PhaseKind.COMPLETE.value,
            standings=[StandingView(**s.to_dict()) for s in standings],
            history=self.answer_history(),
        ))
        winner = standings[0] if standings else None
        logger.info(
            f"Battle complete in {self.room_id}: winner="
            f"{winner.user_id if winner else None} "
            f"({winner.total_score if winner else 0} pts)"
        )

        if self.results_sink is not None:
            try:
                self.results_sink.handoff(self.room_id, standings)
            except Exception:
                logger.error(
                    f"Results sink failed for {self.room_id}", exc_info=True,
                    extra={"room_id": self.room_id},
                )
        self._finish()

    # ── Connection and abort ─────────────────────────────────

    async def set_connection(self, user_id: str, state: ConnectionState) -> Participant:
        """
        Track a participant's connection.

        A room whose participants have all disconnected is abandoned. A
        disconnect during a question may close the window if everyone
        still connected has answered.
        """
        async with self.lock:
            participant = self.store.set_connection(self.room_id, user_id, state)
            room = self.room
            if room.phase.is_terminal:
                return participant
            if not room.connected_participants():
                self._abort("all participants disconnected")
            elif (
                state == ConnectionState.DISCONNECTED
                and room.phase.kind == PhaseKind.QUESTION
                and self._all_connected_answered(room)
            ):
                self._close_question(room.phase.question_index, CloseTrigger.ALL_ANSWERED)
            return participant

    async def abort(self, reason: str = "aborted") -> bool:
        """
        Abandon the room from any non-terminal phase.

        Returns:
            False if the room had already finished
        """
        async with self.lock:
            return self._abort(reason)

    def _abort(self, reason: str) -> bool:
        room = self.room
        if room.phase.is_terminal:
            return False
        room = self.store.abandon(self.room_id, room.phase)
        self.ledger.close_window()
        self._emit_phase(room, reason=reason)
        logger.warning(f"Room {self.room_id} abandoned: {reason}")
        self._finish()
        return True

    def _finish(self) -> None:
        self._cancel_all_timers()
        self.deadlines.clear()
        self.finished.set()
        if self.on_finished is not None:
            self.on_finished(self.room_id)

    def close(self) -> None:
        """Release timers without changing room state (shutdown)."""
        self._cancel_all_timers()
        self.deadlines.clear()

    # ── Recovery ─────────────────────────────────────────────

    async def resume(self) -> None:
        """
        Re-arm timers for a room reloaded from durable storage.

        Round results are rebuilt from scored ledger entries. Overdue
        phases fire immediately.
        """
        async with self.lock:
            room = self.room
            for index, question in enumerate(room.questions):
                if not self.ledger.is_scored(question.id):
                    continue
                breakdown = tuple(
                    score_breakdown(e, question) for e in self.ledger.entries_for(question.id)
                )
                room.round_results.append(RoundResult(question.id, index, breakdown))

            remaining = 0.0
            if room.phase_deadline is not None:
                remaining = max(0.0, room.phase_deadline - time.time())
            kind = room.phase.kind
            index = room.phase.question_index
            logger.info(f"Resuming {self.room_id} in {room.phase} ({remaining:.1f}s left)")

            if kind == PhaseKind.WAITING:
                self._maybe_start_countdown()
            elif kind == PhaseKind.COUNTDOWN:
                self.deadlines.set_deadline(str(room.phase), remaining)
                self._schedule_timer("countdown", remaining, lambda: self._start_question(0))
            elif kind == PhaseKind.QUESTION:
                limit = room.questions[index].time_limit_seconds
                self._open_window(room, index, remaining, opened_ago=max(0.0, limit - remaining))
            elif kind == PhaseKind.REVEAL:
                self._arm_reveal(index, remaining)
            else:
                self.finished.set()

    # ── Events ───────────────────────────────────────────────

    def _emit_phase(
        self,
        room: BattleRoom,
        deadline: Optional[float] = None,
        duration: Optional[float] = None,
        question: Optional[dict] = None,
        reason: Optional[str] = None,
    ) -> None:
        self.store.publish(PhaseChanged(
            room_id=room.id,
            phase=room.phase.kind.value,
            question_index=room.phase.question_index,
            status=room.status.value,
            question=question,
            deadline_ms=int(deadline * 1000) if deadline is not None else None,
            duration_ms=int(duration * 1000) if duration is not None else None,
            reason=reason,
        ))

    def snapshot(self) -> dict:
        return build_room_snapshot(self.room)

    def answer_history(self) -> Dict[str, List[Dict[str, object]]]:
        return answer_history(self.ledger.all_entries(), self.room.questions)
