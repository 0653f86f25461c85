# Area: Room
"""
live_battle._room.store — Battle Room State Store
=================================================

Single source of truth for room membership, readiness and phase.

The store keeps an in-memory ``BattleRoom`` per room and mirrors every
mutation into SQLite. Phase changes are compare-and-swap in both places:
the caller names the phase it expects to leave, and the move fails with
``StaleTransition`` if the room has already moved on.

Every successful mutation emits ``RoomStateChanged``. Events raised inside
a ``batch()`` are held back until the outermost batch commits.
"""

from __future__ import annotations

import copy
import json
import logging
import random
import string
import uuid
from contextlib import contextmanager
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence

from .database import Database
from .enums import ConnectionState, PhaseKind, RoomStatus
from .models import BattleRoom, FinalStanding, Participant, Phase, Question, RoundResult
from .repo_answers import AnswerRepository
from .repo_rooms import RoomRepository
from .snapshot import build_state_event
from .state_machine import RoomPhaseMachine
from .._shared.events import BattleEvent, EventBus
from ..errors import (
    DuplicateParticipant,
    InvalidConfiguration,
    InvalidStateTransition,
    RoomAlreadyStarted,
    RoomFull,
    RoomNotFound,
    StaleTransition,
    UnknownParticipant,
)

logger = logging.getLogger("live_battle.store")

MIN_ROOM_SIZE = 2
MAX_ROOM_SIZE = 4
ROOM_CODE_LENGTH = 6
_CODE_ATTEMPTS = 20


def generate_room_code(length: int = ROOM_CODE_LENGTH) -> str:
    """Generate a random join code of uppercase letters and digits."""
    return "".join(random.choices(string.ascii_uppercase + string.digits, k=length))


def validate_room_config(
    questions: Sequence[Question], max_participants: int
) -> List[str]:
    """
    Check a room configuration before anything is created.

    Returns:
        List of problems (empty = valid)
    """
    errors: List[str] = []
    if not MIN_ROOM_SIZE <= max_participants <= MAX_ROOM_SIZE:
        errors.append(
            f"max_participants must be between {MIN_ROOM_SIZE} and "
            f"{MAX_ROOM_SIZE}, got {max_participants}"
        )
    if not questions:
        errors.append("question set must not be empty")
    seen = set()
    for question in questions:
        errors.extend(question.validation_errors())
        if question.id in seen:
            errors.append(f"duplicate question id {question.id}")
        seen.add(question.id)
    return errors


class RoomStore:
    """
    Owns every room's durable state.

    Args:
        database: Shared SQLite database
        bus: Event bus for ``RoomStateChanged``
        code_generator: Join-code factory, replaceable in tests
    """

    def __init__(
        self,
        database: Database,
        bus: EventBus,
        code_generator: Callable[[], str] = generate_room_code,
    ):
        self._db = database
        self._bus = bus
        self._generate_code = code_generator
        self.rooms_repo = RoomRepository(database)
        self.answers_repo = AnswerRepository(database)
        self._rooms: Dict[str, BattleRoom] = {}
        self._codes: Dict[str, str] = {}
        self._versions: Dict[str, int] = {}
        self._batch_depth = 0
        self._deferred: List[BattleEvent] = []
        self._saved: Dict[str, BattleRoom] = {}

    # ── Batching ─────────────────────────────────────────────

    @contextmanager
    def batch(self, room_id: Optional[str] = None) -> Iterator[None]:
        """
        Group several mutations into one database transaction.

        Events emitted inside the block are published after commit and
        dropped if the block raises. When ``room_id`` is given, that
        room's in-memory state is restored on failure so it keeps
        matching what storage rolled back to.
        """
        saved = None
        if room_id is not None and room_id in self._rooms and room_id not in self._saved:
            saved = copy.deepcopy(self._rooms[room_id])
            self._saved[room_id] = saved
        self._batch_depth += 1
        try:
            with self._db.transaction():
                yield
        except BaseException:
            if saved is not None:
                self._rooms[room_id].__dict__.update(saved.__dict__)
                logger.debug(f"Rolled back in-memory state of {room_id}")
            if self._batch_depth == 1:
                self._deferred.clear()
            raise
        finally:
            self._batch_depth -= 1
            if saved is not None:
                del self._saved[room_id]
        if self._batch_depth == 0:
            pending, self._deferred = self._deferred, []
            for event in pending:
                self._bus.publish(event)

    def publish(self, event: BattleEvent) -> None:
        """Publish now, or after commit when inside a batch."""
        if self._batch_depth:
            self._deferred.append(event)
        else:
            self._bus.publish(event)

    def _state_changed(self, room: BattleRoom) -> None:
        # Versions are stored so keys stay unique across a restart
        version = self._versions.get(room.id, 0) + 1
        self.rooms_repo.set_state_version(room.id, version)
        self._versions[room.id] = version
        self.publish(build_state_event(room, version))

    # ── Lookup ───────────────────────────────────────────────

    def get_room(self, room_id: str) -> BattleRoom:
        """
        Get a room by ID.

        Raises:
            RoomNotFound: If the room is unknown
        """
        room = self._rooms.get(room_id)
        if room is None:
            raise RoomNotFound(room_id)
        return room

    def get_room_by_code(self, code: str) -> BattleRoom:
        """Get a room by its join code (case-insensitive)."""
        room_id = self._codes.get(code.strip().upper())
        if room_id is None:
            raise RoomNotFound(code)
        return self._rooms[room_id]

    def has_room(self, room_id: str) -> bool:
        return room_id in self._rooms

    def room_ids(self) -> List[str]:
        return list(self._rooms)

    # ── Creation and membership ──────────────────────────────

    def create_room(
        self,
        host_id: str,
        questions: Sequence[Question],
        max_participants: int,
        host_display_name: Optional[str] = None,
        room_id: Optional[str] = None,
    ) -> BattleRoom:
        """
        Create a room with the host as its first participant.

        Args:
            host_id: User creating the room
            questions: Ordered question set, fixed for the room's lifetime
            max_participants: Room capacity, 2 to 4
            host_display_name: Name shown to other players
            room_id: Explicit ID, generated when omitted

        Returns:
            The new room in the waiting phase

        Raises:
            InvalidConfiguration: If the capacity or any question is invalid.
                Nothing is stored in that case.
        """
        errors = validate_room_config(questions, max_participants)
        if errors:
            raise InvalidConfiguration("Invalid room configuration", errors=errors)

        room_id = room_id or uuid.uuid4().hex
        if room_id in self._rooms:
            raise InvalidConfiguration(f"Room {room_id} already exists")

        room = BattleRoom(
            id=room_id,
            code=self._unique_code(),
            host_id=host_id,
            max_participants=max_participants,
            questions=tuple(questions),
        )
        host = Participant(
            user_id=host_id,
            display_name=host_display_name or host_id,
            is_host=True,
            join_seq=0,
        )
        room.participants[host_id] = host

        with self.batch():
            self.rooms_repo.save_room(room)
            self.rooms_repo.save_participant(room.id, host)
            self._state_changed(room)
        self._rooms[room.id] = room
        self._codes[room.code] = room.id

        logger.info(
            f"Room created: {room.id} code={room.code} host={host_id} "
            f"questions={room.question_count} max={max_participants}"
        )
        return room

    def _unique_code(self) -> str:
        for _ in range(_CODE_ATTEMPTS):
            code = self._generate_code().upper()
            if code not in self._codes and not self.rooms_repo.code_exists(code):
                return code
        raise InvalidConfiguration("Could not allocate a unique room code")

    def join(
        self, room_id: str, user_id: str, display_name: Optional[str] = None
    ) -> Participant:
        """
        Add a participant to a waiting room.

        Raises:
            RoomNotFound: Unknown room
            DuplicateParticipant: User is already in the room
            RoomAlreadyStarted: Room has left the waiting phase
            RoomFull: Room is at capacity
        """
        room = self.get_room(room_id)
        if user_id in room.participants:
            raise DuplicateParticipant(room_id, user_id)
        if room.status != RoomStatus.WAITING:
            raise RoomAlreadyStarted(room_id, room.status.value)
        if len(room.participants) >= room.max_participants:
            raise RoomFull(room_id, room.max_participants)

        join_seq = max(p.join_seq for p in room.participants.values()) + 1
        participant = Participant(
            user_id=user_id,
            display_name=display_name or user_id,
            join_seq=join_seq,
        )
        with self.batch(room_id):
            self.rooms_repo.save_participant(room_id, participant)
            room.participants[user_id] = participant
            self._state_changed(room)

        logger.info(f"Joined: {user_id} -> {room_id} ({len(room.participants)}/{room.max_participants})")
        return participant

    def leave(self, room_id: str, user_id: str) -> BattleRoom:
        """
        Remove a participant before the battle starts.

        The earliest remaining joiner becomes host if the host leaves.
        The room is abandoned when its last participant leaves.

        Raises:
            UnknownParticipant: User is not in the room
            RoomAlreadyStarted: Room has left the waiting phase
        """
        room = self.get_room(room_id)
        participant = self._require_participant(room, user_id)
        if room.status != RoomStatus.WAITING:
            raise RoomAlreadyStarted(room_id, room.status.value)

        with self.batch(room_id):
            self.rooms_repo.delete_participant(room_id, user_id)
            del room.participants[user_id]

            if not room.participants:
                self.abandon(room_id, Phase.waiting())
                logger.info(f"Room {room_id} abandoned: last participant left")
                return room

            if participant.is_host:
                successor = min(room.participants.values(), key=lambda p: p.join_seq)
                self.rooms_repo.set_host(room_id, successor.user_id)
                successor.is_host = True
                room.host_id = successor.user_id
                logger.info(f"Host of {room_id} passed to {successor.user_id}")
            self._state_changed(room)

        logger.info(f"Left: {user_id} <- {room_id}")
        return room

    def set_ready(self, room_id: str, user_id: str, ready: bool = True) -> Participant:
        """
        Set a participant's ready flag.

        Raises:
            UnknownParticipant: User is not in the room
            RoomAlreadyStarted: Room has left the waiting phase
        """
        room = self.get_room(room_id)
        participant = self._require_participant(room, user_id)
        if room.status != RoomStatus.WAITING:
            raise RoomAlreadyStarted(room_id, room.status.value)
        if participant.is_ready == ready:
            return participant

        with self.batch(room_id):
            participant.is_ready = ready
            self.rooms_repo.save_participant(room_id, participant)
            self._state_changed(room)
        logger.debug(f"Ready: {user_id}={ready} in {room_id}")
        return participant

    def set_connection(
        self, room_id: str, user_id: str, state: ConnectionState
    ) -> Participant:
        """Record a participant's connection state. No event if unchanged."""
        room = self.get_room(room_id)
        participant = self._require_participant(room, user_id)
        if participant.connection_state == state:
            return participant

        with self.batch(room_id):
            participant.connection_state = state
            self.rooms_repo.save_participant(room_id, participant)
            self._state_changed(room)
        logger.info(f"Connection: {user_id} {state.value} in {room_id}")
        return participant

    def _require_participant(self, room: BattleRoom, user_id: str) -> Participant:
        participant = room.participants.get(user_id)
        if participant is None:
            raise UnknownParticipant(room.id, user_id)
        return participant

    # ── Phase ────────────────────────────────────────────────

    def transition_phase(
        self,
        room_id: str,
        expected: Phase,
        target: Phase,
        phase_deadline: Optional[float] = None,
    ) -> BattleRoom:
        """
        Compare-and-swap the room's phase.

        Args:
            room_id: Room to move
            expected: Phase the caller believes the room is in
            target: Phase to move to
            phase_deadline: Wall-clock deadline of the new phase, kept for
                recovery

        Returns:
            The updated room

        Raises:
            StaleTransition: The room is no longer in ``expected``
            InvalidStateTransition: ``target`` may not follow ``expected``
        """
        room = self.get_room(room_id)
        if room.phase != expected:
            raise StaleTransition(room_id, str(expected), str(room.phase))

        machine = RoomPhaseMachine(room.question_count, room.phase)
        machine.transition(target)

        if target.kind == PhaseKind.COMPLETE:
            index = room.question_count
        elif target.question_index is not None:
            index = target.question_index
        else:
            index = room.current_question_index
        index = max(index, room.current_question_index)

        with self.batch(room_id):
            swapped = self.rooms_repo.compare_and_set_phase(
                room_id, expected, target, index, phase_deadline,
            )
            if not swapped:
                row = self.rooms_repo.get_room(room_id) or {}
                actual = _phase_from_row(row) if row else "missing"
                raise StaleTransition(room_id, str(expected), str(actual))
            room.phase = target
            room.current_question_index = index
            room.phase_deadline = phase_deadline
            self._state_changed(room)

        logger.debug(f"Phase {room_id}: {expected} -> {target}")
        return room

    def abandon(self, room_id: str, expected: Phase) -> BattleRoom:
        """
        Move a room to ``abandoned`` and discard its partial scoring.

        Participant scores go back to zero and the ledger's awarded
        points are cleared in the same transaction as the phase change.
        Recorded answers are kept.

        Raises:
            StaleTransition: The room is no longer in ``expected``
            InvalidStateTransition: The room is already terminal
        """
        room = self.get_room(room_id)
        with self.batch(room_id):
            self.rooms_repo.reset_scores(room_id)
            self.answers_repo.void_points(room_id)
            for participant in room.participants.values():
                participant.score = 0
            room.round_results.clear()
            room = self.transition_phase(room_id, expected, Phase.abandoned())
        return room

    # ── Scores and standings ─────────────────────────────────

    def apply_round_result(self, room_id: str, result: RoundResult) -> Dict[str, int]:
        """
        Add one question's points to participant scores.

        Only valid while the room is in that question's reveal phase, and
        only once per question.

        Returns:
            Updated totals by user ID

        Raises:
            InvalidStateTransition: Wrong phase, or the question was
                already applied
        """
        room = self.get_room(room_id)
        if room.phase != Phase.reveal(result.question_index):
            raise InvalidStateTransition(
                f"Cannot score question {result.question_id} in phase {room.phase}"
            )
        if any(r.question_id == result.question_id for r in room.round_results):
            raise InvalidStateTransition(
                f"Question {result.question_id} already scored in {room_id}"
            )

        totals: Dict[str, int] = {}
        for user_id, points in result.points.items():
            participant = room.participants.get(user_id)
            if participant is None:
                continue
            totals[user_id] = participant.score + max(points, 0)

        with self.batch(room_id):
            self.rooms_repo.update_scores(room_id, totals)
            for user_id, score in totals.items():
                room.participants[user_id].score = score
            room.round_results.append(result)
            self._state_changed(room)

        return {p.user_id: p.score for p in room.participants.values()}

    def record_standings(
        self, room_id: str, standings: Iterable[FinalStanding]
    ) -> None:
        """Persist final standings for a room."""
        room = self.get_room(room_id)
        standings = tuple(standings)
        with self.batch(room_id):
            self.rooms_repo.save_standings(room_id, standings)
            room.standings = standings

    # ── Recovery ─────────────────────────────────────────────

    def active_room_ids(self) -> List[str]:
        """IDs of non-terminal rooms in durable storage."""
        return self.rooms_repo.list_active_room_ids()

    def reload(self, room_id: str) -> BattleRoom:
        """
        Rebuild a room from durable storage, replacing any cached copy.

        Round results are not rebuilt here; the round controller derives
        them from the scored ledger rows.

        Raises:
            RoomNotFound: No such room in storage
        """
        row = self.rooms_repo.get_room(room_id)
        if row is None:
            raise RoomNotFound(room_id)

        questions = tuple(Question.from_dict(q) for q in json.loads(row["questions_json"]))
        room = BattleRoom(
            id=row["room_id"],
            code=row["code"],
            host_id=row["host_id"],
            max_participants=row["max_participants"],
            questions=questions,
            phase=_phase_from_row(row),
            current_question_index=row["current_question_index"],
            phase_deadline=row["phase_deadline"],
            created_at=row["created_at"],
        )
        for p in self.rooms_repo.get_participants(room_id):
            room.participants[p["user_id"]] = Participant(
                user_id=p["user_id"],
                display_name=p["display_name"],
                is_host=bool(p["is_host"]),
                is_ready=bool(p["is_ready"]),
                score=p["score"],
                connection_state=ConnectionState(p["connection_state"]),
                join_seq=p["join_seq"],
            )
        standings = self.rooms_repo.get_standings(room_id)
        if standings:
            room.standings = tuple(
                FinalStanding(
                    user_id=s["user_id"],
                    display_name=s["display_name"],
                    total_score=s["total_score"],
                    rank=s["rank"],
                    correct_count=s["correct_count"],
                    correct_offset_ms=s["correct_offset_ms"],
                    answered_count=s["answered_count"],
                    best_streak=s["best_streak"],
                )
                for s in standings
            )

        self._rooms[room.id] = room
        self._codes[room.code] = room.id
        self._versions[room.id] = row["state_version"]
        logger.info(f"Room reloaded: {room.id} phase={room.phase} version={row['state_version']}")
        return room

    def forget(self, room_id: str) -> None:
        """Drop a terminal room from memory. Durable rows are kept."""
        room = self._rooms.pop(room_id, None)
        if room is not None:
            self._codes.pop(room.code, None)
            self._versions.pop(room_id, None)


def _phase_from_row(row: Dict) -> Phase:
    return Phase(PhaseKind(row["phase_kind"]), row["question_index"])
