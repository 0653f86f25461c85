# Area: Room
"""
live_battle._room.repo_rooms — Rooms Repository
===============================================

Repository for battle_rooms, battle_participants and final_standings.
The phase update is a conditional UPDATE so the compare-and-swap holds
in durable storage as well as in memory.
"""

import json
from typing import Any, Dict, Iterable, List, Optional

from .database import BaseRepository
from .models import BattleRoom, FinalStanding, Participant, Phase


class RoomRepository(BaseRepository):
    """
    Repository for room-level tables.

    Handles saving rooms and participants, phase compare-and-swap,
    score updates and final standings.
    """

    def save_room(self, room: BattleRoom) -> None:
        """
        Insert a new room record.

        Args:
            room: The room to persist
        """
        query = """
            INSERT INTO battle_rooms
            (room_id, code, host_id, max_participants, questions_json,
             status, phase_kind, question_index, current_question_index,
             phase_deadline, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """
        questions_json = json.dumps([q.to_dict() for q in room.questions])
        self._execute(query, (
            room.id, room.code, room.host_id, room.max_participants,
            questions_json, room.status.value, room.phase.kind.value,
            room.phase.question_index, room.current_question_index,
            room.phase_deadline, room.created_at,
        ))

    def get_room(self, room_id: str) -> Optional[Dict[str, Any]]:
        """
        Get a room row by ID.

        Args:
            room_id: Room identifier to look up

        Returns:
            Room record dict or None if not found
        """
        query = "SELECT * FROM battle_rooms WHERE room_id = ?"
        return self._execute_one(query, (room_id,))

    def code_exists(self, code: str) -> bool:
        query = "SELECT 1 FROM battle_rooms WHERE code = ?"
        return self._execute_one(query, (code,)) is not None

    def compare_and_set_phase(
        self,
        room_id: str,
        expected: Phase,
        target: Phase,
        current_question_index: int,
        phase_deadline: Optional[float],
    ) -> bool:
        """
        Move a room from ``expected`` to ``target`` if it is still there.

        Returns:
            True if exactly one row was updated, False if the stored phase
            no longer matched ``expected``
        """
        query = """
            UPDATE battle_rooms
            SET status = ?, phase_kind = ?, question_index = ?,
                current_question_index = ?, phase_deadline = ?,
                updated_at = CURRENT_TIMESTAMP
            WHERE room_id = ? AND phase_kind = ? AND question_index IS ?
        """
        count = self._execute(query, (
            target.status.value, target.kind.value, target.question_index,
            current_question_index, phase_deadline,
            room_id, expected.kind.value, expected.question_index,
        ))
        return count == 1

    def set_state_version(self, room_id: str, version: int) -> None:
        """Record the version of the latest published room state."""
        query = "UPDATE battle_rooms SET state_version = ? WHERE room_id = ?"
        self._execute(query, (version, room_id))

    def list_active_room_ids(self) -> List[str]:
        """Rooms that have not reached a terminal status."""
        query = """
            SELECT room_id FROM battle_rooms
            WHERE status NOT IN ('complete', 'abandoned')
            ORDER BY created_at
        """
        return [row["room_id"] for row in self._execute(query, fetch=True)]

    # ── Participants ─────────────────────────────────────────

    def save_participant(self, room_id: str, participant: Participant) -> None:
        query = """
            INSERT OR REPLACE INTO battle_participants
            (room_id, user_id, display_name, is_host, is_ready, score,
             connection_state, join_seq)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """
        self._execute(query, (
            room_id, participant.user_id, participant.display_name,
            int(participant.is_host), int(participant.is_ready),
            participant.score, participant.connection_state.value,
            participant.join_seq,
        ))

    def delete_participant(self, room_id: str, user_id: str) -> None:
        query = "DELETE FROM battle_participants WHERE room_id = ? AND user_id = ?"
        self._execute(query, (room_id, user_id))

    def get_participants(self, room_id: str) -> List[Dict[str, Any]]:
        query = """
            SELECT * FROM battle_participants
            WHERE room_id = ? ORDER BY join_seq
        """
        return self._execute(query, (room_id,), fetch=True)

    def set_host(self, room_id: str, user_id: str) -> None:
        query = """
            UPDATE battle_participants SET is_host = (user_id = ?)
            WHERE room_id = ?
        """
        self._execute(query, (user_id, room_id))
        self._execute(
            "UPDATE battle_rooms SET host_id = ? WHERE room_id = ?",
            (user_id, room_id),
        )

    def update_scores(self, room_id: str, scores: Dict[str, int]) -> None:
        query = """
            UPDATE battle_participants SET score = ?
            WHERE room_id = ? AND user_id = ?
        """
        for user_id, score in scores.items():
            self._execute(query, (score, room_id, user_id))

    def reset_scores(self, room_id: str) -> None:
        query = "UPDATE battle_participants SET score = 0 WHERE room_id = ?"
        self._execute(query, (room_id,))

    # ── Standings ────────────────────────────────────────────

    def save_standings(self, room_id: str, standings: Iterable[FinalStanding]) -> None:
        query = """
            INSERT INTO final_standings
            (room_id, user_id, display_name, rank, total_score,
             correct_count, correct_offset_ms, answered_count, best_streak)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """
        for s in standings:
            self._execute(query, (
                room_id, s.user_id, s.display_name, s.rank, s.total_score,
                s.correct_count, s.correct_offset_ms, s.answered_count,
                s.best_streak,
            ))

    def get_standings(self, room_id: str) -> List[Dict[str, Any]]:
        query = "SELECT * FROM final_standings WHERE room_id = ? ORDER BY rank"
        return self._execute(query, (room_id,), fetch=True)
