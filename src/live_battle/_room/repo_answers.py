# Area: Room
"""
live_battle._room.repo_answers — Answer Ledger Repository
=========================================================

Repository for the answer_ledger table. Inserts rely on the table's
primary key to reject a second row for the same (room, question, user).
"""

import sqlite3
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .database import BaseRepository
from .models import AnswerEntry


class AnswerRepository(BaseRepository):
    """Repository for answer_ledger rows."""

    def insert_entry(self, room_id: str, entry: AnswerEntry, seq: int) -> bool:
        """
        Append a ledger row.

        Args:
            room_id: Room the answer belongs to
            entry: The ledger entry
            seq: Arrival order within the room

        Returns:
            True if inserted, False if a row for the pair already existed
        """
        query = """
            INSERT INTO answer_ledger
            (room_id, question_id, user_id, selected_index, offset_ms, scored, seq)
            VALUES (?, ?, ?, ?, ?, 0, ?)
        """
        try:
            self._execute(query, (
                room_id, entry.question_id, entry.user_id,
                entry.selected_index, entry.submitted_at_offset_ms, seq,
            ))
        except sqlite3.IntegrityError:
            return False
        return True

    def mark_scored(
        self, room_id: str, question_id: str, points: Iterable[Tuple[str, int]]
    ) -> None:
        """Flag a question's rows as scored. Rows already scored are left alone."""
        query = """
            UPDATE answer_ledger SET scored = 1, points = ?
            WHERE room_id = ? AND question_id = ? AND user_id = ? AND scored = 0
        """
        for user_id, awarded in points:
            self._execute(query, (awarded, room_id, question_id, user_id))

    def void_points(self, room_id: str) -> None:
        """Clear awarded points for a room. Answers and scored flags stay."""
        query = "UPDATE answer_ledger SET points = NULL WHERE room_id = ?"
        self._execute(query, (room_id,))

    def get_entries(
        self, room_id: str, question_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        Get ledger rows for a room, optionally for one question.

        Returns:
            Rows in arrival order
        """
        if question_id is None:
            query = "SELECT * FROM answer_ledger WHERE room_id = ? ORDER BY seq"
            return self._execute(query, (room_id,), fetch=True)
        query = """
            SELECT * FROM answer_ledger
            WHERE room_id = ? AND question_id = ? ORDER BY seq
        """
        return self._execute(query, (room_id, question_id), fetch=True)

    @staticmethod
    def row_to_entry(row: Dict[str, Any]) -> AnswerEntry:
        return AnswerEntry(
            question_id=row["question_id"],
            user_id=row["user_id"],
            selected_index=row["selected_index"],
            submitted_at_offset_ms=row["offset_ms"],
            scored=bool(row["scored"]),
        )
