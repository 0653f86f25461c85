# Area: Round
"""
live_battle._round.ledger — Answer Ledger
=========================================

Append-only record of each participant's answer to each question.

At most one entry exists per (question, participant). A second
submission is rejected, never overwritten; the answer_ledger primary key
enforces the same rule in durable storage. Entries become immutable
once scored.
"""

import dataclasses
import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .scoring import clamp_offset
from .._room.models import AnswerEntry, NO_ANSWER, OPTION_COUNT
from .._room.repo_answers import AnswerRepository
from ..errors import (
    DuplicateSubmission,
    InvalidCommand,
    InvalidStateTransition,
    QuestionWindowClosed,
)

logger = logging.getLogger("live_battle.round.ledger")


class AnswerLedger:
    """
    Answer ledger for one room.

    Only one question window is open at a time. Entries are kept in
    arrival order.
    """

    def __init__(self, room_id: str, repo: AnswerRepository):
        self.room_id = room_id
        self._repo = repo
        self._entries: Dict[Tuple[str, str], AnswerEntry] = {}
        self._open_question: Optional[str] = None
        self._seq = 0

    @classmethod
    def load(cls, room_id: str, repo: AnswerRepository) -> "AnswerLedger":
        """Rebuild a ledger from durable storage. All windows start closed."""
        ledger = cls(room_id, repo)
        for row in repo.get_entries(room_id):
            entry = repo.row_to_entry(row)
            ledger._entries[(entry.question_id, entry.user_id)] = entry
            ledger._seq = max(ledger._seq, row["seq"])
        logger.debug(f"Ledger loaded for {room_id}: {len(ledger._entries)} entries")
        return ledger

    # ── Window ───────────────────────────────────────────────

    @property
    def open_question(self) -> Optional[str]:
        return self._open_question

    def open_window(self, question_id: str) -> None:
        self._open_question = question_id
        logger.debug(f"Window open: {self.room_id}/{question_id}")

    def close_window(self) -> None:
        if self._open_question is not None:
            logger.debug(f"Window closed: {self.room_id}/{self._open_question}")
        self._open_question = None

    # ── Entries ──────────────────────────────────────────────

    def submit(
        self,
        question_id: str,
        user_id: str,
        selected_index: int,
        offset_ms: int,
        time_limit_ms: int,
    ) -> AnswerEntry:
        """
        Record a participant's answer.

        Args:
            question_id: Question being answered
            user_id: Answering participant
            selected_index: Option 0-3, or -1 to decline
            offset_ms: Server-measured ms since the window opened
            time_limit_ms: Question limit, used to clamp the offset

        Returns:
            The stored entry

        Raises:
            QuestionWindowClosed: Question is not the open one
            InvalidCommand: Selected index out of range
            DuplicateSubmission: Participant already answered this question
        """
        if question_id != self._open_question:
            raise QuestionWindowClosed(self.room_id, question_id)
        if selected_index != NO_ANSWER and not 0 <= selected_index < OPTION_COUNT:
            raise InvalidCommand(
                f"selected_index must be 0-{OPTION_COUNT - 1} or {NO_ANSWER}, got {selected_index}"
            )
        if (question_id, user_id) in self._entries:
            raise DuplicateSubmission(question_id, user_id)

        entry = AnswerEntry(
            question_id=question_id,
            user_id=user_id,
            selected_index=selected_index,
            submitted_at_offset_ms=clamp_offset(offset_ms, time_limit_ms),
        )
        self._append(entry)
        return entry

    def timeout_entries(
        self, question_id: str, user_ids: Iterable[str], time_limit_ms: int
    ) -> List[AnswerEntry]:
        """
        Build a no-answer entry at the full time limit for every listed
        participant who has none. Nothing is recorded until ``settle``.
        """
        return [
            AnswerEntry(
                question_id=question_id,
                user_id=user_id,
                selected_index=NO_ANSWER,
                submitted_at_offset_ms=time_limit_ms,
            )
            for user_id in user_ids
            if (question_id, user_id) not in self._entries
        ]

    def _append(self, entry: AnswerEntry) -> None:
        seq = self._seq + 1
        if not self._repo.insert_entry(self.room_id, entry, seq):
            raise DuplicateSubmission(entry.question_id, entry.user_id)
        self._seq = seq
        self._entries[(entry.question_id, entry.user_id)] = entry

    def settle(
        self,
        question_id: str,
        timeouts: Sequence[AnswerEntry],
        points: Mapping[str, int],
    ) -> None:
        """
        Record a closed question's timeout entries and flag every entry
        for it as scored.

        Storage is written first; the in-memory ledger changes only once
        every row has been accepted.

        Raises:
            InvalidStateTransition: The question was already scored
            DuplicateSubmission: A timeout collides with a stored entry
        """
        if any(e.scored for e in self.entries_for(question_id)):
            raise InvalidStateTransition(
                f"Question {question_id} already scored in {self.room_id}"
            )
        seq = self._seq
        for entry in timeouts:
            seq += 1
            if not self._repo.insert_entry(self.room_id, entry, seq):
                raise DuplicateSubmission(entry.question_id, entry.user_id)
        entries = self.entries_for(question_id) + list(timeouts)
        self._repo.mark_scored(
            self.room_id, question_id,
            [(e.user_id, points.get(e.user_id, 0)) for e in entries],
        )

        self._seq = seq
        for entry in entries:
            self._entries[(question_id, entry.user_id)] = dataclasses.replace(entry, scored=True)
        if timeouts:
            logger.debug(
                f"Timeouts for {self.room_id}/{question_id}: "
                f"{[e.user_id for e in timeouts]}"
            )

    def entries_for(self, question_id: str) -> List[AnswerEntry]:
        """Entries for one question, in arrival order."""
        return [e for (q, _), e in self._entries.items() if q == question_id]

    def answered_users(self, question_id: str) -> Set[str]:
        return {u for (q, u) in self._entries if q == question_id}

    def get(self, question_id: str, user_id: str) -> Optional[AnswerEntry]:
        return self._entries.get((question_id, user_id))

    def all_entries(self) -> List[AnswerEntry]:
        return list(self._entries.values())

    def is_scored(self, question_id: str) -> bool:
        entries = self.entries_for(question_id)
        return bool(entries) and all(e.scored for e in entries)
