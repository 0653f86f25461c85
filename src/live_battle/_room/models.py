# Area: Room
"""
live_battle._room.models — Battle room data model
=================================================

Dataclasses for the room, its participants, the immutable question set,
answer ledger rows, per-question results and final standings.

The store owns BattleRoom and Participant instances; everything else is
frozen once created.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple
import time

from .enums import ConnectionState, PhaseKind, RoomStatus

NO_ANSWER = -1
OPTION_COUNT = 4


@dataclass(frozen=True)
class Question:
    """Multiple-choice question with exactly four options."""
    id: str
    text: str
    options: Tuple[str, ...]
    correct_index: int
    explanation: str
    time_limit_seconds: float
    base_points: int
    difficulty: Optional[str] = None

    @property
    def time_limit_ms(self) -> int:
        return int(round(self.time_limit_seconds * 1000))

    def validation_errors(self) -> List[str]:
        """Return a list of problems with this question (empty = valid)."""
        errors: List[str] = []
        if not self.id:
            errors.append("question id must not be empty")
        if len(self.options) != OPTION_COUNT:
            errors.append(
                f"question {self.id}: expected {OPTION_COUNT} options, got {len(self.options)}"
            )
        if not 0 <= self.correct_index < OPTION_COUNT:
            errors.append(f"question {self.id}: correct_index {self.correct_index} out of range")
        if self.time_limit_seconds <= 0:
            errors.append(f"question {self.id}: time_limit_seconds must be positive")
        if self.base_points < 0:
            errors.append(f"question {self.id}: base_points must be non-negative")
        return errors

    def public_view(self) -> Dict[str, Any]:
        """Question as shown to players while the window is open (no answer)."""
        return {
            "id": self.id,
            "text": self.text,
            "options": list(self.options),
            "time_limit_seconds": self.time_limit_seconds,
            "base_points": self.base_points,
            "difficulty": self.difficulty,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.public_view()
        data["correct_index"] = self.correct_index
        data["explanation"] = self.explanation
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Question":
        return cls(
            id=str(data["id"]),
            text=data["text"],
            options=tuple(data["options"]),
            correct_index=int(data["correct_index"]),
            explanation=data.get("explanation", ""),
            time_limit_seconds=float(data["time_limit_seconds"]),
            base_points=int(data["base_points"]),
            difficulty=data.get("difficulty"),
        )


@dataclass(frozen=True)
class Phase:
    """
    Tagged phase of the round state machine.

    Equality compares both the kind and the question index, so
    ``Phase.question(2) != Phase.question(3)``. This is what the
    compare-and-swap in the store relies on.
    """
    kind: PhaseKind
    question_index: Optional[int] = None

    @classmethod
    def waiting(cls) -> "Phase":
        return cls(PhaseKind.WAITING)

    @classmethod
    def countdown(cls) -> "Phase":
        return cls(PhaseKind.COUNTDOWN)

    @classmethod
    def question(cls, index: int) -> "Phase":
        return cls(PhaseKind.QUESTION, index)

    @classmethod
    def reveal(cls, index: int) -> "Phase":
        return cls(PhaseKind.REVEAL, index)

    @classmethod
    def complete(cls) -> "Phase":
        return cls(PhaseKind.COMPLETE)

    @classmethod
    def abandoned(cls) -> "Phase":
        return cls(PhaseKind.ABANDONED)

    @property
    def status(self) -> RoomStatus:
        if self.kind == PhaseKind.WAITING:
            return RoomStatus.WAITING
        if self.kind == PhaseKind.COUNTDOWN:
            return RoomStatus.COUNTDOWN
        if self.kind in (PhaseKind.QUESTION, PhaseKind.REVEAL):
            return RoomStatus.IN_PROGRESS
        if self.kind == PhaseKind.COMPLETE:
            return RoomStatus.COMPLETE
        return RoomStatus.ABANDONED

    @property
    def is_terminal(self) -> bool:
        return self.kind in (PhaseKind.COMPLETE, PhaseKind.ABANDONED)

    def __str__(self) -> str:
        if self.question_index is None:
            return self.kind.value
        return f"{self.kind.value}[{self.question_index}]"


@dataclass
class Participant:
    """One player in a room. Only the store mutates these."""
    user_id: str
    display_name: str
    is_host: bool = False
    is_ready: bool = False
    score: int = 0
    connection_state: ConnectionState = ConnectionState.CONNECTED
    join_seq: int = 0

    @property
    def is_connected(self) -> bool:
        return self.connection_state == ConnectionState.CONNECTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "display_name": self.display_name,
            "is_host": self.is_host,
            "is_ready": self.is_ready,
            "score": self.score,
            "connection_state": self.connection_state.value,
        }


@dataclass(frozen=True)
class AnswerEntry:
    """One Answer Ledger row."""
    question_id: str
    user_id: str
    selected_index: int
    submitted_at_offset_ms: int
    scored: bool = False

    @property
    def timed_out(self) -> bool:
        return self.selected_index == NO_ANSWER


@dataclass(frozen=True)
class ScoreBreakdown:
    """Per-player scoring detail for one question."""
    user_id: str
    selected_index: int
    correct: bool
    base_points: int
    speed_bonus: int
    offset_ms: int

    @property
    def total(self) -> int:
        return self.base_points + self.speed_bonus

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "selected_index": self.selected_index,
            "correct": self.correct,
            "base_points": self.base_points,
            "speed_bonus": self.speed_bonus,
            "total": self.total,
            "offset_ms": self.offset_ms,
        }


@dataclass(frozen=True)
class RoundResult:
    """Points awarded for one question. Computed once at reveal."""
    question_id: str
    question_index: int
    breakdown: Tuple[ScoreBreakdown, ...]

    @property
    def points(self) -> Mapping[str, int]:
        return MappingProxyType({b.user_id: b.total for b in self.breakdown})


@dataclass(frozen=True)
class FinalStanding:
    """A participant's final place in a completed battle."""
    user_id: str
    display_name: str
    total_score: int
    rank: int
    correct_count: int
    correct_offset_ms: int
    answered_count: int = 0
    best_streak: int = 0

    @property
    def accuracy(self) -> float:
        if self.answered_count == 0:
            return 0.0
        return round(self.correct_count / self.answered_count, 4)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "display_name": self.display_name,
            "total_score": self.total_score,
            "rank": self.rank,
            "correct_count": self.correct_count,
            "correct_offset_ms": self.correct_offset_ms,
            "accuracy": self.accuracy,
            "best_streak": self.best_streak,
        }


@dataclass
class BattleRoom:
    """
    Full state of one battle room.

    ``participants`` keeps join order. ``phase`` is the authoritative
    state-machine position and ``status`` is derived from it.
    """
    id: str
    code: str
    host_id: str
    max_participants: int
    questions: Tuple[Question, ...]
    phase: Phase = field(default_factory=Phase.waiting)
    current_question_index: int = 0
    participants: Dict[str, Participant] = field(default_factory=dict)
    round_results: List[RoundResult] = field(default_factory=list)
    standings: Optional[Tuple[FinalStanding, ...]] = None
    phase_deadline: Optional[float] = None  # epoch seconds, for recovery
    created_at: float = field(default_factory=time.time)

    @property
    def status(self) -> RoomStatus:
        return self.phase.status

    @property
    def question_count(self) -> int:
        return len(self.questions)

    def current_question(self) -> Optional[Question]:
        if self.phase.kind in (PhaseKind.QUESTION, PhaseKind.REVEAL):
            return self.questions[self.phase.question_index]
        return None

    def connected_participants(self) -> List[Participant]:
        return [p for p in self.participants.values() if p.is_connected]
