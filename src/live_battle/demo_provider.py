# Area: Integration
"""
live_battle.demo_provider — Demo question providers
===================================================

Ready-to-use QuestionSetProvider implementations.

    DemoQuestionProvider    reads the bundled demo_data/questions.json bank
    StaticQuestionProvider  serves a fixed list (handy in tests)

Usage:
    from live_battle import BattleArena, DemoQuestionProvider

    arena = BattleArena(provider=DemoQuestionProvider())
"""

import json
import random
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ._room.models import Question
from .callbacks import QuestionSetProvider
from .types import RoomConfig

# Default demo data path (relative to package)
DEFAULT_DEMO_PATH = Path(__file__).parent / "demo_data" / "questions.json"

DEFAULT_TIME_LIMIT_SECONDS = 30.0
DEFAULT_BASE_POINTS = 15

# Base points by difficulty
DIFFICULTY_POINTS = {
    "easy": 10,
    "medium": 20,
    "hard": 30,
}


def points_for_difficulty(difficulty: Optional[str]) -> int:
    """Base points for a difficulty label; unknown labels get the default."""
    return DIFFICULTY_POINTS.get((difficulty or "").lower(), DEFAULT_BASE_POINTS)


def question_from_record(
    record: Dict[str, Any],
    time_limit_seconds: float = DEFAULT_TIME_LIMIT_SECONDS,
) -> Question:
    """
    Build a Question from a bank record, filling in derived defaults.

    ``base_points`` falls back to the difficulty table and
    ``time_limit_seconds`` to the given limit.
    """
    return Question(
        id=str(record["id"]),
        text=record["text"],
        options=tuple(record["options"]),
        correct_index=int(record["correct_index"]),
        explanation=record.get("explanation", ""),
        time_limit_seconds=float(record.get("time_limit_seconds", time_limit_seconds)),
        base_points=int(record.get("base_points", points_for_difficulty(record.get("difficulty")))),
        difficulty=record.get("difficulty"),
    )


class DemoQuestionProvider(QuestionSetProvider):
    """
    Serves questions from a JSON question bank.

    Questions are filtered by the room config's category and difficulty,
    shuffled with the provider's random generator, and cut to the
    requested count.
    """

    def __init__(
        self,
        bank_path: Optional[str] = None,
        time_limit_seconds: float = DEFAULT_TIME_LIMIT_SECONDS,
        seed: Optional[int] = None,
    ):
        """
        Initialize the provider.

        Args:
            bank_path: JSON bank file. Defaults to the bundled demo bank
            time_limit_seconds: Limit for records that do not set one
            seed: Seed for the shuffle, for reproducible demos
        """
        self._bank_path = Path(bank_path) if bank_path else DEFAULT_DEMO_PATH
        self._time_limit = time_limit_seconds
        self._rng = random.Random(seed)
        with open(self._bank_path, encoding="utf-8") as f:
            self._records: List[Dict[str, Any]] = json.load(f)

    def get_questions(self, room_config: RoomConfig) -> List[Question]:
        records = self._records
        category = room_config.get("category")
        if category:
            records = [r for r in records if r.get("category") == category]
        difficulty = room_config.get("difficulty")
        if difficulty:
            records = [r for r in records if r.get("difficulty") == difficulty]

        records = list(records)
        self._rng.shuffle(records)
        count = room_config.get("question_count") or len(records)
        return [question_from_record(r, self._time_limit) for r in records[:count]]


class StaticQuestionProvider(QuestionSetProvider):
    """Returns the same questions for every room."""

    def __init__(self, questions: Sequence[Question]):
        self._questions = list(questions)

    def get_questions(self, room_config: RoomConfig) -> List[Question]:
        count = room_config.get("question_count") or len(self._questions)
        return self._questions[:count]
