"""
live_battle.types — TypedDict schemas for integration payloads
==============================================================

Documents the dict shapes that cross the engine boundary: the room
config handed to a QuestionSetProvider, question records in JSON banks,
and the responses returned by ``BattleArena.dispatch``.

All types are exported from the main package:

    from live_battle import RoomConfig, QuestionDict, CommandResponse
"""

from typing import Any, Dict, List, Optional, TypedDict


# ============================================
# QuestionSetProvider input
# ============================================

class RoomConfig(TypedDict, total=False):
    """Context passed to QuestionSetProvider.get_questions().

    Fields
    ------
    host_id : str
        User creating the room.
    max_participants : int
        Room capacity, 2 to 4.
    question_count : int
        Number of questions requested.
    category : str or None
        Optional topic filter.
    difficulty : str or None
        "easy", "medium" or "hard".
    """
    host_id: str
    max_participants: int
    question_count: int
    category: Optional[str]
    difficulty: Optional[str]


# ============================================
# Question bank records
# ============================================

class QuestionDict(TypedDict, total=False):
    """One question as stored in a JSON question bank.

    ``time_limit_seconds`` and ``base_points`` may be omitted; the demo
    provider derives them from ``difficulty``.
    """
    id: str
    text: str
    options: List[str]          # exactly 4
    correct_index: int          # 0-3
    explanation: str
    time_limit_seconds: float
    base_points: int
    difficulty: str
    category: str


# ============================================
# Dispatch output
# ============================================

class StandingDict(TypedDict):
    """A final standing as returned to clients."""
    user_id: str
    display_name: str
    total_score: int
    rank: int
    correct_count: int
    correct_offset_ms: int
    accuracy: float
    best_streak: int


class CommandResponse(TypedDict, total=False):
    """Return value of BattleArena.dispatch().

    Success: {"ok": True, "room": {...}, ...}
    Failure: {"ok": False, "error": "ROOM_FULL", "message": "...",
              "user_visible": True}
    """
    ok: bool
    error: str
    message: str
    user_visible: bool
    room: Dict[str, Any]
    participant: Dict[str, Any]
