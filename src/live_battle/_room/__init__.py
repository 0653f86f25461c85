# Area: Room
"""
Room layer - durable battle room state.

This package handles:
- Room, participant and question models
- The phase state machine
- SQLite storage and repositories
- The room state store (compare-and-swap phase changes)
"""

from .enums import ConnectionState, PhaseKind, RoomStatus
from .models import BattleRoom, Participant, Phase, Question
from .state_machine import RoomPhaseMachine
from .database import Database
from .store import RoomStore

__all__ = [
    "ConnectionState",
    "PhaseKind",
    "RoomStatus",
    "BattleRoom",
    "Participant",
    "Phase",
    "Question",
    "RoomPhaseMachine",
    "Database",
    "RoomStore",
]
