"""
live_battle — Live Battle Engine
================================

Copyright (c) 2026 Dr. Yoram Segal and Omry Tzabar. All rights reserved.

PROPRIETARY SOFTWARE — No modifications, redistribution, or derivative works
permitted. Usage restricted to courses delivered by Dr. Yoram Segal unless
prior written approval is granted. See LICENSE file for full terms.

Real-time quiz battles for 2 to 4 players: synchronized questions,
server-timed answer windows, speed-weighted scoring and a deterministic
final ranking.

Quick Start (bundled demo question bank):
    from live_battle import BattleArena, DemoQuestionProvider

    arena = BattleArena(provider=DemoQuestionProvider())
    arena.subscribe(print)
    room = await arena.create_room("host-1", max_participants=2)
    await arena.dispatch("user-2", {"type": "join", "roomId": room.code})

Custom Integration:
    from live_battle import BattleArena, QuestionSetProvider, ResultsSink
    class MyProvider(QuestionSetProvider): ...  # Implement get_questions
    class MySink(ResultsSink): ...              # Implement handoff
    arena = BattleArena(provider=MyProvider(), results_sink=MySink())

Command line demo:
    python -m live_battle --demo
"""

from .arena import BattleArena
from .callbacks import QuestionSetProvider, ResultsSink, NullResultsSink
from .demo_provider import DemoQuestionProvider, StaticQuestionProvider
from ._engine_config import EngineConfig, load_config, validate_config
from ._room.enums import ConnectionState, PhaseKind, RoomStatus
from ._room.models import (
    AnswerEntry,
    BattleRoom,
    FinalStanding,
    Participant,
    Phase,
    Question,
    RoundResult,
    ScoreBreakdown,
)
from ._round.scoring import score, score_breakdown
from ._round.ranking import answer_history, resolve
from ._shared.events import (
    AnswerAccepted,
    BattleComplete,
    BattleEvent,
    EventBus,
    PhaseChanged,
    QuestionRevealed,
    RoomStateChanged,
)
from ._shared.logging_config import setup_logging
from .errors import (
    BattleEngineError,
    ClientInputError,
    ConcurrencyError,
    DuplicateParticipant,
    DuplicateSubmission,
    InvalidCommand,
    InvalidConfiguration,
    InvalidStateTransition,
    NotHost,
    QuestionWindowClosed,
    RoomAlreadyStarted,
    RoomFull,
    RoomNotFound,
    StaleTransition,
    UnknownParticipant,
)
from .types import CommandResponse, QuestionDict, RoomConfig, StandingDict

__all__ = [
    # Main classes
    "BattleArena",
    "QuestionSetProvider",
    "ResultsSink",
    "NullResultsSink",
    "DemoQuestionProvider",
    "StaticQuestionProvider",
    # Configuration
    "EngineConfig",
    "load_config",
    "validate_config",
    "setup_logging",
    # Model
    "ConnectionState",
    "PhaseKind",
    "RoomStatus",
    "AnswerEntry",
    "BattleRoom",
    "FinalStanding",
    "Participant",
    "Phase",
    "Question",
    "RoundResult",
    "ScoreBreakdown",
    # Scoring and ranking
    "score",
    "score_breakdown",
    "resolve",
    "answer_history",
    # Events
    "AnswerAccepted",
    "BattleComplete",
    "BattleEvent",
    "EventBus",
    "PhaseChanged",
    "QuestionRevealed",
    "RoomStateChanged",
    # Errors
    "BattleEngineError",
    "ClientInputError",
    "ConcurrencyError",
    "DuplicateParticipant",
    "DuplicateSubmission",
    "InvalidCommand",
    "InvalidConfiguration",
    "InvalidStateTransition",
    "NotHost",
    "QuestionWindowClosed",
    "RoomAlreadyStarted",
    "RoomFull",
    "RoomNotFound",
    "StaleTransition",
    "UnknownParticipant",
    # Types
    "CommandResponse",
    "QuestionDict",
    "RoomConfig",
    "StandingDict",
]
__version__ = "1.0.0"
__license__ = "Proprietary — Copyright (c) 2026 Dr. Yoram Segal and Omry Tzabar"
__author__ = "Dr. Yoram Segal and Omry Tzabar"
