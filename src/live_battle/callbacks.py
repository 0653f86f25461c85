# Area: Integration
"""
live_battle.callbacks — Collaborator interfaces
===============================================

The engine talks to the rest of the application through two small
interfaces:

    QuestionSetProvider   supplies a room's questions, once, at creation
    ResultsSink           receives final standings when a battle completes

Subclass them and pass instances to ``BattleArena``:

    from live_battle import BattleArena, QuestionSetProvider, ResultsSink

    class BankProvider(QuestionSetProvider):
        def get_questions(self, room_config): ...

    arena = BattleArena(provider=BankProvider(), results_sink=MySink())
"""

from abc import ABC, abstractmethod
from typing import List, Sequence

from ._room.models import FinalStanding, Question
from .types import RoomConfig


class QuestionSetProvider(ABC):
    """
    Source of pre-generated question sets.

    The returned list is copied into the room and never read again, so
    later changes on the provider side do not affect a running battle.
    """

    @abstractmethod
    def get_questions(self, room_config: RoomConfig) -> List[Question]:
        """
        Return the ordered questions for a new room.

        Parameters
        ----------
        room_config : RoomConfig
            {
                "host_id": str,
                "max_participants": int,     # 2-4
                "question_count": int,       # requested number of questions
                "category": str | None,
                "difficulty": str | None,    # "easy" | "medium" | "hard"
            }

        Returns
        -------
        list[Question]
            Validated by the store; a malformed question fails room creation
            with InvalidConfiguration.
        """


class ResultsSink(ABC):
    """Receives final standings. Called once per completed room."""

    @abstractmethod
    def handoff(self, room_id: str, standings: Sequence[FinalStanding]) -> None:
        """
        Accept the final standings of a completed room.

        Fire-and-forget: exceptions are logged by the engine and do not
        change the room's outcome.
        """


class NullResultsSink(ResultsSink):
    """Discards standings."""

    def handoff(self, room_id: str, standings: Sequence[FinalStanding]) -> None:
        return None
