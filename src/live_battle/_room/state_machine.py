# Area: Room
"""
live_battle._room.state_machine — Room phase state machine
==========================================================

Implements the phase table that every room moves through. The table
only knows phase kinds; the question-index rules (reveal[i] pairs with
question[i], question[i+1] follows reveal[i]) are checked separately in
``RoomPhaseMachine.can_transition``.
"""

import logging
from typing import Optional

from .enums import PhaseKind
from .models import Phase
from ..errors import InvalidStateTransition

logger = logging.getLogger("live_battle.room.state_machine")


# Valid phase transitions: {current_kind: {allowed next kinds}}
TRANSITIONS = {
    PhaseKind.WAITING: {PhaseKind.COUNTDOWN, PhaseKind.ABANDONED},
    PhaseKind.COUNTDOWN: {PhaseKind.QUESTION, PhaseKind.ABANDONED},
    PhaseKind.QUESTION: {PhaseKind.REVEAL, PhaseKind.ABANDONED},
    PhaseKind.REVEAL: {PhaseKind.QUESTION, PhaseKind.COMPLETE, PhaseKind.ABANDONED},
    PhaseKind.COMPLETE: set(),
    PhaseKind.ABANDONED: set(),
}


class RoomPhaseMachine:
    """
    State machine for a single room's phase.

    Attributes:
        question_count: Number of questions in the room
        current: The current phase
    """

    def __init__(self, question_count: int, current: Optional[Phase] = None):
        self.question_count = question_count
        self.current = current or Phase.waiting()

    def can_transition(self, target: Phase) -> bool:
        """
        Check whether ``target`` may follow the current phase.

        Args:
            target: The phase to move to

        Returns:
            True if the transition is valid, False otherwise
        """
        if target.kind not in TRANSITIONS.get(self.current.kind, set()):
            return False

        kind = self.current.kind
        index = self.current.question_index

        if target.kind == PhaseKind.QUESTION:
            expected = 0 if kind == PhaseKind.COUNTDOWN else index + 1
            return target.question_index == expected and expected < self.question_count
        if target.kind == PhaseKind.REVEAL:
            return target.question_index == index
        if target.kind == PhaseKind.COMPLETE:
            return index == self.question_count - 1
        return True

    def transition(self, target: Phase) -> Phase:
        """
        Execute a phase transition.

        Args:
            target: The phase to move to

        Returns:
            The new phase

        Raises:
            InvalidStateTransition: If the transition is not valid
        """
        if not self.can_transition(target):
            raise InvalidStateTransition(
                f"Invalid transition: {self.current} -> {target}"
            )
        logger.debug("Phase: %s -> %s", self.current, target)
        self.current = target
        return target

    def next_after_reveal(self) -> Phase:
        """The phase that follows the current reveal phase."""
        index = self.current.question_index
        if self.current.kind != PhaseKind.REVEAL or index is None:
            raise InvalidStateTransition(f"Not in a reveal phase: {self.current}")
        if index + 1 < self.question_count:
            return Phase.question(index + 1)
        return Phase.complete()
