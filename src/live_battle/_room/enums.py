# Area: Room
"""
live_battle._room.enums — Room lifecycle enums
==============================================

Defines the coarse room status, the fine-grained phase kinds driven by
the round controller, and participant connection state.
"""

from enum import Enum


class RoomStatus(Enum):
    """
    Coarse lifecycle status of a battle room.

    Status only ever moves forward:
    WAITING -> COUNTDOWN -> IN_PROGRESS -> COMPLETE
    Any non-terminal status -> ABANDONED (on abort)
    """
    WAITING = "waiting"
    COUNTDOWN = "countdown"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    ABANDONED = "abandoned"


class PhaseKind(Enum):
    """
    Phase kinds of the round state machine.

    QUESTION and REVEAL carry a question index; the others do not.
    """
    WAITING = "waiting"
    COUNTDOWN = "countdown"
    QUESTION = "question"
    REVEAL = "reveal"
    COMPLETE = "complete"
    ABANDONED = "abandoned"


class ConnectionState(Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class CloseTrigger(Enum):
    """What closed a question window."""
    TIMEOUT = "timeout"
    ALL_ANSWERED = "all_answered"


class AdvanceTrigger(Enum):
    """What moved a room out of a reveal phase."""
    AUTO = "auto"
    HOST = "host"
    WAIT_CAP = "wait_cap"
