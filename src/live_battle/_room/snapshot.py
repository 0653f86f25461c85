# Area: Room
"""
live_battle._room.snapshot — Room state snapshot builder
========================================================

Builds serializable room snapshots for client responses and the
``RoomStateChanged`` event. Snapshots never include correct answers of
questions that have not been revealed.
"""

from typing import Any, Dict, List

from .enums import PhaseKind
from .models import BattleRoom
from .._shared.events import ParticipantView, RoomStateChanged


def build_room_snapshot(room: BattleRoom) -> Dict[str, Any]:
    """Build a serializable view of a room."""
    snapshot = {
        "room_id": room.id,
        "code": room.code,
        "host_id": room.host_id,
        "status": room.status.value,
        "phase": str(room.phase),
        "max_participants": room.max_participants,
        "question_count": room.question_count,
        "current_question_index": room.current_question_index,
        "participants": [p.to_dict() for p in room.participants.values()],
    }
    question = room.current_question()
    if question is not None:
        if room.phase.kind == PhaseKind.QUESTION:
            snapshot["question"] = question.public_view()
        else:
            snapshot["question"] = question.to_dict()
    if room.standings is not None:
        snapshot["standings"] = [s.to_dict() for s in room.standings]
    return snapshot


def _participant_views(room: BattleRoom) -> List[ParticipantView]:
    return [
        ParticipantView(
            user_id=p.user_id,
            display_name=p.display_name,
            is_host=p.is_host,
            is_ready=p.is_ready,
            score=p.score,
            connection_state=p.connection_state.value,
        )
        for p in room.participants.values()
    ]


def build_state_event(room: BattleRoom, version: int) -> RoomStateChanged:
    """Build the ``RoomStateChanged`` event for the room's current state."""
    return RoomStateChanged(
        room_id=room.id,
        phase=room.phase.kind.value,
        question_index=room.phase.question_index,
        status=room.status.value,
        version=version,
        host_id=room.host_id,
        participants=_participant_views(room),
    )
