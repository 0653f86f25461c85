# Area: Shared
"""
live_battle._shared.events — Fan-out event models and bus
=========================================================

Typed events the engine emits for the realtime transport. Delivery is
at-least-once, so every event exposes an ``idempotency_key`` built from
the room, the phase and the question index.

Events serialize with camelCase keys (``event.to_wire()``).
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

logger = logging.getLogger("live_battle.events")


def _utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


class _WireModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class ParticipantView(_WireModel):
    user_id: str
    display_name: str
    is_host: bool
    is_ready: bool
    score: int
    connection_state: str


class StandingView(_WireModel):
    user_id: str
    display_name: str
    total_score: int
    rank: int
    correct_count: int
    correct_offset_ms: int
    accuracy: float
    best_streak: int


class BattleEvent(_WireModel):
    """Base class for every engine event."""
    event_type: str
    room_id: str
    phase: str
    question_index: Optional[int] = None
    event_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    emitted_at: str = Field(default_factory=_utc_now)

    @property
    def idempotency_key(self) -> Tuple[Any, ...]:
        return (self.room_id, self.event_type, self.phase, self.question_index)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class RoomStateChanged(BattleEvent):
    event_type: Literal["RoomStateChanged"] = "RoomStateChanged"
    status: str
    version: int
    host_id: str
    participants: List[ParticipantView]

    @property
    def idempotency_key(self) -> Tuple[Any, ...]:
        return (self.room_id, self.event_type, self.version)


class PhaseChanged(BattleEvent):
    event_type: Literal["PhaseChanged"] = "PhaseChanged"
    status: str
    # Public question view (no correct index) when entering a question
    question: Optional[Dict[str, Any]] = None
    # Absolute server deadline (epoch ms) and phase length
    deadline_ms: Optional[int] = None
    duration_ms: Optional[int] = None
    reason: Optional[str] = None


class AnswerAccepted(BattleEvent):
    """Acknowledgement only; never carries the selected option."""
    event_type: Literal["AnswerAccepted"] = "AnswerAccepted"
    user_id: str
    question_id: str

    @property
    def idempotency_key(self) -> Tuple[Any, ...]:
        return (self.room_id, self.event_type, self.question_id, self.user_id)


class QuestionRevealed(BattleEvent):
    event_type: Literal["QuestionRevealed"] = "QuestionRevealed"
    question_id: str
    correct_index: int
    explanation: str
    per_player_points: Dict[str, int]
    breakdown: List[Dict[str, Any]]
    scores: Dict[str, int]
    trigger: str


class BattleComplete(BattleEvent):
    event_type: Literal["BattleComplete"] = "BattleComplete"
    standings: List[StandingView]
    # user ID -> answers in question order
    history: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)


EventSink = Callable[[BattleEvent], None]


class EventBus:
    """
    Fans engine events out to subscribed sinks.

    A failing sink is logged and skipped; it never affects room state
    or the other sinks.
    """

    def __init__(self) -> None:
        self._sinks: List[EventSink] = []

    def subscribe(self, sink: EventSink) -> Callable[[], None]:
        """Register a sink. Returns a function that unsubscribes it."""
        self._sinks.append(sink)

        def unsubscribe() -> None:
            if sink in self._sinks:
                self._sinks.remove(sink)

        return unsubscribe

    def publish(self, event: BattleEvent) -> None:
        logger.debug("Emit %s room=%s phase=%s", event.event_type, event.room_id, event.phase)
        for sink in list(self._sinks):
            try:
                sink(event)
            except Exception:
                logger.error(
                    "Event sink %r failed on %s", sink, event.event_type, exc_info=True,
                )
