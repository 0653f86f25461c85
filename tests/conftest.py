# Area: Tests
"""Shared fixtures for live_battle tests."""

import asyncio
from typing import List, Type

import pytest

from live_battle._engine_config import EngineConfig
from live_battle._room.database import Database
from live_battle._room.models import Phase, Question
from live_battle._shared.events import BattleEvent, EventBus
from live_battle.arena import BattleArena
from live_battle.demo_provider import StaticQuestionProvider


def make_question(
    qid: str = "q1",
    correct_index: int = 0,
    time_limit_seconds: float = 30.0,
    base_points: int = 10,
    options=("A", "B", "C", "D"),
    difficulty=None,
) -> Question:
    return Question(
        id=qid,
        text=f"Question {qid}?",
        options=tuple(options),
        correct_index=correct_index,
        explanation=f"Because {qid}.",
        time_limit_seconds=time_limit_seconds,
        base_points=base_points,
        difficulty=difficulty,
    )


class RecordingSink:
    """Event sink that keeps every event it receives."""

    def __init__(self):
        self.events: List[BattleEvent] = []

    def __call__(self, event: BattleEvent) -> None:
        self.events.append(event)

    def of_type(self, cls: Type[BattleEvent]) -> List[BattleEvent]:
        return [e for e in self.events if isinstance(e, cls)]


@pytest.fixture
def question_factory():
    """Factory for valid four-option questions."""
    return make_question


@pytest.fixture
def recorder():
    return RecordingSink()


@pytest.fixture
def database():
    db = Database(":memory:")
    yield db
    db.close()


@pytest.fixture
def bus(recorder):
    bus = EventBus()
    bus.subscribe(recorder)
    return bus


@pytest.fixture
def fast_config():
    """No countdown or reveal pause, so battles run as fast as answers arrive."""
    return EngineConfig(countdown_seconds=0, reveal_seconds=0, log_file="")


@pytest.fixture
def arena_factory(recorder, fast_config):
    """Build an arena over a static question list, recording all events."""

    def build(questions, config=None, **kwargs):
        arena = BattleArena(
            provider=StaticQuestionProvider(questions),
            config=config or fast_config,
            **kwargs,
        )
        arena.subscribe(recorder)
        return arena

    return build


@pytest.fixture
def wait_for_phase():
    """Poll an arena room until it reaches ``phase``."""

    async def wait(arena, room_id: str, phase: Phase, timeout: float = 2.0):
        loop = asyncio.get_running_loop()
        give_up = loop.time() + timeout
        while arena.get_room(room_id).phase != phase:
            if loop.time() > give_up:
                raise AssertionError(
                    f"room stuck in {arena.get_room(room_id).phase}, expected {phase}"
                )
            await asyncio.sleep(0.005)
        return arena.get_room(room_id)

    return wait
