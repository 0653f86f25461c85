# Area: Shared
"""
live_battle.cli — Command-line interface
========================================

Runs a local battle between scripted clients against the bundled demo
question bank, printing every engine event.

Usage:
    python -m live_battle --demo                       # 2 players, 5 questions
    python -m live_battle --demo --players 4 --questions 3
    python -m live_battle --demo --config config.json  # timing from config file

Settings come from the config file and LIVE_BATTLE_* environment
variables (a .env file is loaded automatically).
"""

import argparse
import asyncio
import random
import sys
from typing import List, Optional, Set

from ._engine_config import EngineConfig, load_config
from ._room.models import BattleRoom
from ._shared.events import (
    AnswerAccepted,
    BattleComplete,
    BattleEvent,
    PhaseChanged,
    QuestionRevealed,
    RoomStateChanged,
)
from ._shared.logging_config import log_engine_error
from .arena import BattleArena
from .demo_provider import DemoQuestionProvider
from .errors import InvalidConfiguration

PLAYER_NAMES = ["Ada", "Grace", "Linus", "Margaret"]


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Live Battle Engine - run a local demo battle",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m live_battle --demo
  python -m live_battle --demo --players 4 --questions 3
  LIVE_BATTLE_REVEAL_SECONDS=1 python -m live_battle --demo
        """,
    )

    parser.add_argument(
        "--demo",
        action="store_true",
        help="Run a demo battle with scripted players",
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to JSON config file",
    )
    parser.add_argument(
        "--players",
        type=int,
        default=2,
        choices=range(2, 5),
        metavar="N",
        help="Number of scripted players, 2-4 (default: 2)",
    )
    parser.add_argument(
        "--questions",
        type=int,
        default=5,
        metavar="N",
        help="Number of questions (default: 5)",
    )
    parser.add_argument(
        "--time-limit",
        type=float,
        default=6.0,
        help="Seconds per question for the demo bank (default: 6)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Random seed for reproducible demos",
    )

    return parser.parse_args(argv)


def format_event(event: BattleEvent) -> Optional[str]:
    """One console line per event; None for events not worth printing."""
    if isinstance(event, PhaseChanged):
        if event.phase == "question" and event.question:
            options = "  ".join(
                f"[{i}] {text}" for i, text in enumerate(event.question["options"])
            )
            return (
                f"\n❓ Q{event.question_index + 1}: {event.question['text']}\n"
                f"   {options}  ({event.duration_ms // 1000}s)"
            )
        if event.phase == "countdown":
            return f"⏳ Starting in {event.duration_ms / 1000:.0f}s..."
        if event.phase == "abandoned":
            return f"✖ Room abandoned ({event.reason})"
        return None
    if isinstance(event, AnswerAccepted):
        return f"   ✔ {event.user_id} answered"
    if isinstance(event, QuestionRevealed):
        points = ", ".join(f"{u} +{p}" for u, p in event.per_player_points.items())
        return (
            f"   ▶ Answer: [{event.correct_index}] ({event.trigger}) {event.explanation}\n"
            f"     {points}"
        )
    if isinstance(event, BattleComplete):
        lines = ["", "🏆 Final standings"]
        for s in event.standings:
            lines.append(
                f"   {s.rank}. {s.display_name:<10} {s.total_score:>4} pts  "
                f"{s.correct_count} correct  accuracy {s.accuracy:.0%}  "
                f"best streak {s.best_streak}"
            )
        return "\n".join(lines)
    if isinstance(event, RoomStateChanged) and event.phase == "waiting":
        ready = sum(1 for p in event.participants if p.is_ready)
        return f"👥 {len(event.participants)} in room, {ready} ready"
    return None


def print_event(event: BattleEvent) -> None:
    line = format_event(event)
    if line is not None:
        print(line, flush=True)


class ScriptedClient:
    """A demo player that answers each question after a random delay."""

    def __init__(
        self,
        arena: BattleArena,
        room_id: str,
        user_id: str,
        rng: random.Random,
        skip_rate: float = 0.1,
    ):
        self.arena = arena
        self.room_id = room_id
        self.user_id = user_id
        self.rng = rng
        self.skip_rate = skip_rate
        self._tasks: Set[asyncio.Task] = set()

    def on_event(self, event: BattleEvent) -> None:
        if (
            isinstance(event, PhaseChanged)
            and event.room_id == self.room_id
            and event.phase == "question"
            and event.question
        ):
            task = asyncio.get_running_loop().create_task(self._answer(event))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _answer(self, event: PhaseChanged) -> None:
        if self.rng.random() < self.skip_rate:
            return
        limit_s = event.duration_ms / 1000
        await asyncio.sleep(self.rng.uniform(0.1, limit_s * 0.8))
        await self.arena.dispatch(self.user_id, {
            "type": "submitAnswer",
            "roomId": self.room_id,
            "questionId": event.question["id"],
            "selectedIndex": self.rng.randrange(len(event.question["options"])),
        })

    def cancel(self) -> None:
        for task in list(self._tasks):
            task.cancel()


async def run_demo(
    config: EngineConfig,
    players: int = 2,
    questions: int = 5,
    time_limit: float = 6.0,
    seed: Optional[int] = None,
) -> BattleRoom:
    """Play one battle between scripted clients. Returns the finished room."""
    rng = random.Random(seed)
    arena = BattleArena(
        provider=DemoQuestionProvider(time_limit_seconds=time_limit, seed=seed),
        config=config,
        configure_logging=True,
    )
    arena.subscribe(print_event)

    user_ids = [name.lower() for name in PLAYER_NAMES[:players]]
    room = await arena.create_room(
        user_ids[0],
        max_participants=players,
        question_count=questions,
        host_display_name=PLAYER_NAMES[0],
    )
    print(f"🎮 Room {room.code} created by {PLAYER_NAMES[0]}", flush=True)

    clients = [ScriptedClient(arena, room.id, user_id, rng) for user_id in user_ids]
    for client in clients:
        arena.subscribe(client.on_event)

    for name, user_id in zip(PLAYER_NAMES[1:players], user_ids[1:]):
        await arena.dispatch(user_id, {"type": "join", "roomId": room.code, "displayName": name})
    for user_id in user_ids:
        await arena.dispatch(user_id, {"type": "setReady", "roomId": room.id, "ready": True})

    # Generous cap: every phase at its maximum length, plus slack
    reveal = config.reveal_max_wait_seconds if config.host_paced_reveal else config.reveal_seconds
    timeout = config.countdown_seconds + room.question_count * (time_limit + reveal) + 30
    try:
        room = await arena.wait_until_finished(room.id, timeout=timeout)
    finally:
        for client in clients:
            client.cancel()
        await arena.shutdown()
    return room


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    args = parse_args(argv)

    if not args.demo:
        print("Error: only demo mode is available from the command line.", file=sys.stderr)
        print("Use --demo, or embed BattleArena in your own server.", file=sys.stderr)
        return 1

    try:
        config = load_config(args.config)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        room = asyncio.run(run_demo(
            config,
            players=args.players,
            questions=args.questions,
            time_limit=args.time_limit,
            seed=args.seed,
        ))
    except InvalidConfiguration as e:
        log_engine_error(e)
        return 1
    except KeyboardInterrupt:
        return 130

    return 0 if room.status.value == "complete" else 1
