"""
main.py — Embed the Live Battle Engine
======================================

Shows the three integration points of the engine:

  1. A QuestionSetProvider that supplies each room's questions
  2. A ResultsSink that receives final standings
  3. An event subscriber standing in for your realtime transport

Clients talk to the engine through ``arena.dispatch(user_id, command)``.

    python examples/main.py
"""

import asyncio
import json

from live_battle import (
    BattleArena,
    EngineConfig,
    Question,
    QuestionSetProvider,
    ResultsSink,
    setup_logging,
)


class TinyBank(QuestionSetProvider):
    """Two hard-coded questions with short time limits."""

    def get_questions(self, room_config):
        return [
            Question(
                id="q1", text="2 + 2 = ?", options=("3", "4", "5", "22"),
                correct_index=1, explanation="Basic arithmetic.",
                time_limit_seconds=3, base_points=10, difficulty="easy",
            ),
            Question(
                id="q2", text="Largest planet?", options=("Earth", "Saturn", "Jupiter", "Mars"),
                correct_index=2, explanation="Jupiter is the largest.",
                time_limit_seconds=3, base_points=20, difficulty="medium",
            ),
        ]


class PrintSink(ResultsSink):
    def handoff(self, room_id, standings):
        for s in standings:
            print(f"  #{s.rank} {s.user_id}: {s.total_score} pts")


async def main():
    setup_logging(log_file_path="live_battle.log", level="WARNING")
    arena = BattleArena(
        provider=TinyBank(),
        results_sink=PrintSink(),
        config=EngineConfig(countdown_seconds=1, reveal_seconds=1),
    )

    # Your transport would push these to clients as JSON
    arena.subscribe(lambda event: print(json.dumps(event.to_wire())[:120]))

    room = await arena.create_room("alice", max_participants=2, question_count=2)
    print(await arena.dispatch("bob", {"type": "join", "roomId": room.code}))
    for user in ("alice", "bob"):
        await arena.dispatch(user, {"type": "setReady", "roomId": room.id})

    # Both players answer every question right away
    for question in room.questions:
        while arena.get_room(room.id).current_question() != question:
            await asyncio.sleep(0.05)
        for user, choice in (("alice", question.correct_index), ("bob", 0)):
            await arena.dispatch(user, {
                "type": "submitAnswer", "roomId": room.id,
                "questionId": question.id, "selectedIndex": choice,
            })

    await arena.wait_until_finished(room.id, timeout=30)
    await arena.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
