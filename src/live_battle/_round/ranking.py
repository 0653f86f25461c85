# Area: Round
"""
live_battle._round.ranking — Ranking Resolver
=============================================

Turns participants and their ledger entries into final standings.

Order: total score (desc), correct answers (desc), sum of offsets of
correct answers (asc), user ID (asc). The user ID makes every key unique,
so ranks are 1..n with no shared places.
"""

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Sequence

from .scoring import score_breakdown
from .._room.models import AnswerEntry, FinalStanding, Participant, Question

logger = logging.getLogger("live_battle.round.ranking")


def _best_streak(results: List[bool]) -> int:
    best = run = 0
    for correct in results:
        run = run + 1 if correct else 0
        best = max(best, run)
    return best


def resolve(
    participants: Iterable[Participant],
    entries: Iterable[AnswerEntry],
    questions: Sequence[Question],
) -> List[FinalStanding]:
    """
    Compute final standings.

    Args:
        participants: Every participant of the room, connected or not
        entries: All ledger entries of the room
        questions: The room's ordered question set

    Returns:
        Standings ordered by rank
    """
    by_id = {q.id: q for q in questions}
    position = {q.id: i for i, q in enumerate(questions)}

    totals: Dict[str, int] = defaultdict(int)
    correct_counts: Dict[str, int] = defaultdict(int)
    correct_offsets: Dict[str, int] = defaultdict(int)
    answered: Dict[str, int] = defaultdict(int)
    history: Dict[str, List[tuple]] = defaultdict(list)

    for entry in entries:
        question = by_id.get(entry.question_id)
        if question is None:
            logger.warning(f"Ledger entry for unknown question {entry.question_id}")
            continue
        breakdown = score_breakdown(entry, question)
        totals[entry.user_id] += breakdown.total
        answered[entry.user_id] += 1
        if breakdown.correct:
            correct_counts[entry.user_id] += 1
            correct_offsets[entry.user_id] += breakdown.offset_ms
        history[entry.user_id].append((position[entry.question_id], breakdown.correct))

    people = list(participants)
    people.sort(key=lambda p: (
        -totals[p.user_id],
        -correct_counts[p.user_id],
        correct_offsets[p.user_id],
        p.user_id,
    ))

    standings = []
    for rank, p in enumerate(people, start=1):
        streak = _best_streak([c for _, c in sorted(history[p.user_id])])
        standings.append(FinalStanding(
            user_id=p.user_id,
            display_name=p.display_name,
            total_score=totals[p.user_id],
            rank=rank,
            correct_count=correct_counts[p.user_id],
            correct_offset_ms=correct_offsets[p.user_id],
            answered_count=answered[p.user_id],
            best_streak=streak,
        ))
    return standings


def answer_history(
    entries: Iterable[AnswerEntry],
    questions: Sequence[Question],
) -> Dict[str, List[Dict[str, object]]]:
    """
    Per-player answer history in question order.

    Each item holds the question ID, the selected index (-1 for a
    timeout), whether it was correct, the credited offset and the points.
    """
    by_id = {q.id: q for q in questions}
    position = {q.id: i for i, q in enumerate(questions)}
    rows: Dict[str, List[tuple]] = defaultdict(list)
    for entry in entries:
        question = by_id.get(entry.question_id)
        if question is None:
            continue
        breakdown = score_breakdown(entry, question)
        rows[entry.user_id].append((position[question.id], {
            "question_id": question.id,
            "selected_index": entry.selected_index,
            "correct": breakdown.correct,
            "offset_ms": breakdown.offset_ms,
            "points": breakdown.total,
        }))
    return {user: [item for _, item in sorted(items, key=lambda r: r[0])]
            for user, items in rows.items()}
