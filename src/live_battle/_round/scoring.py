# Area: Round
"""
live_battle._round.scoring — Scoring Engine
===========================================

Pure functions from a ledger entry and its question to points.

A correct answer earns the question's base points plus a speed bonus:

    bonus = round(base_points * 0.5 * (1 - offset_ms / time_limit_ms))

rounded half-up and clamped at zero. Wrong answers and timeouts earn 0.
The bonus is computed in integers so equal inputs always give equal
points, whatever the platform.
"""

from .._room.models import AnswerEntry, Question, ScoreBreakdown


def clamp_offset(offset_ms: int, time_limit_ms: int) -> int:
    """Clamp an answer offset into ``[0, time_limit_ms]``."""
    return max(0, min(int(offset_ms), time_limit_ms))


def speed_bonus(base_points: int, offset_ms: int, time_limit_ms: int) -> int:
    """
    Speed bonus for a correct answer.

    Args:
        base_points: Question base points
        offset_ms: Milliseconds from question open to submission
        time_limit_ms: Question time limit in milliseconds

    Returns:
        Bonus points, half-up rounded, never negative
    """
    if time_limit_ms <= 0 or base_points <= 0:
        return 0
    offset_ms = clamp_offset(offset_ms, time_limit_ms)
    # base * (limit - offset) / (2 * limit), rounded half-up
    numerator = base_points * (time_limit_ms - offset_ms)
    denominator = 2 * time_limit_ms
    return max(0, (2 * numerator + denominator) // (2 * denominator))


def is_correct(entry: AnswerEntry, question: Question) -> bool:
    return not entry.timed_out and entry.selected_index == question.correct_index


def score_breakdown(entry: AnswerEntry, question: Question) -> ScoreBreakdown:
    """Score one entry with its base and bonus parts kept apart."""
    correct = is_correct(entry, question)
    offset_ms = clamp_offset(entry.submitted_at_offset_ms, question.time_limit_ms)
    if not correct:
        return ScoreBreakdown(
            user_id=entry.user_id,
            selected_index=entry.selected_index,
            correct=False,
            base_points=0,
            speed_bonus=0,
            offset_ms=offset_ms,
        )
    return ScoreBreakdown(
        user_id=entry.user_id,
        selected_index=entry.selected_index,
        correct=True,
        base_points=question.base_points,
        speed_bonus=speed_bonus(question.base_points, offset_ms, question.time_limit_ms),
        offset_ms=offset_ms,
    )


def score(entry: AnswerEntry, question: Question) -> int:
    """Points awarded for one ledger entry."""
    return score_breakdown(entry, question).total
