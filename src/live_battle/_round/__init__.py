# Area: Round
"""
Round layer - drives a room through its questions.

This package handles:
- Question timers and phase deadlines
- The answer ledger
- Scoring and final ranking
"""

from .controller import RoundController
from .ledger import AnswerLedger
from .ranking import answer_history, resolve
from .scoring import score, score_breakdown

__all__ = [
    "RoundController",
    "AnswerLedger",
    "resolve",
    "answer_history",
    "score",
    "score_breakdown",
]
