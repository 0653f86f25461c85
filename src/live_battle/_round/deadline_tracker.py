# Area: Round
"""
live_battle._round.deadline_tracker — Phase deadline tracking
=============================================================

Tracks the open time and deadline of each timed phase of a room
(countdown, question windows, reveal pauses) on the monotonic clock.

The tracker is the server's authoritative clock: answer offsets are
measured from the phase open time it records, and a submission that
arrives after the deadline is rejected even when the timer task that
closes the window has not run yet.
"""

from __future__ import annotations

import logging
import time
from typing import Dict, Optional

logger = logging.getLogger("live_battle.round.deadline_tracker")


class DeadlineTracker:
    """
    Tracks phase deadlines keyed by phase label (e.g. ``"question[2]"``).

    Each entry stores when the phase opened and the monotonic timestamp
    at which it expires.
    """

    def __init__(self) -> None:
        self._deadlines: Dict[str, dict] = {}

    def set_deadline(
        self, key: str, deadline_seconds: float, opened_ago: float = 0.0
    ) -> float:
        """
        Set (or overwrite) the deadline for a phase.

        Args:
            key: Phase label
            deadline_seconds: Seconds from now until the phase expires
            opened_ago: Seconds the phase has already been open, used when
                re-arming a phase after recovery

        Returns:
            Monotonic expiry time
        """
        now = time.monotonic()
        expires_at = now + deadline_seconds
        self._deadlines[key] = {
            "key": key,
            "opened_at": now - opened_ago,
            "expires_at": expires_at,
        }
        logger.debug("Deadline set: %s (%.1fs)", key, deadline_seconds)
        return expires_at

    def elapsed_ms(self, key: str) -> Optional[int]:
        """Milliseconds since the phase opened, or None if not tracked."""
        entry = self._deadlines.get(key)
        if entry is None:
            return None
        return int((time.monotonic() - entry["opened_at"]) * 1000)

    def is_expired(self, key: str) -> bool:
        """True once the deadline has passed. Untracked keys count as expired."""
        entry = self._deadlines.get(key)
        if entry is None:
            return True
        return time.monotonic() >= entry["expires_at"]

    def cancel(self, key: str) -> None:
        """Stop tracking a phase. No-op if not found."""
        if key in self._deadlines:
            logger.debug("Deadline cancelled for %s", key)
            del self._deadlines[key]

    def clear(self) -> None:
        """Remove all tracked deadlines."""
        self._deadlines.clear()
        logger.debug("All deadlines cleared")
