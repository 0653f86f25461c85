"""
live_battle.errors — Custom exception classes
==============================================

Defines the exception hierarchy for the battle engine.

Three families:
    ClientInputError    returned to the originating client, never corrupts state
    ConcurrencyError    internal only, a lost race between two triggers
    InvalidConfiguration  fatal to a single room-creation attempt

Every error carries a stable ``code`` used on the wire.
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional
import json


class BattleEngineError(Exception):
    """Base exception for all live_battle errors."""

    code = "ENGINE_ERROR"

    def __init__(self, message: str = "", **context: Any):
        self.context = context
        super().__init__(message or self.code)

    def to_payload(self) -> Dict[str, Any]:
        """Serializable form sent back to clients."""
        return {"ok": False, "error": self.code, "message": str(self)}

    def format_error_log(self) -> str:
        return _format_error_block(
            error_type=self.code,
            message=str(self),
            context=self.context,
        )


# ============ Client-input errors ============

class ClientInputError(BattleEngineError):
    """Rejected client command. Safe to retry or ignore."""

    code = "CLIENT_INPUT"
    # Surfaced to the user as "cannot join" messaging
    user_visible = False

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["user_visible"] = self.user_visible
        return payload


class RoomNotFound(ClientInputError):
    code = "ROOM_NOT_FOUND"

    def __init__(self, room_id: str):
        self.room_id = room_id
        super().__init__(f"Room {room_id} not found", room_id=room_id)


class RoomFull(ClientInputError):
    code = "ROOM_FULL"
    user_visible = True

    def __init__(self, room_id: str, max_participants: int):
        self.room_id = room_id
        self.max_participants = max_participants
        super().__init__(
            f"Room {room_id} is full ({max_participants} participants)",
            room_id=room_id,
        )


class RoomAlreadyStarted(ClientInputError):
    code = "ROOM_ALREADY_STARTED"
    user_visible = True

    def __init__(self, room_id: str, status: str):
        self.room_id = room_id
        self.status = status
        super().__init__(
            f"Room {room_id} is no longer accepting players (status={status})",
            room_id=room_id,
            status=status,
        )


class DuplicateParticipant(ClientInputError):
    code = "DUPLICATE_PARTICIPANT"

    def __init__(self, room_id: str, user_id: str):
        self.room_id = room_id
        self.user_id = user_id
        super().__init__(
            f"User {user_id} already joined room {room_id}",
            room_id=room_id,
            user_id=user_id,
        )


class UnknownParticipant(ClientInputError):
    code = "UNKNOWN_PARTICIPANT"

    def __init__(self, room_id: str, user_id: str):
        self.room_id = room_id
        self.user_id = user_id
        super().__init__(
            f"User {user_id} is not in room {room_id}",
            room_id=room_id,
            user_id=user_id,
        )


class NotHost(ClientInputError):
    code = "NOT_HOST"

    def __init__(self, room_id: str, user_id: str):
        self.room_id = room_id
        self.user_id = user_id
        super().__init__(
            f"User {user_id} is not the host of room {room_id}",
            room_id=room_id,
            user_id=user_id,
        )


class QuestionWindowClosed(ClientInputError):
    code = "QUESTION_WINDOW_CLOSED"

    def __init__(self, room_id: str, question_id: str):
        self.room_id = room_id
        self.question_id = question_id
        super().__init__(
            f"Question {question_id} is not accepting answers in room {room_id}",
            room_id=room_id,
            question_id=question_id,
        )


class DuplicateSubmission(ClientInputError):
    code = "DUPLICATE_SUBMISSION"

    def __init__(self, question_id: str, user_id: str):
        self.question_id = question_id
        self.user_id = user_id
        super().__init__(
            f"User {user_id} already answered question {question_id}",
            question_id=question_id,
            user_id=user_id,
        )


class InvalidCommand(ClientInputError):
    """Malformed client command (wrong type, missing field, bad index)."""

    code = "INVALID_COMMAND"

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = errors or []
        super().__init__(message, errors=self.errors)


# ============ Concurrency errors ============

class ConcurrencyError(BattleEngineError):
    code = "CONCURRENCY"


class StaleTransition(ConcurrencyError):
    """Phase compare-and-swap lost: the room is no longer in ``expected``."""

    code = "STALE_TRANSITION"

    def __init__(self, room_id: str, expected: str, actual: str):
        self.room_id = room_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Room {room_id}: expected phase {expected}, found {actual}",
            room_id=room_id,
            expected=expected,
            actual=actual,
        )


class InvalidStateTransition(ConcurrencyError):
    """Transition not permitted by the phase table."""

    code = "INVALID_STATE_TRANSITION"


# ============ Configuration errors ============

class InvalidConfiguration(BattleEngineError):
    code = "INVALID_CONFIGURATION"

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = errors or [message]
        super().__init__(message, errors=self.errors)


def _format_error_block(
    error_type: str,
    message: str,
    context: Dict[str, Any],
) -> str:
    """Format a structured multi-line error block for logs."""
    from datetime import datetime, timezone

    timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"

    lines = [
        "",
        "=" * 64,
        " BATTLE ENGINE ERROR",
        "=" * 64,
        f" Timestamp:    {timestamp}",
        f" Error Type:   {error_type}",
        f" Message:      {message}",
    ]

    if context:
        lines.append("")
        lines.append(" ── CONTEXT " + "─" * 52)
        lines.append(_indent_json(context))

    lines.append("")
    lines.append("=" * 64)
    lines.append("")

    return "\n".join(lines)


def _indent_json(data: Dict[str, Any], indent: int = 2) -> str:
    """Format JSON with indentation for error logs."""
    try:
        formatted = json.dumps(data, indent=indent, default=str)
        return "\n".join(" " + line for line in formatted.split("\n"))
    except (TypeError, ValueError):
        return f" {repr(data)}"
