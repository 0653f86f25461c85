# Area: Shared
"""
live_battle._shared.commands — Client command validation
========================================================

Validates the structure of incoming client commands before dispatch.
Commands arrive from the realtime transport as JSON dicts with camelCase
keys and a ``type`` discriminator:

    {"type": "join", "roomId": "..."}
    {"type": "setReady", "roomId": "...", "ready": true}
    {"type": "submitAnswer", "roomId": "...", "questionId": "...", "selectedIndex": 2}
    {"type": "hostAdvance", "roomId": "..."}
    {"type": "leave", "roomId": "..."}
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from ..errors import InvalidCommand


class _Command(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    room_id: str = Field(min_length=1)


class JoinCommand(_Command):
    type: Literal["join"]
    display_name: Optional[str] = Field(default=None, max_length=64)


class LeaveCommand(_Command):
    type: Literal["leave"]


class SetReadyCommand(_Command):
    type: Literal["setReady"]
    ready: bool = True


class SubmitAnswerCommand(_Command):
    type: Literal["submitAnswer"]
    question_id: str = Field(min_length=1)
    # -1 is an explicit decline
    selected_index: int = Field(ge=-1, le=3)
    client_offset_ms: Optional[int] = Field(default=None, ge=0)


class HostAdvanceCommand(_Command):
    type: Literal["hostAdvance"]


Command = Annotated[
    Union[JoinCommand, LeaveCommand, SetReadyCommand, SubmitAnswerCommand, HostAdvanceCommand],
    Field(discriminator="type"),
]

_COMMAND_ADAPTER: TypeAdapter = TypeAdapter(Command)


def parse_command(body: Dict[str, Any]) -> Command:
    """
    Validate a raw client command.

    Args:
        body: Decoded JSON command

    Returns:
        The typed command model

    Raises:
        InvalidCommand: With one message per validation problem
    """
    if not isinstance(body, dict):
        raise InvalidCommand(f"Command must be an object, got {type(body).__name__}")
    try:
        return _COMMAND_ADAPTER.validate_python(body)
    except ValidationError as exc:
        errors = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in exc.errors()
        ]
        raise InvalidCommand("Invalid command", errors=errors) from exc
