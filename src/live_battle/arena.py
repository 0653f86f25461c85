# Area: Integration
"""
live_battle.arena — Battle Arena
================================

Entry point of the engine. The arena owns the room store, the event bus
and one RoundController per room, indexed by room ID. Rooms share
nothing else, so a failure in one room never touches another.

Usage:
    arena = BattleArena(provider=DemoQuestionProvider(), config=EngineConfig())
    arena.subscribe(transport.send)
    room = await arena.create_room("host-1", max_participants=4)
    response = await arena.dispatch("user-2", {"type": "join", "roomId": room.code})
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from ._engine_config import EngineConfig
from ._room.database import Database
from ._room.enums import ConnectionState
from ._room.models import AnswerEntry, BattleRoom, Participant
from ._room.snapshot import build_room_snapshot
from ._room.store import RoomStore
from ._round.controller import RoundController
from ._round.ledger import AnswerLedger
from ._shared.commands import (
    HostAdvanceCommand,
    JoinCommand,
    LeaveCommand,
    SetReadyCommand,
    SubmitAnswerCommand,
    parse_command,
)
from ._shared.events import EventBus, EventSink
from ._shared.logging_config import setup_logging
from .callbacks import QuestionSetProvider, ResultsSink
from .errors import ClientInputError, InvalidCommand
from .types import CommandResponse, RoomConfig

logger = logging.getLogger("live_battle.arena")


class BattleArena:
    """
    Hosts any number of independent battle rooms.

    Args:
        provider: Source of question sets
        config: Engine settings, defaults to ``EngineConfig()``
        results_sink: Receives final standings of completed rooms
        database: Shared database; one is opened at ``config.db_path``
            when omitted
        bus: Event bus; a new one is created when omitted
        configure_logging: Install the package log handlers from config
    """

    def __init__(
        self,
        provider: QuestionSetProvider,
        config: Optional[EngineConfig] = None,
        results_sink: Optional[ResultsSink] = None,
        database: Optional[Database] = None,
        bus: Optional[EventBus] = None,
        code_generator: Optional[Callable[[], str]] = None,
        configure_logging: bool = False,
    ):
        self.config = config or EngineConfig()
        if configure_logging:
            setup_logging(log_file_path=self.config.log_file, level=self.config.log_level)

        self.provider = provider
        self.results_sink = results_sink
        self.bus = bus or EventBus()
        self._owns_database = database is None
        self.database = database or Database(self.config.db_path)
        if code_generator is not None:
            self.store = RoomStore(self.database, self.bus, code_generator=code_generator)
        else:
            self.store = RoomStore(self.database, self.bus)
        self._controllers: Dict[str, RoundController] = {}
        self._releases: Dict[str, asyncio.TimerHandle] = {}

    def subscribe(self, sink: EventSink) -> Callable[[], None]:
        """Register an event sink. Returns an unsubscribe function."""
        return self.bus.subscribe(sink)

    # ── Rooms ────────────────────────────────────────────────

    async def create_room(
        self,
        host_id: str,
        max_participants: int = 4,
        question_count: int = 5,
        host_display_name: Optional[str] = None,
        category: Optional[str] = None,
        difficulty: Optional[str] = None,
        room_id: Optional[str] = None,
    ) -> BattleRoom:
        """
        Create a room, fetching its questions from the provider once.

        Raises:
            InvalidConfiguration: Bad capacity or question set
        """
        room_config: RoomConfig = {
            "host_id": host_id,
            "max_participants": max_participants,
            "question_count": question_count,
            "category": category,
            "difficulty": difficulty,
        }
        questions = self.provider.get_questions(room_config)
        room = self.store.create_room(
            host_id, questions, max_participants,
            host_display_name=host_display_name, room_id=room_id,
        )
        self._controllers[room.id] = self._new_controller(
            room.id, AnswerLedger(room.id, self.store.answers_repo),
        )
        return room

    def _new_controller(self, room_id: str, ledger: AnswerLedger) -> RoundController:
        return RoundController(
            room_id,
            self.store,
            ledger,
            self.config,
            results_sink=self.results_sink,
            on_finished=self._on_room_finished,
        )

    def _on_room_finished(self, room_id: str) -> None:
        room = self.store.get_room(room_id)
        logger.info(f"Room {room_id} finished with status {room.status.value}")
        ttl = self.config.finished_room_ttl_seconds
        self._releases[room_id] = asyncio.get_running_loop().call_later(
            ttl, self._release_room, room_id,
        )

    def _release_room(self, room_id: str) -> None:
        """Drop a finished room from memory. Its durable rows are kept."""
        self._releases.pop(room_id, None)
        controller = self._controllers.pop(room_id, None)
        if controller is not None:
            controller.close()
        self.store.forget(room_id)
        logger.debug(f"Room {room_id} released")

    def controller(self, room_ref: str) -> RoundController:
        """
        Get the controller for a room ID or join code.

        Raises:
            RoomNotFound: Neither an ID nor a code of a hosted room
        """
        controller = self._controllers.get(room_ref)
        if controller is not None:
            return controller
        room = self.store.get_room_by_code(room_ref)
        return self._controllers[room.id]

    def get_room(self, room_ref: str) -> BattleRoom:
        return self.store.get_room(self.controller(room_ref).room_id)

    def snapshot(self, room_ref: str) -> Dict[str, Any]:
        return build_room_snapshot(self.get_room(room_ref))

    def room_ids(self) -> List[str]:
        return list(self._controllers)

    def answer_history(
        self, room_ref: str, user_id: Optional[str] = None
    ) -> Dict[str, List[Dict[str, Any]]]:
        """Answers so far, per player in question order. Optionally one player only."""
        history = self.controller(room_ref).answer_history()
        if user_id is not None:
            return {user_id: history.get(user_id, [])}
        return history

    # ── Participant operations ───────────────────────────────

    async def join(
        self, room_ref: str, user_id: str, display_name: Optional[str] = None
    ) -> Participant:
        return await self.controller(room_ref).join(user_id, display_name)

    async def leave(self, room_ref: str, user_id: str) -> BattleRoom:
        return await self.controller(room_ref).leave(user_id)

    async def set_ready(self, room_ref: str, user_id: str, ready: bool = True) -> Participant:
        return await self.controller(room_ref).set_ready(user_id, ready)

    async def submit_answer(
        self,
        room_ref: str,
        user_id: str,
        question_id: str,
        selected_index: int,
        client_offset_ms: Optional[int] = None,
    ) -> AnswerEntry:
        return await self.controller(room_ref).submit(
            user_id, question_id, selected_index, client_offset_ms,
        )

    async def host_advance(self, room_ref: str, user_id: str) -> bool:
        return await self.controller(room_ref).host_advance(user_id)

    async def disconnect(self, room_ref: str, user_id: str) -> Participant:
        """Transport lost a participant's connection."""
        return await self.controller(room_ref).set_connection(
            user_id, ConnectionState.DISCONNECTED,
        )

    async def reconnect(self, room_ref: str, user_id: str) -> Participant:
        return await self.controller(room_ref).set_connection(
            user_id, ConnectionState.CONNECTED,
        )

    async def abort(self, room_ref: str, reason: str = "aborted") -> bool:
        """Abandon a room. Returns False if it had already finished."""
        return await self.controller(room_ref).abort(reason)

    async def wait_until_finished(
        self, room_ref: str, timeout: Optional[float] = None
    ) -> BattleRoom:
        """
        Wait for a room to complete or be abandoned.

        Raises:
            asyncio.TimeoutError: If ``timeout`` elapses first
        """
        controller = self.controller(room_ref)
        # The room may be released from memory once finished
        room = controller.room
        await asyncio.wait_for(controller.finished.wait(), timeout)
        return room

    # ── Command dispatch ─────────────────────────────────────

    async def dispatch(self, user_id: str, body: Dict[str, Any]) -> CommandResponse:
        """
        Validate and execute one client command.

        Client errors are returned, not raised:
            {"ok": False, "error": "ROOM_FULL", "message": "...", "user_visible": True}
        """
        try:
            command = parse_command(body)
            result = await self._execute(user_id, command)
        except ClientInputError as e:
            command_type = body.get("type") if isinstance(body, dict) else None
            logger.info(
                f"Rejected {command_type} from {user_id}: {e.code} {e}",
                extra={"user_id": user_id, "error_code": e.code},
            )
            return e.to_payload()
        response: CommandResponse = {"ok": True}
        response.update(result)
        return response

    async def _execute(self, user_id: str, command: Any) -> Dict[str, Any]:
        room_ref = command.room_id
        if isinstance(command, JoinCommand):
            participant = await self.join(room_ref, user_id, command.display_name)
            return {"participant": participant.to_dict(), "room": self.snapshot(room_ref)}
        if isinstance(command, SetReadyCommand):
            participant = await self.set_ready(room_ref, user_id, command.ready)
            return {"participant": participant.to_dict()}
        if isinstance(command, SubmitAnswerCommand):
            entry = await self.submit_answer(
                room_ref, user_id, command.question_id,
                command.selected_index, command.client_offset_ms,
            )
            return {"question_id": entry.question_id, "accepted": True}
        if isinstance(command, HostAdvanceCommand):
            return {"advanced": await self.host_advance(room_ref, user_id)}
        if isinstance(command, LeaveCommand):
            room = await self.leave(room_ref, user_id)
            return {"room": build_room_snapshot(room)}
        raise InvalidCommand(f"Unsupported command {type(command).__name__}")

    # ── Recovery and shutdown ────────────────────────────────

    async def recover_rooms(self) -> List[str]:
        """
        Rebuild every non-terminal room from durable storage and re-arm
        its timers.

        Returns:
            IDs of the rooms resumed
        """
        recovered = []
        for room_id in self.store.active_room_ids():
            if room_id in self._controllers:
                continue
            self.store.reload(room_id)
            ledger = AnswerLedger.load(room_id, self.store.answers_repo)
            controller = self._new_controller(room_id, ledger)
            self._controllers[room_id] = controller
            await controller.resume()
            recovered.append(room_id)
        if recovered:
            logger.info(f"Recovered {len(recovered)} room(s): {recovered}")
        return recovered

    async def shutdown(self) -> None:
        """Cancel every timer. Room state is left as persisted."""
        for handle in self._releases.values():
            handle.cancel()
        self._releases.clear()
        for controller in self._controllers.values():
            controller.close()
        await asyncio.sleep(0)
        if self._owns_database:
            self.database.close()
        logger.info("Arena stopped.")
