"""Connection controller: the public face of the multiplayer layer.

``MultiplayerClient`` wires the transport adapter, operation guard, event
dispatcher and the two stores together. Server events first pass through
the client's reducer (guard bookkeeping, directory upkeep, session state),
then reach observers, followed by a ``state_changed`` snapshot whenever the
event changed anything.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Self

import structlog
from pydantic import ValidationError

from multiplayer.directory_api import fetch_available_rooms
from multiplayer.exceptions import TransportConnectionError
from multiplayer.messaging.events import (
    CharacterSelectedEvent,
    CharacterSelectErrorEvent,
    ChatMessageRequest,
    ClientEventType,
    ConnectionErrorEvent,
    ConnectionSuccessEvent,
    CreateRoomErrorEvent,
    CreateRoomRequest,
    DisconnectEvent,
    GameActionErrorEvent,
    JoinRoomErrorEvent,
    JoinRoomRequest,
    LeaveRoomErrorEvent,
    LeaveRoomRequest,
    OperationTimeoutEvent,
    PlayerReadyErrorEvent,
    PlayerReadyRequest,
    PlayerReadyUpdatedEvent,
    RoomAvailableEvent,
    RoomCreatedEvent,
    RoomJoinedEvent,
    RoomLeftEvent,
    RoomUnavailableEvent,
    SelectCharacterRequest,
)
from multiplayer.messaging.models import ActionType, Character, GameAction
from multiplayer.session.directory import RoomDirectoryStore
from multiplayer.session.dispatcher import EventDispatcher
from multiplayer.session.guard import OperationGuard, OperationKind
from multiplayer.session.snapshot import SessionPhase, StateChangedEvent
from multiplayer.session.store import SessionStateStore
from multiplayer.settings import ClientSettings
from multiplayer.transport.adapter import TransportAdapter
from shared.logging import bind_player_context

if TYPE_CHECKING:
    from collections.abc import Callable
    from types import TracebackType

    import httpx
    from pydantic import BaseModel

    from multiplayer.messaging.models import Room
    from multiplayer.session.snapshot import SessionSnapshot
    from multiplayer.transport.protocol import TransportLink

    EventHandler = Callable[[BaseModel], None]

logger = structlog.get_logger()

NOT_CONNECTED_ERROR = "Not connected to server"
CONNECT_FAILED_ERROR = "Failed to connect to multiplayer service"
NOT_IN_ROOM_ERROR = "Not in a room"

# Acknowledgment event -> the guarded operation it completes.
_ROOM_ACKS: dict[type[BaseModel], OperationKind] = {
    RoomCreatedEvent: OperationKind.CREATE_ROOM,
    RoomJoinedEvent: OperationKind.JOIN_ROOM,
}

_TIMEOUT_MESSAGES = {
    OperationKind.CREATE_ROOM: "Room creation timed out",
    OperationKind.JOIN_ROOM: "Joining the room timed out",
    OperationKind.LEAVE_ROOM: "Leaving the room timed out",
    OperationKind.SELECT_CHARACTER: "Character selection timed out",
    OperationKind.SET_READY: "Ready update timed out",
}


class MultiplayerClient:
    """Explicitly constructed multiplayer session; create one per player."""

    def __init__(
        self,
        settings: ClientSettings | None = None,
        link_factory: Callable[[], TransportLink] | None = None,
        directory_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or ClientSettings()
        self._directory_transport = directory_transport
        self._adapter = TransportAdapter(self._settings, link_factory)
        self._guard = OperationGuard(
            room_grace_seconds=self._settings.room_operation_grace_seconds,
            grace_seconds=self._settings.operation_grace_seconds,
            on_expired=self._on_operation_expired,
        )
        self._dispatcher = EventDispatcher(reducer=self._reduce_inbound)
        self._directory = RoomDirectoryStore()
        self._store = SessionStateStore(
            player_name=self._settings.player_name,
            battle_log_limit=self._settings.battle_log_limit,
            chat_history_limit=self._settings.chat_history_limit,
        )
        self._connect_lock = asyncio.Lock()
        self._background: set[asyncio.Task[Any]] = set()

        self._dispatcher.attach(self._adapter)

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    @property
    def is_connected(self) -> bool:
        return self._adapter.is_connected

    def on(self, event_name: str, handler: EventHandler) -> None:
        self._dispatcher.on(event_name, handler)

    def off(self, event_name: str, handler: EventHandler | None = None) -> None:
        self._dispatcher.off(event_name, handler)

    def snapshot(self) -> SessionSnapshot:
        return self._store.snapshot(
            is_connected=self._adapter.is_connected,
            available_rooms=self._directory.list(),
            pending={str(kind): busy for kind, busy in self._guard.pending().items()},
        )

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.disconnect()

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self) -> bool:
        """Connect and load the room directory. Failures become a connection_error event."""
        async with self._connect_lock:
            if self._adapter.is_connected:
                return True
            self._store.begin_connecting()
            self._publish_state()
            try:
                player_id = await self._adapter.connect()
            except TransportConnectionError as e:
                error = str(e) or CONNECT_FAILED_ERROR
                logger.warning("connect failed", error=error)
                self._guard.reset()
                self._directory.clear()
                self._store.mark_connection_failed(error)
                self._dispatcher.publish(ConnectionErrorEvent(error=error))
                self._publish_state()
                return False

        bind_player_context(player_id)
        logger.info("connected", server_url=self._settings.server_url)
        await self.refresh_rooms()
        return True

    async def disconnect(self) -> None:
        await self._cancel_background()
        self._guard.reset()
        await self._adapter.disconnect()
        bind_player_context(None)
        self._directory.clear()
        self._store.reset()
        self._publish_state()

    async def refresh_rooms(self) -> list[Room]:
        """Reload the directory from the HTTP snapshot. Ignored while in a room."""
        rooms = await fetch_available_rooms(
            self._settings.server_url,
            timeout=self._settings.directory_timeout_seconds,
            transport=self._directory_transport,
        )
        if self._store.room is not None or not self._adapter.is_connected:
            return rooms
        self._directory.replace_all(rooms)
        self._publish_state()
        return rooms

    # ------------------------------------------------------------------
    # Room operations
    # ------------------------------------------------------------------

    async def create_room(self, name: str | None = None, *, is_private: bool = False) -> bool:
        if not await self._ensure_connected(CreateRoomErrorEvent):
            return False
        if self._store.room is not None:
            return self._reject(CreateRoomErrorEvent(error="Already in a room"))

        room_name = (name or "").strip() or f"{self._store.player_name}'s Room"
        try:
            request = CreateRoomRequest(name=room_name, is_private=is_private)
        except ValidationError:
            return self._reject(CreateRoomErrorEvent(error="Room name must be 1 to 100 characters"))

        if not self._begin(OperationKind.CREATE_ROOM):
            return False
        request.request_id = self._guard.request_id(OperationKind.CREATE_ROOM)
        return await self._send_guarded(OperationKind.CREATE_ROOM, request)

    async def join_room(self, room_id: str) -> bool:
        if not await self._ensure_connected(JoinRoomErrorEvent):
            return False
        room_id = (room_id or "").strip()
        if not room_id:
            return self._reject(JoinRoomErrorEvent(error="Room ID is required"))
        if self._store.room is not None:
            return self._reject(JoinRoomErrorEvent(error="Already in a room"))
        try:
            request = JoinRoomRequest(room_id=room_id)
        except ValidationError:
            return self._reject(JoinRoomErrorEvent(error="Invalid room ID"))

        if not self._begin(OperationKind.JOIN_ROOM):
            return False
        request.request_id = self._guard.request_id(OperationKind.JOIN_ROOM)
        return await self._send_guarded(OperationKind.JOIN_ROOM, request)

    async def leave_room(self) -> bool:
        """Leave the current room. The room is dropped locally right away."""
        room = self._store.room
        if room is None:
            logger.debug("leave ignored, not in a room")
            return False
        if not self._adapter.is_connected:
            return self._reject(LeaveRoomErrorEvent(error=NOT_CONNECTED_ERROR))
        if not self._begin(OperationKind.LEAVE_ROOM):
            return False

        sent = await self._send_guarded(OperationKind.LEAVE_ROOM, LeaveRoomRequest(room_id=room.id))
        if sent:
            self._guard.end(OperationKind.SELECT_CHARACTER)
            self._guard.end(OperationKind.SET_READY)
            self._store.leave_room()
            self._publish_state()
            self._schedule_refresh()
        return sent

    async def select_character(self, character: Character | dict[str, Any] | None) -> bool:
        """Pick a character. The pick is shown tentatively until the server confirms it."""
        if not self._adapter.is_connected:
            return self._reject(CharacterSelectErrorEvent(error=NOT_CONNECTED_ERROR))
        if self._store.room is None:
            return self._reject(CharacterSelectErrorEvent(error=NOT_IN_ROOM_ERROR))
        if not character:
            return self._reject(CharacterSelectErrorEvent(error="No character selected"))
        try:
            request = SelectCharacterRequest(character=character)
        except ValidationError:
            return self._reject(CharacterSelectErrorEvent(error="Invalid character"))

        if not self._begin(OperationKind.SELECT_CHARACTER):
            return False
        self._store.set_tentative_character(request.character)
        self._publish_state()
        sent = await self._send_guarded(OperationKind.SELECT_CHARACTER, request)
        if not sent and self._store.clear_tentative_character():
            self._publish_state()
        return sent

    async def set_ready(self, is_ready: bool = True) -> bool:
        if not self._adapter.is_connected:
            return self._reject(PlayerReadyErrorEvent(error=NOT_CONNECTED_ERROR))
        if self._store.room is None:
            return self._reject(PlayerReadyErrorEvent(error=NOT_IN_ROOM_ERROR))
        if not self._begin(OperationKind.SET_READY):
            return False
        return await self._send_guarded(OperationKind.SET_READY, PlayerReadyRequest(is_ready=is_ready))

    # ------------------------------------------------------------------
    # In-game
    # ------------------------------------------------------------------

    async def perform_action(self, action: GameAction | dict[str, Any]) -> bool:
        """Send a game action. A no-op unless a game is running."""
        if self._store.phase != SessionPhase.IN_GAME:
            logger.debug("action ignored outside an active game", phase=self._store.phase)
            return False
        try:
            game_action = action if isinstance(action, GameAction) else GameAction.model_validate(action)
        except ValidationError:
            return self._reject(GameActionErrorEvent(error="Invalid game action"))
        return await self._adapter.emit(ClientEventType.GAME_ACTION, game_action.to_wire())

    async def use_ability(self, ability_id: str, target_id: str | None = None) -> bool:
        if target_id is None:
            opponent = self.snapshot().opponent
            target_id = opponent.id if opponent else None
        return await self.perform_action(GameAction(type=ActionType.ABILITY, ability_id=ability_id, target_id=target_id))

    async def surrender(self) -> bool:
        return await self.perform_action(GameAction(type=ActionType.SURRENDER))

    async def send_chat_message(self, text: str) -> bool:
        room = self._store.room
        if room is None or not self._adapter.is_connected:
            logger.debug("chat ignored, not in a room")
            return False
        message = (text or "").strip()
        if not message:
            logger.debug("chat ignored, empty message")
            return False
        try:
            request = ChatMessageRequest(room_id=room.id, message=message)
        except ValidationError as e:
            logger.warning("chat message rejected", error=str(e))
            return False
        return await self._adapter.emit(request.event_name, request.to_wire())

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def _reduce_inbound(self, event: BaseModel) -> StateChangedEvent | None:
        if self._reduce(event):
            return StateChangedEvent(snapshot=self.snapshot())
        return None

    def _reduce(self, event: BaseModel) -> bool:  # noqa: PLR0911
        """Apply one inbound event to the guard and both stores."""
        if isinstance(event, DisconnectEvent):
            self._guard.reset()
            self._directory.clear()
            self._store.reset()
            return True
        if isinstance(event, ConnectionErrorEvent):
            self._guard.reset()
            self._directory.clear()
            self._store.mark_connection_failed(event.error)
            return True
        if isinstance(event, RoomAvailableEvent):
            if self._store.room is not None:
                return False
            self._directory.upsert(event.room)
            return True
        if isinstance(event, RoomUnavailableEvent):
            return self._directory.remove(event.room_id)
        if isinstance(event, ConnectionSuccessEvent):
            changed = self._store.apply(event)
            if changed and self._adapter.is_reconnecting:
                self._schedule_refresh()
            return changed

        kind = _ROOM_ACKS.get(type(event))
        if kind is not None:
            expected = self._guard.request_id(kind)
            if event.request_id is not None and event.request_id != expected:
                logger.warning("dropping stale acknowledgment", event_name=event.event, request_id=event.request_id)
                return False
            self._guard.end(kind)
            entered = self._store.apply(event)
            if entered:
                self._directory.clear()
            return entered

        self._end_completed_operation(event)
        was_in_room = self._store.room is not None
        changed = self._store.apply(event)
        if was_in_room and self._store.room is None:
            self._guard.reset()
            self._schedule_refresh()
        return changed

    def _end_completed_operation(self, event: BaseModel) -> None:
        local_id = self._store.player_id
        if isinstance(event, CreateRoomErrorEvent):
            self._guard.end(OperationKind.CREATE_ROOM)
        elif isinstance(event, JoinRoomErrorEvent):
            self._guard.end(OperationKind.JOIN_ROOM)
        elif isinstance(event, (RoomLeftEvent, LeaveRoomErrorEvent)):
            self._guard.end(OperationKind.LEAVE_ROOM)
        elif isinstance(event, CharacterSelectErrorEvent) or (
            isinstance(event, CharacterSelectedEvent) and event.player_id == local_id
        ):
            self._guard.end(OperationKind.SELECT_CHARACTER)
        elif isinstance(event, PlayerReadyErrorEvent) or (
            isinstance(event, PlayerReadyUpdatedEvent) and event.player_id == local_id
        ):
            self._guard.end(OperationKind.SET_READY)

    def _on_operation_expired(self, kind: OperationKind) -> None:
        self._dispatcher.publish(OperationTimeoutEvent(kind=kind, error=_TIMEOUT_MESSAGES[kind]))
        if kind == OperationKind.SELECT_CHARACTER:
            self._store.clear_tentative_character()
        self._publish_state()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _ensure_connected(self, error_event: type[BaseModel]) -> bool:
        if self._adapter.is_connected:
            return True
        if await self.connect():
            return True
        self._dispatcher.publish(error_event(error=CONNECT_FAILED_ERROR))
        return False

    def _begin(self, kind: OperationKind) -> bool:
        if self._guard.try_begin(kind):
            self._publish_state()
            return True
        logger.debug("operation already pending", kind=kind)
        return False

    async def _send_guarded(self, kind: OperationKind, request: BaseModel) -> bool:
        sent = await self._adapter.emit(request.event_name, request.to_wire())
        if not sent:
            self._guard.end(kind)
            self._publish_state()
        return sent

    def _reject(self, error_event: BaseModel) -> bool:
        logger.info("operation rejected", event_name=error_event.event, error=error_event.error)
        self._dispatcher.publish(error_event)
        return False

    def _publish_state(self) -> None:
        self._dispatcher.publish(StateChangedEvent(snapshot=self.snapshot()))

    def _schedule_refresh(self) -> None:
        if not self._adapter.is_connected:
            return
        task = asyncio.create_task(self.refresh_rooms())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _cancel_background(self) -> None:
        tasks = list(self._background)
        self._background.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
