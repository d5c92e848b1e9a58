"""Typed event catalog for the multiplayer Socket.IO protocol.

Inbound frames arrive as ``(event_name, payload)`` pairs. They are decoded
into one closed tagged union keyed by ``event`` so reducers and observers
only ever see validated models. Outbound requests carry their event name as
a class attribute.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, ClassVar, Literal

from pydantic import Field, TypeAdapter, field_validator, model_validator

from multiplayer.messaging.models import (
    ActionResult,
    Character,
    GameAction,
    GameData,
    PlayerData,
    Room,
    WireModel,
)

_SPACE_ORD = 0x20
_DEL_ORD = 0x7F
MAX_CHAT_LENGTH = 1000


class ServerEventType(StrEnum):
    CONNECT = "connect"
    DISCONNECT = "disconnect"
    CONNECTION_SUCCESS = "connection_success"
    ROOM_CREATED = "room_created"
    CREATE_ROOM_ERROR = "create_room_error"
    ROOM_JOINED = "room_joined"
    JOIN_ROOM_ERROR = "join_room_error"
    ROOM_LEFT = "room_left"
    LEAVE_ROOM_ERROR = "leave_room_error"
    PLAYER_JOINED = "player_joined"
    PLAYER_LEFT = "player_left"
    ROOM_UPDATED = "room_updated"
    ROOM_AVAILABLE = "room_available"
    ROOM_UNAVAILABLE = "room_unavailable"
    CHARACTER_SELECTED = "character_selected"
    CHARACTER_SELECT_ERROR = "character_select_error"
    PLAYER_READY_UPDATED = "player_ready_updated"
    PLAYER_READY_ERROR = "player_ready_error"
    GAME_COUNTDOWN = "game_countdown"
    GAME_STARTED = "game_started"
    GAME_ACTION_PERFORMED = "game_action_performed"
    GAME_ACTION_ERROR = "game_action_error"
    GAME_OVER = "game_over"
    CHAT_MESSAGE = "chat_message"


class ClientEventType(StrEnum):
    CREATE_ROOM = "create_room"
    JOIN_ROOM = "join_room"
    LEAVE_ROOM = "leave_room"
    SELECT_CHARACTER = "select_character"
    PLAYER_READY = "player_ready"
    GAME_ACTION = "game_action"
    CHAT_MESSAGE = "chat_message"


class LocalEventType(StrEnum):
    """Events synthesized on the client and delivered alongside server events."""

    CONNECTION_ERROR = "connection_error"
    OPERATION_TIMEOUT = "operation_timeout"
    STATE_CHANGED = "state_changed"


# ---------------------------------------------------------------------------
# Inbound (server -> client)
# ---------------------------------------------------------------------------


class ConnectEvent(WireModel):
    event: Literal[ServerEventType.CONNECT] = ServerEventType.CONNECT


class DisconnectEvent(WireModel):
    event: Literal[ServerEventType.DISCONNECT] = ServerEventType.DISCONNECT
    reason: str = ""


class ConnectionSuccessPlayer(WireModel):
    name: str | None = None


class ConnectionSuccessEvent(WireModel):
    event: Literal[ServerEventType.CONNECTION_SUCCESS] = ServerEventType.CONNECTION_SUCCESS
    player_id: str = Field(min_length=1)
    player_data: ConnectionSuccessPlayer | None = None


class RoomCreatedEvent(WireModel):
    event: Literal[ServerEventType.ROOM_CREATED] = ServerEventType.ROOM_CREATED
    room: Room
    request_id: str | None = None


class RoomJoinedEvent(WireModel):
    event: Literal[ServerEventType.ROOM_JOINED] = ServerEventType.ROOM_JOINED
    room: Room
    request_id: str | None = None


class RoomLeftEvent(WireModel):
    event: Literal[ServerEventType.ROOM_LEFT] = ServerEventType.ROOM_LEFT
    room_id: str | None = None


class PlayerJoinedEvent(WireModel):
    event: Literal[ServerEventType.PLAYER_JOINED] = ServerEventType.PLAYER_JOINED
    player: PlayerData
    room_id: str | None = None


class PlayerLeftEvent(WireModel):
    event: Literal[ServerEventType.PLAYER_LEFT] = ServerEventType.PLAYER_LEFT
    player_id: str = Field(min_length=1)
    player_name: str = ""


class RoomUpdatedEvent(WireModel):
    event: Literal[ServerEventType.ROOM_UPDATED] = ServerEventType.ROOM_UPDATED
    room: Room


class RoomAvailableEvent(WireModel):
    event: Literal[ServerEventType.ROOM_AVAILABLE] = ServerEventType.ROOM_AVAILABLE
    room: Room

    @model_validator(mode="before")
    @classmethod
    def _wrap_bare_room(cls, data: Any) -> Any:
        # Some server builds push the room itself instead of {"room": ...}.
        if isinstance(data, dict) and "room" not in data:
            return {"event": data.get("event"), "room": {k: v for k, v in data.items() if k != "event"}}
        return data


class RoomUnavailableEvent(WireModel):
    event: Literal[ServerEventType.ROOM_UNAVAILABLE] = ServerEventType.ROOM_UNAVAILABLE
    room_id: str = Field(min_length=1)


class CharacterSelectedEvent(WireModel):
    event: Literal[ServerEventType.CHARACTER_SELECTED] = ServerEventType.CHARACTER_SELECTED
    player_id: str = Field(min_length=1)
    player_name: str = ""
    character: Character


class PlayerReadyUpdatedEvent(WireModel):
    event: Literal[ServerEventType.PLAYER_READY_UPDATED] = ServerEventType.PLAYER_READY_UPDATED
    player_id: str = Field(min_length=1)
    player_name: str = ""
    is_ready: bool


class GameCountdownEvent(WireModel):
    event: Literal[ServerEventType.GAME_COUNTDOWN] = ServerEventType.GAME_COUNTDOWN
    countdown: int = Field(ge=0)


class GameStartedEvent(WireModel):
    event: Literal[ServerEventType.GAME_STARTED] = ServerEventType.GAME_STARTED
    room: Room | None = None
    game_data: GameData


class GameActionPerformedEvent(WireModel):
    event: Literal[ServerEventType.GAME_ACTION_PERFORMED] = ServerEventType.GAME_ACTION_PERFORMED
    player_id: str | None = None
    action: GameAction | None = None
    result: ActionResult = Field(default_factory=ActionResult)
    game_data: GameData


class GameOverEvent(WireModel):
    event: Literal[ServerEventType.GAME_OVER] = ServerEventType.GAME_OVER
    winner_id: str = Field(min_length=1)
    winner_name: str = ""
    game_data: GameData | None = None


class ChatMessageEvent(WireModel):
    event: Literal[ServerEventType.CHAT_MESSAGE] = ServerEventType.CHAT_MESSAGE
    player_id: str = ""
    player_name: str = ""
    message: str


class _ErrorEvent(WireModel):
    error: str = "Unknown error"


class CreateRoomErrorEvent(_ErrorEvent):
    event: Literal[ServerEventType.CREATE_ROOM_ERROR] = ServerEventType.CREATE_ROOM_ERROR


class JoinRoomErrorEvent(_ErrorEvent):
    event: Literal[ServerEventType.JOIN_ROOM_ERROR] = ServerEventType.JOIN_ROOM_ERROR


class LeaveRoomErrorEvent(_ErrorEvent):
    event: Literal[ServerEventType.LEAVE_ROOM_ERROR] = ServerEventType.LEAVE_ROOM_ERROR


class CharacterSelectErrorEvent(_ErrorEvent):
    event: Literal[ServerEventType.CHARACTER_SELECT_ERROR] = ServerEventType.CHARACTER_SELECT_ERROR


class PlayerReadyErrorEvent(_ErrorEvent):
    event: Literal[ServerEventType.PLAYER_READY_ERROR] = ServerEventType.PLAYER_READY_ERROR


class GameActionErrorEvent(_ErrorEvent):
    event: Literal[ServerEventType.GAME_ACTION_ERROR] = ServerEventType.GAME_ACTION_ERROR


ServerErrorEvent = (
    CreateRoomErrorEvent
    | JoinRoomErrorEvent
    | LeaveRoomErrorEvent
    | CharacterSelectErrorEvent
    | PlayerReadyErrorEvent
    | GameActionErrorEvent
)

ServerEvent = Annotated[
    ConnectEvent
    | DisconnectEvent
    | ConnectionSuccessEvent
    | RoomCreatedEvent
    | RoomJoinedEvent
    | RoomLeftEvent
    | PlayerJoinedEvent
    | PlayerLeftEvent
    | RoomUpdatedEvent
    | RoomAvailableEvent
    | RoomUnavailableEvent
    | CharacterSelectedEvent
    | PlayerReadyUpdatedEvent
    | GameCountdownEvent
    | GameStartedEvent
    | GameActionPerformedEvent
    | GameOverEvent
    | ChatMessageEvent
    | CreateRoomErrorEvent
    | JoinRoomErrorEvent
    | LeaveRoomErrorEvent
    | CharacterSelectErrorEvent
    | PlayerReadyErrorEvent
    | GameActionErrorEvent,
    Field(discriminator="event"),
]

_server_event_adapter: TypeAdapter[ServerEvent] = TypeAdapter(ServerEvent)


def parse_server_event(event_name: str, payload: Any = None) -> ServerEvent:
    """Validate one inbound frame into its typed event model.

    Raises pydantic.ValidationError for unknown event names or bad payloads,
    and ValueError for payloads that are neither objects nor empty.
    """
    if payload is None:
        data: dict[str, Any] = {}
    elif isinstance(payload, dict):
        data = dict(payload)
    elif event_name == ServerEventType.DISCONNECT:
        data = {"reason": str(payload)}
    else:
        raise ValueError(f"{event_name} payload must be an object, got {type(payload).__name__}")
    data["event"] = event_name
    return _server_event_adapter.validate_python(data)


# ---------------------------------------------------------------------------
# Local (synthesized on the client)
# ---------------------------------------------------------------------------


class ConnectionErrorEvent(WireModel):
    event: Literal[LocalEventType.CONNECTION_ERROR] = LocalEventType.CONNECTION_ERROR
    error: str


class OperationTimeoutEvent(WireModel):
    event: Literal[LocalEventType.OPERATION_TIMEOUT] = LocalEventType.OPERATION_TIMEOUT
    kind: str
    error: str


# ---------------------------------------------------------------------------
# Outbound (client -> server)
# ---------------------------------------------------------------------------


class CreateRoomRequest(WireModel):
    event_name: ClassVar[ClientEventType] = ClientEventType.CREATE_ROOM

    name: str = Field(min_length=1, max_length=100)
    is_private: bool = False
    request_id: str | None = None


class JoinRoomRequest(WireModel):
    event_name: ClassVar[ClientEventType] = ClientEventType.JOIN_ROOM

    room_id: str = Field(min_length=1, max_length=64)
    request_id: str | None = None


class LeaveRoomRequest(WireModel):
    event_name: ClassVar[ClientEventType] = ClientEventType.LEAVE_ROOM

    room_id: str = Field(min_length=1)


class SelectCharacterRequest(WireModel):
    event_name: ClassVar[ClientEventType] = ClientEventType.SELECT_CHARACTER

    character: Character


class PlayerReadyRequest(WireModel):
    event_name: ClassVar[ClientEventType] = ClientEventType.PLAYER_READY

    is_ready: bool = True


class ChatMessageRequest(WireModel):
    event_name: ClassVar[ClientEventType] = ClientEventType.CHAT_MESSAGE

    room_id: str = Field(min_length=1)
    message: str = Field(min_length=1, max_length=MAX_CHAT_LENGTH)

    @field_validator("message")
    @classmethod
    def _validate_message(cls, v: str) -> str:
        if any((ord(c) < _SPACE_ORD and c not in ("\t", "\n", "\r")) or ord(c) == _DEL_ORD for c in v):
            raise ValueError("message must not contain control characters")
        return v
