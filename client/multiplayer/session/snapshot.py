"""Read-only views of session state handed to observers."""

from __future__ import annotations

from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from multiplayer.messaging.events import LocalEventType
from multiplayer.messaging.models import Character, PlayerData, Room, WireModel


class SessionPhase(StrEnum):
    IDLE = "idle"
    CONNECTING = "connecting"
    DIRECTORY = "directory"
    IN_ROOM = "in_room"
    CHARACTER_SELECT = "character_select"
    READY_WAIT = "ready_wait"
    COUNTDOWN = "countdown"
    IN_GAME = "in_game"
    GAME_OVER = "game_over"


class RoomSlot(StrEnum):
    HOST_PENDING = "host_pending"
    GUEST_PENDING = "guest_pending"


class GameView(BaseModel):
    model_config = ConfigDict(frozen=True)

    turn_count: int = 0
    current_turn: str | None = None
    is_player_turn: bool = False
    battle_log: tuple[str, ...] = ()
    game_started: bool = False
    game_over: bool = False
    winner: str | None = None
    countdown: int | None = None


class ChatLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    player_id: str
    player_name: str
    message: str


class SessionSnapshot(BaseModel):
    """Point-in-time copy of everything an observer may render."""

    model_config = ConfigDict(frozen=True)

    phase: SessionPhase = SessionPhase.IDLE
    room_slot: RoomSlot | None = None
    player_id: str | None = None
    player_name: str = ""
    is_connected: bool = False
    connection_error: str | None = None
    is_host: bool = False
    current_room: Room | None = None
    available_rooms: tuple[Room, ...] = ()
    players: dict[str, PlayerData] = Field(default_factory=dict)
    game: GameView = Field(default_factory=GameView)
    pending: dict[str, bool] = Field(default_factory=dict)
    tentative_character: Character | None = None
    chat: tuple[ChatLine, ...] = ()

    @property
    def is_connecting(self) -> bool:
        return self.phase == SessionPhase.CONNECTING

    @property
    def local_player(self) -> PlayerData | None:
        if self.player_id is None:
            return None
        return self.players.get(self.player_id)

    @property
    def opponent(self) -> PlayerData | None:
        for player_id, player in self.players.items():
            if player_id != self.player_id:
                return player
        return None

    @property
    def displayed_character(self) -> Character | None:
        """Local pick as the player should see it: tentative until the server confirms."""
        if self.tentative_character is not None:
            return self.tentative_character
        local = self.local_player
        return local.character if local else None


class StateChangedEvent(WireModel):
    event: Literal[LocalEventType.STATE_CHANGED] = LocalEventType.STATE_CHANGED
    snapshot: SessionSnapshot
