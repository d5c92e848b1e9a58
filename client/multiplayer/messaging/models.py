"""Wire models for rooms, players and game state.

The server speaks camelCase JSON; attributes here are snake_case and mapped
through an alias generator. Models accept either form on input.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

MAX_PLAYERS = 2


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """Dump to a camelCase dict suitable for emitting."""
        return self.model_dump(by_alias=True, exclude_none=True)


class RoomStatus(StrEnum):
    WAITING = "waiting"
    READY = "ready"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class Character(WireModel):
    """Server-defined character record.

    Only the stat fields are read locally; anything else the server sends
    (abilities, portraits, lore) is kept as-is and echoed back on selection.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str = Field(min_length=1)
    name: str = ""
    health: int = Field(default=0, ge=0)
    mana: int = Field(default=0, ge=0)


class GameData(WireModel):
    turn_count: int = Field(default=0, ge=0)
    current_turn: str | None = None
    battle_log: list[str] = Field(default_factory=list)
    start_time: float | None = None
    end_time: float | None = None
    winner: str | None = None


class Room(WireModel):
    """Two-player session container with its embedded game state."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str = Field(min_length=1)
    name: str = ""
    host_id: str
    host_name: str | None = None
    host_character: Character | None = None
    guest_id: str | None = None
    guest_name: str | None = None
    guest_character: Character | None = None
    status: RoomStatus = RoomStatus.WAITING
    players: list[str] = Field(default_factory=list)
    max_players: int = Field(default=MAX_PLAYERS, ge=1, le=MAX_PLAYERS)
    game_data: GameData = Field(default_factory=GameData)
    created_at: float = 0
    last_activity: float = 0
    is_private: bool | None = None

    @model_validator(mode="after")
    def _check_roster(self) -> Room:
        if len(set(self.players)) != len(self.players):
            raise ValueError("players must be unique")
        if len(self.players) > self.max_players:
            raise ValueError(f"room holds {len(self.players)} players, max is {self.max_players}")
        if self.players and self.host_id not in self.players:
            raise ValueError("host_id must be one of players")
        if self.guest_id is not None:
            if self.guest_id == self.host_id:
                raise ValueError("guest_id must differ from host_id")
            if self.guest_id not in self.players:
                raise ValueError("guest_id must be one of players")
        return self

    @property
    def is_full(self) -> bool:
        return len(self.players) >= self.max_players

    def player_name(self, player_id: str) -> str | None:
        if player_id == self.host_id:
            return self.host_name
        if player_id == self.guest_id:
            return self.guest_name
        return None


class PlayerData(WireModel):
    id: str = Field(min_length=1)
    name: str = ""
    character: Character | None = None
    is_ready: bool = False
    health: int = Field(default=0, ge=0)
    max_health: int = Field(default=0, ge=0)
    mana: int = Field(default=0, ge=0)
    max_mana: int = Field(default=0, ge=0)


class Ability(WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str | None = None
    name: str | None = None
    # "time", "fire", "lightning" today; new kinds must pass through untouched.
    type: str = "unknown"


class ActionResult(WireModel):
    """Outcome of a game action, computed by the server."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    acting_player_id: str | None = None
    acting_player_health: int | None = Field(default=None, ge=0)
    acting_player_mana: int | None = Field(default=None, ge=0)
    target_player_id: str | None = None
    target_player_health: int | None = Field(default=None, ge=0)
    target_player_mana: int | None = Field(default=None, ge=0)
    ability: Ability | None = None
    damage: int | None = None
    surrender: bool | None = None


class ActionType(StrEnum):
    ABILITY = "ability"
    SURRENDER = "surrender"


class GameAction(WireModel):
    """Game action as sent by a client and echoed back in results.

    The type is kept as a plain string so actions introduced server-side
    decode without error; ActionType lists the ones this client sends.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    type: str = Field(min_length=1)
    ability_id: str | None = None
    target_id: str | None = None
