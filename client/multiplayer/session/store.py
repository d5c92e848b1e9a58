"""Session state: the active room, its player roster and the turn-based game.

Every inbound event is reconciled here. The merge rule is "patch the fields
the event carries, keep the rest"; only room_updated and game_started carry a
full room snapshot and replace the room wholesale.
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

from multiplayer.messaging.events import (
    CharacterSelectedEvent,
    CharacterSelectErrorEvent,
    ChatMessageEvent,
    ConnectionSuccessEvent,
    GameActionPerformedEvent,
    GameCountdownEvent,
    GameOverEvent,
    GameStartedEvent,
    PlayerJoinedEvent,
    PlayerLeftEvent,
    PlayerReadyUpdatedEvent,
    RoomCreatedEvent,
    RoomJoinedEvent,
    RoomLeftEvent,
    RoomUpdatedEvent,
)
from multiplayer.messaging.models import Character, GameData, PlayerData, Room, RoomStatus
from multiplayer.session.snapshot import ChatLine, GameView, RoomSlot, SessionPhase, SessionSnapshot

if TYPE_CHECKING:
    from pydantic import BaseModel

logger = structlog.get_logger()

OPPONENT_PLACEHOLDER_NAME = "Opponent"


def _now_ms() -> float:
    return time.time() * 1000


@dataclass
class GameProgress:
    """Turn-based game sub-state of the active room."""

    battle_log: deque[str]
    turn_count: int = 0
    current_turn: str | None = None
    started: bool = False
    over: bool = False
    winner: str | None = None
    countdown: int | None = None
    start_time: float | None = None
    end_time: float | None = None

    @classmethod
    def fresh(cls, log_limit: int) -> GameProgress:
        return cls(battle_log=deque(maxlen=log_limit))

    @property
    def active(self) -> bool:
        return self.started and not self.over


@dataclass
class _Identity:
    player_id: str | None = None
    player_name: str = ""
    connection_error: str | None = None
    phase: SessionPhase = SessionPhase.IDLE


class SessionStateStore:
    """Own the mutable copy of the active room and reconcile events into it.

    Only the client's reducer calls ``apply``; everything else reads
    ``snapshot()``. Phases before entering a room (idle, connecting,
    directory) are set explicitly by the client. Phases inside a room are
    derived from the room, roster and game state so they cannot drift.
    """

    def __init__(self, player_name: str = "", battle_log_limit: int = 20, chat_history_limit: int = 50) -> None:
        self._log_limit = battle_log_limit
        self._identity = _Identity(player_name=player_name)
        self._room: Room | None = None
        self._is_host = False
        self._players: dict[str, PlayerData] = {}
        self._game = GameProgress.fresh(battle_log_limit)
        self._chat: deque[ChatLine] = deque(maxlen=chat_history_limit)
        self._tentative_character: Character | None = None

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def player_id(self) -> str | None:
        return self._identity.player_id

    @property
    def player_name(self) -> str:
        return self._identity.player_name

    @property
    def room(self) -> Room | None:
        return self._room

    @property
    def phase(self) -> SessionPhase:
        room = self._room
        if room is None:
            return self._identity.phase
        if self._game.over:
            return SessionPhase.GAME_OVER
        if self._game.started:
            return SessionPhase.IN_GAME
        if self._game.countdown is not None:
            return SessionPhase.COUNTDOWN
        local = self._players.get(self._identity.player_id or "")
        if local is not None and local.is_ready:
            return SessionPhase.READY_WAIT
        if room.is_full:
            return SessionPhase.CHARACTER_SELECT
        return SessionPhase.IN_ROOM

    @property
    def room_slot(self) -> RoomSlot | None:
        if self._room is None:
            return None
        return RoomSlot.HOST_PENDING if self._is_host else RoomSlot.GUEST_PENDING

    def snapshot(
        self,
        *,
        is_connected: bool = False,
        available_rooms: list[Room] | None = None,
        pending: dict[str, bool] | None = None,
    ) -> SessionSnapshot:
        game = self._game
        player_id = self._identity.player_id
        return SessionSnapshot(
            phase=self.phase,
            room_slot=self.room_slot,
            player_id=player_id,
            player_name=self._identity.player_name,
            is_connected=is_connected,
            connection_error=self._identity.connection_error,
            is_host=self._is_host,
            current_room=self._room.model_copy(deep=True) if self._room else None,
            available_rooms=tuple(available_rooms or ()),
            players={pid: p.model_copy(deep=True) for pid, p in self._players.items()},
            game=GameView(
                turn_count=game.turn_count,
                current_turn=game.current_turn,
                is_player_turn=player_id is not None and game.current_turn == player_id,
                battle_log=tuple(game.battle_log),
                game_started=game.started,
                game_over=game.over,
                winner=game.winner,
                countdown=game.countdown,
            ),
            pending=dict(pending or {}),
            tentative_character=self._tentative_character,
            chat=tuple(self._chat),
        )

    # ------------------------------------------------------------------
    # Lifecycle (driven by the client, not by server events)
    # ------------------------------------------------------------------

    def begin_connecting(self) -> None:
        self._identity.phase = SessionPhase.CONNECTING
        self._identity.connection_error = None

    def mark_connected(self, player_id: str, server_name: str | None = None) -> None:
        self._identity.player_id = player_id
        if server_name:
            self._identity.player_name = server_name
        self._identity.connection_error = None
        self._identity.phase = SessionPhase.DIRECTORY

    def mark_connection_failed(self, error: str) -> None:
        self.reset()
        self._identity.connection_error = error

    def reset(self) -> None:
        """Back to idle, discarding identity and all room, player and game state."""
        self._identity = _Identity(player_name=self._identity.player_name)
        self._clear_room()

    def leave_room(self) -> None:
        """Drop the active room and return to the directory."""
        if self._room is not None:
            logger.info("left room", room_id=self._room.id)
        self._clear_room()
        if self._identity.player_id is not None:
            self._identity.phase = SessionPhase.DIRECTORY

    def set_tentative_character(self, character: Character) -> None:
        self._tentative_character = character

    def clear_tentative_character(self) -> bool:
        had_pick = self._tentative_character is not None
        self._tentative_character = None
        return had_pick

    # ------------------------------------------------------------------
    # Reducers
    # ------------------------------------------------------------------

    def apply(self, event: BaseModel) -> bool:  # noqa: PLR0911
        """Reconcile one event into state. Returns True when anything changed."""
        if isinstance(event, (RoomCreatedEvent, RoomJoinedEvent)):
            return self._enter_room(event.room)
        if isinstance(event, RoomLeftEvent):
            return self._on_room_left(event)
        if isinstance(event, PlayerJoinedEvent):
            return self._on_player_joined(event)
        if isinstance(event, PlayerLeftEvent):
            return self._on_player_left(event)
        if isinstance(event, RoomUpdatedEvent):
            return self._on_room_updated(event.room)
        if isinstance(event, CharacterSelectedEvent):
            return self._on_character_selected(event)
        if isinstance(event, CharacterSelectErrorEvent):
            return self.clear_tentative_character()
        if isinstance(event, PlayerReadyUpdatedEvent):
            return self._on_player_ready(event)
        if isinstance(event, GameCountdownEvent):
            return self._on_countdown(event)
        if isinstance(event, GameStartedEvent):
            return self._on_game_started(event)
        if isinstance(event, GameActionPerformedEvent):
            return self._on_game_action(event)
        if isinstance(event, GameOverEvent):
            return self._on_game_over(event)
        if isinstance(event, ChatMessageEvent):
            return self._on_chat(event)
        if isinstance(event, ConnectionSuccessEvent):
            return self._on_connection_success(event)
        return False

    def _enter_room(self, room: Room) -> bool:
        current = self._room
        if current is not None and current.id != room.id:
            logger.warning("ignoring room acknowledgment while in another room", room_id=room.id, current_room_id=current.id)
            return False
        if current is None:
            self._game = GameProgress.fresh(self._log_limit)
            self._tentative_character = None
            self._players = {}
        self._set_room(room)
        local_id = self._identity.player_id
        if local_id is not None and local_id not in self._players:
            self._players[local_id] = self._zeroed_player(local_id)
        logger.info("entered room", room_id=room.id, is_host=self._is_host, players=len(room.players))
        return True

    def _on_room_left(self, event: RoomLeftEvent) -> bool:
        if self._room is None:
            return False
        if event.room_id is not None and event.room_id != self._room.id:
            return False
        self.leave_room()
        return True

    def _on_room_updated(self, room: Room) -> bool:
        current = self._room
        if current is None or current.id != room.id:
            logger.debug("ignoring update for another room", room_id=room.id)
            return False
        local_id = self._identity.player_id
        if room.players and local_id is not None and local_id not in room.players:
            logger.info("no longer listed in room", room_id=room.id)
            self.leave_room()
            return True
        self._set_room(room)
        if self._game.active:
            if "game_data" in room.model_fields_set:
                self._fold_game_data(room.game_data)
            if room.status == RoomStatus.COMPLETED and not self._game.over:
                self._game.over = True
                self._game.end_time = self._game.end_time or _now_ms()
            self._sync_game_data()
        return True

    def _fold_game_data(self, data: GameData) -> None:
        """Merge a room snapshot's game data into the running game."""
        game = self._game
        if data.turn_count < game.turn_count:
            logger.warning("ignoring turn count regression", turn_count=data.turn_count, current=game.turn_count)
        else:
            game.turn_count = data.turn_count
        if data.current_turn is not None:
            game.current_turn = self._accept_turn(data.current_turn, fallback=game.current_turn)
        if data.battle_log:
            game.battle_log = deque(data.battle_log, maxlen=self._log_limit)
        if data.winner is not None:
            game.over = True
            game.winner = data.winner
            game.countdown = None
            game.end_time = data.end_time if data.end_time is not None else _now_ms()

    def _on_player_joined(self, event: PlayerJoinedEvent) -> bool:
        room = self._room
        if room is None or (event.room_id is not None and event.room_id != room.id):
            return False
        joined = event.player
        updates: dict[str, Any] = {}
        if joined.id not in room.players:
            if room.is_full:
                logger.warning("ignoring join into full room", room_id=room.id, player_id=joined.id)
                return False
            updates["players"] = [*room.players, joined.id]
        if room.guest_id is None and joined.id != room.host_id:
            updates["guest_id"] = joined.id
            updates["guest_name"] = joined.name or None
        if updates:
            self._room = room.model_copy(update=updates)

        existing = self._players.get(joined.id)
        if existing is None:
            self._players[joined.id] = joined.model_copy(deep=True)
        elif joined.name:
            # Stats may already hold a character picked before this join was seen.
            self._players[joined.id] = existing.model_copy(update={"name": joined.name})
        logger.info("player joined", room_id=room.id, joined_player_id=joined.id)
        return True

    def _on_player_left(self, event: PlayerLeftEvent) -> bool:
        room = self._room
        if room is None:
            return False
        left_id = event.player_id
        if left_id == self._identity.player_id:
            self.leave_room()
            return True
        if left_id not in room.players and left_id not in self._players:
            return False

        departed = self._players.pop(left_id, None)
        if left_id in room.players:
            updates: dict[str, Any] = {"players": [p for p in room.players if p != left_id]}
            if room.guest_id == left_id:
                updates |= {"guest_id": None, "guest_name": None, "guest_character": None}
            elif room.host_id == left_id and room.guest_id is not None:
                # The remaining guest inherits the room.
                updates |= {
                    "host_id": room.guest_id,
                    "host_name": room.guest_name,
                    "host_character": room.guest_character,
                    "guest_id": None,
                    "guest_name": None,
                    "guest_character": None,
                }
            self._room = room.model_copy(update=updates)
            self._is_host = self._room.host_id == self._identity.player_id

        if self._game.active:
            name = event.player_name or (departed.name if departed else left_id)
            self._game.battle_log.append(f"{name} has left the game.")
            if self._game.current_turn == left_id:
                self._game.current_turn = None
            self._sync_game_data()
        logger.info("player left", room_id=room.id, left_player_id=left_id)
        return True

    def _on_character_selected(self, event: CharacterSelectedEvent) -> bool:
        room = self._room
        if room is None:
            return False
        player_id = event.player_id
        player = self._players.get(player_id)
        if player is None:
            # character_selected can overtake player_joined; keep the pick.
            player = PlayerData(id=player_id, name=event.player_name or self._display_name(player_id))
        self._players[player_id] = self._with_character(player, event.character)

        if player_id == room.host_id:
            self._room = room.model_copy(update={"host_character": event.character})
        elif player_id == room.guest_id:
            self._room = room.model_copy(update={"guest_character": event.character})

        if player_id == self._identity.player_id:
            self._tentative_character = None
        return True

    def _on_player_ready(self, event: PlayerReadyUpdatedEvent) -> bool:
        player = self._players.get(event.player_id)
        if player is None:
            logger.debug("ready update for unknown player", ready_player_id=event.player_id)
            return False
        self._players[event.player_id] = player.model_copy(update={"is_ready": event.is_ready})
        return True

    def _on_countdown(self, event: GameCountdownEvent) -> bool:
        if self._room is None or self._game.started:
            return False
        self._game.countdown = event.countdown
        return True

    def _on_game_started(self, event: GameStartedEvent) -> bool:
        if event.room is not None:
            if self._room is not None and event.room.id != self._room.id:
                logger.warning("ignoring game start for another room", room_id=event.room.id)
                return False
            self._set_room(event.room)
        elif self._room is None:
            logger.warning("ignoring game start outside a room")
            return False

        data = event.game_data
        self._game = GameProgress(
            battle_log=deque(data.battle_log, maxlen=self._log_limit),
            turn_count=data.turn_count,
            current_turn=self._accept_turn(data.current_turn, fallback=None),
            started=True,
            start_time=data.start_time if data.start_time is not None else _now_ms(),
        )
        self._sync_game_data()
        logger.info("game started", room_id=self._room.id if self._room else None, current_turn=self._game.current_turn)
        return True

    def _on_game_action(self, event: GameActionPerformedEvent) -> bool:
        game = self._game
        if not game.active:
            logger.debug("ignoring game action outside an active game")
            return False

        data = event.game_data
        if data.turn_count < game.turn_count:
            logger.warning("ignoring turn count regression", turn_count=data.turn_count, current=game.turn_count)
        else:
            game.turn_count = data.turn_count
        game.current_turn = self._accept_turn(data.current_turn, fallback=game.current_turn)
        game.battle_log.extend(data.battle_log)

        result = event.result
        if result.acting_player_id is not None:
            self._patch_stats(result.acting_player_id, result.acting_player_health, result.acting_player_mana)
        if result.target_player_id is not None:
            self._patch_stats(result.target_player_id, result.target_player_health, result.target_player_mana)
        self._sync_game_data()
        return True

    def _on_game_over(self, event: GameOverEvent) -> bool:
        room = self._room
        if room is None:
            return False
        game = self._game
        if game.over:
            logger.debug("duplicate game over ignored", winner=event.winner_id)
            return False

        game.over = True
        game.winner = event.winner_id
        game.countdown = None
        data = event.game_data
        if data is not None and data.turn_count > game.turn_count:
            game.turn_count = data.turn_count
        game.end_time = data.end_time if data is not None and data.end_time is not None else _now_ms()
        game.battle_log.append(f"{event.winner_name or event.winner_id} wins the battle!")
        self._room = room.model_copy(update={"status": RoomStatus.COMPLETED})
        self._sync_game_data()
        logger.info("game over", room_id=room.id, winner=event.winner_id)
        return True

    def _on_chat(self, event: ChatMessageEvent) -> bool:
        if self._room is None:
            return False
        name = event.player_name or self._display_name(event.player_id)
        self._chat.append(ChatLine(player_id=event.player_id, player_name=name, message=event.message))
        self._game.battle_log.append(f"{name}: {event.message}")
        self._sync_game_data()
        return True

    def _on_connection_success(self, event: ConnectionSuccessEvent) -> bool:
        if self._room is not None:
            return False
        server_name = event.player_data.name if event.player_data else None
        self.mark_connected(event.player_id, server_name)
        return True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _clear_room(self) -> None:
        self._room = None
        self._is_host = False
        self._players = {}
        self._game = GameProgress.fresh(self._log_limit)
        self._chat.clear()
        self._tentative_character = None

    def _set_room(self, room: Room) -> None:
        """Adopt an authoritative room snapshot and re-sync the roster to it."""
        self._room = room.model_copy(deep=True)
        self._is_host = room.host_id == self._identity.player_id
        roster: dict[str, PlayerData] = {}
        for player_id in room.players:
            player = self._players.get(player_id)
            if player is None:
                player = self._zeroed_player(player_id)
                character = room.host_character if player_id == room.host_id else room.guest_character
                if player_id in (room.host_id, room.guest_id) and character is not None:
                    player = self._with_character(player, character)
            roster[player_id] = player
        self._players = roster

    def _sync_game_data(self) -> None:
        if self._room is None:
            return
        game = self._game
        self._room = self._room.model_copy(
            update={
                "game_data": GameData(
                    turn_count=game.turn_count,
                    current_turn=game.current_turn,
                    battle_log=list(game.battle_log),
                    start_time=game.start_time,
                    end_time=game.end_time,
                    winner=game.winner,
                ),
            },
        )

    def _accept_turn(self, candidate: str | None, *, fallback: str | None) -> str | None:
        if candidate is None:
            return None
        if self._room is not None and candidate in self._room.players:
            return candidate
        logger.warning("ignoring current turn for a player not in the room", current_turn=candidate)
        return fallback

    def _patch_stats(self, player_id: str, health: int | None, mana: int | None) -> None:
        player = self._players.get(player_id)
        if player is None:
            logger.debug("stats for unknown player dropped", stats_player_id=player_id)
            return
        updates: dict[str, Any] = {}
        if health is not None:
            updates["health"] = health
            updates["max_health"] = max(player.max_health, health)
        if mana is not None:
            updates["mana"] = mana
            updates["max_mana"] = max(player.max_mana, mana)
        if updates:
            self._players[player_id] = player.model_copy(update=updates)

    def _zeroed_player(self, player_id: str) -> PlayerData:
        return PlayerData(id=player_id, name=self._display_name(player_id))

    def _display_name(self, player_id: str) -> str:
        if player_id == self._identity.player_id:
            return self._identity.player_name
        if self._room is not None:
            name = self._room.player_name(player_id)
            if name:
                return name
        return OPPONENT_PLACEHOLDER_NAME

    @staticmethod
    def _with_character(player: PlayerData, character: Character) -> PlayerData:
        return player.model_copy(
            update={
                "character": character,
                "health": character.health,
                "max_health": character.health,
                "mana": character.mana,
                "max_mana": character.mana,
            },
        )
