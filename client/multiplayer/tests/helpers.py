"""Builders for wire payloads used across unit tests."""

from typing import Any

WARRIOR = {"id": "warrior", "name": "Warrior", "health": 120, "mana": 40, "abilities": [{"id": "slash"}]}
MAGE = {"id": "mage", "name": "Mage", "health": 80, "mana": 100}


def room_payload(
    room_id: str = "r1",
    *,
    host_id: str = "p1",
    host_name: str = "Alice",
    guest_id: str | None = None,
    guest_name: str | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """CamelCase room as the server sends it."""
    players = [host_id] if guest_id is None else [host_id, guest_id]
    payload: dict[str, Any] = {
        "id": room_id,
        "name": f"{host_name}'s Room",
        "hostId": host_id,
        "hostName": host_name,
        "guestId": guest_id,
        "guestName": guest_name,
        "status": "waiting",
        "players": players,
        "maxPlayers": 2,
        "gameData": {"turnCount": 0, "currentTurn": None, "battleLog": []},
        "createdAt": 1_700_000_000_000,
        "lastActivity": 1_700_000_000_000,
    }
    payload.update(extra)
    return payload


def game_data(turn_count: int = 1, current_turn: str | None = "p1", battle_log: list[str] | None = None) -> dict[str, Any]:
    return {"turnCount": turn_count, "currentTurn": current_turn, "battleLog": battle_log or []}
