"""Joinable rooms known before entering one."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from multiplayer.messaging.models import Room


class RoomDirectoryStore:
    """Ordered room directory with upsert-by-id.

    Order is first-insertion order; updating an entry keeps its position.
    Filtering (hiding full or in-progress rooms) is left to consumers.
    """

    def __init__(self) -> None:
        self._rooms: dict[str, Room] = {}

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms

    def upsert(self, room: Room) -> None:
        self._rooms[room.id] = room

    def remove(self, room_id: str) -> bool:
        return self._rooms.pop(room_id, None) is not None

    def get(self, room_id: str) -> Room | None:
        return self._rooms.get(room_id)

    def list(self) -> list[Room]:
        return [room.model_copy(deep=True) for room in self._rooms.values()]

    def replace_all(self, rooms: Iterable[Room]) -> None:
        """Load an initial snapshot; later duplicates of an id win but keep the first position."""
        self._rooms.clear()
        for room in rooms:
            self.upsert(room)

    def clear(self) -> None:
        self._rooms.clear()
