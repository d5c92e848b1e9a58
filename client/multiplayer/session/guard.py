"""Serialize client-initiated mutating operations, one in flight per kind."""

import asyncio
import logging
import uuid
from collections.abc import Callable
from enum import StrEnum

logger = logging.getLogger(__name__)


class OperationKind(StrEnum):
    CREATE_ROOM = "create_room"
    JOIN_ROOM = "join_room"
    LEAVE_ROOM = "leave_room"
    SELECT_CHARACTER = "select_character"
    SET_READY = "set_ready"


ROOM_OPERATIONS = frozenset({OperationKind.CREATE_ROOM, OperationKind.JOIN_ROOM})

# Callback type: (kind) -> None, invoked when a grace period expires
ExpiryCallback = Callable[[OperationKind], None]


class OperationGuard:
    """Track which mutating operations are awaiting an acknowledgment.

    ``try_begin`` admits an operation only when none of the same kind is in
    flight, and schedules an automatic release after a grace period so a lost
    acknowledgment cannot block the kind forever. The release is a liveness
    backstop only: a retry after expiry can still race a late acknowledgment,
    which is why each admission gets a fresh request id the caller can send
    and later match against.
    """

    def __init__(
        self,
        room_grace_seconds: float = 15.0,
        grace_seconds: float = 5.0,
        on_expired: ExpiryCallback | None = None,
    ) -> None:
        self._room_grace_seconds = room_grace_seconds
        self._grace_seconds = grace_seconds
        self._on_expired = on_expired
        self._handles: dict[OperationKind, asyncio.TimerHandle] = {}
        self._request_ids: dict[OperationKind, str] = {}

    def grace_for(self, kind: OperationKind) -> float:
        return self._room_grace_seconds if kind in ROOM_OPERATIONS else self._grace_seconds

    def is_busy(self, kind: OperationKind) -> bool:
        return kind in self._handles

    def request_id(self, kind: OperationKind) -> str | None:
        """Request id of the in-flight operation of this kind, or None when idle."""
        return self._request_ids.get(kind)

    def pending(self) -> dict[OperationKind, bool]:
        return {kind: kind in self._handles for kind in OperationKind}

    def try_begin(self, kind: OperationKind) -> bool:
        """Mark kind busy and return True, or return False if it is already busy."""
        if kind in self._handles:
            logger.debug("operation already in flight: %s", kind)
            return False
        loop = asyncio.get_running_loop()
        self._handles[kind] = loop.call_later(self.grace_for(kind), self._expire, kind)
        self._request_ids[kind] = uuid.uuid4().hex
        return True

    def end(self, kind: OperationKind) -> None:
        """Release kind. Ending an idle kind is a no-op."""
        handle = self._handles.pop(kind, None)
        if handle is not None:
            handle.cancel()
        self._request_ids.pop(kind, None)

    def reset(self) -> None:
        """Release every kind without firing expiry callbacks."""
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()
        self._request_ids.clear()

    def _expire(self, kind: OperationKind) -> None:
        if self._handles.pop(kind, None) is None:
            return
        self._request_ids.pop(kind, None)
        logger.warning("operation timed out, releasing guard: %s", kind)
        if self._on_expired is None:
            return
        try:
            self._on_expired(kind)
        except Exception:
            logger.exception("expiry callback failed for %s", kind)
