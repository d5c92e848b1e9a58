"""Connect to a multiplayer server and log lobby and room activity.

Usage:
    uv run python bin/watch-lobby.py
    uv run python bin/watch-lobby.py --server http://localhost:3001 --name Watcher
    uv run python bin/watch-lobby.py --join ROOM_ID

Settings not given on the command line come from MULTIPLAYER_* env vars.
Stop with Ctrl+C.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import sys
from pathlib import Path

# Add client to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "client"))

import structlog

from multiplayer.client import MultiplayerClient
from multiplayer.messaging.events import ServerEventType
from multiplayer.settings import ClientSettings
from shared.logging import setup_logging

logger = structlog.get_logger()

# Events that only echo what state_changed already reports.
_QUIET_EVENTS = {ServerEventType.CONNECT, ServerEventType.ROOM_UPDATED}


def _log_event(event) -> None:
    logger.info("event received", event_name=event.event, payload=event.model_dump(exclude={"event"}, exclude_none=True))


def _log_state(event) -> None:
    snapshot = event.snapshot
    logger.info(
        "state",
        phase=snapshot.phase,
        room_id=snapshot.current_room.id if snapshot.current_room else None,
        rooms=len(snapshot.available_rooms),
        turn=snapshot.game.turn_count,
    )


async def main() -> int:
    parser = argparse.ArgumentParser(description="Watch a multiplayer lobby")
    parser.add_argument("--server", help="Server base URL")
    parser.add_argument("--name", help="Display name")
    parser.add_argument("--join", metavar="ROOM_ID", help="Join this room after connecting")
    args = parser.parse_args()

    overrides = {}
    if args.server:
        overrides["server_url"] = args.server
    if args.name:
        overrides["player_name"] = args.name
    settings = ClientSettings(**overrides)
    log_path = setup_logging(
        level=settings.log_level,
        json_format=settings.log_format == "json",
        log_dir=settings.log_dir,
    )
    if log_path:
        logger.info("logging to file", path=str(log_path))

    client = MultiplayerClient(settings)
    for event_type in ServerEventType:
        if event_type not in _QUIET_EVENTS:
            client.on(event_type, _log_event)
    client.on("connection_error", _log_event)
    client.on("operation_timeout", _log_event)
    client.on("state_changed", _log_state)

    if not await client.connect():
        return 1
    for room in client.snapshot().available_rooms:
        logger.info("room listed", room_id=room.id, name=room.name, players=len(room.players), status=room.status)
    if args.join:
        await client.join_room(args.join)

    try:
        await asyncio.Event().wait()
    finally:
        await client.disconnect()
    return 0


if __name__ == "__main__":
    with contextlib.suppress(KeyboardInterrupt):
        sys.exit(asyncio.run(main()))
