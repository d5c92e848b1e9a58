"""HTTP fetch of the room directory snapshot."""

from __future__ import annotations

import httpx
import structlog
from pydantic import ValidationError

from multiplayer.messaging.models import Room

logger = structlog.get_logger()

ROOMS_PATH = "/api/rooms"


async def fetch_available_rooms(
    server_url: str,
    *,
    timeout: float = 5.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[Room]:
    """GET {server_url}/api/rooms. Any failure yields an empty list."""
    url = f"{server_url.rstrip('/')}{ROOMS_PATH}"
    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        try:
            response = await client.get(url)
        except httpx.HTTPError as e:
            logger.warning("room directory fetch failed", url=url, error=str(e))
            return []

    if not response.is_success:
        logger.warning("room directory fetch rejected", url=url, status=response.status_code)
        return []

    try:
        body = response.json()
    except ValueError as e:
        logger.warning("room directory response is not JSON", url=url, error=str(e))
        return []
    raw_rooms = body.get("rooms") if isinstance(body, dict) else None
    if not isinstance(raw_rooms, list):
        logger.warning("room directory response has no rooms list", url=url)
        return []

    rooms: list[Room] = []
    for raw in raw_rooms:
        try:
            rooms.append(Room.model_validate(raw))
        except ValidationError as e:
            logger.warning("skipping malformed directory entry", url=url, error=str(e))
    return rooms
