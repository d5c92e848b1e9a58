"""Socket.IO implementation of TransportLink."""

from __future__ import annotations

from typing import Any

import socketio
import structlog
from socketio import exceptions as socketio_exceptions

from multiplayer.transport.protocol import TransportLink

logger = structlog.get_logger()

DEFAULT_TRANSPORTS = ("websocket", "polling")


class SocketIOLink(TransportLink):
    """Wrap a python-socketio AsyncClient.

    The client's own reconnection is disabled; TransportAdapter decides when
    and how often to reconnect by opening a new link.
    """

    def __init__(
        self,
        transports: tuple[str, ...] = DEFAULT_TRANSPORTS,
        wait_timeout: float = 10.0,
    ) -> None:
        super().__init__()
        self._transports = list(transports)
        self._wait_timeout = wait_timeout
        self._closing = False
        self._client = socketio.AsyncClient(reconnection=False, logger=False, engineio_logger=False)
        self._client.on("connect", self._handle_connect)
        self._client.on("disconnect", self._handle_disconnect)
        self._client.on("*", self._handle_any)

    @property
    def connected(self) -> bool:
        return self._client.connected

    async def open(self, url: str) -> None:
        logger.info("opening socket.io link", url=url)
        try:
            await self._client.connect(url, transports=self._transports, wait_timeout=self._wait_timeout)
        except socketio_exceptions.ConnectionError as e:
            raise ConnectionError(str(e)) from e

    async def close(self) -> None:
        self._closing = True
        if self._client.connected:
            await self._client.disconnect()

    async def send(self, event_name: str, payload: dict[str, Any]) -> None:
        try:
            await self._client.emit(event_name, payload)
        except socketio_exceptions.SocketIOError as e:
            raise ConnectionError(str(e)) from e

    async def _handle_connect(self) -> None:
        self.deliver("connect", None)

    async def _handle_disconnect(self, *args: Any) -> None:
        # python-socketio >= 5.12 passes a reason; older releases pass nothing.
        if self._closing:
            return
        reason = str(args[0]) if args else "transport close"
        self.report_lost(reason)

    async def _handle_any(self, event_name: str, *args: Any) -> None:
        self.deliver(event_name, args[0] if args else None)
