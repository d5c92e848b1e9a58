"""Transport adapter: connection lifecycle, reconnection policy and inbound decoding."""

from __future__ import annotations

import asyncio
import contextlib
import functools
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from multiplayer.exceptions import TransportConnectionError
from multiplayer.messaging.events import (
    ConnectionErrorEvent,
    ConnectionSuccessEvent,
    DisconnectEvent,
    parse_server_event,
)
from multiplayer.transport.socketio_link import SocketIOLink

if TYPE_CHECKING:
    from collections.abc import Callable

    from pydantic import BaseModel

    from multiplayer.settings import ClientSettings
    from multiplayer.transport.protocol import TransportLink

    EventHandler = Callable[[BaseModel], None]

logger = structlog.get_logger()


class TransportAdapter:
    """Own the link to the server and everything that outlives a single link.

    Subscriptions are registered here, not on the link, so they survive
    reconnects: every new link is bound to the same decoding sink. Inbound
    frames are validated into event models before any subscriber sees them.
    """

    def __init__(
        self,
        settings: ClientSettings,
        link_factory: Callable[[], TransportLink] | None = None,
    ) -> None:
        self._settings = settings
        self._link_factory = link_factory or functools.partial(
            SocketIOLink,
            wait_timeout=settings.connect_timeout_seconds,
        )
        self._link: TransportLink | None = None
        self._player_id: str | None = None
        self._player_name: str | None = None
        self._identity: asyncio.Future[str] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._closing = False
        self._subscriptions: dict[str, list[EventHandler]] = {}

    @property
    def player_id(self) -> str | None:
        return self._player_id

    @property
    def player_name(self) -> str | None:
        """Display name assigned by the server in connection_success, if any."""
        return self._player_name

    @property
    def is_connected(self) -> bool:
        return self._link is not None and self._link.connected and self._player_id is not None

    @property
    def is_reconnecting(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    def subscribe(self, event_name: str, handler: EventHandler) -> None:
        handlers = self._subscriptions.setdefault(event_name, [])
        if handler not in handlers:
            handlers.append(handler)

    def unsubscribe(self, event_name: str, handler: EventHandler | None = None) -> None:
        """Remove one handler for an event, or all of them when handler is None."""
        if handler is None:
            self._subscriptions.pop(event_name, None)
            return
        handlers = self._subscriptions.get(event_name)
        if handlers and handler in handlers:
            handlers.remove(handler)

    async def connect(self) -> str:
        """Connect and wait for the server to assign a player id.

        Raises TransportConnectionError on timeout or when every attempt fails.
        """
        if self.is_connected and self._player_id is not None:
            return self._player_id

        self._closing = False
        await self._cancel_reconnect()
        try:
            async with asyncio.timeout(self._settings.connect_timeout_seconds):
                return await self._connect_with_retries()
        except TimeoutError as e:
            await self._drop_link()
            logger.warning("connect timed out", timeout=self._settings.connect_timeout_seconds)
            raise TransportConnectionError("Connection timeout") from e

    async def disconnect(self) -> None:
        """Close the link and forget the assigned identity. Safe to call repeatedly."""
        self._closing = True
        await self._cancel_reconnect()
        had_link = self._link is not None
        await self._drop_link()
        self._player_id = None
        self._player_name = None
        if had_link:
            logger.info("disconnected")

    async def emit(self, event_name: str, payload: dict[str, Any]) -> bool:
        """Send one event. Returns False (and logs) instead of raising when it cannot be sent."""
        link = self._link
        if link is None or not self.is_connected:
            logger.warning("emit dropped, not connected", event_name=event_name)
            return False
        try:
            await link.send(event_name, payload)
        except (ConnectionError, RuntimeError, OSError) as e:
            logger.warning("emit failed", event_name=event_name, error=str(e))
            return False
        logger.debug("event emitted", event_name=event_name)
        return True

    async def _connect_with_retries(self) -> str:
        attempts = max(1, self._settings.reconnect_attempts)
        last_error: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                return await self._open_link()
            except ConnectionError as e:
                last_error = e
                logger.warning("connect attempt failed", attempt=attempt, error=str(e))
            if attempt < attempts:
                await asyncio.sleep(self._settings.reconnect_delay_seconds * attempt)
        raise TransportConnectionError(f"Failed to connect after {attempts} attempts") from last_error

    async def _open_link(self) -> str:
        """Open a fresh link and wait for its connection_success frame."""
        await self._drop_link()
        link = self._link_factory()
        link.bind(
            functools.partial(self._handle_frame, link),
            functools.partial(self._handle_link_lost, link),
        )
        self._link = link
        identity: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._identity = identity
        try:
            await link.open(self._settings.server_url)
        except ConnectionError:
            if identity.done() and not identity.cancelled():
                identity.exception()
            identity.cancel()
            raise
        try:
            return await identity
        except asyncio.CancelledError:
            task = asyncio.current_task()
            if not identity.cancelled() or (task is not None and task.cancelling()):
                raise
            # disconnect() dropped the link while the handshake was pending.
            logger.info("handshake abandoned by disconnect")
            raise TransportConnectionError("Disconnected during handshake") from None

    async def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _drop_link(self) -> None:
        link, self._link = self._link, None
        if self._identity is not None and not self._identity.done():
            self._identity.cancel()
        self._identity = None
        if link is not None:
            with contextlib.suppress(ConnectionError, RuntimeError, OSError):
                await link.close()

    def _handle_frame(self, link: TransportLink, event_name: str, payload: Any) -> None:
        if link is not self._link:
            return
        try:
            event = parse_server_event(event_name, payload)
        except (ValueError, ValidationError) as e:
            logger.warning("dropping malformed event", event_name=event_name, error=str(e))
            return

        if isinstance(event, ConnectionSuccessEvent):
            self._player_id = event.player_id
            self._player_name = event.player_data.name if event.player_data else None
            if self._identity is not None and not self._identity.done():
                self._identity.set_result(event.player_id)
            logger.info("connection acknowledged", player_id=event.player_id)

        self._deliver(event)

    def _handle_link_lost(self, link: TransportLink, reason: str) -> None:
        if link is not self._link:
            return
        was_connected = self._player_id is not None
        self._player_id = None
        if self._identity is not None and not self._identity.done():
            # Lost during the handshake: the pending connect attempt sees the failure.
            self._identity.set_exception(ConnectionError(f"link lost during handshake: {reason}"))
            return
        if not was_connected or self._closing:
            return

        logger.warning("connection lost", reason=reason)
        self._deliver(DisconnectEvent(reason=reason))
        if self._settings.reconnect_attempts == 0:
            self._deliver(ConnectionErrorEvent(error=f"Connection lost: {reason}"))
            return
        if not self.is_reconnecting:
            self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    async def _reconnect_loop(self) -> None:
        attempts = self._settings.reconnect_attempts
        for attempt in range(1, attempts + 1):
            await asyncio.sleep(self._settings.reconnect_delay_seconds * attempt)
            if self._closing:
                return
            try:
                async with asyncio.timeout(self._settings.connect_timeout_seconds):
                    player_id = await self._open_link()
            except (ConnectionError, TimeoutError) as e:
                logger.warning("reconnect attempt failed", attempt=attempt, error=str(e) or type(e).__name__)
                continue
            logger.info("reconnected", attempt=attempt, player_id=player_id)
            return

        await self._drop_link()
        logger.error("reconnect budget exhausted", attempts=attempts)
        self._deliver(ConnectionErrorEvent(error=f"Failed to reconnect after {attempts} attempts"))

    def _deliver(self, event: BaseModel) -> None:
        name = getattr(event, "event", "")
        for handler in list(self._subscriptions.get(name, ())):
            try:
                handler(event)
            except Exception:
                logger.exception("subscriber failed", event_name=name)
