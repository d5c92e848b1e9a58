"""Fan out decoded events to reducers and observers."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from multiplayer.messaging.events import LocalEventType, ServerEventType

if TYPE_CHECKING:
    from collections.abc import Callable

    from pydantic import BaseModel

    from multiplayer.transport.adapter import TransportAdapter

    EventHandler = Callable[[BaseModel], None]
    Reducer = Callable[[BaseModel], BaseModel | None]

logger = structlog.get_logger()


class EventDispatcher:
    """
    Typed publish/subscribe keyed by event name.

    Handlers run synchronously in registration order. A handler that raises
    is logged and skipped; the remaining handlers still run. Registrations
    are kept independently of any connection, so handlers added before the
    transport exists start receiving events once ``attach`` is called.

    An optional ``reducer`` sees every attached event before any handler
    does. Whatever event it returns is published right after the original.
    """

    def __init__(self, reducer: Reducer | None = None) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}
        self._reducer = reducer
        self._adapter: TransportAdapter | None = None

    def on(self, event_name: str, handler: EventHandler) -> None:
        handlers = self._handlers.setdefault(str(event_name), [])
        if handler not in handlers:
            handlers.append(handler)

    def off(self, event_name: str, handler: EventHandler | None = None) -> None:
        """Deregister one handler, or every handler of the event when handler is None."""
        key = str(event_name)
        if handler is None:
            self._handlers.pop(key, None)
            return
        handlers = self._handlers.get(key)
        if handlers and handler in handlers:
            handlers.remove(handler)
            if not handlers:
                del self._handlers[key]

    def handler_count(self, event_name: str) -> int:
        return len(self._handlers.get(str(event_name), ()))

    def attach(self, adapter: TransportAdapter) -> None:
        """Route every server event (and adapter-synthesized connection errors) through this dispatcher."""
        if self._adapter is adapter:
            return
        if self._adapter is not None:
            self.detach()
        for event_type in (*ServerEventType, LocalEventType.CONNECTION_ERROR):
            adapter.subscribe(event_type, self._receive)
        self._adapter = adapter

    def detach(self) -> None:
        if self._adapter is None:
            return
        for event_type in (*ServerEventType, LocalEventType.CONNECTION_ERROR):
            self._adapter.unsubscribe(event_type, self._receive)
        self._adapter = None

    def dispatch(self, event: BaseModel) -> None:
        name = str(getattr(event, "event", ""))
        # Copy so handlers may (de)register during delivery without affecting this round.
        for handler in list(self._handlers.get(name, ())):
            try:
                handler(event)
            except Exception:
                logger.exception("event handler failed", event_name=name)

    # Local events take the same path as server ones.
    publish = dispatch

    def _receive(self, event: BaseModel) -> None:
        follow_up = self._reducer(event) if self._reducer is not None else None
        self.dispatch(event)
        if follow_up is not None:
            self.publish(follow_up)
