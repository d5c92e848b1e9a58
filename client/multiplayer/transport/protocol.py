"""Abstract link to the multiplayer server."""

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

# (event_name, raw_payload) for every inbound frame
FrameCallback = Callable[[str, Any], None]
# reason string when the link drops without a local close
LinkLostCallback = Callable[[str], None]


class TransportLink(ABC):
    """
    One underlying bidirectional event connection.

    A link is single-use: it is opened once and closed once. Reconnection is
    handled above it by opening a fresh link, which keeps this interface small
    enough to be replaced by an in-memory double in tests.
    """

    def __init__(self) -> None:
        self._on_frame: FrameCallback | None = None
        self._on_lost: LinkLostCallback | None = None

    def bind(self, on_frame: FrameCallback, on_lost: LinkLostCallback) -> None:
        """Install the sinks for inbound frames and link loss."""
        self._on_frame = on_frame
        self._on_lost = on_lost

    @property
    @abstractmethod
    def connected(self) -> bool:
        """Whether the link is currently open."""
        ...

    @abstractmethod
    async def open(self, url: str) -> None:
        """
        Open the link. Raises ConnectionError when the server is unreachable.
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """
        Close the link. Closing locally never reports link loss.
        """
        ...

    @abstractmethod
    async def send(self, event_name: str, payload: dict[str, Any]) -> None:
        """
        Send one event. Raises ConnectionError when the link is not open.
        """
        ...

    def deliver(self, event_name: str, payload: Any) -> None:
        if self._on_frame is not None:
            self._on_frame(event_name, payload)

    def report_lost(self, reason: str) -> None:
        if self._on_lost is not None:
            self._on_lost(reason)
