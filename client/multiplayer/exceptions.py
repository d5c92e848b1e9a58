"""Exceptions raised by the multiplayer client.

Expected failures (guard rejections, validation errors, server-side
rejections, timeouts) are delivered to observers as events instead of being
raised. The classes here cover the few conditions that do propagate.
"""


class MultiplayerError(Exception):
    """Base class for multiplayer client errors."""


class TransportConnectionError(MultiplayerError):
    """The server could not be reached, did not acknowledge in time, or the reconnect budget ran out."""
