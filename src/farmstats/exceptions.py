"""Custom exception hierarchy for farmstats."""

from __future__ import annotations


class StatsError(Exception):
    """Base exception for all farmstats errors."""


class StatsConfigError(StatsError):
    """Invalid or missing configuration."""


class StatsTransportError(StatsError):
    """Stream-level failure (connect refused, handshake rejected, socket error).

    Never fatal: the connection loop logs it and reconnects.
    """

    def __init__(self, message: str, *, url: str = "") -> None:
        self.url = url
        super().__init__(message)


class StatsProtocolError(StatsError):
    """Inbound message is neither a Snapshot nor an Increment.

    ``raw`` holds a truncated preview of the offending payload.
    """

    def __init__(self, message: str, *, raw: str = "") -> None:
        self.raw = raw
        super().__init__(message)


class StaleHandleError(StatsError):
    """A transport handle was used after its connection left ``OPEN``.

    Handles are only valid for the OPEN period they were issued in.  A new
    handle has to be obtained from the connection manager after every
    reconnect.
    """

    def __init__(self, message: str, *, generation: int = 0) -> None:
        self.generation = generation
        super().__init__(message)
