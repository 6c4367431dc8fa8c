"""Internal stream connection lifecycle: connect, probe, detect close, reconnect."""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

import aiohttp

from farmstats.config import StatsConfig
from farmstats.exceptions import StaleHandleError, StatsTransportError

_logger = logging.getLogger(__name__)

_CLOSE_TYPES = frozenset({aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSING, aiohttp.WSMsgType.CLOSED})
_DATA_TYPES = frozenset({aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY})


class WebSocket(Protocol):
    """Structural websocket interface driven by :class:`ConnectionManager`.

    :class:`aiohttp.ClientWebSocketResponse` satisfies it; tests pass doubles.
    """

    @property
    def closed(self) -> bool: ...

    @property
    def close_code(self) -> int | None: ...

    async def receive(self) -> Any: ...

    async def send_str(self, data: str) -> None: ...

    async def close(self) -> Any: ...

    def exception(self) -> BaseException | None: ...


Connector = Callable[[str], Awaitable[WebSocket]]


def aiohttp_connector(session: aiohttp.ClientSession) -> Connector:
    """Build a connector opening websockets through *session*.

    No timeout is added on top of the session's own: a hanging connect is
    only abandoned when aiohttp gives up.  aiohttp's protocol-level
    heartbeat stays off, the manager sends application-level probes.
    """

    async def _connect(url: str) -> WebSocket:
        try:
            return await session.ws_connect(url, autoping=True, heartbeat=None)
        except aiohttp.ClientError as exc:
            raise StatsTransportError(f"Connect to {url} failed: {exc}", url=url) from exc

    return _connect


class ConnectionState(enum.StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"


_CLOSED = object()


class TransportHandle:
    """Send/receive access to one OPEN period of the stream connection.

    The handle turns stale the instant its connection leaves ``OPEN``;
    sending through a stale handle raises :class:`StaleHandleError`.
    """

    def __init__(self, ws: WebSocket, generation: int) -> None:
        self._ws = ws
        self._generation = generation
        self._inbox: asyncio.Queue[Any] = asyncio.Queue()
        self._current = True
        self._drained = False

    @property
    def generation(self) -> int:
        """Sequence number of the OPEN period this handle belongs to."""
        return self._generation

    @property
    def is_current(self) -> bool:
        return self._current

    async def send_str(self, data: str) -> None:
        """Send a text frame.

        A failed send closes the socket so the connection manager notices
        the drop and reconnects.
        """
        if not self._current:
            raise StaleHandleError(
                f"Connection #{self._generation} is no longer open",
                generation=self._generation,
            )
        try:
            await self._ws.send_str(data)
        except (aiohttp.ClientError, ConnectionError) as exc:
            with contextlib.suppress(aiohttp.ClientError, OSError):
                await self._ws.close()
            raise StatsTransportError(f"Send on connection #{self._generation} failed: {exc}") from exc

    async def messages(self) -> AsyncIterator[str | bytes]:
        """Yield inbound payloads in arrival order until the connection closes.

        Payloads received before the close are still yielded.
        """
        if self._drained:
            raise StaleHandleError(
                f"Connection #{self._generation} is closed and fully drained",
                generation=self._generation,
            )
        while True:
            item = await self._inbox.get()
            if item is _CLOSED:
                self._drained = True
                return
            yield item

    def _deliver(self, data: str | bytes) -> None:
        self._inbox.put_nowait(data)

    def _invalidate(self) -> None:
        if not self._current:
            return
        self._current = False
        self._inbox.put_nowait(_CLOSED)


@dataclass(frozen=True)
class ConnectionStatus:
    """Observable connection state.  ``handle`` is set only while ``OPEN``."""

    state: ConnectionState
    handle: TransportHandle | None = None

    def __post_init__(self) -> None:
        if (self.state is ConnectionState.OPEN) != (self.handle is not None):
            raise ValueError(f"handle presence inconsistent with state {self.state}")


class ConnectionManager:
    """Keep a single logical stream connection alive.

    Cycle: ``DISCONNECTED -> CONNECTING -> OPEN -> CLOSING -> DISCONNECTED``
    and around again until :meth:`stop`.  Failures are never fatal.  The
    retry is immediate unless ``config.reconnect_delay`` is set; there is no
    exponential backoff or jitter.

    The manager is the only reader of the socket.  Inbound frames are
    forwarded in order to the current :class:`TransportHandle`.  While
    ``OPEN`` a probe task sends ``config.probe_payload`` every
    ``config.probe_interval`` seconds; it is cancelled and awaited before
    the state leaves ``CLOSING``.
    """

    def __init__(self, config: StatsConfig, *, connect: Connector) -> None:
        self._config = config
        self._connect = connect
        self._status = ConnectionStatus(ConnectionState.DISCONNECTED)
        self._generation = 0
        self._attempts = 0
        self._open_event = asyncio.Event()
        self._watchers: list[asyncio.Queue[ConnectionStatus]] = []
        self._task: asyncio.Task[None] | None = None
        self._stopping = False

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def state(self) -> ConnectionState:
        return self._status.state

    @property
    def handle(self) -> TransportHandle | None:
        """Current handle, ``None`` unless ``OPEN``."""
        return self._status.handle

    @property
    def connect_attempts(self) -> int:
        return self._attempts

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the connection loop on the running event loop."""
        if self.is_running:
            return
        self._stopping = False
        self._task = asyncio.get_running_loop().create_task(self._run(), name="farmstats-connection")

    async def stop(self) -> None:
        """Close the connection and stop reconnecting."""
        self._stopping = True
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def wait_open(self) -> TransportHandle:
        """Suspend until the connection is ``OPEN`` and return its handle."""
        while True:
            handle = self._status.handle
            if handle is not None and handle.is_current:
                return handle
            await self._open_event.wait()

    async def states(self) -> AsyncIterator[ConnectionStatus]:
        """Yield the current status, then every transition in order."""
        queue: asyncio.Queue[ConnectionStatus] = asyncio.Queue()
        self._watchers.append(queue)
        try:
            yield self._status
            while True:
                yield await queue.get()
        finally:
            self._watchers.remove(queue)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _set_status(self, state: ConnectionState, handle: TransportHandle | None = None) -> None:
        previous = self._status.state
        status = ConnectionStatus(state=state, handle=handle)
        self._status = status
        if state is ConnectionState.OPEN:
            self._open_event.set()
        else:
            self._open_event.clear()
        _logger.debug("Connection state changed %s -> %s", previous, state)
        for queue in self._watchers:
            queue.put_nowait(status)

    async def _run(self) -> None:
        try:
            while not self._stopping:
                ws = await self._open()
                if ws is not None:
                    await self._serve(ws)
                if self._stopping:
                    break
                self._set_status(ConnectionState.DISCONNECTED)
                # Zero delay still yields to the loop between attempts.
                await asyncio.sleep(self._config.reconnect_delay)
        finally:
            if self._status.state is not ConnectionState.DISCONNECTED:
                self._set_status(ConnectionState.DISCONNECTED)

    async def _open(self) -> WebSocket | None:
        self._attempts += 1
        self._set_status(ConnectionState.CONNECTING)
        url = self._config.url
        try:
            return await self._connect(url)
        except (StatsTransportError, aiohttp.ClientError, OSError) as exc:
            _logger.debug("Connect attempt %s to %s failed: %s", self._attempts, url, exc)
            return None

    async def _serve(self, ws: WebSocket) -> None:
        self._generation += 1
        handle = TransportHandle(ws, self._generation)
        self._set_status(ConnectionState.OPEN, handle)
        _logger.info("Connected to %s (connection #%s)", self._config.url, handle.generation)

        probe = asyncio.get_running_loop().create_task(
            self._probe_loop(handle),
            name=f"farmstats-probe-{handle.generation}",
        )
        try:
            await self._pump(ws, handle)
        finally:
            handle._invalidate()
            self._set_status(ConnectionState.CLOSING)
            probe.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await probe
            if not ws.closed:
                with contextlib.suppress(aiohttp.ClientError, OSError):
                    await ws.close()
            _logger.info(
                "Disconnected from %s (connection #%s, close code %s)",
                self._config.url,
                handle.generation,
                ws.close_code,
            )

    async def _pump(self, ws: WebSocket, handle: TransportHandle) -> None:
        while True:
            try:
                msg = await ws.receive()
            except (aiohttp.ClientError, OSError) as exc:
                _logger.info("Receive failed on connection #%s: %s", handle.generation, exc)
                return

            if msg.type in _DATA_TYPES:
                handle._deliver(msg.data)
            elif msg.type == aiohttp.WSMsgType.ERROR:
                _logger.info("Stream error on connection #%s: %s", handle.generation, ws.exception())
                return
            elif msg.type in _CLOSE_TYPES:
                return
            # PING/PONG are answered by aiohttp (autoping).

    async def _probe_loop(self, handle: TransportHandle) -> None:
        interval = self._config.probe_interval
        payload = self._config.probe_payload
        while True:
            await asyncio.sleep(interval)
            try:
                await handle.send_str(payload)
            except StaleHandleError:
                return
            except StatsTransportError as exc:
                _logger.debug("Liveness probe failed: %s", exc)
                return
            _logger.debug("Sent liveness probe on connection #%s", handle.generation)
