"""High-level async client for a live farm stats stream."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime
from typing import Any

import aiohttp

from farmstats._connection import (
    ConnectionManager,
    ConnectionState,
    ConnectionStatus,
    Connector,
    TransportHandle,
    aiohttp_connector,
)
from farmstats._protocol import decode_message
from farmstats.config import StatsConfig
from farmstats.exceptions import StaleHandleError, StatsError, StatsProtocolError, StatsTransportError
from farmstats.models.messages import StatsMessage
from farmstats.models.stats import StatsAggregate
from farmstats.state.store import StatsStore
from farmstats.views import (
    ObjectRow,
    PlayerRow,
    Stamped,
    is_recently_changed,
    objects_for_subject,
    top_players_by_object,
)

_logger = logging.getLogger(__name__)


class StatsClient:
    """Async client keeping a live stats aggregate in sync with the server.

    Usage::

        async with StatsClient(StatsConfig(base_url="wss://stats.example")) as client:
            await client.wait_for_update(10.0)
            ranking = client.top_players_by_object()

    After every (re)connect the client sends ``config.init_command`` and
    folds the replies into :attr:`store` in arrival order.  While
    disconnected, the aggregate keeps its last content until the next
    snapshot replaces it.
    """

    def __init__(
        self,
        config: StatsConfig | None = None,
        *,
        session: aiohttp.ClientSession | None = None,
        store: StatsStore | None = None,
        connect: Connector | None = None,
        on_message: Callable[[StatsMessage], None] | None = None,
    ) -> None:
        self._config = config or StatsConfig()
        self._external_session = session is not None
        self._http_session = session
        self._connect = connect
        self._store = store or StatsStore()
        self._on_message = on_message
        self._connection: ConnectionManager | None = None
        self._consumer: asyncio.Task[None] | None = None
        self._update_waiters: list[asyncio.Event] = []
        self._protocol_errors = 0
        self._messages_applied = 0

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> StatsClient:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def start(self) -> None:
        """Open the stream and start consuming it in the background."""
        if self._connection is not None:
            return
        connect = self._connect
        if connect is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            connect = aiohttp_connector(self._http_session)
        self._connection = ConnectionManager(self._config, connect=connect)
        self._connection.start()
        self._consumer = asyncio.get_running_loop().create_task(self._consume_loop(), name="farmstats-consumer")

    async def close(self) -> None:
        """Stop consuming, close the stream and release owned resources."""
        consumer = self._consumer
        self._consumer = None
        if consumer is not None:
            consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await consumer

        connection = self._connection
        self._connection = None
        if connection is not None:
            await connection.stop()

        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------

    @property
    def config(self) -> StatsConfig:
        return self._config

    @property
    def store(self) -> StatsStore:
        return self._store

    @property
    def status(self) -> ConnectionStatus:
        if self._connection is None:
            return ConnectionStatus(ConnectionState.DISCONNECTED)
        return self._connection.status

    @property
    def is_connected(self) -> bool:
        """Whether the stream is ``OPEN``.  Views show a disconnected state otherwise."""
        return self.status.state is ConnectionState.OPEN

    @property
    def protocol_errors(self) -> int:
        """Number of dropped undecodable messages."""
        return self._protocol_errors

    @property
    def messages_applied(self) -> int:
        return self._messages_applied

    async def states(self) -> AsyncIterator[ConnectionStatus]:
        """Yield the current connection status and every later transition."""
        connection = self._require_connection()
        async for status in connection.states():
            yield status

    # ------------------------------------------------------------------
    # Message processing
    # ------------------------------------------------------------------

    def process_raw(self, raw: str | bytes) -> StatsMessage | None:
        """Decode one inbound frame and fold it into the store.

        Undecodable frames are logged, counted and dropped; the store is
        left untouched.  Returns the applied message, or ``None``.
        """
        try:
            message = decode_message(raw, max_preview=self._config.max_message_preview)
        except StatsProtocolError as exc:
            self._protocol_errors += 1
            _logger.warning("Dropping malformed stats message: %s raw=%r", exc, exc.raw)
            return None

        self._store.apply(message)
        self._messages_applied += 1
        if self._on_message is not None:
            try:
                self._on_message(message)
            except Exception:
                _logger.exception("on_message callback failed")
        self._notify_update()
        return message

    async def _consume_loop(self) -> None:
        connection = self._require_connection()
        while True:
            handle = await connection.wait_open()
            try:
                await self._consume(handle)
            except StaleHandleError:
                _logger.debug("Connection #%s closed before init, waiting for the next one", handle.generation)
            except Exception:
                _logger.exception("Consumer failed on connection #%s, restarting", handle.generation)
                await asyncio.sleep(self._config.reconnect_delay)

    async def _consume(self, handle: TransportHandle) -> None:
        try:
            await handle.send_str(self._config.init_command)
            _logger.debug("Requested snapshot on connection #%s", handle.generation)
        except StatsTransportError as exc:
            # The failed send closed the socket; draining ends with the close.
            _logger.info("Snapshot request failed: %s", exc)
        async for raw in handle.messages():
            try:
                self.process_raw(raw)
            except Exception:
                _logger.exception(
                    "Unexpected error while applying stats message on connection #%s", handle.generation
                )

    def _notify_update(self) -> None:
        waiters = self._update_waiters
        self._update_waiters = []
        for waiter in waiters:
            if not waiter.is_set():
                waiter.set()

    async def wait_for_update(self, timeout_seconds: float) -> bool:
        """Wait until the next message is applied.  Returns ``False`` on timeout."""
        if timeout_seconds <= 0:
            return False
        waiter = asyncio.Event()
        self._update_waiters.append(waiter)
        try:
            await asyncio.wait_for(waiter.wait(), timeout_seconds)
            return True
        except TimeoutError:
            return False
        finally:
            self._update_waiters = [cand for cand in self._update_waiters if cand is not waiter]

    # ------------------------------------------------------------------
    # Projections
    # ------------------------------------------------------------------

    def snapshot_view(self) -> StatsAggregate:
        return self._store.snapshot_view()

    def top_players_by_object(self) -> dict[str, list[PlayerRow]]:
        return top_players_by_object(self._store.snapshot_view())

    def objects_for_subject(self, subject: str) -> list[ObjectRow]:
        return objects_for_subject(self._store.snapshot_view(), subject)

    def is_recently_changed(self, cell: Stamped, now: datetime | None = None) -> bool:
        """Freshness check using ``config.freshness_window_ms``."""
        return is_recently_changed(cell, now or datetime.now(UTC), self._config.freshness_window_ms)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_connection(self) -> ConnectionManager:
        if self._connection is None:
            raise StatsError("Client not started. Use 'async with StatsClient(...) as client:'")
        return self._connection
