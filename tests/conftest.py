from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import aiohttp
import pytest

from farmstats.exceptions import StatsTransportError


@dataclass
class FakeMessage:
    type: aiohttp.WSMsgType
    data: Any = None


class FakeWebSocket:
    """In-memory stand-in for ``aiohttp.ClientWebSocketResponse``."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.close_code: int | None = None
        self.fail_sends = False
        self._incoming: asyncio.Queue[FakeMessage] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def receive(self) -> FakeMessage:
        return await self._incoming.get()

    async def send_str(self, data: str) -> None:
        # Record every attempt, including ones that fail.
        self.sent.append(data)
        if self._closed or self.fail_sends:
            raise aiohttp.ClientConnectionError("Cannot write to closing transport")

    async def close(self) -> bool:
        if self._closed:
            return False
        self._closed = True
        self.close_code = 1000
        self._incoming.put_nowait(FakeMessage(aiohttp.WSMsgType.CLOSED))
        return True

    def exception(self) -> BaseException | None:
        return None

    # Server-side controls

    def feed_text(self, text: str) -> None:
        self._incoming.put_nowait(FakeMessage(aiohttp.WSMsgType.TEXT, text))

    def feed_binary(self, data: bytes) -> None:
        self._incoming.put_nowait(FakeMessage(aiohttp.WSMsgType.BINARY, data))

    def feed_ping(self) -> None:
        self._incoming.put_nowait(FakeMessage(aiohttp.WSMsgType.PING, b""))

    def drop(self, code: int = 1006) -> None:
        """Simulate the peer (or an idle proxy) closing the connection."""
        self._closed = True
        self.close_code = code
        self._incoming.put_nowait(FakeMessage(aiohttp.WSMsgType.CLOSE, code))

    def feed_error(self) -> None:
        self._incoming.put_nowait(FakeMessage(aiohttp.WSMsgType.ERROR, ConnectionResetError("reset")))


class FakeServer:
    """Connector double handing out :class:`FakeWebSocket` instances."""

    def __init__(self) -> None:
        self.sockets: list[FakeWebSocket] = []
        self.urls: list[str] = []
        self.refuse_next = 0

    async def connect(self, url: str) -> FakeWebSocket:
        self.urls.append(url)
        if self.refuse_next > 0:
            self.refuse_next -= 1
            raise StatsTransportError(f"Connect to {url} failed: refused", url=url)
        ws = FakeWebSocket()
        self.sockets.append(ws)
        return ws

    @property
    def attempts(self) -> int:
        return len(self.urls)


@pytest.fixture
def fake_server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def eventually() -> Callable[..., Awaitable[None]]:
    async def _eventually(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
        async def _poll() -> None:
            while not predicate():
                await asyncio.sleep(0.001)

        await asyncio.wait_for(_poll(), timeout)

    return _eventually
