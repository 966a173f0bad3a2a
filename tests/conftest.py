"""Shared fixtures: an in-memory stand-in for the websockets connection."""

import asyncio

import pytest
import pytest_asyncio
from websockets.exceptions import ConnectionClosedError
from websockets.frames import Close

from live_client.client import LiveClient
from live_client.types import ReconnectConfig

# Short delays so reconnect tests finish quickly
FAST_RECONNECT = ReconnectConfig(base_delay=0.01, max_delay=0.05)


class _Drop:
    def __init__(self, code):
        self.code = code


_LOCAL_CLOSE = object()


class FakeSocket:
    """Transport double: frames are pushed in, commands are recorded."""

    def __init__(self):
        self.sent = []
        self.close_code = None
        self.closed = False
        self._inbox = asyncio.Queue()

    async def send(self, message):
        if self.closed:
            raise ConnectionError("socket closed")
        self.sent.append(message)

    async def close(self, code=1000, reason=""):
        if not self.closed:
            self.closed = True
            self.close_code = code
            self._inbox.put_nowait(_LOCAL_CLOSE)

    def push(self, frame):
        self._inbox.put_nowait(frame)

    def drop(self, code=None):
        """Simulate the server side going away (``None`` = no close frame)."""
        self._inbox.put_nowait(_Drop(code))

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._inbox.get()
        if item is _LOCAL_CLOSE:
            raise StopAsyncIteration
        if isinstance(item, _Drop):
            self.closed = True
            self.close_code = item.code
            if item.code == 1000:
                raise StopAsyncIteration
            rcvd = Close(item.code, "test") if item.code is not None else None
            raise ConnectionClosedError(rcvd, None)
        return item


class FakeTransportFactory:
    """Callable passed as ``transport_factory``; one FakeSocket per connect."""

    def __init__(self):
        self.sockets = []
        self.calls = []
        self.fail_next = 0

    async def __call__(self, url, headers):
        self.calls.append((url, dict(headers)))
        if self.fail_next:
            self.fail_next -= 1
            raise OSError("connection refused")
        socket = FakeSocket()
        self.sockets.append(socket)
        return socket

    @property
    def last(self):
        return self.sockets[-1]


async def _settle(rounds=10):
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def settle():
    """Await it to let the receive task and scheduled callbacks run."""
    return _settle


@pytest.fixture
def fast_reconnect():
    return FAST_RECONNECT


@pytest.fixture
def transport():
    return FakeTransportFactory()


@pytest_asyncio.fixture
async def live(transport):
    """A LiveClient for user "self" wired to the fake transport."""
    client = LiveClient(
        "ws://gateway.test",
        local_user_id="self",
        token="test-jwt",
        reconnect=FAST_RECONNECT,
        transport_factory=transport,
    )
    yield client
    await client.teardown()
