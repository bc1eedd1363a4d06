import asyncio
from types import SimpleNamespace

import aiohttp
import orjson
import pytest


WORKED_FRAME = {
    "lastUpdateId": 160,
    "bids": [["100.00", "2.0000"], ["99.50", "1.0000"]],
    "asks": [["100.50", "1.5000"], ["101.00", "0.5000"]],
}


def frame_text(frame=None, **overrides):
    payload = dict(WORKED_FRAME if frame is None else frame)
    payload.update(overrides)
    return orjson.dumps(payload).decode()


class FakeWebSocket:
    """Stands in for aiohttp.ClientWebSocketResponse: async-iterates queued messages."""

    def __init__(self):
        self._queue = asyncio.Queue()

    def send_text(self, raw):
        self._queue.put_nowait(SimpleNamespace(type=aiohttp.WSMsgType.TEXT, data=raw))

    def send_binary(self, payload):
        self._queue.put_nowait(SimpleNamespace(type=aiohttp.WSMsgType.BINARY, data=payload))

    def send_error(self, exc):
        self._queue.put_nowait(SimpleNamespace(type=aiohttp.WSMsgType.ERROR, data=exc))

    def server_close(self):
        self._queue.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        msg = await self._queue.get()
        if msg is None:
            raise StopAsyncIteration
        return msg


class _FakeConnect:
    def __init__(self, session):
        self.session = session

    async def __aenter__(self):
        if self.session.fail_next > 0:
            self.session.fail_next -= 1
            raise self.session.error or aiohttp.ClientConnectionError("connection refused")
        ws = FakeWebSocket()
        self.session.sockets.append(ws)
        return ws

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Records ws_connect calls; `fail_next` makes the next N handshakes fail with `error`."""

    def __init__(self, fail_next=0, error=None):
        self.error = error
        self.connects = []
        self.heartbeats = []
        self.sockets = []
        self.fail_next = fail_next

    def ws_connect(self, url, heartbeat=None):
        self.connects.append(url)
        self.heartbeats.append(heartbeat)
        return _FakeConnect(self)


class FakeSleep:
    """Records requested delays and blocks until release() is called."""

    def __init__(self):
        self.calls = []
        self._waiters = []

    async def __call__(self, delay):
        self.calls.append(delay)
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        await waiter

    @property
    def pending(self):
        return sum(1 for w in self._waiters if not w.done())

    def release(self):
        for waiter in self._waiters:
            if not waiter.done():
                waiter.set_result(None)
        self._waiters.clear()


async def settle(rounds=20):
    """Let scheduled tasks run until they block again."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def worked_frame():
    return frame_text()
