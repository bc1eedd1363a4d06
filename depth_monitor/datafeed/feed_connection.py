"""
Binance spot depth stream connection with fixed-delay auto-reconnect.

Handles:
1. One websocket session per symbol to <symbol>@depth20@1000ms
2. Connection state machine: CONNECTING -> OPEN -> {CLOSED | RECONNECTING}
3. Generation tagging of every emitted frame and state change
4. Cancellable retry after a fixed delay (unbounded, no backoff)

Every connection attempt (the initial one and each reconnect) draws a new
generation id. Consumers drop anything tagged with a generation that is not
the current one, so a late frame from a torn-down socket is harmless.

Performance notes:
- Frames are passed on as raw text; decoding happens in the normalizer
- Callbacks run synchronously on the event loop, in arrival order
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

import aiohttp

from ..config import FeedConfig
from ..types import ConnectionState

logger = logging.getLogger(__name__)

FrameCallback = Callable[[int, str], None]
StateCallback = Callable[[int, ConnectionState], None]

# Transport failures that put the connection into RECONNECTING
TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError)


class FeedConnection:
    """
    Live depth subscription for one symbol.

    Usage:
        conn = FeedConnection(session, next_generation, on_frame, on_state)
        generation = conn.open("btcusdt")
        ...
        conn.close(conn.generation)

    Thread-safety: NOT thread-safe. Must be used from the event loop thread.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        next_generation: Callable[[], int],
        on_frame: FrameCallback,
        on_state: StateCallback,
        config: FeedConfig = FeedConfig(),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.session = session
        self.config = config
        self._next_generation = next_generation
        self._on_frame = on_frame
        self._on_state = on_state
        self._sleep = sleep

        self.symbol: Optional[str] = None
        self.generation: int = 0
        self.state: ConnectionState = ConnectionState.CLOSED
        self.reconnect_count: int = 0

        self._closed = True
        self._task: Optional[asyncio.Task] = None
        self._retry_task: Optional[asyncio.Task] = None

    @property
    def url(self) -> str:
        return self.config.stream_url(self.symbol or "")

    @property
    def retry_pending(self) -> bool:
        return self._retry_task is not None and not self._retry_task.done()

    @property
    def done(self) -> bool:
        """True once closed and no task of this connection is still running."""
        return self._closed and all(
            task is None or task.done() for task in (self._task, self._retry_task)
        )

    def open(self, symbol: str) -> int:
        """
        Start connecting to the depth stream of `symbol`.

        Must be called from a running event loop. Returns the generation id
        that tags everything this attempt emits.
        """
        if not self._closed:
            raise RuntimeError(f"Connection for {self.symbol} is already open")
        self.symbol = symbol.lower()
        self._closed = False
        return self._connect()

    def close(self, generation: int) -> None:
        """
        Tear down without auto-reconnect. Cancels any pending retry.

        A generation older than the current attempt has already been retired
        and is ignored.
        """
        if generation < self.generation:
            logger.debug("Ignoring close for retired generation %s (current %s)", generation, self.generation)
            return
        if self._closed:
            return

        self._closed = True
        if self._retry_task is not None:
            self._retry_task.cancel()
        if self._task is not None:
            self._task.cancel()

        logger.info("Depth feed %s closed (gen=%s)", self.symbol, self.generation)
        self._set_state(self.generation, ConnectionState.CLOSED)

    async def wait_closed(self) -> None:
        """Wait until the transport and retry tasks have finished after close()."""
        tasks = [t for t in (self._task, self._retry_task) if t is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _is_current(self, generation: int) -> bool:
        return not self._closed and generation == self.generation

    def _connect(self) -> int:
        generation = self._next_generation()
        self.generation = generation
        self._set_state(generation, ConnectionState.CONNECTING)
        self._task = asyncio.get_running_loop().create_task(
            self._run(generation),
            name=f"depth-feed-{self.symbol}-{generation}",
        )
        return generation

    async def _run(self, generation: int) -> None:
        """Transport loop for one generation. Exactly one per generation."""
        url = self.url
        try:
            async with self.session.ws_connect(url, heartbeat=self.config.heartbeat) as ws:
                if not self._is_current(generation):
                    return
                logger.info("Depth feed connected: %s (gen=%s)", url, generation)
                self._set_state(generation, ConnectionState.OPEN)

                async for msg in ws:
                    if not self._is_current(generation):
                        return

                    if msg.type == aiohttp.WSMsgType.TEXT:
                        self._emit_frame(generation, msg.data)
                    elif msg.type == aiohttp.WSMsgType.ERROR:
                        logger.warning("Depth feed %s error frame (gen=%s): %s", self.symbol, generation, msg.data)
                        break
                    elif msg.type == aiohttp.WSMsgType.BINARY:
                        logger.debug("Depth feed %s ignoring binary frame (gen=%s, %d bytes)", self.symbol, generation, len(msg.data))

                if self._is_current(generation):
                    logger.warning("Depth feed %s closed by server (gen=%s)", self.symbol, generation)

        except asyncio.CancelledError:
            raise
        except TRANSPORT_ERRORS as exc:
            logger.warning("Depth feed %s connection failed (gen=%s): %r", self.symbol, generation, exc)
        except Exception:
            logger.exception("Depth feed %s unexpected transport failure (gen=%s)", self.symbol, generation)

        self._schedule_reconnect(generation)

    def _schedule_reconnect(self, generation: int) -> None:
        """Enter RECONNECTING and schedule a single retry after the fixed delay."""
        if not self._is_current(generation) or self.retry_pending:
            return
        self._set_state(generation, ConnectionState.RECONNECTING)
        logger.info(
            "Depth feed %s reconnecting in %.1fs (gen=%s)",
            self.symbol, self.config.reconnect_delay, generation,
        )
        self._retry_task = asyncio.get_running_loop().create_task(
            self._retry(generation),
            name=f"depth-feed-retry-{self.symbol}-{generation}",
        )

    async def _retry(self, generation: int) -> None:
        await self._sleep(self.config.reconnect_delay)
        if not self._is_current(generation):
            return
        self._retry_task = None
        self.reconnect_count += 1
        self._connect()

    def _set_state(self, generation: int, state: ConnectionState) -> None:
        self.state = state
        try:
            self._on_state(generation, state)
        except Exception:
            logger.exception("State callback failed (gen=%s state=%s)", generation, state.value)

    def _emit_frame(self, generation: int, raw: str) -> None:
        try:
            self._on_frame(generation, raw)
        except Exception:
            logger.exception("Frame callback failed (gen=%s)", generation)
