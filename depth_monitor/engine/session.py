"""
Session controller: symbol switching and the published view.

Wires FeedConnection -> DepthNormalizer -> MetricsAggregator and owns the
only handle to the active connection plus the generation counter.

Switch sequence (select_pair):
1. Close the active connection (retires its generation, cancels its retry)
2. Clear snapshot and both histories
3. Enter SWITCHING (loading=True, presentation disables pair buttons)
4. Open a new connection for the requested pair (draws a new generation)
5. On OPEN from that generation: enter ACTIVE

No locks: frames are applied only if they carry the active connection's
current generation, and everything runs on one event loop.
"""

from __future__ import annotations

import itertools
import logging
from typing import Awaitable, Callable, Optional, Union

import aiohttp

from ..config import TRADING_PAIRS, FeedConfig, find_pair
from ..datafeed.feed_connection import FeedConnection
from ..datafeed.normalizer import DepthNormalizer
from ..types import (
    EMPTY_SNAPSHOT,
    ConnectionState,
    DepthSnapshot,
    MalformedFrame,
    SessionState,
    SessionView,
    TradingPair,
)
from .metrics import MetricsAggregator

logger = logging.getLogger(__name__)


class SessionController:
    """
    Orchestrates one viewing session over a sequence of selected pairs.

    The presentation layer reads view() and calls select_pair(); it never
    touches the connection, the snapshot or the histories directly.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        config: FeedConfig = FeedConfig(),
        catalog: tuple[TradingPair, ...] = TRADING_PAIRS,
        normalizer: Optional[DepthNormalizer] = None,
        aggregator: Optional[MetricsAggregator] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        self._session = session
        self._config = config
        self.catalog = catalog
        self._normalizer = normalizer or DepthNormalizer(config.depth)
        self._metrics = aggregator or MetricsAggregator(
            config.spread_history_size,
            config.imbalance_history_size,
        )
        self._sleep = sleep

        self._generations = itertools.count(1)
        self._connection: Optional[FeedConnection] = None
        self._retired: list[FeedConnection] = []

        self._pair: Optional[TradingPair] = None
        self._state = SessionState.IDLE
        self._snapshot: DepthSnapshot = EMPTY_SNAPSHOT
        self._malformed_frames = 0

    # ------------------------------------------------------------------
    # Read-only state

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def pair(self) -> Optional[TradingPair]:
        return self._pair

    @property
    def snapshot(self) -> DepthSnapshot:
        return self._snapshot

    @property
    def active_generation(self) -> int:
        """Generation currently accepted, 0 when nothing is connected."""
        return self._connection.generation if self._connection is not None else 0

    @property
    def connection_state(self) -> ConnectionState:
        if self._connection is None:
            return ConnectionState.CLOSED
        return self._connection.state

    @property
    def loading(self) -> bool:
        return self._state is SessionState.SWITCHING

    def view(self) -> SessionView:
        """Snapshot of everything the presentation layer may display."""
        return SessionView(
            pair=self._pair,
            session_state=self._state,
            connection_state=self.connection_state,
            snapshot=self._snapshot,
            spread_history=self._metrics.spread_history,
            imbalance_history=self._metrics.imbalance_history,
            loading=self.loading,
            generation=self.active_generation,
            malformed_frames=self._malformed_frames,
        )

    # ------------------------------------------------------------------
    # Commands

    def select_pair(self, pair: Union[TradingPair, str]) -> int:
        """
        Switch the session to `pair` and return the new generation id.

        A request made while a previous switch is still in flight supersedes
        it. Must be called from a running event loop.
        """
        if isinstance(pair, str):
            pair = find_pair(pair, self.catalog)

        self._retire_connection()

        self._snapshot = EMPTY_SNAPSHOT
        self._metrics.clear()
        self._malformed_frames = 0
        self._pair = pair
        self._state = SessionState.SWITCHING

        kwargs = {} if self._sleep is None else {'sleep': self._sleep}
        self._connection = FeedConnection(
            self._session,
            self._next_generation,
            self._on_frame,
            self._on_state,
            config=self._config,
            **kwargs,
        )
        generation = self._connection.open(pair.feed_symbol)
        logger.info("Switching to %s (gen=%s)", pair.display_symbol, generation)
        return generation

    async def aclose(self) -> None:
        """Session teardown: close the active connection and wait for its tasks."""
        self._retire_connection()
        self._state = SessionState.IDLE
        retired, self._retired = self._retired, []
        for connection in retired:
            await connection.wait_closed()

    # ------------------------------------------------------------------
    # Internals

    def _next_generation(self) -> int:
        return next(self._generations)

    def _retire_connection(self) -> None:
        connection = self._connection
        if connection is None:
            return
        self._connection = None
        connection.close(connection.generation)
        self._retired = [c for c in self._retired if not c.done]
        self._retired.append(connection)

    def _is_active(self, generation: int) -> bool:
        return self._connection is not None and generation == self._connection.generation

    def _on_state(self, generation: int, state: ConnectionState) -> None:
        if not self._is_active(generation):
            return
        if state is ConnectionState.OPEN and self._state is SessionState.SWITCHING:
            self._state = SessionState.ACTIVE
            logger.info("Session active: %s (gen=%s)", self._pair.display_symbol, generation)

    def _on_frame(self, generation: int, raw: str) -> None:
        if not self._is_active(generation):
            logger.debug("Dropping frame from retired generation %s", generation)
            return

        result = self._normalizer.normalize(raw)
        if isinstance(result, MalformedFrame):
            self._malformed_frames += 1
            logger.warning(
                "Discarding malformed depth frame for %s (gen=%s): %s",
                self._pair.display_symbol if self._pair else "?", generation, result.reason,
            )
            return

        self._snapshot = result.snapshot
        self._metrics.update(result.snapshot)
