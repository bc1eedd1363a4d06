"""
Data types for Depth Monitor.

Performance notes:
- Using NamedTuple for immutable, memory-efficient structures
- Snapshots and samples are replaced wholesale, never mutated in place
"""

from __future__ import annotations

from enum import Enum
from typing import NamedTuple, Optional, Union


class TradingPair(NamedTuple):
    """Catalog entry: what the user sees and what the feed subscribes to."""
    display_symbol: str   # e.g. "BTC/USDT"
    feed_symbol: str      # e.g. "btcusdt"


class PriceLevel(NamedTuple):
    """Single normalized price level on one side of the book."""
    price: float      # Rounded to 2 fractional digits
    quantity: float   # Rounded to 4 fractional digits
    total: float      # Cumulative quantity from best price up to this level

    @property
    def price_text(self) -> str:
        return f"{self.price:.2f}"

    @property
    def quantity_text(self) -> str:
        return f"{self.quantity:.4f}"

    @property
    def total_text(self) -> str:
        return f"{self.total:.4f}"


class DepthSnapshot(NamedTuple):
    """
    Top-N view of the book. Replaces the previous snapshot entirely.

    bids: best first (descending price)
    asks: best first (ascending price)
    """
    bids: tuple[PriceLevel, ...]
    asks: tuple[PriceLevel, ...]
    received_ms: int = 0

    @property
    def best_bid(self) -> Optional[PriceLevel]:
        return self.bids[0] if self.bids else None

    @property
    def best_ask(self) -> Optional[PriceLevel]:
        return self.asks[0] if self.asks else None

    @property
    def spread(self) -> Optional[float]:
        """Best ask minus best bid, None unless both sides are present."""
        if not self.bids or not self.asks:
            return None
        return round(self.asks[0].price - self.bids[0].price, 2)

    @property
    def is_empty(self) -> bool:
        return not self.bids and not self.asks


EMPTY_SNAPSHOT = DepthSnapshot(bids=(), asks=())


class SpreadSample(NamedTuple):
    time: str               # Wall clock, HH:MM:SS
    spread_absolute: float
    spread_percent: float


class ImbalanceSample(NamedTuple):
    time: str               # ISO-8601 UTC
    imbalance: float        # (bid - ask) / (bid + ask), in [-1, 1]


class ConnectionState(str, Enum):
    """Transport state. Owned by FeedConnection only."""
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"
    RECONNECTING = "reconnecting"


class SessionState(str, Enum):
    """Symbol-switch state. Owned by SessionController only."""
    IDLE = "idle"
    SWITCHING = "switching"
    ACTIVE = "active"


class ValidSnapshot(NamedTuple):
    snapshot: DepthSnapshot


class MalformedFrame(NamedTuple):
    reason: str


NormalizedFrame = Union[ValidSnapshot, MalformedFrame]


class SessionView(NamedTuple):
    """
    Read-only state published to the presentation layer.

    Histories are tuples so consumers cannot mutate the live buffers.
    """
    pair: Optional[TradingPair]
    session_state: SessionState
    connection_state: ConnectionState
    snapshot: DepthSnapshot
    spread_history: tuple[SpreadSample, ...]
    imbalance_history: tuple[ImbalanceSample, ...]
    loading: bool
    generation: int
    malformed_frames: int
