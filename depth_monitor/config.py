"""
Static configuration: feed endpoint, book depth, buffer sizes and the symbol catalog.

Defaults match the Binance spot partial depth stream. The CLI overrides
individual fields through FeedConfig.
"""

from __future__ import annotations

from dataclasses import dataclass

from .types import TradingPair

# Binance spot partial book depth stream
WS_BASE = "wss://stream.binance.com:9443"
STREAM_TEMPLATE = "{base}/ws/{symbol}@depth{depth}@{interval_ms}ms"

DEFAULT_DEPTH = 20                # Levels per side (Binance allows 5, 10, 20)
DEFAULT_INTERVAL_MS = 1000        # Feed cadence (1000 or 100)
DEFAULT_RECONNECT_DELAY = 3.0     # Seconds, fixed, no backoff
DEFAULT_HEARTBEAT = 20.0          # Seconds between websocket pings

SPREAD_HISTORY_SIZE = 30
IMBALANCE_HISTORY_SIZE = 100

TRADING_PAIRS: tuple[TradingPair, ...] = (
    TradingPair("BTC/USDT", "btcusdt"),
    TradingPair("ETH/USDT", "ethusdt"),
    TradingPair("SOL/USDT", "solusdt"),
    TradingPair("DOGE/USDT", "dogeusdt"),
)


@dataclass(frozen=True)
class FeedConfig:
    """Tunables shared by the connection, normalizer and aggregator."""
    ws_base: str = WS_BASE
    depth: int = DEFAULT_DEPTH
    interval_ms: int = DEFAULT_INTERVAL_MS
    reconnect_delay: float = DEFAULT_RECONNECT_DELAY
    heartbeat: float = DEFAULT_HEARTBEAT
    spread_history_size: int = SPREAD_HISTORY_SIZE
    imbalance_history_size: int = IMBALANCE_HISTORY_SIZE

    def stream_url(self, symbol: str) -> str:
        """Subscription URL for a symbol. The feed expects lower-case symbols."""
        return STREAM_TEMPLATE.format(
            base=self.ws_base,
            symbol=symbol.lower(),
            depth=self.depth,
            interval_ms=self.interval_ms,
        )


def find_pair(display_symbol: str, catalog: tuple[TradingPair, ...] = TRADING_PAIRS) -> TradingPair:
    """Look up a catalog entry by display symbol ("BTC/USDT") or feed symbol ("btcusdt")."""
    key = display_symbol.strip()
    for pair in catalog:
        if key.upper() == pair.display_symbol or key.lower() == pair.feed_symbol:
            return pair
    raise KeyError(f"Unknown trading pair: {display_symbol!r}")
