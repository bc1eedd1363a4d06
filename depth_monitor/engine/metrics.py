"""
Spread and imbalance aggregation engine.

Called once per valid depth snapshot. Keeps two independent rolling
histories for the charts:
- spread history: fixed 30 samples
- imbalance history: fixed 100 samples

Both are deques with maxlen, so memory is bounded regardless of uptime
and the oldest sample is evicted on overflow.

Imbalance is visible-depth imbalance: it only sees the top-N levels the
feed returns, not the whole book.
"""

from __future__ import annotations

from collections import deque
from datetime import datetime, timezone
from typing import Callable, Optional

from ..config import IMBALANCE_HISTORY_SIZE, SPREAD_HISTORY_SIZE
from ..types import DepthSnapshot, ImbalanceSample, SpreadSample

IMBALANCE_DIGITS = 4


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def compute_spread(snapshot: DepthSnapshot) -> Optional[tuple[float, float]]:
    """
    Return (absolute, percent of best ask), or None if it cannot be computed.
    """
    if not snapshot.bids or not snapshot.asks:
        return None
    best_ask = snapshot.asks[0].price
    if best_ask <= 0:
        return None
    spread = best_ask - snapshot.bids[0].price
    return spread, spread / best_ask * 100


def compute_imbalance(snapshot: DepthSnapshot) -> Optional[float]:
    """
    (bid_total - ask_total) / (bid_total + ask_total) over visible levels.

    Returns None when a side is empty or both volumes are zero.
    """
    if not snapshot.bids or not snapshot.asks:
        return None
    # Last level's cumulative total is the side's visible volume
    bid_total = snapshot.bids[-1].total
    ask_total = snapshot.asks[-1].total
    denominator = bid_total + ask_total
    if denominator <= 0:
        return None
    return round((bid_total - ask_total) / denominator, IMBALANCE_DIGITS)


class MetricsAggregator:
    """
    Rolling spread and imbalance histories.

    Thread-safety: NOT thread-safe. Designed for single-threaded async use.
    """

    __slots__ = ('_spreads', '_imbalances', '_clock')

    def __init__(
        self,
        spread_size: int = SPREAD_HISTORY_SIZE,
        imbalance_size: int = IMBALANCE_HISTORY_SIZE,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._spreads: deque[SpreadSample] = deque(maxlen=spread_size)
        self._imbalances: deque[ImbalanceSample] = deque(maxlen=imbalance_size)
        self._clock = clock

    def update(self, snapshot: DepthSnapshot) -> tuple[Optional[SpreadSample], Optional[ImbalanceSample]]:
        """
        Derive metrics from a snapshot and append them to the histories.

        Returns the samples that were appended (None where skipped).
        """
        if not snapshot.bids or not snapshot.asks:
            return None, None

        now = self._clock()
        spread_sample: Optional[SpreadSample] = None
        imbalance_sample: Optional[ImbalanceSample] = None

        spread = compute_spread(snapshot)
        if spread is not None:
            spread_sample = SpreadSample(
                time=now.astimezone().strftime("%H:%M:%S"),
                spread_absolute=spread[0],
                spread_percent=spread[1],
            )
            self._spreads.append(spread_sample)

        imbalance = compute_imbalance(snapshot)
        if imbalance is not None:
            imbalance_sample = ImbalanceSample(time=now.isoformat(), imbalance=imbalance)
            self._imbalances.append(imbalance_sample)

        return spread_sample, imbalance_sample

    @property
    def spread_history(self) -> tuple[SpreadSample, ...]:
        """Oldest first."""
        return tuple(self._spreads)

    @property
    def imbalance_history(self) -> tuple[ImbalanceSample, ...]:
        """Oldest first."""
        return tuple(self._imbalances)

    def clear(self) -> None:
        """Drop all history (called on every symbol switch)."""
        self._spreads.clear()
        self._imbalances.clear()
