"""
Depth frame normalizer.

HOT PATH: normalize() runs once per feed frame (~1 per second per symbol at
the default cadence, 10 per second at 100ms).

Frame format (Binance partial depth):
    {"lastUpdateId": 160, "bids": [["0.0024", "10"], ...], "asks": [["0.0026", "100"], ...]}

Combined-stream envelopes ({"stream": ..., "data": {...}}) are unwrapped.
Any structural or numeric problem rejects the whole frame; a partially
applied book is never produced.
"""

from __future__ import annotations

import math
import time
from typing import Any

import numpy as np
import orjson

from ..config import DEFAULT_DEPTH
from ..types import DepthSnapshot, MalformedFrame, NormalizedFrame, PriceLevel, ValidSnapshot

PRICE_DIGITS = 2
QUANTITY_DIGITS = 4


class FrameError(ValueError):
    """Raised internally when a frame fails validation."""


def _parse_number(value: Any, field: str) -> float:
    # bool is an int subclass; never a valid tick
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise FrameError(f"{field} is not a number: {value!r}")
    try:
        number = float(value)
    except ValueError:
        raise FrameError(f"{field} is not a number: {value!r}") from None
    if not math.isfinite(number) or number < 0:
        raise FrameError(f"{field} out of range: {value!r}")
    return number


def _parse_side(entries: Any, side: str, depth: int) -> tuple[PriceLevel, ...]:
    """Parse one side into levels with cumulative totals, best price first."""
    if not isinstance(entries, list):
        raise FrameError(f"'{side}' missing or not a list")

    entries = entries[:depth]
    prices: list[float] = []
    quantities: list[float] = []

    for entry in entries:
        if not isinstance(entry, (list, tuple)) or len(entry) < 2:
            raise FrameError(f"'{side}' entry is not a [price, qty] pair: {entry!r}")
        prices.append(round(_parse_number(entry[0], f"{side} price"), PRICE_DIGITS))
        quantities.append(round(_parse_number(entry[1], f"{side} qty"), QUANTITY_DIGITS))

    if not quantities:
        return ()

    # Running sum of the rounded quantities, best level outward
    totals = np.cumsum(np.asarray(quantities, dtype=np.float64)).tolist()

    return tuple(
        PriceLevel(price, qty, total)
        for price, qty, total in zip(prices, quantities, totals)
    )


class DepthNormalizer:
    """
    Validates raw depth frames and turns them into DepthSnapshot objects.

    Stateless apart from configuration; safe to share between connections.
    """

    __slots__ = ('depth',)

    def __init__(self, depth: int = DEFAULT_DEPTH) -> None:
        self.depth = depth

    def normalize(self, raw: str | bytes | dict) -> NormalizedFrame:
        """
        Convert a raw frame into ValidSnapshot or MalformedFrame.

        Never raises for bad input: every failure becomes MalformedFrame.
        """
        try:
            data = orjson.loads(raw) if isinstance(raw, (str, bytes, bytearray)) else raw
        except orjson.JSONDecodeError as exc:
            return MalformedFrame(f"invalid JSON: {exc}")

        if not isinstance(data, dict):
            return MalformedFrame(f"frame is not an object: {type(data).__name__}")

        # Combined stream format: {stream: "...", data: {...}}
        payload = data.get('data', data)
        if not isinstance(payload, dict):
            return MalformedFrame("stream envelope without object payload")

        try:
            bids = _parse_side(payload.get('bids'), 'bids', self.depth)
            asks = _parse_side(payload.get('asks'), 'asks', self.depth)
        except FrameError as exc:
            return MalformedFrame(str(exc))

        return ValidSnapshot(DepthSnapshot(
            bids=bids,
            asks=asks,
            received_ms=int(time.time() * 1000),
        ))
