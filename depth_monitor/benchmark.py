#!/usr/bin/env python3
"""
Micro-benchmark for Depth Monitor performance.

Tests:
1. Frame normalization throughput (JSON decode + parse + cumulative totals)
2. Metric aggregation throughput (spread + imbalance into ring buffers)
3. Full frame path (raw bytes to updated histories)

Usage:
    python -m depth_monitor.benchmark
"""

from __future__ import annotations

import random
import time
from statistics import mean, stdev

import orjson

from .datafeed.normalizer import DepthNormalizer
from .engine.metrics import MetricsAggregator
from .types import ValidSnapshot


def generate_mock_frame(base_price: float = 60000.0, levels: int = 20) -> bytes:
    """Generate a mock partial depth frame as the feed sends it."""
    tick_size = 0.01

    bids = []
    asks = []

    for i in range(levels):
        bid_price = base_price - (i + 1) * tick_size
        ask_price = base_price + i * tick_size

        bids.append([f"{bid_price:.8f}", f"{random.uniform(0.001, 5):.8f}"])
        asks.append([f"{ask_price:.8f}", f"{random.uniform(0.001, 5):.8f}"])

    return orjson.dumps({
        'lastUpdateId': random.randint(1, 10**9),
        'bids': bids,
        'asks': asks,
    })


def benchmark_normalizer(iterations: int = 20000) -> None:
    """Benchmark frame normalization throughput."""
    print("\n=== Normalizer Benchmark ===")

    normalizer = DepthNormalizer()
    frames = [generate_mock_frame() for _ in range(iterations)]

    # Warm up
    for f in frames[:100]:
        normalizer.normalize(f)

    start = time.perf_counter()
    for f in frames:
        normalizer.normalize(f)
    elapsed = time.perf_counter() - start

    rate = iterations / elapsed
    print(f"  Frames normalized: {iterations:,}")
    print(f"  Time: {elapsed*1000:.1f}ms")
    print(f"  Rate: {rate:,.0f} frames/sec")
    print(f"  Per frame: {elapsed/iterations*1_000_000:.1f}µs")


def benchmark_metrics(iterations: int = 20000) -> None:
    """Benchmark spread/imbalance aggregation."""
    print("\n=== Metrics Aggregator Benchmark ===")

    normalizer = DepthNormalizer()
    aggregator = MetricsAggregator()

    snapshots = []
    for _ in range(1000):
        result = normalizer.normalize(generate_mock_frame())
        assert isinstance(result, ValidSnapshot)
        snapshots.append(result.snapshot)

    times = []
    for i in range(iterations):
        start = time.perf_counter()
        aggregator.update(snapshots[i % len(snapshots)])
        times.append(time.perf_counter() - start)

    avg_time = mean(times) * 1_000_000
    std_time = stdev(times) * 1_000_000

    print(f"  Iterations: {iterations:,}")
    print(f"  Avg time: {avg_time:.2f}µs")
    print(f"  Std dev: {std_time:.2f}µs")
    print(f"  History sizes: spread={len(aggregator.spread_history)}, "
          f"imbalance={len(aggregator.imbalance_history)}")


def benchmark_frame_path(iterations: int = 5000) -> None:
    """Benchmark one frame from raw bytes to updated histories (what each tick costs)."""
    print("\n=== Full Frame Path Benchmark ===")

    normalizer = DepthNormalizer()
    aggregator = MetricsAggregator()
    frames = [generate_mock_frame() for _ in range(iterations)]

    times = []
    for f in frames:
        start = time.perf_counter()
        result = normalizer.normalize(f)
        if isinstance(result, ValidSnapshot):
            aggregator.update(result.snapshot)
        times.append(time.perf_counter() - start)

    avg_time = mean(times) * 1_000_000
    std_time = stdev(times) * 1_000_000

    print(f"  Iterations: {iterations:,}")
    print(f"  Avg time: {avg_time:.2f}µs")
    print(f"  Std dev: {std_time:.2f}µs")
    print(f"  Max frames/sec possible: {1_000_000/avg_time:,.0f}")


def main() -> None:
    """Run all benchmarks."""
    print("=" * 60)
    print("Depth Monitor Performance Benchmark")
    print("=" * 60)

    benchmark_normalizer()
    benchmark_metrics()
    benchmark_frame_path()

    print("\n" + "=" * 60)
    print("Benchmark complete.")
    print("=" * 60)


if __name__ == "__main__":
    main()
