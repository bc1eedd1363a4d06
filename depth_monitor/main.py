#!/usr/bin/env python3
"""
Depth Monitor - live order book depth, spread and imbalance for Binance spot pairs.

Usage:
    python -m depth_monitor.main --pair BTC/USDT

    Or via the installed script:
    depth-monitor ETH/USDT --log-file depth.log

Controls:
    1-4 - Switch pair (disabled while a switch is in progress)
    q   - Quit
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from .config import (
    DEFAULT_DEPTH,
    DEFAULT_INTERVAL_MS,
    DEFAULT_RECONNECT_DELAY,
    TRADING_PAIRS,
    FeedConfig,
    find_pair,
)

DEFAULT_LOG_FILE = "depth_monitor.log"


def configure_logging(level: str, log_file: str | None) -> None:
    """The TUI owns the terminal, so logs go to a file unless told otherwise."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        filename=log_file,
    )
    # aiohttp logs every websocket ping at DEBUG
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


async def main(pair_name: str, config: FeedConfig) -> None:
    """Main entry point - runs the session controller inside the UI's event loop."""

    # Import here to avoid slow startup for --help
    from .ui.book_view import run_ui

    pair = find_pair(pair_name)

    print(f"Starting Depth Monitor for {pair.display_symbol}...")
    print(f"  Stream: {config.stream_url(pair.feed_symbol)}")
    print(f"  Reconnect delay: {config.reconnect_delay:.1f}s")
    print()

    await run_ui(pair, config)


def cli() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Depth Monitor - live order book depth for Binance spot pairs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m depth_monitor.main
    python -m depth_monitor.main SOL/USDT --interval 100
    python -m depth_monitor.main dogeusdt --depth 10 --log-level DEBUG
        """
    )

    parser.add_argument(
        "pair",
        nargs="?",
        default=TRADING_PAIRS[0].display_symbol,
        help=f"Initial pair, one of {', '.join(p.display_symbol for p in TRADING_PAIRS)} "
             f"(default: {TRADING_PAIRS[0].display_symbol})"
    )

    parser.add_argument(
        "--depth",
        type=int,
        choices=(5, 10, 20),
        default=DEFAULT_DEPTH,
        help=f"Levels per side (default: {DEFAULT_DEPTH})"
    )

    parser.add_argument(
        "--interval",
        type=int,
        choices=(100, 1000),
        default=DEFAULT_INTERVAL_MS,
        help=f"Feed update interval in ms (default: {DEFAULT_INTERVAL_MS})"
    )

    parser.add_argument(
        "--reconnect-delay",
        type=float,
        default=DEFAULT_RECONNECT_DELAY,
        help=f"Seconds to wait before reconnecting (default: {DEFAULT_RECONNECT_DELAY})"
    )

    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--log-file",
        default=DEFAULT_LOG_FILE,
        help=f"Log file path (default: {DEFAULT_LOG_FILE})"
    )

    args = parser.parse_args()

    try:
        find_pair(args.pair)
    except KeyError as e:
        parser.error(str(e))

    configure_logging(args.log_level, args.log_file)

    config = FeedConfig(
        depth=args.depth,
        interval_ms=args.interval,
        reconnect_delay=args.reconnect_delay,
    )

    # Run
    try:
        asyncio.run(main(args.pair, config))
    except KeyboardInterrupt:
        print("\nShutdown requested.")
        sys.exit(0)


if __name__ == "__main__":
    cli()
