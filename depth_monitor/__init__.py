"""
Depth Monitor - live order book depth, spread and imbalance for Binance spot pairs.

Architecture:
- datafeed/: WebSocket connection with auto-reconnect, frame normalization
- engine/: Spread/imbalance histories, symbol-switch session control
- ui/: Order book + charts visualization (Textual TUI)
"""

__version__ = "0.1.0"
