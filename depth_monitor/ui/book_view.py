"""
Order book TUI using Textual.

Displays:
- Top: status bar with pair, connection state, spread and imbalance
- Left: bids and asks side by side (price, size, cumulative total, depth bar)
- Right: spread % and imbalance sparklines from the rolling histories

Read-only consumer of SessionController.view(). The only command it sends
is a pair change, and only while no switch is in flight.

Performance notes:
- Polls the published view at ~4 FPS (feed cadence is 1s)
- Renders Rich tables, no per-row widgets
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

import aiohttp
from rich.console import RenderableType
from rich.style import Style
from rich.table import Table
from rich.text import Text

from textual.app import App, ComposeResult
from textual.containers import Horizontal, Vertical
from textual.widgets import Footer, Label, Sparkline, Static

from ..config import TRADING_PAIRS, FeedConfig
from ..engine.session import SessionController
from ..types import ConnectionState, TradingPair

if TYPE_CHECKING:
    from ..types import PriceLevel, SessionView

# Color scheme (dark theme)
BID_COLOR = "#00c087"
ASK_COLOR = "#ef4444"
HEADER_COLOR = "#94a3b8"
BAR_BG = "#1e293b"

STATE_COLORS = {
    ConnectionState.CONNECTING: "yellow",
    ConnectionState.OPEN: BID_COLOR,
    ConnectionState.CLOSED: "dim",
    ConnectionState.RECONNECTING: ASK_COLOR,
}

BAR_WIDTH = 10
REFRESH_INTERVAL = 0.25


def make_bar(value: float, max_value: float, width: int, color: str) -> Text:
    """Create a horizontal depth bar using block characters."""
    if max_value <= 0:
        return Text(" " * width)

    fill_width = int(min(1.0, value / max_value) * width)
    bar = "█" * fill_width + " " * (width - fill_width)
    return Text(bar, style=Style(color=color, bgcolor=BAR_BG))


def _side_table(title: str, levels: tuple[PriceLevel, ...], max_total: float, color: str) -> Table:
    table = Table(
        title=title,
        title_style=f"bold {color}",
        show_header=True,
        header_style=HEADER_COLOR,
        box=None,
        padding=(0, 1),
        collapse_padding=True,
    )
    table.add_column("PRICE", justify="right", width=12)
    table.add_column("SIZE", justify="right", width=12)
    table.add_column("TOTAL", justify="right", width=12)
    table.add_column("", justify="left", width=BAR_WIDTH, no_wrap=True)

    for level in levels:
        table.add_row(
            Text(level.price_text, style=color),
            level.quantity_text,
            level.total_text,
            make_bar(level.total, max_total, BAR_WIDTH, color),
        )
    return table


class BookTable(Static):
    """Bid and ask ladders with cumulative depth bars."""

    DEFAULT_CSS = """
    BookTable {
        width: 1fr;
        height: 100%;
    }
    """

    def __init__(self) -> None:
        super().__init__()
        self._view: Optional[SessionView] = None

    def update_view(self, view: SessionView) -> None:
        self._view = view
        self.refresh()

    def render(self) -> RenderableType:
        if self._view is None or self._view.snapshot.is_empty:
            return Text("Waiting for data...", style="dim")

        snap = self._view.snapshot
        # Shared scale so both sides' bars are comparable
        max_total = max(
            snap.bids[-1].total if snap.bids else 0.0,
            snap.asks[-1].total if snap.asks else 0.0,
        )

        grid = Table.grid(expand=True, padding=(0, 2))
        grid.add_column()
        grid.add_column()
        grid.add_row(
            _side_table("Bids", snap.bids, max_total, BID_COLOR),
            _side_table("Asks", snap.asks, max_total, ASK_COLOR),
        )
        return grid


class StatusBar(Static):
    """Status bar showing pair, connection state, spread and imbalance."""

    DEFAULT_CSS = """
    StatusBar {
        dock: top;
        height: 3;
        padding: 1 2;
        background: #0f172a;
    }
    """

    def __init__(self) -> None:
        super().__init__()
        self._view: Optional[SessionView] = None

    def update_view(self, view: SessionView) -> None:
        self._view = view
        self.refresh()

    def render(self) -> RenderableType:
        if self._view is None or self._view.pair is None:
            return Text("Connecting...", style="dim")

        view = self._view
        spread = view.snapshot.spread
        spread_text = f"{spread:.2f}" if spread is not None else "-"
        if view.spread_history:
            spread_text += f" ({view.spread_history[-1].spread_percent:.4f}%)"
        imbalance_text = (
            f"{view.imbalance_history[-1].imbalance * 100:+.2f}%" if view.imbalance_history else "-"
        )

        parts = [
            Text(f" {view.pair.display_symbol} ", style="bold white on #1e40af"),
            Text("  "),
            Text(view.connection_state.value.upper(), style=STATE_COLORS[view.connection_state]),
            Text("  Spread: ", style="dim"),
            Text(spread_text, style="yellow"),
            Text("  Imbalance: ", style="dim"),
            Text(imbalance_text, style="cyan"),
        ]
        if view.loading:
            parts.append(Text("  switching...", style="dim italic"))
        if view.malformed_frames:
            parts.append(Text(f"  bad frames: {view.malformed_frames}", style=ASK_COLOR))

        result = Text()
        for p in parts:
            result.append(p)
        return result


class BookApp(App):
    """Main order book viewer application."""

    CSS = """
    Screen {
        background: #0f172a;
    }

    #main-container {
        width: 100%;
        height: 100%;
        padding: 1 2;
    }

    #charts {
        width: 1fr;
        height: 100%;
    }

    #charts Label {
        color: #00c087;
        margin-top: 1;
    }

    #charts Sparkline {
        height: 6;
    }
    """

    BINDINGS = [("q", "quit", "Quit")] + [
        (str(i + 1), f"select_pair({i})", pair.display_symbol)
        for i, pair in enumerate(TRADING_PAIRS)
    ]

    def __init__(self, initial_pair: TradingPair, config: FeedConfig = FeedConfig()) -> None:
        super().__init__()
        self.initial_pair = initial_pair
        self.config = config
        self.controller: Optional[SessionController] = None
        self._http: Optional[aiohttp.ClientSession] = None

    def compose(self) -> ComposeResult:
        yield StatusBar()
        with Horizontal(id="main-container"):
            yield BookTable()
            with Vertical(id="charts"):
                yield Label("Spread History (%)")
                yield Sparkline([], id="spread-chart")
                yield Label("Orderbook Imbalance")
                yield Sparkline([], id="imbalance-chart")
        yield Footer()

    async def on_mount(self) -> None:
        """Open the HTTP session, start the first subscription and the refresh timer."""
        self._http = aiohttp.ClientSession()
        self.controller = SessionController(self._http, self.config, catalog=TRADING_PAIRS)
        self.controller.select_pair(self.initial_pair)
        self.set_interval(REFRESH_INTERVAL, self._refresh_view)

    async def on_unmount(self) -> None:
        if self.controller is not None:
            await self.controller.aclose()
        if self._http is not None:
            await self._http.close()

    def _refresh_view(self) -> None:
        if self.controller is None:
            return
        view = self.controller.view()
        self.query_one(StatusBar).update_view(view)
        self.query_one(BookTable).update_view(view)
        self.query_one("#spread-chart", Sparkline).data = [s.spread_percent for s in view.spread_history]
        self.query_one("#imbalance-chart", Sparkline).data = [s.imbalance for s in view.imbalance_history]

    def action_select_pair(self, index: int) -> None:
        """Switch pairs (bound to number keys). Ignored while a switch is in flight."""
        if self.controller is None or self.controller.loading:
            self.bell()
            return
        if not 0 <= index < len(self.controller.catalog):
            self.bell()
            return
        self.controller.select_pair(self.controller.catalog[index])
        self._refresh_view()


async def run_ui(initial_pair: TradingPair, config: FeedConfig = FeedConfig()) -> None:
    """Run the TUI application."""
    app = BookApp(initial_pair, config)
    await app.run_async()
