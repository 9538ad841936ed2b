"""Rich-based terminal wallboard."""

from __future__ import annotations

import asyncio

from blessed import Terminal
from loguru import logger
from rich.align import Align
from rich.console import Console, Group
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..thresholds import format_threshold
from .chart import sparkline
from .lifecycle import WallboardSession
from .models import TileView, WallboardSnapshot
from .utils import KEY_HELP, WALLBOARD_TITLE, format_bps, truncate

POLL_KEYS = {"1": 1000, "2": 2000, "5": 5000}
ARROWS = {"KEY_LEFT": -1, "KEY_RIGHT": 1}


class WallboardDashboard:
    """Draws the current page of tiles and turns key presses into session actions."""

    def __init__(self, session: WallboardSession, refresh_interval: float = 0.5, console: Console | None = None):
        self.term = Terminal()
        self.console = console or Console()
        self.layout = Layout()
        self.session = session
        self.refresh_interval = refresh_interval
        self.current_snapshot: WallboardSnapshot | None = None
        self._quit = asyncio.Event()
        self._actions: set[asyncio.Task] = set()

        self.setup_layout()

    def setup_layout(self):
        """Configure the dashboard layout structure."""
        self.layout.split(
            Layout(name="header", size=3),
            Layout(name="grid", ratio=1),
            Layout(name="footer", size=3),
        )

    # --- Rendering ---------------------------------------------------------

    def generate_header(self):
        snapshot = self.current_snapshot
        if snapshot is None:
            return Panel(Text(WALLBOARD_TITLE, style="bold cyan"), style="bold white on black")
        state = Text("PAUSED", style="bold yellow") if snapshot.paused else Text("LIVE", style="bold green")
        devices = "?" if snapshot.devices_known is None else str(snapshot.devices_known)
        line = Text.assemble(
            (WALLBOARD_TITLE, "bold cyan"),
            "  ",
            state,
            f"  page {snapshot.page + 1}/{snapshot.page_count}",
            f"  layout {snapshot.preset.value}",
            f"  poll {snapshot.poll_ms // 1000}s",
            f"  rotate {snapshot.rotate_mode.value}",
            f"  tiles {snapshot.configured_tiles}",
            f"  devices {devices}",
        )
        return Panel(Align.center(line), style="bold white on black", padding=(0, 1))

    def tile_width(self, columns: int) -> int:
        try:
            terminal_width = self.term.width or 120
        except Exception:
            terminal_width = 120
        return max(16, terminal_width // columns - 4)

    def generate_tile(self, tile: TileView, width: int, snapshot: WallboardSnapshot) -> Panel:
        position = tile.index - snapshot.page * snapshot.preset.capacity
        border = "bright_blue"
        if tile.index == snapshot.drag_source:
            border = "magenta"
        elif tile.index == snapshot.drag_target:
            border = "bright_magenta"
        elif snapshot.cursor == position:
            border = "white"

        slot = tile.slot
        if slot is None:
            return Panel(Text("empty", style="dim"), title=f"#{tile.index + 1}", border_style=border, height=7)

        if tile.device_missing:
            border = "red"
            body = Text(f"device missing\n{slot.device_id}", style="bold red")
            return Panel(body, title=truncate(slot.interface_name, width), border_style=border, height=7)

        device_name = tile.device.label if tile.device else slot.device_id
        if tile.warn:
            border = "red"
        elif tile.stale:
            border = "yellow"

        rx_style = "bold red" if tile.warn_rx else "green"
        tx_style = "bold red" if tile.warn_tx else "cyan"
        peak = max(tile.rx_history + tile.tx_history, default=0) or None
        body = Text()
        body.append("rx ", style="dim")
        body.append(format_bps(tile.rx_bps), style=rx_style)
        if slot.warn_below_rx_bps is not None:
            body.append(f"  < {format_threshold(slot.warn_below_rx_bps)}", style="dim")
        body.append("\n")
        body.append(sparkline(tile.rx_history, width, peak), style=rx_style)
        body.append("\n")
        body.append("tx ", style="dim")
        body.append(format_bps(tile.tx_bps), style=tx_style)
        if slot.warn_below_tx_bps is not None:
            body.append(f"  < {format_threshold(slot.warn_below_tx_bps)}", style="dim")
        body.append("\n")
        body.append(sparkline(tile.tx_history, width, peak), style=tx_style)
        if tile.stale:
            body.append("\nstale", style="yellow")
        elif tile.device is not None and not tile.device.is_online:
            body.append("\noffline", style="dim red")

        title = truncate(f"{device_name} · {slot.interface_name}", width)
        return Panel(body, title=title, border_style=border, height=7, padding=(0, 1))

    def generate_grid(self):
        snapshot = self.current_snapshot
        if snapshot is None:
            return Panel("Loading wallboard...", border_style="bright_blue")
        columns = snapshot.preset.columns
        width = self.tile_width(columns)
        grid = Table.grid(expand=True, padding=(0, 1))
        for _ in range(columns):
            grid.add_column(ratio=1)
        tiles = [self.generate_tile(tile, width, snapshot) for tile in snapshot.tiles]
        for start in range(0, len(tiles), columns):
            grid.add_row(*tiles[start : start + columns])
        return grid

    def generate_footer(self):
        snapshot = self.current_snapshot
        message = snapshot.status_message if snapshot and snapshot.status_message else KEY_HELP
        style = "bold white on blue"
        if snapshot and snapshot.drag_source is not None:
            message = f"Dragging #{snapshot.drag_source + 1}: arrows to move, enter to drop, esc to cancel"
            style = "bold white on magenta"
        return Panel(Align.center(Text(message, style=style)), style="bold white on black", padding=(0, 1))

    def render(self):
        self.layout["header"].update(self.generate_header())
        self.layout["grid"].update(self.generate_grid())
        self.layout["footer"].update(self.generate_footer())
        return self.layout

    def refresh_snapshot(self) -> WallboardSnapshot:
        snapshot = self.session.snapshot()
        self.current_snapshot = snapshot
        if snapshot.newly_warning and self.session.preferences.alert_sound:
            self.console.bell()
        return snapshot

    # --- Input -------------------------------------------------------------

    def handle_key(self, key: str) -> None:
        """Apply one key press. Async actions run as tasks and report into the status line."""
        session = self.session
        capacity = session.layout.capacity
        columns = session.layout.preset.columns

        if key in ("q", "Q"):
            self._quit.set()
        elif key == "KEY_ESCAPE":
            session.pointer.cancel()
        elif key in ARROWS:
            session.pointer.move_by(ARROWS[key], capacity)
        elif key == "KEY_UP":
            session.pointer.move_by(-columns, capacity)
        elif key == "KEY_DOWN":
            session.pointer.move_by(columns, capacity)
        elif key == "KEY_ENTER":
            session.pointer.release()
        elif key == "d":
            if session.start_drag():
                session.pointer.refresh()
        elif key == "p":
            paused = session.toggle_pause()
            session.status_message = "Polling paused" if paused else "Polling resumed"
        elif key in POLL_KEYS:
            session.set_poll_ms(POLL_KEYS[key])
            session.status_message = f"Polling every {POLL_KEYS[key] // 1000}s"
        elif key == "n":
            session.change_page(1)
        elif key == "b":
            session.change_page(-1)
        elif key == "l":
            preset = session.cycle_preset()
            session.status_message = f"Layout {preset.value}"
        elif key == "a":
            mode = session.toggle_rotation()
            session.status_message = f"Page rotation {mode.value}"
        elif key == "r":
            self._run_action(self._refresh_registry())
        elif key == "s":
            self._run_action(self._sync_now())

    def _run_action(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._actions.add(task)
        task.add_done_callback(self._actions.discard)

    async def _refresh_registry(self) -> None:
        try:
            cleared = await self.session.refresh_registry()
        except Exception as e:
            self.session.status_message = f"Registry refresh failed: {e}"
            return
        self.session.status_message = f"Registry refreshed; {cleared} tile(s) cleared"

    async def _sync_now(self) -> None:
        try:
            wrote = await self.session.sync_now()
        except Exception as e:
            self.session.status_message = f"Sync failed: {e}"
            return
        self.session.status_message = "Saved" if wrote else "Already up to date"

    async def _read_keys(self) -> None:
        while not self._quit.is_set():
            key = await asyncio.to_thread(self.term.inkey, 0.2)
            if not key:
                continue
            try:
                self.handle_key(key.name if key.is_sequence else str(key))
            except Exception as e:
                logger.exception(f"Error handling key {key!r}: {e}")
                self.session.status_message = f"Error: {e}"

    # --- Main loop ---------------------------------------------------------

    async def run(self):
        """Run the dashboard with live updates until the user quits."""
        self.session.scheduler.set_visible(True)
        reader: asyncio.Task | None = None
        try:
            with self.term.cbreak(), self.term.hidden_cursor():
                reader = asyncio.create_task(self._read_keys(), name="wallboard-keys")
                self.refresh_snapshot()
                with Live(self.render(), console=self.console, auto_refresh=False, screen=True) as live:
                    while not self._quit.is_set():
                        try:
                            self.refresh_snapshot()
                            live.update(self.render(), refresh=True)
                        except Exception as e:
                            logger.exception(f"Error rendering dashboard: {e}")
                            live.update(Group(Panel(f"Dashboard rendering error: {e}", style="red")), refresh=True)
                        try:
                            await asyncio.wait_for(self._quit.wait(), timeout=self.refresh_interval)
                        except asyncio.TimeoutError:
                            pass
        except KeyboardInterrupt:
            pass
        finally:
            self._quit.set()
            self.session.scheduler.set_visible(False)
            if reader is not None:
                await reader
            for task in list(self._actions):
                task.cancel()
