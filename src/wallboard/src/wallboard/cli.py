"""Command line entry point for the wallboard."""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

from loguru import logger
from rich.console import Console
from rich.table import Table

from . import settings
from .api_client import WallboardAPIClient
from .dashboard import WallboardDashboard, WallboardSession
from .dashboard.utils import format_bps
from .exceptions import WallboardError
from .layout import SlotLayout
from .models import LayoutPreset
from .persistence import LocalConfigStore, PersistenceCoordinator
from .scheduler import now_ms
from .thresholds import format_threshold, parse_threshold

console = Console()


def configure_logging(show_dashboard: bool) -> None:
    """Keep log lines off the terminal while the full-screen dashboard owns it."""
    logger.remove()
    if show_dashboard:
        if settings.LOG_FILE:
            logger.add(settings.LOG_FILE, level=settings.LOG_LEVEL, rotation="10 MB", enqueue=False)
        else:
            logger.add(lambda message: None)
    else:
        logger.add(sys.stderr, level=settings.LOG_LEVEL)


def _tile_index(value: str) -> int:
    """Tiles are numbered from 1 on the command line and in the UI."""
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError("tile numbers start at 1")
    return number - 1


def _preset(value: str) -> LayoutPreset:
    preset = LayoutPreset.parse(value)
    if preset is None:
        raise argparse.ArgumentTypeError(f"layout must be one of {', '.join(p.value for p in LayoutPreset)}")
    return preset


def _poll_ms(value: str) -> int:
    poll_ms = int(value)
    if poll_ms not in settings.POLL_MS_OPTIONS:
        raise argparse.ArgumentTypeError(f"poll interval must be one of {settings.POLL_MS_OPTIONS}")
    return poll_ms


def _threshold(value: str) -> float | None:
    try:
        return parse_threshold(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Real-time interface traffic wallboard.")
    parser.add_argument(
        "--config",
        dest="config_path",
        default=str(settings.WALLBOARD_LOCAL_CONFIG),
        help="Local config cache file (default: %(default)s).",
    )
    parser.set_defaults(command="run", show_dashboard=True, poll_ms=None, layout=None)
    sub = parser.add_subparsers(dest="command")

    run = sub.add_parser("run", help="Show the live wallboard (default).")
    run.add_argument("--no-dashboard", dest="show_dashboard", action="store_false",
                     help="Run headless and log rates instead of drawing the wallboard.")
    run.add_argument("--poll-ms", type=_poll_ms, default=None, help="Poll interval: 1000, 2000 or 5000.")
    run.add_argument("--layout", type=_preset, default=None, help="Grid preset: 2x2, 3x2, 3x3 or 4x3.")
    run.set_defaults(show_dashboard=True)

    sub.add_parser("show", help="Print the configured tiles.")
    sub.add_parser("devices", help="List devices from the registry.")

    interfaces = sub.add_parser("interfaces", help="List interfaces of a device.")
    interfaces.add_argument("device")

    bind = sub.add_parser("bind", help="Bind a tile to a device interface.")
    bind.add_argument("tile", type=_tile_index)
    bind.add_argument("device")
    bind.add_argument("interface")
    bind.add_argument("--warn-rx", type=_threshold, default=None, help="Warn when rx drops below, e.g. 10M.")
    bind.add_argument("--warn-tx", type=_threshold, default=None, help="Warn when tx drops below, e.g. 500k.")
    bind.add_argument("--force", action="store_true", help="Skip the device registry check.")

    clear = sub.add_parser("clear", help="Empty a tile.")
    clear.add_argument("tile", type=_tile_index)

    swap = sub.add_parser("swap", help="Swap two tiles.")
    swap.add_argument("first", type=_tile_index)
    swap.add_argument("second", type=_tile_index)

    layout = sub.add_parser("layout", help="Change the grid preset.")
    layout.add_argument("preset", type=_preset)
    return parser


# -------------------------
# Live wallboard
# -------------------------


def _log_rates(session: WallboardSession) -> None:
    now = now_ms()
    for index, slot in enumerate(session.layout.slots):
        if slot is None:
            continue
        tile = session.build_tile(index, slot, now)
        flags = []
        if tile.device_missing:
            flags.append("device missing")
        if tile.warn:
            flags.append("WARN")
        if tile.stale:
            flags.append("stale")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        logger.info(
            f"#{index + 1} {slot.device_id}/{slot.interface_name}: "
            f"rx {format_bps(tile.rx_bps)} tx {format_bps(tile.tx_bps)}{suffix}"
        )


async def run_wallboard(args: argparse.Namespace) -> None:
    local = LocalConfigStore(args.config_path)
    preferences = local.read_preferences()
    if args.poll_ms is not None:
        preferences.poll_ms = args.poll_ms

    async with WallboardAPIClient() as client:
        session = WallboardSession(
            client=client, local_store=local, preferences=preferences, preset_override=args.layout
        )
        await session.start()
        try:
            if args.show_dashboard:
                await WallboardDashboard(session, console=console).run()
            else:
                stop_event = asyncio.Event()
                loop = asyncio.get_running_loop()
                for sig in (signal.SIGINT, signal.SIGTERM):
                    try:
                        loop.add_signal_handler(sig, stop_event.set)
                    except NotImplementedError:
                        pass
                while not stop_event.is_set():
                    try:
                        await asyncio.wait_for(stop_event.wait(), timeout=session.scheduler.poll_ms / 1000)
                    except asyncio.TimeoutError:
                        _log_rates(session)
        finally:
            await session.stop()


# -------------------------
# Foreground commands
# -------------------------


async def _open_config(client: WallboardAPIClient, config_path: str) -> tuple[SlotLayout, PersistenceCoordinator]:
    layout = SlotLayout()
    coordinator = PersistenceCoordinator(local=LocalConfigStore(config_path), remote=client)
    coordinator.attach(layout)
    await coordinator.restore()
    return layout, coordinator


def _print_tiles(layout: SlotLayout) -> None:
    table = Table(title=f"Wallboard ({layout.preset.value}, {layout.page_count} page(s))", header_style="bold magenta")
    table.add_column("#", justify="right", style="bold")
    table.add_column("Page", justify="right")
    table.add_column("Device", style="cyan")
    table.add_column("Interface", style="cyan")
    table.add_column("Warn rx below", justify="right", style="yellow")
    table.add_column("Warn tx below", justify="right", style="yellow")
    for index, slot in enumerate(layout.slots):
        page = str(index // layout.capacity + 1)
        if slot is None:
            table.add_row(str(index + 1), page, "[dim]—[/]", "", "", "")
            continue
        table.add_row(
            str(index + 1),
            page,
            slot.device_id,
            slot.interface_name,
            format_threshold(slot.warn_below_rx_bps),
            format_threshold(slot.warn_below_tx_bps),
        )
    console.print(table)


async def run_command(args: argparse.Namespace) -> None:
    async with WallboardAPIClient() as client:
        if args.command == "devices":
            table = Table(title="Devices", header_style="bold magenta")
            for column in ("ID", "Name", "Address", "Status"):
                table.add_column(column)
            for device in await client.list_devices():
                status = "[green]online[/]" if device.is_online else "[red]offline[/]"
                table.add_row(device.id, device.label, f"{device.host}:{device.port}", status)
            console.print(table)
            return

        if args.command == "interfaces":
            table = Table(title=f"Interfaces on {args.device}", header_style="bold magenta")
            for column in ("Name", "Type", "Running", "Disabled"):
                table.add_column(column)
            for info in await client.list_interfaces(args.device):
                table.add_row(info.name, info.type or "—", "yes" if info.running else "no",
                              "yes" if info.disabled else "no")
            console.print(table)
            return

        layout, coordinator = await _open_config(client, args.config_path)

        if args.command == "show":
            _print_tiles(layout)
            return

        if args.command == "bind":
            if not args.force:
                known = {device.id for device in await client.list_devices()}
                if args.device not in known:
                    raise WallboardError(f"Unknown device '{args.device}' (use --force to bind anyway)")
            layout.set_slot(args.tile, args.device, args.interface, args.warn_rx, args.warn_tx)
        elif args.command == "clear":
            layout.clear_slot(args.tile)
        elif args.command == "swap":
            layout.swap(args.first, args.second)
        elif args.command == "layout":
            layout.set_preset(args.preset)

        await coordinator.sync_now()
        console.print("[green]Wallboard config saved.[/]")
        _print_tiles(layout)


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the wallboard."""
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(show_dashboard=args.command == "run" and args.show_dashboard)

    try:
        if args.command == "run":
            asyncio.run(run_wallboard(args))
        else:
            asyncio.run(run_command(args))
    except KeyboardInterrupt:
        pass
    except (WallboardError, IndexError, ValueError) as e:
        console.print(f"[bold red]Error:[/] {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
