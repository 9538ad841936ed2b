"""Lifecycle management for a wallboard session."""

from __future__ import annotations

import asyncio
import contextlib
from datetime import datetime, timezone
from typing import Callable

from loguru import logger

from .. import metrics
from ..api_client import WallboardAPIClient
from ..catalog import DeviceCatalog
from ..drag import DragReorderController
from ..health_server import HealthServerMixin
from ..layout import SlotLayout
from ..models import DisplayPreferences, LayoutPreset, RotateMode, Slot
from ..persistence import LocalConfigStore, PersistenceCoordinator
from ..rates import RateEngine
from ..scheduler import PollScheduler, now_ms
from ..settings import REMOTE_DEBOUNCE_MS
from ..thresholds import evaluate, is_stale
from .models import TileView, WallboardSnapshot
from .pointer import KeyboardPointer


class WallboardSession(HealthServerMixin):
    """
    Owns every per-session store and task: layout, rate engine, device
    catalog, scheduler, persistence and drag controller. Built once per run and
    torn down with :meth:`stop`.
    """

    def __init__(
        self,
        *,
        client: WallboardAPIClient,
        local_store: LocalConfigStore,
        preferences: DisplayPreferences | None = None,
        preset_override: LayoutPreset | None = None,
        clock: Callable[[], float] = now_ms,
        debounce_ms: int = REMOTE_DEBOUNCE_MS,
    ) -> None:
        self.client = client
        self.local_store = local_store
        self.preferences = preferences or local_store.read_preferences()
        self._preset_override = preset_override
        self._clock = clock

        self.layout = SlotLayout()
        self.engine = RateEngine()
        self.catalog = DeviceCatalog(client)
        self.persistence = PersistenceCoordinator(local=local_store, remote=client, debounce_ms=debounce_ms)
        self.scheduler = PollScheduler(
            layout=self.layout,
            engine=self.engine,
            fetcher=client,
            catalog=self.catalog,
            poll_ms=self.preferences.poll_ms,
            clock=clock,
        )
        self.pointer = KeyboardPointer()
        self.drag = DragReorderController(self.layout, hit_test=self._hit_test, source=self.pointer)

        self.status_message = ""
        self._warning: set[int] = set()
        self._remote_task: asyncio.Task[None] | None = None
        self._registry_task: asyncio.Task[bool] | None = None
        self._rotate_task: asyncio.Task[None] | None = None
        self._started = False

    # --- Start / stop ------------------------------------------------------

    async def start(self) -> None:
        """Render from the local copy right away; the remote copy lands when it arrives."""
        if self._started:
            return
        local = self.persistence.load_local()
        self.persistence.attach(self.layout)
        self.persistence.hold_remote_writes()
        if local is not None:
            self.persistence.apply(local)
        if self._preset_override is not None:
            self.layout.set_preset(self._preset_override)

        self._remote_task = asyncio.create_task(self._load_remote(), name="wallboard-remote-load")
        self._registry_task = asyncio.create_task(self.catalog.try_refresh_devices(), name="wallboard-registry")
        self.scheduler.start()
        self._rotate_task = asyncio.create_task(self._rotate_pages(), name="wallboard-rotate")
        await self._start_health_server()
        self._started = True
        logger.info(
            f"Wallboard started: layout {self.layout.preset.value}, {self._configured_tiles()} tile(s), "
            f"polling every {self.scheduler.poll_ms} ms"
        )

    async def stop(self) -> None:
        if not self._started:
            return
        self.drag.pointer_cancel()
        for task in (self._rotate_task, self._remote_task, self._registry_task):
            if task is None:
                continue
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._rotate_task = None
        self._remote_task = None
        self._registry_task = None
        await self.scheduler.stop()
        await self.persistence.flush_on_teardown()
        self.persistence.detach()
        await self._stop_health_server()
        self._started = False
        logger.info("Wallboard stopped")

    async def _load_remote(self) -> None:
        remote = await self.persistence.load_remote()
        if remote is None:
            return
        self.persistence.apply(remote)
        self.local_store.write_config(self.persistence.current_config())
        self._forget_unbound()
        logger.info(f"Loaded shared wallboard config: layout {remote.layout.value}")
        if self._preset_override is not None and self._preset_override is not remote.layout:
            self.layout.set_preset(self._preset_override)

    async def _rotate_pages(self) -> None:
        while True:
            await asyncio.sleep(self.preferences.rotate_ms / 1000)
            if self.preferences.rotate_mode is RotateMode.AUTO and not self.drag.dragging:
                self.layout.next_page()

    # --- Foreground actions (errors reach the user) ------------------------

    def bind_slot(
        self,
        index: int,
        device_id: str,
        interface_name: str,
        warn_rx: float | None = None,
        warn_tx: float | None = None,
    ) -> Slot:
        slot = self.layout.set_slot(index, device_id, interface_name, warn_rx, warn_tx)
        self._forget_unbound()
        return slot

    def clear_slot(self, index: int) -> None:
        self.layout.clear_slot(index)
        self._forget_unbound()

    def set_preset(self, preset: LayoutPreset) -> None:
        self.layout.set_preset(preset)
        self.pointer.move_to(self.pointer.position, self.layout.capacity)

    def cycle_preset(self) -> LayoutPreset:
        presets = list(LayoutPreset)
        preset = presets[(presets.index(self.layout.preset) + 1) % len(presets)]
        self.set_preset(preset)
        return preset

    def set_poll_ms(self, poll_ms: int) -> None:
        self.scheduler.set_interval(poll_ms)
        self.preferences.poll_ms = poll_ms
        self.local_store.write_preferences(self.preferences)

    def toggle_pause(self) -> bool:
        self.scheduler.set_paused(not self.scheduler.paused)
        return self.scheduler.paused

    def toggle_rotation(self) -> RotateMode:
        mode = RotateMode.MANUAL if self.preferences.rotate_mode is RotateMode.AUTO else RotateMode.AUTO
        self.preferences.rotate_mode = mode
        self.local_store.write_preferences(self.preferences)
        return mode

    def change_page(self, delta: int) -> None:
        if delta > 0:
            self.layout.next_page()
        else:
            self.layout.previous_page()
        self.pointer.refresh()

    async def refresh_registry(self) -> int:
        """Explicit registry refresh: slots bound to removed devices are cleared."""
        devices = await self.catalog.refresh_devices()
        cleared = self.layout.prune_missing_devices(devices)
        self._forget_unbound()
        return cleared

    async def refresh_now(self) -> None:
        await self.scheduler.poll_once()

    async def sync_now(self) -> bool:
        return await self.persistence.sync_now()

    # --- Drag --------------------------------------------------------------

    def _hit_test(self, position) -> int | None:
        if not isinstance(position, int) or not 0 <= position < self.layout.capacity:
            return None
        return self.layout.global_index(position)

    def start_drag(self) -> bool:
        return self.drag.pointer_down(self.layout.global_index(self.pointer.position))

    # --- Snapshots ---------------------------------------------------------

    def _live_keys(self) -> set:
        return {slot.key for slot in self.layout.slots if slot is not None}

    def _forget_unbound(self) -> None:
        """Drop live samples and history of pairs no slot is bound to any more."""
        self.engine.forget(self.engine.keys() - self._live_keys())

    def _configured_tiles(self) -> int:
        return sum(1 for slot in self.layout.slots if slot is not None)

    def build_tile(self, index: int, slot: Slot | None, now: float) -> TileView:
        devices = self.catalog.devices
        if slot is None:
            return TileView(
                index=index, slot=None, device=None, device_missing=False,
                rx_bps=None, tx_bps=None, rx_history=[], tx_history=[],
            )
        sample = self.engine.sample(slot.key)
        history = self.engine.history(slot.key)
        rx_bps = sample.rx_bps if sample else None
        tx_bps = sample.tx_bps if sample else None
        warn_rx, warn_tx = evaluate(slot, rx_bps, tx_bps)
        return TileView(
            index=index,
            slot=slot,
            device=self.catalog.device(slot.device_id),
            device_missing=SlotLayout.is_device_missing(slot, devices),
            rx_bps=rx_bps,
            tx_bps=tx_bps,
            rx_history=list(history.rx) if history else [],
            tx_history=list(history.tx) if history else [],
            warn_rx=warn_rx,
            warn_tx=warn_tx,
            stale=is_stale(
                sample.last_seen_at_ms if sample else None, now, self.scheduler.poll_ms, self.scheduler.paused
            ),
        )

    def snapshot(self) -> WallboardSnapshot:
        now = self._clock()
        layout = self.layout
        start = layout.global_index(0)
        tiles = [self.build_tile(start + pos, slot, now) for pos, slot in enumerate(layout.page_slots())]

        warning = {tile.index for tile in tiles if tile.warn}
        newly_warning = sorted(warning - self._warning)
        self._warning = warning

        configured = self._configured_tiles()
        metrics.TRACKED_TILES.set(configured)
        devices = self.catalog.devices
        return WallboardSnapshot(
            generated_at=datetime.now(tz=timezone.utc),
            preset=layout.preset,
            page=layout.page,
            page_count=layout.page_count,
            tiles=tiles,
            poll_ms=self.scheduler.poll_ms,
            paused=self.scheduler.paused,
            rotate_mode=self.preferences.rotate_mode,
            configured_tiles=configured,
            devices_known=len(devices) if devices is not None else None,
            cursor=self.pointer.position,
            drag_source=self.drag.source_index,
            drag_target=self.drag.target_index,
            status_message=self.status_message,
            newly_warning=newly_warning,
        )

    def health_status(self) -> dict:
        return {
            "layout": self.layout.preset.value,
            "configured_tiles": self._configured_tiles(),
            "poll_ms": self.scheduler.poll_ms,
            "paused": self.scheduler.paused,
            "cycles_run": self.scheduler.cycles_run,
            "cycles_skipped": self.scheduler.cycles_skipped,
            "config_dirty": self.persistence.dirty,
        }
