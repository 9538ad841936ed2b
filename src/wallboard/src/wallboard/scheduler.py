"""
Polling scheduler for the wallboard.

A single repeating timer task drives poll cycles on the event loop. A cycle
collects every configured (device, interface) pair across all pages, groups
them by device and fetches counters one device at a time. Hidden or paused
wallboards skip their ticks entirely.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from typing import Callable, Protocol

from loguru import logger

from . import metrics
from .catalog import DeviceCatalog
from .layout import SlotLayout
from .models import InterfaceCounter
from .rates import RateEngine
from .settings import MAX_DEVICES_PER_CYCLE, MAX_INTERFACES_PER_DEVICE, POLL_MS, POLL_MS_OPTIONS


class CounterFetcher(Protocol):
    async def fetch_counters(self, device_id: str, interface_names: list[str]) -> list[InterfaceCounter]: ...


def now_ms() -> float:
    return time.time() * 1000


def build_batches(
    wanted: dict[str, list[str]],
    *,
    known_devices: set[str] | None = None,
    max_devices: int = MAX_DEVICES_PER_CYCLE,
    max_interfaces: int = MAX_INTERFACES_PER_DEVICE,
) -> list[tuple[str, list[str]]]:
    """Cap the wanted pairs to what one cycle may request, keeping first-seen order."""
    batches: list[tuple[str, list[str]]] = []
    for device_id, names in wanted.items():
        if known_devices is not None and device_id not in known_devices:
            continue
        if not names:
            continue
        batches.append((device_id, names[:max_interfaces]))
        if len(batches) >= max_devices:
            break
    return batches


class PollScheduler:
    """Timer-driven poll loop with pause, visibility and interval control."""

    def __init__(
        self,
        *,
        layout: SlotLayout,
        engine: RateEngine,
        fetcher: CounterFetcher,
        catalog: DeviceCatalog | None = None,
        poll_ms: int = POLL_MS,
        clock: Callable[[], float] = now_ms,
        on_cycle: Callable[[], None] | None = None,
    ) -> None:
        self._layout = layout
        self._engine = engine
        self._fetcher = fetcher
        self._catalog = catalog
        self._poll_ms = self._check_interval(poll_ms)
        self._clock = clock
        self._on_cycle = on_cycle
        self._paused = False
        self._visible = True
        self._timer_task: asyncio.Task[None] | None = None
        self._cycle_task: asyncio.Task[None] | None = None
        self.cycles_run = 0
        self.cycles_skipped = 0

    # --- State -------------------------------------------------------------

    @property
    def poll_ms(self) -> int:
        return self._poll_ms

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def visible(self) -> bool:
        return self._visible

    @property
    def running(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    def set_interval(self, poll_ms: int) -> None:
        self._poll_ms = self._check_interval(poll_ms)
        logger.info(f"Poll interval set to {poll_ms} ms")
        self._restart()

    def set_paused(self, paused: bool) -> None:
        self._paused = paused
        logger.info("Polling paused" if paused else "Polling resumed")
        self._restart()

    def set_visible(self, visible: bool) -> None:
        self._visible = visible

    @staticmethod
    def _check_interval(poll_ms: int) -> int:
        if poll_ms not in POLL_MS_OPTIONS:
            raise ValueError(f"poll interval must be one of {POLL_MS_OPTIONS}, got {poll_ms}")
        return poll_ms

    # --- Timer -------------------------------------------------------------

    def start(self) -> None:
        if self.running:
            return
        self._timer_task = asyncio.create_task(self._run_timer(), name="wallboard-poll-timer")

    async def stop(self) -> None:
        """Cancel the timer. A cycle already in flight is left to finish."""
        task, self._timer_task = self._timer_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    def _restart(self) -> None:
        if self._timer_task is None:
            return
        self._timer_task.cancel()
        self._timer_task = asyncio.create_task(self._run_timer(), name="wallboard-poll-timer")

    async def _run_timer(self) -> None:
        while True:
            self.tick()
            await asyncio.sleep(self._poll_ms / 1000)

    def tick(self) -> asyncio.Task[None] | None:
        """Start one poll cycle unless the wallboard is hidden, paused or still busy."""
        if not self._visible or self._paused:
            self._skip("hidden" if not self._visible else "paused")
            return None
        if self._cycle_task is not None and not self._cycle_task.done():
            self._skip("previous cycle still running")
            return None
        self._cycle_task = asyncio.create_task(self.poll_once(), name="wallboard-poll-cycle")
        return self._cycle_task

    def _skip(self, reason: str) -> None:
        self.cycles_skipped += 1
        metrics.POLL_CYCLES_SKIPPED.inc()
        logger.trace(f"Poll tick skipped: {reason}")

    # --- Cycle -------------------------------------------------------------

    def batches(self) -> list[tuple[str, list[str]]]:
        known = None
        if self._catalog is not None and self._catalog.devices is not None:
            known = set(self._catalog.devices)
        return build_batches(self._layout.wanted_pairs(), known_devices=known)

    async def poll_once(self) -> None:
        """Run one cycle: fetch each device in turn and feed the rate engine."""
        batches = self.batches()
        with metrics.POLL_CYCLE_SECONDS.time():
            for device_id, names in batches:
                try:
                    counters = await self._fetcher.fetch_counters(device_id, names)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    # one unreachable device must not stall the rest of the board
                    metrics.DEVICE_FETCH_FAILURES.inc()
                    logger.debug(f"Counter fetch failed for device {device_id}: {e}")
                    continue
                self._engine.record_many(device_id, counters, self._clock())

        self.cycles_run += 1
        metrics.POLL_CYCLES.inc()
        logger.trace(f"Poll cycle #{self.cycles_run} done: {len(batches)} device(s)")
        if self._on_cycle is not None:
            self._on_cycle()
