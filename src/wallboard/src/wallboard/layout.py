"""
Slot/layout model for the wallboard.

The model owns an unbounded, ordered list of tile bindings and the active grid
preset. Pages are derived views over that list: changing preset only changes
how many slots a page shows, the list itself is never truncated.
"""

from __future__ import annotations

import math
from typing import Callable, Iterable

from loguru import logger

from .models import DEFAULT_PRESET, DeviceSummary, LayoutPreset, Slot

LayoutListener = Callable[["SlotLayout"], None]


class SlotLayout:
    """Tile assignments plus the current preset and page."""

    def __init__(self, preset: LayoutPreset = DEFAULT_PRESET, slots: Iterable[Slot | None] | None = None) -> None:
        self._preset = preset
        self._slots: list[Slot | None] = list(slots or [])
        self._page = 0
        self._listeners: list[LayoutListener] = []
        self.ensure_capacity(preset)

    # --- Listeners ---------------------------------------------------------

    def add_listener(self, listener: LayoutListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: LayoutListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.exception(f"Layout listener failed: {e}")

    # --- Read access -------------------------------------------------------

    @property
    def preset(self) -> LayoutPreset:
        return self._preset

    @property
    def slots(self) -> list[Slot | None]:
        """A copy of the full slot list, across every page."""
        return list(self._slots)

    @property
    def capacity(self) -> int:
        return self._preset.capacity

    @property
    def page(self) -> int:
        return self._page

    @property
    def page_count(self) -> int:
        return max(1, math.ceil(len(self._slots) / self.capacity))

    def __len__(self) -> int:
        return len(self._slots)

    def get(self, index: int) -> Slot | None:
        if 0 <= index < len(self._slots):
            return self._slots[index]
        return None

    def page_slots(self, page: int | None = None) -> list[Slot | None]:
        """Slots on ``page`` (default: the current page), padded with None to the page capacity."""
        page = self._page if page is None else page
        start = page * self.capacity
        chunk = self._slots[start : start + self.capacity]
        return chunk + [None] * (self.capacity - len(chunk))

    def global_index(self, position: int, page: int | None = None) -> int:
        """Translate a page-relative tile position into an index of the full slot list."""
        page = self._page if page is None else page
        return page * self.capacity + position

    def wanted_pairs(self) -> dict[str, list[str]]:
        """Interface names per device over every configured slot, in first-seen order."""
        wanted: dict[str, list[str]] = {}
        for slot in self._slots:
            if slot is None:
                continue
            names = wanted.setdefault(slot.device_id, [])
            if slot.interface_name not in names:
                names.append(slot.interface_name)
        return wanted

    @staticmethod
    def is_device_missing(slot: Slot | None, devices: dict[str, DeviceSummary] | None) -> bool:
        """True when ``slot`` points at a device the registry snapshot does not know."""
        if slot is None or devices is None:
            return False
        return slot.device_id not in devices

    # --- Mutations ---------------------------------------------------------

    def ensure_capacity(self, preset: LayoutPreset | None = None) -> None:
        """Grow the slot list to at least the capacity of ``preset``; never shrinks."""
        capacity = (preset or self._preset).capacity
        if len(self._slots) < capacity:
            self._slots.extend([None] * (capacity - len(self._slots)))

    def set_preset(self, preset: LayoutPreset) -> None:
        self._preset = preset
        self.ensure_capacity(preset)
        self._page = 0
        self._notify()

    def set_page(self, page: int) -> None:
        """Select a page, clamped into the valid range. Not a persisted mutation."""
        self._page = min(max(page, 0), self.page_count - 1)

    def next_page(self) -> None:
        self._page = (self._page + 1) % self.page_count

    def previous_page(self) -> None:
        self._page = (self._page - 1) % self.page_count

    def set_slot(
        self,
        index: int,
        device_id: str,
        interface_name: str,
        warn_rx: float | None = None,
        warn_tx: float | None = None,
    ) -> Slot:
        if index < 0:
            raise IndexError(f"slot index must be non-negative, got {index}")
        slot = Slot(
            device_id=device_id.strip(),
            interface_name=interface_name.strip(),
            warn_below_rx_bps=warn_rx,
            warn_below_tx_bps=warn_tx,
        )
        if index >= len(self._slots):
            self._slots.extend([None] * (index + 1 - len(self._slots)))
        self._slots[index] = slot
        self._notify()
        return slot

    def clear_slot(self, index: int) -> None:
        self._check_index(index)
        self._slots[index] = None
        self._notify()

    def swap(self, i: int, j: int) -> None:
        self._check_index(i)
        self._check_index(j)
        if i == j:
            return
        self._slots[i], self._slots[j] = self._slots[j], self._slots[i]
        self._notify()

    def replace(self, preset: LayoutPreset, slots: Iterable[Slot | None]) -> None:
        """Swap in a freshly loaded config, keeping the page index valid."""
        self._preset = preset
        self._slots = list(slots)
        self.ensure_capacity(preset)
        self.set_page(self._page)
        self._notify()

    def prune_missing_devices(self, device_ids: Iterable[str]) -> int:
        """Null out slots whose device is gone after an explicit registry refresh."""
        known = set(device_ids)
        cleared = 0
        for index, slot in enumerate(self._slots):
            if slot is not None and slot.device_id not in known:
                self._slots[index] = None
                cleared += 1
        if cleared:
            logger.info(f"Cleared {cleared} wallboard slot(s) bound to removed devices")
            self._notify()
        return cleared

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self._slots):
            raise IndexError(f"slot index {index} out of range (0..{len(self._slots) - 1})")
