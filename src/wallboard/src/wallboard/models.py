"""Data models shared across the wallboard."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional

from .settings import POLL_MS

SampleKey = tuple[str, str]  # (device_id, interface_name)


class LayoutPreset(str, enum.Enum):
    """Grid shapes a wallboard page can take, named columns x rows."""

    GRID_2X2 = "2x2"
    GRID_3X2 = "3x2"
    GRID_3X3 = "3x3"
    GRID_4X3 = "4x3"

    @property
    def columns(self) -> int:
        return int(self.value.split("x")[0])

    @property
    def rows(self) -> int:
        return int(self.value.split("x")[1])

    @property
    def capacity(self) -> int:
        return self.columns * self.rows

    @classmethod
    def parse(cls, value: str | None) -> Optional["LayoutPreset"]:
        """Return the preset for ``value`` or None when it is not a known tag."""
        if not value:
            return None
        try:
            return cls(value.strip())
        except ValueError:
            return None


DEFAULT_PRESET = LayoutPreset.GRID_3X3


class RotateMode(str, enum.Enum):
    MANUAL = "manual"
    AUTO = "auto"


@dataclass(slots=True, frozen=True)
class Slot:
    """A tile binding: one interface on one device, with optional warn-below thresholds."""

    device_id: str
    interface_name: str
    warn_below_rx_bps: float | None = None
    warn_below_tx_bps: float | None = None

    def __post_init__(self) -> None:
        if not self.device_id or not self.interface_name:
            raise ValueError("a slot needs both a device id and an interface name")

    @property
    def key(self) -> SampleKey:
        return (self.device_id, self.interface_name)


@dataclass(slots=True, frozen=True)
class DeviceSummary:
    id: str
    name: str
    host: str
    port: int
    is_online: bool
    identity: str | None = None

    @property
    def label(self) -> str:
        return self.identity or self.name


@dataclass(slots=True, frozen=True)
class InterfaceCounter:
    name: str
    rx_bytes: int
    tx_bytes: int
    running: bool = True
    disabled: bool = False


@dataclass(slots=True, frozen=True)
class InterfaceInfo:
    name: str
    type: str | None = None
    running: bool = False
    disabled: bool = False


@dataclass(slots=True)
class PersistedConfig:
    """The only state written to storage."""

    layout: LayoutPreset = DEFAULT_PRESET
    slots: list[Slot | None] = field(default_factory=list)


@dataclass(slots=True)
class DisplayPreferences:
    """Per-terminal preferences; kept in the local file only."""

    poll_ms: int = POLL_MS
    rotate_mode: RotateMode = RotateMode.MANUAL
    rotate_ms: int = 15000
    alert_sound: bool = False

