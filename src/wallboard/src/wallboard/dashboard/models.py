"""Data models for the dashboard."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ..models import DeviceSummary, LayoutPreset, RotateMode, Slot


@dataclass(slots=True)
class TileView:
    """Everything the render path needs to draw one tile."""

    index: int
    slot: Optional[Slot]
    device: Optional[DeviceSummary]
    device_missing: bool
    rx_bps: Optional[float]
    tx_bps: Optional[float]
    rx_history: list[float]
    tx_history: list[float]
    warn_rx: bool = False
    warn_tx: bool = False
    stale: bool = False

    @property
    def warn(self) -> bool:
        return self.warn_rx or self.warn_tx


@dataclass(slots=True)
class WallboardSnapshot:
    """Render-ready view of the current page, recomputed on every refresh."""

    generated_at: datetime
    preset: LayoutPreset
    page: int
    page_count: int
    tiles: list[TileView]
    poll_ms: int
    paused: bool
    rotate_mode: RotateMode
    configured_tiles: int
    devices_known: Optional[int] = None
    cursor: Optional[int] = None  # page-relative
    drag_source: Optional[int] = None  # global
    drag_target: Optional[int] = None  # global
    status_message: str = ""
    newly_warning: list[int] = field(default_factory=list)
