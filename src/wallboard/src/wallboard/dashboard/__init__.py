"""
Rich-based terminal UI for the wallboard.

``WallboardSession`` owns the polling, rate and persistence machinery;
``WallboardDashboard`` only reads session snapshots and forwards key presses,
so the board can also run headless without any UI.
"""

from .dashboard import WallboardDashboard
from .lifecycle import WallboardSession
from .models import TileView, WallboardSnapshot

__all__ = [
    "TileView",
    "WallboardDashboard",
    "WallboardSession",
    "WallboardSnapshot",
]
