"""Pointer-driven drag reorder of wallboard tiles."""

from __future__ import annotations

import enum
from typing import Any, Callable, Protocol

from loguru import logger

from .layout import SlotLayout

Unsubscribe = Callable[[], None]


class PointerSource(Protocol):
    """Something that can deliver global move/up/cancel events while a drag is active."""

    def subscribe(
        self,
        on_move: Callable[[Any], None],
        on_up: Callable[[Any], None],
        on_cancel: Callable[[], None],
    ) -> Unsubscribe: ...


class DragState(str, enum.Enum):
    IDLE = "idle"
    DRAGGING = "dragging"


class DragReorderController:
    """
    ``Idle -> Dragging -> Idle`` state machine that swaps two slots on drop.

    Indices are global positions in the slot list, so a drop on another page
    is the same operation as a drop on the current one. Listeners on the
    pointer source exist only while a drag is active.
    """

    def __init__(
        self,
        layout: SlotLayout,
        hit_test: Callable[[Any], int | None],
        source: PointerSource | None = None,
    ) -> None:
        self._layout = layout
        self._hit_test = hit_test
        self._source = source
        self._unsubscribe: Unsubscribe | None = None
        self.state = DragState.IDLE
        self.source_index: int | None = None
        self.target_index: int | None = None

    @property
    def dragging(self) -> bool:
        return self.state is DragState.DRAGGING

    def pointer_down(self, global_index: int) -> bool:
        """Start dragging the slot at ``global_index``; refused while another drag is active."""
        if self.dragging:
            logger.debug("Ignoring drag start: a drag is already active")
            return False
        if not 0 <= global_index < len(self._layout):
            raise IndexError(f"slot index {global_index} out of range")
        self.state = DragState.DRAGGING
        self.source_index = global_index
        self.target_index = None
        if self._source is not None:
            self._unsubscribe = self._source.subscribe(self.pointer_move, self.pointer_up, self.pointer_cancel)
        return True

    def pointer_move(self, position: Any) -> None:
        if not self.dragging:
            return
        target = self._hit_test(position)
        if target is not None and not 0 <= target < len(self._layout):
            target = None
        self.target_index = target

    def pointer_up(self, position: Any = None) -> bool:
        """Drop. Returns True when two slots were swapped."""
        if not self.dragging:
            return False
        if position is not None:
            self.pointer_move(position)
        source, target = self.source_index, self.target_index
        self._finish()
        if source is None or target is None or source == target:
            return False
        self._layout.swap(source, target)
        logger.debug(f"Swapped wallboard slots {source} and {target}")
        return True

    def pointer_cancel(self) -> None:
        if self.dragging:
            self._finish()

    def _finish(self) -> None:
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()
        self.state = DragState.IDLE
        self.source_index = None
        self.target_index = None
