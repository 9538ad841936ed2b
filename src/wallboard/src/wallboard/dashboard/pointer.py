"""Keyboard cursor acting as the pointer source for tile drags."""

from __future__ import annotations

from typing import Any, Callable


class KeyboardPointer:
    """
    Tracks a page-relative tile cursor and forwards moves/drops to whoever
    subscribed. Only the drag controller subscribes, and only while dragging.
    """

    def __init__(self) -> None:
        self.position = 0
        self._on_move: Callable[[Any], None] | None = None
        self._on_up: Callable[[Any], None] | None = None
        self._on_cancel: Callable[[], None] | None = None

    @property
    def subscribed(self) -> bool:
        return self._on_move is not None

    def subscribe(
        self,
        on_move: Callable[[Any], None],
        on_up: Callable[[Any], None],
        on_cancel: Callable[[], None],
    ) -> Callable[[], None]:
        self._on_move, self._on_up, self._on_cancel = on_move, on_up, on_cancel
        return self._unsubscribe

    def _unsubscribe(self) -> None:
        self._on_move = self._on_up = self._on_cancel = None

    def move_to(self, position: int, capacity: int) -> None:
        self.position = min(max(position, 0), capacity - 1)
        if self._on_move is not None:
            self._on_move(self.position)

    def move_by(self, delta: int, capacity: int) -> None:
        self.move_to(self.position + delta, capacity)

    def refresh(self) -> None:
        """Re-report the current position, e.g. after the page changed under the cursor."""
        if self._on_move is not None:
            self._on_move(self.position)

    def release(self) -> None:
        if self._on_up is not None:
            self._on_up(self.position)

    def cancel(self) -> None:
        if self._on_cancel is not None:
            self._on_cancel()
