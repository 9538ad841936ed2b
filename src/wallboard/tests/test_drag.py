import pytest

from wallboard.dashboard.pointer import KeyboardPointer
from wallboard.drag import DragReorderController, DragState
from wallboard.layout import SlotLayout
from wallboard.models import LayoutPreset, Slot

A = Slot("r1", "ether1")
B = Slot("r2", "ether1")


def _setup():
    layout = SlotLayout(LayoutPreset.GRID_2X2, [A, None, B])
    pointer = KeyboardPointer()

    def hit_test(position):
        if position is None or not 0 <= position < layout.capacity:
            return None
        return layout.global_index(position)

    return layout, pointer, DragReorderController(layout, hit_test, source=pointer)


def test_drop_swaps_source_and_target():
    layout, pointer, drag = _setup()
    assert drag.pointer_down(0) is True
    assert drag.state is DragState.DRAGGING
    assert pointer.subscribed
    pointer.move_to(2, layout.capacity)
    assert drag.target_index == 2
    pointer.release()
    assert layout.slots == [B, None, A, None]
    assert drag.state is DragState.IDLE
    assert not pointer.subscribed


def test_drop_onto_empty_slot_moves_binding():
    layout, pointer, drag = _setup()
    drag.pointer_down(2)
    assert drag.pointer_up(1) is True
    assert layout.slots == [A, B, None, None]


def test_drop_on_source_or_outside_is_a_noop():
    layout, pointer, drag = _setup()
    drag.pointer_down(0)
    assert drag.pointer_up(0) is False
    drag.pointer_down(0)
    drag.pointer_move(2)
    drag.pointer_move(99)
    assert drag.target_index is None
    assert drag.pointer_up() is False
    assert layout.slots == [A, None, B, None]


def test_cancel_leaves_layout_untouched():
    layout, pointer, drag = _setup()
    drag.pointer_down(0)
    pointer.move_to(3, layout.capacity)
    pointer.cancel()
    assert drag.state is DragState.IDLE
    assert drag.source_index is None
    assert not pointer.subscribed
    pointer.release()
    assert layout.slots == [A, None, B, None]


def test_second_drag_is_refused_while_active():
    layout, pointer, drag = _setup()
    assert drag.pointer_down(0) is True
    assert drag.pointer_down(2) is False
    assert drag.source_index == 0


def test_drag_start_validates_index():
    _, _, drag = _setup()
    with pytest.raises(IndexError):
        drag.pointer_down(4)
    assert drag.state is DragState.IDLE


def test_drop_reaches_slots_on_other_pages():
    layout = SlotLayout(LayoutPreset.GRID_2X2, [A, None, None, None, B])
    drag = DragReorderController(layout, hit_test=lambda position: position)
    drag.pointer_down(0)
    drag.pointer_move(4)
    assert drag.pointer_up() is True
    assert layout.get(0) == B
    assert layout.get(4) == A


def test_pointer_without_drag_is_ignored():
    layout, pointer, drag = _setup()
    assert drag.pointer_up(2) is False
    drag.pointer_move(2)
    assert drag.target_index is None
