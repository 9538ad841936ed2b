import pytest

from wallboard.layout import SlotLayout
from wallboard.models import LayoutPreset, Slot

from fakes import device


def _filled(count, preset=LayoutPreset.GRID_3X3):
    layout = SlotLayout(preset)
    for i in range(count):
        layout.set_slot(i, f"r{i}", "ether1")
    return layout


def test_new_layout_has_one_page_of_empty_slots():
    layout = SlotLayout(LayoutPreset.GRID_2X2)
    assert len(layout) == 4
    assert layout.slots == [None, None, None, None]
    assert layout.page_count == 1


def test_preset_parse():
    assert LayoutPreset.parse("4x3") is LayoutPreset.GRID_4X3
    assert LayoutPreset.parse(" 3x2 ") is LayoutPreset.GRID_3X2
    assert LayoutPreset.parse("5x5") is None
    assert LayoutPreset.parse(None) is None
    assert LayoutPreset.GRID_4X3.columns == 4
    assert LayoutPreset.GRID_4X3.rows == 3
    assert LayoutPreset.GRID_4X3.capacity == 12


def test_pages_are_padded_views_over_the_slot_list():
    layout = _filled(11)
    assert layout.page_count == 2
    second = layout.page_slots(1)
    assert len(second) == 9
    assert [s.device_id for s in second[:2]] == ["r9", "r10"]
    assert second[2:] == [None] * 7
    assert layout.global_index(1, page=1) == 10


def test_shrinking_preset_keeps_every_slot():
    layout = _filled(9)
    layout.set_preset(LayoutPreset.GRID_2X2)
    assert len(layout) == 9
    assert layout.page_count == 3
    assert layout.page == 0
    layout.set_preset(LayoutPreset.GRID_4X3)
    assert len(layout) == 12
    assert layout.slots[9:] == [None, None, None]


def test_page_navigation_clamps_and_wraps():
    layout = _filled(11)
    layout.set_page(7)
    assert layout.page == 1
    layout.set_page(-3)
    assert layout.page == 0
    layout.previous_page()
    assert layout.page == 1
    layout.next_page()
    assert layout.page == 0


def test_replace_clamps_current_page():
    layout = _filled(11)
    layout.set_page(1)
    layout.replace(LayoutPreset.GRID_3X3, [Slot("r1", "ether1")])
    assert layout.page == 0
    assert len(layout) == 9


def test_set_slot_grows_list_and_strips_ids():
    layout = SlotLayout(LayoutPreset.GRID_2X2)
    slot = layout.set_slot(6, " r1 ", " sfp1 ")
    assert slot == Slot("r1", "sfp1")
    assert len(layout) == 7
    assert layout.get(6) == slot
    assert layout.get(42) is None


def test_set_slot_rejects_blank_ids():
    layout = SlotLayout()
    with pytest.raises(ValueError):
        layout.set_slot(0, "r1", "  ")
    with pytest.raises(IndexError):
        layout.set_slot(-1, "r1", "ether1")


def test_swap_moves_slots_across_pages_including_empty():
    layout = SlotLayout()
    layout.set_slot(2, "r2", "ether1")
    layout.swap(2, 7)
    assert layout.get(2) is None
    assert layout.get(7) == Slot("r2", "ether1")
    with pytest.raises(IndexError):
        layout.swap(0, 9)


def test_clear_and_swap_validate_indices():
    layout = SlotLayout(LayoutPreset.GRID_2X2)
    with pytest.raises(IndexError):
        layout.clear_slot(4)
    with pytest.raises(IndexError):
        layout.swap(-1, 0)


def test_listeners_fire_on_mutations_only():
    layout = SlotLayout(LayoutPreset.GRID_2X2)
    seen = []
    layout.add_listener(lambda lay: seen.append(lay.slots))
    layout.set_slot(0, "r1", "ether1")
    layout.swap(0, 0)
    layout.next_page()
    layout.set_page(0)
    layout.swap(0, 1)
    layout.clear_slot(1)
    assert len(seen) == 3


def test_failing_listener_does_not_block_others():
    layout = SlotLayout()
    seen = []

    def broken(_):
        raise RuntimeError("boom")

    layout.add_listener(broken)
    layout.add_listener(seen.append)
    layout.set_slot(0, "r1", "ether1")
    assert seen == [layout]


def test_wanted_pairs_dedupes_in_first_seen_order():
    layout = SlotLayout()
    layout.set_slot(0, "r2", "ether2")
    layout.set_slot(1, "r1", "ether1")
    layout.set_slot(4, "r2", "ether2")
    layout.set_slot(12, "r2", "sfp1")
    assert layout.wanted_pairs() == {"r2": ["ether2", "sfp1"], "r1": ["ether1"]}


def test_device_missing_needs_a_loaded_registry():
    slot = Slot("r9", "ether1")
    assert SlotLayout.is_device_missing(slot, None) is False
    assert SlotLayout.is_device_missing(slot, {"r1": device("r1")}) is True
    assert SlotLayout.is_device_missing(None, {}) is False


def test_prune_missing_devices():
    layout = SlotLayout()
    layout.set_slot(0, "r1", "ether1")
    layout.set_slot(1, "r2", "ether1")
    layout.set_slot(10, "r2", "ether2")
    assert layout.prune_missing_devices(["r1"]) == 2
    assert layout.get(1) is None
    assert layout.get(10) is None
    assert layout.get(0) == Slot("r1", "ether1")
    assert layout.prune_missing_devices(["r1"]) == 0
