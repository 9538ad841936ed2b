import json

import pytest
from loguru import logger

from wallboard import cli
from wallboard.cli import build_parser, main
from wallboard.dashboard import WallboardSession
from wallboard.models import InterfaceCounter, LayoutPreset
from wallboard.persistence import LocalConfigStore
from wallboard.settings import SETTINGS_LAYOUT_KEY, SETTINGS_SLOTS_KEY

from fakes import FakeRouterAPI, device


def test_default_command_is_run():
    args = build_parser().parse_args([])
    assert args.command == "run"
    assert args.show_dashboard is True
    assert args.layout is None


def test_run_options():
    args = build_parser().parse_args(["run", "--no-dashboard", "--poll-ms", "5000", "--layout", "4x3"])
    assert args.show_dashboard is False
    assert args.poll_ms == 5000
    assert args.layout is LayoutPreset.GRID_4X3


def test_bind_uses_one_based_tiles_and_threshold_units():
    args = build_parser().parse_args(["bind", "3", "r1", "sfp1", "--warn-rx", "10M", "--warn-tx", "500k"])
    assert args.tile == 2
    assert args.device == "r1"
    assert args.interface == "sfp1"
    assert args.warn_rx == 10_000_000
    assert args.warn_tx == 500_000


@pytest.mark.parametrize(
    "argv",
    [
        ["run", "--poll-ms", "3000"],
        ["run", "--layout", "9x9"],
        ["bind", "0", "r1", "ether1"],
        ["bind", "1", "r1", "ether1", "--warn-rx", "fast"],
        ["swap", "1"],
    ],
)
def test_invalid_arguments_exit(argv):
    with pytest.raises(SystemExit):
        build_parser().parse_args(argv)


# -------------------------
# Commands against an in-memory API
# -------------------------

TWO_TILES = json.dumps([{"routerId": "r1", "iface": "ether1"}, {"routerId": "r2", "iface": "sfp1"}])


def _run(monkeypatch, tmp_path, api, *argv):
    monkeypatch.setattr(cli, "WallboardAPIClient", lambda: api)
    return main(["--config", str(tmp_path / "wallboard.json"), *argv])


def _remote_slots(api):
    return json.loads(api.values[SETTINGS_SLOTS_KEY])


def test_bind_saves_to_the_settings_store(monkeypatch, tmp_path):
    api = FakeRouterAPI(devices=[device("r1")])
    assert _run(monkeypatch, tmp_path, api, "bind", "2", "r1", "ether1", "--warn-rx", "10M") == 0
    assert _remote_slots(api)[1] == {"routerId": "r1", "iface": "ether1", "warnBelowRxBps": 10_000_000}
    assert LocalConfigStore(tmp_path / "wallboard.json").read_config().slots[1].device_id == "r1"


def test_bind_checks_the_registry_unless_forced(monkeypatch, tmp_path):
    api = FakeRouterAPI(devices=[device("r1")])
    assert _run(monkeypatch, tmp_path, api, "bind", "1", "ghost", "ether1") == 1
    assert api.writes == []
    assert _run(monkeypatch, tmp_path, api, "bind", "1", "ghost", "ether1", "--force") == 0
    assert _remote_slots(api)[0] == {"routerId": "ghost", "iface": "ether1"}


def test_clear_swap_and_layout_commands(monkeypatch, tmp_path):
    api = FakeRouterAPI(values={SETTINGS_LAYOUT_KEY: "2x2", SETTINGS_SLOTS_KEY: TWO_TILES})

    assert _run(monkeypatch, tmp_path, api, "swap", "1", "2") == 0
    assert [slot["routerId"] for slot in _remote_slots(api)[:2]] == ["r2", "r1"]

    assert _run(monkeypatch, tmp_path, api, "clear", "1") == 0
    assert _remote_slots(api)[:2] == [None, {"routerId": "r1", "iface": "ether1"}]

    assert _run(monkeypatch, tmp_path, api, "layout", "4x3") == 0
    assert api.values[SETTINGS_LAYOUT_KEY] == "4x3"


def test_show_does_not_write(monkeypatch, tmp_path):
    api = FakeRouterAPI(values={SETTINGS_LAYOUT_KEY: "2x2", SETTINGS_SLOTS_KEY: TWO_TILES})
    assert _run(monkeypatch, tmp_path, api, "show") == 0
    assert api.writes == []


def test_failed_save_exits_with_error(monkeypatch, tmp_path):
    api = FakeRouterAPI(devices=[device("r1")])
    api.fail_writes = True
    assert _run(monkeypatch, tmp_path, api, "bind", "1", "r1", "ether1") == 1


def test_out_of_range_tile_exits_with_error(monkeypatch, tmp_path):
    api = FakeRouterAPI(values={SETTINGS_LAYOUT_KEY: "2x2", SETTINGS_SLOTS_KEY: TWO_TILES})
    assert _run(monkeypatch, tmp_path, api, "clear", "99") == 1
    assert api.writes == []


def test_registry_failure_exits_with_error(monkeypatch, tmp_path):
    api = FakeRouterAPI()
    api.failing_registry = True
    assert _run(monkeypatch, tmp_path, api, "devices") == 1


def test_listing_commands(monkeypatch, tmp_path):
    api = FakeRouterAPI(devices=[device("r1")], interfaces={"r1": [("ether1", True, False)]})
    assert _run(monkeypatch, tmp_path, api, "devices") == 0
    assert _run(monkeypatch, tmp_path, api, "interfaces", "r1") == 0


def test_headless_rate_lines(tmp_path):
    session = WallboardSession(client=FakeRouterAPI(), local_store=LocalConfigStore(tmp_path / "wallboard.json"))
    session.bind_slot(0, "r1", "ether1", warn_rx=10_000)
    now = cli.now_ms()
    session.engine.record("r1", InterfaceCounter("ether1", 0, 0), now - 1000)
    session.engine.record("r1", InterfaceCounter("ether1", 1000, 0), now)

    messages = []
    handler_id = logger.add(lambda message: messages.append(message.record["message"]), level="INFO")
    try:
        cli._log_rates(session)
    finally:
        logger.remove(handler_id)

    assert messages == ["#1 r1/ether1: rx 8.00 Kbps tx 0 bps [WARN]"]
