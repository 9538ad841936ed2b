import asyncio

import pytest

from wallboard.catalog import DeviceCatalog
from wallboard.layout import SlotLayout
from wallboard.rates import RateEngine
from wallboard.scheduler import PollScheduler, build_batches

from fakes import FakeRouterAPI, ManualClock, device


def _scheduler(api, layout, clock=None, catalog=None):
    return PollScheduler(
        layout=layout,
        engine=RateEngine(),
        fetcher=api,
        catalog=catalog,
        clock=clock or ManualClock(),
    )


def test_build_batches_caps_devices_and_interfaces():
    wanted = {f"r{d}": [f"ether{i}" for i in range(15)] for d in range(15)}
    batches = build_batches(wanted)
    assert len(batches) == 12
    assert [device_id for device_id, _ in batches] == [f"r{d}" for d in range(12)]
    assert all(len(names) == 12 for _, names in batches)
    assert batches[0][1][-1] == "ether11"


def test_build_batches_skips_unknown_devices():
    wanted = {"r1": ["ether1"], "gone": ["ether1"], "r2": ["ether2"]}
    assert build_batches(wanted, known_devices={"r1", "r2"}) == [("r1", ["ether1"]), ("r2", ["ether2"])]
    assert len(build_batches(wanted)) == 3


def test_poll_once_fetches_devices_one_at_a_time():
    api = FakeRouterAPI(counters={"r1": {"ether1": (0, 0)}, "r2": {"ether2": (0, 0)}})
    layout = SlotLayout()
    layout.set_slot(0, "r1", "ether1")
    layout.set_slot(1, "r2", "ether2")
    layout.set_slot(14, "r1", "ether1")
    scheduler = _scheduler(api, layout)

    asyncio.run(scheduler.poll_once())

    assert api.calls == [("r1", ["ether1"]), ("r2", ["ether2"])]
    assert api.max_active == 1
    assert scheduler.cycles_run == 1


def test_poll_once_feeds_rate_engine():
    api = FakeRouterAPI(counters={"r1": {"ether1": (0, 0)}})
    layout = SlotLayout()
    layout.set_slot(0, "r1", "ether1")
    clock = ManualClock(0)
    scheduler = _scheduler(api, layout, clock)

    asyncio.run(scheduler.poll_once())
    clock.now = 2000
    api.counters["r1"]["ether1"] = (2000, 500)
    asyncio.run(scheduler.poll_once())

    sample = scheduler._engine.sample(("r1", "ether1"))
    assert sample.rx_bps == 8000
    assert sample.tx_bps == 2000
    assert sample.last_seen_at_ms == 2000


def test_failed_device_does_not_stop_the_cycle():
    api = FakeRouterAPI(counters={"r2": {"ether1": (0, 0)}})
    api.failing.add("r1")
    layout = SlotLayout()
    layout.set_slot(0, "r1", "ether1")
    layout.set_slot(1, "r2", "ether1")
    scheduler = _scheduler(api, layout)

    asyncio.run(scheduler.poll_once())

    assert [device_id for device_id, _ in api.calls] == ["r1", "r2"]
    assert scheduler._engine.sample(("r1", "ether1")) is None
    assert scheduler._engine.sample(("r2", "ether1")) is not None


def test_registry_snapshot_filters_devices():
    api = FakeRouterAPI(devices=[device("r1")], counters={"r1": {"ether1": (0, 0)}})
    layout = SlotLayout()
    layout.set_slot(0, "r1", "ether1")
    layout.set_slot(1, "gone", "ether1")
    catalog = DeviceCatalog(api)
    scheduler = _scheduler(api, layout, catalog=catalog)

    async def scenario():
        await scheduler.poll_once()
        await catalog.refresh_devices()
        await scheduler.poll_once()

    asyncio.run(scenario())
    assert api.calls == [("r1", ["ether1"]), ("gone", ["ether1"]), ("r1", ["ether1"])]


def test_tick_skips_when_paused_or_hidden():
    api = FakeRouterAPI()
    scheduler = _scheduler(api, SlotLayout())
    scheduler.set_paused(True)
    assert scheduler.tick() is None
    scheduler.set_paused(False)
    scheduler.set_visible(False)
    assert scheduler.tick() is None
    assert scheduler.cycles_skipped == 2
    assert scheduler.cycles_run == 0


def test_tick_skips_while_previous_cycle_runs():
    api = FakeRouterAPI(counters={"r1": {"ether1": (0, 0)}})
    layout = SlotLayout()
    layout.set_slot(0, "r1", "ether1")
    scheduler = _scheduler(api, layout)

    async def scenario():
        api.gate = asyncio.Event()
        first = scheduler.tick()
        await asyncio.sleep(0)
        assert scheduler.tick() is None
        api.gate.set()
        await first
        second = scheduler.tick()
        await second

    asyncio.run(scenario())
    assert scheduler.cycles_run == 2
    assert scheduler.cycles_skipped == 1
    assert api.max_active == 1


def test_interval_must_be_a_known_option():
    scheduler = _scheduler(FakeRouterAPI(), SlotLayout())
    scheduler.set_interval(5000)
    assert scheduler.poll_ms == 5000
    with pytest.raises(ValueError):
        scheduler.set_interval(3000)
    with pytest.raises(ValueError):
        PollScheduler(layout=SlotLayout(), engine=RateEngine(), fetcher=FakeRouterAPI(), poll_ms=250)


def test_timer_polls_immediately_and_stops():
    api = FakeRouterAPI(counters={"r1": {"ether1": (0, 0)}})
    layout = SlotLayout()
    layout.set_slot(0, "r1", "ether1")
    scheduler = _scheduler(api, layout)

    async def scenario():
        scheduler.start()
        assert scheduler.running
        await asyncio.sleep(0.05)
        scheduler.set_interval(1000)
        await asyncio.sleep(0.05)
        await scheduler.stop()
        assert not scheduler.running

    asyncio.run(scenario())
    # once at start and once more when the interval change restarted the timer
    assert scheduler.cycles_run == 2
