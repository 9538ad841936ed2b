from wallboard.models import InterfaceCounter
from wallboard.rates import HistoryBuffer, RateEngine, counter_rate


def _counter(rx, tx, name="ether1"):
    return InterfaceCounter(name=name, rx_bytes=rx, tx_bytes=tx)


def test_first_sample_has_unknown_rate():
    engine = RateEngine()
    sample = engine.record("r1", _counter(1000, 2000), 0)
    assert sample.rx_bps is None
    assert sample.tx_bps is None
    assert sample.last_seen_at_ms == 0
    assert list(engine.history(("r1", "ether1")).rx) == [0]


def test_rate_is_bits_per_second_between_samples():
    engine = RateEngine()
    engine.record("r1", _counter(1000, 0), 0)
    sample = engine.record("r1", _counter(2000, 250), 1000)
    assert sample.rx_bps == 8000
    assert sample.tx_bps == 2000


def test_rate_rounds_bytes_per_second_half_up():
    # 3 bytes over 2 s is 1.5 B/s -> 2 B/s -> 16 bps
    assert counter_rate(3, 0, 2.0) == 16
    assert counter_rate(10, 0, 4.0) == 24


def test_counter_reset_reads_as_zero():
    engine = RateEngine()
    engine.record("r1", _counter(5_000_000, 5_000_000), 0)
    sample = engine.record("r1", _counter(100, 100), 2000)
    assert sample.rx_bps == 0
    assert sample.tx_bps == 0


def test_non_increasing_timestamp_keeps_previous_rate():
    engine = RateEngine()
    engine.record("r1", _counter(0, 0), 0)
    engine.record("r1", _counter(1000, 1000), 1000)
    sample = engine.record("r1", _counter(9000, 9000), 1000)
    assert sample.rx_bps == 8000
    assert sample.rx_bytes == 9000


def test_history_keeps_newest_sixty_points():
    engine = RateEngine()
    for i in range(70):
        engine.record("r1", _counter(i * 1000, 0), i * 1000)
    history = engine.history(("r1", "ether1"))
    assert len(history) == 60
    assert len(history.tx) == 60
    # the first point (unknown rate recorded as 0) was dropped
    assert list(history.rx) == [8000] * 60


def test_history_buffer_drops_oldest():
    buf = HistoryBuffer(max_size=3)
    for i in range(5):
        buf.append(i, -i)
    assert list(buf.rx) == [2, 3, 4]
    assert list(buf.tx) == [-2, -3, -4]


def test_keys_are_per_device_and_interface():
    engine = RateEngine()
    engine.record_many("r1", [_counter(0, 0, "ether1"), _counter(0, 0, "ether2")], 0)
    engine.record("r2", _counter(0, 0, "ether1"), 0)
    assert engine.keys() == {("r1", "ether1"), ("r1", "ether2"), ("r2", "ether1")}
    engine.forget([("r1", "ether2")])
    assert engine.sample(("r1", "ether2")) is None
    assert engine.history(("r1", "ether2")) is None
    engine.reset()
    assert engine.keys() == set()
