from prometheus_client import REGISTRY, Counter, Gauge, Histogram

# Metric objects are cached by name: a process may build several sessions
# (tests do) and prometheus refuses duplicate registrations.
_metric_cache: dict[str, Counter | Gauge | Histogram] = {}

label_names = ["project", "subsystem"]

PROJECT = "wallboard"

# A poll cycle is a handful of sequential HTTP calls, bounded by the client timeout per device
POLL_CYCLE_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, float("inf"))


def _cached(kind, metric_name: str, description: str, **kwargs):
    if metric_name not in _metric_cache:
        _metric_cache[metric_name] = kind(
            metric_name,
            description,
            labelnames=label_names,
            registry=REGISTRY,
            **kwargs,
        )
    return _metric_cache[metric_name]


def GaugeWithParams(metric_name: str, description: str) -> Gauge:
    return _cached(Gauge, metric_name, description)


def CounterWithParams(metric_name: str, description: str) -> Counter:
    return _cached(Counter, metric_name, description)


def HistogramWithParams(metric_name: str, description: str, buckets=POLL_CYCLE_BUCKETS) -> Histogram:
    return _cached(Histogram, metric_name, description, buckets=buckets)


# Scheduler
POLL_CYCLES = CounterWithParams("wallboard_poll_cycles", "Poll cycles that ran").labels(PROJECT, "scheduler")
POLL_CYCLES_SKIPPED = CounterWithParams(
    "wallboard_poll_cycles_skipped", "Timer ticks that did not start a poll cycle"
).labels(PROJECT, "scheduler")
POLL_CYCLE_SECONDS = HistogramWithParams("wallboard_poll_cycle_seconds", "Wall time of one poll cycle").labels(
    PROJECT, "scheduler"
)
DEVICE_FETCH_FAILURES = CounterWithParams(
    "wallboard_device_fetch_failures", "Per-device counter fetches that failed"
).labels(PROJECT, "scheduler")

# Persistence
REMOTE_WRITES = CounterWithParams("wallboard_remote_writes", "Config writes sent to the settings store").labels(
    PROJECT, "persistence"
)
REMOTE_WRITE_FAILURES = CounterWithParams(
    "wallboard_remote_write_failures", "Config writes to the settings store that failed"
).labels(PROJECT, "persistence")

# Layout
TRACKED_TILES = GaugeWithParams("wallboard_tracked_tiles", "Configured (non-empty) tiles").labels(PROJECT, "layout")
