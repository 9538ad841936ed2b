"""
Rate engine for the wallboard.

Turns successive byte-counter snapshots into bits-per-second and keeps a short
rolling history per (device, interface) for sparklines. Nothing here is ever
persisted: a fresh engine reports unknown rates until a second sample arrives.
"""

from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Iterable

from .models import InterfaceCounter, SampleKey
from .settings import HISTORY_SIZE


@dataclass(slots=True)
class LiveSample:
    """Last raw counters and last computed rates for one interface."""

    rx_bytes: int
    tx_bytes: int
    observed_at_ms: float
    rx_bps: float | None = None
    tx_bps: float | None = None
    last_seen_at_ms: float | None = None


@dataclass(slots=True)
class HistoryBuffer:
    """Bounded rx/tx series; the oldest entry is dropped once full."""

    max_size: int = HISTORY_SIZE
    rx: Deque[float] = field(default_factory=deque)
    tx: Deque[float] = field(default_factory=deque)

    def __post_init__(self) -> None:
        self.rx = deque(self.rx, maxlen=self.max_size)
        self.tx = deque(self.tx, maxlen=self.max_size)

    def append(self, rx_bps: float, tx_bps: float) -> None:
        self.rx.append(rx_bps)
        self.tx.append(tx_bps)

    def __len__(self) -> int:
        return len(self.rx)


def counter_rate(now_bytes: int, prev_bytes: int, delta_seconds: float) -> float:
    """Bits per second between two byte counters; a counter that went backwards reads as 0."""
    per_second = (now_bytes - prev_bytes) / delta_seconds
    # round half up
    return max(0, math.floor(per_second + 0.5) * 8)


class RateEngine:
    """Per-session store of live samples and history buffers."""

    def __init__(self, history_size: int = HISTORY_SIZE) -> None:
        self._history_size = history_size
        self._samples: dict[SampleKey, LiveSample] = {}
        self._history: dict[SampleKey, HistoryBuffer] = {}

    def record(self, device_id: str, counter: InterfaceCounter, now_ms: float) -> LiveSample:
        """Fold one counter snapshot into the engine and return the updated sample."""
        key = (device_id, counter.name)
        prev = self._samples.get(key)

        rx_bps: float | None = None
        tx_bps: float | None = None
        if prev is not None:
            if now_ms > prev.observed_at_ms:
                delta_seconds = (now_ms - prev.observed_at_ms) / 1000
                rx_bps = counter_rate(counter.rx_bytes, prev.rx_bytes, delta_seconds)
                tx_bps = counter_rate(counter.tx_bytes, prev.tx_bytes, delta_seconds)
            else:
                rx_bps, tx_bps = prev.rx_bps, prev.tx_bps

        sample = LiveSample(
            rx_bytes=counter.rx_bytes,
            tx_bytes=counter.tx_bytes,
            observed_at_ms=now_ms,
            rx_bps=rx_bps,
            tx_bps=tx_bps,
            last_seen_at_ms=now_ms,
        )
        self._samples[key] = sample

        history = self._history.get(key)
        if history is None:
            history = self._history[key] = HistoryBuffer(max_size=self._history_size)
        history.append(rx_bps if rx_bps is not None else 0, tx_bps if tx_bps is not None else 0)
        return sample

    def record_many(self, device_id: str, counters: Iterable[InterfaceCounter], now_ms: float) -> None:
        for counter in counters:
            self.record(device_id, counter, now_ms)

    def sample(self, key: SampleKey) -> LiveSample | None:
        return self._samples.get(key)

    def history(self, key: SampleKey) -> HistoryBuffer | None:
        return self._history.get(key)

    def forget(self, keys: Iterable[SampleKey]) -> None:
        for key in keys:
            self._samples.pop(key, None)
            self._history.pop(key, None)

    def keys(self) -> set[SampleKey]:
        return set(self._samples)

    def reset(self) -> None:
        self._samples.clear()
        self._history.clear()
