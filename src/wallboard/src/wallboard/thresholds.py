"""Warn-below thresholds, bitrate units and staleness checks."""

from __future__ import annotations

import re

from .models import Slot
from .settings import STALE_FLOOR_MS, STALE_POLL_FACTOR

UNIT_MULTIPLIERS: dict[str, float] = {
    "Kbps": 1e3,
    "Mbps": 1e6,
    "Gbps": 1e9,
}

_THRESHOLD_RE = re.compile(r"^\s*(?P<value>[0-9]*\.?[0-9]+)\s*(?P<unit>[kmg])?(?P<suffix>bps|b/s)?\s*$", re.IGNORECASE)
_UNIT_BY_PREFIX = {"k": "Kbps", "m": "Mbps", "g": "Gbps"}


def below(threshold: float | None, rate: float | None) -> bool:
    """True iff a threshold is set, a rate is known and 0 <= rate < threshold."""
    return threshold is not None and rate is not None and 0 <= rate < threshold


def evaluate(slot: Slot | None, rx_bps: float | None, tx_bps: float | None) -> tuple[bool, bool]:
    """Return ``(warn_rx, warn_tx)`` for a tile."""
    if slot is None:
        return False, False
    return below(slot.warn_below_rx_bps, rx_bps), below(slot.warn_below_tx_bps, tx_bps)


def to_bps(value: float, unit: str) -> float:
    """Convert a threshold authored in Kbps/Mbps/Gbps into bits per second."""
    try:
        return value * UNIT_MULTIPLIERS[unit]
    except KeyError:
        raise ValueError(f"Unknown unit '{unit}'. Use one of: {', '.join(UNIT_MULTIPLIERS)}") from None


def from_bps(bps: float) -> tuple[float, str]:
    """Pick the largest unit that keeps the value at or above 1."""
    for unit in ("Gbps", "Mbps"):
        value = bps / UNIT_MULTIPLIERS[unit]
        if value >= 1:
            return value, unit
    return bps / UNIT_MULTIPLIERS["Kbps"], "Kbps"


def parse_threshold(text: str | None) -> float | None:
    """
    Parse user input like ``500k``, ``10Mbps`` or ``1.5G`` into bits per second.

    Empty input clears the threshold. A bare number is taken as Mbps, a
    number with only a ``bps`` suffix as raw bits per second.
    """
    if text is None or not text.strip():
        return None
    m = _THRESHOLD_RE.match(text)
    if not m:
        raise ValueError(f"Cannot parse threshold '{text}'. Examples: 500k, 10Mbps, 1.5G")
    value = float(m.group("value"))
    prefix = m.group("unit")
    if prefix:
        bps = to_bps(value, _UNIT_BY_PREFIX[prefix.lower()])
    elif m.group("suffix"):
        bps = value
    else:
        bps = to_bps(value, "Mbps")
    if bps <= 0:
        raise ValueError("Threshold must be greater than zero")
    return bps


def format_threshold(bps: float | None) -> str:
    if bps is None:
        return "—"
    value, unit = from_bps(bps)
    return f"{value:g} {unit}"


def stale_window_ms(poll_ms: int, *, floor_ms: int = STALE_FLOOR_MS, factor: int = STALE_POLL_FACTOR) -> int:
    return max(floor_ms, poll_ms * factor)


def is_stale(
    last_seen_at_ms: float | None,
    now_ms: float,
    poll_ms: int,
    paused: bool,
    *,
    floor_ms: int = STALE_FLOOR_MS,
    factor: int = STALE_POLL_FACTOR,
) -> bool:
    """A tile is stale when polling runs but no fresh sample arrived for several periods."""
    if paused or last_seen_at_ms is None:
        return False
    return now_ms - last_seen_at_ms > stale_window_ms(poll_ms, floor_ms=floor_ms, factor=factor)
