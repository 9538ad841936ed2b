"""Chart generation utilities for the dashboard."""

from math import isfinite
from typing import Iterable, Optional

BLOCKS = " ▁▂▃▄▅▆▇█"


def fit(series: Iterable[float], width: int) -> list[float]:
    """Keep the newest ``width`` points, left-padding with NaN so bars stay right-aligned."""
    values = list(series)[-width:] if width > 0 else []
    return [float("nan")] * (width - len(values)) + values


def sparkline(series: Iterable[float], width: int, peak: Optional[float] = None) -> str:
    """Render one row of block characters scaled against ``peak`` (default: the series max)."""
    values = fit(series, width)
    finite = [v for v in values if isfinite(v)]
    if not finite:
        return " " * width
    top = peak if peak is not None else max(finite)
    out = []
    for v in values:
        if not isfinite(v):
            out.append(" ")
        elif top <= 0:
            out.append(BLOCKS[1])
        else:
            level = int(round(min(max(v, 0), top) / top * (len(BLOCKS) - 1)))
            out.append(BLOCKS[max(level, 1)])
    return "".join(out)

