"""Utility functions for the dashboard."""

WALLBOARD_TITLE = "Interface Wallboard"

KEY_HELP = (
    "q quit · p pause · 1/2/5 poll s · n/b page · l layout · a rotate · "
    "r registry · s sync · d drag · arrows move · enter drop · esc cancel"
)


def format_bps(value: float | None) -> str:
    """Convert bits per second into a compact human readable string."""
    if value is None:
        return "—"
    units = ["bps", "Kbps", "Mbps", "Gbps", "Tbps"]
    size = float(value)
    for unit in units:
        if abs(size) < 1000 or unit == units[-1]:
            return f"{int(size)} {unit}" if unit == "bps" else f"{size:.2f} {unit}"
        size /= 1000
    return f"{size:.2f} {units[-1]}"


def truncate(text: str, width: int) -> str:
    if width <= 0:
        return ""
    if len(text) <= width:
        return text
    if width == 1:
        return "…"
    return text[: width - 1] + "…"
