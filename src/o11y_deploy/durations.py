"""Prometheus-style duration strings ("10s", "1h30m", "500ms")."""

from __future__ import annotations

import re
from datetime import timedelta

_UNITS = {
    "y": 365 * 24 * 3600.0,
    "w": 7 * 24 * 3600.0,
    "d": 24 * 3600.0,
    "h": 3600.0,
    "m": 60.0,
    "s": 1.0,
    "ms": 0.001,
}

_DURATION_RE = re.compile(r"^((\d+)y)?((\d+)w)?((\d+)d)?((\d+)h)?((\d+)m)?((\d+)s)?((\d+)ms)?$")


def parse_duration(value: str | int | float | timedelta) -> timedelta:
    """Parse a duration string into a timedelta.

    Plain numbers are taken as seconds.

    Raises:
        ValueError: if the string is not a valid duration
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)

    text = value.strip()
    if text == "0":
        return timedelta(0)
    match = _DURATION_RE.match(text)
    if not text or not match:
        raise ValueError(f"not a valid duration string: {value!r}")

    seconds = 0.0
    for unit, group in zip(("y", "w", "d", "h", "m", "s", "ms"), range(2, 15, 2)):
        amount = match.group(group)
        if amount:
            seconds += int(amount) * _UNITS[unit]
    return timedelta(seconds=seconds)


def format_duration(value: timedelta) -> str:
    """Format a timedelta the way Prometheus prints durations."""
    ms = int(round(value.total_seconds() * 1000))
    if ms == 0:
        return "0s"

    out = []
    for unit in ("y", "w", "d", "h", "m", "s"):
        unit_ms = int(_UNITS[unit] * 1000)
        if ms >= unit_ms:
            out.append(f"{ms // unit_ms}{unit}")
            ms %= unit_ms
    if ms:
        out.append(f"{ms}ms")
    return "".join(out)
