"""Datetime and duration helpers: lax input -> strict output."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

import pendulum

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_NANOS_PER_MICRO = 1000

# Go-style durations: "48h", "1h30m", "90s", plus a "d" unit for days.
_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h|d)")
_DURATION = re.compile(rf"(?:{_DURATION_PART.pattern})+")
_DURATION_UNITS = {
    "ms": timedelta(milliseconds=1),
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
}


def parse_duration(value: str | timedelta) -> timedelta:
    """Parse a lax duration string into a timedelta.

    Accepts:
    - Go-style unit sequences: 48h, 1h30m, 2d, 1.5h, 0
    - ISO 8601 durations: P2D, PT48H, P1DT12H

    Calendar units (years, months) are rejected since they have no fixed length.
    """
    if isinstance(value, timedelta):
        return value

    value_str = value.strip()
    if value_str == "0":
        return timedelta(0)

    if _DURATION.fullmatch(value_str):
        total = timedelta(0)
        for amount, unit in _DURATION_PART.findall(value_str):
            total += _DURATION_UNITS[unit] * float(amount)
        return total

    try:
        parsed = pendulum.parse(value_str, strict=False)
    except ValueError as exc:
        raise ValueError(f"Invalid duration: {value!r}") from exc
    if not isinstance(parsed, pendulum.Duration):
        raise ValueError(f"Invalid duration: {value!r}")
    if parsed.years or parsed.months:
        raise ValueError(f"Duration must not use years or months: {value!r}")
    return timedelta(seconds=parsed.total_seconds())


def format_duration(delta: timedelta) -> str:
    """Format a timedelta the way ``parse_duration`` reads it back, e.g. ``49h0m0s``."""
    total = int(delta.total_seconds())
    sign = "-" if total < 0 else ""
    hours, rest = divmod(abs(total), 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{sign}{hours}h{minutes}m{seconds}s"


def to_unix_nanos(dt: datetime) -> int:
    """Convert an aware datetime to integer nanoseconds since the epoch."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return (dt - _EPOCH) // timedelta(microseconds=1) * _NANOS_PER_MICRO


def from_unix_nanos(nanos: int) -> datetime:
    """Convert nanoseconds since the epoch to an aware UTC datetime."""
    return _EPOCH + timedelta(microseconds=nanos // _NANOS_PER_MICRO)


def now_utc() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


def format_iso(dt: datetime) -> str:
    """Format datetime as ISO 8601 for log messages."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()
