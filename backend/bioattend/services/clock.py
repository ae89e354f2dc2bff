"""
Clock-time helpers shared by the parser and the evaluator.

All times of day are carried as zero-padded "HH:MM" strings and converted to
minute-of-day integers only where arithmetic is needed.
"""

from __future__ import annotations

import re

MINUTES_IN_DAY = 24 * 60

HHMM_REGEX = re.compile(r"^\d{2}:\d{2}$")

_CLOCK_VALUE = re.compile(r"^(\d{1,2}):(\d{2})$")

# 12/24-hour time with optional seconds and an optional AM/PM suffix
_TIME_TOKEN = re.compile(
    r"(?<!\d)(\d{1,2}):([0-5]\d)(?::[0-5]\d)?(?:\s*([AaPp])\.?\s*[Mm]\.?)?"
)

# Grid reports concatenate punches without separators: "06:3912:0012:1617:01"
_COMPACT_TIME = re.compile(r"(\d{1,2}):(\d{2})")


def to_minutes(value: object) -> int | None:
    """Return the minute of the day for "H:MM"/"HH:MM", or None if malformed."""
    if not isinstance(value, str):
        return None
    match = _CLOCK_VALUE.match(value.strip())
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return None
    return hours * 60 + minutes


def minutes_to_hhmm(value: int) -> str:
    """Format a minute offset as a clock time, wrapping past midnight."""
    normalized = value % MINUTES_IN_DAY
    return f"{normalized // 60:02d}:{normalized % 60:02d}"


def format_duration(minutes: int) -> str:
    """Format a duration as HH:MM without wrapping at 24h."""
    minutes = max(0, int(minutes))
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def normalize_hhmm(value: object) -> str | None:
    """Canonical zero-padded form of a clock value, or None."""
    minutes = to_minutes(value)
    return None if minutes is None else minutes_to_hhmm(minutes)


def _to_24h(hours: int, minutes: int, meridiem: str | None) -> str | None:
    if meridiem:
        if not 1 <= hours <= 12:
            return None
        hours %= 12
        if meridiem.lower() == "p":
            hours += 12
    elif hours > 23:
        return None
    if minutes > 59:
        return None
    return f"{hours:02d}:{minutes:02d}"


def extract_times(text: object) -> list[str]:
    """
    Pull every time-like substring out of a cell as 24-hour "HH:MM".

    Handles "8:05", "08:05:00", "8:05 PM" and "8:05p.m.". Order is preserved,
    repeated values are kept (dedup happens per minute in the punch bucket).
    """
    if text is None:
        return []
    value = str(text).strip()
    if not value:
        return []
    times: list[str] = []
    for match in _TIME_TOKEN.finditer(value):
        converted = _to_24h(int(match.group(1)), int(match.group(2)), match.group(3))
        if converted:
            times.append(converted)
    return times


def extract_grid_times(text: object) -> list[str]:
    """Split a grid-report cell that may hold several concatenated HH:MM values."""
    if text is None:
        return []
    value = str(text).strip()
    if not value:
        return []
    times: list[str] = []
    for match in _COMPACT_TIME.finditer(value):
        converted = _to_24h(int(match.group(1)), int(match.group(2)), None)
        if converted:
            times.append(converted)
    return times


def is_time_like(text: str) -> bool:
    return bool(_TIME_TOKEN.search(text))
