"""
Weekly pattern model: per-weekday presence windows for FLEX schedules.

A pattern day holds 1-3 windows plus the minutes required that weekday. A
window whose end is at or before its start runs past midnight; on a virtual
48-hour line such a window starts the previous evening, which is why it sorts
ahead of same-day windows.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from datetime import date

from bioattend.core.config import settings
from bioattend.schemas.weekly_pattern import (
    WEEKDAY_KEYS,
    WeekdayKey,
    WeeklyPatternDay,
    WeeklyPatternWindow,
)
from bioattend.services.clock import HHMM_REGEX, MINUTES_IN_DAY, to_minutes

logger = logging.getLogger(__name__)

WeeklyPattern = dict[WeekdayKey, WeeklyPatternDay]


def _bounds(window: WeeklyPatternWindow) -> tuple[int, int]:
    return to_minutes(window.start) or 0, to_minutes(window.end) or 0


def _sort_key(window: WeeklyPatternWindow) -> tuple[int, int]:
    start, end = _bounds(window)
    if end <= start:
        return start - MINUTES_IN_DAY, end
    return start, end


def sort_weekly_pattern_windows(
    windows: Iterable[WeeklyPatternWindow],
) -> list[WeeklyPatternWindow]:
    """Chronological, wraparound-aware order; ties broken by end time."""
    return sorted(windows, key=_sort_key)


def expand_window(window: WeeklyPatternWindow) -> list[tuple[int, int]]:
    """Minute intervals covered by a window; overnight windows split at midnight."""
    start, end = _bounds(window)
    if start == end:
        return []
    if end > start:
        return [(start, end)]
    if end == 0:
        return [(start, MINUTES_IN_DAY)]
    return [(start, MINUTES_IN_DAY), (0, end)]


def expand_windows(windows: Iterable[WeeklyPatternWindow]) -> list[tuple[int, int]]:
    segments = [segment for window in windows for segment in expand_window(window)]
    segments.sort()
    return segments


def has_overlaps(windows: Iterable[WeeklyPatternWindow]) -> bool:
    segments = expand_windows(windows)
    for previous, current in zip(segments, segments[1:]):
        if current[0] < previous[1]:
            return True
    return False


def _field(raw: object, *names: str) -> object:
    if isinstance(raw, Mapping):
        for name in names:
            if name in raw:
                return raw[name]
        return None
    for name in names:
        if hasattr(raw, name):
            return getattr(raw, name)
    return None


def _clean_window(raw: object) -> WeeklyPatternWindow | None:
    start = _field(raw, "start")
    end = _field(raw, "end")
    if not isinstance(start, str) or not isinstance(end, str):
        return None
    if not HHMM_REGEX.match(start) or not HHMM_REGEX.match(end):
        return None
    start_min, end_min = to_minutes(start), to_minutes(end)
    if start_min is None or end_min is None or start_min == end_min:
        return None
    return WeeklyPatternWindow(start=start, end=end)


def _clean_required(raw: object) -> int | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value) or value < 0:
        return None
    return int(round(value))


def normalize_weekly_pattern(
    raw: object,
    *,
    max_windows: int | None = None,
) -> WeeklyPattern | None:
    """
    Validate a raw weekly pattern into its canonical form.

    Malformed and zero-length windows are dropped, then each weekday keeps
    its first ``max_windows`` windows (default ``settings.MAX_PATTERN_WINDOWS``)
    and sorts them. A day is dropped entirely when no window
    survives, when its windows overlap on the unrolled timeline, or when the
    required minutes are missing, non-finite or negative.

    Returns None when no weekday survives.
    """
    if raw is None:
        return None
    if not isinstance(raw, Mapping):
        logger.debug("Weekly pattern ignored: expected a mapping, got %s", type(raw).__name__)
        return None

    limit = settings.MAX_PATTERN_WINDOWS if max_windows is None else max_windows
    pattern: WeeklyPattern = {}

    for key in WEEKDAY_KEYS:
        day_raw = raw.get(key)
        if day_raw is None:
            continue

        windows_raw = _field(day_raw, "windows")
        if not isinstance(windows_raw, (list, tuple)):
            windows_raw = []
        windows = [
            window
            for window in (_clean_window(item) for item in windows_raw)
            if window is not None
        ][:limit]
        if not windows:
            logger.debug("Weekly pattern day '%s' dropped: no valid windows", key)
            continue

        required = _clean_required(_field(day_raw, "required_minutes", "requiredMinutes"))
        if required is None:
            logger.debug("Weekly pattern day '%s' dropped: invalid required minutes", key)
            continue

        windows = sort_weekly_pattern_windows(windows)
        if has_overlaps(windows):
            logger.warning("Weekly pattern day '%s' dropped: windows overlap", key)
            continue

        pattern[key] = WeeklyPatternDay(windows=windows, required_minutes=required)

    return pattern or None


def has_weekly_pattern(pattern: WeeklyPattern | None) -> bool:
    if not pattern:
        return False
    return any(day.windows for day in pattern.values())


def weekday_key(date_iso: str) -> WeekdayKey:
    return WEEKDAY_KEYS[date.fromisoformat(date_iso).weekday()]
