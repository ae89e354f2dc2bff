"""
Schedule payload normalization and weekly-exclusion lookup.

The scheduling side stores schedules loosely (camelCase from the web client,
snake_case from scripts, missing fields on older rows). ``normalize_schedule``
fills the documented defaults so the evaluator always receives a complete
FIXED, FLEX or SHIFT schedule.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import date

from bioattend.schemas.schedule import (
    FixedSchedule,
    FlexSchedule,
    Schedule,
    ShiftSchedule,
    WeeklyExclusion,
    WeeklyExclusionRule,
)
from bioattend.services.clock import normalize_hhmm, to_minutes

logger = logging.getLogger(__name__)

DEFAULT_SCHEDULE = FixedSchedule(start_time="08:00", end_time="17:00", grace_minutes=0, break_minutes=60)


def _get(raw: Mapping[str, object], snake: str, camel: str) -> object:
    value = raw.get(snake)
    return raw.get(camel) if value is None else value


def _clock_or(raw: Mapping[str, object], snake: str, camel: str, default: str) -> str:
    return normalize_hhmm(_get(raw, snake, camel)) or default


def _minutes_or(raw: Mapping[str, object], snake: str, camel: str, default: int) -> int:
    value = _get(raw, snake, camel)
    if value is None or isinstance(value, bool):
        return default
    try:
        minutes = int(value)
    except (TypeError, ValueError):
        return default
    return minutes if minutes >= 0 else default


def normalize_schedule(raw: Mapping[str, object] | Schedule | None) -> Schedule:
    """Complete schedule from a loose payload; unknown types fall back to FIXED."""
    if isinstance(raw, (FixedSchedule, FlexSchedule, ShiftSchedule)):
        return raw
    if not raw:
        return DEFAULT_SCHEDULE

    kind = str(raw.get("type") or "FIXED").upper()
    break_minutes = _minutes_or(raw, "break_minutes", "breakMinutes", 60)
    grace_minutes = _minutes_or(raw, "grace_minutes", "graceMinutes", 0)

    if kind == "FLEX":
        return FlexSchedule(
            core_start=_clock_or(raw, "core_start", "coreStart", "10:00"),
            core_end=_clock_or(raw, "core_end", "coreEnd", "15:00"),
            bandwidth_start=_clock_or(raw, "bandwidth_start", "bandwidthStart", "06:00"),
            bandwidth_end=_clock_or(raw, "bandwidth_end", "bandwidthEnd", "20:00"),
            required_daily_minutes=_minutes_or(raw, "required_daily_minutes", "requiredDailyMinutes", 480),
            break_minutes=break_minutes,
            grace_minutes=grace_minutes,
            weekly_pattern=_get(raw, "weekly_pattern", "weeklyPattern"),
        )
    if kind == "SHIFT":
        return ShiftSchedule(
            shift_start=_clock_or(raw, "shift_start", "shiftStart", "22:00"),
            shift_end=_clock_or(raw, "shift_end", "shiftEnd", "06:00"),
            break_minutes=break_minutes,
            grace_minutes=grace_minutes,
        )
    if kind != "FIXED":
        logger.warning("Unknown schedule type '%s'; using FIXED", kind)
    return FixedSchedule(
        start_time=_clock_or(raw, "start_time", "startTime", "08:00"),
        end_time=_clock_or(raw, "end_time", "endTime", "17:00"),
        break_minutes=break_minutes,
        grace_minutes=grace_minutes,
    )


def find_weekly_exclusion_for_date(
    rules: Iterable[WeeklyExclusionRule],
    date_iso: str,
) -> WeeklyExclusionRule | None:
    """First rule for the date's ISO weekday whose effective range contains the date."""
    day = date.fromisoformat(date_iso)
    weekday = day.isoweekday()
    for rule in rules:
        if rule.weekday != weekday:
            continue
        if day < rule.effective_from:
            continue
        if rule.effective_to is not None and day > rule.effective_to:
            continue
        return rule
    return None


def to_weekly_exclusion(rule: WeeklyExclusionRule | None) -> WeeklyExclusion | None:
    if rule is None:
        return None
    ignore = to_minutes(rule.ignore_until) if rule.mode == "IGNORE_LATE_UNTIL" else None
    return WeeklyExclusion(mode=rule.mode, ignore_until_minutes=ignore)
