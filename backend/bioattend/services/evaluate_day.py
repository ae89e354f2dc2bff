"""
Day evaluator: score one employee-day of punches against one schedule.

Punches are paired into presence segments (in/out in order; an odd count
collapses to first/last; an out at or before its in runs past midnight).
The schedule variant then decides worked minutes, lateness and undertime:

  FIXED   span first..last punch minus break; late against start (+ grace)
  SHIFT   as FIXED, with the shift end unrolled past midnight for overnight
          shifts; lateness compares the first punch of the day with the start
  FLEX    without a pattern for the weekday: earliest..latest clamped to the
          bandwidth minus break, with the punitive fallback when nothing
          falls inside the bandwidth; with a pattern: presence clamped to
          the day's windows, no break deducted

A weekly exclusion either excuses the day outright or moves the start used
for lateness to ``max(start, ignore_until)``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from bioattend.schemas.attendance import AppliedExclusion, ClockSegment, DayVerdict, MinuteSegment
from bioattend.schemas.schedule import (
    FixedSchedule,
    FlexSchedule,
    Schedule,
    ShiftSchedule,
    WeeklyExclusion,
)
from bioattend.schemas.weekly_pattern import WeeklyPatternDay, WeeklyPatternWindow
from bioattend.services.clock import MINUTES_IN_DAY, format_duration, minutes_to_hhmm, to_minutes
from bioattend.services.weekly_pattern import (
    expand_windows,
    has_weekly_pattern,
    sort_weekly_pattern_windows,
    weekday_key,
)

logger = logging.getLogger(__name__)

Segment = tuple[int, int]


@dataclass
class _Score:
    worked: int = 0
    late: int = 0
    required: int = 0
    undertime: int | None = None  # None: max(0, required - worked)
    schedule_start: int | None = None
    schedule_end: int | None = None
    grace: int | None = None
    pattern_windows: list[WeeklyPatternWindow] | None = None
    pattern_presence: list[Segment] = field(default_factory=list)


def _clock(value: str) -> int:
    minutes = to_minutes(value)
    return 0 if minutes is None else minutes


def _punch_minutes(times: Iterable[object] | None) -> list[int]:
    seen: set[int] = set()
    minutes: list[int] = []
    for value in times or ():
        minute = to_minutes(value)
        if minute is None or minute in seen:
            continue
        seen.add(minute)
        minutes.append(minute)
    return minutes


def normalize_punch_times(times: Iterable[object] | None) -> list[str]:
    """Well-formed punches as "HH:MM", in the order given, without repeats."""
    return [minutes_to_hhmm(minute) for minute in _punch_minutes(times)]


def presence_segments(minutes: list[int]) -> list[Segment]:
    if len(minutes) < 2:
        return []
    if len(minutes) % 2 == 0:
        pairs = list(zip(minutes[0::2], minutes[1::2]))
    else:
        pairs = [(minutes[0], minutes[-1])]

    segments: list[Segment] = []
    for start, end in pairs:
        if end > start:
            segments.append((start, end))
            continue
        segments.append((start, MINUTES_IN_DAY))
        if end > 0:
            segments.append((0, end))
    return segments


def _score_fixed(schedule: FixedSchedule, minutes: list[int], ignore_until: int | None) -> _Score:
    start, end = _clock(schedule.start_time), _clock(schedule.end_time)
    effective = start if ignore_until is None else max(start, ignore_until)
    score = _Score(
        required=max(0, end - start - schedule.break_minutes),
        schedule_start=effective,
        schedule_end=end,
        grace=schedule.grace_minutes,
    )
    if minutes:
        first, last = minutes[0], minutes[-1]
        if last < first:
            last += MINUTES_IN_DAY
        score.worked = max(0, last - first - schedule.break_minutes)
        score.late = max(0, first - (effective + schedule.grace_minutes))
    return score


def _score_shift(schedule: ShiftSchedule, minutes: list[int], ignore_until: int | None) -> _Score:
    start, raw_end = _clock(schedule.shift_start), _clock(schedule.shift_end)
    overnight = raw_end <= start
    end = raw_end + MINUTES_IN_DAY if overnight else raw_end
    effective = start if ignore_until is None else max(start, ignore_until)
    score = _Score(
        required=max(0, end - start - schedule.break_minutes),
        schedule_start=effective,
        schedule_end=end,
        grace=schedule.grace_minutes,
    )
    if minutes:
        first, last = minutes[0], minutes[-1]
        if last < first:
            last += MINUTES_IN_DAY
        score.worked = max(0, last - first - schedule.break_minutes)
        score.late = max(0, first - (effective + schedule.grace_minutes))
    return score


def _score_flex(schedule: FlexSchedule, minutes: list[int], ignore_until: int | None) -> _Score:
    core_start, core_end = _clock(schedule.core_start), _clock(schedule.core_end)
    band_start, band_end = _clock(schedule.bandwidth_start), _clock(schedule.bandwidth_end)
    required = schedule.required_daily_minutes
    effective = core_start if ignore_until is None else max(core_start, ignore_until)
    core_span = max(0, core_end - core_start)
    score = _Score(
        required=required,
        schedule_start=effective,
        schedule_end=core_end,
        grace=schedule.grace_minutes,
    )
    if not minutes:
        return score

    start = max(min(minutes), band_start)
    end = min(max(minutes), band_end)
    if end <= start:
        # Nothing inside the bandwidth: late by the whole core and short by the whole day.
        logger.debug("FLEX presence outside bandwidth; applying full late/undertime")
        score.late = core_span
        score.undertime = required
        return score

    score.worked = max(0, end - start - schedule.break_minutes)
    threshold = effective + schedule.grace_minutes
    late = start - threshold if start > threshold else 0
    if min(end, core_end) <= max(start, core_start):
        late = max(late, core_span)
    score.late = late
    return score


def _clamp_to_windows(segments: list[Segment], windows: list[Segment]) -> list[Segment]:
    clamped: list[Segment] = []
    for seg_start, seg_end in segments:
        for win_start, win_end in windows:
            if win_start >= seg_end:
                break
            lo, hi = max(seg_start, win_start), min(seg_end, win_end)
            if hi > lo:
                clamped.append((lo, hi))
    clamped.sort()
    return clamped


def _score_pattern(
    schedule: FlexSchedule,
    day: WeeklyPatternDay,
    minutes: list[int],
    segments: list[Segment],
    ignore_until: int | None,
) -> _Score:
    windows = sort_weekly_pattern_windows(day.windows)
    first_start, first_end = _clock(windows[0].start), _clock(windows[0].end)
    effective = first_start if ignore_until is None else max(first_start, ignore_until)

    clamped = _clamp_to_windows(segments, expand_windows(windows))
    score = _Score(
        worked=sum(hi - lo for lo, hi in clamped),
        required=day.required_minutes,
        schedule_start=effective,
        schedule_end=_clock(windows[-1].end),
        grace=schedule.grace_minutes,
        pattern_windows=windows,
        pattern_presence=clamped,
    )
    if minutes:
        arrival = minutes[0]
        if first_end <= first_start and arrival <= first_end:
            arrival += MINUTES_IN_DAY
        score.late = max(0, arrival - (effective + schedule.grace_minutes))
    return score


def _score(
    date_iso: str,
    schedule: Schedule,
    minutes: list[int],
    segments: list[Segment],
    ignore_until: int | None,
) -> _Score:
    match schedule:
        case FixedSchedule():
            return _score_fixed(schedule, minutes, ignore_until)
        case ShiftSchedule():
            return _score_shift(schedule, minutes, ignore_until)
        case FlexSchedule(weekly_pattern=pattern) if has_weekly_pattern(pattern):
            day = pattern.get(weekday_key(date_iso))
            if day is not None:
                return _score_pattern(schedule, day, minutes, segments, ignore_until)
            return _score_flex(schedule, minutes, ignore_until)
        case FlexSchedule():
            return _score_flex(schedule, minutes, ignore_until)
    raise TypeError(f"Unsupported schedule: {schedule!r}")


def _applied(exclusion: WeeklyExclusion | None) -> AppliedExclusion | None:
    if exclusion is None:
        return None
    label = None
    if exclusion.mode == "IGNORE_LATE_UNTIL" and exclusion.ignore_until_minutes is not None:
        label = minutes_to_hhmm(exclusion.ignore_until_minutes)
    return AppliedExclusion(mode=exclusion.mode, ignore_until=label)


def _label(minutes: int | None) -> str | None:
    return None if minutes is None else minutes_to_hhmm(minutes)


def evaluate_day(
    date_iso: str,
    schedule: Schedule,
    *,
    punches: Iterable[object] | None = None,
    earliest: str | None = None,
    latest: str | None = None,
    weekly_exclusion: WeeklyExclusion | None = None,
) -> DayVerdict:
    """
    Verdict for one employee-day.

    ``punches`` are the day's clock times in chronological order; malformed
    and repeated entries are dropped. When none survive, ``earliest`` and
    ``latest`` stand in for them. A day with neither is ``no_punch``: worked,
    late and undertime are zero and required minutes are None, while the
    schedule diagnostics are still filled in.
    """
    applied = _applied(weekly_exclusion)
    if weekly_exclusion is not None and weekly_exclusion.mode == "EXCUSED":
        return DayVerdict(status="excused", required_minutes=0, weekly_exclusion_applied=applied)

    minutes = _punch_minutes(punches)
    if not minutes:
        minutes = _punch_minutes([earliest, latest])

    ignore_until = None
    if weekly_exclusion is not None and weekly_exclusion.mode == "IGNORE_LATE_UNTIL":
        ignore_until = weekly_exclusion.ignore_until_minutes

    segments = presence_segments(minutes)
    score = _score(date_iso, schedule, minutes, segments, ignore_until)

    verdict = DayVerdict(
        status="evaluated",
        schedule_start=_label(score.schedule_start),
        schedule_end=_label(score.schedule_end),
        schedule_grace_minutes=score.grace,
        weekly_pattern_applied=score.pattern_windows is not None,
        weekly_pattern_windows=score.pattern_windows,
        weekly_pattern_presence=[
            ClockSegment(start=minutes_to_hhmm(lo), end=minutes_to_hhmm(hi))
            for lo, hi in score.pattern_presence
        ],
        presence_segments=[MinuteSegment(start=lo, end=hi) for lo, hi in segments],
        weekly_exclusion_applied=applied,
    )
    if not minutes:
        return verdict.model_copy(update={"status": "no_punch", "required_minutes": None})

    undertime = score.undertime
    if undertime is None:
        undertime = max(0, score.required - score.worked)
    return verdict.model_copy(update={
        "worked_minutes": score.worked,
        "worked_hhmm": format_duration(score.worked),
        "is_late": score.late > 0,
        "late_minutes": score.late,
        "is_undertime": undertime > 0,
        "undertime_minutes": undertime,
        "required_minutes": score.required,
    })
