"""
Day evaluator tests.

Tests:
  - TestPresence         : punch normalization and in/out pairing
  - TestFixedSchedule    : span minus break, lateness, grace, overnight punches
  - TestShiftSchedule    : overnight end unroll, lateness on minute-sorted night-worker days
  - TestFlexNoPattern    : bandwidth clamp, core-hours lateness, punitive fallback
  - TestFlexWeeklyPattern: window clamping, split/overnight windows, pattern lateness
  - TestWeeklyExclusion  : EXCUSED terminal verdict, IGNORE_LATE_UNTIL threshold
  - TestNoPunch          : no_punch for every schedule type
"""

from __future__ import annotations

import pytest

from bioattend.schemas.schedule import (
    FixedSchedule,
    FlexSchedule,
    ScheduleAssignment,
    ShiftSchedule,
    WeeklyExclusion,
)
from bioattend.services.evaluate_day import evaluate_day, normalize_punch_times, presence_segments
from bioattend.services.excel_parser import parse_sheets
from bioattend.services.summary import evaluate_records


def _pattern_flex(pattern: dict, grace: int = 0, core_start: str = "10:00") -> FlexSchedule:
    return FlexSchedule(
        core_start=core_start,
        core_end="15:00",
        bandwidth_start="06:00",
        bandwidth_end="20:00",
        required_daily_minutes=480,
        break_minutes=60,
        grace_minutes=grace,
        weekly_pattern=pattern,
    )


def _presence(verdict) -> list[tuple[str, str]]:
    return [(segment.start, segment.end) for segment in verdict.weekly_pattern_presence]


# ---------------------------------------------------------------------------
# Presence
# ---------------------------------------------------------------------------


class TestPresence:
    def test_normalize_punch_times_drops_bad_and_repeated(self) -> None:
        assert normalize_punch_times(["8:05", "-", "", None, "08:05", "24:00", "17:00"]) == ["08:05", "17:00"]

    def test_normalize_keeps_supplied_order(self) -> None:
        assert normalize_punch_times(["22:00", "06:00"]) == ["22:00", "06:00"]

    def test_even_count_pairs_in_order(self) -> None:
        assert presence_segments([450, 720, 780, 1170]) == [(450, 720), (780, 1170)]

    def test_odd_count_uses_first_and_last(self) -> None:
        assert presence_segments([480, 600, 1020]) == [(480, 1020)]

    def test_single_punch_has_no_presence(self) -> None:
        assert presence_segments([480]) == []

    def test_out_before_in_splits_at_midnight(self) -> None:
        assert presence_segments([1320, 360]) == [(1320, 1440), (0, 360)]


# ---------------------------------------------------------------------------
# FIXED
# ---------------------------------------------------------------------------


class TestFixedSchedule:
    def test_late_arrival(self, fixed_schedule: FixedSchedule) -> None:
        verdict = evaluate_day("2024-07-08", fixed_schedule, punches=["08:45", "17:00"])
        assert verdict.status == "evaluated"
        assert verdict.is_late is True
        assert verdict.late_minutes == 45
        assert verdict.required_minutes == 480
        assert verdict.worked_minutes == 435
        assert verdict.worked_hhmm == "07:15"
        assert verdict.is_undertime is True
        assert verdict.undertime_minutes == 45

    def test_full_day_on_time(self, fixed_schedule: FixedSchedule) -> None:
        verdict = evaluate_day("2024-07-08", fixed_schedule, punches=["07:58", "12:00", "13:00", "17:05"])
        assert verdict.is_late is False
        assert verdict.worked_minutes == 487
        assert verdict.is_undertime is False
        assert verdict.schedule_start == "08:00"
        assert verdict.schedule_end == "17:00"
        assert verdict.schedule_grace_minutes == 0
        assert [(s.start, s.end) for s in verdict.presence_segments] == [(478, 720), (780, 1025)]

    def test_grace_period(self) -> None:
        schedule = FixedSchedule(start_time="08:00", end_time="17:00", grace_minutes=15)
        assert evaluate_day("2024-07-08", schedule, punches=["08:15", "17:00"]).is_late is False
        late = evaluate_day("2024-07-08", schedule, punches=["08:20", "17:00"])
        assert late.is_late is True
        assert late.late_minutes == 5

    def test_earliest_latest_fallback(self, fixed_schedule: FixedSchedule) -> None:
        verdict = evaluate_day("2024-07-08", fixed_schedule, earliest="08:00", latest="17:00")
        assert verdict.worked_minutes == 480
        assert verdict.is_undertime is False

    def test_single_punch_is_evaluated(self, fixed_schedule: FixedSchedule) -> None:
        verdict = evaluate_day("2024-07-08", fixed_schedule, punches=["08:30"])
        assert verdict.status == "evaluated"
        assert verdict.worked_minutes == 0
        assert verdict.late_minutes == 30
        assert verdict.undertime_minutes == 480
        assert verdict.presence_segments == []

    def test_last_punch_before_first_is_unrolled(self, fixed_schedule: FixedSchedule) -> None:
        verdict = evaluate_day("2024-07-08", fixed_schedule, punches=["20:00", "06:00"])
        assert verdict.worked_minutes == 540
        assert verdict.late_minutes == 720


# ---------------------------------------------------------------------------
# SHIFT
# ---------------------------------------------------------------------------


class TestShiftSchedule:
    def test_overnight_shift(self, night_shift: ShiftSchedule) -> None:
        verdict = evaluate_day("2024-07-08", night_shift, punches=["22:00", "06:00"])
        assert verdict.worked_minutes == 420
        assert verdict.required_minutes == 420
        assert verdict.is_late is False
        assert verdict.is_undertime is False
        assert verdict.schedule_start == "22:00"
        assert verdict.schedule_end == "06:00"

    def test_calendar_day_of_night_worker_is_not_late(self, night_shift: ShiftSchedule) -> None:
        # punch buckets order a day by minute: the morning out comes before the evening in
        verdict = evaluate_day("2024-07-08", night_shift, punches=["06:00", "22:00"])
        assert verdict.is_late is False
        assert verdict.late_minutes == 0
        assert verdict.worked_minutes == 900

    def test_late_evening_arrival(self, night_shift: ShiftSchedule) -> None:
        verdict = evaluate_day("2024-07-08", night_shift, punches=["22:20"])
        assert verdict.is_late is True
        assert verdict.late_minutes == 20

    def test_parsed_night_shift_day_is_not_late(
        self, legacy_rows: list[list[str]], night_shift: ShiftSchedule,
    ) -> None:
        legacy_rows[4][1], legacy_rows[5][1] = "22:00", "06:00"
        parsed = parse_sheets({"Sheet1": legacy_rows})
        day1 = next(r for r in parsed.days if r.employee_token == "123" and r.day == 1)
        assert day1.all_times == ["06:00", "22:00"]

        result = evaluate_records([day1], lambda record: ScheduleAssignment(schedule=night_shift))
        [row] = result.per_day
        assert row.schedule_type == "SHIFT"
        assert row.is_late is False
        assert row.late_minutes == 0

    def test_day_shift_behaves_like_fixed(self) -> None:
        schedule = ShiftSchedule(shift_start="06:00", shift_end="14:00", break_minutes=30, grace_minutes=5)
        verdict = evaluate_day("2024-07-08", schedule, punches=["06:10", "14:00"])
        assert verdict.late_minutes == 5
        assert verdict.worked_minutes == 440
        assert verdict.required_minutes == 450
        assert verdict.undertime_minutes == 10


# ---------------------------------------------------------------------------
# FLEX
# ---------------------------------------------------------------------------


class TestFlexNoPattern:
    def test_presence_within_core(self, flex_schedule: FlexSchedule) -> None:
        verdict = evaluate_day("2024-07-09", flex_schedule, earliest="09:00", latest="18:00")
        assert verdict.weekly_pattern_applied is False
        assert verdict.weekly_pattern_windows is None
        assert verdict.weekly_pattern_presence == []
        assert verdict.worked_minutes == 480
        assert verdict.is_late is False
        assert verdict.is_undertime is False

    def test_early_punches_clamped_to_bandwidth(self, flex_schedule: FlexSchedule) -> None:
        verdict = evaluate_day("2024-07-09", flex_schedule, punches=["05:00", "15:00"])
        assert verdict.worked_minutes == 480

    def test_arrival_after_core_start(self, flex_schedule: FlexSchedule) -> None:
        verdict = evaluate_day("2024-07-09", flex_schedule, punches=["10:30", "19:30"])
        assert verdict.is_late is True
        assert verdict.late_minutes == 30
        assert verdict.worked_minutes == 480

    def test_missing_core_hours_is_late_by_full_core(self, flex_schedule: FlexSchedule) -> None:
        verdict = evaluate_day("2024-07-09", flex_schedule, punches=["15:30", "19:30"])
        assert verdict.is_late is True
        assert verdict.late_minutes == 330
        assert verdict.worked_minutes == 180
        assert verdict.undertime_minutes == 300

    def test_outside_bandwidth_punitive_fallback(self, flex_schedule: FlexSchedule) -> None:
        verdict = evaluate_day("2024-07-09", flex_schedule, punches=["20:30", "22:00"])
        assert verdict.status == "evaluated"
        assert verdict.worked_minutes == 0
        assert verdict.late_minutes == 300
        assert verdict.undertime_minutes == 480

    def test_weekday_without_pattern_uses_bandwidth_rules(self) -> None:
        schedule = _pattern_flex({"mon": {"windows": [{"start": "15:00", "end": "19:00"}], "requiredMinutes": 240}})
        verdict = evaluate_day("2024-07-09", schedule, punches=["09:00", "18:00"])
        assert verdict.weekly_pattern_applied is False
        assert verdict.worked_minutes == 480


class TestFlexWeeklyPattern:
    tue_afternoon = {"tue": {"windows": [{"start": "15:00", "end": "19:00"}], "requiredMinutes": 240}}

    def test_full_window(self) -> None:
        verdict = evaluate_day("2024-09-17", _pattern_flex(self.tue_afternoon), punches=["15:00", "19:00"])
        assert verdict.weekly_pattern_applied is True
        assert verdict.worked_minutes == 240
        assert verdict.is_undertime is False
        assert verdict.required_minutes == 240

    def test_early_out(self) -> None:
        verdict = evaluate_day("2024-09-17", _pattern_flex(self.tue_afternoon), punches=["15:00", "18:00"])
        assert verdict.worked_minutes == 180
        assert verdict.is_undertime is True
        assert verdict.undertime_minutes == 60

    def test_early_punch_clamped(self) -> None:
        verdict = evaluate_day("2024-07-09", _pattern_flex(self.tue_afternoon), earliest="14:30", latest="18:00")
        assert verdict.worked_minutes == 180
        assert _presence(verdict) == [("15:00", "18:00")]
        assert verdict.is_late is False

    def test_split_windows_ignore_gap(self) -> None:
        schedule = _pattern_flex({
            "mon": {"windows": [{"start": "08:00", "end": "12:00"}, {"start": "15:00", "end": "19:00"}],
                    "requiredMinutes": 480},
        })
        verdict = evaluate_day("2024-07-08", schedule, punches=["07:30", "12:30", "14:00", "19:30"])
        assert verdict.worked_minutes == 480
        assert verdict.is_undertime is False
        assert _presence(verdict) == [("08:00", "12:00"), ("15:00", "19:00")]
        assert verdict.schedule_start == "08:00"
        assert verdict.schedule_end == "19:00"

    def test_scattered_punches(self) -> None:
        schedule = _pattern_flex({"sat": {"windows": [{"start": "07:00", "end": "19:00"}], "requiredMinutes": 720}})
        verdict = evaluate_day(
            "2024-07-06", schedule, punches=["06:30", "10:00", "11:00", "15:30", "16:00", "20:00"],
        )
        assert verdict.worked_minutes == 630
        assert verdict.undertime_minutes == 90
        assert _presence(verdict) == [("07:00", "10:00"), ("11:00", "15:30"), ("16:00", "19:00")]

    def test_overnight_window(self) -> None:
        schedule = _pattern_flex({"mon": {"windows": [{"start": "22:00", "end": "06:00"}], "requiredMinutes": 480}})
        verdict = evaluate_day("2024-07-08", schedule, earliest="21:30", latest="06:30")
        assert verdict.worked_minutes == 480
        assert verdict.is_undertime is False
        assert verdict.is_late is False
        assert _presence(verdict) == [("00:00", "06:00"), ("22:00", "00:00")]

    def test_overnight_window_missed_start(self) -> None:
        schedule = _pattern_flex({"fri": {"windows": [{"start": "22:00", "end": "06:00"}], "requiredMinutes": 240}})
        verdict = evaluate_day("2024-07-12", schedule, punches=["02:00", "06:00"])
        assert verdict.is_late is True
        assert verdict.late_minutes == 240

    def test_lateness_uses_raw_first_punch(self) -> None:
        verdict = evaluate_day("2024-07-09", _pattern_flex(self.tue_afternoon), punches=["14:54", "19:37"])
        assert verdict.is_late is False
        assert verdict.worked_minutes == 240

    @pytest.mark.parametrize("arrival, late", [("15:06", 1), ("15:05", 0)])
    def test_grace(self, arrival: str, late: int) -> None:
        verdict = evaluate_day("2024-07-09", _pattern_flex(self.tue_afternoon, grace=5), punches=[arrival, "19:00"])
        assert verdict.late_minutes == late
        assert verdict.is_late is (late > 0)
        assert verdict.schedule_grace_minutes == 5


# ---------------------------------------------------------------------------
# Exclusions and missing punches
# ---------------------------------------------------------------------------


class TestWeeklyExclusion:
    def test_excused_is_terminal(self, fixed_schedule: FixedSchedule) -> None:
        verdict = evaluate_day(
            "2024-07-08", fixed_schedule, punches=["08:45", "17:00"],
            weekly_exclusion=WeeklyExclusion(mode="EXCUSED"),
        )
        assert verdict.status == "excused"
        assert verdict.worked_minutes == 0
        assert verdict.late_minutes == 0
        assert verdict.undertime_minutes == 0
        assert verdict.is_late is False
        assert verdict.is_undertime is False
        assert verdict.weekly_exclusion_applied.mode == "EXCUSED"

    def test_ignore_late_until_moves_threshold(self) -> None:
        schedule = FixedSchedule(start_time="08:00", end_time="17:00", grace_minutes=5)
        verdict = evaluate_day(
            "2024-07-09", schedule, earliest="08:28", latest="17:00",
            weekly_exclusion=WeeklyExclusion(mode="IGNORE_LATE_UNTIL", ignore_until_minutes=510),
        )
        assert verdict.is_late is False
        assert verdict.schedule_start == "08:30"
        assert verdict.weekly_exclusion_applied.mode == "IGNORE_LATE_UNTIL"
        assert verdict.weekly_exclusion_applied.ignore_until == "08:30"
        assert verdict.required_minutes == 480

    def test_late_after_ignore_threshold(self, fixed_schedule: FixedSchedule) -> None:
        verdict = evaluate_day(
            "2024-07-10", fixed_schedule, punches=["08:45", "17:00"],
            weekly_exclusion=WeeklyExclusion(mode="IGNORE_LATE_UNTIL", ignore_until_minutes=510),
        )
        assert verdict.is_late is True
        assert verdict.late_minutes == 15

    def test_ignore_late_until_on_weekly_pattern(self) -> None:
        schedule = _pattern_flex(
            {"wed": {"windows": [{"start": "09:00", "end": "15:00"}], "requiredMinutes": 360}},
            core_start="09:00",
        )
        verdict = evaluate_day(
            "2024-07-10", schedule, punches=["09:25", "15:10"],
            weekly_exclusion=WeeklyExclusion(mode="IGNORE_LATE_UNTIL", ignore_until_minutes=570),
        )
        assert verdict.is_late is False
        assert verdict.schedule_start == "09:30"
        assert verdict.weekly_exclusion_applied.ignore_until == "09:30"

    def test_ignore_until_on_flex_core(self, flex_schedule: FlexSchedule) -> None:
        verdict = evaluate_day(
            "2024-07-09", flex_schedule, punches=["10:45", "19:45"],
            weekly_exclusion=WeeklyExclusion(mode="IGNORE_LATE_UNTIL", ignore_until_minutes=660),
        )
        assert verdict.is_late is False
        assert verdict.schedule_start == "11:00"


class TestNoPunch:
    @pytest.mark.parametrize("schedule_fixture", ["fixed_schedule", "flex_schedule", "night_shift"])
    def test_no_punch_for_every_type(self, schedule_fixture: str, request: pytest.FixtureRequest) -> None:
        schedule = request.getfixturevalue(schedule_fixture)
        verdict = evaluate_day("2024-09-07", schedule)
        assert verdict.status == "no_punch"
        assert verdict.is_late is False
        assert verdict.is_undertime is False
        assert verdict.worked_minutes == 0
        assert verdict.worked_hhmm == "00:00"
        assert verdict.late_minutes == 0
        assert verdict.undertime_minutes == 0
        assert verdict.required_minutes is None

    def test_invalid_punches_are_no_punch(self, flex_schedule: FlexSchedule) -> None:
        verdict = evaluate_day("2024-09-08", flex_schedule, punches=["-", ""], earliest=None, latest=None)
        assert verdict.status == "no_punch"

    def test_no_punch_keeps_schedule_diagnostics(self) -> None:
        schedule = FixedSchedule(start_time="08:00", end_time="17:00", grace_minutes=15)
        verdict = evaluate_day("2024-09-07", schedule)
        assert verdict.schedule_start == "08:00"
        assert verdict.schedule_grace_minutes == 15

    def test_no_punch_on_pattern_day(self) -> None:
        schedule = _pattern_flex({"thu": {"windows": [{"start": "15:00", "end": "19:00"}], "requiredMinutes": 240}})
        verdict = evaluate_day("2024-07-11", schedule)
        assert verdict.status == "no_punch"
        assert verdict.weekly_pattern_applied is True
        assert verdict.late_minutes == 0
