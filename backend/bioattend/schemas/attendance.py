from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from bioattend.schemas.schedule import IdentityStatus, ScheduleSource, ScheduleType, WeeklyExclusionMode
from bioattend.schemas.weekly_pattern import WeeklyPatternWindow

Provenance = Literal["original", "merged"]
ParserType = Literal["legacy", "grid-report"]
EvaluationStatus = Literal["evaluated", "no_punch", "excused"]


class Punch(BaseModel):
    model_config = ConfigDict(frozen=True)

    time: str
    minute: int = Field(ge=0, lt=24 * 60)
    provenance: Provenance = "original"  # "merged" = seen at this minute more than once
    sources: list[str] = Field(default_factory=list)


class DayRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    employee_id: str
    employee_token: str
    employee_name: str = ""
    employee_dept: str | None = None
    date_iso: str
    day: int
    punches: list[Punch] = Field(default_factory=list)
    source_files: list[str] = Field(default_factory=list)
    parser_types: list[ParserType] = Field(default_factory=list)
    composed_from_day_only: bool = False

    @property
    def earliest(self) -> str | None:
        return self.punches[0].time if self.punches else None

    @property
    def latest(self) -> str | None:
        return self.punches[-1].time if self.punches else None

    @property
    def all_times(self) -> list[str]:
        return [punch.time for punch in self.punches]


class ParsedWorkbook(BaseModel):
    file_name: str | None = None
    days: list[DayRecord] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    month_hints: list[str] = Field(default_factory=list)  # "YYYY-MM"
    date_from: str | None = None
    date_to: str | None = None
    employee_count: int = 0
    total_punches: int = 0
    parser_types: list[ParserType] = Field(default_factory=list)


class MergeResult(BaseModel):
    days: list[DayRecord] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    merged_duplicates: int = 0
    file_names: list[str] = Field(default_factory=list)
    parser_types: list[ParserType] = Field(default_factory=list)
    employee_count: int = 0
    total_punches: int = 0
    date_from: str | None = None
    date_to: str | None = None


class MinuteSegment(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: int
    end: int


class ClockSegment(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: str
    end: str


class AppliedExclusion(BaseModel):
    model_config = ConfigDict(frozen=True)

    mode: WeeklyExclusionMode
    ignore_until: str | None = None


class DayVerdict(BaseModel):
    status: EvaluationStatus
    worked_minutes: int = 0
    worked_hhmm: str = "00:00"
    is_late: bool = False
    late_minutes: int = 0
    is_undertime: bool = False
    undertime_minutes: int = 0
    required_minutes: int | None = None
    schedule_start: str | None = None
    schedule_end: str | None = None
    schedule_grace_minutes: int | None = None
    weekly_pattern_applied: bool = False
    weekly_pattern_windows: list[WeeklyPatternWindow] | None = None
    weekly_pattern_presence: list[ClockSegment] = Field(default_factory=list)
    presence_segments: list[MinuteSegment] = Field(default_factory=list)
    weekly_exclusion_applied: AppliedExclusion | None = None


class PerDayRow(DayVerdict):
    employee_id: str
    employee_token: str
    employee_name: str = ""
    employee_dept: str | None = None
    resolved_employee_id: str | None = None
    office_id: str | None = None
    office_name: str | None = None
    identity_status: IdentityStatus = "unmatched"
    date_iso: str
    day: int
    earliest: str | None = None
    latest: str | None = None
    all_times: list[str] = Field(default_factory=list)
    punches: list[Punch] = Field(default_factory=list)
    source_files: list[str] = Field(default_factory=list)
    composed_from_day_only: bool = False
    parser_types: list[ParserType] = Field(default_factory=list)
    schedule_type: ScheduleType
    schedule_source: ScheduleSource


class PerEmployeeRow(BaseModel):
    employee_token: str
    employee_id: str
    employee_name: str = ""
    employee_dept: str | None = None
    resolved_employee_id: str | None = None
    office_id: str | None = None
    office_name: str | None = None
    identity_status: IdentityStatus = "unmatched"
    days_with_logs: int = 0
    no_punch_days: int = 0
    excused_days: int = 0
    late_days: int = 0
    undertime_days: int = 0
    late_rate: float = 0.0
    undertime_rate: float = 0.0
    total_late_minutes: int = 0
    total_undertime_minutes: int = 0
    schedule_types: list[ScheduleType] = Field(default_factory=list)
    schedule_source: ScheduleSource = "NOMAPPING"


class EvaluationResult(BaseModel):
    per_day: list[PerDayRow] = Field(default_factory=list)
    per_employee: list[PerEmployeeRow] = Field(default_factory=list)
