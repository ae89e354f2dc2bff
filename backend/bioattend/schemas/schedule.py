from datetime import date
from typing import Annotated, Literal, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from bioattend.schemas.weekly_pattern import WeekdayKey, WeeklyPatternDay
from bioattend.services.clock import normalize_hhmm
from bioattend.services.weekly_pattern import normalize_weekly_pattern


def _clock_time(value: str) -> str:
    normalized = normalize_hhmm(value)
    if normalized is None:
        raise ValueError(f"'{value}' is not a valid HH:MM time")
    return normalized


ClockTime = Annotated[str, AfterValidator(_clock_time)]

ScheduleType = Literal["FIXED", "FLEX", "SHIFT"]
ScheduleSource = Literal["EXCEPTION", "WORKSCHEDULE", "DEFAULT", "NOMAPPING"]
IdentityStatus = Literal["matched", "unmatched", "ambiguous"]
WeeklyExclusionMode = Literal["EXCUSED", "IGNORE_LATE_UNTIL"]


class FixedSchedule(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["FIXED"] = "FIXED"
    start_time: ClockTime
    end_time: ClockTime
    grace_minutes: int = Field(default=0, ge=0)
    break_minutes: int = Field(default=60, ge=0)


class FlexSchedule(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["FLEX"] = "FLEX"
    core_start: ClockTime
    core_end: ClockTime
    bandwidth_start: ClockTime
    bandwidth_end: ClockTime
    required_daily_minutes: int = Field(default=480, ge=0)
    break_minutes: int = Field(default=60, ge=0)
    grace_minutes: int = Field(default=0, ge=0)
    weekly_pattern: dict[WeekdayKey, WeeklyPatternDay] | None = None

    @field_validator("weekly_pattern", mode="before")
    @classmethod
    def canonical_pattern(cls, v: object) -> object:
        return normalize_weekly_pattern(v)


class ShiftSchedule(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["SHIFT"] = "SHIFT"
    shift_start: ClockTime
    shift_end: ClockTime  # <= shift_start means the shift runs overnight
    grace_minutes: int = Field(default=0, ge=0)
    break_minutes: int = Field(default=60, ge=0)


Schedule = Annotated[
    Union[FixedSchedule, FlexSchedule, ShiftSchedule],
    Field(discriminator="type"),
]

schedule_adapter: TypeAdapter[Schedule] = TypeAdapter(Schedule)


class WeeklyExclusion(BaseModel):
    """Per-day override handed to the evaluator."""

    model_config = ConfigDict(frozen=True)

    mode: WeeklyExclusionMode
    ignore_until_minutes: int | None = Field(default=None, ge=0, lt=24 * 60)


class WeeklyExclusionRule(BaseModel):
    """Recurring exclusion as stored by the scheduling side (weekday 1=Mon .. 7=Sun)."""

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    weekday: int = Field(ge=1, le=7)
    mode: WeeklyExclusionMode
    ignore_until: ClockTime | None = None
    effective_from: date
    effective_to: date | None = None


class ScheduleAssignment(BaseModel):
    """What the scheduling and identity collaborators know about one employee-day."""

    schedule: Schedule
    source: ScheduleSource = "DEFAULT"
    weekly_exclusion: WeeklyExclusion | None = None
    resolved_employee_id: str | None = None
    office_id: str | None = None
    office_name: str | None = None
    identity_status: IdentityStatus | None = None
