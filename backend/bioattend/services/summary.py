"""
Per-day row assembly, per-employee aggregation and the evaluation driver.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from bioattend.schemas.attendance import (
    DayRecord,
    DayVerdict,
    EvaluationResult,
    PerDayRow,
    PerEmployeeRow,
)
from bioattend.schemas.schedule import IdentityStatus, ScheduleAssignment, ScheduleSource, ScheduleType
from bioattend.services.evaluate_day import evaluate_day
from bioattend.services.schedules import DEFAULT_SCHEDULE

logger = logging.getLogger(__name__)

ScheduleAssigner = Callable[[DayRecord], ScheduleAssignment | None]

SOURCE_PRIORITY: tuple[ScheduleSource, ...] = ("EXCEPTION", "WORKSCHEDULE", "DEFAULT", "NOMAPPING")

UNMAPPED = ScheduleAssignment(schedule=DEFAULT_SCHEDULE, source="NOMAPPING", identity_status="unmatched")


def build_per_day_row(
    record: DayRecord,
    verdict: DayVerdict,
    assignment: ScheduleAssignment,
) -> PerDayRow:
    identity = assignment.identity_status
    if identity is None:
        identity = "matched" if assignment.resolved_employee_id else "unmatched"
    return PerDayRow(
        **verdict.model_dump(),
        employee_id=record.employee_id,
        employee_token=record.employee_token,
        employee_name=record.employee_name,
        employee_dept=record.employee_dept,
        resolved_employee_id=assignment.resolved_employee_id,
        office_id=assignment.office_id,
        office_name=assignment.office_name,
        identity_status=identity,
        date_iso=record.date_iso,
        day=record.day,
        earliest=record.earliest,
        latest=record.latest,
        all_times=record.all_times,
        punches=record.punches,
        source_files=record.source_files,
        composed_from_day_only=record.composed_from_day_only,
        parser_types=record.parser_types,
        schedule_type=assignment.schedule.type,
        schedule_source=assignment.source,
    )


def sort_per_day_rows(rows: Iterable[PerDayRow]) -> list[PerDayRow]:
    return sorted(rows, key=lambda row: (row.employee_token, row.date_iso, row.employee_name))


@dataclass
class _EmployeeTotals:
    first: PerDayRow
    identity_row: PerDayRow
    name: str = ""
    dept: str | None = None
    identity: IdentityStatus = "unmatched"
    days_with_logs: int = 0
    no_punch_days: int = 0
    excused_days: int = 0
    late_days: int = 0
    undertime_days: int = 0
    late_minutes: int = 0
    undertime_minutes: int = 0
    types: set[ScheduleType] = field(default_factory=set)
    sources: set[ScheduleSource] = field(default_factory=set)
    pattern_used: bool = False


def _rate(count: int, days: int) -> float:
    return round(count / days * 100, 1) if days else 0.0


def _representative_source(totals: _EmployeeTotals) -> ScheduleSource:
    source = next((s for s in SOURCE_PRIORITY if s in totals.sources), "NOMAPPING")
    if totals.pattern_used and source in ("DEFAULT", "NOMAPPING"):
        return "WORKSCHEDULE"
    return source


def summarize_per_employee(rows: Iterable[PerDayRow]) -> list[PerEmployeeRow]:
    """
    Roll per-day rows up per employee token.

    Only ``evaluated`` days count towards days with logs, late/undertime days
    and minute totals; ``no_punch`` and ``excused`` days are counted apart.
    Rates are percentages of days with logs, rounded to one decimal. The
    resolved ID and office come from the first row reported ``matched``, or
    from the first row when none is.
    """
    by_token: dict[str, _EmployeeTotals] = {}
    for row in rows:
        totals = by_token.get(row.employee_token)
        if totals is None:
            totals = _EmployeeTotals(
                first=row,
                identity_row=row,
                name=row.employee_name,
                dept=row.employee_dept,
                identity=row.identity_status,
            )
            by_token[row.employee_token] = totals
        else:
            totals.name = totals.name or row.employee_name
            totals.dept = totals.dept or row.employee_dept
            if row.identity_status == "matched" and totals.identity != "matched":
                totals.identity = "matched"
                totals.identity_row = row

        totals.types.add(row.schedule_type)
        totals.sources.add(row.schedule_source)
        totals.pattern_used = totals.pattern_used or row.weekly_pattern_applied

        if row.status == "no_punch":
            totals.no_punch_days += 1
            continue
        if row.status == "excused":
            totals.excused_days += 1
            continue
        totals.days_with_logs += 1
        if row.is_late:
            totals.late_days += 1
            totals.late_minutes += row.late_minutes
        if row.is_undertime:
            totals.undertime_days += 1
            totals.undertime_minutes += row.undertime_minutes

    summaries: list[PerEmployeeRow] = []
    for token in sorted(by_token):
        totals = by_token[token]
        first, resolved = totals.first, totals.identity_row
        summaries.append(PerEmployeeRow(
            employee_token=token,
            employee_id=first.employee_id,
            employee_name=totals.name,
            employee_dept=totals.dept,
            resolved_employee_id=resolved.resolved_employee_id,
            office_id=resolved.office_id,
            office_name=resolved.office_name,
            identity_status=totals.identity,
            days_with_logs=totals.days_with_logs,
            no_punch_days=totals.no_punch_days,
            excused_days=totals.excused_days,
            late_days=totals.late_days,
            undertime_days=totals.undertime_days,
            late_rate=_rate(totals.late_days, totals.days_with_logs),
            undertime_rate=_rate(totals.undertime_days, totals.days_with_logs),
            total_late_minutes=totals.late_minutes,
            total_undertime_minutes=totals.undertime_minutes,
            schedule_types=sorted(totals.types),
            schedule_source=_representative_source(totals),
        ))
    return summaries


def evaluate_records(records: Iterable[DayRecord], assign: ScheduleAssigner) -> EvaluationResult:
    """
    Evaluate every record against the schedule ``assign`` returns for it.

    ``assign`` stands in for the scheduling and identity collaborators; a None
    answer evaluates the day against the default FIXED schedule as NOMAPPING.
    """
    per_day: list[PerDayRow] = []
    unmapped = 0
    for record in records:
        assignment = assign(record)
        if assignment is None:
            assignment = UNMAPPED
            unmapped += 1
        verdict = evaluate_day(
            record.date_iso,
            assignment.schedule,
            punches=record.all_times,
            weekly_exclusion=assignment.weekly_exclusion,
        )
        per_day.append(build_per_day_row(record, verdict, assignment))

    per_day = sort_per_day_rows(per_day)
    per_employee = summarize_per_employee(per_day)
    logger.info(
        "Evaluated %d day(s) for %d employee(s); %d without a schedule mapping",
        len(per_day), len(per_employee), unmapped,
    )
    return EvaluationResult(per_day=per_day, per_employee=per_employee)
