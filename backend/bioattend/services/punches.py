from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from bioattend.schemas.attendance import DayRecord, ParserType, Punch
from bioattend.services.clock import minutes_to_hhmm, to_minutes


class PunchBucket:
    """Punches of one employee-day keyed by minute; repeats collapse into one."""

    def __init__(self) -> None:
        self._by_minute: dict[int, tuple[bool, set[str]]] = {}

    def __len__(self) -> int:
        return len(self._by_minute)

    def add(self, time: str, sources: Iterable[str] = (), *, merged: bool = False) -> bool:
        """
        Record a punch. Returns True when the minute was already present, in
        which case the punch is marked merged and the sources are unioned.
        Malformed times are ignored and return False.
        """
        minute = to_minutes(time)
        if minute is None:
            return False
        existing = self._by_minute.get(minute)
        if existing is None:
            self._by_minute[minute] = (merged, set(sources))
            return False
        _, known_sources = existing
        known_sources.update(sources)
        self._by_minute[minute] = (True, known_sources)
        return True

    def add_punch(self, punch: Punch) -> bool:
        return self.add(punch.time, punch.sources, merged=punch.provenance == "merged")

    def punches(self) -> list[Punch]:
        return [
            Punch(
                time=minutes_to_hhmm(minute),
                minute=minute,
                provenance="merged" if merged else "original",
                sources=sorted(sources),
            )
            for minute, (merged, sources) in sorted(self._by_minute.items())
        ]


@dataclass
class _PendingDay:
    employee_id: str
    employee_name: str
    employee_dept: str | None
    day: int
    bucket: PunchBucket = field(default_factory=PunchBucket)
    source_files: set[str] = field(default_factory=set)
    parser_types: set[ParserType] = field(default_factory=set)
    day_only: bool = True


class DayAccumulator:
    """
    Collects punches per (employee token, date) across sheets or workbooks.

    Identity fields keep the first non-empty value seen. ``collisions`` counts
    punches that landed on a minute already present for that employee-day.
    """

    def __init__(self) -> None:
        self._days: dict[tuple[str, str], _PendingDay] = {}
        self.collisions = 0

    def __len__(self) -> int:
        return len(self._days)

    def _entry(
        self,
        token: str,
        date_iso: str,
        day: int,
        employee_id: str,
        employee_name: str,
        employee_dept: str | None,
    ) -> _PendingDay:
        key = (token, date_iso)
        entry = self._days.get(key)
        if entry is None:
            entry = _PendingDay(employee_id, employee_name, employee_dept, day)
            self._days[key] = entry
            return entry
        if not entry.employee_id and employee_id:
            entry.employee_id = employee_id
        if not entry.employee_name and employee_name:
            entry.employee_name = employee_name
        if not entry.employee_dept and employee_dept:
            entry.employee_dept = employee_dept
        return entry

    def add_times(
        self,
        token: str,
        date_iso: str,
        day: int,
        times: Iterable[str],
        *,
        employee_id: str = "",
        employee_name: str = "",
        employee_dept: str | None = None,
        source_file: str | None = None,
        parser_type: ParserType,
        composed_from_day_only: bool = True,
    ) -> None:
        entry = self._entry(token, date_iso, day, employee_id, employee_name, employee_dept)
        sources = [source_file] if source_file else []
        entry.source_files.update(sources)
        entry.parser_types.add(parser_type)
        entry.day_only = entry.day_only and composed_from_day_only
        for time in times:
            if entry.bucket.add(time, sources):
                self.collisions += 1

    def add_record(self, record: DayRecord) -> None:
        entry = self._entry(
            record.employee_token,
            record.date_iso,
            record.day,
            record.employee_id,
            record.employee_name,
            record.employee_dept,
        )
        entry.source_files.update(record.source_files)
        entry.parser_types.update(record.parser_types)
        entry.day_only = entry.day_only and record.composed_from_day_only
        for punch in record.punches:
            if entry.bucket.add_punch(punch):
                self.collisions += 1

    def records(self) -> list[DayRecord]:
        records = [
            DayRecord(
                employee_id=entry.employee_id,
                employee_token=token,
                employee_name=entry.employee_name,
                employee_dept=entry.employee_dept or None,
                date_iso=date_iso,
                day=entry.day,
                punches=entry.bucket.punches(),
                source_files=sorted(entry.source_files),
                parser_types=sorted(entry.parser_types),
                composed_from_day_only=entry.day_only,
            )
            for (token, date_iso), entry in self._days.items()
        ]
        return sort_day_records(records)


def day_record_sort_key(record: DayRecord) -> tuple:
    first = record.punches[0].minute if record.punches else -1
    last = record.punches[-1].minute if record.punches else -1
    return (
        record.employee_token,
        record.date_iso,
        first,
        last,
        len(record.punches),
        record.employee_name,
    )


def sort_day_records(records: Iterable[DayRecord]) -> list[DayRecord]:
    return sorted(records, key=day_record_sort_key)
