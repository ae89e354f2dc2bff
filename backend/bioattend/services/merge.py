"""
Merge parsed workbooks into one set of employee-days.

Overlapping uploads (the same device exported twice, or two devices at one
office) repeat punches. Punches are unioned per (employee token, date) and
collapsed per minute; a collapsed punch is marked ``merged`` and keeps every
file it was seen in.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from bioattend.schemas.attendance import DayRecord, MergeResult, ParsedWorkbook, ParserType
from bioattend.services.punches import DayAccumulator

logger = logging.getLogger(__name__)


def merge_parsed_workbooks(workbooks: Iterable[ParsedWorkbook]) -> MergeResult:
    """
    Union the days of several parsed workbooks.

    The result does not depend on the order of ``workbooks``: days are sorted
    by token, date, earliest and latest punch, punch count and name, and
    identity fields keep the first non-empty value in that sorted order.
    """
    accumulator = DayAccumulator()
    warnings: list[str] = []
    file_names: set[str] = set()
    parser_types: set[ParserType] = set()
    count = 0

    workbooks = sorted(workbooks, key=lambda wb: wb.file_name or "")
    for workbook in workbooks:
        count += 1
        if workbook.file_name:
            file_names.add(workbook.file_name)
        parser_types.update(workbook.parser_types)
        for message in workbook.warnings:
            warnings.append(f"{workbook.file_name}: {message}" if workbook.file_name else message)

    # identity back-fill follows record order, not upload order
    records = sorted(
        (record for workbook in workbooks for record in workbook.days),
        key=_record_key,
    )
    for record in records:
        accumulator.add_record(record)

    days = accumulator.records()
    duplicates = accumulator.collisions
    if duplicates:
        warnings.append(f"Merged {duplicates} duplicate punch(es) across uploads")

    dates = [record.date_iso for record in days]
    result = MergeResult(
        days=days,
        warnings=warnings,
        merged_duplicates=duplicates,
        file_names=sorted(file_names),
        parser_types=sorted(parser_types),
        employee_count=len({record.employee_token for record in days}),
        total_punches=sum(len(record.punches) for record in days),
        date_from=min(dates) if dates else None,
        date_to=max(dates) if dates else None,
    )
    logger.info(
        "Merged %d workbook(s): days=%d, employees=%d, punches=%d, duplicates=%d",
        count, len(days), result.employee_count, result.total_punches, duplicates,
    )
    return result


def _record_key(record: DayRecord) -> tuple:
    return (
        record.employee_token,
        record.date_iso,
        [punch.minute for punch in record.punches],
        record.employee_name,
        record.employee_dept or "",
        record.source_files,
    )
