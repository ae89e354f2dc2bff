"""
conftest.py — shared fixtures for the attendance core tests.

Strategy:
- Fixture workbooks are built in memory with openpyxl and handed to the parser
  as bytes, the same way an upload would arrive.
- ``grid_rows`` is the "Attendance Record Report" sample as plain rows, for the
  detection helpers that work on already-read sheets.
- Schedule fixtures are the stock schedules the evaluator tests lean on: a FIXED
  08:00-17:00 day, a FLEX day with 10:00-15:00 core hours and a 22:00-06:00 shift.
"""

from __future__ import annotations

import io

import openpyxl
import pytest

from bioattend.schemas.schedule import FixedSchedule, FlexSchedule, ShiftSchedule

GRID_WIDTH = 30


# ---------------------------------------------------------------------------
# Workbook helpers
# ---------------------------------------------------------------------------


def _workbook_bytes(sheets: dict[str, list[list[str]]]) -> bytes:
    wb = openpyxl.Workbook()
    wb.remove(wb.active)
    for title, rows in sheets.items():
        ws = wb.create_sheet(title)
        for row in rows:
            ws.append([value if value != "" else None for value in row])
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def _pad(row: list[str], width: int = GRID_WIDTH) -> list[str]:
    return row + [""] * (width - len(row))


def _build_grid_rows() -> list[list[str]]:
    """
    One employee (ID 2050025, RAMON REYES, RHU 1) on a 20-day grid header.
    Day 1 has 06:39 and 12:00 (second row), day 2 has 17:05.
    """
    header = [""] * 10 + [str(day) for day in range(1, 21)]
    block_row1 = _pad(["ID:", "2050025", "", "Name:", "RAMON REYES", "", "Dept:", "RHU 1", "", "",
                       "06:39", "17:05"])
    block_row2 = [""] * GRID_WIDTH
    block_row2[10] = "12:00"
    return [
        _pad(["", "", "", "", "March 2024"]),
        [""] * GRID_WIDTH,
        header,
        block_row1,
        block_row2,
    ]


def _build_legacy_rows() -> list[list[str]]:
    """
    Two employees in the legacy per-employee layout, March 2024, 5 day columns.

    123 / Juan Dela Cruz: day 1 08:05-17:10, day 3 07:55 AM-5:02 PM
    456 / Maria Santos  : day 2 09:00-18:00
    """
    header = ["", "1", "2", "3", "4", "5"]
    return [
        ["Attendance Record Report"],
        ["Att. Time", "2024-03-01 ~ 2024-03-31"],
        ["User ID:", "123", "", "Name:", "Juan Dela Cruz", "", "Dept:", "Admin"],
        header,
        ["", "08:05", "", "07:55 AM", "", ""],
        ["", "17:10", "", "5:02 PM", "", ""],
        ["User ID:", "456", "", "Name:", "Maria Santos", "", "Dept:", "Records"],
        header,
        ["", "", "09:00", "", "", ""],
        ["", "", "18:00", "", "", ""],
    ]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def grid_rows() -> list[list[str]]:
    return _build_grid_rows()


@pytest.fixture
def grid_workbook_bytes() -> bytes:
    return _workbook_bytes({"Attendance Record Report": _build_grid_rows()})


@pytest.fixture
def legacy_rows() -> list[list[str]]:
    return _build_legacy_rows()


@pytest.fixture
def legacy_workbook_bytes() -> bytes:
    return _workbook_bytes({"Att.log": _build_legacy_rows()})


@pytest.fixture
def make_workbook():
    """Factory: sheets dict -> .xlsx bytes."""
    return _workbook_bytes


@pytest.fixture
def fixed_schedule() -> FixedSchedule:
    return FixedSchedule(start_time="08:00", end_time="17:00", grace_minutes=0, break_minutes=60)


@pytest.fixture
def flex_schedule() -> FlexSchedule:
    return FlexSchedule(
        core_start="10:00",
        core_end="15:00",
        bandwidth_start="06:00",
        bandwidth_end="20:00",
        required_daily_minutes=480,
        break_minutes=60,
    )


@pytest.fixture
def night_shift() -> ShiftSchedule:
    return ShiftSchedule(shift_start="22:00", shift_end="06:00", break_minutes=60)
