"""
Excel parser for biometric attendance exports.

Two physical layouts are recognised:

  legacy       per-employee blocks: "User ID:" / "Name:" / "Dept:" labels above
               a header row whose columns 1, 2, 3 read "1", "2", "3"; each
               following row holds punch times under the day columns.
  grid-report  "Att. Log Report" / "Attendance Record Report": one day-number
               header row near the top (>= 20 consecutive days), then an
               "ID:" label row per employee with the punches of every day
               concatenated in the day cells below ("06:3912:0012:1617:01").

Only the day of the month appears in either layout; the month comes from the
caller, from dates printed around the header, or from the file name.
"""

from __future__ import annotations

import io
import logging
import re
from collections import Counter
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from typing import IO

import pandas as pd
from pydantic import BaseModel, ConfigDict

from bioattend.core.config import settings
from bioattend.schemas.attendance import ParsedWorkbook, ParserType
from bioattend.services.clock import extract_grid_times, extract_times, is_time_like
from bioattend.services.grid_search import Rows, cell, find_cells, search_neighborhood
from bioattend.services.punches import DayAccumulator
from bioattend.services.tokens import normalize_biometric_token_or_none

logger = logging.getLogger(__name__)


class WorkbookParseError(ValueError):
    """The workbook could not be turned into attendance days."""


class NoAttendanceSectionError(WorkbookParseError):
    """No sheet contains a recognisable attendance block."""


class MonthNotDetectedError(WorkbookParseError):
    """A section was found but its month could not be determined."""


GRID_SHEET_NAMES: frozenset[str] = frozenset({
    "att. log report",
    "att log report",
    "attendance record report",
})

_OLE_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"

_ID_LABEL = re.compile(r"^(?:user\s*)?id\s*:", re.IGNORECASE)
_USER_ID_LABEL = re.compile(r"^user\s*id\s*:", re.IGNORECASE)
_NAME_LABEL = re.compile(r"^name\s*:", re.IGNORECASE)
_DEPT_LABEL = re.compile(r"^dep(?:t|artment)\.?\s*:", re.IGNORECASE)
# Any other short "Word:" caption ("Date:", "Tabulation:")
_GENERIC_LABEL = re.compile(r"^[A-Za-z][A-Za-z .]{0,30}:\s*$")

_DAY_LABEL = re.compile(r"^\d{1,2}$")
_DIGITS = re.compile(r"^\d+$")
_FLOAT_INT = re.compile(r"^(\d+)\.0+$")

MONTH_NAMES: dict[str, int] = {
    "january": 1, "february": 2, "march": 3, "april": 4, "may": 5, "june": 6,
    "july": 7, "august": 8, "september": 9, "october": 10, "november": 11,
    "december": 12,
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "jun": 6, "jul": 7, "aug": 8,
    "sep": 9, "sept": 9, "oct": 10, "nov": 11, "dec": 12,
}
_MONTH_ALT = "|".join(sorted(MONTH_NAMES, key=len, reverse=True))

_ISO_DATE = re.compile(r"(?<!\d)(\d{4})[-/](\d{1,2})[-/](\d{1,2})(?!\d)")
_US_DATE = re.compile(r"(?<!\d)(\d{1,2})/(\d{1,2})/(\d{4})(?!\d)")
# "March 2024", "Mar. 5, 2024"
_NAMED_MONTH = re.compile(
    rf"\b({_MONTH_ALT})\.?\s+(?:(\d{{1,2}}),?\s+)?(\d{{4}})(?!\d)",
    re.IGNORECASE,
)

_FILE_NAMED_MONTH = re.compile(rf"(?<![a-z])({_MONTH_ALT})[^0-9a-z]*(20\d{{2}})", re.IGNORECASE)
_FILE_YEAR_MONTH = re.compile(r"(?<!\d)(20\d{2})[-_. ]?(0[1-9]|1[0-2])(?!\d)")
_FILE_MONTH_YEAR = re.compile(r"(?<!\d)(0[1-9]|1[0-2])[-_. ]?(20\d{2})(?!\d)")
_MONTH_HINT = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------


def _clean_cell(value: object) -> str:
    """Normalize pandas NaN placeholders to empty string, "7.0" to "7"."""
    text = str(value).strip()
    if text.lower() in ("nan", "none", "nat"):
        return ""
    match = _FLOAT_INT.match(text)
    return match.group(1) if match else text


def _sniff_engine(data: bytes, file_name: str | None) -> str:
    if data[:2] == b"PK":
        return "openpyxl"
    if data[:8] == _OLE_MAGIC:
        return "xlrd"
    if file_name and file_name.lower().endswith(".xls"):
        return "xlrd"
    return "openpyxl"


def read_workbook(source: bytes | IO[bytes], file_name: str | None = None) -> dict[str, list[list[str]]]:
    """Read every sheet as rows of cleaned strings, keyed by sheet name."""
    data = source if isinstance(source, (bytes, bytearray)) else source.read()
    engine = _sniff_engine(bytes(data[:8]), file_name)
    try:
        frames = pd.read_excel(
            io.BytesIO(data), sheet_name=None, header=None, dtype=str, engine=engine,
        )
    except Exception as exc:
        raise WorkbookParseError(
            f"Could not open {file_name or 'workbook'}: {exc}"
        ) from exc

    sheets: dict[str, list[list[str]]] = {}
    for name, df in frames.items():
        df = df.fillna("")
        sheets[str(name)] = [
            [_clean_cell(value) for value in row]
            for row in df.itertuples(index=False, name=None)
        ]
        logger.debug("Sheet '%s': %d rows (engine=%s)", name, len(sheets[str(name)]), engine)
    return sheets


# ---------------------------------------------------------------------------
# Labels
# ---------------------------------------------------------------------------


def _is_label(value: str) -> bool:
    return bool(
        _ID_LABEL.match(value)
        or _NAME_LABEL.match(value)
        or _DEPT_LABEL.match(value)
        or _GENERIC_LABEL.match(value)
    )


def _inline_value(label_cell: str) -> str:
    _, _, rest = label_cell.partition(":")
    return rest.strip()


def _is_text_value(value: str) -> bool:
    return bool(value) and not _is_label(value) and not is_time_like(value)


def _label_value(
    rows: Rows,
    row: int,
    col: int,
    accept: Callable[[str], bool],
    *,
    right: int,
    down: int = 0,
) -> str:
    """Value belonging to the label at (row, col): inline, to the right, or below."""
    inline = _inline_value(cell(rows, row, col))
    if inline and accept(inline):
        return inline
    hit = search_neighborhood(rows, row, col, accept, down=down, right=right, stop=_is_label)
    return hit.value if hit else ""


# ---------------------------------------------------------------------------
# Month inference
# ---------------------------------------------------------------------------


def _valid_month(year: int, month: int) -> bool:
    return 1900 <= year <= 2100 and 1 <= month <= 12


def _month_candidates(text: str) -> list[tuple[int, int]]:
    found: list[tuple[int, int]] = []
    for match in _ISO_DATE.finditer(text):
        found.append((int(match.group(1)), int(match.group(2))))
    for match in _US_DATE.finditer(text):
        found.append((int(match.group(3)), int(match.group(1))))
    for match in _NAMED_MONTH.finditer(text):
        found.append((int(match.group(3)), MONTH_NAMES[match.group(1).lower()]))
    return [candidate for candidate in found if _valid_month(*candidate)]


def infer_month(
    rows: Rows,
    header_row: int,
    *,
    rows_above: int | None = None,
    rows_below: int | None = None,
) -> str | None:
    """
    Most frequent (year, month) printed around a day header, as "YYYY-MM".

    Ties go to the earliest month. Returns None when nothing date-like is found.
    """
    above = settings.MONTH_SCAN_ROWS_ABOVE if rows_above is None else rows_above
    below = settings.MONTH_SCAN_ROWS_BELOW if rows_below is None else rows_below

    tally: Counter[tuple[int, int]] = Counter()
    for r in range(max(0, header_row - above), min(len(rows), header_row + below + 1)):
        for value in rows[r]:
            if value:
                tally.update(_month_candidates(value))
    if not tally:
        return None
    year, month = min(tally, key=lambda ym: (-tally[ym], ym))
    return f"{year:04d}-{month:02d}"


def month_from_file_name(file_name: str | None) -> str | None:
    if not file_name:
        return None
    match = _FILE_NAMED_MONTH.search(file_name)
    if match:
        return f"{match.group(2)}-{MONTH_NAMES[match.group(1).lower()]:02d}"
    match = _FILE_YEAR_MONTH.search(file_name)
    if match:
        return f"{match.group(1)}-{match.group(2)}"
    match = _FILE_MONTH_YEAR.search(file_name)
    if match:
        return f"{match.group(2)}-{match.group(1)}"
    return None


# ---------------------------------------------------------------------------
# Grid-report layout
# ---------------------------------------------------------------------------


class GridHeader(BaseModel):
    model_config = ConfigDict(frozen=True)

    header_row_index: int
    day_columns: dict[int, int]  # day of month -> column


class GridEmployeeBlock(BaseModel):
    model_config = ConfigDict(frozen=True)

    start_row: int
    end_row: int  # inclusive
    label_col: int


def _day_run(row: Sequence[str], start: int) -> dict[int, int]:
    days: dict[int, int] = {}
    expected = 1
    col = start
    while col < len(row) and expected <= 31:
        value = row[col]
        if not _DAY_LABEL.match(value) or int(value) != expected:
            break
        days[expected] = col
        expected += 1
        col += 1
    return days


def detect_grid_header_row(
    rows: Rows,
    *,
    scan_rows: int | None = None,
    min_run: int | None = None,
) -> GridHeader | None:
    """First row near the top carrying a run of consecutive day labels 1, 2, 3, ..."""
    limit = settings.GRID_HEADER_SCAN_ROWS if scan_rows is None else scan_rows
    needed = settings.GRID_MIN_DAY_RUN if min_run is None else min_run
    for r in range(min(limit, len(rows))):
        row = rows[r]
        for c, value in enumerate(row):
            if value != "1" and value != "01":
                continue
            days = _day_run(row, c)
            if len(days) >= needed:
                return GridHeader(header_row_index=r, day_columns=days)
    return None


def detect_grid_employee_blocks(rows: Rows, header_row_index: int) -> list[GridEmployeeBlock]:
    """One block per row holding an "ID:" label below the header."""
    hits = find_cells(rows, _ID_LABEL.match, row_range=range(header_row_index + 1, len(rows)))
    starts: list[tuple[int, int]] = []
    for hit in hits:
        if not starts or starts[-1][0] != hit.row:
            starts.append((hit.row, hit.col))

    blocks: list[GridEmployeeBlock] = []
    for index, (start, col) in enumerate(starts):
        end = starts[index + 1][0] - 1 if index + 1 < len(starts) else len(rows) - 1
        blocks.append(GridEmployeeBlock(start_row=start, end_row=end, label_col=col))
    return blocks


def _grid_identity(rows: Rows, block: GridEmployeeBlock) -> tuple[str, str, str]:
    min_digits = settings.GRID_ID_MIN_DIGITS
    reach = min(settings.GRID_LABEL_ROW_TOLERANCE, block.end_row - block.start_row)
    label_rows = range(block.start_row, block.start_row + reach + 1)

    def is_id(value: str) -> bool:
        return bool(_DIGITS.match(value)) and len(value) >= min_digits

    cols = settings.GRID_LABEL_COL_TOLERANCE
    employee_id = _label_value(rows, block.start_row, block.label_col, is_id, right=cols, down=reach)

    def labelled(pattern: re.Pattern) -> str:
        hits = find_cells(rows, pattern.match, row_range=label_rows)
        if not hits:
            return ""
        hit = hits[0]
        return _label_value(
            rows, hit.row, hit.col, _is_text_value,
            right=cols,
            down=max(0, block.start_row + reach - hit.row),
        )

    return employee_id, labelled(_NAME_LABEL), labelled(_DEPT_LABEL)


# ---------------------------------------------------------------------------
# Legacy layout
# ---------------------------------------------------------------------------


def _is_legacy_header(row: Sequence[str]) -> bool:
    return (
        len(row) > 3
        and row[1] == "1"
        and row[2] == "2"
        and row[3] == "3"
    )


def _row_has_user_id(row: Sequence[str]) -> bool:
    return any(_USER_ID_LABEL.match(value) for value in row if value)


def _legacy_identity(rows: Rows, header_row: int, floor: int) -> tuple[str, str, str]:
    """Nearest "User ID:" / "Name:" / "Dept:" values above the header, never above ``floor``."""
    lowest = max(floor, header_row - settings.LEGACY_LABEL_SCAN_ROWS)
    upward = range(header_row - 1, lowest - 1, -1)

    def nearest(pattern: re.Pattern, accept: Callable[[str], bool]) -> str:
        for hit in find_cells(rows, pattern.match, row_range=upward):
            value = _label_value(rows, hit.row, hit.col, accept, right=settings.LABEL_VALUE_SCAN_COLS)
            if value:
                return value
        return ""

    return (
        nearest(_USER_ID_LABEL, _is_text_value),
        nearest(_NAME_LABEL, _is_text_value),
        nearest(_DEPT_LABEL, _is_text_value),
    )


# ---------------------------------------------------------------------------
# Sheet parsing
# ---------------------------------------------------------------------------


@dataclass
class _SheetSection:
    parser_type: ParserType
    header_row: int
    start_row: int
    end_row: int  # inclusive
    day_columns: dict[int, int]
    employee_id: str
    employee_name: str
    employee_dept: str
    extract: Callable[[object], list[str]]


class _ParseState:
    def __init__(self, file_name: str | None) -> None:
        self.file_name = file_name
        self.days = DayAccumulator()
        self.warnings: list[str] = []
        self.months: set[str] = set()
        self.parser_types: set[ParserType] = set()
        self.invalid_dates: list[str] = []
        self.empty_sections: list[str] = []
        self.sections = 0


def _grid_sections(rows: Rows) -> list[_SheetSection]:
    header = detect_grid_header_row(rows)
    if header is None:
        return []
    sections: list[_SheetSection] = []
    for block in detect_grid_employee_blocks(rows, header.header_row_index):
        employee_id, name, dept = _grid_identity(rows, block)
        sections.append(_SheetSection(
            parser_type="grid-report",
            header_row=header.header_row_index,
            start_row=block.start_row,
            end_row=block.end_row,
            day_columns=header.day_columns,
            employee_id=employee_id,
            employee_name=name,
            employee_dept=dept,
            extract=extract_grid_times,
        ))
    return sections


def _legacy_sections(rows: Rows) -> list[_SheetSection]:
    sections: list[_SheetSection] = []
    floor = 0
    header_rows = [r for r, row in enumerate(rows) if _is_legacy_header(row)]
    for r in header_rows:
        end = len(rows) - 1
        for rr in range(r + 1, len(rows)):
            if _is_legacy_header(rows[rr]) or _row_has_user_id(rows[rr]):
                end = rr - 1
                break
        employee_id, name, dept = _legacy_identity(rows, r, floor)
        sections.append(_SheetSection(
            parser_type="legacy",
            header_row=r,
            start_row=r + 1,
            end_row=end,
            day_columns=_day_run(rows[r], 1),
            employee_id=employee_id,
            employee_name=name,
            employee_dept=dept,
            extract=extract_times,
        ))
        floor = end + 1
    return sections


def _detect_sections(sheet_name: str, rows: Rows) -> list[_SheetSection]:
    has_legacy_header = any(_is_legacy_header(row) for row in rows)
    if has_legacy_header and any(_row_has_user_id(row) for row in rows):
        return _legacy_sections(rows)
    if sheet_name.strip().lower() in GRID_SHEET_NAMES or detect_grid_header_row(rows):
        sections = _grid_sections(rows)
        if sections:
            return sections
    if has_legacy_header:
        return _legacy_sections(rows)
    return []


def _resolve_month(
    rows: Rows,
    section: _SheetSection,
    month_hint: str | None,
    previous: str | None,
    file_name: str | None,
) -> str | None:
    if month_hint:
        return month_hint
    return (
        infer_month(rows, section.header_row)
        or previous
        or month_from_file_name(file_name)
    )


def _emit_section(state: _ParseState, rows: Rows, section: _SheetSection, month: str) -> None:
    token = (
        normalize_biometric_token_or_none(section.employee_id)
        or normalize_biometric_token_or_none(section.employee_name)
    )
    if token is None:
        state.warnings.append(
            f"Skipped attendance section at row {section.start_row + 1}: no employee ID or name"
        )
        logger.warning("Section at row %d skipped: no employee ID or name", section.start_row + 1)
        return
    if not section.employee_id:
        logger.debug("Section '%s' has no ID; keyed by name", section.employee_name)

    punches = 0
    for day, col in section.day_columns.items():
        date_iso = f"{month}-{day:02d}"
        try:
            date.fromisoformat(date_iso)
        except ValueError:
            state.invalid_dates.append(f"{date_iso} ({token})")
            continue
        times: list[str] = []
        for r in range(section.start_row, section.end_row + 1):
            times.extend(section.extract(cell(rows, r, col)))
        punches += len(times)
        state.days.add_times(
            token, date_iso, day, times,
            employee_id=section.employee_id,
            employee_name=section.employee_name,
            employee_dept=section.employee_dept or None,
            source_file=state.file_name,
            parser_type=section.parser_type,
        )

    if section.parser_type == "grid-report" and punches == 0:
        state.empty_sections.append(section.employee_name or token)
    logger.debug(
        "Section %s (%s) rows %d-%d: %d punches",
        token, section.parser_type, section.start_row + 1, section.end_row + 1, punches,
    )


def _sample(values: list[str]) -> str:
    limit = settings.WARNING_SAMPLE_LIMIT
    shown = ", ".join(values[:limit])
    if len(values) > limit:
        shown += ", ..."
    return shown


def parse_sheets(
    sheets: Mapping[str, Rows],
    file_name: str | None = None,
    month_hint: str | None = None,
) -> ParsedWorkbook:
    """
    Parse sheets already held in memory as rows of cleaned strings.

    Raises NoAttendanceSectionError when no sheet has an attendance section and
    MonthNotDetectedError when a section's month cannot be determined.
    """
    if month_hint is not None:
        month_hint = month_hint.strip()
        if not _MONTH_HINT.match(month_hint):
            raise WorkbookParseError(f"month_hint must look like YYYY-MM, got '{month_hint}'")

    state = _ParseState(file_name)

    for sheet_name, rows in sheets.items():
        sections = _detect_sections(sheet_name, rows)
        if not sections:
            logger.debug("Sheet '%s': no attendance section", sheet_name)
            continue
        logger.debug("Sheet '%s': %d %s section(s)", sheet_name, len(sections), sections[0].parser_type)

        previous: str | None = None
        for section in sections:
            month = _resolve_month(rows, section, month_hint, previous, file_name)
            if month is None:
                raise MonthNotDetectedError(
                    f"Could not determine the month for sheet '{sheet_name}' "
                    f"of {file_name or 'workbook'}; pass month_hint"
                )
            previous = month
            state.months.add(month)
            state.parser_types.add(section.parser_type)
            state.sections += 1
            _emit_section(state, rows, section, month)

    if state.sections == 0:
        raise NoAttendanceSectionError(
            f"No attendance section found in {file_name or 'workbook'}"
        )

    if state.invalid_dates:
        state.warnings.append(
            f"Dropped {len(state.invalid_dates)} invalid calendar date(s): {_sample(state.invalid_dates)}"
        )
        logger.warning("Dropped %d invalid calendar dates", len(state.invalid_dates))
    if state.empty_sections:
        state.warnings.append(
            f"{len(state.empty_sections)} empty attendance section(s): {_sample(state.empty_sections)}"
        )

    days = state.days.records()
    dates = [record.date_iso for record in days]
    result = ParsedWorkbook(
        file_name=file_name,
        days=days,
        warnings=state.warnings,
        month_hints=sorted(state.months),
        date_from=min(dates) if dates else None,
        date_to=max(dates) if dates else None,
        employee_count=len({record.employee_token for record in days}),
        total_punches=sum(len(record.punches) for record in days),
        parser_types=sorted(state.parser_types),
    )
    logger.info(
        "Parsed %s: sections=%d, employees=%d, days=%d, punches=%d, warnings=%d",
        file_name or "workbook", state.sections, result.employee_count,
        len(days), result.total_punches, len(result.warnings),
    )
    return result


def parse_workbook(
    source: bytes | IO[bytes],
    file_name: str | None = None,
    month_hint: str | None = None,
) -> ParsedWorkbook:
    """Read an .xlsx/.xls export and parse it; see ``parse_sheets``."""
    return parse_sheets(read_workbook(source, file_name), file_name=file_name, month_hint=month_hint)
