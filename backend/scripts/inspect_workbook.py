# -*- coding: utf-8 -*-
"""Show what the attendance parser sees in a biometric export.

Usage: python scripts/inspect_workbook.py <file.xlsx|file.xls> [YYYY-MM]
"""
import os
import sys
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from bioattend.services.excel_parser import (
    WorkbookParseError,
    detect_grid_employee_blocks,
    detect_grid_header_row,
    infer_month,
    parse_sheets,
    read_workbook,
)

if len(sys.argv) < 2:
    print(__doc__)
    sys.exit(2)

full = sys.argv[1]
month_hint = sys.argv[2] if len(sys.argv) > 2 else None
with open(full, "rb") as fh:
    sheets = read_workbook(fh, os.path.basename(full))

for name, rows in sheets.items():
    print(f"=== {name} ({len(rows)} rows)")
    for i, row in enumerate(rows[:15]):
        print(i, [c for c in row if c])
    header = detect_grid_header_row(rows)
    if header:
        days = sorted(header.day_columns)
        print("Grid header row:", header.header_row_index, "days:", days[0], "-", days[-1])
        print("Month near header:", infer_month(rows, header.header_row_index))
        for block in detect_grid_employee_blocks(rows, header.header_row_index):
            print("  block rows", block.start_row, "-", block.end_row, rows[block.start_row][:8])
print("---")

try:
    parsed = parse_sheets(sheets, file_name=os.path.basename(full), month_hint=month_hint)
except WorkbookParseError as exc:
    print("Parse failed:", exc)
    sys.exit(1)

print("Parser types:", parsed.parser_types, "months:", parsed.month_hints)
print("Employees:", parsed.employee_count, "punches:", parsed.total_punches)
print("Dates:", parsed.date_from, "-", parsed.date_to)
for warning in parsed.warnings:
    print("WARNING:", warning)
print()
for day in parsed.days:
    if day.punches:
        print(day.employee_token, day.employee_name, day.date_iso, day.all_times)
