"""
Bounded neighbourhood search over a sheet held as rows of cleaned strings.

Exports put a label ("ID:", "Name:") in one cell and its value somewhere near it:
inline, a few merged cells to the right, or on the row below. Both layouts use
the same primitive and only differ in the direction and reach of the search.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence

from pydantic import BaseModel, ConfigDict

Rows = Sequence[Sequence[str]]


class CellHit(BaseModel):
    model_config = ConfigDict(frozen=True)

    row: int
    col: int
    value: str


def cell(rows: Rows, row: int, col: int) -> str:
    if row < 0 or row >= len(rows):
        return ""
    current = rows[row]
    if col < 0 or col >= len(current):
        return ""
    return current[col]


def _offsets(forward: int, backward: int) -> Iterator[int]:
    yield 0
    for step in range(1, forward + 1):
        yield step
    for step in range(1, backward + 1):
        yield -step


def _scan_row(
    rows: Rows,
    row: int,
    col: int,
    predicate: Callable[[str], bool],
    right: int,
    left: int,
    stop: Callable[[str], bool] | None,
) -> CellHit | None:
    value = cell(rows, row, col)
    if value and predicate(value):
        return CellHit(row=row, col=col, value=value)
    for direction, reach in ((1, right), (-1, left)):
        for step in range(1, reach + 1):
            c = col + direction * step
            if c < 0:
                break
            value = cell(rows, row, c)
            if not value:
                continue
            if predicate(value):
                return CellHit(row=row, col=c, value=value)
            if stop is not None and stop(value):
                break
    return None


def search_neighborhood(
    rows: Rows,
    row: int,
    col: int,
    predicate: Callable[[str], bool],
    *,
    down: int = 0,
    up: int = 0,
    right: int = 0,
    left: int = 0,
    stop: Callable[[str], bool] | None = None,
) -> CellHit | None:
    """
    First non-empty cell around (row, col) accepted by ``predicate``.

    Rows are visited origin first, then downward, then upward; within a row the
    origin column comes first, then columns to the right, then to the left.
    A rejected cell matching ``stop`` ends the scan in that direction of the
    row (used so a label's search never runs into the next label's value).
    """
    for dr in _offsets(down, up):
        r = row + dr
        if r < 0 or r >= len(rows):
            continue
        hit = _scan_row(rows, r, col, predicate, right, left, stop)
        if hit is not None:
            return hit
    return None


def find_cells(
    rows: Rows,
    predicate: Callable[[str], bool],
    row_range: range | None = None,
    col_range: range | None = None,
) -> list[CellHit]:
    """All non-empty cells matching ``predicate``, in row-major order."""
    hits: list[CellHit] = []
    for r in row_range if row_range is not None else range(len(rows)):
        if r < 0 or r >= len(rows):
            continue
        width = len(rows[r])
        for c in col_range if col_range is not None else range(width):
            value = cell(rows, r, c)
            if value and predicate(value):
                hits.append(CellHit(row=r, col=c, value=value))
    return hits
