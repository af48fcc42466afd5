"""Sheet framing: month detection and header-row location on a raw grid.

The society's sheets usually open with a few title rows ("VIGNAN ...
OCTOBER - 2025") before the real header row. These helpers work on the
already-parsed cell grid; reading the file is the caller's job.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Any, Sequence

from thrift_ledger.errors import InvalidMonthError
from thrift_ledger.ingest.normalizer import is_blank
from thrift_ledger.ingest.types import ParsedSheet

MONTH_NAMES = (
    "JANUARY", "FEBRUARY", "MARCH", "APRIL", "MAY", "JUNE",
    "JULY", "AUGUST", "SEPTEMBER", "OCTOBER", "NOVEMBER", "DECEMBER",
)
TITLE_SCAN_ROWS = 10
HEADER_SCAN_ROWS = 15

_MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")
_YEAR_RE = re.compile(r"\d{4}")
_EMP_ID_CELLS = {"emp. id", "emp id", "emp.id", "empid"}
_NAME_CELLS = {"name", "employee name"}


def _cell_text(cell: Any) -> str:
    return "" if is_blank(cell) else " ".join(str(cell).split()).lower()


def validate_month(value: str) -> str:
    """Return the month if it is YYYY-MM, else raise InvalidMonthError."""
    month = str(value).strip()
    if not _MONTH_RE.match(month):
        raise InvalidMonthError(value)
    return month


def detect_month(grid: Sequence[Sequence[Any]]) -> str | None:
    """Find "<MONTH NAME> ... <YYYY>" in the first cell of the title rows."""
    for raw_row in list(grid)[:TITLE_SCAN_ROWS]:
        if not raw_row or is_blank(raw_row[0]):
            continue
        text = str(raw_row[0]).strip().upper()
        for index, month_name in enumerate(MONTH_NAMES, start=1):
            if month_name in text:
                year = _YEAR_RE.search(text)
                if year:
                    return f"{year.group(0)}-{index:02d}"
    return None


def locate_header_row(grid: Sequence[Sequence[Any]]) -> int:
    """Index of the first row holding both an Emp. ID and a name cell (default 0)."""
    for index, raw_row in enumerate(list(grid)[:HEADER_SCAN_ROWS]):
        cells = [_cell_text(cell) for cell in raw_row or ()]
        has_emp_id = any(cell in _EMP_ID_CELLS for cell in cells)
        has_name = any(cell in _NAME_CELLS or "name of" in cell for cell in cells)
        if has_emp_id and has_name:
            return index
    return 0


def parse_grid(grid: Sequence[Sequence[Any]]) -> ParsedSheet:
    """Turn a raw cell grid into keyed rows below the detected header row.

    Blank header cells drop their column, repeated headers get a numeric
    suffix, blank cells are omitted from a row, and fully blank rows are
    dropped while keeping the sheet row numbers of the others.
    """
    grid = list(grid)
    header_index = locate_header_row(grid)
    header_cells = grid[header_index] if grid else []

    keys: list[str | None] = []
    seen: dict[str, int] = {}
    for cell in header_cells:
        if is_blank(cell):
            keys.append(None)
            continue
        key = str(cell)
        if key in seen:
            seen[key] += 1
            key = f"{key}_{seen[key]}"
        else:
            seen[key] = 0
        keys.append(key)

    rows: list[dict[str, Any]] = []
    row_numbers: list[int] = []
    for offset, raw_row in enumerate(grid[header_index + 1:], start=header_index + 2):
        row = {
            key: value
            for key, value in zip(keys, raw_row or ())
            if key is not None and not is_blank(value)
        }
        if not row:
            continue
        rows.append(row)
        row_numbers.append(offset)

    sheet = ParsedSheet.from_rows(rows, header_row=header_index, title_month=detect_month(grid))
    sheet.row_numbers = row_numbers
    return sheet


def resolve_upload_month(
    explicit: str | None = None,
    detected: str | None = None,
    today: date | None = None,
) -> str:
    """Explicit month, else the one detected in the title, else the current month."""
    if explicit:
        return validate_month(explicit)
    if detected:
        return validate_month(detected)
    return (today or date.today()).strftime("%Y-%m")
