"""Row normalization: one raw sheet row to a typed, defaulted record."""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Mapping

from thrift_ledger.ingest.columns import FIELD_LABELS
from thrift_ledger.ingest.types import (
    SURETY_SLOTS,
    ZERO,
    ColumnMapping,
    NormalizedRow,
    RowWarning,
)

NUMERIC_FIELDS = tuple(FIELD_LABELS)


def is_blank(value: Any) -> bool:
    """True for None, empty/whitespace strings and float NaN."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, float):
        return math.isnan(value)
    return False


def parse_amount(value: Any) -> Decimal | None:
    """Parse a numeric cell, or return None if it is not a finite number."""
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = Decimal(str(value))
    else:
        try:
            parsed = Decimal(str(value).strip())
        except InvalidOperation:
            return None
    if not parsed.is_finite():
        return None
    return parsed


def canonical_code(value: Any) -> str:
    """Stringify an identifier; purely numeric codes are rounded ("19.0" -> "19")."""
    if is_blank(value):
        return ""
    text = str(value).strip()
    number = parse_amount(text)
    if number is None:
        return text
    try:
        return str(int(number.quantize(Decimal("1"), rounding=ROUND_HALF_UP)))
    except InvalidOperation:
        return text


class RowNormalizer:
    """Converts raw rows using a resolved column mapping.

    Numeric fields default to 0. A mapped column whose cell is blank yields
    a "missing" warning; a non-numeric cell yields an "invalid" warning.
    Fields whose column was never found default silently.
    """

    def __init__(self, mapping: ColumnMapping):
        self.mapping = mapping

    def _cell(self, row: Mapping[str, Any], field: str) -> Any:
        column = self.mapping.get(field)
        if column is None:
            return None
        return row.get(column)

    def should_skip(self, row: Mapping[str, Any]) -> bool:
        """Structurally empty rows, blank serial numbers and TOTAL rows are skipped."""
        if all(is_blank(value) for value in row.values()):
            return True

        serial_column = self.mapping.get("serial_no")
        if serial_column is not None and is_blank(row.get(serial_column)):
            return True

        name = self._cell(row, "name")
        return not is_blank(name) and str(name).strip().upper() == "TOTAL"

    def normalize(
        self, row: Mapping[str, Any], row_number: int
    ) -> tuple[NormalizedRow, list[RowWarning]]:
        """Normalize one row, returning the record and its coercion warnings."""
        warnings: list[RowWarning] = []

        emp_code = canonical_code(self._cell(row, "emp_code"))
        name_cell = self._cell(row, "name")
        record = NormalizedRow(
            row_number=row_number,
            emp_code=emp_code or None,
            name="" if is_blank(name_cell) else str(name_cell).strip(),
            phone=canonical_code(self._cell(row, "phone")),
        )

        for field in NUMERIC_FIELDS:
            column = self.mapping.get(field)
            if column is None:
                continue
            raw = row.get(column)
            label = FIELD_LABELS[field]
            if is_blank(raw):
                warnings.append(
                    RowWarning(row_number, label, "Missing value, defaulting to 0")
                )
                continue
            amount = parse_amount(raw)
            if amount is None:
                warnings.append(
                    RowWarning(row_number, label, f'Invalid number "{raw}", defaulting to 0')
                )
                amount = ZERO
            setattr(record, field, amount)

        record.surety_codes = [
            canonical_code(self._cell(row, f"surety{slot}"))
            for slot in range(1, SURETY_SLOTS + 1)
        ]

        return record, warnings
