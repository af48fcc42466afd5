"""Type definitions for the ingest pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

ZERO = Decimal("0")

# Canonical field -> resolved sheet header (None when not found)
ColumnMapping = dict[str, Optional[str]]

SURETY_SLOTS = 6


@dataclass(frozen=True)
class RowWarning:
    """Non-fatal coercion of one cell."""

    row: int
    column: str
    issue: str

    def to_dict(self) -> dict[str, Any]:
        return {"row": self.row, "column": self.column, "issue": self.issue}


@dataclass(frozen=True)
class RowFailure:
    """Row-fatal error entry for the upload log."""

    row: int
    error: str

    def to_dict(self) -> dict[str, Any]:
        return {"row": self.row, "error": self.error}


@dataclass
class NormalizedRow:
    """One sheet row converted to typed, defaulted values."""

    row_number: int
    emp_code: str | None = None
    name: str = ""
    phone: str = ""

    cb_thrift: Decimal = ZERO  # authoritative closing thrift balance
    loan: Decimal = ZERO  # authoritative outstanding loan balance
    loan_repayment: Decimal = ZERO
    interest: Decimal = ZERO
    monthly_thrift: Decimal = ZERO
    thrift: Decimal = ZERO
    total_amount: Decimal = ZERO
    paid_amount: Decimal = ZERO
    loan_amount: Decimal = ZERO  # full installment, principal + interest
    total_deduction: Decimal = ZERO

    # One entry per surety slot, "" when the slot is empty
    surety_codes: list[str] = field(default_factory=lambda: [""] * SURETY_SLOTS)

    @property
    def thrift_deduction(self) -> Decimal:
        """Monthly contribution, preferring the monthly thrift column."""
        return self.monthly_thrift or self.thrift or ZERO

    @property
    def emi_total(self) -> Decimal:
        """Installment: the explicit loan amount column, else repayment + interest."""
        if self.loan_amount > 0:
            return self.loan_amount
        return self.loan_repayment + self.interest

    @property
    def principal_component(self) -> Decimal:
        return max(ZERO, self.loan_repayment - self.interest)

    @property
    def has_loan_signal(self) -> bool:
        return self.loan > 0 or self.loan_repayment > 0 or self.interest > 0

    @property
    def listed_surety_codes(self) -> list[str]:
        """Non-empty surety codes in slot order."""
        return [code for code in self.surety_codes if code and code != "0"]

    @property
    def resolved_total_deduction(self) -> Decimal:
        """Total deduction column, then total amount column, then thrift + repayment."""
        if self.total_deduction > 0:
            return self.total_deduction
        if self.total_amount > 0:
            return self.total_amount
        return self.thrift_deduction + self.loan_repayment


@dataclass
class ParsedSheet:
    """Rows handed over by the spreadsheet parser.

    `headers` is the union of keys over every row, in first-seen order:
    rows may carry different keys, so the first row alone is not enough.
    """

    rows: list[dict[str, Any]]
    headers: list[str]
    row_numbers: list[int]
    header_row: int = 0
    title_month: str | None = None

    @classmethod
    def from_rows(
        cls,
        rows: list[dict[str, Any]],
        header_row: int = 0,
        title_month: str | None = None,
    ) -> ParsedSheet:
        """Build from parser rows; sheet row numbers follow the header row."""
        return cls(
            rows=rows,
            headers=collect_headers(rows),
            row_numbers=[header_row + index + 2 for index in range(len(rows))],
            header_row=header_row,
            title_month=title_month,
        )


def collect_headers(rows: list[dict[str, Any]]) -> list[str]:
    """Union of row keys across all rows, first-seen order."""
    seen: dict[str, None] = {}
    for row in rows:
        for key in row:
            seen.setdefault(key, None)
    return list(seen)
