"""Column resolution: map arbitrary sheet headers to canonical fields.

Society offices rename, retype and misspell headers from month to month.
Each canonical field has an ordered alias list that is tried in two passes:

1. exact match after whitespace/case normalization;
2. prefix match, only for aliases of at least ``MIN_PREFIX_ALIAS_LENGTH``
   characters, so that ``"loan"`` never claims ``"Loan Re payment"``.

Surety columns additionally fall back to a permissive pattern that accepts
``surity``/``surety`` with any spacing or punctuation before the slot
number. Resolution is a pure function of the header set: headers are
scanned in a canonical sorted order so column order in the sheet never
changes the outcome.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from thrift_ledger.errors import ColumnDetectionError
from thrift_ledger.ingest.types import SURETY_SLOTS, ColumnMapping

MIN_PREFIX_ALIAS_LENGTH = 8

# Aliases include the misspellings found in real society sheets.
COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "emp_code": ("Emp. ID", "Emp.ID", "EmpID", "Emp ID", "Employee ID"),
    "name": ("Name of the Employ", "Name", "Employee Name", "Name of Employee"),
    "cb_thrift": (
        "CB Thrift Amount As on", "CB Thrift Amount", "CB Thrift",
        "CB Threft Amount", "CB Threft", "Thrift Balance", "CBThrift",
    ),
    "loan": (
        "Loan", "Loan Bal", "Loan Balance", "Loan Outstanding", "Loan Bal.",
        "Loan O/S", "Outstanding Balance", "O/S Loan", "Bal Loan",
        "Balance Loan", "Loan Pending", "Pending Loan", "Loan OS",
    ),
    "loan_repayment": (
        "Loan Re payment", "Loan Re Payment", "Loan Repayment", "Loan Repaymnt",
        "Loan Re-payment", "LoanRepayment", "LoanRePayment", "Loan repay",
        "Loan EMI", "EMI",
    ),
    "interest": (
        "Intrest", "Interest", "Intrst", "Interest Amount", "Intrest Amount",
        "Inrest", "Interset", "Int Amount", "Int Amt",
    ),
    "monthly_thrift": (
        "Monthly Threft Amount", "Monthly Thrift Amount", "Monthly Thrft Amount",
        "Monthly Threft", "Monthly Thrift", "Monthly Thrft", "MonthlyThrift",
        "Month Thrift Amt", "Mnthly Thrift",
    ),
    "total_amount": (
        "Total  Amount", "Total Amount", "TotalAmount", "Total Amt", "TotalAmt",
        "Tot Amount", "Tot Amt",
    ),
    "paid_amount": ("Paid Amount", "PaidAmount", "Paid Amt", "Amount Paid", "Amt Paid"),
    "loan_amount": ("Loan Amount", "LoanAmount", "Loan Amt", "LoanAmt"),
    "thrift": (
        "Thrift", "Monthly Threft Amount", "Monthly Thrift Amount", "Monthly Threft",
        "Monthly Thrift", "Thrift Amount", "Thrift Amt", "MonthlyThrift",
    ),
    "total_deduction": (
        "Total monthly deduction", "Total Monthly Deduction", "Total Deduction",
        "TotalDeduction", "Total Deduct", "Tot Deduction", "Total Ded",
    ),
    "phone": (
        "Phone", "Mobile No", "Mobile", "Contact", "Phone No", "Mob No", "Cell",
        "Phone Number", "Mobile Number",
    ),
    "serial_no": ("S.No", "S.No.", "SNo", "S No", "Sl.No", "Sl No", "Serial No"),
}

for _slot in range(1, SURETY_SLOTS + 1):
    COLUMN_ALIASES[f"surety{_slot}"] = (
        f"surity{_slot} Emp .ID",
        f"surity{_slot} Emp ID",
        f"surity{_slot}",
        f"surety{_slot}",
    )

# Labels used in coercion warnings
FIELD_LABELS: dict[str, str] = {
    "cb_thrift": "CB Thrift Amount",
    "loan": "Loan",
    "loan_repayment": "Loan Re payment",
    "interest": "Interest",
    "monthly_thrift": "Monthly Thrift Amount",
    "thrift": "Thrift",
    "total_amount": "Total Amount",
    "paid_amount": "Paid Amount",
    "loan_amount": "Loan Amount",
    "total_deduction": "Total monthly deduction",
}


def normalize_header(header: object) -> str:
    """Trim, collapse internal whitespace and lowercase."""
    return " ".join(str(header).split()).lower()


def _canonical_order(headers: Iterable[str]) -> list[str]:
    return sorted(set(headers), key=lambda h: (normalize_header(h), str(h)))


def find_column(headers: Iterable[str], aliases: Iterable[str]) -> str | None:
    """Find the header matching the first alias that matches anything."""
    ordered = _canonical_order(headers)
    normalized = [(normalize_header(h), h) for h in ordered]
    aliases = [normalize_header(a) for a in aliases]

    for alias in aliases:
        for norm, header in normalized:
            if norm == alias:
                return header

    for alias in aliases:
        if len(alias) < MIN_PREFIX_ALIAS_LENGTH:
            continue
        for norm, header in normalized:
            if norm.startswith(alias):
                return header

    return None


def _surety_pattern(slot: int) -> re.Pattern[str]:
    return re.compile(rf"sur[iey][^\d]*{slot}", re.IGNORECASE)


def resolve_columns(
    headers: Iterable[str],
    aliases: dict[str, tuple[str, ...]] | None = None,
) -> ColumnMapping:
    """Resolve every canonical field against the header set.

    Absent fields map to None; absence is never an error here.
    """
    table = COLUMN_ALIASES if aliases is None else aliases
    ordered = _canonical_order(headers)

    mapping: ColumnMapping = {
        field: find_column(ordered, field_aliases) for field, field_aliases in table.items()
    }

    for slot in range(1, SURETY_SLOTS + 1):
        key = f"surety{slot}"
        if key in table and mapping.get(key) is None:
            pattern = _surety_pattern(slot)
            mapping[key] = next((h for h in ordered if pattern.search(str(h))), None)

    if "serial_no" in table and mapping.get("serial_no") is None:
        mapping["serial_no"] = next((h for h in ordered if "s.no" in str(h).lower()), None)

    return mapping


def require_identity_columns(mapping: ColumnMapping) -> None:
    """Raise if the sheet has neither an employee-id nor a name column."""
    if not mapping.get("emp_code") and not mapping.get("name"):
        raise ColumnDetectionError(
            'Could not find "Emp. ID" or "Name" column. Please check your Excel format.'
        )


def column_summary(mapping: ColumnMapping) -> dict[str, str | None]:
    """Field -> resolved header or None, for operator diagnostics."""
    return {field: mapping.get(field) for field in COLUMN_ALIASES}
