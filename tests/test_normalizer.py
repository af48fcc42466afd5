"""Tests for row normalization."""

from decimal import Decimal

import pytest

from thrift_ledger.ingest.columns import resolve_columns
from thrift_ledger.ingest.normalizer import RowNormalizer, canonical_code, is_blank, parse_amount
from thrift_ledger.ingest.types import NormalizedRow

HEADERS = [
    "S.No", "Emp. ID", "Name", "Monthly Thrift Amount", "CB Thrift Amount",
    "Loan", "Loan Re payment", "Intrest", "Phone", "surity1 Emp .ID", "surity2 Emp .ID",
]


@pytest.fixture
def normalizer() -> RowNormalizer:
    return RowNormalizer(resolve_columns(HEADERS))


class TestParsing:
    """Test cell parsing helpers."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (12, Decimal("12")),
            (12.5, Decimal("12.5")),
            ("  1500.75 ", Decimal("1500.75")),
            (Decimal("3"), Decimal("3")),
        ],
    )
    def test_parse_amount_numbers(self, value, expected):
        assert parse_amount(value) == expected

    @pytest.mark.parametrize("value", ["abc", "", "1,000", True, float("nan"), "inf"])
    def test_parse_amount_rejects(self, value):
        """Non-numeric, boolean and non-finite cells are not amounts."""
        assert parse_amount(value) is None

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("19.0", "19"),
            (19, "19"),
            (19.0, "19"),
            (" 0019 ", "19"),
            ("VT-1", "VT-1"),
            (None, ""),
            ("  ", ""),
        ],
    )
    def test_canonical_code(self, value, expected):
        """Numeric codes are rounded to integers; others kept as text."""
        assert canonical_code(value) == expected

    def test_is_blank(self):
        assert is_blank(None)
        assert is_blank("   ")
        assert is_blank(float("nan"))
        assert not is_blank(0)


class TestRowNormalizer:
    """Test normalization of whole rows."""

    def test_full_row(self, normalizer: RowNormalizer):
        """Every mapped field is typed; identifiers are canonical."""
        row, warnings = normalizer.normalize(
            {
                "S.No": 1,
                "Emp. ID": 19.0,
                "Name": "  Ravi Kumar ",
                "Monthly Thrift Amount": 500,
                "CB Thrift Amount": "12500",
                "Loan": 40000,
                "Loan Re payment": 2000,
                "Intrest": 400,
                "Phone": 9876543210,
                "surity1 Emp .ID": "21.0",
                "surity2 Emp .ID": 0,
            },
            row_number=5,
        )

        assert warnings == []
        assert row.row_number == 5
        assert row.emp_code == "19"
        assert row.name == "Ravi Kumar"
        assert row.phone == "9876543210"
        assert row.monthly_thrift == Decimal("500")
        assert row.cb_thrift == Decimal("12500")
        assert row.loan == Decimal("40000")
        assert row.surety_codes[:2] == ["21", "0"]
        assert row.listed_surety_codes == ["21"]

    def test_missing_and_invalid_cells_warn(self, normalizer: RowNormalizer):
        """Blank mapped cells and junk both default to 0 with distinct warnings."""
        row, warnings = normalizer.normalize(
            {"S.No": 2, "Emp. ID": "7", "Name": "Sita", "Loan": "n/a", "Intrest": ""},
            row_number=9,
        )

        assert row.loan == Decimal("0")
        assert row.interest == Decimal("0")

        issues = {w.column: w.issue for w in warnings}
        assert issues["Loan"] == 'Invalid number "n/a", defaulting to 0'
        assert issues["Interest"] == "Missing value, defaulting to 0"
        assert issues["CB Thrift Amount"] == "Missing value, defaulting to 0"
        assert all(w.row == 9 for w in warnings)

    def test_unmapped_fields_default_silently(self):
        """Fields with no column in the sheet do not produce warnings."""
        normalizer = RowNormalizer(resolve_columns(["Emp. ID", "Name"]))
        row, warnings = normalizer.normalize({"Emp. ID": "3", "Name": "Anil"}, row_number=2)

        assert warnings == []
        assert row.loan == Decimal("0")
        assert row.surety_codes == [""] * 6

    def test_skip_rules(self, normalizer: RowNormalizer):
        """Empty, TOTAL and serial-less rows are skipped."""
        assert normalizer.should_skip({"Name": None, "Loan": ""})
        assert normalizer.should_skip({"S.No": 9, "Name": "total", "Loan": 90000})
        assert normalizer.should_skip({"Emp. ID": "4", "Name": "Footer note"})
        assert not normalizer.should_skip({"S.No": 3, "Emp. ID": "4", "Name": "Lakshmi"})


class TestNormalizedRow:
    """Test derived row values."""

    def test_emi_prefers_loan_amount_column(self):
        row = NormalizedRow(
            row_number=2,
            loan_repayment=Decimal("1000"),
            interest=Decimal("200"),
            loan_amount=Decimal("1250"),
        )
        assert row.emi_total == Decimal("1250")
        assert row.principal_component == Decimal("800")

    def test_emi_falls_back_to_repayment_plus_interest(self):
        row = NormalizedRow(row_number=2, loan_repayment=Decimal("1000"), interest=Decimal("200"))
        assert row.emi_total == Decimal("1200")

    def test_principal_never_negative(self):
        row = NormalizedRow(row_number=2, loan_repayment=Decimal("100"), interest=Decimal("300"))
        assert row.principal_component == Decimal("0")

    def test_total_deduction_priority(self):
        """Total deduction column, then total amount, then thrift + repayment."""
        row = NormalizedRow(
            row_number=2,
            thrift=Decimal("500"),
            loan_repayment=Decimal("1000"),
        )
        assert row.resolved_total_deduction == Decimal("1500")

        row.total_amount = Decimal("1700")
        assert row.resolved_total_deduction == Decimal("1700")

        row.total_deduction = Decimal("1900")
        assert row.resolved_total_deduction == Decimal("1900")

    def test_loan_signal(self):
        assert not NormalizedRow(row_number=2).has_loan_signal
        assert NormalizedRow(row_number=2, interest=Decimal("10")).has_loan_signal
        assert NormalizedRow(row_number=2, loan=Decimal("10")).has_loan_signal
