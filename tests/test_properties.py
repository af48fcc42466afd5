"""Property-based tests for ingest invariants.

hypothesis generates header orders, codes and amounts; the properties
must hold for every one of them.
"""

from __future__ import annotations

from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st

from thrift_ledger.ingest.columns import resolve_columns
from thrift_ledger.ingest.normalizer import canonical_code, parse_amount
from thrift_ledger.ingest.types import NormalizedRow
from thrift_ledger.models import money
from thrift_ledger.services.batch import batch_status

HEADERS = [
    "S.No",
    "Emp. ID",
    "Name of the Employ",
    "Monthly Threft Amount",
    "CB Thrift Amount As on 31-10-2025",
    "CB Thrift Amount",
    "Loan",
    "Loan Balance As On",
    "Loan Re payment",
    "Intrest",
    "Loan Amount",
    "Total  Amount",
    "surity1 Emp .ID",
    "Surety 2",
    "Phone",
]

amounts = st.decimals(min_value=0, max_value=10**7, places=2, allow_nan=False, allow_infinity=False)


class TestColumnProperties:
    @given(st.permutations(HEADERS))
    def test_mapping_ignores_header_order(self, headers):
        """Any permutation of the same headers gives the same mapping."""
        assert resolve_columns(headers) == resolve_columns(HEADERS)

    @given(st.permutations(HEADERS))
    def test_mapped_columns_come_from_the_sheet(self, headers):
        mapping = resolve_columns(headers)
        assert all(column in HEADERS for column in mapping.values() if column is not None)


class TestCodeProperties:
    @given(st.integers(min_value=0, max_value=10**9))
    def test_numeric_codes_are_canonical(self, number):
        """19, "19" and "19.0" all read as "19"."""
        assert canonical_code(number) == str(number)
        assert canonical_code(str(number)) == str(number)
        assert canonical_code(f"{number}.0") == str(number)

    @given(amounts)
    def test_parse_amount_keeps_value(self, value):
        assert parse_amount(str(value)) == value


class TestAmountProperties:
    @settings(max_examples=200)
    @given(amounts, amounts, amounts)
    def test_row_derivations(self, repayment, interest, explicit_emi):
        """Principal is never negative; the installment is the explicit column when given."""
        row = NormalizedRow(
            row_number=2, loan_repayment=repayment, interest=interest, loan_amount=explicit_emi
        )

        assert row.principal_component >= 0
        assert row.principal_component <= repayment
        if explicit_emi > 0:
            assert row.emi_total == explicit_emi
        else:
            assert row.emi_total == repayment + interest

    @given(st.decimals(min_value=-10**6, max_value=10**6, places=4, allow_nan=False, allow_infinity=False))
    def test_money_rounds_to_cents(self, value):
        rounded = money(value)
        assert rounded.as_tuple().exponent == -2
        assert abs(rounded - value) <= Decimal("0.005")

    @given(st.integers(min_value=0, max_value=500), st.integers(min_value=0, max_value=500))
    def test_batch_status(self, success, failure):
        status = batch_status(success, failure)
        if failure == 0:
            assert status == "success"
        elif success == 0:
            assert status == "failed"
        else:
            assert status == "partial"
