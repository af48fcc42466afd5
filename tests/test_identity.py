"""Tests for identity resolution."""

import pytest

from thrift_ledger.errors import EmployeeNotFoundError
from thrift_ledger.ingest.types import NormalizedRow
from thrift_ledger.services.identity import IdentityResolver
from tests.factories import create_employee


class TestFindByCode:
    """Test code lookups."""

    async def test_exact_code(self, session):
        employee = await create_employee(session, "Ravi", "VT-1")
        resolver = IdentityResolver(session)

        assert await resolver.find_by_code("VT-1") is employee
        assert await resolver.find_by_code("VT-2") is None

    async def test_loosely_typed_stored_codes(self, session):
        """Numeric codes stored as "19.0" or "019" still match "19"."""
        decimal_code = await create_employee(session, "Ravi", "19.0")
        padded_code = await create_employee(session, "Sita", "020")
        resolver = IdentityResolver(session)

        assert await resolver.find_by_code("19") is decimal_code
        assert await resolver.find_by_code("20") is padded_code

    async def test_empty_code(self, session):
        await create_employee(session, "Ravi", "19")
        assert await IdentityResolver(session).find_by_code("") is None


class TestResolve:
    """Test row resolution order."""

    async def test_code_before_name(self, session):
        """A code match wins over a name match for another employee."""
        by_code = await create_employee(session, "Ravi", "19")
        await create_employee(session, "Sita", "20")

        row = NormalizedRow(row_number=3, emp_code="19", name="Sita")
        assert await IdentityResolver(session).resolve(row) is by_code

    async def test_name_fallback_is_case_insensitive(self, session):
        employee = await create_employee(session, "Ravi Kumar")

        row = NormalizedRow(row_number=3, emp_code="99", name="  RAVI kumar ")
        assert await IdentityResolver(session).resolve(row) is employee

    async def test_name_case_folding_covers_accented_letters(self, session):
        employee = await create_employee(session, "Émile Ñúñez")
        resolver = IdentityResolver(session)

        assert await resolver.find_by_name("ÉMILE ÑÚÑEZ") is employee
        assert await resolver.find_by_name("émile ñúñez") is employee

    async def test_name_is_not_a_substring_match(self, session):
        await create_employee(session, "Ravi Kumar")

        row = NormalizedRow(row_number=7, name="Ravi")
        with pytest.raises(EmployeeNotFoundError) as exc_info:
            await IdentityResolver(session).resolve(row)

        assert exc_info.value.row == 7
