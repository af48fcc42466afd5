"""Identity resolution: map sheet identifiers to employees."""

from __future__ import annotations

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from thrift_ledger.errors import EmployeeNotFoundError
from thrift_ledger.ingest.normalizer import canonical_code, parse_amount
from thrift_ledger.ingest.types import NormalizedRow
from thrift_ledger.models import Employee


class IdentityResolver:
    """Locates employees for sheet rows and surety codes.

    Order:
    1. exact emp_code match as stored;
    2. emp_code read as a number, matched against loosely typed stored
       codes ("19", "19.0", "019");
    3. case-insensitive exact name match (rows only, not surety codes).
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_code(self, code: str | None) -> Employee | None:
        """Resolve an external employee code (steps 1 and 2)."""
        if not code:
            return None

        result = await self.session.execute(
            select(Employee).where(Employee.emp_code == code).limit(1)
        )
        employee = result.scalar_one_or_none()
        if employee is not None:
            return employee

        if parse_amount(code) is None:
            return None

        canonical = canonical_code(code)
        variants = {canonical, f"{canonical}.0", f"{canonical}.00"}
        conditions = [Employee.emp_code.in_(variants)]
        stripped = canonical.lstrip("0")
        if stripped and not canonical.startswith("-"):
            conditions.append(func.ltrim(Employee.emp_code, "0") == stripped)

        result = await self.session.execute(
            select(Employee)
            .where(or_(*conditions))
            .order_by(Employee.created_at)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def find_by_name(self, name: str | None) -> Employee | None:
        """Case-insensitive exact name match (step 3)."""
        if not name or not name.strip():
            return None
        result = await self.session.execute(
            select(Employee)
            .where(func.lower(Employee.name) == name.strip().lower())
            .order_by(Employee.created_at)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def resolve(self, row: NormalizedRow) -> Employee:
        """Find the employee a row belongs to.

        Raises:
            EmployeeNotFoundError: If neither code nor name matches
        """
        employee = await self.find_by_code(row.emp_code)
        if employee is None:
            employee = await self.find_by_name(row.name)
        if employee is None:
            raise EmployeeNotFoundError(row.emp_code, row.name, row=row.row_number)
        return employee
