"""Loan discovery: ordered strategies for finding the loan a row refers to.

Each strategy either returns a LoanMatch or None (not found), and the
chain stops at the first match:

1. LinkedLoanStrategy: the employee's linked active loan.
2. OrphanedLoanStrategy: an active loan naming the employee as borrower
   that is not linked to them; it is relinked.
3. ReopenClosedLoanStrategy: the most recently updated closed loan, reopened
   when the sheet still shows a balance; its sureties guarantee it again.
4. CreateLoanStrategy: a new loan with estimated terms.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Protocol, Sequence
from uuid import UUID, uuid4

from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from thrift_ledger.config import LedgerConfig
from thrift_ledger.ingest.types import ZERO, NormalizedRow
from thrift_ledger.models import Employee, EmployeeGuarantee, Loan, LoanSurety, money
from thrift_ledger.services.state_machine import LoanStateMachine, LoanStatus

logger = logging.getLogger(__name__)


class LoanSource(str, Enum):
    """How a loan was found."""

    LINKED = "linked"
    ORPHANED = "orphaned"
    REOPENED = "reopened"
    CREATED = "created"


@dataclass(frozen=True)
class LoanMatch:
    """A loan found (or made) for an employee."""

    loan: Loan
    source: LoanSource

    @property
    def created(self) -> bool:
        return self.source == LoanSource.CREATED


class LoanStrategy(Protocol):
    """One step of the discovery chain."""

    name: str

    async def find(self, employee: Employee, row: NormalizedRow) -> LoanMatch | None:
        """Return a match or None to let the next strategy try."""
        ...


def link_loan(employee: Employee, loan: Loan) -> None:
    """Point the borrower at the loan and flag them as having one."""
    employee.active_loan_id = loan.loan_id
    employee.loan_status = "Loan"


async def add_guarantees(session: AsyncSession, loan_id: UUID, employee_ids: list[UUID]) -> None:
    """Add the loan to each surety's guarantee set, skipping ones already there."""
    if not employee_ids:
        return
    result = await session.execute(
        select(EmployeeGuarantee.employee_id).where(
            EmployeeGuarantee.loan_id == loan_id,
            EmployeeGuarantee.employee_id.in_(employee_ids),
        )
    )
    existing = set(result.scalars().all())
    missing = [employee_id for employee_id in employee_ids if employee_id not in existing]
    if missing:
        await session.execute(
            insert(EmployeeGuarantee),
            [{"employee_id": employee_id, "loan_id": loan_id} for employee_id in missing],
        )


def estimate_interest_rate(interest: Decimal, balance: Decimal, default: Decimal) -> Decimal:
    """Annual rate (%) from one month's interest on a balance, 1 decimal place."""
    if interest > 0 and balance > 0:
        rate = interest / balance * Decimal("1200")
        return rate.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    return default


class LinkedLoanStrategy:
    name = "linked"

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find(self, employee: Employee, row: NormalizedRow) -> LoanMatch | None:
        if employee.active_loan_id is None:
            return None
        loan = await self.session.get(Loan, employee.active_loan_id)
        if loan is None or loan.status != LoanStatus.ACTIVE:
            return None
        return LoanMatch(loan, LoanSource.LINKED)


class OrphanedLoanStrategy:
    name = "orphaned"

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find(self, employee: Employee, row: NormalizedRow) -> LoanMatch | None:
        result = await self.session.execute(
            select(Loan)
            .where(
                Loan.borrower_id == employee.employee_id,
                Loan.status == LoanStatus.ACTIVE.value,
            )
            .order_by(Loan.updated_at.desc())
            .limit(1)
        )
        loan = result.scalar_one_or_none()
        if loan is None:
            return None
        logger.info("Relinking orphaned loan %s to employee %s", loan.loan_id, employee.emp_code)
        link_loan(employee, loan)
        return LoanMatch(loan, LoanSource.ORPHANED)


class ReopenClosedLoanStrategy:
    name = "reopen"

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find(self, employee: Employee, row: NormalizedRow) -> LoanMatch | None:
        if row.loan <= 0:
            return None
        result = await self.session.execute(
            select(Loan)
            .where(
                Loan.borrower_id == employee.employee_id,
                Loan.status == LoanStatus.CLOSED.value,
            )
            .order_by(Loan.updated_at.desc(), Loan.created_at.desc())
            .limit(1)
        )
        loan = result.scalar_one_or_none()
        if loan is None:
            return None

        LoanStateMachine.transition(loan, LoanStatus.ACTIVE)
        loan.remaining_balance = money(row.loan)
        loan.end_date = None
        if row.emi_total > 0:
            loan.emi = money(row.emi_total)
        link_loan(employee, loan)

        # Closing dropped the guarantees but kept the surety list
        sureties = await self.session.execute(
            select(LoanSurety.employee_id)
            .where(LoanSurety.loan_id == loan.loan_id)
            .order_by(LoanSurety.position)
        )
        await add_guarantees(self.session, loan.loan_id, list(sureties.scalars().all()))
        logger.info("Reopened closed loan %s for employee %s", loan.loan_id, employee.emp_code)
        return LoanMatch(loan, LoanSource.REOPENED)


class CreateLoanStrategy:
    name = "create"

    def __init__(self, session: AsyncSession, config: LedgerConfig):
        self.session = session
        self.config = config

    async def find(self, employee: Employee, row: NormalizedRow) -> LoanMatch | None:
        if not row.has_loan_signal:
            return None

        balance = row.loan if row.loan > 0 else ZERO
        emi_total = row.emi_total
        # Without a balance, estimate one so the loan does not close next cycle
        remaining = balance or emi_total * self.config.balance_estimate_months

        loan = Loan(
            loan_id=uuid4(),
            borrower_id=employee.employee_id,
            loan_amount=money(balance or emi_total * self.config.loan_amount_estimate_months),
            interest_rate=estimate_interest_rate(
                row.interest, balance, self.config.default_interest_rate
            ),
            emi=money(emi_total if emi_total > 0 else row.loan_repayment),
            remaining_balance=money(remaining),
            total_interest_paid=Decimal("0"),
            status=LoanStatus.ACTIVE.value,
            surety_emp_codes=[],
        )
        self.session.add(loan)
        await self.session.flush()
        link_loan(employee, loan)
        logger.info("Created loan %s for employee %s", loan.loan_id, employee.emp_code)
        return LoanMatch(loan, LoanSource.CREATED)


class LoanDiscovery:
    """Runs the strategy chain in order."""

    def __init__(
        self,
        session: AsyncSession,
        config: LedgerConfig | None = None,
        strategies: Sequence[LoanStrategy] | None = None,
    ):
        self.session = session
        self.config = config or LedgerConfig()
        self.strategies: list[LoanStrategy] = list(
            strategies
            if strategies is not None
            else (
                LinkedLoanStrategy(session),
                OrphanedLoanStrategy(session),
                ReopenClosedLoanStrategy(session),
                CreateLoanStrategy(session, self.config),
            )
        )

    async def discover(self, employee: Employee, row: NormalizedRow) -> LoanMatch | None:
        """First match in the chain, or None."""
        for strategy in self.strategies:
            match = await strategy.find(employee, row)
            if match is not None:
                return match
        return None
