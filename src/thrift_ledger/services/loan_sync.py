"""Loan link repair for employees left without an active loan.

Runs after every upload over the employees it touched, and on demand for
employees whose free-text status still says "Loan". For each employee with
no active link:

1. relink an active loan that names them as borrower, else
2. create a loan from their latest transaction with a loan EMI, estimating
   the balance from the principal (or the EMI) over the estimate window.

The two callers estimate differently. After an upload the balance covers
`balance_estimate_months` at the default rate. An operator sync covers
`sync_estimate_months` and derives the rate from the interest paid.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from thrift_ledger.config import LedgerConfig
from thrift_ledger.ingest.types import NormalizedRow
from thrift_ledger.models import Employee, Loan, MonthlyTransaction, money
from thrift_ledger.services.loan_discovery import (
    LoanSource,
    OrphanedLoanStrategy,
    estimate_interest_rate,
    link_loan,
)
from thrift_ledger.services.state_machine import LoanStatus

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    """Result of a loan sync pass."""

    linked: int = 0
    created: int = 0
    skipped: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "linked": self.linked,
            "created": self.created,
            "skipped": self.skipped,
            "errors": list(self.errors),
        }


@dataclass(frozen=True)
class LoanEstimate:
    """How a recreated loan's balance and rate are guessed from a transaction."""

    months: int
    default_rate: Decimal
    rate_from_interest: bool = False

    @classmethod
    def after_upload(cls, config: LedgerConfig) -> LoanEstimate:
        return cls(config.balance_estimate_months, config.default_interest_rate)

    @classmethod
    def on_demand(cls, config: LedgerConfig) -> LoanEstimate:
        return cls(config.sync_estimate_months, config.default_interest_rate, rate_from_interest=True)

    def terms(self, transaction: MonthlyTransaction) -> tuple[Decimal, Decimal]:
        """(estimated balance, annual rate) for a loan rebuilt from `transaction`."""
        if transaction.principal_repayment > 0:
            balance = transaction.principal_repayment * self.months
        else:
            balance = transaction.loan_emi * self.months
        if not self.rate_from_interest:
            return balance, self.default_rate
        return balance, estimate_interest_rate(
            transaction.interest_payment, balance, self.default_rate
        )


class LoanSynchronizer:
    """Relinks or recreates missing active loans, one savepoint per employee."""

    def __init__(
        self,
        session: AsyncSession,
        config: LedgerConfig | None = None,
        estimate: LoanEstimate | None = None,
    ):
        self.session = session
        self.config = config or LedgerConfig()
        self.estimate = estimate or LoanEstimate.after_upload(self.config)
        self.orphans = OrphanedLoanStrategy(session)

    @classmethod
    def for_operator(
        cls, session: AsyncSession, config: LedgerConfig | None = None
    ) -> LoanSynchronizer:
        """Synchronizer with the operator's 12-month, interest-derived estimate."""
        config = config or LedgerConfig()
        return cls(session, config, LoanEstimate.on_demand(config))

    async def sync(
        self,
        employee_ids: Iterable[UUID],
        month: str | None = None,
    ) -> SyncReport:
        """Repair the given employees. Failures are logged and reported, never raised.

        When `month` is given, only that month's transaction is used to
        recreate a loan.
        """
        report = SyncReport()
        ids = list(dict.fromkeys(employee_ids))
        if not ids:
            return report

        result = await self.session.execute(
            select(Employee)
            .where(Employee.employee_id.in_(ids), Employee.active_loan_id.is_(None))
            .order_by(Employee.created_at)
        )
        employees = list(result.scalars().all())
        report.skipped += len(ids) - len(employees)

        for employee in employees:
            code = employee.emp_code
            try:
                async with self.session.begin_nested():
                    source = await self.sync_employee(employee, month)
                await self.session.commit()
            except Exception as e:
                logger.exception("Loan sync failed for employee %s", code)
                report.errors.append({"emp_code": code, "error": str(e)})
                continue

            if source == LoanSource.ORPHANED:
                report.linked += 1
            elif source == LoanSource.CREATED:
                report.created += 1
            else:
                report.skipped += 1

        logger.info(
            "Loan sync: %d linked, %d created, %d skipped, %d failed",
            report.linked, report.created, report.skipped, len(report.errors),
        )
        return report

    async def sync_employee(self, employee: Employee, month: str | None = None) -> LoanSource | None:
        """Relink or create a loan for one employee; None when nothing applies."""
        if employee.active_loan_id is not None:
            return None

        match = await self.orphans.find(employee, NormalizedRow(row_number=0))
        if match is not None:
            return match.source

        query = select(MonthlyTransaction).where(
            MonthlyTransaction.employee_id == employee.employee_id,
            MonthlyTransaction.loan_emi > 0,
        )
        if month is not None:
            query = query.where(MonthlyTransaction.month == month)
        result = await self.session.execute(
            query.order_by(MonthlyTransaction.month.desc()).limit(1)
        )
        transaction = result.scalar_one_or_none()
        if transaction is None:
            return None

        estimated, rate = self.estimate.terms(transaction)

        loan = Loan(
            loan_id=uuid4(),
            borrower_id=employee.employee_id,
            loan_amount=money(estimated),
            interest_rate=rate,
            emi=money(transaction.loan_emi),
            remaining_balance=money(estimated),
            total_interest_paid=Decimal("0"),
            status=LoanStatus.ACTIVE.value,
            surety_emp_codes=[],
        )
        self.session.add(loan)
        await self.session.flush()
        link_loan(employee, loan)
        await self.session.flush()
        logger.info(
            "Created loan %s for employee %s from %s transaction",
            loan.loan_id, employee.emp_code, transaction.month,
        )
        return LoanSource.CREATED
