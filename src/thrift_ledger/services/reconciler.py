"""Ledger reconciler: applies one normalized sheet row to the ledger.

Per row, in order:
1. Resolve the employee (IdentityResolver).
2. Phone and thrift updates. A closing thrift balance on the sheet
   overrides the incremented balance.
3. Loan handling when the row shows a loan signal: discovery chain,
   balance update, surety diff, closure at zero balance. With no signal,
   a linked active loan is treated as paid off and closed.
4. Upsert of the (employee, month) transaction.

The reconciler only flushes; commit boundaries belong to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from thrift_ledger.config import LedgerConfig
from thrift_ledger.ingest.types import ZERO, NormalizedRow
from thrift_ledger.models import (
    Employee,
    EmployeeGuarantee,
    Loan,
    LoanSurety,
    MonthlyTransaction,
    money,
)
from thrift_ledger.services.identity import IdentityResolver
from thrift_ledger.services.loan_discovery import LoanDiscovery, LoanSource, add_guarantees
from thrift_ledger.services.state_machine import LoanStateMachine, LoanStatus

logger = logging.getLogger(__name__)


@dataclass
class RowOutcome:
    """What applying one row did."""

    employee: Employee
    transaction: MonthlyTransaction
    loan: Loan | None = None
    loan_source: LoanSource | None = None
    loan_closed: bool = False


async def close_loan(
    session: AsyncSession,
    employee: Employee | None,
    loan: Loan,
    loan_status: str = "",
) -> None:
    """Close a loan and clean up everything that points at it.

    Zeroes the balance, detaches the borrower's active link, sets the
    borrower's free-text loan status and drops the loan from every
    surety's guarantee set. The loan's own surety list is kept as history.
    """
    LoanStateMachine.transition(loan, LoanStatus.CLOSED)
    loan.remaining_balance = money(ZERO)
    loan.end_date = date.today()

    if employee is not None:
        if employee.active_loan_id == loan.loan_id:
            employee.active_loan_id = None
        employee.loan_status = loan_status

    await session.execute(
        delete(EmployeeGuarantee).where(EmployeeGuarantee.loan_id == loan.loan_id)
    )
    logger.info("Closed loan %s", loan.loan_id)


async def replace_sureties(session: AsyncSession, loan_id: UUID, employee_ids: list[UUID]) -> None:
    """Overwrite the loan's ordered surety list."""
    await session.execute(delete(LoanSurety).where(LoanSurety.loan_id == loan_id))
    if employee_ids:
        await session.execute(
            insert(LoanSurety),
            [
                {"loan_id": loan_id, "employee_id": employee_id, "position": position}
                for position, employee_id in enumerate(employee_ids, start=1)
            ],
        )


class LedgerReconciler:
    """Applies normalized rows for one month to employees, loans and transactions."""

    def __init__(self, session: AsyncSession, config: LedgerConfig | None = None):
        self.session = session
        self.config = config or LedgerConfig()
        self.identity = IdentityResolver(session)
        self.discovery = LoanDiscovery(session, self.config)

    async def apply_row(self, row: NormalizedRow, month: str) -> RowOutcome:
        """Reconcile one row.

        Raises:
            EmployeeNotFoundError: If the row matches no employee
        """
        employee = await self.identity.resolve(row)

        if row.phone:
            employee.phone = row.phone
        self._apply_thrift(employee, row)

        if row.has_loan_signal:
            outcome_loan, source, closed = await self._apply_loan(employee, row)
        else:
            outcome_loan, source, closed = await self._apply_implicit_payoff(employee)

        transaction = await self._upsert_transaction(employee, row, month, outcome_loan)
        await self.session.flush()

        return RowOutcome(
            employee=employee,
            transaction=transaction,
            loan=outcome_loan,
            loan_source=source,
            loan_closed=closed,
        )

    def _apply_thrift(self, employee: Employee, row: NormalizedRow) -> None:
        contribution = row.thrift_deduction
        if contribution > 0:
            employee.thrift_contribution = money(contribution)
            # Not idempotent across re-uploads when no closing balance is given
            employee.thrift_balance = money(employee.thrift_balance + contribution)
        if row.cb_thrift > 0:
            employee.thrift_balance = money(row.cb_thrift)

    async def _apply_loan(
        self, employee: Employee, row: NormalizedRow
    ) -> tuple[Loan | None, LoanSource | None, bool]:
        match = await self.discovery.discover(employee, row)
        if match is None:
            return None, None, False
        loan = match.loan

        if row.loan > 0:
            loan.remaining_balance = money(row.loan)
        elif row.loan_repayment > 0:
            loan.remaining_balance = money(
                max(ZERO, loan.remaining_balance - row.principal_component)
            )
        if row.interest > 0:
            loan.total_interest_paid = money(loan.total_interest_paid + row.interest)
        if row.emi_total > 0:
            loan.emi = money(row.emi_total)

        if row.listed_surety_codes:
            await self._sync_sureties(loan, row)

        if loan.remaining_balance <= 0 and not match.created:
            await close_loan(self.session, employee, loan)
            return loan, match.source, True

        employee.loan_status = "Loan"
        return loan, match.source, False

    async def _apply_implicit_payoff(
        self, employee: Employee
    ) -> tuple[Loan | None, LoanSource | None, bool]:
        if employee.active_loan_id is None:
            return None, None, False
        loan = await self.session.get(Loan, employee.active_loan_id)
        if loan is None or not LoanStateMachine.is_outstanding(loan.status):
            return None, None, False
        await close_loan(self.session, employee, loan)
        return loan, LoanSource.LINKED, True

    async def _sync_sureties(self, loan: Loan, row: NormalizedRow) -> None:
        """Diff the row's sureties against the loan's current list."""
        codes: list[str] = []
        for code in row.listed_surety_codes:
            if code not in codes:
                codes.append(code)

        resolved: list[UUID] = []
        for code in codes:
            surety = await self.identity.find_by_code(code)
            if surety is None:
                logger.info("Row %d: surety code %s not found, keeping raw code", row.row_number, code)
                continue
            if surety.employee_id not in resolved:
                resolved.append(surety.employee_id)

        result = await self.session.execute(
            select(LoanSurety.employee_id).where(LoanSurety.loan_id == loan.loan_id)
        )
        previous = set(result.scalars().all())
        removed = previous - set(resolved)
        if removed:
            await self.session.execute(
                delete(EmployeeGuarantee).where(
                    EmployeeGuarantee.loan_id == loan.loan_id,
                    EmployeeGuarantee.employee_id.in_(removed),
                )
            )

        await add_guarantees(self.session, loan.loan_id, resolved)
        await replace_sureties(self.session, loan.loan_id, resolved)
        loan.surety_emp_codes = codes

    async def _upsert_transaction(
        self,
        employee: Employee,
        row: NormalizedRow,
        month: str,
        loan: Loan | None,
    ) -> MonthlyTransaction:
        salary = money(employee.salary)
        total_deduction = money(row.resolved_total_deduction)

        if row.loan > 0:
            loan_balance = row.loan
        elif loan is not None and LoanStateMachine.is_outstanding(loan.status):
            loan_balance = loan.remaining_balance
        else:
            loan_balance = ZERO

        values: dict[str, Decimal] = {
            "salary": salary,
            "thrift_deduction": money(row.thrift_deduction),
            "loan_emi": money(row.loan_repayment),
            "interest_payment": money(row.interest),
            "principal_repayment": money(row.principal_component),
            "loan_amount": money(row.emi_total),
            "total_deduction": total_deduction,
            "paid_amount": money(row.paid_amount),
            "net_salary": money(salary - total_deduction) if salary > 0 else money(ZERO),
            "cb_thrift_balance": money(row.cb_thrift if row.cb_thrift > 0 else employee.thrift_balance),
            "loan_balance": money(loan_balance),
        }

        result = await self.session.execute(
            select(MonthlyTransaction).where(
                MonthlyTransaction.employee_id == employee.employee_id,
                MonthlyTransaction.month == month,
            )
        )
        transaction = result.scalar_one_or_none()
        if transaction is None:
            transaction = MonthlyTransaction(
                transaction_id=uuid4(),
                employee_id=employee.employee_id,
                month=month,
            )
            self.session.add(transaction)

        for field, value in values.items():
            setattr(transaction, field, value)
        return transaction
