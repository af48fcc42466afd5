"""Administrative adjustments.

Every operation commits its entity changes and the matching
AdjustmentHistory rows in one transaction, or rolls all of it back.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, AsyncIterator, Sequence
from uuid import UUID, uuid4

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from thrift_ledger.config import LedgerConfig
from thrift_ledger.errors import AdjustmentError, NotFoundError
from thrift_ledger.models import (
    AdjustmentAction,
    AdjustmentHistory,
    Employee,
    EmployeeGuarantee,
    Loan,
    LoanSurety,
    MonthlyTransaction,
    money,
)
from thrift_ledger.services.loan_discovery import add_guarantees, link_loan
from thrift_ledger.services.loan_sync import LoanSynchronizer, SyncReport
from thrift_ledger.services.reconciler import close_loan, replace_sureties
from thrift_ledger.services.state_machine import LoanStateMachine, LoanStatus

logger = logging.getLogger(__name__)

RATE_PLACES = Decimal("0.000001")


def _plain(value: Any) -> Any:
    """JSON-safe audit value."""
    if isinstance(value, Decimal):
        return str(money(value))
    return value


@dataclass
class DividendShare:
    """One member's share of the yearly dividend."""

    employee_id: UUID
    emp_code: str | None
    name: str
    old_balance: Decimal
    dividend: Decimal
    new_balance: Decimal

    @property
    def changed(self) -> bool:
        return self.old_balance != self.new_balance


@dataclass
class DividendResult:
    """Outcome of a yearly dividend distribution."""

    year: str
    total_thrift: Decimal
    total_loans_outstanding: Decimal
    share_capital: Decimal
    bank_balance: Decimal
    cash_in_hand: Decimal
    rate_per_rupee: Decimal
    shares: list[DividendShare] = field(default_factory=list)

    @property
    def society_assets(self) -> Decimal:
        return self.total_loans_outstanding + self.bank_balance + self.cash_in_hand

    @property
    def society_capital(self) -> Decimal:
        return self.total_thrift + self.share_capital

    @property
    def difference(self) -> Decimal:
        return self.society_assets - self.society_capital


class AdjustmentService:
    """Audited manual edits to employees and loans."""

    def __init__(self, session: AsyncSession, config: LedgerConfig | None = None):
        self.session = session
        self.config = config or LedgerConfig()

    @asynccontextmanager
    async def _atomic(self) -> AsyncIterator[None]:
        try:
            yield
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

    def _record(
        self,
        employee_id: UUID,
        actor: str,
        action: AdjustmentAction,
        remarks: str,
        target_field: str | None = None,
        old_value: Any = None,
        new_value: Any = None,
        loan_id: UUID | None = None,
    ) -> AdjustmentHistory:
        entry = AdjustmentHistory(
            adjustment_id=uuid4(),
            employee_id=employee_id,
            loan_id=loan_id,
            actor=actor,
            action_type=action.value,
            target_field=target_field,
            old_value=_plain(old_value),
            new_value=_plain(new_value),
            remarks=remarks,
        )
        self.session.add(entry)
        return entry

    async def _employee(self, employee_id: UUID) -> Employee:
        employee = await self.session.get(Employee, employee_id)
        if employee is None:
            raise NotFoundError("Employee", employee_id)
        return employee

    async def _loan(self, loan_id: UUID) -> Loan:
        loan = await self.session.get(Loan, loan_id)
        if loan is None:
            raise NotFoundError("Loan", loan_id)
        return loan

    async def create_employee(
        self,
        *,
        name: str,
        actor: str,
        emp_code: str | None = None,
        email: str | None = None,
        department: str | None = None,
        designation: str | None = None,
        phone: str | None = None,
        salary: Decimal = Decimal("0"),
        thrift_contribution: Decimal = Decimal("0"),
        thrift_balance: Decimal = Decimal("0"),
    ) -> Employee:
        """Register a member.

        Raises:
            AdjustmentError: If the name is blank or the code is taken
        """
        if not name or not name.strip():
            raise AdjustmentError("Employee name is required")

        async with self._atomic():
            if emp_code:
                result = await self.session.execute(
                    select(Employee.employee_id).where(Employee.emp_code == emp_code)
                )
                if result.scalar_one_or_none() is not None:
                    raise AdjustmentError(f"Employee code {emp_code} already exists")

            employee = Employee(
                employee_id=uuid4(),
                emp_code=emp_code or None,
                name=name.strip(),
                email=email,
                department=department,
                designation=designation,
                phone=phone,
                salary=money(salary),
                thrift_contribution=money(thrift_contribution),
                thrift_balance=money(thrift_balance),
            )
            self.session.add(employee)
            await self.session.flush()
            self._record(
                employee.employee_id,
                actor,
                AdjustmentAction.CREATE_EMPLOYEE,
                f"Employee {employee.name} created",
            )
        return employee

    async def adjust_salary(
        self,
        employee_id: UUID,
        new_salary: Decimal,
        actor: str,
        remarks: str | None = None,
    ) -> Employee:
        if new_salary < 0:
            raise AdjustmentError("Salary cannot be negative")

        async with self._atomic():
            employee = await self._employee(employee_id)
            old_salary = employee.salary
            employee.salary = money(new_salary)
            self._record(
                employee.employee_id,
                actor,
                AdjustmentAction.UPDATE_SALARY,
                remarks or f"Salary adjusted from {money(old_salary)} to {employee.salary}",
                target_field="salary",
                old_value=old_salary,
                new_value=employee.salary,
            )
        return employee

    async def adjust_thrift(
        self,
        employee_id: UUID,
        actor: str,
        contribution: Decimal | None = None,
        balance: Decimal | None = None,
        remarks: str | None = None,
    ) -> Employee:
        """Set thrift contribution and/or balance; one history row per changed field."""
        if contribution is None and balance is None:
            raise AdjustmentError("Nothing to adjust")

        async with self._atomic():
            employee = await self._employee(employee_id)

            if contribution is not None:
                old = employee.thrift_contribution
                employee.thrift_contribution = money(contribution)
                self._record(
                    employee.employee_id,
                    actor,
                    AdjustmentAction.UPDATE_THRIFT,
                    remarks or f"Thrift contribution adjusted from {money(old)} to {employee.thrift_contribution}",
                    target_field="thrift_contribution",
                    old_value=old,
                    new_value=employee.thrift_contribution,
                )

            if balance is not None:
                old = employee.thrift_balance
                employee.thrift_balance = money(balance)
                self._record(
                    employee.employee_id,
                    actor,
                    AdjustmentAction.ADJUST_BALANCE,
                    remarks or f"Thrift balance adjusted from {money(old)} to {employee.thrift_balance}",
                    target_field="thrift_balance",
                    old_value=old,
                    new_value=employee.thrift_balance,
                )
        return employee

    async def adjust_loan(
        self,
        employee_id: UUID,
        actor: str,
        loan_amount: Decimal | None = None,
        emi: Decimal | None = None,
        interest_rate: Decimal | None = None,
        remarks: str | None = None,
    ) -> Loan:
        """Edit the employee's active loan. A new loan amount is a top-up."""
        async with self._atomic():
            employee = await self._employee(employee_id)
            if employee.active_loan_id is None:
                raise AdjustmentError("Employee has no active loan")
            loan = await self._loan(employee.active_loan_id)

            if loan_amount is not None:
                old_amount = loan.loan_amount
                top_up = money(loan_amount) - old_amount
                new_balance = money(loan.remaining_balance + top_up)
                if new_balance < 0:
                    raise AdjustmentError("Top-up would make the balance negative")
                loan.loan_amount = money(loan_amount)
                loan.remaining_balance = new_balance
                self._record(
                    employee.employee_id,
                    actor,
                    AdjustmentAction.CREATE_LOAN,
                    remarks or f"Loan top-up: {money(top_up)}. New total: {loan.loan_amount}",
                    target_field="loan_amount",
                    old_value=old_amount,
                    new_value=loan.loan_amount,
                    loan_id=loan.loan_id,
                )

            if emi is not None:
                old_emi = loan.emi
                loan.emi = money(emi)
                self._record(
                    employee.employee_id,
                    actor,
                    AdjustmentAction.OTHER,
                    remarks or f"EMI updated from {money(old_emi)} to {loan.emi}",
                    target_field="emi",
                    old_value=old_emi,
                    new_value=loan.emi,
                    loan_id=loan.loan_id,
                )

            if interest_rate is not None:
                old_rate = loan.interest_rate
                loan.interest_rate = Decimal(interest_rate)
                self._record(
                    employee.employee_id,
                    actor,
                    AdjustmentAction.OTHER,
                    remarks or f"Interest rate updated from {old_rate}% to {interest_rate}%",
                    target_field="interest_rate",
                    old_value=str(old_rate),
                    new_value=str(interest_rate),
                    loan_id=loan.loan_id,
                )
        return loan

    async def create_loan(
        self,
        borrower_id: UUID,
        actor: str,
        loan_amount: Decimal,
        interest_rate: Decimal,
        emi: Decimal,
        surety_ids: Sequence[UUID] = (),
        remarks: str | None = None,
    ) -> Loan:
        """Grant a loan; the borrower must not already have an active one."""
        if loan_amount <= 0:
            raise AdjustmentError("Loan amount must be positive")

        async with self._atomic():
            borrower = await self._employee(borrower_id)
            if borrower.active_loan_id is not None:
                current = await self.session.get(Loan, borrower.active_loan_id)
                if current is not None and LoanStateMachine.is_outstanding(current.status):
                    raise AdjustmentError("Employee already has an active loan")

            sureties = list(dict.fromkeys(surety_ids))
            if borrower_id in sureties:
                raise AdjustmentError("Borrower cannot be their own surety")
            codes: list[str] = []
            for surety_id in sureties:
                surety = await self._employee(surety_id)
                codes.append(surety.emp_code or "")

            loan = Loan(
                loan_id=uuid4(),
                borrower_id=borrower.employee_id,
                loan_amount=money(loan_amount),
                interest_rate=Decimal(interest_rate),
                emi=money(emi),
                remaining_balance=money(loan_amount),
                total_interest_paid=Decimal("0"),
                status=LoanStatus.ACTIVE.value,
                surety_emp_codes=codes,
            )
            self.session.add(loan)
            await self.session.flush()
            link_loan(borrower, loan)
            await replace_sureties(self.session, loan.loan_id, sureties)
            await add_guarantees(self.session, loan.loan_id, sureties)
            self._record(
                borrower.employee_id,
                actor,
                AdjustmentAction.CREATE_LOAN,
                remarks or f"Loan of {loan.loan_amount} granted",
                target_field="loan_amount",
                new_value=loan.loan_amount,
                loan_id=loan.loan_id,
            )
        return loan

    async def close_loan(self, loan_id: UUID, actor: str, remarks: str | None = None) -> Loan:
        """Close a loan by hand, with the same cleanup as a zero-balance row."""
        async with self._atomic():
            loan = await self._loan(loan_id)
            if not LoanStateMachine.is_outstanding(loan.status):
                raise AdjustmentError(f"Loan {loan_id} is not active")
            borrower = (
                await self.session.get(Employee, loan.borrower_id)
                if loan.borrower_id is not None
                else None
            )
            old_balance = loan.remaining_balance
            await close_loan(self.session, borrower, loan, loan_status="No Loan")
            if borrower is not None:
                self._record(
                    borrower.employee_id,
                    actor,
                    AdjustmentAction.CLOSE_LOAN,
                    remarks or f"Loan closed with balance {money(old_balance)}",
                    target_field="remaining_balance",
                    old_value=old_balance,
                    new_value=loan.remaining_balance,
                    loan_id=loan.loan_id,
                )
        return loan

    async def delete_loan(self, loan_id: UUID, actor: str, remarks: str | None = None) -> None:
        """Delete a loan after removing every reference to it."""
        async with self._atomic():
            loan = await self._loan(loan_id)
            borrower_id = loan.borrower_id
            snapshot = loan.snapshot()

            await self.session.execute(
                update(Employee)
                .where(Employee.active_loan_id == loan_id)
                .values(active_loan_id=None, loan_status="")
                .execution_options(synchronize_session="fetch")
            )
            await self.session.execute(
                delete(EmployeeGuarantee).where(EmployeeGuarantee.loan_id == loan_id)
            )
            await self.session.execute(delete(LoanSurety).where(LoanSurety.loan_id == loan_id))
            if borrower_id is not None:
                self._record(
                    borrower_id,
                    actor,
                    AdjustmentAction.DELETE_LOAN,
                    remarks or "Loan deleted",
                    old_value=snapshot,
                )
            await self.session.flush()
            await self.session.delete(loan)
        logger.info("Deleted loan %s", loan_id)

    async def delete_employee(self, employee_id: UUID, actor: str) -> None:
        """Delete a member; their loans stay, detached from any borrower."""
        async with self._atomic():
            employee = await self._employee(employee_id)
            await self.session.execute(
                update(Loan)
                .where(Loan.borrower_id == employee_id)
                .values(borrower_id=None)
                .execution_options(synchronize_session="fetch")
            )
            await self.session.execute(
                delete(EmployeeGuarantee).where(EmployeeGuarantee.employee_id == employee_id)
            )
            await self.session.execute(
                delete(LoanSurety).where(LoanSurety.employee_id == employee_id)
            )
            await self.session.execute(
                delete(MonthlyTransaction)
                .where(MonthlyTransaction.employee_id == employee_id)
                .execution_options(synchronize_session=False)
            )
            self._record(
                employee_id,
                actor,
                AdjustmentAction.OTHER,
                f"Employee {employee.name} deleted",
                old_value={"emp_code": employee.emp_code, "name": employee.name},
            )
            employee.active_loan_id = None
            await self.session.flush()
            await self.session.delete(employee)
        logger.info("Deleted employee %s", employee_id)

    async def distribute_yearly_dividend(
        self,
        year: str,
        actor: str,
        share_capital: Decimal,
        bank_balance: Decimal,
        cash_in_hand: Decimal,
    ) -> DividendResult:
        """Credit every member's thrift balance with the year's surplus.

        rate = ((active loans outstanding + bank + cash)
                - (total thrift + share capital)) / total thrift
        """
        async with self._atomic():
            result = await self.session.execute(select(Employee).order_by(Employee.created_at))
            employees = list(result.scalars().all())
            total_thrift = sum((e.thrift_balance for e in employees), Decimal("0"))
            if total_thrift == 0:
                raise AdjustmentError("Total thrift balance is 0. Cannot calculate rate.")

            result = await self.session.execute(
                select(func.coalesce(func.sum(Loan.remaining_balance), 0)).where(
                    Loan.status == LoanStatus.ACTIVE.value
                )
            )
            loans_outstanding = Decimal(result.scalar_one())

            outcome = DividendResult(
                year=year,
                total_thrift=total_thrift,
                total_loans_outstanding=loans_outstanding,
                share_capital=Decimal(share_capital),
                bank_balance=Decimal(bank_balance),
                cash_in_hand=Decimal(cash_in_hand),
                rate_per_rupee=Decimal("0"),
            )
            rate = outcome.difference / total_thrift
            outcome.rate_per_rupee = rate.quantize(RATE_PLACES, rounding=ROUND_HALF_UP)

            for employee in employees:
                old_balance = employee.thrift_balance
                dividend = rate * old_balance
                employee.thrift_balance = money(old_balance + dividend)
                self._record(
                    employee.employee_id,
                    actor,
                    AdjustmentAction.YEARLY_THRIFT_UPDATE,
                    f"Yearly thrift update for {year}. Rate per rupee: {outcome.rate_per_rupee}. "
                    f"Dividend: {money(dividend)}",
                    target_field="thrift_balance",
                    old_value=old_balance,
                    new_value=employee.thrift_balance,
                )
                outcome.shares.append(
                    DividendShare(
                        employee_id=employee.employee_id,
                        emp_code=employee.emp_code,
                        name=employee.name,
                        old_balance=money(old_balance),
                        dividend=money(dividend),
                        new_balance=employee.thrift_balance,
                    )
                )
        logger.info("Yearly dividend %s distributed at %s per rupee", year, outcome.rate_per_rupee)
        return outcome

    async def history(self, employee_id: UUID) -> list[AdjustmentHistory]:
        """Adjustment history for an employee, newest first."""
        result = await self.session.execute(
            select(AdjustmentHistory)
            .where(AdjustmentHistory.employee_id == employee_id)
            .order_by(AdjustmentHistory.created_at.desc())
        )
        return list(result.scalars().all())

    async def sync_loans(self, employee_id: UUID | None = None) -> SyncReport:
        """Relink or recreate loans for members flagged "Loan" without an active loan."""
        query = select(Employee.employee_id).where(Employee.active_loan_id.is_(None))
        if employee_id is not None:
            query = query.where(Employee.employee_id == employee_id)
        else:
            query = query.where(
                or_(Employee.loan_status == "Loan", Employee.loan_status == "loan")
            )
        result = await self.session.execute(query)
        ids = list(result.scalars().all())
        return await LoanSynchronizer.for_operator(self.session, self.config).sync(ids)
