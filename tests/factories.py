"""Builders for test data: employees, loans, transactions and sheet rows."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from thrift_ledger.ingest import ParsedSheet
from thrift_ledger.models import (
    Employee,
    EmployeeGuarantee,
    Loan,
    LoanSurety,
    MonthlyTransaction,
)


async def create_employee(
    session: AsyncSession,
    name: str,
    emp_code: str | None = None,
    *,
    salary: str = "0",
    thrift_balance: str = "0",
    thrift_contribution: str = "0",
    loan_status: str = "",
    **extra: Any,
) -> Employee:
    employee = Employee(
        employee_id=uuid4(),
        name=name,
        emp_code=emp_code,
        salary=Decimal(salary),
        thrift_balance=Decimal(thrift_balance),
        thrift_contribution=Decimal(thrift_contribution),
        loan_status=loan_status,
        **extra,
    )
    session.add(employee)
    await session.flush()
    return employee


async def create_loan(
    session: AsyncSession,
    borrower: Employee,
    *,
    balance: str = "10000",
    emi: str = "1000",
    loan_amount: str | None = None,
    status: str = "active",
    link: bool = True,
) -> Loan:
    loan = Loan(
        loan_id=uuid4(),
        borrower_id=borrower.employee_id,
        loan_amount=Decimal(loan_amount or balance),
        interest_rate=Decimal("12"),
        emi=Decimal(emi),
        remaining_balance=Decimal(balance),
        total_interest_paid=Decimal("0"),
        status=status,
        surety_emp_codes=[],
    )
    session.add(loan)
    await session.flush()
    if link:
        borrower.active_loan_id = loan.loan_id
        borrower.loan_status = "Loan"
        await session.flush()
    return loan


async def create_transaction(
    session: AsyncSession,
    employee: Employee,
    month: str,
    **values: str,
) -> MonthlyTransaction:
    transaction = MonthlyTransaction(
        transaction_id=uuid4(),
        employee_id=employee.employee_id,
        month=month,
        **{key: Decimal(value) for key, value in values.items()},
    )
    session.add(transaction)
    await session.flush()
    return transaction


def sheet_row(
    serial: int | None,
    emp_code: Any,
    name: str,
    *,
    thrift: Any = None,
    cb_thrift: Any = None,
    loan: Any = None,
    repayment: Any = None,
    interest: Any = None,
    loan_amount: Any = None,
    total: Any = None,
    phone: Any = None,
    sureties: Iterable[Any] = (),
) -> dict[str, Any]:
    """One row keyed by the society's usual sheet headers; None cells are left out."""
    row: dict[str, Any] = {"S.No": serial, "Emp. ID": emp_code, "Name": name}
    optional = {
        "Monthly Thrift Amount": thrift,
        "CB Thrift Amount": cb_thrift,
        "Loan": loan,
        "Loan Re payment": repayment,
        "Intrest": interest,
        "Loan Amount": loan_amount,
        "Total Amount": total,
        "Phone": phone,
    }
    row.update({key: value for key, value in optional.items() if value is not None})
    for slot, code in enumerate(sureties, start=1):
        row[f"surity{slot} Emp .ID"] = code
    return {key: value for key, value in row.items() if value is not None}


def sheet(*rows: dict[str, Any], header_row: int = 0) -> ParsedSheet:
    return ParsedSheet.from_rows(list(rows), header_row=header_row)


async def guaranteed_loans(session: AsyncSession, employee_id: UUID) -> set[UUID]:
    result = await session.execute(
        select(EmployeeGuarantee.loan_id).where(EmployeeGuarantee.employee_id == employee_id)
    )
    return set(result.scalars().all())


async def surety_ids(session: AsyncSession, loan_id: UUID) -> list[UUID]:
    result = await session.execute(
        select(LoanSurety.employee_id)
        .where(LoanSurety.loan_id == loan_id)
        .order_by(LoanSurety.position)
    )
    return list(result.scalars().all())


async def count(session: AsyncSession, model: type, *criteria: Any) -> int:
    query = select(func.count()).select_from(model)
    if criteria:
        query = query.where(*criteria)
    return (await session.execute(query)).scalar_one()
