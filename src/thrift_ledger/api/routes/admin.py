"""Administrative endpoints: audited employee and loan adjustments."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Response, status
from sqlalchemy import select

from thrift_ledger.api.dependencies import Actor, DbSession, Ledger
from thrift_ledger.api.schemas import (
    AdjustmentHistoryResponse,
    DividendRequest,
    DividendResponse,
    DividendShareResponse,
    EmployeeCreate,
    EmployeeResponse,
    ErrorResponse,
    LoanAdjustment,
    LoanCloseRequest,
    LoanCreate,
    LoanResponse,
    SalaryAdjustment,
    SyncLoansRequest,
    SyncReportResponse,
    ThriftAdjustment,
    TransactionResponse,
)
from thrift_ledger.errors import NotFoundError
from thrift_ledger.models import Employee, MonthlyTransaction
from thrift_ledger.services.adjustments import AdjustmentService

router = APIRouter(prefix="/admin", tags=["admin"])

NOT_FOUND = {404: {"model": ErrorResponse}}
REJECTED = {400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}


# ============================================================================
# Employees
# ============================================================================


@router.post(
    "/employees",
    response_model=EmployeeResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def create_employee(
    db: DbSession,
    actor: Actor,
    config: Ledger,
    payload: EmployeeCreate,
) -> EmployeeResponse:
    employee = await AdjustmentService(db, config).create_employee(
        actor=actor, **payload.model_dump()
    )
    return EmployeeResponse.model_validate(employee)


@router.get("/employees/{employee_id}", response_model=EmployeeResponse, responses=NOT_FOUND)
async def get_employee(
    db: DbSession,
    employee_id: Annotated[UUID, Path()],
) -> EmployeeResponse:
    employee = await db.get(Employee, employee_id)
    if employee is None:
        raise NotFoundError("Employee", employee_id)
    return EmployeeResponse.model_validate(employee)


@router.delete(
    "/employees/{employee_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=NOT_FOUND,
)
async def delete_employee(
    db: DbSession,
    actor: Actor,
    config: Ledger,
    employee_id: Annotated[UUID, Path()],
) -> Response:
    await AdjustmentService(db, config).delete_employee(employee_id, actor)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/employees/{employee_id}/adjust-salary",
    response_model=EmployeeResponse,
    responses=REJECTED,
)
async def adjust_salary(
    db: DbSession,
    actor: Actor,
    config: Ledger,
    employee_id: Annotated[UUID, Path()],
    payload: SalaryAdjustment,
) -> EmployeeResponse:
    employee = await AdjustmentService(db, config).adjust_salary(
        employee_id, payload.new_salary, actor, payload.remarks
    )
    return EmployeeResponse.model_validate(employee)


@router.post(
    "/employees/{employee_id}/adjust-thrift",
    response_model=EmployeeResponse,
    responses=REJECTED,
)
async def adjust_thrift(
    db: DbSession,
    actor: Actor,
    config: Ledger,
    employee_id: Annotated[UUID, Path()],
    payload: ThriftAdjustment,
) -> EmployeeResponse:
    employee = await AdjustmentService(db, config).adjust_thrift(
        employee_id,
        actor,
        contribution=payload.thrift_contribution,
        balance=payload.thrift_balance,
        remarks=payload.remarks,
    )
    return EmployeeResponse.model_validate(employee)


@router.post(
    "/employees/{employee_id}/adjust-loan",
    response_model=LoanResponse,
    responses=REJECTED,
)
async def adjust_loan(
    db: DbSession,
    actor: Actor,
    config: Ledger,
    employee_id: Annotated[UUID, Path()],
    payload: LoanAdjustment,
) -> LoanResponse:
    loan = await AdjustmentService(db, config).adjust_loan(
        employee_id,
        actor,
        loan_amount=payload.loan_amount,
        emi=payload.emi,
        interest_rate=payload.interest_rate,
        remarks=payload.remarks,
    )
    return LoanResponse.model_validate(loan)


@router.get(
    "/employees/{employee_id}/history",
    response_model=list[AdjustmentHistoryResponse],
)
async def adjustment_history(
    db: DbSession,
    config: Ledger,
    employee_id: Annotated[UUID, Path()],
) -> list[AdjustmentHistoryResponse]:
    entries = await AdjustmentService(db, config).history(employee_id)
    return [AdjustmentHistoryResponse.model_validate(entry) for entry in entries]


@router.get(
    "/employees/{employee_id}/transactions",
    response_model=list[TransactionResponse],
)
async def employee_transactions(
    db: DbSession,
    employee_id: Annotated[UUID, Path()],
) -> list[TransactionResponse]:
    """Detailed transactions still inside the retention window, newest first."""
    result = await db.execute(
        select(MonthlyTransaction)
        .where(MonthlyTransaction.employee_id == employee_id)
        .order_by(MonthlyTransaction.month.desc())
    )
    return [TransactionResponse.model_validate(tx) for tx in result.scalars().all()]


# ============================================================================
# Loans
# ============================================================================


@router.post(
    "/loans",
    response_model=LoanResponse,
    status_code=status.HTTP_201_CREATED,
    responses=REJECTED,
)
async def create_loan(
    db: DbSession,
    actor: Actor,
    config: Ledger,
    payload: LoanCreate,
) -> LoanResponse:
    loan = await AdjustmentService(db, config).create_loan(
        payload.borrower_id,
        actor,
        loan_amount=payload.loan_amount,
        interest_rate=payload.interest_rate,
        emi=payload.emi,
        surety_ids=payload.surety_ids,
        remarks=payload.remarks,
    )
    return LoanResponse.model_validate(loan)


@router.post("/loans/sync", response_model=SyncReportResponse)
async def sync_loans(
    db: DbSession,
    config: Ledger,
    payload: SyncLoansRequest | None = None,
) -> SyncReportResponse:
    """Relink or recreate loans for members marked as having one."""
    employee_id = payload.employee_id if payload else None
    report = await AdjustmentService(db, config).sync_loans(employee_id)
    return SyncReportResponse(**report.to_dict())


@router.post("/loans/{loan_id}/close", response_model=LoanResponse, responses=REJECTED)
async def close_loan(
    db: DbSession,
    actor: Actor,
    config: Ledger,
    loan_id: Annotated[UUID, Path()],
    payload: LoanCloseRequest | None = None,
) -> LoanResponse:
    loan = await AdjustmentService(db, config).close_loan(
        loan_id, actor, payload.remarks if payload else None
    )
    return LoanResponse.model_validate(loan)


@router.delete(
    "/loans/{loan_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=NOT_FOUND,
)
async def delete_loan(
    db: DbSession,
    actor: Actor,
    config: Ledger,
    loan_id: Annotated[UUID, Path()],
) -> Response:
    await AdjustmentService(db, config).delete_loan(loan_id, actor)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Thrift
# ============================================================================


@router.post("/thrift/yearly-dividend", response_model=DividendResponse, responses=REJECTED)
async def yearly_dividend(
    db: DbSession,
    actor: Actor,
    config: Ledger,
    payload: DividendRequest,
) -> DividendResponse:
    """Credit the year's surplus to every member's thrift balance."""
    result = await AdjustmentService(db, config).distribute_yearly_dividend(
        payload.year,
        actor,
        share_capital=payload.share_capital,
        bank_balance=payload.bank_balance,
        cash_in_hand=payload.cash_in_hand,
    )
    return DividendResponse(
        year=result.year,
        total_thrift=result.total_thrift,
        total_loans_outstanding=result.total_loans_outstanding,
        share_capital=result.share_capital,
        bank_balance=result.bank_balance,
        cash_in_hand=result.cash_in_hand,
        society_assets=result.society_assets,
        society_capital=result.society_capital,
        difference=result.difference,
        rate_per_rupee=result.rate_per_rupee,
        shares=[DividendShareResponse.model_validate(share) for share in result.shares],
    )
