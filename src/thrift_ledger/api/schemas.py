"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

MONTH_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"


class ErrorResponse(BaseModel):
    """Error body returned by the exception handlers."""

    detail: str
    code: str


# ============================================================================
# Upload schemas
# ============================================================================


class MonthlyUploadRequest(BaseModel):
    """A parsed monthly sheet.

    Send either `rows` (header -> cell dicts, as produced by a spreadsheet
    parser) or `grid` (raw cells including any title rows).
    """

    file_name: str = Field(min_length=1)
    month: str | None = Field(default=None, pattern=MONTH_PATTERN)
    uploaded_by: str | None = None
    rows: list[dict[str, Any]] | None = None
    header_row: int = Field(default=0, ge=0)
    grid: list[list[Any]] | None = None
    archive: bool = True

    @model_validator(mode="after")
    def check_payload(self) -> "MonthlyUploadRequest":
        if (self.rows is None) == (self.grid is None):
            raise ValueError("Provide exactly one of rows or grid")
        return self


class UploadLogResponse(BaseModel):
    """Stored upload log."""

    model_config = ConfigDict(from_attributes=True)

    upload_log_id: UUID
    uploaded_by: str | None = None
    file_name: str
    file_type: str
    month: str
    total_records: int
    success_count: int
    failure_count: int
    skipped_count: int
    error_log: list[dict[str, Any]]
    status: str
    created_at: datetime


class UploadLogListResponse(BaseModel):
    items: list[UploadLogResponse]
    total: int
    page: int
    page_size: int


class RowWarningResponse(BaseModel):
    row: int
    column: str
    issue: str


class SyncReportResponse(BaseModel):
    linked: int
    created: int
    skipped: int
    errors: list[dict[str, Any]] = Field(default_factory=list)


class MonthlyUploadResponse(BaseModel):
    """Result of a monthly upload."""

    message: str
    log: UploadLogResponse
    warnings: list[RowWarningResponse]
    column_summary: dict[str, str | None]
    uploaded_month: str
    sync: SyncReportResponse | None = None


# ============================================================================
# Archive schemas
# ============================================================================


class ArchiveRunRequest(BaseModel):
    retention_months: int | None = Field(default=None, ge=1)


class ArchiveRunResponse(BaseModel):
    retained: list[str]
    archived: list[str]
    cleaned: list[str]
    errors: list[dict[str, Any]]


class ArchivedMonthResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    archived_month_id: UUID
    month: str
    archived_at: datetime
    employee_count: int
    total_thrift: Decimal
    total_emi: Decimal
    total_interest: Decimal
    total_deduction: Decimal
    employees: list[dict[str, Any]]


# ============================================================================
# Employee and loan schemas
# ============================================================================


class EmployeeCreate(BaseModel):
    name: str = Field(min_length=1)
    emp_code: str | None = None
    email: str | None = None
    department: str | None = None
    designation: str | None = None
    phone: str | None = None
    salary: Decimal = Field(default=Decimal("0"), ge=0)
    thrift_contribution: Decimal = Field(default=Decimal("0"), ge=0)
    thrift_balance: Decimal = Field(default=Decimal("0"), ge=0)


class EmployeeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: UUID
    emp_code: str | None = None
    name: str
    email: str | None = None
    department: str | None = None
    designation: str | None = None
    phone: str | None = None
    salary: Decimal
    thrift_contribution: Decimal
    thrift_balance: Decimal
    loan_status: str
    active_loan_id: UUID | None = None


class SalaryAdjustment(BaseModel):
    new_salary: Decimal = Field(ge=0)
    remarks: str | None = None


class ThriftAdjustment(BaseModel):
    thrift_contribution: Decimal | None = Field(default=None, ge=0)
    thrift_balance: Decimal | None = Field(default=None, ge=0)
    remarks: str | None = None


class LoanAdjustment(BaseModel):
    loan_amount: Decimal | None = Field(default=None, gt=0)
    emi: Decimal | None = Field(default=None, ge=0)
    interest_rate: Decimal | None = Field(default=None, ge=0)
    remarks: str | None = None


class LoanCreate(BaseModel):
    borrower_id: UUID
    loan_amount: Decimal = Field(gt=0)
    interest_rate: Decimal = Field(ge=0)
    emi: Decimal = Field(ge=0)
    surety_ids: list[UUID] = Field(default_factory=list, max_length=6)
    remarks: str | None = None


class LoanCloseRequest(BaseModel):
    remarks: str | None = None


class LoanResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    loan_id: UUID
    borrower_id: UUID | None = None
    surety_emp_codes: list[str]
    loan_amount: Decimal
    interest_rate: Decimal
    emi: Decimal
    remaining_balance: Decimal
    total_interest_paid: Decimal
    status: str
    start_date: date | None = None
    end_date: date | None = None


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    transaction_id: UUID
    month: str
    salary: Decimal
    thrift_deduction: Decimal
    loan_emi: Decimal
    interest_payment: Decimal
    principal_repayment: Decimal
    loan_amount: Decimal
    total_deduction: Decimal
    paid_amount: Decimal
    net_salary: Decimal
    cb_thrift_balance: Decimal
    loan_balance: Decimal


class AdjustmentHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    adjustment_id: UUID
    employee_id: UUID
    loan_id: UUID | None = None
    actor: str
    action_type: str
    target_field: str | None = None
    old_value: Any = None
    new_value: Any = None
    remarks: str
    created_at: datetime


class DividendRequest(BaseModel):
    year: str = Field(pattern=r"^\d{4}$")
    share_capital: Decimal
    bank_balance: Decimal
    cash_in_hand: Decimal


class DividendShareResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: UUID
    emp_code: str | None = None
    name: str
    old_balance: Decimal
    dividend: Decimal
    new_balance: Decimal
    changed: bool


class DividendResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    year: str
    total_thrift: Decimal
    total_loans_outstanding: Decimal
    share_capital: Decimal
    bank_balance: Decimal
    cash_in_hand: Decimal
    society_assets: Decimal
    society_capital: Decimal
    difference: Decimal
    rate_per_rupee: Decimal
    shares: list[DividendShareResponse]


class SyncLoansRequest(BaseModel):
    employee_id: UUID | None = None
