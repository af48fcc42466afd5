"""Audit trail models: upload logs and adjustment history."""

from __future__ import annotations

from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, CheckConstraint, ForeignKey, Integer, String, event
from sqlalchemy.orm import Mapped, mapped_column

from thrift_ledger.errors import ImmutableRecordError
from thrift_ledger.models.base import Base, TimestampMixin


class UploadStatus(str, Enum):
    """Outcome of a monthly upload batch."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class UploadLog(Base, TimestampMixin):
    """One record per reconciliation batch. Write-once."""

    __tablename__ = "upload_log"

    upload_log_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    uploaded_by: Mapped[str | None] = mapped_column(String, nullable=True)
    file_name: Mapped[str] = mapped_column(String, nullable=False)
    file_type: Mapped[str] = mapped_column(String, nullable=False, default="monthly_update")
    month: Mapped[str] = mapped_column(String(7), nullable=False)
    total_records: Mapped[int] = mapped_column(Integer, nullable=False)
    success_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failure_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    skipped_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Ordered [{"row": int, "error": str}]
    error_log: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[str] = mapped_column(String, nullable=False, default=UploadStatus.SUCCESS.value)

    __table_args__ = (
        CheckConstraint(
            "status IN ('success', 'partial', 'failed')",
            name="upload_log_status_check",
        ),
        CheckConstraint(
            "file_type = 'monthly_update'",
            name="upload_log_file_type_check",
        ),
    )


@event.listens_for(UploadLog, "before_update")
def _reject_upload_log_update(mapper, connection, target: UploadLog) -> None:
    raise ImmutableRecordError(f"Upload log {target.upload_log_id} is immutable")


class AdjustmentAction(str, Enum):
    """Kinds of administrative adjustment."""

    CREATE_EMPLOYEE = "create_employee"
    UPDATE_SALARY = "update_salary"
    UPDATE_THRIFT = "update_thrift"
    CREATE_LOAN = "create_loan"
    CLOSE_LOAN = "close_loan"
    DELETE_LOAN = "delete_loan"
    ADJUST_BALANCE = "adjust_balance"
    YEARLY_THRIFT_UPDATE = "yearly_thrift_update"
    OTHER = "other"


class AdjustmentHistory(Base, TimestampMixin):
    """Audit record written in the same transaction as an adjustment."""

    __tablename__ = "adjustment_history"

    adjustment_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    # Plain column: history outlives deleted employees
    employee_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    loan_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("loan.loan_id", ondelete="SET NULL"),
        nullable=True,
    )
    actor: Mapped[str] = mapped_column(String, nullable=False)
    action_type: Mapped[str] = mapped_column(String, nullable=False)
    target_field: Mapped[str | None] = mapped_column(String, nullable=True)
    old_value: Mapped[Any] = mapped_column(JSON, nullable=True)
    new_value: Mapped[Any] = mapped_column(JSON, nullable=True)
    remarks: Mapped[str] = mapped_column(String, nullable=False)
