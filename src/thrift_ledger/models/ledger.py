"""Monthly transaction and archive models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from thrift_ledger.models.base import Base, TimestampMixin, UpdatedAtMixin, utcnow

# Transaction columns copied into archived employee rows
SNAPSHOT_FIELDS = (
    "salary",
    "thrift_deduction",
    "loan_emi",
    "interest_payment",
    "principal_repayment",
    "loan_amount",
    "total_deduction",
    "paid_amount",
    "net_salary",
    "cb_thrift_balance",
    "loan_balance",
)


class MonthlyTransaction(Base, TimestampMixin, UpdatedAtMixin):
    """One employee's deductions for one month.

    Written only by the reconciler, as an upsert on (employee_id, month).
    `cb_thrift_balance` and `loan_balance` freeze the ledger as of that
    month and are not touched by later corrections.
    """

    __tablename__ = "monthly_transaction"

    transaction_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    month: Mapped[str] = mapped_column(String(7), nullable=False, index=True)
    salary: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    thrift_deduction: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    loan_emi: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    interest_payment: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    principal_repayment: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    # Full installment (principal + interest) from the sheet's "Loan Amount" column
    loan_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_deduction: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    paid_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    net_salary: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    cb_thrift_balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    loan_balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    remarks: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint("employee_id", "month", name="monthly_transaction_employee_month_unique"),
    )


class ArchivedMonth(Base, TimestampMixin):
    """Summary of one compacted month, replacing its raw transactions."""

    __tablename__ = "archived_month"

    archived_month_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    month: Mapped[str] = mapped_column(String(7), nullable=False, unique=True)
    archived_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    employee_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_thrift: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_emi: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_interest: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_deduction: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    # Denormalized employee rows: emp_code, name, department + SNAPSHOT_FIELDS as strings
    employees: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
