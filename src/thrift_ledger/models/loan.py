"""Loan and surety models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, CheckConstraint, Date, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from thrift_ledger.models.base import Base, TimestampMixin, UpdatedAtMixin


class Loan(Base, TimestampMixin, UpdatedAtMixin):
    """Member loan.

    Closed loans are never deleted by reconciliation; they keep their
    balances, interest totals and surety list as history.
    """

    __tablename__ = "loan"

    loan_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    # Nullable only so that deleting an employee can detach the loan
    borrower_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    # Raw surety codes from the sheet, kept for display when a code is unresolvable
    surety_emp_codes: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    loan_amount: Mapped[Decimal] = mapped_column(nullable=False)
    interest_rate: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False)
    emi: Mapped[Decimal] = mapped_column(nullable=False)
    remaining_balance: Mapped[Decimal] = mapped_column(nullable=False)
    total_interest_paid: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True, default=date.today)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'closed', 'pending', 'rejected')",
            name="loan_status_check",
        ),
        CheckConstraint("remaining_balance >= 0", name="loan_remaining_balance_check"),
    )

    def snapshot(self) -> dict[str, Any]:
        """Plain values for audit records."""
        return {
            "loan_amount": str(self.loan_amount),
            "interest_rate": str(self.interest_rate),
            "emi": str(self.emi),
            "remaining_balance": str(self.remaining_balance),
            "status": self.status,
        }


class LoanSurety(Base):
    """Ordered surety (co-guarantor) of a loan."""

    __tablename__ = "loan_surety"

    loan_id: Mapped[UUID] = mapped_column(
        ForeignKey("loan.loan_id", ondelete="CASCADE"),
        primary_key=True,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        primary_key=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
