"""Employee (society member) models."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from thrift_ledger.models.base import Base, TimestampMixin, UpdatedAtMixin


class Employee(Base, TimestampMixin, UpdatedAtMixin):
    """Society member with thrift savings and at most one active loan.

    `emp_code` is the external code printed on the monthly sheet. It is
    optional and may be numeric ("19") or alphanumeric ("VT-1").
    """

    __tablename__ = "employee"

    employee_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    emp_code: Mapped[str | None] = mapped_column(String, nullable=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    department: Mapped[str | None] = mapped_column(String, nullable=True)
    designation: Mapped[str | None] = mapped_column(String, nullable=True)
    phone: Mapped[str | None] = mapped_column(String, nullable=True)
    salary: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    thrift_contribution: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    thrift_balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    # Free-text flag from imports, used when no structured loan exists ("Loan", "No Loan")
    loan_status: Mapped[str] = mapped_column(String, nullable=False, default="")
    active_loan_id: Mapped[UUID | None] = mapped_column(
        ForeignKey(
            "loan.loan_id",
            ondelete="SET NULL",
            use_alter=True,
            name="employee_active_loan_fk",
        ),
        nullable=True,
    )

    __table_args__ = (
        UniqueConstraint("emp_code", name="employee_emp_code_unique"),
        UniqueConstraint("email", name="employee_email_unique"),
    )

    def __repr__(self) -> str:
        return f"<Employee {self.emp_code or '-'} {self.name!r}>"


class EmployeeGuarantee(Base, TimestampMixin):
    """A loan the employee currently guarantees as a surety.

    Kept apart from the loan's own surety list so closing a loan can clear
    guarantees while the loan keeps its surety history.
    """

    __tablename__ = "employee_guarantee"

    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        primary_key=True,
    )
    loan_id: Mapped[UUID] = mapped_column(
        ForeignKey("loan.loan_id", ondelete="CASCADE"),
        primary_key=True,
    )
