"""ORM models for the thrift ledger."""

from thrift_ledger.models.audit import (
    AdjustmentAction,
    AdjustmentHistory,
    UploadLog,
    UploadStatus,
)
from thrift_ledger.models.base import Base, TimestampMixin, money
from thrift_ledger.models.employee import Employee, EmployeeGuarantee
from thrift_ledger.models.ledger import SNAPSHOT_FIELDS, ArchivedMonth, MonthlyTransaction
from thrift_ledger.models.loan import Loan, LoanSurety

__all__ = [
    "AdjustmentAction",
    "AdjustmentHistory",
    "ArchivedMonth",
    "Base",
    "Employee",
    "EmployeeGuarantee",
    "Loan",
    "LoanSurety",
    "MonthlyTransaction",
    "SNAPSHOT_FIELDS",
    "TimestampMixin",
    "UploadLog",
    "UploadStatus",
    "money",
]
