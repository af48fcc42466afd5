"""Exception hierarchy for the ledger engine."""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for all ledger engine errors."""


class ColumnDetectionError(LedgerError):
    """Raised when a sheet cannot be processed at all.

    Batch-fatal: nothing is reconciled and no row-level log is produced.
    """


class InvalidMonthError(LedgerError):
    """Raised when a month identifier is not in YYYY-MM form."""

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Invalid month '{value}', expected YYYY-MM")


class RowError(LedgerError):
    """Raised when a single sheet row cannot be applied.

    Row-fatal: recorded in the upload log, the batch continues.
    """

    def __init__(self, message: str, row: int | None = None):
        self.row = row
        super().__init__(message)


class EmployeeNotFoundError(RowError):
    """Raised when a row cannot be matched to an employee."""

    def __init__(self, emp_code: str | None, name: str | None, row: int | None = None):
        self.emp_code = emp_code
        self.name = name
        super().__init__(
            f'Employee not found (Emp.ID: {emp_code or "N/A"}, Name: "{name or "N/A"}")',
            row=row,
        )


class InvalidTransitionError(LedgerError):
    """Raised when an invalid loan status transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class AdjustmentError(LedgerError):
    """Raised when an administrative adjustment is rejected."""


class NotFoundError(AdjustmentError):
    """Raised when the target of an administrative operation does not exist."""

    def __init__(self, entity: str, entity_id: object):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class ImmutableRecordError(LedgerError):
    """Raised when a write-once audit record is modified."""


class UploadInProgressError(LedgerError):
    """Raised when another process holds the upload lock."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"An upload is already in progress ({key})")
