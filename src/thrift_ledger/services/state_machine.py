"""Loan state machine with transition validation."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from thrift_ledger.errors import InvalidTransitionError

if TYPE_CHECKING:
    from thrift_ledger.models import Loan


class LoanStatus(str, Enum):
    """Loan status values."""

    ACTIVE = "active"
    CLOSED = "closed"
    PENDING = "pending"
    REJECTED = "rejected"


def _value(status: str) -> str:
    return status.value if isinstance(status, LoanStatus) else status


class LoanStateMachine:
    """State machine for loan status transitions.

    Allowed transitions:
    - pending → active
    - pending → rejected
    - active → closed (balance reaches zero or the sheet stops listing it)
    - closed → active (reopen: the sheet still shows a balance)

    A balance or EMI refresh on an active loan is not a transition.
    """

    # Define valid transitions: {from_status: [allowed_to_statuses]}
    VALID_TRANSITIONS: dict[str, list[str]] = {
        LoanStatus.PENDING.value: [LoanStatus.ACTIVE.value, LoanStatus.REJECTED.value],
        LoanStatus.ACTIVE.value: [LoanStatus.CLOSED.value],
        LoanStatus.CLOSED.value: [LoanStatus.ACTIVE.value],
        LoanStatus.REJECTED.value: [],  # Terminal state
    }

    # Statuses in which the loan counts as outstanding for its borrower and sureties
    OUTSTANDING = {LoanStatus.ACTIVE.value}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(_value(from_status), [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(_value(from_status), _value(to_status))

    @classmethod
    def is_outstanding(cls, status: str) -> bool:
        return _value(status) in cls.OUTSTANDING

    @classmethod
    def transition(cls, loan: Loan, to_status: str) -> None:
        """Validate and apply a status change on a loan."""
        cls.validate_transition(loan.status, to_status)
        loan.status = LoanStatus(to_status).value
