"""Ledger services."""

from thrift_ledger.services.adjustments import AdjustmentService, DividendResult
from thrift_ledger.services.archival import ArchivalCompactor, ArchiveReport
from thrift_ledger.services.batch import BatchResult, UploadService, batch_status
from thrift_ledger.services.identity import IdentityResolver
from thrift_ledger.services.loan_discovery import LoanDiscovery, LoanMatch, LoanSource
from thrift_ledger.services.loan_sync import LoanSynchronizer, SyncReport
from thrift_ledger.services.locking_service import LockingService
from thrift_ledger.services.reconciler import LedgerReconciler, RowOutcome
from thrift_ledger.services.state_machine import LoanStateMachine, LoanStatus

__all__ = [
    "AdjustmentService",
    "ArchivalCompactor",
    "ArchiveReport",
    "BatchResult",
    "DividendResult",
    "IdentityResolver",
    "LedgerReconciler",
    "LoanDiscovery",
    "LoanMatch",
    "LoanSource",
    "LoanStateMachine",
    "LoanStatus",
    "LoanSynchronizer",
    "LockingService",
    "RowOutcome",
    "SyncReport",
    "UploadService",
    "batch_status",
]
