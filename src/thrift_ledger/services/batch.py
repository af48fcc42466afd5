"""Monthly upload batch orchestration.

Rows are applied one at a time, in sheet order, each inside its own
savepoint and committed on success. A failing row is rolled back and
logged; the batch carries on. After the rows, one write-once UploadLog is
stored and a best-effort loan sync runs over the touched employees.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from thrift_ledger.config import LedgerConfig
from thrift_ledger.errors import ColumnDetectionError, RowError
from thrift_ledger.ingest import (
    RowFailure,
    RowNormalizer,
    RowWarning,
    column_summary,
    parse_grid,
    require_identity_columns,
    resolve_columns,
    resolve_upload_month,
)
from thrift_ledger.ingest.types import ParsedSheet
from thrift_ledger.models import UploadLog, UploadStatus
from thrift_ledger.services.archival import ArchivalCompactor, ArchiveReport
from thrift_ledger.services.loan_sync import LoanSynchronizer, SyncReport
from thrift_ledger.services.locking_service import LockingService
from thrift_ledger.services.reconciler import LedgerReconciler

logger = logging.getLogger(__name__)


def batch_status(success_count: int, failure_count: int) -> UploadStatus:
    """failed when nothing succeeded, partial when some rows failed."""
    if failure_count > 0 and success_count == 0:
        return UploadStatus.FAILED
    if failure_count > 0:
        return UploadStatus.PARTIAL
    return UploadStatus.SUCCESS


@dataclass
class BatchResult:
    """Everything an upload caller gets back."""

    log: UploadLog
    month: str
    warnings: list[RowWarning] = field(default_factory=list)
    column_summary: dict[str, str | None] = field(default_factory=dict)
    touched_employee_ids: list[UUID] = field(default_factory=list)
    sync: SyncReport | None = None
    archive: ArchiveReport | None = None

    @property
    def status(self) -> str:
        return self.log.status


class UploadService:
    """Runs a monthly upload batch against one session."""

    def __init__(
        self,
        session: AsyncSession,
        config: LedgerConfig | None = None,
        locks: LockingService | None = None,
    ):
        self.session = session
        self.config = config or LedgerConfig()
        self.locks = locks or LockingService(session.bind)

    async def process_grid(
        self,
        grid: Sequence[Sequence[Any]],
        *,
        file_name: str,
        month: str | None = None,
        uploaded_by: str | None = None,
        archive: bool = False,
    ) -> BatchResult:
        """Process a raw cell grid (title rows, header row, data rows)."""
        return await self.process_sheet(
            parse_grid(grid),
            file_name=file_name,
            month=month,
            uploaded_by=uploaded_by,
            archive=archive,
        )

    async def process_sheet(
        self,
        sheet: ParsedSheet,
        *,
        file_name: str,
        month: str | None = None,
        uploaded_by: str | None = None,
        archive: bool = False,
    ) -> BatchResult:
        """Reconcile every row of a parsed sheet for one month.

        Args:
            sheet: Parsed rows with their sheet row numbers
            file_name: Original file name, for the upload log
            month: Explicit YYYY-MM; falls back to the sheet title, then today
            uploaded_by: Actor recorded on the upload log
            archive: Run archival inline after the batch

        Returns:
            BatchResult with the stored UploadLog

        Raises:
            ColumnDetectionError: If the sheet has no rows or lacks both an
                employee-id and a name column
            InvalidMonthError: If the month is not YYYY-MM
        """
        if not sheet.rows:
            raise ColumnDetectionError("Sheet contains no data rows")

        upload_month = resolve_upload_month(month, sheet.title_month)
        mapping = resolve_columns(sheet.headers)
        require_identity_columns(mapping)
        summary = column_summary(mapping)
        logger.info(
            "Processing %s for %s: %d rows, columns %s",
            file_name, upload_month, len(sheet.rows), summary,
        )

        async with self.locks.upload_guard():
            result = await self._run_rows(
                sheet, mapping, upload_month, file_name, uploaded_by, summary
            )

        if result.touched_employee_ids:
            result.sync = await self._auto_sync(result)

        if archive:
            result.archive = await self._archive(result)

        return result

    async def _run_rows(
        self,
        sheet: ParsedSheet,
        mapping: dict[str, str | None],
        month: str,
        file_name: str,
        uploaded_by: str | None,
        summary: dict[str, str | None],
    ) -> BatchResult:
        normalizer = RowNormalizer(mapping)
        reconciler = LedgerReconciler(self.session, self.config)

        warnings: list[RowWarning] = []
        failures: list[RowFailure] = []
        touched: list[UUID] = []
        closed: set[UUID] = set()
        success_count = 0
        skipped_count = 0

        for raw_row, row_number in zip(sheet.rows, sheet.row_numbers):
            if normalizer.should_skip(raw_row):
                skipped_count += 1
                continue

            row, row_warnings = normalizer.normalize(raw_row, row_number)
            warnings.extend(row_warnings)

            try:
                async with self.session.begin_nested():
                    outcome = await reconciler.apply_row(row, month)
                    employee_id = outcome.employee.employee_id
                    loan_closed = outcome.loan_closed
                await self.session.commit()
            except RowError as e:
                logger.warning("Row %d failed: %s", row_number, e)
                failures.append(RowFailure(row_number, str(e)))
                continue
            except Exception as e:
                logger.exception("Row %d failed unexpectedly", row_number)
                await self.session.rollback()
                failures.append(RowFailure(row_number, str(e) or type(e).__name__))
                continue

            success_count += 1
            if employee_id not in touched:
                touched.append(employee_id)
            if loan_closed:
                closed.add(employee_id)

        status = batch_status(success_count, len(failures))
        log = UploadLog(
            upload_log_id=uuid4(),
            uploaded_by=uploaded_by,
            file_name=file_name,
            month=month,
            total_records=len(sheet.rows),
            success_count=success_count,
            failure_count=len(failures),
            skipped_count=skipped_count,
            error_log=[failure.to_dict() for failure in failures],
            status=status.value,
        )
        self.session.add(log)
        await self.session.commit()

        logger.info(
            "Upload %s for %s finished: %s (%d ok, %d failed, %d skipped)",
            file_name, month, status.value, success_count, len(failures), skipped_count,
        )
        return BatchResult(
            log=log,
            month=month,
            warnings=warnings,
            column_summary=summary,
            # Loans closed by this sheet stay closed
            touched_employee_ids=[i for i in touched if i not in closed],
        )

    async def _auto_sync(self, result: BatchResult) -> SyncReport | None:
        try:
            return await LoanSynchronizer(self.session, self.config).sync(
                result.touched_employee_ids, month=result.month
            )
        except Exception:
            logger.exception("Post-upload loan sync failed for %s", result.month)
            await self.session.rollback()
            await self.session.refresh(result.log)
            return None

    async def _archive(self, result: BatchResult) -> ArchiveReport:
        try:
            return await ArchivalCompactor(self.session, self.config).run()
        except Exception as e:
            logger.exception("Inline archival failed after upload for %s", result.month)
            await self.session.rollback()
            await self.session.refresh(result.log)
            return ArchiveReport(errors=[{"month": None, "error": str(e) or type(e).__name__}])
