"""Thrift ledger command line interface.

Provides operational tools for:
- Monthly uploads from CSV or JSON sheet exports
- Archival of months outside the retention window
- Loan link repair
- Schema creation

Usage:
    python -m thrift_ledger.cli upload october.csv --month 2025-10
    python -m thrift_ledger.cli archive --retention-months 4
    python -m thrift_ledger.cli sync-loans
    python -m thrift_ledger.cli init-db
"""

from __future__ import annotations

import argparse
import asyncio
import csv
import json
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, TypeVar
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from thrift_ledger.config import LedgerConfig, configure_logging, get_settings
from thrift_ledger.database import build_engine, build_session_factory, create_schema
from thrift_ledger.errors import LedgerError
from thrift_ledger.ingest import ParsedSheet
from thrift_ledger.services.adjustments import AdjustmentService
from thrift_ledger.services.archival import ArchivalCompactor
from thrift_ledger.services.batch import BatchResult, UploadService

T = TypeVar("T")


def parse_uuid(s: str) -> UUID:
    """Parse UUID string."""
    return UUID(s)


def read_sheet_file(path: Path) -> list[list[Any]] | list[dict[str, Any]]:
    """Load a sheet export.

    CSV files are read as a raw grid (title rows allowed). JSON files hold
    either a list of header -> value objects or a list of cell lists.
    """
    if path.suffix.lower() == ".json":
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, list):
            raise ValueError(f"{path}: expected a JSON list of rows")
        return data

    with path.open(newline="", encoding="utf-8-sig") as handle:
        return [row for row in csv.reader(handle)]


class LedgerCli:
    """Thrift ledger command line interface."""

    def __init__(self) -> None:
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m thrift_ledger.cli",
            description="Thrift ledger operational tools",
        )
        parser.add_argument(
            "--database-url",
            type=str,
            help="Database URL (default: $DATABASE_URL)",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        upload = subparsers.add_parser("upload", help="Reconcile a monthly sheet")
        upload.add_argument("file", type=Path, help="CSV or JSON sheet export")
        upload.add_argument("--month", type=str, help="Target month (YYYY-MM)")
        upload.add_argument("--uploaded-by", type=str, help="Actor recorded on the log")
        upload.add_argument(
            "--archive",
            action="store_true",
            help="Run archival after the upload",
        )
        upload.add_argument("--json", action="store_true", help="Print the result as JSON")

        archive = subparsers.add_parser("archive", help="Compact old months")
        archive.add_argument(
            "--retention-months",
            type=int,
            help="Months of detailed transactions to keep (default: $ARCHIVE_RETENTION_MONTHS)",
        )

        sync = subparsers.add_parser("sync-loans", help="Relink or recreate missing loans")
        sync.add_argument("--employee-id", type=parse_uuid, help="Only this employee")

        subparsers.add_parser("init-db", help="Create all tables")

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        settings = get_settings()
        configure_logging(settings.log_level)
        self.database_url = parsed.database_url or settings.database_url
        self.config = settings.ledger_config()

        handlers: dict[str, Callable[[argparse.Namespace], int]] = {
            "upload": self._cmd_upload,
            "archive": self._cmd_archive,
            "sync-loans": self._cmd_sync_loans,
            "init-db": self._cmd_init_db,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        try:
            return handler(parsed)
        except LedgerError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 2

    def _with_session(self, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async def runner() -> T:
            engine = build_engine(self.database_url)
            try:
                factory = build_session_factory(engine)
                async with factory() as session:
                    return await work(session)
            finally:
                await engine.dispose()

        return asyncio.run(runner())

    def _cmd_upload(self, args: argparse.Namespace) -> int:
        """Reconcile a sheet export."""
        data = read_sheet_file(args.file)
        config: LedgerConfig = self.config

        async def work(session: AsyncSession) -> BatchResult:
            service = UploadService(session, config)
            if data and all(isinstance(row, dict) for row in data):
                return await service.process_sheet(
                    ParsedSheet.from_rows(data),  # type: ignore[arg-type]
                    file_name=args.file.name,
                    month=args.month,
                    uploaded_by=args.uploaded_by,
                    archive=args.archive,
                )
            return await service.process_grid(
                data,  # type: ignore[arg-type]
                file_name=args.file.name,
                month=args.month,
                uploaded_by=args.uploaded_by,
                archive=args.archive,
            )

        result = self._with_session(work)
        log = result.log

        if args.json:
            print(json.dumps({
                "month": result.month,
                "status": log.status,
                "total_records": log.total_records,
                "success_count": log.success_count,
                "failure_count": log.failure_count,
                "skipped_count": log.skipped_count,
                "errors": log.error_log,
                "warnings": [w.to_dict() for w in result.warnings],
                "column_summary": result.column_summary,
            }, indent=2))
        else:
            print(f"Month: {result.month}")
            print(f"Status: {log.status}")
            print(
                f"  {log.success_count} reconciled, {log.failure_count} failed, "
                f"{log.skipped_count} skipped of {log.total_records}"
            )
            for error in log.error_log:
                print(f"  Row {error['row']}: {error['error']}")
            if result.warnings:
                print(f"  {len(result.warnings)} warning(s)")

        return 0 if log.status != "failed" else 1

    def _cmd_archive(self, args: argparse.Namespace) -> int:
        """Compact months outside the retention window."""
        config: LedgerConfig = self.config

        async def work(session: AsyncSession):
            return await ArchivalCompactor(
                session, config, retention_months=args.retention_months
            ).run()

        report = self._with_session(work)
        print(f"Kept: {', '.join(report.retained) or '-'}")
        print(f"Archived: {', '.join(report.archived) or '-'}")
        print(f"Cleaned: {', '.join(report.cleaned) or '-'}")
        for error in report.errors:
            print(f"  {error['month']}: {error['error']}", file=sys.stderr)
        return 0 if not report.errors else 1

    def _cmd_sync_loans(self, args: argparse.Namespace) -> int:
        """Relink or recreate loans for members flagged as having one."""
        config: LedgerConfig = self.config

        async def work(session: AsyncSession):
            return await AdjustmentService(session, config).sync_loans(args.employee_id)

        report = self._with_session(work)
        print(f"Linked: {report.linked}, created: {report.created}, skipped: {report.skipped}")
        for error in report.errors:
            print(f"  {error['emp_code']}: {error['error']}", file=sys.stderr)
        return 0 if not report.errors else 1

    def _cmd_init_db(self, args: argparse.Namespace) -> int:
        """Create all tables."""

        async def runner() -> None:
            engine = build_engine(self.database_url)
            try:
                await create_schema(engine)
            finally:
                await engine.dispose()

        asyncio.run(runner())
        print("Schema created.")
        return 0


def main() -> int:
    """CLI entry point."""
    cli = LedgerCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
