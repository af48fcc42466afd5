"""Archival compaction of months outside the retention window.

Only the newest N months keep their detailed transactions. Older months
are summarized into one ArchivedMonth each and their raw rows deleted.
Re-runs are safe: an already archived month only has lingering raw rows
cleaned up. Each month runs in its own savepoint, so one failing month
does not block the others.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any
from uuid import uuid4

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from thrift_ledger.config import LedgerConfig
from thrift_ledger.models import (
    SNAPSHOT_FIELDS,
    ArchivedMonth,
    Employee,
    MonthlyTransaction,
    money,
)

logger = logging.getLogger(__name__)


@dataclass
class ArchiveReport:
    """Result of an archival run."""

    retained: list[str] = field(default_factory=list)
    archived: list[str] = field(default_factory=list)
    cleaned: list[str] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "retained": list(self.retained),
            "archived": list(self.archived),
            "cleaned": list(self.cleaned),
            "errors": list(self.errors),
        }


class ArchivalCompactor:
    """Compacts transactions older than the retention window."""

    def __init__(
        self,
        session: AsyncSession,
        config: LedgerConfig | None = None,
        retention_months: int | None = None,
    ):
        self.session = session
        self.config = config or LedgerConfig()
        self.retention_months = retention_months or self.config.archive_retention_months

    async def months_with_transactions(self) -> list[str]:
        """Distinct transaction months, newest first."""
        result = await self.session.execute(
            select(MonthlyTransaction.month).distinct().order_by(MonthlyTransaction.month.desc())
        )
        return list(result.scalars().all())

    async def run(self) -> ArchiveReport:
        """Archive every month past the retention window. Never raises for a single month."""
        report = ArchiveReport()
        months = await self.months_with_transactions()
        report.retained = months[: self.retention_months]

        for month in months[self.retention_months:]:
            try:
                async with self.session.begin_nested():
                    summarized = await self.archive_month(month)
                await self.session.commit()
            except Exception as e:
                logger.exception("Archival failed for %s", month)
                report.errors.append({"month": month, "error": str(e)})
                continue

            if summarized:
                report.archived.append(month)
            else:
                report.cleaned.append(month)

        if report.archived or report.cleaned:
            logger.info(
                "Archival: archived %s, cleaned %s, kept %s",
                report.archived, report.cleaned, report.retained,
            )
        return report

    async def archive_month(self, month: str) -> bool:
        """Summarize and delete one month's transactions.

        Returns True if a summary was written, False if the month was
        already archived and only its raw rows were removed.
        """
        result = await self.session.execute(
            select(ArchivedMonth.archived_month_id).where(ArchivedMonth.month == month)
        )
        if result.scalar_one_or_none() is not None:
            await self._delete_transactions(month)
            return False

        result = await self.session.execute(
            select(MonthlyTransaction, Employee)
            .join(Employee, Employee.employee_id == MonthlyTransaction.employee_id)
            .where(MonthlyTransaction.month == month)
            .order_by(Employee.name)
        )
        pairs = result.all()

        employees: list[dict[str, Any]] = []
        totals = {
            "total_thrift": Decimal("0"),
            "total_emi": Decimal("0"),
            "total_interest": Decimal("0"),
            "total_deduction": Decimal("0"),
        }
        for transaction, employee in pairs:
            entry: dict[str, Any] = {
                "emp_code": employee.emp_code or "",
                "name": employee.name,
                "department": employee.department or "",
            }
            for name in SNAPSHOT_FIELDS:
                entry[name] = str(money(getattr(transaction, name)))
            employees.append(entry)

            totals["total_thrift"] += transaction.thrift_deduction
            totals["total_emi"] += transaction.loan_emi
            totals["total_interest"] += transaction.interest_payment
            totals["total_deduction"] += transaction.total_deduction

        self.session.add(
            ArchivedMonth(
                archived_month_id=uuid4(),
                month=month,
                employee_count=len(employees),
                employees=employees,
                **{key: money(value) for key, value in totals.items()},
            )
        )
        await self.session.flush()
        await self._delete_transactions(month)
        logger.info("Archived %s (%d employees)", month, len(employees))
        return True

    async def _delete_transactions(self, month: str) -> None:
        await self.session.execute(
            delete(MonthlyTransaction)
            .where(MonthlyTransaction.month == month)
            .execution_options(synchronize_session=False)
        )

    async def get_archive(self, month: str) -> ArchivedMonth | None:
        result = await self.session.execute(
            select(ArchivedMonth).where(ArchivedMonth.month == month)
        )
        return result.scalar_one_or_none()
