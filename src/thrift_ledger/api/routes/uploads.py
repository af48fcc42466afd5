"""Monthly upload endpoints."""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, HTTPException, Path, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from thrift_ledger.api.dependencies import DbSession, Ledger, SessionFactory
from thrift_ledger.api.schemas import (
    ErrorResponse,
    MonthlyUploadRequest,
    MonthlyUploadResponse,
    RowWarningResponse,
    SyncReportResponse,
    UploadLogListResponse,
    UploadLogResponse,
)
from thrift_ledger.config import LedgerConfig
from thrift_ledger.ingest import ParsedSheet
from thrift_ledger.models import UploadLog
from thrift_ledger.services.archival import ArchivalCompactor
from thrift_ledger.services.batch import UploadService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/uploads", tags=["uploads"])


async def archive_in_background(
    factory: async_sessionmaker[AsyncSession],
    config: LedgerConfig,
) -> None:
    """Best-effort archival after an upload; failures are only logged."""
    async with factory() as session:
        try:
            await ArchivalCompactor(session, config).run()
        except Exception:
            logger.exception("Background archival failed")
            await session.rollback()


@router.post(
    "/monthly",
    response_model=MonthlyUploadResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def upload_monthly(
    db: DbSession,
    factory: SessionFactory,
    config: Ledger,
    payload: MonthlyUploadRequest,
    background_tasks: BackgroundTasks,
) -> MonthlyUploadResponse:
    """Reconcile one month's sheet against the ledger."""
    service = UploadService(db, config)
    if payload.grid is not None:
        result = await service.process_grid(
            payload.grid,
            file_name=payload.file_name,
            month=payload.month,
            uploaded_by=payload.uploaded_by,
        )
    else:
        sheet = ParsedSheet.from_rows(payload.rows or [], header_row=payload.header_row)
        result = await service.process_sheet(
            sheet,
            file_name=payload.file_name,
            month=payload.month,
            uploaded_by=payload.uploaded_by,
        )

    if payload.archive:
        background_tasks.add_task(archive_in_background, factory, config)

    return MonthlyUploadResponse(
        message="Monthly update processed",
        log=UploadLogResponse.model_validate(result.log),
        warnings=[RowWarningResponse(**w.to_dict()) for w in result.warnings],
        column_summary=result.column_summary,
        uploaded_month=result.month,
        sync=SyncReportResponse(**result.sync.to_dict()) if result.sync else None,
    )


@router.get("", response_model=UploadLogListResponse)
async def list_uploads(
    db: DbSession,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=100)] = 20,
    month: Annotated[str | None, Query(pattern=r"^\d{4}-(0[1-9]|1[0-2])$")] = None,
) -> UploadLogListResponse:
    """Upload history, newest first."""
    query = select(UploadLog)
    if month:
        query = query.where(UploadLog.month == month)

    total = await db.scalar(select(func.count()).select_from(query.subquery())) or 0

    query = query.order_by(UploadLog.created_at.desc())
    query = query.offset((page - 1) * page_size).limit(page_size)
    result = await db.execute(query)

    return UploadLogListResponse(
        items=[UploadLogResponse.model_validate(log) for log in result.scalars().all()],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/{upload_log_id}",
    response_model=UploadLogResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_upload(
    db: DbSession,
    upload_log_id: Annotated[UUID, Path()],
) -> UploadLogResponse:
    log = await db.get(UploadLog, upload_log_id)
    if log is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Upload log not found",
        )
    return UploadLogResponse.model_validate(log)
