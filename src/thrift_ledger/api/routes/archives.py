"""Archive endpoints."""

from typing import Annotated

from fastapi import APIRouter, HTTPException, Path, status

from thrift_ledger.api.dependencies import DbSession, Ledger
from thrift_ledger.api.schemas import (
    ArchivedMonthResponse,
    ArchiveRunRequest,
    ArchiveRunResponse,
    ErrorResponse,
)
from thrift_ledger.services.archival import ArchivalCompactor

router = APIRouter(prefix="/archives", tags=["archives"])


@router.post("/run", response_model=ArchiveRunResponse)
async def run_archival(
    db: DbSession,
    config: Ledger,
    payload: ArchiveRunRequest | None = None,
) -> ArchiveRunResponse:
    """Compact every month outside the retention window."""
    retention = payload.retention_months if payload else None
    report = await ArchivalCompactor(db, config, retention_months=retention).run()
    return ArchiveRunResponse(**report.to_dict())


@router.get(
    "/{month}",
    response_model=ArchivedMonthResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_archived_month(
    db: DbSession,
    config: Ledger,
    month: Annotated[str, Path(pattern=r"^\d{4}-(0[1-9]|1[0-2])$")],
) -> ArchivedMonthResponse:
    archive = await ArchivalCompactor(db, config).get_archive(month)
    if archive is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No archive for {month}",
        )
    return ArchivedMonthResponse.model_validate(archive)
