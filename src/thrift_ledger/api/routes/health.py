"""Health check endpoints."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, status
from pydantic import BaseModel
from sqlalchemy import func, select

from thrift_ledger.api.dependencies import DbSession
from thrift_ledger.models import UploadLog

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Service status plus the newest month the ledger has seen."""

    status: str
    timestamp: datetime
    database: str
    last_upload_month: str | None = None


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
)
async def health_check(db: DbSession) -> HealthResponse:
    database = "unhealthy"
    last_month = None
    try:
        last_month = await db.scalar(select(func.max(UploadLog.month)))
        database = "healthy"
    except Exception:
        logger.exception("Ledger database unreachable")

    return HealthResponse(
        status="healthy" if database == "healthy" else "degraded",
        timestamp=datetime.now(timezone.utc),
        database=database,
        last_upload_month=last_month,
    )


@router.get("/ready", status_code=status.HTTP_200_OK)
async def readiness_check() -> dict[str, str]:
    return {"status": "ready"}


@router.get("/live", status_code=status.HTTP_200_OK)
async def liveness_check() -> dict[str, str]:
    return {"status": "alive"}
