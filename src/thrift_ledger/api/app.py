"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from thrift_ledger.api.routes import admin_router, archives_router, health_router, uploads_router
from thrift_ledger.config import configure_logging, get_settings
from thrift_ledger.database import init_db
from thrift_ledger.errors import (
    AdjustmentError,
    ColumnDetectionError,
    ImmutableRecordError,
    InvalidMonthError,
    InvalidTransitionError,
    LedgerError,
    NotFoundError,
    UploadInProgressError,
)

logger = logging.getLogger(__name__)

# Most specific first
ERROR_RESPONSES: list[tuple[type[LedgerError], int, str]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND, "NOT_FOUND"),
    (ColumnDetectionError, status.HTTP_400_BAD_REQUEST, "COLUMN_DETECTION_FAILED"),
    (InvalidMonthError, status.HTTP_400_BAD_REQUEST, "INVALID_MONTH"),
    (InvalidTransitionError, status.HTTP_409_CONFLICT, "INVALID_TRANSITION"),
    (UploadInProgressError, status.HTTP_409_CONFLICT, "UPLOAD_IN_PROGRESS"),
    (ImmutableRecordError, status.HTTP_409_CONFLICT, "IMMUTABLE_RECORD"),
    (AdjustmentError, status.HTTP_400_BAD_REQUEST, "ADJUSTMENT_REJECTED"),
]


def error_response(exc: LedgerError) -> tuple[int, str]:
    for error_type, status_code, code in ERROR_RESPONSES:
        if isinstance(exc, error_type):
            return status_code, code
    return status.HTTP_400_BAD_REQUEST, "LEDGER_ERROR"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    configure_logging(get_settings().log_level)
    engine, _ = init_db()
    yield
    await engine.dispose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Thrift Ledger API",
        description="Monthly ledger reconciliation for a thrift-and-loan society",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.exception_handler(LedgerError)
    async def ledger_exception_handler(request: Request, exc: LedgerError) -> JSONResponse:
        """Map domain errors to 4xx responses."""
        status_code, code = error_response(exc)
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status_code,
            content={"detail": str(exc), "code": code},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    app.include_router(health_router)
    app.include_router(uploads_router, prefix="/api/v1")
    app.include_router(archives_router, prefix="/api/v1")
    app.include_router(admin_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
