"""API routes."""

from thrift_ledger.api.routes.admin import router as admin_router
from thrift_ledger.api.routes.archives import router as archives_router
from thrift_ledger.api.routes.health import router as health_router
from thrift_ledger.api.routes.uploads import router as uploads_router

__all__ = ["admin_router", "archives_router", "health_router", "uploads_router"]
