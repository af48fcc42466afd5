"""Fixtures for API tests: the app wired to the in-memory test database."""

from __future__ import annotations

from typing import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from thrift_ledger.api.app import create_app
from thrift_ledger.api.dependencies import get_ledger_config, get_session_factory
from thrift_ledger.config import LedgerConfig


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    ledger_config: LedgerConfig,
) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for API testing."""
    app = create_app()
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_ledger_config] = lambda: ledger_config
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
