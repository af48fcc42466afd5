"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from thrift_ledger.config import LedgerConfig, get_settings
from thrift_ledger.database import init_db


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for request and background work."""
    _, factory = init_db()
    return factory


def get_ledger_config() -> LedgerConfig:
    """Reconciliation tunables from settings."""
    return get_settings().ledger_config()


SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]


async def get_db_session(factory: SessionFactory) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_actor(x_actor: Annotated[str | None, Header()] = None) -> str:
    """Extract the acting administrator from header."""
    if not x_actor or not x_actor.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Actor header is required",
        )
    return x_actor.strip()


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
Actor = Annotated[str, Depends(get_actor)]
Ledger = Annotated[LedgerConfig, Depends(get_ledger_config)]
