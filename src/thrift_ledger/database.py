"""Database connection and session management."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncGenerator

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from thrift_ledger.config import get_settings

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine


def _unicode_lower(value):
    return value.lower() if isinstance(value, str) else value


def configure_sqlite_transactions(engine: AsyncEngine) -> None:
    """Make SAVEPOINT work on aiosqlite.

    The sqlite3 driver manages BEGIN itself and breaks nested transactions;
    take BEGIN over so per-row savepoints roll back correctly. SQLite's
    built-in lower() only folds ASCII, so it is replaced with Python's.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _configure_connection(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        dbapi_connection.create_function("lower", 1, _unicode_lower)

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for the given URL."""
    if url.startswith("sqlite"):
        options: dict = {"echo": echo}
        if ":memory:" in url or url.rstrip("/").endswith("sqlite+aiosqlite:"):
            options["poolclass"] = StaticPool
        engine = create_async_engine(url, **options)
        configure_sqlite_transactions(engine)
        return engine

    return create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory with the project's session defaults."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# Global engine and session factory
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_db() -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Initialize database engine and session factory."""
    global _engine, _session_factory
    if _engine is None:
        _engine = build_engine(get_settings().database_url)
        _session_factory = build_session_factory(_engine)
    return _engine, _session_factory


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables (used by the CLI and tests)."""
    from thrift_ledger.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get a database session."""
    _, factory = init_db()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def acquire_advisory_lock(session: AsyncSession | AsyncConnection, key: str) -> bool:
    """Acquire a PostgreSQL advisory lock for a key.

    Returns True if lock acquired, False if already held.
    """
    result = await session.execute(
        text("SELECT pg_try_advisory_lock(hashtext(:key))"),
        {"key": key},
    )
    row = result.scalar()
    return bool(row)


async def release_advisory_lock(session: AsyncSession | AsyncConnection, key: str) -> None:
    """Release a PostgreSQL advisory lock for a key."""
    await session.execute(
        text("SELECT pg_advisory_unlock(hashtext(:key))"),
        {"key": key},
    )
