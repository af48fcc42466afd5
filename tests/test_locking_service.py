"""Tests for upload serialization."""

import asyncio
from contextlib import asynccontextmanager
from types import SimpleNamespace

import pytest

from thrift_ledger.errors import UploadInProgressError
from thrift_ledger.services import locking_service
from thrift_ledger.services.locking_service import LockingService


class FakeConnection:
    def __init__(self):
        self.released = []
        self.commits = 0

    async def commit(self):
        self.commits += 1


class FakePostgresEngine:
    """Stands in for an asyncpg engine; only the dialect name and connect() are used."""

    def __init__(self):
        self.dialect = SimpleNamespace(name="postgresql")
        self.connection = FakeConnection()

    @asynccontextmanager
    async def connect(self):
        yield self.connection


class TestLockingService:
    async def test_sqlite_skips_advisory_locks(self, engine):
        locks = LockingService(engine)

        assert not locks.uses_advisory_locks
        async with locks.upload_guard("sqlite-upload"):
            pass

    async def test_uploads_in_one_process_do_not_interleave(self):
        locks = LockingService()
        events = []

        async def upload(name):
            async with locks.upload_guard("serialized-upload"):
                events.append(f"{name}-start")
                await asyncio.sleep(0.01)
                events.append(f"{name}-end")

        await asyncio.gather(upload("a"), upload("b"))

        assert events == ["a-start", "a-end", "b-start", "b-end"]

    async def test_contended_advisory_lock_fails_fast(self, monkeypatch):
        """Another process holding the lock raises instead of waiting."""

        async def held_elsewhere(conn, key):
            return False

        monkeypatch.setattr(locking_service, "acquire_advisory_lock", held_elsewhere)
        locks = LockingService(FakePostgresEngine())

        with pytest.raises(UploadInProgressError):
            async with locks.upload_guard("busy-upload"):
                pass

    async def test_advisory_lock_released_after_upload(self, monkeypatch):
        engine = FakePostgresEngine()

        async def acquired(conn, key):
            return True

        async def release(conn, key):
            conn.released.append(key)

        monkeypatch.setattr(locking_service, "acquire_advisory_lock", acquired)
        monkeypatch.setattr(locking_service, "release_advisory_lock", release)

        with pytest.raises(RuntimeError):
            async with LockingService(engine).upload_guard("failing-upload"):
                raise RuntimeError("row processing blew up")

        assert engine.connection.released == ["failing-upload"]
        assert engine.connection.commits == 1

    def test_same_key_contended_in_separate_loops(self):
        """Each event loop gets its own lock for a key."""

        async def contend():
            locks = LockingService()
            order = []

            async def upload(name):
                async with locks.upload_guard("per-loop-upload"):
                    order.append(name)
                    await asyncio.sleep(0)

            await asyncio.gather(upload("first"), upload("second"))
            return order

        assert asyncio.run(contend()) == ["first", "second"]
        assert asyncio.run(contend()) == ["first", "second"]
