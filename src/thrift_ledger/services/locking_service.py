"""Upload serialization.

Rows inside one upload are applied strictly in sequence; two uploads must
not interleave either, since both read-modify-write the same employees and
loans. Uploads are serialized per key with an in-process asyncio lock and,
on PostgreSQL, a session advisory lock held on a dedicated connection so
that separate worker processes are serialized too.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator

from thrift_ledger.database import acquire_advisory_lock, release_advisory_lock
from thrift_ledger.errors import UploadInProgressError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)

DEFAULT_UPLOAD_KEY = "monthly-upload"

# asyncio locks are bound to one loop; entries go away with their loop
_process_locks: weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, dict[str, asyncio.Lock]] = (
    weakref.WeakKeyDictionary()
)


def _process_lock(key: str) -> asyncio.Lock:
    locks = _process_locks.setdefault(asyncio.get_running_loop(), {})
    lock = locks.get(key)
    if lock is None:
        lock = locks[key] = asyncio.Lock()
    return lock


class LockingService:
    """Service for serializing monthly uploads."""

    def __init__(self, engine: AsyncEngine | None = None):
        self.engine = engine

    @property
    def uses_advisory_locks(self) -> bool:
        return self.engine is not None and self.engine.dialect.name == "postgresql"

    @asynccontextmanager
    async def upload_guard(self, key: str = DEFAULT_UPLOAD_KEY) -> AsyncIterator[None]:
        """Hold the upload lock for `key` for the duration of the block.

        Waits for other uploads in this process; fails fast with
        UploadInProgressError when another process holds the lock.
        """
        async with _process_lock(key):
            if not self.uses_advisory_locks:
                yield
                return

            async with self.engine.connect() as conn:
                if not await acquire_advisory_lock(conn, key):
                    raise UploadInProgressError(key)
                logger.debug("Acquired advisory lock %s", key)
                try:
                    yield
                finally:
                    await release_advisory_lock(conn, key)
                    await conn.commit()
