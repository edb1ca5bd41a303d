# /app/tempo/core/calendar/locks.py
"""
Per-owner serialization of calendar syncs.

At most one reconcile runs per owner at a time. ``memory`` covers a single
process; ``redis`` covers several workers sharing one database.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import weakref
from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional

from tempo.config import settings
from tempo.core.errors import SyncBusyError

log = logging.getLogger(__name__)


class SyncLockManager(ABC):
    name: str

    @abstractmethod
    def hold(self, owner_id: int) -> contextlib.AbstractAsyncContextManager[None]:
        """Async context manager holding the owner's sync lock."""
        ...

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class MemorySyncLockManager(SyncLockManager):
    """Map owner id -> asyncio.Lock, entries vanish when nobody holds them."""

    name = "memory"

    def __init__(self) -> None:
        self._locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()

    def get_lock(self, owner_id: int) -> asyncio.Lock:
        # No await between lookup and insert, so no guard lock is needed.
        lock = self._locks.get(owner_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[owner_id] = lock
        return lock

    @contextlib.asynccontextmanager
    async def hold(self, owner_id: int) -> AsyncIterator[None]:
        lock = self.get_lock(owner_id)
        if lock.locked():
            log.debug("Sync for owner %s is waiting for a running sync", owner_id)
        async with lock:
            yield


class RedisSyncLockManager(SyncLockManager):
    """Distributed lock ``tempo:sync-lock:<owner>`` in Redis."""

    name = "redis"
    KEY_PREFIX = "tempo:sync-lock:"

    def __init__(self, url: str, timeout: float, blocking_timeout: Optional[float] = None, client=None) -> None:
        import redis.asyncio as aioredis

        self._client = client or aioredis.from_url(url)
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout if blocking_timeout is not None else timeout

    @contextlib.asynccontextmanager
    async def hold(self, owner_id: int) -> AsyncIterator[None]:
        from redis.exceptions import LockError

        lock = self._client.lock(
            f"{self.KEY_PREFIX}{owner_id}",
            timeout=self.timeout,
            blocking_timeout=self.blocking_timeout,
        )
        acquired = await lock.acquire()
        if not acquired:
            log.warning("Could not acquire redis sync lock for owner %s", owner_id)
            raise SyncBusyError(owner_id)
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                # Expired while held; the transaction has already finished.
                log.warning("Redis sync lock for owner %s expired before release", owner_id)

    async def ping(self) -> bool:
        return bool(await self._client.ping())

    async def close(self) -> None:
        await self._client.aclose()


# --- Process-wide instance ---
_lock_manager: Optional[SyncLockManager] = None


def get_sync_lock_manager() -> SyncLockManager:
    """Returns the configured lock manager (created on first use)."""
    global _lock_manager
    if _lock_manager is None:
        if settings.SYNC_LOCK_BACKEND == "redis":
            _lock_manager = RedisSyncLockManager(settings.REDIS_URL, settings.SYNC_LOCK_TIMEOUT_SECONDS)
        else:
            _lock_manager = MemorySyncLockManager()
        log.info("Sync lock backend: %s", _lock_manager.name)
    return _lock_manager


async def close_sync_lock_manager() -> None:
    global _lock_manager
    if _lock_manager is not None:
        await _lock_manager.close()
    _lock_manager = None
