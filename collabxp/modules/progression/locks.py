"""
Per-user lock providers.

The progression service holds one of these around every mutating operation
so read-modify-write sequences for one user never interleave, while
different users never contend.

- `LocalUserLocks`: asyncio locks, one process
- `RedisUserLocks`: Redis distributed lock, several processes sharing a store
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncGenerator, Dict, Optional, Protocol

from collabxp.core.exceptions import LockAcquisitionError
from collabxp.core.redis.lock import RedisLockService

LOCK_KEY_PREFIX = "progression:user:"


class UserLockProvider(Protocol):
    def hold(self, user_id: str) -> AsyncContextManager[None]:
        ...


class LocalUserLocks:
    """
    In-process per-user asyncio locks.

    Lock objects are dropped once no task holds or waits for them, so the
    table does not grow with the number of users ever seen.
    """

    def __init__(self, wait_timeout: Optional[float] = None) -> None:
        self._wait_timeout = wait_timeout
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, user_id: str) -> AsyncGenerator[None, None]:
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._waiters[user_id] = self._waiters.get(user_id, 0) + 1
        try:
            if self._wait_timeout is None:
                await lock.acquire()
            else:
                try:
                    await asyncio.wait_for(lock.acquire(), timeout=self._wait_timeout)
                except asyncio.TimeoutError as exc:
                    raise LockAcquisitionError(
                        f"{LOCK_KEY_PREFIX}{user_id}", self._wait_timeout
                    ) from exc
            try:
                yield
            finally:
                lock.release()
        finally:
            self._waiters[user_id] -= 1
            if self._waiters[user_id] == 0:
                del self._waiters[user_id]
                self._locks.pop(user_id, None)

    def active_count(self) -> int:
        return len(self._locks)


class RedisUserLocks:
    """Per-user locks shared across processes through Redis."""

    def __init__(
        self,
        lock_service: RedisLockService,
        *,
        timeout: Optional[float] = None,
        wait_timeout: Optional[float] = None,
    ) -> None:
        self._lock_service = lock_service
        self._timeout = timeout
        self._wait_timeout = wait_timeout

    def hold(self, user_id: str) -> AsyncContextManager[None]:
        return self._lock_service.acquire_lock(
            f"{LOCK_KEY_PREFIX}{user_id}",
            timeout=self._timeout,
            wait_timeout=self._wait_timeout,
        )
