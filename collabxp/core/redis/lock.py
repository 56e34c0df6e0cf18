"""
Distributed locking on Redis.

Purpose
-------
Serialize read-modify-write sequences on one user's progression record when
several processes share the same store.

Responsibilities
----------------
- Acquire a lock via ``SET key token NX PX ttl`` with a unique UUID token
- Retry until ``wait_timeout`` elapses, then raise LockAcquisitionError
- Release via a Lua compare-and-delete so a process never deletes a lock it
  no longer owns (expired and re-acquired by someone else)

Configuration (ConfigManager)
-----------------------------
- core.redis.lock.default_timeout_sec  : float (default 5)
- core.redis.lock.wait_timeout_sec     : float (default 5)
- core.redis.lock.retry_interval_sec   : float (default 0.1)
"""

from __future__ import annotations

import asyncio
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from redis.asyncio import Redis as AsyncRedis
from redis.exceptions import RedisError

from collabxp.core.config.config import Config
from collabxp.core.exceptions import LockAcquisitionError
from collabxp.core.logging.logger import get_logger

logger = get_logger(__name__)


class RedisLockService:
    """
    Token-based distributed lock over a ``redis.asyncio`` client.

    Example
    -------
    >>> locks = RedisLockService.from_url("redis://localhost:6379/0")
    >>> async with locks.acquire_lock("progression:user:u-1"):
    ...     await do_update()
    """

    # Compare token + delete
    _LUA_UNLOCK_SCRIPT = """
    if redis.call("GET", KEYS[1]) == ARGV[1] then
        return redis.call("DEL", KEYS[1])
    else
        return 0
    end
    """

    def __init__(self, client: AsyncRedis, config_manager: Any = None) -> None:
        self._client = client
        self._config_manager = config_manager

    @classmethod
    def from_url(
        cls,
        url: Optional[str] = None,
        config_manager: Any = None,
    ) -> "RedisLockService":
        client = AsyncRedis.from_url(
            url or Config.REDIS_URL,
            socket_timeout=Config.REDIS_SOCKET_TIMEOUT,
            decode_responses=True,
        )
        return cls(client, config_manager)

    async def close(self) -> None:
        await self._client.aclose()

    def _get_config_float(self, key: str, default: float) -> float:
        if self._config_manager is None:
            return default
        value = self._config_manager.get(key, default)
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning(
                "Invalid float config value, using default",
                extra={"config_key": key, "value": repr(value), "default": default},
            )
            return default

    @asynccontextmanager
    async def acquire_lock(
        self,
        key: str,
        timeout: Optional[float] = None,
        wait_timeout: Optional[float] = None,
        retry_interval: Optional[float] = None,
    ) -> AsyncGenerator[None, None]:
        """
        Hold ``key`` for the duration of the ``async with`` block.

        Parameters
        ----------
        key:
            Lock identifier, e.g. ``"progression:user:{user_id}"``.
        timeout:
            Lock expiry in seconds; the lock self-releases after a crash.
        wait_timeout:
            Maximum seconds to wait for acquisition.
        retry_interval:
            Sleep between acquisition attempts.

        Raises
        ------
        LockAcquisitionError
            If the lock cannot be acquired within ``wait_timeout``.
        """
        if timeout is None:
            timeout = self._get_config_float("core.redis.lock.default_timeout_sec", 5.0)
        if wait_timeout is None:
            wait_timeout = self._get_config_float("core.redis.lock.wait_timeout_sec", 5.0)
        if retry_interval is None:
            retry_interval = self._get_config_float(
                "core.redis.lock.retry_interval_sec", 0.1
            )

        token = str(uuid.uuid4())
        start = time.monotonic()
        deadline = start + max(0.0, wait_timeout)
        acquired = False

        try:
            while True:
                try:
                    acquired = bool(
                        await self._client.set(
                            key,
                            token,
                            nx=True,
                            px=max(1, int(timeout * 1000)),
                        )
                    )
                except RedisError as exc:
                    logger.error(
                        "Redis lock acquisition error",
                        extra={
                            "lock_key": key,
                            "error": str(exc),
                            "error_type": type(exc).__name__,
                        },
                        exc_info=True,
                    )

                if acquired:
                    logger.debug(
                        "Redis lock acquired",
                        extra={
                            "lock_key": key,
                            "timeout_seconds": timeout,
                            "wait_ms": round((time.monotonic() - start) * 1000, 2),
                        },
                    )
                    break

                if time.monotonic() >= deadline:
                    logger.warning(
                        "Failed to acquire Redis lock within timeout",
                        extra={"lock_key": key, "wait_timeout_seconds": wait_timeout},
                    )
                    raise LockAcquisitionError(key, wait_timeout)

                await asyncio.sleep(retry_interval)

            yield

        finally:
            if acquired:
                await self._release(key, token, timeout)

    async def _release(self, key: str, token: str, timeout: float) -> None:
        try:
            released = await self._client.eval(self._LUA_UNLOCK_SCRIPT, 1, key, token)
        except RedisError as exc:
            logger.warning(
                "Failed to release Redis lock (will expire automatically)",
                extra={
                    "lock_key": key,
                    "timeout_seconds": timeout,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
            return

        if released:
            logger.debug("Redis lock released", extra={"lock_key": key})
        else:
            logger.warning(
                "Redis lock already expired or stolen",
                extra={"lock_key": key},
            )
