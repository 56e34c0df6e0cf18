"""Redis-backed infrastructure: distributed locks."""

from collabxp.core.redis.lock import RedisLockService

__all__ = ["RedisLockService"]
