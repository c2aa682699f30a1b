"""Redis subsystem: cached read models and distributed locks."""

from src.core.redis.service import RedisLockTimeoutError, RedisService

__all__ = ["RedisService", "RedisLockTimeoutError"]
