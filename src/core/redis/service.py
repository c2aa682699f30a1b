"""
RedisService: async Redis infrastructure for Arena.

Purpose
-------
Provide a small, observable Redis abstraction with:
- Singleton async client (redis-py asyncio) with connection pooling
- JSON get/set/delete for cached read models (rank distribution, stats)
- Distributed locking with token-based safety (SET NX + Lua compare-and-delete)

Graceful Degradation
--------------------
Redis is optional for Arena. When the service is not initialized:
- ``get_json`` returns None and ``set_json`` / ``delete`` are no-ops
- ``acquire_lock`` yields without locking and logs a warning
Connection errors during cache reads/writes are logged and treated as cache
misses; lock acquisition errors are retried until the wait deadline.

Configuration Keys
------------------
- Config.REDIS_URL                    : connection URL (unset disables Redis)
- redis.key_prefix                    : key namespace (default "arena")
- redis.lock.default_timeout_sec      : lock expiry
- redis.lock.wait_timeout_sec         : max time to wait for a lock
- redis.lock.retry_interval_sec       : sleep between acquisition attempts
"""

from __future__ import annotations

import asyncio
import json
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from redis.asyncio import Redis as AsyncRedis
from redis.exceptions import RedisError

from src.core.config.config import Config
from src.core.config.manager import ConfigManager
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


class RedisLockTimeoutError(TimeoutError):
    """Raised when a distributed lock cannot be acquired in time."""


class RedisService:
    """Singleton async Redis client with JSON caching and distributed locks."""

    _client: Optional[AsyncRedis] = None
    _init_lock: asyncio.Lock = asyncio.Lock()

    # Lua script for atomic lock release (compare token + delete)
    _LUA_UNLOCK_SCRIPT = """
    if redis.call("GET", KEYS[1]) == ARGV[1] then
        return redis.call("DEL", KEYS[1])
    else
        return 0
    end
    """

    # ═══════════════════════════════════════════════════════════════════════
    # LIFECYCLE MANAGEMENT
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    async def initialize(cls, url: Optional[str] = None) -> bool:
        """
        Connect and ping Redis. Idempotent.

        Returns False (and stays in degraded mode) when no URL is configured.

        Raises
        ------
        RuntimeError
            If a URL is configured but the connection fails.
        """
        if cls._client is not None:
            return True

        async with cls._init_lock:
            if cls._client is not None:
                return True

            url = url or Config.REDIS_URL
            if not url:
                logger.warning("REDIS_URL not configured; RedisService running in degraded mode")
                return False

            start_time = time.monotonic()
            client: AsyncRedis = AsyncRedis.from_url(
                url,
                socket_timeout=Config.REDIS_SOCKET_TIMEOUT,
                decode_responses=True,
                max_connections=Config.REDIS_MAX_CONNECTIONS,
            )
            try:
                await client.ping()
            except RedisError as exc:
                await client.aclose()
                logger.critical(
                    "Failed to initialize RedisService",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                    exc_info=True,
                )
                raise RuntimeError(f"Failed to initialize RedisService: {exc}") from exc

            cls._client = client
            logger.info(
                "RedisService initialized successfully",
                extra={
                    "url_scheme": url.split("://")[0] if "://" in url else "unknown",
                    "initialization_time_ms": round((time.monotonic() - start_time) * 1000, 2),
                },
            )
            return True

    @classmethod
    async def shutdown(cls) -> None:
        if cls._client is None:
            return
        try:
            await cls._client.aclose()
        finally:
            cls._client = None
            logger.info("RedisService shutdown complete")

    @classmethod
    def is_available(cls) -> bool:
        return cls._client is not None

    @classmethod
    def key(cls, *parts: Any) -> str:
        """Build a namespaced key: ``key("stats", 3)`` → ``"arena:stats:3"``."""
        prefix = ConfigManager.get("redis.key_prefix", "arena")
        return ":".join([str(prefix), *(str(p) for p in parts)])

    # ═══════════════════════════════════════════════════════════════════════
    # JSON CACHE OPERATIONS
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    async def get_json(cls, key: str) -> Optional[Any]:
        if cls._client is None:
            return None
        try:
            raw = await cls._client.get(key)
        except RedisError as exc:
            logger.warning(
                "Redis GET failed; treating as cache miss",
                extra={"key": key, "error": str(exc), "error_type": type(exc).__name__},
            )
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable cached value", extra={"key": key})
            return None

    @classmethod
    async def set_json(cls, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        if cls._client is None:
            return False
        payload = json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
        try:
            await cls._client.set(key, payload, ex=ttl_seconds)
            return True
        except RedisError as exc:
            logger.warning(
                "Redis SET failed",
                extra={"key": key, "error": str(exc), "error_type": type(exc).__name__},
            )
            return False

    @classmethod
    async def delete(cls, *keys: str) -> int:
        if cls._client is None or not keys:
            return 0
        try:
            return int(await cls._client.delete(*keys))
        except RedisError as exc:
            logger.warning(
                "Redis DELETE failed",
                extra={"keys": list(keys), "error": str(exc), "error_type": type(exc).__name__},
            )
            return 0

    # ═══════════════════════════════════════════════════════════════════════
    # DISTRIBUTED LOCKING
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    @asynccontextmanager
    async def acquire_lock(
        cls,
        key: str,
        timeout: Optional[int] = None,
        wait_timeout: Optional[float] = None,
        retry_interval: Optional[float] = None,
        operation: Optional[str] = None,
    ) -> AsyncGenerator[bool, None]:
        """
        Acquire a distributed lock using SET NX with a unique token.

        Yields True when the lock is held, False when Redis is unavailable
        and the block runs unlocked.

        Raises
        ------
        RedisLockTimeoutError
            If the lock cannot be acquired within ``wait_timeout``.

        Example
        -------
        >>> async with RedisService.acquire_lock("arena:lock:season-rotation"):
        >>>     await rotation.run_unlocked(now)
        """
        client = cls._client
        if client is None:
            logger.warning(
                "Redis unavailable; running without distributed lock",
                extra={"lock_key": key, "operation": operation},
            )
            yield False
            return

        if timeout is None:
            timeout = int(ConfigManager.get("redis.lock.default_timeout_sec", 30))
        if wait_timeout is None:
            wait_timeout = float(ConfigManager.get("redis.lock.wait_timeout_sec", 5))
        if retry_interval is None:
            retry_interval = float(ConfigManager.get("redis.lock.retry_interval_sec", 0.1))

        token = str(uuid.uuid4())
        deadline = time.monotonic() + max(0.0, wait_timeout)
        acquired = False

        try:
            while True:
                try:
                    acquired = bool(await client.set(key, token, nx=True, ex=timeout))
                except RedisError as exc:
                    logger.error(
                        "Redis lock acquisition error",
                        extra={"lock_key": key, "error": str(exc), "error_type": type(exc).__name__},
                    )
                if acquired:
                    logger.debug(
                        "Redis lock acquired",
                        extra={"lock_key": key, "timeout_seconds": timeout, "operation": operation},
                    )
                    break
                if time.monotonic() >= deadline:
                    logger.warning(
                        "Failed to acquire Redis lock within timeout",
                        extra={"lock_key": key, "wait_timeout_seconds": wait_timeout},
                    )
                    raise RedisLockTimeoutError(
                        f"Failed to acquire Redis lock '{key}' within {wait_timeout}s"
                    )
                await asyncio.sleep(retry_interval)

            yield True

        finally:
            if acquired:
                try:
                    released = await client.eval(cls._LUA_UNLOCK_SCRIPT, 1, key, token)
                    if not released:
                        logger.warning("Redis lock already expired or stolen", extra={"lock_key": key})
                except RedisError as exc:
                    logger.warning(
                        "Failed to release Redis lock (will expire automatically)",
                        extra={"lock_key": key, "error": str(exc), "error_type": type(exc).__name__},
                    )
