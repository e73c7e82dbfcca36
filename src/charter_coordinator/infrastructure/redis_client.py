"""Redis client for cross-process coordination.

The only shared state the coordinator keeps in Redis is the tracking tick
lock: several app instances may receive the same scheduler trigger, and only
one of them should poll AIS providers for that tick.

Usage:
    from charter_coordinator.infrastructure.redis_client import tick_lock

    async with tick_lock("poll-ais", ttl_seconds=180) as acquired:
        if acquired:
            ...
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import redis.asyncio as aioredis
from redis.exceptions import LockError

from charter_coordinator.config import get_settings
from charter_coordinator.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = get_logger(__name__)

_redis_client: aioredis.Redis | None = None


async def init_redis() -> aioredis.Redis:
    """Connect and ping. A failed ping leaves the client unset."""
    global _redis_client
    settings = get_settings()
    client = aioredis.from_url(settings.redis_url, decode_responses=True)
    await client.ping()
    _redis_client = client
    logger.info("redis.connected", url=settings.redis_url)
    return client


def get_redis() -> aioredis.Redis:
    """Return the Redis client singleton. Must call init_redis() first."""
    if _redis_client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis_client


def redis_available() -> bool:
    return _redis_client is not None


async def close_redis() -> None:
    """Close the Redis connection. Called during app shutdown."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        logger.info("redis.disconnected")
        _redis_client = None


# --- Tick Lock ---


@asynccontextmanager
async def tick_lock(name: str, ttl_seconds: float) -> AsyncIterator[bool]:
    """Try to take a non-blocking distributed lock for one scheduler tick.

    Yields True if this process holds the lock, False if another does. When
    Redis was never initialized (single-process deployments, tests) the lock
    is always granted and only the in-process tick lock applies.
    """
    if _redis_client is None:
        logger.debug("redis.tick_lock_skipped", lock=name, reason="redis unavailable")
        yield True
        return

    lock = _redis_client.lock(f"lock:{name}", timeout=ttl_seconds, blocking=False)
    acquired = await lock.acquire()
    if not acquired:
        logger.info("redis.tick_lock_busy", lock=name)
    try:
        yield bool(acquired)
    finally:
        if acquired:
            try:
                await lock.release()
            except LockError:
                # expired before the tick finished; another holder may exist now
                logger.warning("redis.tick_lock_expired", lock=name)
