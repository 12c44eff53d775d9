"""Redis client for webhook idempotency keys.

Redis is a fast path only: a "seen" key lets duplicate provider deliveries
skip the database work. The conditional funding write and the unique
constraints on escrow_records remain authoritative, so every helper here
degrades to "not seen" when Redis is not available.

Usage:
    from gig_escrow.infrastructure.redis_client import get_redis, close_redis

    redis = get_redis()
    await redis.set("key", "value", ex=3600)
"""

from __future__ import annotations

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from gig_escrow.config import get_settings
from gig_escrow.logging_config import get_logger

logger = get_logger(__name__)

_redis_client: aioredis.Redis | None = None


async def init_redis() -> aioredis.Redis:
    """Initialize and return the Redis client. Called during app startup."""
    global _redis_client
    settings = get_settings()
    client = aioredis.from_url(
        settings.redis_url,
        decode_responses=True,
    )
    # Verify connectivity
    await client.ping()
    _redis_client = client
    logger.info("redis.connected", url=settings.redis_url)
    return _redis_client


def get_redis() -> aioredis.Redis:
    """Return the Redis client singleton. Must call init_redis() first."""
    if _redis_client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis_client


def is_redis_available() -> bool:
    return _redis_client is not None


async def close_redis() -> None:
    """Close the Redis connection. Called during app shutdown."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        logger.info("redis.disconnected")
        _redis_client = None


# --- Idempotency Helpers ---


def idempotency_key(provider: str, payment_id: str) -> str:
    return f"idempotency:{provider}:{payment_id}"


async def check_idempotency(provider: str, payment_id: str) -> bool:
    """Check if a provider payment id has already been reconciled.

    Returns True if the key exists (duplicate), False if new or unknown.
    """
    if not is_redis_available():
        return False
    try:
        return bool(await get_redis().exists(idempotency_key(provider, payment_id)))
    except RedisError as exc:
        logger.warning("redis.idempotency_check_failed", error=str(exc))
        return False


async def set_idempotency(provider: str, payment_id: str, value: str = "1") -> None:
    """Mark a provider payment id as reconciled with a TTL."""
    if not is_redis_available():
        return
    settings = get_settings()
    try:
        await get_redis().set(
            idempotency_key(provider, payment_id),
            value,
            ex=settings.redis_idempotency_ttl_seconds,
        )
    except RedisError as exc:
        logger.warning("redis.idempotency_set_failed", error=str(exc))
