"""Redis client and per-client request rate limiting."""

from typing import Optional

import redis.asyncio as redis
import structlog

from src.config import get_settings

logger = structlog.get_logger(__name__)

RATE_LIMIT_PREFIX = "rate_limit"

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Return the shared client, connecting on first use.

    Returns None when Redis cannot be reached; callers treat that as
    "no rate limiting" rather than an error.
    """
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    settings = get_settings()
    client = redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
    try:
        await client.ping()
    except Exception as e:
        logger.warning("redis_connection_failed", error=str(e))
        await client.aclose()
        return None

    _redis_client = client
    # Credentials sit before the "@" in the URL
    logger.info("redis_connected", host=settings.redis_url.rsplit("@", 1)[-1])
    return _redis_client


async def close_redis() -> None:
    global _redis_client

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("redis_connection_closed")


class RedisService:
    """Fixed-window counters keyed by action and client."""

    def __init__(self):
        self.settings = get_settings()

    async def check_rate_limit(
        self,
        key: str,
        limit: Optional[int] = None,
        window_seconds: int = 60,
    ) -> tuple[bool, int]:
        """Count one request against a bucket.

        The counter and its expiry are created together (SET NX EX) in the
        same transaction as the increment, so a counter never exists
        without a TTL.

        Args:
            key: Bucket name, e.g. "login:203.0.113.7"
            limit: Requests allowed per window (defaults to auth_rate_limit)
            window_seconds: Window length

        Returns:
            (allowed, remaining); remaining is -1 when Redis is unavailable
        """
        client = await get_redis()
        if client is None:
            return True, -1

        limit = limit or self.settings.auth_rate_limit
        redis_key = f"{RATE_LIMIT_PREFIX}:{key}"

        try:
            async with client.pipeline(transaction=True) as pipe:
                pipe.set(redis_key, 0, ex=window_seconds, nx=True)
                pipe.incr(redis_key)
                _, count = await pipe.execute()
        except Exception as e:
            logger.warning("redis_rate_limit_failed", error=str(e), key=key)
            return True, -1

        if count > limit:
            logger.info("rate_limit_exceeded", key=key, limit=limit)
            return False, 0
        return True, limit - count
