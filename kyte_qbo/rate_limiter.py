"""
Fixed-window rate limiting for inbound endpoints
Counts in process memory and shares the count through Redis when REDIS_URL is set
"""

import logging
import time
from threading import Lock
from typing import Optional

import redis
from fastapi import Request

from . import config
from .exceptions import KyteBridgeError

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None
_redis_unavailable = False

# {key: {"count": int, "reset_time": int, "last_redis_sync": int}}
memory_cache: dict[str, dict] = {}
cache_lock = Lock()

REDIS_SYNC_INTERVAL = 10  # seconds between pushes of a window count to Redis


class RateLimitExceeded(KyteBridgeError):
    status_code = 429
    code = "RATE_LIMITED"

    def __init__(self, message: str, retry_after: int):
        super().__init__(message)
        self.retry_after = retry_after


def get_redis_client() -> Optional[redis.Redis]:
    """Get the shared Redis client, or None when Redis is not configured or unreachable"""
    global _redis_client, _redis_unavailable

    if _redis_client is not None or _redis_unavailable or not config.REDIS_URL:
        return _redis_client

    try:
        client = redis.from_url(
            config.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
        )
        client.ping()
        _redis_client = client
        logger.info("✅ Redis connected for rate limiting")
    except redis.RedisError as e:
        _redis_unavailable = True
        logger.error(f"❌ Failed to connect to Redis: {e}")
        logger.warning("⚠️ Rate limiting falls back to per-process counters")
    return _redis_client


def check_rate_limit(
    key: str, limit: int, window_seconds: int, redis_client: Optional[redis.Redis] = None
) -> tuple[bool, int, int]:
    """
    Count one request against ``key``.

    Returns:
        (is_allowed, current_count, seconds_until_reset)
    """
    now = int(time.time())

    with cache_lock:
        entry = memory_cache.get(key)
        if entry is None:
            entry = {"count": 0, "reset_time": now + window_seconds, "last_redis_sync": 0}
            if redis_client is not None:
                try:
                    shared_count = redis_client.get(key)
                    shared_ttl = redis_client.ttl(key)
                    if shared_count and shared_ttl > 0:
                        entry.update(count=int(shared_count), reset_time=now + shared_ttl, last_redis_sync=now)
                except redis.RedisError as e:
                    logger.warning(f"⚠️ Failed to load {key} from Redis, using memory only: {e}")
            memory_cache[key] = entry

        if now >= entry["reset_time"]:
            entry.update(count=0, reset_time=now + window_seconds, last_redis_sync=0)

        is_allowed = entry["count"] < limit
        if is_allowed:
            entry["count"] += 1

        if redis_client is not None and now - entry["last_redis_sync"] >= REDIS_SYNC_INTERVAL:
            try:
                redis_client.set(key, entry["count"], ex=max(1, entry["reset_time"] - now))
                entry["last_redis_sync"] = now
            except redis.RedisError as e:
                logger.warning(f"⚠️ Failed to sync {key} to Redis: {e}")

        return is_allowed, entry["count"], max(0, entry["reset_time"] - now)


def reset_rate_limits() -> None:
    """Forget every in-memory window"""
    with cache_lock:
        memory_cache.clear()


def create_rate_limiter(limit: int, window_seconds: int, key_prefix: str = "rate_limit"):
    """
    Create a per-client-IP rate limiter dependency

    Example usage:
        webhook_rate_limit = create_rate_limiter(limit=120, window_seconds=60, key_prefix="qbo_webhook")

        @router.post("/qbo")
        async def qbo_webhook(_: None = Depends(webhook_rate_limit)):
            ...
    """

    async def rate_limiter(request: Request) -> None:
        client_ip = request.client.host if request.client else "unknown"
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            client_ip = forwarded.split(",")[0].strip()

        key = f"{key_prefix}:{client_ip}"
        is_allowed, current_count, ttl = check_rate_limit(key, limit, window_seconds, get_redis_client())
        if not is_allowed:
            logger.warning(f"🚫 Rate limit EXCEEDED for {key} - {current_count}/{limit} requests used")
            raise RateLimitExceeded(
                f"Rate limit exceeded. Maximum {limit} requests per {window_seconds} seconds.", retry_after=ttl
            )

    return rate_limiter
