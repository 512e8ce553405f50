"""
Redis Cache Utility

Key-value storage with TTL for short-lived server-side state such as the
OAuth state/PKCE verifier of a login in progress. Uses Redis when
REDIS_URL is configured so that several workers share the state, and an
in-process dictionary otherwise.

Usage:
    from utils.cache import get_cached, set_cached, delete_cached

    await set_cached("oauth_session:abc", {"oauthState": "..."}, ttl=600)
    data = await get_cached("oauth_session:abc")
"""

import json
import time
from typing import Optional, Any, Dict

from config.settings import settings
from utils.logging import get_logger

logger = get_logger(__name__)

# Redis client (lazy loaded)
_redis_client = None
_redis_available = None

# In-memory fallback: key -> (expires_at, value)
_memory_cache: Dict[str, tuple] = {}


async def get_redis_client():
    """
    Get Redis client with lazy initialization.

    Returns None if Redis is not configured or unavailable.
    """
    global _redis_client, _redis_available

    if _redis_available is False:
        return None

    if _redis_client is not None:
        return _redis_client

    if not settings.REDIS_URL:
        logger.info("Redis not configured - using in-memory session storage")
        _redis_available = False
        return None

    try:
        import redis.asyncio as redis

        _redis_client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=5,
            socket_connect_timeout=5,
        )

        await _redis_client.ping()
        logger.info("✅ Redis connected successfully")
        _redis_available = True
        return _redis_client

    except Exception as e:
        logger.warning(f"Redis connection failed: {e} - using in-memory session storage")
        _redis_client = None
        _redis_available = False
        return None


# =============================================================================
# Cache Operations
# =============================================================================

async def get_cached(key: str) -> Optional[Any]:
    """
    Get value from cache.

    Returns:
        Cached value or None if missing, expired or corrupted
    """
    redis = await get_redis_client()

    if redis:
        value = await redis.get(key)
        if value is None:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            logger.warning(f"Corrupted cache data for key '{key}': {e}")
            await redis.delete(key)
            return None

    entry = _memory_cache.get(key)
    if entry is None:
        return None

    expires_at, value = entry
    if time.time() > expires_at:
        _memory_cache.pop(key, None)
        return None
    return value


async def set_cached(key: str, value: Any, ttl: int = 300) -> bool:
    """
    Set value in cache with TTL.

    Args:
        key: Cache key
        value: Value to cache (must be JSON serializable)
        ttl: Time-to-live in seconds
    """
    redis = await get_redis_client()

    if redis:
        await redis.setex(key, ttl, json.dumps(value))
        return True

    _memory_cache[key] = (time.time() + ttl, value)
    return True


async def delete_cached(key: str) -> bool:
    """Delete value from cache. Returns True if something was removed."""
    redis = await get_redis_client()

    if redis:
        return bool(await redis.delete(key))

    return _memory_cache.pop(key, None) is not None


def clear_memory_cache() -> None:
    """Drop every in-process entry (used by tests)."""
    _memory_cache.clear()


# =============================================================================
# Health Check
# =============================================================================

async def check_redis_health() -> bool:
    """Check if Redis is connected and healthy."""
    redis = await get_redis_client()
    if redis:
        try:
            await redis.ping()
            return True
        except Exception:
            return False
    return False
