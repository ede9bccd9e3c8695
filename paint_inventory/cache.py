"""
Redis caching utilities for the Paint Inventory service.

Caches the dashboard projection. Any cache failure is logged and treated as a
miss; an empty REDIS_URL turns caching off.
"""
import json
import logging
from typing import Any, Optional

import redis

from .config import DASHBOARD_CACHE_TTL, REDIS_URL

logger = logging.getLogger(__name__)

# Initialize Redis client
redis_client = redis.from_url(REDIS_URL, decode_responses=True) if REDIS_URL else None

DASHBOARD_PREFIX = "dashboard"


def get_cache(key: str) -> Optional[Any]:
    """
    Get a value from Redis cache.

    Args:
        key: Cache key

    Returns:
        Cached value or None if not found
    """
    if redis_client is None:
        return None
    try:
        value = redis_client.get(key)
        if value:
            return json.loads(value)
        return None
    except (redis.RedisError, ValueError) as e:
        logger.error(f"Cache get error: {e}")
        return None


def set_cache(key: str, value: Any, ttl: int = DASHBOARD_CACHE_TTL) -> bool:
    """
    Set a value in Redis cache with TTL.

    Args:
        key: Cache key
        value: Value to cache (will be JSON serialized)
        ttl: Time to live in seconds

    Returns:
        True if successful, False otherwise
    """
    if redis_client is None:
        return False
    try:
        redis_client.setex(key, ttl, json.dumps(value))
        return True
    except (redis.RedisError, TypeError) as e:
        logger.error(f"Cache set error: {e}")
        return False


def delete_pattern(pattern: str) -> bool:
    """
    Delete all keys matching a pattern.

    Args:
        pattern: Pattern to match (e.g., "dashboard:*")

    Returns:
        True if successful, False otherwise
    """
    if redis_client is None:
        return False
    try:
        keys = redis_client.keys(pattern)
        if keys:
            redis_client.delete(*keys)
        return True
    except redis.RedisError as e:
        logger.error(f"Cache delete pattern error: {e}")
        return False


def dashboard_key(period: str, stale_days: int) -> str:
    return f"{DASHBOARD_PREFIX}:{period}:{stale_days}"


def invalidate_dashboard() -> bool:
    """Drop every cached dashboard after a write."""
    return delete_pattern(f"{DASHBOARD_PREFIX}:*")
