"""Shelfwise — Redis client for the order-status cache."""
from typing import Optional

import redis.asyncio as redis

from shelfwise.config import get_settings

_settings = get_settings()
_redis: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    """Get Redis connection (application cache DB 1)."""
    global _redis
    if _redis is None:
        _redis = redis.from_url(_settings.REDIS_URL, decode_responses=True)
    return _redis


def order_status_cache_key(store_id: str, order_id: str) -> str:
    """Cache key for an order's status: order_status:{store}:{order}"""
    return f"order_status:{store_id}:{order_id}"
