"""Shelfwise — Order-status lookup used to classify returned units."""
import json
import logging
from dataclasses import dataclass
from typing import Optional, Protocol
from urllib.parse import quote

import httpx
import redis.asyncio as redis

from shelfwise.config import get_settings
from shelfwise.core.redis import get_redis, order_status_cache_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderStatus:
    name: str
    custom_status: Optional[str] = None


class OrderStatusLookup(Protocol):
    async def get(self, store_id: str, order_id: str) -> Optional[OrderStatus]:
        """Return the order's status, or None when the store has no such order."""
        ...


class HttpOrderStatusLookup:
    """
    Reads order status from the order service:
        GET {ORDER_STATUS_URL}/{store_id}/{order_id} -> {"name": ..., "custom_status": ...}
    404 means the order does not exist. Any other failure propagates.
    """

    def __init__(self, base_url: str | None = None, timeout: float | None = None,
                 client: httpx.AsyncClient | None = None):
        settings = get_settings()
        self.base_url = (base_url or settings.ORDER_STATUS_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.ORDER_STATUS_TIMEOUT
        self._client = client

    async def get(self, store_id: str, order_id: str) -> Optional[OrderStatus]:
        url = f"{self.base_url}/{quote(store_id, safe='')}/{quote(order_id, safe='')}"
        if self._client is not None:
            response = await self._client.get(url)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url)
        if response.status_code == 404:
            return None
        response.raise_for_status()
        data = response.json()
        return OrderStatus(name=data.get("name") or order_id, custom_status=data.get("custom_status"))


class CachedOrderStatusLookup:
    """Redis cache-aside in front of another lookup. Only found orders are cached."""

    def __init__(self, inner: OrderStatusLookup, redis_client: redis.Redis | None = None,
                 ttl: int | None = None):
        self.inner = inner
        self._redis = redis_client
        self.ttl = ttl if ttl is not None else get_settings().ORDER_STATUS_CACHE_TTL

    async def get(self, store_id: str, order_id: str) -> Optional[OrderStatus]:
        r = self._redis or await get_redis()
        key = order_status_cache_key(store_id, order_id)
        cached = await r.get(key)
        if cached is not None:
            return OrderStatus(**json.loads(cached))

        status = await self.inner.get(store_id, order_id)
        if status is not None:
            await r.setex(key, self.ttl, json.dumps({"name": status.name, "custom_status": status.custom_status}))
        else:
            logger.debug("Order %s not found for store %s", order_id, store_id)
        return status
