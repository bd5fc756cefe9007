# backend/lead_inbox/redis_client.py
"""
Cache client for lead counts and SLA alert cooldowns.

Connects to Redis when REDIS_URL is configured; otherwise an in-process
store with the same async surface is used (single-process development).
"""

import logging
import time
from typing import Optional

import redis.asyncio as redis

from lead_inbox.config import settings

logger = logging.getLogger(__name__)


class InMemoryCacheClient:
    """In-process stand-in for the handful of Redis commands we use."""

    def __init__(self):
        self._store = {}
        logger.info("Using in-memory cache client (no REDIS_URL configured)")

    def _expired(self, key: str) -> bool:
        value, expires_at = self._store[key]
        if expires_at is not None and expires_at <= time.monotonic():
            del self._store[key]
            return True
        return False

    async def get(self, key: str):
        if key not in self._store or self._expired(key):
            return None
        return self._store[key][0]

    async def set(self, key: str, value: str):
        self._store[key] = (value, None)
        return True

    async def setex(self, key: str, seconds: int, value: str):
        self._store[key] = (value, time.monotonic() + seconds)
        return True

    async def exists(self, key: str) -> int:
        return int(await self.get(key) is not None)

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._store.pop(key, None) is not None:
                removed += 1
        return removed

    async def incr(self, key: str) -> int:
        current = int(await self.get(key) or 0) + 1
        self._store[key] = (str(current), None)
        return current


def create_cache_client(url: Optional[str] = None):
    """Build the cache client for the given (or configured) Redis URL."""
    url = url if url is not None else settings.REDIS_URL
    if url:
        logger.info("Using Redis cache at %s", url.split("@")[-1])
        return redis.from_url(url, decode_responses=True)
    return InMemoryCacheClient()


# Create singleton instance
redis_client = create_cache_client()
