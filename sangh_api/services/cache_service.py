# sangh_api/services/cache_service.py
"""
Read-through cache over Redis.

Entries are JSON strings under ``<resource>:<scope>:<qualifiers>`` keys with a
TTL in seconds. Mutations bust entries explicitly: the exact key for a single
post and a SCAN sweep for listing pages. The sweep is best effort, so a
listing can stay stale until its TTL when a write bypasses the sweep or a
producer stores a page computed before the sweep ran.
"""
from __future__ import annotations

import json
import logging
import os
from typing import Any, Awaitable, Callable, Optional

from dotenv import load_dotenv
from redis import asyncio as aioredis
from redis.exceptions import RedisError

load_dotenv()

logger = logging.getLogger(__name__)

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

TTL_POST = int(os.getenv("CACHE_TTL_POST", "3600"))            # single post, 1 hour
TTL_SANGH_POSTS = int(os.getenv("CACHE_TTL_SANGH_POSTS", "300"))  # one Sangh's listing, 5 minutes
TTL_FEED = int(os.getenv("CACHE_TTL_FEED", "180"))             # all-Sangh feed, 3 minutes


_SCAN_BATCH = 500


# ---------------------------
# Key builders
# ---------------------------
def post_key(post_id: str) -> str:
    return f"sanghPost:{post_id}"


def sangh_posts_key(sangh_id: str, page: int, limit: int) -> str:
    return f"sanghPosts:{sangh_id}:page:{page}:limit:{limit}"


def sangh_posts_pattern(sangh_id: str) -> str:
    return f"sanghPosts:{sangh_id}:*"


def feed_key(page: int, limit: int) -> str:
    return f"allSanghPosts:page:{page}:limit:{limit}"


FEED_PATTERN = "allSanghPosts:*"


class CacheService:
    def __init__(self, client: aioredis.Redis):
        self.client = client

    async def get_or_set(
        self,
        key: str,
        producer: Callable[[], Awaitable[Any]],
        ttl: int,
    ) -> Any:
        """
        Return the cached value for ``key``; on a miss call ``producer``, store
        its result for ``ttl`` seconds and return it. Redis errors never fail
        the caller: a read error counts as a miss, a write error is logged and
        the fresh value is still returned. ``None`` results are not stored.
        """
        try:
            raw = await self.client.get(key)
        except RedisError as e:
            logger.warning("Cache get failed for %s: %s", key, e)
            raw = None

        if raw is not None:
            try:
                return json.loads(raw)
            except ValueError:
                logger.warning("Discarding undecodable cache entry %s", key)

        value = await producer()
        if value is None:
            return None

        try:
            await self.client.set(key, json.dumps(value, default=str), ex=ttl)
        except RedisError as e:
            logger.warning("Cache set failed for %s: %s", key, e)
        return value

    async def invalidate(self, *keys: str) -> None:
        if not keys:
            return
        try:
            await self.client.delete(*keys)
        except RedisError as e:
            logger.warning("Cache invalidate failed for %s: %s", keys, e)

    async def invalidate_pattern(self, pattern: str) -> int:
        """Delete every key matching the glob ``pattern``. Returns how many were removed."""
        removed = 0
        batch: list = []
        try:
            async for key in self.client.scan_iter(match=pattern, count=_SCAN_BATCH):
                batch.append(key)
                if len(batch) >= _SCAN_BATCH:
                    removed += await self.client.delete(*batch)
                    batch = []
            if batch:
                removed += await self.client.delete(*batch)
        except RedisError as e:
            logger.warning("Cache pattern invalidate failed for %s: %s", pattern, e)
        return removed

    async def invalidate_post(self, post_id: str, sangh_id: Optional[str] = None) -> None:
        """Bust everything that can embed the post: its own entry and the listings."""
        await self.invalidate(post_key(post_id))
        if sangh_id:
            await self.invalidate_pattern(sangh_posts_pattern(sangh_id))
        await self.invalidate_pattern(FEED_PATTERN)

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError as e:
            logger.warning("Redis ping failed: %s", e)
            return False

    async def close(self) -> None:
        await self.client.aclose()


# ---------------------------
# Process-wide handle
# ---------------------------
_cache: Optional[CacheService] = None


def init_cache(client: Optional[aioredis.Redis] = None) -> CacheService:
    global _cache
    _cache = CacheService(client or aioredis.from_url(REDIS_URL, decode_responses=True))
    return _cache


def get_cache() -> CacheService:
    """FastAPI dependency: the shared cache handle, created on first use."""
    if _cache is None:
        return init_cache()
    return _cache
