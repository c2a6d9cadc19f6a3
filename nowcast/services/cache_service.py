"""
Redis-backed cache layer.

Everything stored here is advisory and can be rebuilt from the database, so
every operation is fail-open: a Redis error or client timeout is logged and
reported through the return value (``CacheResult.status`` for reads, ``False``
for writes) instead of being raised.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Generic, Iterable, List, Optional, TypeVar
import json
import logging

from redis.asyncio import Redis

from nowcast.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

class CacheNamespace(str, Enum):
    FEED = "feed"
    USER = "user"
    POST = "post"
    TRENDING = "trending"
    RATE_LIMIT = "ratelimit"

def cache_key(namespace: CacheNamespace, *parts: Any) -> str:
    """Build a key that always starts with its namespace, e.g. ``feed:42``"""
    return ":".join([namespace.value, *(str(part) for part in parts)])

TRENDING_KEY = cache_key(CacheNamespace.TRENDING, "posts")

class CacheStatus(str, Enum):
    HIT = "hit"
    MISS = "miss"
    UNAVAILABLE = "unavailable"

@dataclass(frozen=True)
class CacheResult(Generic[T]):
    status: CacheStatus
    value: Optional[T] = None

    @property
    def hit(self) -> bool:
        return self.status is CacheStatus.HIT

    @classmethod
    def miss(cls) -> "CacheResult[T]":
        return cls(CacheStatus.MISS)

    @classmethod
    def unavailable(cls) -> "CacheResult[T]":
        return cls(CacheStatus.UNAVAILABLE)

class CacheService:
    def __init__(self, redis: Redis, settings: Settings):
        self.redis = redis
        self.feed_ttl = settings.FEED_CACHE_TTL
        self.feed_max_length = settings.FEED_MAX_LENGTH
        self.trending_ttl = settings.TRENDING_CACHE_TTL

    async def ping(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except Exception as e:
            logger.warning(f"Redis cache unavailable: {e}")
            return False

    # ============ Feed lists ============

    async def get_feed(self, user_id: int) -> CacheResult[List[int]]:
        """Get the cached home timeline (post ids, newest first)"""
        key = cache_key(CacheNamespace.FEED, user_id)
        try:
            cached = await self.redis.lrange(key, 0, -1)
        except Exception as e:
            logger.warning(f"Cache get_feed error for key '{key}': {e}")
            return CacheResult.unavailable()

        if not cached:
            return CacheResult.miss()
        return CacheResult(CacheStatus.HIT, [int(post_id) for post_id in cached])

    async def cache_feed(self, user_id: int, post_ids: List[int], ttl: Optional[int] = None) -> bool:
        """Replace a user's cached timeline and set its expiry in one transaction"""
        key = cache_key(CacheNamespace.FEED, user_id)
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.delete(key)
                if post_ids:
                    pipe.rpush(key, *post_ids[:self.feed_max_length])
                    pipe.expire(key, ttl or self.feed_ttl)
                await pipe.execute()
            return True
        except Exception as e:
            logger.warning(f"Cache cache_feed error for key '{key}': {e}")
            return False

    async def prepend_to_feed(self, user_id: int, post_id: int) -> bool:
        return await self.prepend_to_feeds([user_id], post_id)

    async def prepend_to_feeds(self, user_ids: Iterable[int], post_id: int) -> bool:
        """
        Push a new post id onto the head of every existing cached timeline.

        LPUSHX only touches keys that still exist, so a timeline invalidated
        before this runs stays deleted; the LTRIM keeps lists bounded.
        """
        keys = [cache_key(CacheNamespace.FEED, user_id) for user_id in user_ids]
        if not keys:
            return True
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                for key in keys:
                    pipe.lpushx(key, post_id)
                    pipe.ltrim(key, 0, self.feed_max_length - 1)
                await pipe.execute()
            return True
        except Exception as e:
            logger.warning(f"Cache prepend error for post {post_id} ({len(keys)} feeds): {e}")
            return False

    async def invalidate_feed(self, user_id: int) -> bool:
        return await self.invalidate_feeds([user_id])

    async def invalidate_feeds(self, user_ids: Iterable[int]) -> bool:
        """Delete many cached timelines with a single DEL"""
        keys = [cache_key(CacheNamespace.FEED, user_id) for user_id in user_ids]
        if not keys:
            return True
        try:
            await self.redis.delete(*keys)
            return True
        except Exception as e:
            logger.warning(f"Cache invalidate error for {len(keys)} feeds: {e}")
            return False

    # ============ Entity snapshots ============

    async def get_snapshot(self, namespace: CacheNamespace, entity_id: int) -> CacheResult[Dict[str, Any]]:
        key = cache_key(namespace, entity_id)
        try:
            cached = await self.redis.get(key)
        except Exception as e:
            logger.warning(f"Cache get error for key '{key}': {e}")
            return CacheResult.unavailable()

        if cached is None:
            return CacheResult.miss()
        try:
            return CacheResult(CacheStatus.HIT, json.loads(cached))
        except (json.JSONDecodeError, TypeError):
            logger.warning(f"Discarding undecodable cache entry '{key}'")
            return CacheResult.miss()

    async def set_snapshot(self, namespace: CacheNamespace, entity_id: int, data: Dict[str, Any], ttl: int) -> bool:
        key = cache_key(namespace, entity_id)
        try:
            await self.redis.set(key, json.dumps(data, default=str), ex=ttl)
            return True
        except Exception as e:
            logger.warning(f"Cache set error for key '{key}': {e}")
            return False

    async def invalidate_snapshot(self, namespace: CacheNamespace, *entity_ids: int) -> bool:
        keys = [cache_key(namespace, entity_id) for entity_id in entity_ids]
        if not keys:
            return True
        try:
            await self.redis.delete(*keys)
            return True
        except Exception as e:
            logger.warning(f"Cache delete error for keys {keys}: {e}")
            return False

    # ============ Trending ============

    async def get_trending(self) -> CacheResult[List[Dict[str, Any]]]:
        try:
            cached = await self.redis.get(TRENDING_KEY)
        except Exception as e:
            logger.warning(f"Cache get_trending error: {e}")
            return CacheResult.unavailable()

        if cached is None:
            return CacheResult.miss()
        try:
            return CacheResult(CacheStatus.HIT, json.loads(cached))
        except (json.JSONDecodeError, TypeError):
            logger.warning("Discarding undecodable trending snapshot")
            return CacheResult.miss()

    async def cache_trending(self, posts: List[Dict[str, Any]], ttl: Optional[int] = None) -> bool:
        try:
            await self.redis.set(TRENDING_KEY, json.dumps(posts, default=str), ex=ttl or self.trending_ttl)
            return True
        except Exception as e:
            logger.warning(f"Cache cache_trending error: {e}")
            return False

    # ============ Statistics ============

    async def cache_stats(self) -> Dict[str, int]:
        """Count keys per namespace (SCAN, never KEYS)"""
        stats = {}
        try:
            for namespace in (CacheNamespace.FEED, CacheNamespace.USER, CacheNamespace.POST):
                count = 0
                async for _ in self.redis.scan_iter(match=f"{namespace.value}:*", count=500):
                    count += 1
                stats[f"{namespace.value}_keys"] = count
        except Exception as e:
            logger.warning(f"Cache stats error: {e}")
            return {"feed_keys": 0, "user_keys": 0, "post_keys": 0}
        return stats
