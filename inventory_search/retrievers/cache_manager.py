"""Scope-partitioned cache for ranked search responses.

Entries live in Redis under ``search:result:<scope>:<digest>`` with a TTL of
the stale window; each entry carries its own ``fresh_until``/``stale_until``
horizons so fresh reads and degraded stale reads can be told apart. Every
scope keeps a set of its entry keys (``search:scope:<scope>``) so a data
change can drop the whole scope at once.

Caching is an optimization: every storage error is logged and turned into a
miss or a no-op.
"""

import hashlib
import json
import math
import time
from dataclasses import dataclass
from typing import Callable, Optional

import redis.asyncio as redis
import structlog

from ..hybrid.response import SearchResponse, decode_payload

logger = structlog.get_logger("search_service.search_cache")

MAX_CACHEABLE_QUERY_LENGTH = 512


def normalize_query(query: str) -> str:
    """Trim, lowercase and collapse internal whitespace."""
    return " ".join(query.split()).lower()


@dataclass(frozen=True)
class CacheKey:
    """Exact-match cache key."""
    scope_key: str
    normalized_query: str
    mode: str
    limit: int
    offset: int

    @classmethod
    def build(cls, scope_key: str, query: str, mode: str, limit: int, offset: int) -> "CacheKey":
        return cls(scope_key, normalize_query(query), mode, limit, offset)

    @property
    def cacheable(self) -> bool:
        return 0 < len(self.normalized_query) <= MAX_CACHEABLE_QUERY_LENGTH

    def fields(self) -> dict:
        return {
            "scope_key": self.scope_key,
            "normalized_query": self.normalized_query,
            "mode": self.mode,
            "limit": self.limit,
            "offset": self.offset,
        }


class SearchCacheManager:
    """Fresh/stale response cache.

    Parameters
    - redis_client: ``redis.asyncio`` client (tests pass ``fakeredis``)
    - fresh_seconds: Default window in which entries are served normally
    - stale_seconds: Default window in which entries may serve as a fallback
    - clock: Wall-clock source in seconds
    """

    result_prefix = "search:result:"
    scope_prefix = "search:scope:"

    def __init__(
        self,
        redis_client: redis.Redis,
        fresh_seconds: int = 60,
        stale_seconds: int = 900,
        clock: Callable[[], float] = time.time,
    ):
        self.redis_client = redis_client
        self.fresh_seconds = fresh_seconds
        self.stale_seconds = stale_seconds
        self._clock = clock

    def _entry_key(self, key: CacheKey) -> str:
        digest = hashlib.md5(
            json.dumps([key.normalized_query, key.mode, key.limit, key.offset]).encode()
        ).hexdigest()
        return f"{self.result_prefix}{key.scope_key}:{digest}"

    def _scope_set_key(self, scope_key: str) -> str:
        return f"{self.scope_prefix}{scope_key}"

    async def _read(self, key: CacheKey, horizon: str) -> Optional[SearchResponse]:
        if not key.cacheable:
            return None

        try:
            raw = await self.redis_client.get(self._entry_key(key))
        except Exception as e:
            logger.warning("Search cache read failed", horizon=horizon, error=str(e))
            return None

        if raw is None:
            return None

        try:
            entry = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Discarding undecodable search cache entry", scope=key.scope_key)
            return None

        if not isinstance(entry, dict) or any(entry.get(name) != value for name, value in key.fields().items()):
            return None

        until = entry.get(horizon)
        if not isinstance(until, (int, float)) or isinstance(until, bool) or self._clock() >= until:
            return None

        response = decode_payload(entry.get("payload"), source="cache" if horizon == "fresh_until" else "stale_cache")
        if response is None:
            logger.warning("Discarding malformed search cache payload", scope=key.scope_key)
        return response

    async def read_fresh(self, key: CacheKey) -> Optional[SearchResponse]:
        """Entry for ``key`` while it is fresh."""
        return await self._read(key, "fresh_until")

    async def read_stale(self, key: CacheKey) -> Optional[SearchResponse]:
        """Entry for ``key`` until its stale horizon; degraded fallback only."""
        return await self._read(key, "stale_until")

    async def write(
        self,
        key: CacheKey,
        response: SearchResponse,
        fresh_seconds: Optional[int] = None,
        stale_seconds: Optional[int] = None
    ) -> bool:
        """Store ``response`` under ``key``, replacing any previous entry."""
        if not key.cacheable:
            return False

        fresh_seconds = self.fresh_seconds if fresh_seconds is None else fresh_seconds
        stale_seconds = self.stale_seconds if stale_seconds is None else stale_seconds
        now = self._clock()
        entry = {
            **key.fields(),
            "payload": response.to_payload(),
            "fresh_until": now + fresh_seconds,
            "stale_until": now + stale_seconds,
            "cached_at": now,
        }

        entry_key = self._entry_key(key)
        scope_set_key = self._scope_set_key(key.scope_key)
        ttl = max(1, math.ceil(stale_seconds))

        try:
            async with self.redis_client.pipeline(transaction=True) as pipe:
                pipe.set(entry_key, json.dumps(entry), ex=ttl)
                pipe.sadd(scope_set_key, entry_key)
                pipe.expire(scope_set_key, ttl)
                await pipe.execute()
            await self._sweep(scope_set_key)
        except Exception as e:
            logger.warning("Search cache write failed", scope=key.scope_key, error=str(e))
            return False

        logger.debug("Search response cached", scope=key.scope_key, total=response.total)
        return True

    async def _sweep(self, scope_set_key: str) -> None:
        """Forget scope members whose entries already expired."""
        members = list(await self.redis_client.smembers(scope_set_key))
        if not members:
            return

        async with self.redis_client.pipeline(transaction=False) as pipe:
            for member in members:
                pipe.exists(member)
            present = await pipe.execute()

        expired = [member for member, exists in zip(members, present) if not exists]
        if expired:
            await self.redis_client.srem(scope_set_key, *expired)
            logger.debug("Swept expired search cache entries", count=len(expired))

    async def invalidate_scope(self, scope_key: str) -> int:
        """Delete every entry of ``scope_key``; returns the number removed."""
        scope_set_key = self._scope_set_key(scope_key)
        try:
            members = list(await self.redis_client.smembers(scope_set_key))
            deleted = 0
            if members:
                deleted = await self.redis_client.delete(*members)
            await self.redis_client.delete(scope_set_key)
        except Exception as e:
            logger.warning("Search cache invalidation failed", scope=scope_key, error=str(e))
            return 0

        logger.info("Search cache invalidated", scope=scope_key, deleted_keys=deleted)
        return deleted

    async def close(self) -> None:
        try:
            await self.redis_client.aclose()
            logger.info("Search cache manager closed")
        except Exception as e:
            logger.warning("Failed to close search cache", error=str(e))


def create_search_cache_manager(
    redis_url: str,
    fresh_seconds: int = 60,
    stale_seconds: int = 900
) -> SearchCacheManager:
    """Create a search cache manager backed by ``redis_url``."""
    return SearchCacheManager(
        redis_client=redis.from_url(redis_url),
        fresh_seconds=fresh_seconds,
        stale_seconds=stale_seconds,
    )
