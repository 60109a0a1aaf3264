"""Two-tier cache facade and the search-specific cache operations built on it.

Reads go memory first, then the shared tier (a shared hit warms memory).
Writes go to both. Every shared-tier failure is logged and treated as a miss:
a cache problem never fails the caller.
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter

from content_search.models.search import (
    ClickThroughEvent,
    PopularSearch,
    SearchFilters,
    SearchOptions,
    SearchResponse,
    Suggestion,
)

if TYPE_CHECKING:
    from content_search.cache.memory import MemoryCache
    from content_search.cache.shared import SharedCache

logger = logging.getLogger(__name__)

DAY_SECONDS = 86400
POPULAR_SEARCHES_KEY = "popular_searches"

_SUGGESTION_LIST = TypeAdapter(list[Suggestion])
_POPULAR_LIST = TypeAdapter(list[PopularSearch])


class CacheManager:
    """Memory LRU in front of an optional shared cache, with JSON values."""

    def __init__(
        self,
        memory: MemoryCache,
        shared: SharedCache | None = None,
        *,
        key_prefix: str = "",
    ) -> None:
        """Initialize with the two tiers and a namespace prefix for shared keys."""
        self._memory = memory
        self._shared = shared
        self._prefix = key_prefix
        self.errors = 0

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _failed(self, op: str, key: str) -> None:
        self.errors += 1
        logger.warning("Cache %s failed for %r, treating as miss", op, key, exc_info=True)

    async def get(self, key: str) -> Any | None:
        """Return the cached value from the fastest tier that has it."""
        full_key = self._key(key)
        value = self._memory.get(full_key)
        if value is not None:
            return value
        if self._shared is None:
            return None
        try:
            raw = await self._shared.get(full_key)
            if raw is None:
                return None
            value = json.loads(raw)
        except Exception:
            self._failed("get", key)
            return None
        self._memory.set(full_key, value)
        return value

    async def set(self, key: str, value: Any, ttl: float | None = None) -> bool:
        """Write both tiers. Returns False if the shared write failed."""
        full_key = self._key(key)
        self._memory.set(full_key, value, ttl)
        if self._shared is None:
            return True
        try:
            await self._shared.set(full_key, json.dumps(value, default=str), ttl)
            return True
        except Exception:
            self._failed("set", key)
            return False

    async def delete(self, key: str) -> bool:
        """Remove a key from both tiers."""
        full_key = self._key(key)
        removed = self._memory.delete(full_key)
        if self._shared is None:
            return removed
        try:
            return await self._shared.delete(full_key) or removed
        except Exception:
            self._failed("delete", key)
            return removed

    async def delete_pattern(self, pattern: str) -> int:
        """Remove matching shared keys and clear the whole memory tier."""
        self._memory.clear()
        if self._shared is None:
            return 0
        try:
            return await self._shared.delete_pattern(self._key(pattern))
        except Exception:
            self._failed("delete_pattern", pattern)
            return 0

    async def exists(self, key: str) -> bool:
        """True if either tier holds a live value."""
        full_key = self._key(key)
        if self._memory.get(full_key) is not None:
            return True
        if self._shared is None:
            return False
        try:
            return await self._shared.exists(full_key)
        except Exception:
            self._failed("exists", key)
            return False

    async def increment(self, key: str, ttl: float | None = None) -> int:
        """Increment a shared counter. Returns 0 when the shared tier is unavailable."""
        if self._shared is None:
            return 0
        try:
            return await self._shared.increment(self._key(key), ttl)
        except Exception:
            self._failed("increment", key)
            return 0

    async def top_counters(self, pattern: str, limit: int) -> list[tuple[str, int]]:
        """Highest shared counters matching ``pattern``, keys returned without the prefix."""
        if self._shared is None:
            return []
        try:
            rows = await self._shared.top_counters(self._key(pattern), limit)
        except Exception:
            self._failed("top_counters", pattern)
            return []
        return [(key.removeprefix(self._prefix), count) for key, count in rows]

    async def clear(self) -> None:
        """Empty both tiers."""
        self._memory.clear()
        if self._shared is None:
            return
        try:
            if self._prefix:
                await self._shared.delete_pattern(f"{self._prefix}*")
            else:
                await self._shared.clear()
        except Exception:
            self._failed("clear", "*")

    async def ping(self) -> bool:
        """Health of the shared tier (memory is always healthy)."""
        if self._shared is None:
            return True
        try:
            return await self._shared.ping()
        except Exception:
            self._failed("ping", "")
            return False

    def stats(self) -> dict[str, Any]:
        """Memory-tier statistics plus the shared error count."""
        return {
            "memory": self._memory.stats(),
            "shared": self._shared is not None,
            "errors": self.errors,
        }


def search_cache_key(
    query: str,
    filters: SearchFilters | None,
    *,
    strategy: str | None = None,
    options: SearchOptions | None = None,
) -> str:
    """Deterministic key for a search request.

    Filters are serialized with sorted keys and unset fields dropped, so two
    equal filter sets always hash the same.
    """
    material: dict[str, Any] = {
        "query": query.strip().lower(),
        "filters": filters.model_dump(mode="json", exclude_none=True) if filters else {},
    }
    if strategy is not None:
        material["strategy"] = strategy
    if options is not None:
        material["options"] = options.model_dump(mode="json")
    digest = hashlib.sha256(
        json.dumps(material, sort_keys=True, separators=(",", ":")).encode()
    ).hexdigest()
    return f"search:{digest}"


class SearchCache:
    """Search, suggestion, popularity and click-through caching."""

    def __init__(
        self,
        cache: CacheManager,
        *,
        search_ttl: float = 300,
        suggestions_ttl: float = 3600,
        popular_ttl: float = 900,
    ) -> None:
        """Initialize with a CacheManager and per-data-type TTLs in seconds."""
        self.cache = cache
        self._search_ttl = search_ttl
        self._suggestions_ttl = suggestions_ttl
        self._popular_ttl = popular_ttl

    async def cache_search_results(self, key: str, response: SearchResponse) -> bool:
        """Store a fused response under a key from ``search_cache_key``."""
        return await self.cache.set(key, response.model_dump(mode="json"), self._search_ttl)

    async def get_cached_search_results(self, key: str) -> SearchResponse | None:
        """Return a cached response, or None on miss or an unreadable entry."""
        data = await self.cache.get(key)
        if data is None:
            return None
        try:
            return SearchResponse.model_validate(data)
        except ValueError:
            logger.warning("Discarding unreadable cached response %s", key, exc_info=True)
            await self.cache.delete(key)
            return None

    async def cache_suggestions(self, partial: str, suggestions: list[Suggestion]) -> bool:
        """Store suggestions under the lower-cased partial text."""
        payload = [s.model_dump(mode="json") for s in suggestions]
        return await self.cache.set(_suggestions_key(partial), payload, self._suggestions_ttl)

    async def get_cached_suggestions(self, partial: str) -> list[Suggestion] | None:
        """Return cached suggestions for a partial, or None on miss or an unreadable entry."""
        key = _suggestions_key(partial)
        data = await self.cache.get(key)
        if data is None:
            return None
        try:
            return _SUGGESTION_LIST.validate_python(data)
        except ValueError:
            logger.warning("Discarding unreadable cached suggestions %s", key, exc_info=True)
            await self.cache.delete(key)
            return None

    async def cache_popular_searches(self, searches: list[PopularSearch]) -> bool:
        """Store the popular-searches list under its fixed key."""
        payload = [s.model_dump(mode="json") for s in searches]
        return await self.cache.set(POPULAR_SEARCHES_KEY, payload, self._popular_ttl)

    async def get_cached_popular_searches(self) -> list[PopularSearch] | None:
        """Return the cached popular-searches list, or None on miss or an unreadable entry."""
        data = await self.cache.get(POPULAR_SEARCHES_KEY)
        if data is None:
            return None
        try:
            return _POPULAR_LIST.validate_python(data)
        except ValueError:
            logger.warning("Discarding unreadable cached popular searches", exc_info=True)
            await self.cache.delete(POPULAR_SEARCHES_KEY)
            return None

    async def track_query(self, query: str) -> int:
        """Count one occurrence of a query for the popular-searches ranking."""
        return await self.cache.increment(f"query_count:{query.strip().lower()}", DAY_SECONDS)

    async def top_queries(self, limit: int) -> list[PopularSearch]:
        """Most frequent queries of the last day, from the shared counters."""
        rows = await self.cache.top_counters("query_count:*", limit)
        return [
            PopularSearch(query=key.removeprefix("query_count:"), count=count)
            for key, count in rows
        ]

    async def track_click_through(self, event: ClickThroughEvent) -> None:
        """Record a click and bump the per-result click counter."""
        await self.cache.set(
            f"click_through:{event.search_id}:{event.result_id}",
            event.model_dump(mode="json"),
            DAY_SECONDS,
        )
        await self.cache.increment(
            f"ctr_metrics:{event.result_type.value}:{event.result_id}", DAY_SECONDS
        )

    async def invalidate_search_results(self) -> int:
        """Drop every cached search response."""
        return await self.cache.delete_pattern("search:*")


def _suggestions_key(partial: str) -> str:
    return f"suggestions:{partial.strip().lower()}"
