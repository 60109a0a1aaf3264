"""Two-tier caching for search responses, suggestions and analytics counters."""

from content_search.cache.manager import CacheManager, SearchCache, search_cache_key
from content_search.cache.memory import MemoryCache
from content_search.cache.shared import SharedCache, SQLSharedCache

__all__ = [
    "CacheManager",
    "MemoryCache",
    "SQLSharedCache",
    "SearchCache",
    "SharedCache",
    "search_cache_key",
]
