"""Keyword retrieval through the full-text engine."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from content_search.models.search import SearchType
from content_search.search.strategies.base import StrategyResult

if TYPE_CHECKING:
    from content_search.engine.base import FullTextEngine
    from content_search.models.search import ProcessedQuery
    from content_search.resilience.breaker import CircuitBreaker

logger = logging.getLogger(__name__)

ENGINE_KEY = "search:engine"

# Upper bound on candidates fetched from the engine for fusion and pagination
MAX_CANDIDATES = 1000


class FullTextStrategy:
    """Field-weighted match with filters, highlights and optional facets."""

    name = "full_text"
    priority = 5

    def __init__(self, engine: FullTextEngine, breaker: CircuitBreaker) -> None:
        """Initialize with the engine adapter and the shared circuit breaker."""
        self._engine = engine
        self._breaker = breaker

    def can_handle(self, query: ProcessedQuery) -> bool:
        """Full-text and hybrid queries."""
        return query.strategy in (SearchType.FULL_TEXT, SearchType.HYBRID)

    async def search(self, query: ProcessedQuery) -> StrategyResult:
        """Fetch the top ``page * limit`` hits so fusion can paginate after merging."""
        size = min(query.options.page * query.options.limit, MAX_CANDIDATES)
        response = await self._breaker.call(
            ENGINE_KEY, lambda: self._engine.search(query, size=size)
        )
        logger.debug(
            "Full-text returned %d of %d hits (search_id=%s)",
            len(response.results),
            response.total,
            query.search_id,
        )
        return StrategyResult(
            results=response.results,
            facets=response.facets if query.options.include_facets else None,
            total=response.total,
        )
