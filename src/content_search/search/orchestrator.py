"""Search orchestrator: the façade over processing, strategies, fusion and caching."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any

from content_search.cache.manager import search_cache_key
from content_search.models.search import (
    PopularSearch,
    SearchMetadata,
    SearchResponse,
    SortField,
    SortOrder,
    Suggestion,
)
from content_search.search.fusion import fuse, merge_facets

if TYPE_CHECKING:
    from content_search.cache.manager import SearchCache
    from content_search.engine.base import FullTextEngine
    from content_search.models.search import (
        ClickThroughEvent,
        ContentType,
        ProcessedQuery,
        SearchContext,
        SearchFilters,
        SearchOptions,
        SearchResult,
        SearchType,
    )
    from content_search.resilience.breaker import CircuitBreaker
    from content_search.search.executor import StrategyExecutor
    from content_search.search.processor import QueryProcessor
    from content_search.search.vector import VectorSearchService

logger = logging.getLogger(__name__)

ENGINE_KEY = "search:engine"

# Fewer results than this attach alternative queries to the response
SPARSE_RESULTS = 5
MAX_ALTERNATIVES = 3
MIN_SUGGEST_LENGTH = 2
# Popular searches scanned when enriching suggestions
POPULAR_SCAN = 50
# Popular-search counts are divided by this to sit on the suggestion score scale
POPULAR_SCORE_SCALE = 100


class SearchOrchestrator:
    """Runs one search end to end and serves the auxiliary caller operations.

    Only ``ValidationError`` escapes ``search``. Backend failures shrink the
    response instead: fewer results, no answer, or an empty result list.
    """

    def __init__(
        self,
        processor: QueryProcessor,
        executor: StrategyExecutor,
        cache: SearchCache,
        breaker: CircuitBreaker,
        *,
        engine: FullTextEngine | None = None,
        vectors: VectorSearchService | None = None,
    ) -> None:
        """Initialize with explicitly constructed collaborators."""
        self._processor = processor
        self._executor = executor
        self._cache = cache
        self._breaker = breaker
        self._engine = engine
        self._vectors = vectors

    async def search(
        self,
        query: str,
        *,
        search_type: SearchType | None = None,
        filters: SearchFilters | None = None,
        options: SearchOptions | None = None,
        context: SearchContext | None = None,
    ) -> SearchResponse:
        """Serve from cache when possible; otherwise expand, execute, fuse and cache."""
        started = time.perf_counter()
        prepared = self._processor.prepare(
            query, search_type=search_type, filters=filters, options=options, context=context
        )
        key = search_cache_key(
            prepared.normalized_query,
            prepared.filters,
            strategy=prepared.strategy.value,
            options=prepared.options,
        )

        cached = await self._cache.get_cached_search_results(key)
        if cached is not None:
            logger.debug("Search cache hit (search_id=%s)", prepared.search_id)
            await self._cache.track_query(prepared.normalized_query)
            return cached.model_copy(
                update={
                    "search_id": prepared.search_id,
                    "search_time": _elapsed_ms(started),
                    "metadata": cached.metadata.model_copy(update={"cache_hit": True}),
                }
            )

        processed = await self._processor.expand(prepared)

        try:
            response = await self._execute(processed, started)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error(
                "Search failed, returning empty response (search_id=%s): %s",
                processed.search_id,
                exc,
                exc_info=True,
            )
            return SearchResponse(
                search_id=processed.search_id,
                search_time=_elapsed_ms(started),
                metadata=SearchMetadata(failed_strategies={"search": str(exc)}),
            )

        if not response.metadata.failed_strategies:
            await self._cache.cache_search_results(key, response)
        await self._cache.track_query(processed.normalized_query)
        logger.info(
            "Search %r returned %d of %d results in %.1fms via %s (search_id=%s)",
            processed.normalized_query,
            len(response.results),
            response.total_results,
            response.search_time,
            ",".join(response.metadata.strategies) or "none",
            processed.search_id,
        )
        return response

    async def _execute(self, query: ProcessedQuery, started: float) -> SearchResponse:
        outcomes = await self._executor.execute(query)
        fused = fuse(outcomes)
        filtered = post_process(fused, query)
        page = paginate(filtered, query.options.page, query.options.limit)

        rag_response = next(
            (o.result.rag_response for o in outcomes if o.result.rag_response is not None),
            None,
        )
        suggestions: list[str] = []
        if len(page) < SPARSE_RESULTS:
            alternatives = await self._processor.alternatives(
                query.normalized_query, query.context
            )
            suggestions = alternatives[:MAX_ALTERNATIVES]

        return SearchResponse(
            results=page,
            total_results=len(filtered),
            search_time=_elapsed_ms(started),
            search_id=query.search_id,
            facets=merge_facets(outcomes) if query.options.include_facets else None,
            rag_response=rag_response,
            suggestions=suggestions,
            metadata=SearchMetadata(
                strategies=[o.name for o in outcomes if o.ok],
                failed_strategies={o.name: o.error for o in outcomes if o.error is not None},
            ),
        )

    async def get_suggestions(
        self, partial: str, type: ContentType | None = None, limit: int = 10
    ) -> list[Suggestion]:
        """Engine completions merged with matching popular searches."""
        partial = partial.strip()
        if len(partial) < MIN_SUGGEST_LENGTH:
            return []
        cached = await self._cache.get_cached_suggestions(partial)
        if cached is not None:
            return cached[:limit]

        suggestions: list[Suggestion] = []
        if self._engine is not None:
            engine = self._engine
            try:
                suggestions = await self._breaker.call(
                    ENGINE_KEY, lambda: engine.suggest(partial, type, limit), fallback=list
                )
            except Exception:
                logger.warning("Engine suggestions failed for %r", partial, exc_info=True)

        popular = await self.get_popular_searches(POPULAR_SCAN)
        merged = merge_suggestions(suggestions, popular, partial)
        await self._cache.cache_suggestions(partial, merged)
        return merged[:limit]

    async def get_popular_searches(self, limit: int = 20) -> list[PopularSearch]:
        """Most frequent recent queries, cached under a fixed key."""
        cached = await self._cache.get_cached_popular_searches()
        if cached is not None:
            return cached[:limit]
        popular = await self._cache.top_queries(max(limit, POPULAR_SCAN))
        await self._cache.cache_popular_searches(popular)
        return popular[:limit]

    async def track_click_through(self, event: ClickThroughEvent) -> None:
        """Record that a result was opened."""
        await self._cache.track_click_through(event)
        logger.debug(
            "Click-through tracked (search_id=%s, result=%s, position=%d)",
            event.search_id,
            event.result_id,
            event.position,
        )

    async def clear_cache(self, pattern: str | None = None) -> int | None:
        """Delete keys matching a glob, or everything. Returns the shared-tier count."""
        if pattern:
            deleted = await self._cache.cache.delete_pattern(pattern)
            logger.info("Cleared %d cache entries matching %r", deleted, pattern)
            return deleted
        await self._cache.cache.clear()
        logger.info("Cleared the search cache")
        return None

    async def get_health(self) -> dict[str, Any]:
        """Backend reachability plus the circuit breaker summary."""
        engine_ok = False
        if self._engine is not None:
            try:
                engine_ok = await self._engine.health()
            except Exception:
                logger.warning("Engine health check failed", exc_info=True)
        vector_ok = False
        if self._vectors is not None:
            try:
                vector_ok = await self._vectors.health()
            except Exception:
                logger.warning("Vector store health check failed", exc_info=True)
        return {
            "engine": engine_ok,
            "cache": await self._cache.cache.ping(),
            "vector": vector_ok,
            "circuit_breaker": self._breaker.health(),
        }


def post_process(results: list[SearchResult], query: ProcessedQuery) -> list[SearchResult]:
    """Apply the minimum-score filter and any sort override to fused results."""
    min_score = query.filters.min_score
    if min_score is not None:
        results = [r for r in results if r.score >= min_score]

    sort_by = query.options.sort_by
    descending = query.options.sort_order == SortOrder.DESC
    if sort_by == SortField.RELEVANCE:
        return results if descending else list(reversed(results))
    if sort_by == SortField.SCORE:
        return sorted(results, key=lambda r: r.score, reverse=descending)
    if sort_by == SortField.DATE:
        return sorted(results, key=lambda r: r.created_at, reverse=descending)
    return sorted(results, key=lambda r: r.title.lower(), reverse=descending)


def paginate(results: list[SearchResult], page: int, limit: int) -> list[SearchResult]:
    """One page of results; pages are 1-based."""
    start = (page - 1) * limit
    return results[start : start + limit]


def merge_suggestions(
    suggestions: list[Suggestion], popular: list[PopularSearch], partial: str
) -> list[Suggestion]:
    """Add popular searches containing the partial, dedupe case-insensitively, best first."""
    needle = partial.lower()
    candidates = list(suggestions)
    candidates.extend(
        Suggestion(
            text=p.query,
            type="popular",
            score=p.count / POPULAR_SCORE_SCALE,
            metadata={"count": p.count},
        )
        for p in popular
        if needle in p.query.lower()
    )
    seen: set[str] = set()
    merged: list[Suggestion] = []
    for suggestion in candidates:
        folded = suggestion.text.lower()
        if folded in seen:
            continue
        seen.add(folded)
        merged.append(suggestion)
    merged.sort(key=lambda s: s.score, reverse=True)
    return merged


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000
