"""Tests for SearchOrchestrator."""

from datetime import UTC, datetime

import pytest

from content_search.cache.manager import CacheManager, SearchCache
from content_search.cache.memory import MemoryCache
from content_search.cache.shared import SQLSharedCache
from content_search.errors import EngineUnavailableError, ValidationError
from content_search.llm.expander import QueryExpander
from content_search.models.search import (
    ClickThroughEvent,
    FacetCount,
    PopularSearch,
    SearchFilters,
    SearchOptions,
    SearchType,
    SortField,
    SortOrder,
    Suggestion,
)
from content_search.resilience.breaker import CircuitBreaker
from content_search.search.executor import StrategyExecutor
from content_search.search.orchestrator import (
    SearchOrchestrator,
    merge_suggestions,
    paginate,
    post_process,
)
from content_search.search.processor import QueryProcessor
from content_search.search.strategies import FullTextStrategy, SemanticStrategy
from content_search.search.vector import VectorSearchService

QUERY = "photosynthesis in plants"


class StubExpander:
    """Returns a fixed list of alternative phrasings."""

    def __init__(self, variants):
        self.variants = variants

    async def expand(self, query, context=None):
        return list(self.variants)


class BrokenExecutor:
    async def execute(self, query):
        raise RuntimeError("boom")


@pytest.fixture
def search_cache(db):
    return SearchCache(CacheManager(MemoryCache(), SQLSharedCache(db)))


@pytest.fixture
def breaker():
    return CircuitBreaker()


@pytest.fixture
def vectors(fake_store, fake_embedder, breaker):
    return VectorSearchService(fake_store, fake_embedder, breaker=breaker)


@pytest.fixture
def build(fake_engine, vectors, search_cache, breaker):
    """Orchestrator factory; ``expander`` feeds the sparse-result suggestions."""

    def _build(expander=None):
        executor = StrategyExecutor(
            [FullTextStrategy(fake_engine, breaker), SemanticStrategy(vectors)]
        )
        return SearchOrchestrator(
            QueryProcessor(expander),
            executor,
            search_cache,
            breaker,
            engine=fake_engine,
            vectors=vectors,
        )

    return _build


@pytest.fixture
def orchestrator(build):
    return build()


@pytest.fixture
def populated(fake_engine, fake_store, result_factory):
    fake_engine.results = [result_factory("kw-1", 0.6), result_factory("kw-2", 0.4)]
    fake_store.add(
        "vec-1",
        "Photosynthesis converts light energy into chemical energy in plants.",
        0.9,
        chunk_id="0",
        metadata={"title": "Photosynthesis"},
    )


# --- search ---


@pytest.mark.asyncio
async def test_hybrid_search_fuses_both_strategies(orchestrator, populated):
    response = await orchestrator.search(QUERY)

    assert [r.source.id for r in response.results] == ["vec-1", "kw-1", "kw-2"]
    assert response.total_results == 3
    assert sorted(response.metadata.strategies) == ["full_text", "semantic"]
    assert response.metadata.failed_strategies == {}
    assert response.metadata.cache_hit is False
    assert response.search_time >= 0
    assert response.search_id


@pytest.mark.asyncio
async def test_full_text_only_skips_vectors(orchestrator, populated, fake_store):
    response = await orchestrator.search(QUERY, search_type=SearchType.FULL_TEXT)
    assert [r.source.id for r in response.results] == ["kw-1", "kw-2"]
    assert fake_store.searches == []


@pytest.mark.asyncio
async def test_repeat_search_is_served_from_cache(orchestrator, populated, fake_engine):
    first = await orchestrator.search(QUERY)
    second = await orchestrator.search("  Photosynthesis in PLANTS ")

    assert len(fake_engine.search_calls) == 1
    assert second.metadata.cache_hit is True
    assert second.search_id != first.search_id
    assert [r.id for r in second.results] == [r.id for r in first.results]


@pytest.mark.asyncio
async def test_cache_hit_skips_query_expansion(build, populated, fake_llm, fake_engine):
    fake_llm.response = "chlorophyll\nlight reactions"
    orchestrator = build(QueryExpander(fake_llm))

    await orchestrator.search(QUERY)
    assert "chlorophyll" in fake_engine.search_calls[0][0].expanded_query
    calls_after_first = fake_llm.generate_count

    second = await orchestrator.search(QUERY)
    assert second.metadata.cache_hit is True
    assert fake_llm.generate_count == calls_after_first


@pytest.mark.asyncio
async def test_different_options_miss_cache(orchestrator, populated, fake_engine):
    await orchestrator.search(QUERY)
    await orchestrator.search(QUERY, options=SearchOptions(limit=5))
    assert len(fake_engine.search_calls) == 2


@pytest.mark.asyncio
async def test_validation_error_propagates(orchestrator):
    with pytest.raises(ValidationError):
        await orchestrator.search("a")


@pytest.mark.asyncio
async def test_degraded_response_is_not_cached(orchestrator, populated, fake_engine):
    fake_engine.error = EngineUnavailableError("engine down")

    response = await orchestrator.search(QUERY)
    assert [r.source.id for r in response.results] == ["vec-1"]
    assert response.metadata.strategies == ["semantic"]
    assert "engine down" in response.metadata.failed_strategies["full_text"]

    fake_engine.error = None
    recovered = await orchestrator.search(QUERY)
    assert recovered.metadata.cache_hit is False
    assert len(recovered.results) == 3


@pytest.mark.asyncio
async def test_all_strategies_failing_returns_empty(orchestrator, fake_engine, fake_store):
    fake_engine.error = EngineUnavailableError("engine down")
    fake_store.error = RuntimeError("store down")

    response = await orchestrator.search(QUERY)
    assert response.results == []
    assert set(response.metadata.failed_strategies) == {"full_text", "semantic"}


@pytest.mark.asyncio
async def test_unexpected_error_returns_empty_response(search_cache, breaker):
    orchestrator = SearchOrchestrator(QueryProcessor(), BrokenExecutor(), search_cache, breaker)
    response = await orchestrator.search(QUERY)
    assert response.results == []
    assert response.metadata.failed_strategies == {"search": "boom"}


@pytest.mark.asyncio
async def test_min_score_filter_and_pagination(orchestrator, fake_engine, result_factory):
    fake_engine.results = [result_factory(f"kw-{i}", 0.9 - i * 0.1) for i in range(6)]

    response = await orchestrator.search(
        QUERY,
        search_type=SearchType.FULL_TEXT,
        filters=SearchFilters(min_score=0.45),
        options=SearchOptions(limit=2, page=2),
    )
    assert response.total_results == 5
    assert [r.source.id for r in response.results] == ["kw-2", "kw-3"]


@pytest.mark.asyncio
async def test_sparse_results_attach_suggestions(build, populated):
    orchestrator = build(StubExpander(["light reactions", "chlorophyll", "calvin cycle", "x"]))
    response = await orchestrator.search(QUERY)
    assert response.suggestions == ["light reactions", "chlorophyll", "calvin cycle"]


@pytest.mark.asyncio
async def test_plentiful_results_skip_suggestions(build, fake_engine, result_factory):
    fake_engine.results = [result_factory(f"kw-{i}", 0.5) for i in range(6)]
    orchestrator = build(StubExpander(["light reactions", "chlorophyll"]))
    response = await orchestrator.search(QUERY, search_type=SearchType.FULL_TEXT)
    assert response.suggestions == []


@pytest.mark.asyncio
async def test_facets_only_when_requested(orchestrator, populated, fake_engine):
    fake_engine.facets = {"tags": [FacetCount(key="biology", count=2)]}

    plain = await orchestrator.search(QUERY)
    assert plain.facets is None

    faceted = await orchestrator.search(QUERY, options=SearchOptions(include_facets=True))
    assert faceted.facets["tags"][0].key == "biology"


# --- post-processing ---


def test_post_process_sorts_by_title(query_factory, result_factory):
    results = [
        result_factory("b", 0.9, title="beta"),
        result_factory("a", 0.5, title="Alpha"),
    ]
    query = query_factory(options=SearchOptions(sort_by=SortField.TITLE, sort_order=SortOrder.ASC))
    assert [r.title for r in post_process(results, query)] == ["Alpha", "beta"]


def test_post_process_sorts_by_date(query_factory, result_factory):
    old = result_factory("old", 0.9, created_at=datetime(2023, 1, 1, tzinfo=UTC))
    new = result_factory("new", 0.1, created_at=datetime(2024, 6, 1, tzinfo=UTC))
    query = query_factory(options=SearchOptions(sort_by=SortField.DATE))
    assert [r.source.id for r in post_process([old, new], query)] == ["new", "old"]


def test_post_process_relevance_keeps_fused_order(query_factory, result_factory):
    results = [result_factory("a", 0.5), result_factory("b", 0.9)]
    assert post_process(results, query_factory()) == results
    ascending = query_factory(options=SearchOptions(sort_order=SortOrder.ASC))
    assert [r.source.id for r in post_process(results, ascending)] == ["b", "a"]


def test_post_process_score_ascending(query_factory, result_factory):
    results = [result_factory("a", 0.9), result_factory("b", 0.2)]
    query = query_factory(options=SearchOptions(sort_by=SortField.SCORE, sort_order=SortOrder.ASC))
    assert [r.source.id for r in post_process(results, query)] == ["b", "a"]


def test_paginate():
    items = list(range(7))
    assert paginate(items, 1, 3) == [0, 1, 2]
    assert paginate(items, 3, 3) == [6]
    assert paginate(items, 4, 3) == []


# --- suggestions and popularity ---


@pytest.mark.asyncio
async def test_short_partial_returns_no_suggestions(orchestrator, fake_engine):
    fake_engine.suggestions = [Suggestion(text="anything", score=1.0)]
    assert await orchestrator.get_suggestions(" p ") == []


@pytest.mark.asyncio
async def test_unreadable_cached_suggestions_act_as_miss(orchestrator, search_cache, fake_engine):
    fake_engine.suggestions = [Suggestion(text="machine learning", score=0.9)]
    await search_cache.cache.set("suggestions:mach", {"oops": 1}, 60)
    await search_cache.cache.set("popular_searches", [{"count": "many"}], 60)

    suggestions = await orchestrator.get_suggestions("mach")
    assert [s.text for s in suggestions] == ["machine learning"]
    assert await orchestrator.get_popular_searches() == []


@pytest.mark.asyncio
async def test_suggestions_merge_popular_searches(orchestrator, search_cache, fake_engine):
    fake_engine.suggestions = [Suggestion(text="Photosynthesis", score=0.9)]
    for _ in range(3):
        await search_cache.track_query("photosynthesis basics")
    await search_cache.track_query("mitochondria")

    suggestions = await orchestrator.get_suggestions("photo")

    assert [s.text for s in suggestions] == ["Photosynthesis", "photosynthesis basics"]
    popular = suggestions[1]
    assert popular.type == "popular"
    assert popular.score == pytest.approx(0.03)
    assert popular.metadata == {"count": 3}


@pytest.mark.asyncio
async def test_suggestions_tolerate_engine_failure(orchestrator, search_cache, fake_engine):
    fake_engine.error = EngineUnavailableError("down")
    await search_cache.track_query("photosynthesis basics")
    suggestions = await orchestrator.get_suggestions("photo")
    assert [s.text for s in suggestions] == ["photosynthesis basics"]


@pytest.mark.asyncio
async def test_suggestions_respect_limit(orchestrator, fake_engine):
    fake_engine.suggestions = [Suggestion(text=f"photo {i}", score=1 - i / 10) for i in range(5)]
    assert len(await orchestrator.get_suggestions("photo", limit=2)) == 2


@pytest.mark.asyncio
async def test_popular_searches_count_tracked_queries(orchestrator, populated):
    await orchestrator.search(QUERY)
    await orchestrator.search(QUERY)
    await orchestrator.search("cell division")

    popular = await orchestrator.get_popular_searches(5)
    assert popular[0] == PopularSearch(query=QUERY, count=2)
    assert {p.query for p in popular} == {QUERY, "cell division"}


@pytest.mark.asyncio
async def test_popular_searches_without_shared_tier(breaker):
    orchestrator = SearchOrchestrator(
        QueryProcessor(),
        StrategyExecutor([]),
        SearchCache(CacheManager(MemoryCache())),
        breaker,
    )
    assert await orchestrator.get_popular_searches() == []


def test_merge_suggestions_dedupes_case_insensitively():
    merged = merge_suggestions(
        [Suggestion(text="Cell Biology", score=0.2)],
        [
            PopularSearch(query="cell biology", count=90),
            PopularSearch(query="cell division", count=50),
            PopularSearch(query="genetics", count=80),
        ],
        "CELL",
    )
    assert [(s.text, s.score) for s in merged] == [("cell division", 0.5), ("Cell Biology", 0.2)]


# --- click-through, cache admin, health ---


@pytest.mark.asyncio
async def test_track_click_through(orchestrator, search_cache):
    event = ClickThroughEvent(search_id="sid-1", result_id="r-1", position=2)
    await orchestrator.track_click_through(event)

    stored = await search_cache.cache.get("click_through:sid-1:r-1")
    assert stored["position"] == 2
    assert await search_cache.cache.top_counters("ctr_metrics:*", 5) == [
        ("ctr_metrics:content:r-1", 1)
    ]


@pytest.mark.asyncio
async def test_clear_cache_by_pattern(orchestrator, populated, fake_engine):
    await orchestrator.search(QUERY)
    assert await orchestrator.clear_cache("search:*") == 1

    await orchestrator.search(QUERY)
    assert len(fake_engine.search_calls) == 2


@pytest.mark.asyncio
async def test_clear_cache_everything(orchestrator, populated, fake_engine):
    await orchestrator.search(QUERY)
    assert await orchestrator.clear_cache() is None

    response = await orchestrator.search(QUERY)
    assert response.metadata.cache_hit is False
    assert len(fake_engine.search_calls) == 2


@pytest.mark.asyncio
async def test_health_reports_every_backend(orchestrator, fake_engine):
    fake_engine.healthy = False
    health = await orchestrator.get_health()

    assert health["engine"] is False
    assert health["cache"] is True
    assert health["vector"] is True
    assert health["circuit_breaker"]["healthy"] is True
