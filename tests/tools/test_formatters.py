"""Tests for compact output formatters."""

from datetime import UTC, datetime

import pytest

from content_search.models.search import (
    ContentType,
    FacetCount,
    PopularSearch,
    RAGContext,
    RAGContextMetadata,
    RAGResponse,
    ResultSource,
    SearchMetadata,
    SearchResponse,
    SearchResult,
    Suggestion,
)
from content_search.resilience.breaker import CircuitBreaker
from content_search.tools.formatters import (
    format_health,
    format_popular,
    format_rag_answer,
    format_result,
    format_result_header,
    format_result_meta,
    format_search_response,
    format_suggestions,
)


def _make_result(**kwargs) -> SearchResult:
    defaults = {
        "id": "semantic-doc-1",
        "type": ContentType.FILE,
        "title": "Photosynthesis Basics",
        "description": "How plants turn light into sugar",
        "content": "Full text that should never be printed",
        "highlights": ["<em>photosynthesis</em> happens in chloroplasts"],
        "score": 0.87,
        "relevance_score": 0.87,
        "source": ResultSource(
            type=ContentType.FILE, id="doc-1", url="/courses/c1/content/doc-1"
        ),
        "tags": ["biology", "plants"],
        "strategy": "semantic",
        "created_at": datetime.now(UTC),
    }
    defaults.update(kwargs)
    return SearchResult(**defaults)


def _make_rag(**kwargs) -> RAGResponse:
    defaults = {
        "answer": "Plants convert light into chemical energy.",
        "sources": [
            RAGContext(
                text="...",
                metadata=RAGContextMetadata(content_id="doc-1", title="Photosynthesis"),
                relevance_score=0.92,
            )
        ],
        "confidence": 0.8,
        "model": "fake-llm",
        "follow_up_questions": ["What is chlorophyll?"],
    }
    defaults.update(kwargs)
    return RAGResponse(**defaults)


# --- results ---


def test_result_header():
    assert format_result_header(_make_result(), 1) == "1. [file] Photosynthesis Basics (87%)"


def test_result_meta():
    meta = format_result_meta(_make_result())
    assert meta == "#biology #plants | /courses/c1/content/doc-1 | semantic"


def test_result_meta_empty():
    result = _make_result(
        tags=[], strategy=None, source=ResultSource(type=ContentType.FILE, id="doc-1")
    )
    assert format_result_meta(result) == ""


def test_result_highlights_optional():
    with_highlights = format_result(_make_result(), 1)
    without = format_result(_make_result(), 1, include_highlights=False)
    assert "<em>photosynthesis</em>" in with_highlights
    assert "<em>photosynthesis</em>" not in without
    # Compact format never prints the full content
    assert "never be printed" not in with_highlights


# --- responses ---


def test_empty_response():
    output = format_search_response(SearchResponse(search_id="sid-1"))
    assert "No results found." in output
    assert output.endswith("search_id: sid-1")


def test_response_with_results():
    response = SearchResponse(
        search_id="sid-1",
        results=[_make_result(), _make_result(id="x", title="Second", score=0.5)],
        total_results=12,
        search_time=42.4,
    )
    output = format_search_response(response)
    assert output.startswith("2 of 12 result(s) in 42ms")
    assert "1. [file] Photosynthesis Basics (87%)" in output
    assert "2. [file] Second (50%)" in output
    assert "(cached)" not in output


def test_cached_response_is_marked():
    response = SearchResponse(
        search_id="sid-1",
        results=[_make_result()],
        total_results=1,
        metadata=SearchMetadata(cache_hit=True),
    )
    assert "(cached)" in format_search_response(response)


def test_response_with_facets_suggestions_and_failures():
    response = SearchResponse(
        search_id="sid-1",
        facets={
            "tags": [FacetCount(key="biology", count=3), FacetCount(key="plants", count=1)],
            "categories": [],
        },
        suggestions=["light reactions", "chlorophyll"],
        metadata=SearchMetadata(failed_strategies={"full_text": "timed out after 10.0s"}),
    )
    output = format_search_response(response)
    assert "Facets:\n  tags: biology (3), plants (1)" in output
    assert "categories" not in output
    assert "Try instead: light reactions; chlorophyll" in output
    assert "failed strategies: full_text (timed out after 10.0s)" in output


def test_response_leads_with_rag_answer():
    response = SearchResponse(search_id="sid-1", rag_response=_make_rag())
    assert format_search_response(response).startswith("Answer [fake-llm, 80%]:")


# --- RAG ---


def test_rag_answer():
    output = format_rag_answer(_make_rag())
    assert "Plants convert light into chemical energy." in output
    assert "  [1] Photosynthesis (92%)" in output
    assert "  - What is chlorophyll?" in output


def test_rag_answer_low_confidence():
    output = format_rag_answer(
        _make_rag(low_quality=True, confidence=0.2, sources=[], follow_up_questions=[])
    )
    assert output.startswith("Answer (low confidence) [fake-llm, 20%]:")
    assert "Sources:" not in output
    assert "Follow-up" not in output


# --- auxiliary tools ---


def test_suggestions():
    assert format_suggestions([]) == "No suggestions."
    output = format_suggestions(
        [Suggestion(text="photosynthesis"), Suggestion(text="photo editing", type="popular")]
    )
    assert output == "photosynthesis (query)\nphoto editing (popular)"


def test_popular():
    assert format_popular([]) == "No popular searches yet."
    output = format_popular([PopularSearch(query="javascript", count=150)])
    assert output == "1. javascript (150)"


@pytest.mark.asyncio
async def test_health_lists_open_circuits():
    breaker = CircuitBreaker(threshold=1)

    async def failing():
        raise RuntimeError("down")

    with pytest.raises(RuntimeError):
        await breaker.call("search:engine", failing)
    health = {"engine": True, "vector": False, "cache": True, "circuit_breaker": breaker.health()}

    output = format_health(health)
    assert "engine: ok" in output
    assert "vector store: unavailable" in output
    assert "circuits: 1 total, 1 open, 0 half-open, 0 closed" in output
    assert "  search:engine: open (1 failures)" in output


def test_health_all_closed():
    health = {
        "engine": True,
        "vector": True,
        "cache": True,
        "circuit_breaker": CircuitBreaker().health(),
    }
    assert format_health(health).splitlines()[-1] == (
        "circuits: 0 total, 0 open, 0 half-open, 0 closed"
    )
