"""Compact output formatters for MCP tool responses."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from content_search.models.search import (
        PopularSearch,
        RAGResponse,
        SearchResponse,
        SearchResult,
        Suggestion,
    )


def format_result_header(result: SearchResult, position: int) -> str:
    """Format: 1. [content] Title (87%)."""
    return f"{position}. [{result.type.value}] {result.title} ({result.score:.0%})"


def format_result_meta(result: SearchResult) -> str:
    """Format: #tag1 #tag2 | /courses/c1/content/x | semantic."""
    parts: list[str] = []
    if result.tags:
        parts.append(" ".join(f"#{t}" for t in result.tags[:6]))
    if result.source.url:
        parts.append(result.source.url)
    if result.strategy:
        parts.append(result.strategy)
    return " | ".join(parts)


def format_result(result: SearchResult, position: int, include_highlights: bool = True) -> str:
    """Header + description + meta, plus highlight fragments when requested."""
    lines = [format_result_header(result, position)]
    if result.description:
        lines.append(f"  {result.description}")
    meta = format_result_meta(result)
    if meta:
        lines.append(f"  {meta}")
    if include_highlights:
        lines.extend(f"  … {h}" for h in result.highlights)
    return "\n".join(lines)


def format_rag_answer(response: RAGResponse) -> str:
    """Answer block with numbered citations and follow-up questions."""
    label = "Answer (low confidence)" if response.low_quality else "Answer"
    lines = [f"{label} [{response.model}, {response.confidence:.0%}]:", response.answer]
    if response.sources:
        lines.append("")
        lines.append("Sources:")
        lines.extend(
            f"  [{i}] {ctx.metadata.title} ({ctx.relevance_score:.0%})"
            for i, ctx in enumerate(response.sources, start=1)
        )
    if response.follow_up_questions:
        lines.append("")
        lines.append("Follow-up questions:")
        lines.extend(f"  - {q}" for q in response.follow_up_questions)
    return "\n".join(lines)


def format_facets(facets: dict[str, Any]) -> str:
    """Format: category: a (3), b (1)."""
    lines = []
    for name, buckets in facets.items():
        if buckets:
            counts = ", ".join(f"{b.key} ({b.count})" for b in buckets)
            lines.append(f"  {name}: {counts}")
    return "\n".join(lines)


def format_search_response(response: SearchResponse, include_highlights: bool = True) -> str:
    """Answer, results, facets and diagnostics as a compact text block."""
    sections: list[str] = []
    if response.rag_response is not None:
        sections.append(format_rag_answer(response.rag_response))

    if response.results:
        header = (
            f"{len(response.results)} of {response.total_results} result(s)"
            f" in {response.search_time:.0f}ms"
        )
        if response.metadata.cache_hit:
            header += " (cached)"
        entries = [
            format_result(r, i, include_highlights)
            for i, r in enumerate(response.results, start=1)
        ]
        sections.append(header + "\n\n" + "\n\n".join(entries))
    else:
        sections.append("No results found.")

    if response.facets:
        facet_text = format_facets(response.facets)
        if facet_text:
            sections.append("Facets:\n" + facet_text)
    if response.suggestions:
        sections.append("Try instead: " + "; ".join(response.suggestions))
    if response.metadata.failed_strategies:
        failures = ", ".join(
            f"{name} ({error})" for name, error in response.metadata.failed_strategies.items()
        )
        sections.append(f"Note: degraded results, failed strategies: {failures}")
    sections.append(f"search_id: {response.search_id}")
    return "\n\n".join(sections)


def format_suggestions(suggestions: list[Suggestion]) -> str:
    """One suggestion per line with its source type."""
    if not suggestions:
        return "No suggestions."
    return "\n".join(f"{s.text} ({s.type})" for s in suggestions)


def format_popular(searches: list[PopularSearch]) -> str:
    """Format: 1. javascript (150)."""
    if not searches:
        return "No popular searches yet."
    return "\n".join(f"{i}. {p.query} ({p.count})" for i, p in enumerate(searches, start=1))


def format_health(health: dict[str, Any]) -> str:
    """Backend status lines plus open/half-open circuits."""

    def status(ok: bool) -> str:
        return "ok" if ok else "unavailable"

    breaker = health["circuit_breaker"]
    lines = [
        f"engine: {status(health['engine'])}",
        f"vector store: {status(health['vector'])}",
        f"cache: {status(health['cache'])}",
        f"circuits: {breaker['total']} total, {breaker['open']} open,"
        f" {breaker['half_open']} half-open, {breaker['closed']} closed",
    ]
    for key, snap in breaker["circuits"].items():
        if snap["state"] != "closed":
            lines.append(f"  {key}: {snap['state']} ({snap['failure_count']} failures)")
    return "\n".join(lines)
