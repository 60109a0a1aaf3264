"""Retrieval strategy contract."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from content_search.models.search import (
        ProcessedQuery,
        RAGResponse,
        SearchFacets,
        SearchResult,
    )


@dataclass
class StrategyResult:
    """Everything one strategy produced for a query.

    ``results`` is complete or the strategy raised; never a partial list.
    """

    results: list[SearchResult] = field(default_factory=list)
    facets: SearchFacets | None = None
    total: int | None = None
    rag_response: RAGResponse | None = None


@runtime_checkable
class SearchStrategy(Protocol):
    """A retrieval variant: decides whether it applies and produces ranked results."""

    name: str
    # Fusion tie-break; higher wins
    priority: int

    def can_handle(self, query: ProcessedQuery) -> bool:
        """True if this strategy should run for the query's strategy tag."""
        ...

    async def search(self, query: ProcessedQuery) -> StrategyResult:
        """Run the retrieval."""
        ...
