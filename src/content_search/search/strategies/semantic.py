"""Vector retrieval: embed the query, look up similar chunks, dress them as results."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from content_search.models.search import (
    ContentType,
    ResultSource,
    SearchResult,
    SearchType,
    VectorSearchResult,
)
from content_search.search.strategies.base import StrategyResult
from content_search.search.text import (
    content_url,
    extract_description,
    extract_keywords,
    extract_title,
    generate_highlights,
    unique,
)

if TYPE_CHECKING:
    from content_search.models.search import ProcessedQuery
    from content_search.search.vector import VectorSearchService

logger = logging.getLogger(__name__)

# Stored-metadata keys carried onto the result source
_SOURCE_METADATA = ("section", "page", "timestamp", "embedding_model")


class SemanticStrategy:
    """Similarity search over stored chunk embeddings."""

    name = "semantic"
    priority = 8

    def __init__(self, vectors: VectorSearchService) -> None:
        """Initialize with the vector search service."""
        self._vectors = vectors

    def can_handle(self, query: ProcessedQuery) -> bool:
        """Semantic and hybrid queries."""
        return query.strategy in (SearchType.SEMANTIC, SearchType.HYBRID)

    async def search(self, query: ProcessedQuery) -> StrategyResult:
        """Embed the expanded query and convert every match above the threshold."""
        vector = await self._vectors.embed_query(query.expanded_query or query.normalized_query)
        matches = await self._vectors.similarity_search(
            vector,
            limit=query.options.page * query.options.limit,
            filters=query.filters,
        )
        results = [to_search_result(m, query.tokens) for m in matches]
        if results:
            logger.debug(
                "Semantic returned %d results, mean similarity %.3f (search_id=%s)",
                len(results),
                sum(m.similarity for m in matches) / len(matches),
                query.search_id,
            )
        return StrategyResult(results=results, total=len(results))


def to_search_result(match: VectorSearchResult, tokens: tuple[str, ...]) -> SearchResult:
    """Common result shape for one vector match."""
    meta = match.metadata
    content_type = ContentType.parse(meta.get("content_type"))
    course_id = meta.get("course_id")
    module_id = meta.get("module_id")

    source_meta = {"chunk_id": match.chunk_id}
    for key in _SOURCE_METADATA:
        if meta.get(key) is not None:
            source_meta[key] = meta[key]

    tags = ["semantic", *meta.get("tags", [])]
    for extra in (meta.get("content_type"), meta.get("language")):
        if extra:
            tags.append(extra)
    tags.extend(extract_keywords(match.text))

    result = {
        "id": match.id,
        "type": content_type,
        "title": meta.get("title") or extract_title(match.text),
        "description": extract_description(match.text),
        "content": match.text,
        "highlights": generate_highlights(match.text, tokens),
        "score": match.similarity,
        "relevance_score": match.similarity,
        "semantic_score": match.similarity,
        "source": ResultSource(
            type=content_type,
            id=match.content_id,
            url=content_url(match.content_id, course_id, module_id),
            thumbnail=meta.get("thumbnail"),
            metadata=source_meta,
        ),
        "course_id": course_id,
        "module_id": module_id,
        "tags": unique(tags),
        "categories": meta.get("categories") or ["semantic-result"],
        "strategy": "semantic",
    }
    if meta.get("created_at"):
        result["created_at"] = meta["created_at"]
    return SearchResult.model_validate(result)
