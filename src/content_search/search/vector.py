"""Vector search service: query embedding, similarity lookups and RAG context assembly."""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, TypeVar

from content_search.errors import EmbeddingError, SearchError, VectorSearchError
from content_search.models.embedding import EmbeddingRecord, EmbeddingStats
from content_search.models.search import (
    RAGContext,
    RAGContextMetadata,
    SearchFilters,
    VectorSearchResult,
)
from content_search.search.text import estimate_tokens

if TYPE_CHECKING:
    from content_search.db.backend import VectorStore
    from content_search.llm.provider import EmbeddingProvider
    from content_search.resilience.breaker import CircuitBreaker

logger = logging.getLogger(__name__)

T = TypeVar("T")

EMBEDDING_KEY = "llm:embedding"
VECTOR_KEY = "vector:search"

# Row columns copied into VectorSearchResult.metadata alongside the stored metadata JSON
_ROW_METADATA = (
    "course_id",
    "module_id",
    "content_type",
    "language",
    "tags",
    "categories",
    "embedding_model",
    "created_at",
)


class VectorSearchService:
    """Similarity search over a VectorStore, with optional circuit breaking.

    Store failures surface as VectorSearchError carrying the request
    parameters; embedding failures surface as EmbeddingError.
    """

    def __init__(
        self,
        store: VectorStore,
        embedder: EmbeddingProvider,
        *,
        breaker: CircuitBreaker | None = None,
        similarity_threshold: float = 0.7,
        max_results: int = 100,
        rag_max_contexts: int = 10,
        rag_max_tokens: int = 4000,
    ) -> None:
        """Initialize with a store, an embedder and retrieval defaults."""
        self._store = store
        self._embedder = embedder
        self._breaker = breaker
        self.similarity_threshold = similarity_threshold
        self.max_results = max_results
        self.rag_max_contexts = rag_max_contexts
        self.rag_max_tokens = rag_max_tokens

    async def _guarded(self, key: str, func: Callable[[], Awaitable[T]]) -> T:
        if self._breaker is None:
            return await func()
        return await self._breaker.call(key, func)

    async def embed_query(self, text: str) -> list[float]:
        """Embed query text through the embedding breaker."""
        try:
            return await self._guarded(EMBEDDING_KEY, lambda: self._embedder.embed(text))
        except SearchError:
            raise
        except Exception as exc:
            raise EmbeddingError(f"Embedding failed: {exc}") from exc

    async def similarity_search(
        self,
        vector: list[float],
        *,
        limit: int | None = None,
        threshold: float | None = None,
        filters: SearchFilters | None = None,
        exclude_content_id: str | None = None,
    ) -> list[VectorSearchResult]:
        """Rows with similarity > threshold, most similar first, at most min(limit, max)."""
        threshold = self.similarity_threshold if threshold is None else threshold
        capped = min(limit or self.max_results, self.max_results)
        started = time.perf_counter()

        async def _lookup() -> list[dict[str, Any]]:
            try:
                return await self._store.vector_search(
                    vector,
                    limit=capped,
                    max_distance=1.0 - threshold,
                    filters=filters,
                    exclude_content_id=exclude_content_id,
                )
            except VectorSearchError:
                raise
            except Exception as exc:
                raise VectorSearchError(
                    f"Vector similarity search failed: {exc}",
                    details={
                        "vector_dimensions": len(vector),
                        "limit": capped,
                        "threshold": threshold,
                        "filters": filters.model_dump(mode="json", exclude_none=True)
                        if filters
                        else {},
                    },
                ) from exc

        try:
            rows = await self._guarded(VECTOR_KEY, _lookup)
        except TimeoutError as exc:
            raise VectorSearchError(
                "Vector similarity search timed out",
                details={"vector_dimensions": len(vector), "limit": capped},
            ) from exc
        results = [_row_to_result(row) for row in rows]
        # Distance comparisons in the store are float32; re-check the strict bound
        results = [r for r in results if r.similarity > threshold]
        results.sort(key=lambda r: r.similarity, reverse=True)
        logger.debug(
            "Vector search returned %d rows above %.2f in %.1fms",
            len(results),
            threshold,
            (time.perf_counter() - started) * 1000,
        )
        return results

    async def get_rag_contexts(
        self,
        query_embedding: list[float],
        *,
        limit: int | None = None,
        threshold: float | None = None,
        filters: SearchFilters | None = None,
        max_tokens: int | None = None,
    ) -> list[RAGContext]:
        """Greedy, token-budgeted selection from ``2 * limit`` similarity candidates.

        Candidates are taken in descending relevance. Selection stops before
        the estimated token total would exceed ``max_tokens`` (the first
        candidate is always taken) and in any case at ``limit`` contexts.
        """
        limit = limit or self.rag_max_contexts
        budget = self.rag_max_tokens if max_tokens is None else max_tokens
        candidates = await self.similarity_search(
            query_embedding, limit=limit * 2, threshold=threshold, filters=filters
        )
        return select_contexts(candidates, limit=limit, max_tokens=budget)

    async def store_embeddings(self, records: list[EmbeddingRecord], batch_size: int = 100) -> int:
        """Insert embedding rows in batches. Returns the number stored."""
        stored = 0
        try:
            for start in range(0, len(records), batch_size):
                stored += await self._store.vector_insert(records[start : start + batch_size])
        except Exception as exc:
            raise VectorSearchError(
                f"Failed to store embeddings: {exc}",
                details={"embedding_count": len(records), "stored": stored},
            ) from exc
        logger.info("Stored %d embeddings", stored)
        return stored

    async def update_embedding(
        self,
        content_id: str,
        chunk_id: str | None,
        embedding: list[float],
        metadata: dict[str, Any] | None = None,
    ) -> int:
        """Replace one row's vector. Returns rows updated."""
        try:
            updated = await self._store.vector_update(content_id, chunk_id, embedding, metadata)
        except Exception as exc:
            raise VectorSearchError(
                f"Failed to update embedding: {exc}",
                details={"content_id": content_id, "chunk_id": chunk_id},
            ) from exc
        if updated == 0:
            logger.warning("No embedding found to update for %s/%s", content_id, chunk_id)
        return updated

    async def delete_embeddings(self, content_id: str, chunk_id: str | None = None) -> int:
        """Delete a content item's rows, or one chunk. Returns rows deleted."""
        try:
            deleted = await self._store.vector_delete(content_id, chunk_id)
        except Exception as exc:
            raise VectorSearchError(
                f"Failed to delete embeddings: {exc}",
                details={"content_id": content_id, "chunk_id": chunk_id},
            ) from exc
        logger.info("Deleted %d embeddings for %s", deleted, content_id)
        return deleted

    async def find_similar_content(
        self, content_id: str, *, limit: int = 10, threshold: float | None = None
    ) -> list[VectorSearchResult]:
        """Content similar to a stored item, excluding the item itself."""
        try:
            vector = await self._store.vector_get(content_id)
        except Exception as exc:
            raise VectorSearchError(
                f"Failed to load embedding: {exc}", details={"content_id": content_id}
            ) from exc
        if vector is None:
            logger.warning("No embedding stored for %s", content_id)
            return []
        return await self.similarity_search(
            vector, limit=limit, threshold=threshold, exclude_content_id=content_id
        )

    async def get_embedding_stats(self) -> EmbeddingStats:
        """Counts by type and language, average text length, date range."""
        try:
            return await self._store.vector_stats()
        except Exception as exc:
            raise VectorSearchError(f"Failed to read embedding stats: {exc}") from exc

    async def health(self) -> bool:
        """True if the store answers and the vector functions are loaded."""
        return await self._store.ping()


def select_contexts(
    candidates: list[VectorSearchResult], *, limit: int, max_tokens: int
) -> list[RAGContext]:
    """Token-budgeted greedy selection over candidates in descending similarity."""
    ordered = sorted(candidates, key=lambda r: r.similarity, reverse=True)
    contexts: list[RAGContext] = []
    total = 0
    for result in ordered:
        tokens = estimate_tokens(result.text)
        if contexts and total + tokens > max_tokens:
            break
        contexts.append(_to_context(result))
        total += tokens
        if len(contexts) >= limit:
            break
    logger.debug("Selected %d RAG contexts (%d estimated tokens)", len(contexts), total)
    return contexts


def _to_context(result: VectorSearchResult) -> RAGContext:
    meta = result.metadata
    page = meta.get("page")
    timestamp = meta.get("timestamp")
    return RAGContext(
        text=result.text,
        metadata=RAGContextMetadata(
            content_id=result.content_id,
            chunk_id=result.chunk_id,
            title=meta.get("title") or "Unknown",
            course_id=meta.get("course_id"),
            module_id=meta.get("module_id"),
            section=meta.get("section"),
            page=int(page) if isinstance(page, int | float) else None,
            timestamp=float(timestamp) if isinstance(timestamp, int | float) else None,
        ),
        relevance_score=result.similarity,
    )


def _row_to_result(row: dict[str, Any]) -> VectorSearchResult:
    metadata: dict[str, Any] = dict(row.get("metadata") or {})
    for column in _ROW_METADATA:
        if row.get(column) is not None:
            metadata.setdefault(column, row[column])
    similarity = min(max(1.0 - float(row["distance"]), 0.0), 1.0)
    return VectorSearchResult(
        id=str(row["id"]),
        content_id=str(row["content_id"]),
        chunk_id=row.get("chunk_id"),
        text=row["text"],
        similarity=similarity,
        metadata=metadata,
    )
