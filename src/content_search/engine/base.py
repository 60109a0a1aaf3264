"""Full-text engine protocol."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from content_search.models.engine import (
        BulkOperation,
        BulkResponse,
        EngineResponse,
        IndexDocument,
        IndexStatus,
        ReindexStatus,
    )
    from content_search.models.search import ContentType, ProcessedQuery, Suggestion


@runtime_checkable
class FullTextEngine(Protocol):
    """Keyword search backend.

    Implementations raise ``IndexNotFoundError`` for a missing index and
    ``EngineUnavailableError`` for timeouts, connection failures and 5xx
    answers, so the circuit breaker can tell them apart.
    """

    async def search(
        self, query: ProcessedQuery, *, size: int | None = None, offset: int = 0
    ) -> EngineResponse:
        """Run a weighted multi-field match with filters, highlights and optional facets."""
        ...

    async def suggest(
        self, partial: str, type: ContentType | None = None, limit: int = 10
    ) -> list[Suggestion]:
        """Completion suggestions for a partial query."""
        ...

    async def index(self, document: IndexDocument) -> None:
        """Index or replace one document."""
        ...

    async def bulk_index(self, operations: list[BulkOperation]) -> BulkResponse:
        """Apply a batch of index/update/delete operations."""
        ...

    async def update(self, index: str, id: str, document: dict[str, Any]) -> None:
        """Partially update one document."""
        ...

    async def delete(self, index: str, id: str) -> None:
        """Delete one document."""
        ...

    async def create_index(
        self,
        name: str,
        mapping: dict[str, Any] | None = None,
        settings: dict[str, Any] | None = None,
    ) -> None:
        """Create an index."""
        ...

    async def delete_index(self, name: str) -> None:
        """Delete an index."""
        ...

    async def index_exists(self, name: str) -> bool:
        """True if the index exists."""
        ...

    async def get_index_status(self, name: str) -> IndexStatus:
        """Health, document count and size of one index."""
        ...

    async def get_all_indices_status(self) -> list[IndexStatus]:
        """Status of every index under the configured prefix."""
        ...

    async def reindex(
        self, source: str, target: str, query: dict[str, Any] | None = None
    ) -> ReindexStatus:
        """Start an asynchronous copy from one index to another."""
        ...

    async def refresh(self, index: str) -> None:
        """Make recent writes visible to search."""
        ...

    async def get_document(self, index: str, id: str) -> dict[str, Any] | None:
        """Stored source of one document, or None."""
        ...

    async def document_exists(self, index: str, id: str) -> bool:
        """True if the document exists."""
        ...

    async def get_mapping(self, index: str) -> dict[str, Any]:
        """Field mapping of an index."""
        ...

    async def update_mapping(self, index: str, mapping: dict[str, Any]) -> None:
        """Add fields to an index mapping."""
        ...

    async def get_settings(self, index: str) -> dict[str, Any]:
        """Settings of an index."""
        ...

    async def update_settings(self, index: str, settings: dict[str, Any]) -> None:
        """Change dynamic index settings."""
        ...

    async def update_alias(self, actions: list[dict[str, Any]]) -> None:
        """Apply alias add/remove actions atomically."""
        ...

    async def health(self) -> bool:
        """True unless the cluster is unreachable or red."""
        ...

    async def info(self) -> dict[str, Any]:
        """Cluster name and version."""
        ...

    async def stats(self) -> dict[str, Any]:
        """Cluster statistics."""
        ...

    async def close(self) -> None:
        """Release resources."""
        ...
