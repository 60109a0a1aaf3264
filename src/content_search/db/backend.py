"""Database backend protocols: thin abstraction over async DB connections.

Application code programs against these protocols. Each backend (SQLite,
Postgres) provides a concrete implementation. SQL dialect differences
(vector distance operators, placeholder style, DDL) are handled inside the
backend, not in application code.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from content_search.models.embedding import EmbeddingRecord, EmbeddingStats
    from content_search.models.search import SearchFilters


@runtime_checkable
class Row(Protocol):
    """A database row supporting both named and positional access."""

    def __getitem__(self, key: str | int) -> Any:
        """Get a column value by name or position."""
        ...

    def keys(self) -> Any:
        """Return column names."""
        ...


@runtime_checkable
class Cursor(Protocol):
    """Async cursor returned by Database.execute()."""

    @property
    def rowcount(self) -> int:
        """Number of rows affected by the last operation."""
        ...

    async def fetchone(self) -> Row | None:
        """Fetch the next row, or None if exhausted."""
        ...

    async def fetchall(self) -> list[Row]:
        """Fetch all remaining rows."""
        ...


@runtime_checkable
class Database(Protocol):
    """Async database backend.

    All application SQL uses ``?`` placeholders and SQLite-flavored syntax.
    Non-SQLite backends translate ``?`` to ``$N`` at execute time.
    """

    async def execute(self, sql: str, params: tuple[Any, ...] | list[Any] = ()) -> Cursor:
        """Execute a single SQL statement and return a cursor."""
        ...

    async def executemany(self, sql: str, params_seq: list[tuple[Any, ...] | list[Any]]) -> None:
        """Execute a SQL statement for each set of parameters."""
        ...

    async def executescript(self, sql: str) -> None:
        """Execute multiple SQL statements (DDL, migrations)."""
        ...

    async def commit(self) -> None:
        """Commit the current transaction."""
        ...

    async def close(self) -> None:
        """Close the database connection."""
        ...


@runtime_checkable
class VectorStore(Protocol):
    """Vector-capable store holding one embedding row per content chunk.

    Distances are cosine distances (``similarity = 1 - distance``).
    """

    async def vector_search(
        self,
        embedding: list[float],
        *,
        limit: int,
        max_distance: float,
        filters: SearchFilters | None = None,
        exclude_content_id: str | None = None,
    ) -> list[dict[str, Any]]:
        """Return rows with distance < max_distance, nearest first, at most ``limit``.

        Rows of ``exclude_content_id`` are skipped before the limit applies.
        """
        ...

    async def vector_insert(self, records: list[EmbeddingRecord]) -> int:
        """Insert a batch of embedding rows. Returns the number written."""
        ...

    async def vector_update(
        self,
        content_id: str,
        chunk_id: str | None,
        embedding: list[float],
        metadata: dict[str, Any] | None = None,
    ) -> int:
        """Replace the vector (and optionally metadata) of one row. Returns rows updated."""
        ...

    async def vector_delete(self, content_id: str, chunk_id: str | None = None) -> int:
        """Delete all rows of a content item, or one chunk. Returns rows deleted."""
        ...

    async def vector_get(self, content_id: str) -> list[float] | None:
        """Return the stored vector of the first row for a content item."""
        ...

    async def vector_stats(self) -> EmbeddingStats:
        """Aggregate statistics over all stored rows."""
        ...

    async def ping(self) -> bool:
        """Verify the store answers and the vector functions are loaded."""
        ...
