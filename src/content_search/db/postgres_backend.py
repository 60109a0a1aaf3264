"""PostgreSQL implementation of the Database and VectorStore protocols.

Uses asyncpg for async access and pgvector's ``<=>`` cosine-distance
operator for similarity lookups. Application SQL is written with ``?``
placeholders and numbered to ``$N`` here before it reaches asyncpg.
"""

from __future__ import annotations

import itertools
import json
import logging
import re
from collections import deque
from typing import TYPE_CHECKING, Any

from content_search.db.queries import (
    EMBEDDING_COLUMNS,
    INSERT_EMBEDDING_SQL,
    build_filter_sql,
    record_params,
    row_to_dict,
    stats_from_rows,
    utcnow,
)

if TYPE_CHECKING:
    import asyncpg

    from content_search.db.backend import Cursor, Row
    from content_search.models.embedding import EmbeddingRecord, EmbeddingStats
    from content_search.models.search import SearchFilters

logger = logging.getLogger(__name__)

_STATUS_COUNT_RE = re.compile(r"(\d+)\s*$")


def _numbered(sql: str) -> str:
    """Rewrite ``?`` placeholders as asyncpg's ``$1, $2, ...`` in order of appearance."""
    positions = itertools.count(1)
    return re.sub(r"\?", lambda _m: f"${next(positions)}", sql)


def _vector_literal(vec: list[float]) -> str:
    """pgvector text input format: ``[1.0,2.0,...]``."""
    return "[" + ",".join(str(v) for v in vec) + "]"


def _affected(status: str | None) -> int:
    """Trailing count of a command tag such as ``UPDATE 3``; -1 when there is none."""
    match = _STATUS_COUNT_RE.search(status or "")
    return int(match.group(1)) if match else -1


class RecordCursor:
    """Cursor over rows asyncpg already fetched.

    ``asyncpg.Record`` supports lookup by name and position plus ``keys()``,
    so records are handed out as rows unchanged.
    """

    def __init__(
        self, records: list[asyncpg.Record] | None = None, status: str | None = None
    ) -> None:
        self._pending: deque[Row] = deque(records or ())
        self.rowcount = len(self._pending) if records is not None else _affected(status)

    async def fetchone(self) -> Row | None:
        return self._pending.popleft() if self._pending else None

    async def fetchall(self) -> list[Row]:
        rows = list(self._pending)
        self._pending.clear()
        return rows


_SCHEMA = (
    "CREATE EXTENSION IF NOT EXISTS vector",
    "CREATE TABLE IF NOT EXISTS schema_version (version INTEGER NOT NULL)",
    """
    CREATE TABLE IF NOT EXISTS content_embeddings (
        id TEXT PRIMARY KEY,
        content_id TEXT NOT NULL,
        chunk_id TEXT,
        text TEXT NOT NULL,
        embedding vector({dim}) NOT NULL,
        course_id TEXT,
        module_id TEXT,
        content_type TEXT,
        language TEXT NOT NULL DEFAULT 'en',
        tags TEXT NOT NULL DEFAULT '[]',
        categories TEXT NOT NULL DEFAULT '[]',
        embedding_model TEXT,
        metadata TEXT NOT NULL DEFAULT '{{}}',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_embeddings_content ON content_embeddings(content_id)",
    "CREATE INDEX IF NOT EXISTS idx_embeddings_course ON content_embeddings(course_id)",
    "CREATE INDEX IF NOT EXISTS idx_embeddings_type ON content_embeddings(content_type)",
    "CREATE INDEX IF NOT EXISTS idx_embeddings_hnsw"
    " ON content_embeddings USING hnsw (embedding vector_cosine_ops)",
    """
    CREATE TABLE IF NOT EXISTS cache_entries (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        created_at DOUBLE PRECISION NOT NULL,
        expires_at DOUBLE PRECISION
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_cache_expires ON cache_entries(expires_at)",
)


class PostgresBackend:
    """Pool-backed Database and VectorStore.

    Every call borrows a pooled connection for its duration. asyncpg
    auto-commits, so ``commit()`` has nothing to do.
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    @classmethod
    async def create(cls, url: str, *, min_size: int = 2, max_size: int = 10) -> PostgresBackend:
        """Open a connection pool for ``url``."""
        import asyncpg as _asyncpg

        return cls(await _asyncpg.create_pool(url, min_size=min_size, max_size=max_size))

    async def execute(self, sql: str, params: tuple[Any, ...] | list[Any] = ()) -> Cursor:
        """Run one statement; statements that return columns are fetched eagerly."""
        query = _numbered(sql)
        async with self._pool.acquire() as conn:
            statement = await conn.prepare(query)
            if statement.get_attributes():
                return RecordCursor(await statement.fetch(*params))
            return RecordCursor(status=await conn.execute(query, *params))

    async def executemany(self, sql: str, params_seq: list[tuple[Any, ...] | list[Any]]) -> None:
        async with self._pool.acquire() as conn:
            await conn.executemany(_numbered(sql), params_seq)

    async def executescript(self, sql: str) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(sql)

    async def commit(self) -> None:
        pass

    async def close(self) -> None:
        await self._pool.close()

    # -- Vector operations (pgvector) --

    async def vector_search(
        self,
        embedding: list[float],
        *,
        limit: int,
        max_distance: float,
        filters: SearchFilters | None = None,
        exclude_content_id: str | None = None,
    ) -> list[dict[str, Any]]:
        """KNN search via pgvector cosine distance, filters applied in SQL."""
        filter_sql, filter_params = build_filter_sql(filters, exclude_content_id=exclude_content_id)
        vec = _vector_literal(embedding)
        sql = f"""
            SELECT {EMBEDDING_COLUMNS}, e.embedding <=> ?::vector AS distance
            FROM content_embeddings e
            WHERE e.embedding <=> ?::vector < ?{filter_sql}
            ORDER BY distance
            LIMIT ?
        """
        params: list[Any] = [vec, vec, max_distance, *filter_params, limit]
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(_numbered(sql), *params)
        return [row_to_dict(r) for r in rows]

    async def vector_insert(self, records: list[EmbeddingRecord]) -> int:
        """Insert a batch of embedding rows."""
        now = utcnow()
        sql = _numbered(INSERT_EMBEDDING_SQL.format(vector="?::vector"))
        async with self._pool.acquire() as conn:
            await conn.executemany(
                sql, [record_params(r, _vector_literal(r.embedding), now) for r in records]
            )
        return len(records)

    async def vector_update(
        self,
        content_id: str,
        chunk_id: str | None,
        embedding: list[float],
        metadata: dict[str, Any] | None = None,
    ) -> int:
        """Replace the vector (and optionally metadata) of one row."""
        sets = ["embedding = ?::vector", "updated_at = ?"]
        params: list[Any] = [_vector_literal(embedding), utcnow().isoformat()]
        if metadata is not None:
            sets.append("metadata = ?")
            params.append(json.dumps(metadata))
        sql = f"UPDATE content_embeddings SET {', '.join(sets)} WHERE content_id = ?"
        params.append(content_id)
        if chunk_id is not None:
            sql += " AND chunk_id = ?"
            params.append(chunk_id)
        else:
            sql += " AND chunk_id IS NULL"
        cursor = await self.execute(sql, params)
        return max(cursor.rowcount, 0)

    async def vector_delete(self, content_id: str, chunk_id: str | None = None) -> int:
        """Delete all rows of a content item, or a single chunk."""
        sql = "DELETE FROM content_embeddings WHERE content_id = ?"
        params: list[Any] = [content_id]
        if chunk_id is not None:
            sql += " AND chunk_id = ?"
            params.append(chunk_id)
        cursor = await self.execute(sql, params)
        return max(cursor.rowcount, 0)

    async def vector_get(self, content_id: str) -> list[float] | None:
        """Return the stored vector for a content item."""
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT embedding::text AS embedding FROM content_embeddings"
                " WHERE content_id = $1 ORDER BY chunk_id NULLS FIRST LIMIT 1",
                content_id,
            )
        if row is None:
            return None
        return [float(v) for v in row["embedding"].strip("[]").split(",")]

    async def vector_stats(self) -> EmbeddingStats:
        """Counts by type and language, average text length, date range."""
        async with self._pool.acquire() as conn:
            total = await conn.fetchrow(
                "SELECT COUNT(*), AVG(LENGTH(text)), MIN(created_at), MAX(created_at)"
                " FROM content_embeddings"
            )
            type_rows = await conn.fetch(
                "SELECT content_type, COUNT(*) FROM content_embeddings GROUP BY content_type"
            )
            language_rows = await conn.fetch(
                "SELECT language, COUNT(*) FROM content_embeddings GROUP BY language"
            )
        return stats_from_rows(
            int(total[0]),
            list(type_rows),
            list(language_rows),
            float(total[1]) if total[1] is not None else None,
            total[2],
            total[3],
        )

    async def ping(self) -> bool:
        """Check that pgvector is installed and the table is readable."""
        try:
            async with self._pool.acquire() as conn:
                await conn.fetchval("SELECT id FROM content_embeddings LIMIT 1")
                await conn.fetchval("SELECT vector_dims('[1,2,3]'::vector)")
            return True
        except Exception:
            logger.warning("Postgres vector store health check failed", exc_info=True)
            return False

    # -- Schema --

    async def apply_schema(self, *, embedding_dim: int = 1024) -> None:
        """Create the pgvector extension, tables and indexes, then stamp the version."""
        async with self._pool.acquire() as conn:
            for ddl in _SCHEMA:
                await conn.execute(ddl.format(dim=embedding_dim) if "{dim}" in ddl else ddl)
            if await conn.fetchval("SELECT version FROM schema_version") is None:
                await conn.execute("INSERT INTO schema_version (version) VALUES (1)")
