"""SQLite implementation of the Database and VectorStore protocols.

Thin wrapper around aiosqlite.Connection, no SQL translation needed
since application code already uses SQLite-flavored SQL. Vector distance
comes from sqlite-vec's ``vec_distance_cosine`` scalar function, which lets
filters apply exactly instead of post-filtering a KNN result.
"""

from __future__ import annotations

import json
import logging
import struct
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
    import aiosqlite

    from content_search.db.backend import Cursor
    from content_search.models.embedding import EmbeddingRecord, EmbeddingStats
    from content_search.models.search import SearchFilters

logger = logging.getLogger(__name__)


def _serialize_f32(vec: list[float]) -> bytes:
    """Pack floats as little-endian float32, the blob layout sqlite-vec reads."""
    return struct.pack(f"<{len(vec)}f", *vec)


def _deserialize_f32(blob: bytes) -> list[float]:
    return list(struct.unpack(f"<{len(blob) // 4}f", blob))


class SQLiteBackend:
    """Database and VectorStore over a single aiosqlite connection.

    aiosqlite cursors already satisfy the Cursor protocol and are returned
    as they are. ``_conn`` stays reachable for setup-time work such as
    extension loading.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def execute(self, sql: str, params: tuple[Any, ...] | list[Any] = ()) -> Cursor:
        return await self._conn.execute(sql, params)

    async def executemany(self, sql: str, params_seq: list[tuple[Any, ...] | list[Any]]) -> None:
        await self._conn.executemany(sql, params_seq)

    async def executescript(self, sql: str) -> None:
        await self._conn.executescript(sql)

    async def commit(self) -> None:
        await self._conn.commit()

    async def close(self) -> None:
        await self._conn.close()

    # -- Vector operations (sqlite-vec) --

    async def vector_search(
        self,
        embedding: list[float],
        *,
        limit: int,
        max_distance: float,
        filters: SearchFilters | None = None,
        exclude_content_id: str | None = None,
    ) -> list[dict[str, Any]]:
        """Cosine-distance scan with exact filtering. Nearest rows first."""
        filter_sql, filter_params = build_filter_sql(filters, exclude_content_id=exclude_content_id)
        sql = f"""
            SELECT * FROM (
                SELECT {EMBEDDING_COLUMNS},
                       vec_distance_cosine(e.embedding, ?) AS distance
                FROM content_embeddings e
                WHERE 1 = 1{filter_sql}
            )
            WHERE distance < ?
            ORDER BY distance
            LIMIT ?
        """
        params: list[Any] = [_serialize_f32(embedding), *filter_params, max_distance, limit]
        cursor = await self._conn.execute(sql, params)
        rows = await cursor.fetchall()
        return [row_to_dict(row) for row in rows]

    async def vector_insert(self, records: list[EmbeddingRecord]) -> int:
        """Insert a batch of embedding rows."""
        now = utcnow()
        sql = INSERT_EMBEDDING_SQL.format(vector="?")
        await self._conn.executemany(
            sql, [record_params(r, _serialize_f32(r.embedding), now) for r in records]
        )
        await self._conn.commit()
        return len(records)

    async def vector_update(
        self,
        content_id: str,
        chunk_id: str | None,
        embedding: list[float],
        metadata: dict[str, Any] | None = None,
    ) -> int:
        """Replace the vector (and optionally metadata) of one row."""
        sets = ["embedding = ?", "updated_at = ?"]
        params: list[Any] = [_serialize_f32(embedding), utcnow().isoformat()]
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
        cursor = await self._conn.execute(sql, params)
        await self._conn.commit()
        return cursor.rowcount or 0

    async def vector_delete(self, content_id: str, chunk_id: str | None = None) -> int:
        """Delete all rows of a content item, or a single chunk."""
        sql = "DELETE FROM content_embeddings WHERE content_id = ?"
        params: list[Any] = [content_id]
        if chunk_id is not None:
            sql += " AND chunk_id = ?"
            params.append(chunk_id)
        cursor = await self._conn.execute(sql, params)
        await self._conn.commit()
        return cursor.rowcount or 0

    async def vector_get(self, content_id: str) -> list[float] | None:
        """Return the stored vector for a content item."""
        cursor = await self._conn.execute(
            "SELECT embedding FROM content_embeddings WHERE content_id = ?"
            " ORDER BY chunk_id IS NOT NULL, chunk_id LIMIT 1",
            (content_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return _deserialize_f32(row[0])

    async def vector_stats(self) -> EmbeddingStats:
        """Counts by type and language, average text length, date range."""
        total_row = await (
            await self._conn.execute(
                "SELECT COUNT(*), AVG(LENGTH(text)), MIN(created_at), MAX(created_at)"
                " FROM content_embeddings"
            )
        ).fetchone()
        type_rows = await (
            await self._conn.execute(
                "SELECT content_type, COUNT(*) FROM content_embeddings GROUP BY content_type"
            )
        ).fetchall()
        language_rows = await (
            await self._conn.execute(
                "SELECT language, COUNT(*) FROM content_embeddings GROUP BY language"
            )
        ).fetchall()
        if total_row is None:
            return stats_from_rows(0, [], [], None, None, None)
        return stats_from_rows(
            int(total_row[0]),
            list(type_rows),
            list(language_rows),
            total_row[1],
            total_row[2],
            total_row[3],
        )

    async def ping(self) -> bool:
        """Check that sqlite-vec is loaded and the table is readable."""
        try:
            await self._conn.execute("SELECT id FROM content_embeddings LIMIT 1")
            await self._conn.execute("SELECT vec_version()")
            return True
        except Exception:
            logger.warning("SQLite vector store health check failed", exc_info=True)
            return False

    # -- Schema --

    async def apply_schema(self, *, embedding_dim: int = 1024) -> None:
        """Apply all SQLite DDL. The BLOB column is dimension-agnostic."""
        from content_search.db.schema import apply_schema

        await apply_schema(self)
        logger.debug("SQLite schema applied (embedding_dim=%d)", embedding_dim)
