"""Database connection management with sqlite-vec or pgvector."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

import aiosqlite
import sqlite_vec

from content_search.config import get_database_url, get_db_path, get_embedding_dim
from content_search.db.sqlite_backend import SQLiteBackend

if TYPE_CHECKING:
    from content_search.db.postgres_backend import PostgresBackend

logger = logging.getLogger(__name__)


async def create_connection(
    db_path: Path | str | None = None, *, embedding_dim: int | None = None
) -> SQLiteBackend | PostgresBackend:
    """Create and initialize a database connection.

    Dispatches to SQLite or PostgreSQL based on CS_DATABASE_URL.
    For in-memory SQLite databases, pass ":memory:". The returned backend
    implements both the Database and VectorStore protocols.
    """
    dim = embedding_dim or get_embedding_dim()
    # Explicit ":memory:" always uses SQLite (used by tests)
    if db_path == ":memory:":
        return await _create_sqlite(":memory:", embedding_dim=dim)
    url = get_database_url()
    if url and url.startswith("postgres"):
        return await _create_postgres(url, embedding_dim=dim)
    return await _create_sqlite(db_path or get_db_path(), embedding_dim=dim)


async def _create_sqlite(db_path: Path | str, *, embedding_dim: int) -> SQLiteBackend:
    """Create a SQLite backend with sqlite-vec."""
    db_path = str(db_path)

    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row

    await conn.execute("PRAGMA journal_mode=WAL")

    try:

        def _load_vec() -> None:
            conn._conn.enable_load_extension(True)
            sqlite_vec.load(conn._conn)
            conn._conn.enable_load_extension(False)

        await conn._execute(_load_vec)  # type: ignore[no-untyped-call]
        logger.debug("sqlite-vec extension loaded")
    except Exception:
        logger.warning("sqlite-vec extension not available, vector search disabled")

    db = SQLiteBackend(conn)
    await db.apply_schema(embedding_dim=embedding_dim)
    return db


async def _create_postgres(url: str, *, embedding_dim: int) -> PostgresBackend:
    """Create a PostgreSQL backend with pgvector."""
    from content_search.db.postgres_backend import PostgresBackend

    db = await PostgresBackend.create(url)
    await db.apply_schema(embedding_dim=embedding_dim)
    return db
