"""Database connection, schema and vector store backends."""

from content_search.db.backend import Cursor, Database, Row, VectorStore
from content_search.db.postgres_backend import PostgresBackend
from content_search.db.sqlite_backend import SQLiteBackend

__all__ = ["Cursor", "Database", "PostgresBackend", "Row", "SQLiteBackend", "VectorStore"]
