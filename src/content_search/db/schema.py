"""SQLite DDL for the embedding table and the shared cache tier."""

from content_search.db.backend import Database

SCHEMA_VERSION = 1

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS content_embeddings (
    id TEXT PRIMARY KEY,
    content_id TEXT NOT NULL,
    chunk_id TEXT,
    text TEXT NOT NULL,
    embedding BLOB NOT NULL,
    course_id TEXT,
    module_id TEXT,
    content_type TEXT,
    language TEXT NOT NULL DEFAULT 'en',
    tags TEXT NOT NULL DEFAULT '[]',
    categories TEXT NOT NULL DEFAULT '[]',
    embedding_model TEXT,
    metadata TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_embeddings_content ON content_embeddings(content_id);
CREATE INDEX IF NOT EXISTS idx_embeddings_course ON content_embeddings(course_id);
CREATE INDEX IF NOT EXISTS idx_embeddings_type ON content_embeddings(content_type);

CREATE TABLE IF NOT EXISTS cache_entries (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    created_at REAL NOT NULL,
    expires_at REAL
);

CREATE INDEX IF NOT EXISTS idx_cache_expires ON cache_entries(expires_at);
"""


async def apply_schema(db: Database) -> None:
    """Create tables if missing and record the schema version."""
    await db.executescript(SCHEMA_SQL)
    cursor = await db.execute("SELECT version FROM schema_version")
    row = await cursor.fetchone()
    if row is None:
        await db.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
    await db.commit()
