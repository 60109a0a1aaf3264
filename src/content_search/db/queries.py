"""SQL fragments shared by the SQLite and Postgres backends."""

import json
import uuid
from datetime import UTC, datetime
from typing import Any

from content_search.db.backend import Row
from content_search.models.embedding import EmbeddingRecord, EmbeddingStats
from content_search.models.search import SearchFilters

EMBEDDING_COLUMNS = (
    "e.id, e.content_id, e.chunk_id, e.text, e.course_id, e.module_id,"
    " e.content_type, e.language, e.tags, e.categories, e.embedding_model,"
    " e.metadata, e.created_at"
)

INSERT_EMBEDDING_SQL = """
    INSERT INTO content_embeddings (
        id, content_id, chunk_id, text, embedding, course_id, module_id,
        content_type, language, tags, categories, embedding_model, metadata,
        created_at, updated_at
    ) VALUES (?, ?, ?, ?, {vector}, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""


def build_filter_sql(
    filters: SearchFilters | None, alias: str = "e", *, exclude_content_id: str | None = None
) -> tuple[str, list[Any]]:
    """Translate SearchFilters into ``AND ...`` clauses with ``?`` placeholders.

    Empty filters produce an empty clause (unrestricted). List filters are
    any-of; tag and category lists match against the JSON-encoded columns.
    ``exclude_content_id`` drops every chunk of that content item.
    """
    clauses: list[str] = []
    params: list[Any] = []
    if exclude_content_id is not None:
        clauses.append(f"{alias}.content_id != ?")
        params.append(exclude_content_id)
    if filters is None or filters.is_empty():
        return _and_clauses(clauses), params

    def _in(column: str, values: list[str]) -> None:
        placeholders = ", ".join("?" for _ in values)
        clauses.append(f"{alias}.{column} IN ({placeholders})")
        params.extend(values)

    def _json_any(column: str, values: list[str]) -> None:
        likes = " OR ".join(f"{alias}.{column} LIKE ?" for _ in values)
        clauses.append(f"({likes})")
        params.extend(f"%{json.dumps(v)}%" for v in values)

    if filters.content_types:
        _in("content_type", [ct.value for ct in filters.content_types])
    if filters.course_ids:
        _in("course_id", list(filters.course_ids))
    if filters.module_ids:
        _in("module_id", list(filters.module_ids))
    if filters.tags:
        _json_any("tags", list(filters.tags))
    if filters.categories:
        _json_any("categories", list(filters.categories))
    if filters.language:
        clauses.append(f"{alias}.language = ?")
        params.append(filters.language)
    if filters.date_range is not None:
        if filters.date_range.start is not None:
            clauses.append(f"{alias}.created_at >= ?")
            params.append(_iso(filters.date_range.start))
        if filters.date_range.end is not None:
            clauses.append(f"{alias}.created_at <= ?")
            params.append(_iso(filters.date_range.end))

    return _and_clauses(clauses), params


def _and_clauses(clauses: list[str]) -> str:
    return "".join(f" AND {clause}" for clause in clauses)


def record_params(record: EmbeddingRecord, vector: Any, now: datetime) -> tuple[Any, ...]:
    """Positional parameters for INSERT_EMBEDDING_SQL."""
    return (
        record.id or str(uuid.uuid4()),
        record.content_id,
        record.chunk_id,
        record.text,
        vector,
        record.course_id,
        record.module_id,
        record.content_type,
        record.language,
        json.dumps(record.tags),
        json.dumps(record.categories),
        record.embedding_model,
        json.dumps(record.metadata),
        _iso(now),
        _iso(now),
    )


def row_to_dict(row: Row) -> dict[str, Any]:
    """Convert an embedding row into a plain dict with decoded JSON columns."""
    data = {key: row[key] for key in row.keys()}
    for column in ("tags", "categories"):
        raw = data.get(column)
        data[column] = json.loads(raw) if raw else []
    raw_meta = data.get("metadata")
    data["metadata"] = json.loads(raw_meta) if raw_meta else {}
    return data


def stats_from_rows(
    total: int,
    type_rows: list[Row],
    language_rows: list[Row],
    avg_length: float | None,
    oldest: str | None,
    newest: str | None,
) -> EmbeddingStats:
    """Assemble EmbeddingStats from the aggregate query results."""
    return EmbeddingStats(
        total_embeddings=total,
        by_content_type={(r[0] or "unknown"): int(r[1]) for r in type_rows},
        by_language={(r[0] or "unknown"): int(r[1]) for r in language_rows},
        average_text_length=round(avg_length or 0),
        oldest=datetime.fromisoformat(oldest) if oldest else None,
        newest=datetime.fromisoformat(newest) if newest else None,
    )


def utcnow() -> datetime:
    """Current time in UTC."""
    return datetime.now(UTC)


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()
