"""Embedding row models shared by the vector store backends."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class EmbeddingRecord(BaseModel):
    """One stored chunk: its text, vector and filterable attributes."""

    id: str | None = None
    content_id: str
    chunk_id: str | None = None
    text: str
    embedding: list[float]
    course_id: str | None = None
    module_id: str | None = None
    content_type: str | None = None
    language: str = "en"
    tags: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    embedding_model: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class EmbeddingStats(BaseModel):
    """Aggregate view of the embedding table."""

    total_embeddings: int = 0
    by_content_type: dict[str, int] = Field(default_factory=dict)
    by_language: dict[str, int] = Field(default_factory=dict)
    average_text_length: int = 0
    oldest: datetime | None = None
    newest: datetime | None = None
