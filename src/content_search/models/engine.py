"""Full-text engine models: indexed documents, bulk operations, index status."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from content_search.models.search import ContentType, SearchFacets, SearchResult


class EngineResponse(BaseModel):
    """A full-text engine answer translated into the common result shape."""

    results: list[SearchResult] = Field(default_factory=list)
    total: int = 0
    took: int = 0
    facets: SearchFacets | None = None


class IndexDocument(BaseModel):
    """A document stored in the full-text index."""

    id: str
    type: ContentType = ContentType.CONTENT
    title: str
    description: str = ""
    content: str = ""
    tags: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    course_id: str | None = None
    module_id: str | None = None
    language: str | None = None
    url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    extra: dict[str, Any] = Field(default_factory=dict)


class BulkOperation(BaseModel):
    """One line of a bulk indexing request."""

    operation: Literal["index", "update", "delete"]
    index: str
    id: str
    document: dict[str, Any] | None = None


class BulkResponse(BaseModel):
    """Summary of a bulk request."""

    took: int = 0
    errors: bool = False
    items: list[dict[str, Any]] = Field(default_factory=list)


class IndexStatus(BaseModel):
    """Health and size of one index."""

    name: str
    health: str
    status: str
    document_count: int = 0
    size_bytes: int = 0


class ReindexStatus(BaseModel):
    """Handle for an asynchronous reindex task."""

    task_id: str
    status: str = "running"
    start_time: datetime
