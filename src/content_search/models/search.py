"""Search request, result and response models."""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Hard ceiling on page size, independent of the configured maximum
MAX_SEARCH_LIMIT = 100


class SearchType(StrEnum):
    """Retrieval strategy requested by the caller."""

    FULL_TEXT = "full_text"
    SEMANTIC = "semantic"
    HYBRID = "hybrid"
    RAG = "rag"


class ContentType(StrEnum):
    """Kinds of searchable content."""

    COURSE = "course"
    MODULE = "module"
    CONTENT = "content"
    FILE = "file"
    DISCUSSION = "discussion"
    ASSIGNMENT = "assignment"
    QUIZ = "quiz"
    ANNOUNCEMENT = "announcement"

    @classmethod
    def parse(cls, value: str | None) -> "ContentType":
        """Map a free-form type name onto a ContentType, defaulting to CONTENT."""
        if not value:
            return cls.CONTENT
        try:
            return cls(value.lower())
        except ValueError:
            return cls.CONTENT


class SortField(StrEnum):
    """Post-fusion sort keys."""

    RELEVANCE = "relevance"
    SCORE = "score"
    DATE = "date"
    TITLE = "title"


class SortOrder(StrEnum):
    """Sort direction."""

    ASC = "asc"
    DESC = "desc"


class DateRange(BaseModel):
    """Inclusive creation-time window."""

    start: datetime | None = None
    end: datetime | None = None


class SearchFilters(BaseModel):
    """Constraints applied identically by every strategy.

    An empty filter set means unrestricted, never "match nothing".
    """

    content_types: list[ContentType] | None = None
    course_ids: list[str] | None = None
    module_ids: list[str] | None = None
    tags: list[str] | None = None
    categories: list[str] | None = None
    date_range: DateRange | None = None
    language: str | None = None
    min_score: float | None = Field(default=None, ge=0.0, le=1.0)

    def is_empty(self) -> bool:
        """True when no constraint is set (empty lists count as unset)."""
        return not any(
            [
                self.content_types,
                self.course_ids,
                self.module_ids,
                self.tags,
                self.categories,
                self.date_range,
                self.language,
                self.min_score,
            ]
        )


class SearchOptions(BaseModel):
    """Pagination, feature flags and sort order."""

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=MAX_SEARCH_LIMIT)
    include_highlights: bool = True
    include_facets: bool = False
    include_rag: bool = False
    sort_by: SortField = SortField.RELEVANCE
    sort_order: SortOrder = SortOrder.DESC


class SearchContext(BaseModel):
    """Caller context used for expansion and analytics."""

    user_id: str | None = None
    course_id: str | None = None
    session_id: str | None = None
    previous_queries: list[str] = Field(default_factory=list)


class ProcessedQuery(BaseModel):
    """A normalized query. Created once per request and never mutated."""

    model_config = ConfigDict(frozen=True)

    original_query: str
    normalized_query: str
    expanded_query: str
    tokens: tuple[str, ...]
    strategy: SearchType
    filters: SearchFilters = Field(default_factory=SearchFilters)
    options: SearchOptions = Field(default_factory=SearchOptions)
    context: SearchContext = Field(default_factory=SearchContext)
    search_id: str


class ResultSource(BaseModel):
    """Where a result came from and how to open it."""

    type: ContentType
    id: str
    url: str = ""
    thumbnail: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


def _now() -> datetime:
    return datetime.now(UTC)


class SearchResult(BaseModel):
    """A single ranked result in the common shape shared by every strategy."""

    id: str
    type: ContentType
    title: str
    description: str = ""
    content: str | None = None
    highlights: list[str] = Field(default_factory=list)
    score: float
    relevance_score: float
    semantic_score: float | None = None
    source: ResultSource
    course_id: str | None = None
    module_id: str | None = None
    tags: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    strategy: str | None = None

    @property
    def dedup_key(self) -> tuple[str, str | None]:
        """(source id, chunk id), unique within one fused response."""
        chunk_id = self.source.metadata.get("chunk_id")
        return (self.source.id, str(chunk_id) if chunk_id is not None else None)


class VectorSearchResult(BaseModel):
    """A row returned by a similarity lookup."""

    id: str
    content_id: str
    chunk_id: str | None = None
    text: str
    similarity: float = Field(ge=0.0, le=1.0)
    metadata: dict[str, Any] = Field(default_factory=dict)


class RAGContextMetadata(BaseModel):
    """Citation metadata carried alongside a context passage."""

    content_id: str
    chunk_id: str | None = None
    title: str = "Unknown"
    course_id: str | None = None
    module_id: str | None = None
    section: str | None = None
    page: int | None = None
    timestamp: float | None = None


class RAGContext(BaseModel):
    """A passage selected for the generation backend."""

    text: str
    metadata: RAGContextMetadata
    relevance_score: float


class RAGResponse(BaseModel):
    """A generated answer with its citations."""

    answer: str
    sources: list[RAGContext] = Field(default_factory=list)
    confidence: float = Field(ge=0.0, le=1.0)
    model: str
    reasoning: str | None = None
    follow_up_questions: list[str] = Field(default_factory=list)
    low_quality: bool = False


class FacetCount(BaseModel):
    """One bucket of a facet breakdown."""

    key: str
    count: int


# Facet name -> buckets (e.g. "categories" -> [FacetCount, ...])
SearchFacets = dict[str, list[FacetCount]]


class SearchMetadata(BaseModel):
    """Diagnostics attached to every response."""

    strategies: list[str] = Field(default_factory=list)
    failed_strategies: dict[str, str] = Field(default_factory=dict)
    cache_hit: bool = False


class SearchResponse(BaseModel):
    """The fused, paginated response returned to callers."""

    results: list[SearchResult] = Field(default_factory=list)
    total_results: int = 0
    search_time: float = 0.0
    search_id: str
    facets: SearchFacets | None = None
    rag_response: RAGResponse | None = None
    suggestions: list[str] = Field(default_factory=list)
    metadata: SearchMetadata = Field(default_factory=SearchMetadata)


class Suggestion(BaseModel):
    """An autocomplete suggestion."""

    text: str
    type: str = "query"
    score: float = 0.0
    metadata: dict[str, Any] = Field(default_factory=dict)


class PopularSearch(BaseModel):
    """A frequently issued query."""

    query: str
    count: int
    trend: str = "stable"


class ClickThroughEvent(BaseModel):
    """A user opening a result from a response."""

    search_id: str
    result_id: str
    result_type: ContentType = ContentType.CONTENT
    position: int = Field(default=0, ge=0)
    query: str | None = None
    user_id: str | None = None
    timestamp: datetime = Field(default_factory=_now)
