"""Shared test fixtures."""

import hashlib
import math
from datetime import UTC, datetime

import pytest
import pytest_asyncio

from content_search.db.connection import create_connection
from content_search.models.engine import EngineResponse
from content_search.models.search import (
    ContentType,
    ProcessedQuery,
    ResultSource,
    SearchFilters,
    SearchOptions,
    SearchResult,
    SearchType,
    Suggestion,
)
from content_search.search.processor import clean_query, tokenize

DIM = 8


@pytest_asyncio.fixture
async def db():
    """In-memory database with full schema and sqlite-vec."""
    conn = await create_connection(":memory:", embedding_dim=DIM)
    yield conn
    await conn.close()


def unit_vector(*components: float, dim: int = DIM) -> list[float]:
    """Normalized vector from leading components, zero-padded to ``dim``."""
    vec = list(components) + [0.0] * (dim - len(components))
    norm = math.sqrt(sum(v * v for v in vec)) or 1.0
    return [v / norm for v in vec]


def vector_at_similarity(similarity: float, dim: int = DIM) -> list[float]:
    """Unit vector whose cosine similarity to unit_vector(1.0) is ``similarity``."""
    return unit_vector(similarity, math.sqrt(max(1.0 - similarity**2, 0.0)), dim=dim)


class FakeEmbedder:
    """Deterministic fake embedder for testing.

    Texts listed in ``vectors`` get that vector; any other text gets a
    stable hash-derived unit vector, so identical texts always match.
    """

    def __init__(self, dim: int = DIM):
        self.dim = dim
        self.vectors: dict[str, list[float]] = {}
        self.error: Exception | None = None
        self.calls: list[str] = []
        self._available = True

    @property
    def model(self) -> str:
        return "fake-embed"

    async def is_available(self) -> bool:
        return self._available

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        if text in self.vectors:
            return self.vectors[text]
        digest = hashlib.sha256(text.encode()).digest()
        return unit_vector(*(b / 255 + 0.01 for b in digest[: self.dim]), dim=self.dim)

    async def close(self) -> None:
        pass


class FakeLLM:
    """Controllable fake LLM for testing.

    ``responses`` is consumed in order; once exhausted every call returns
    ``response``.
    """

    def __init__(self, response: str | None = "", available: bool = True):
        self.response = response
        self.responses: list[str | None] = []
        self._available = available
        self.prompts: list[str] = []
        self.last_prompt: str | None = None
        self.last_system: str | None = None
        self.calls: list[dict] = []
        self.generate_count = 0
        self.error: Exception | None = None

    @property
    def model(self) -> str:
        return "fake-llm"

    async def is_available(self) -> bool:
        return self._available

    async def generate(
        self,
        prompt: str,
        *,
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str | None:
        self.prompts.append(prompt)
        self.calls.append({"system": system, "temperature": temperature, "max_tokens": max_tokens})
        self.last_prompt = prompt
        self.last_system = system
        self.generate_count += 1
        if self.error is not None:
            raise self.error
        if not self._available:
            return None
        if self.responses:
            return self.responses.pop(0)
        return self.response

    async def close(self) -> None:
        pass


class FakeEngine:
    """Full-text engine double returning canned results or raising ``error``."""

    def __init__(self):
        self.results: list[SearchResult] = []
        self.facets = None
        self.suggestions: list[Suggestion] = []
        self.error: Exception | None = None
        self.healthy = True
        self.search_calls: list[tuple[ProcessedQuery, int | None]] = []

    async def search(self, query, *, size=None, offset=0):
        self.search_calls.append((query, size))
        if self.error is not None:
            raise self.error
        return EngineResponse(
            results=list(self.results), total=len(self.results), took=1, facets=self.facets
        )

    async def suggest(self, partial, type=None, limit=10):
        if self.error is not None:
            raise self.error
        return self.suggestions[:limit]

    async def health(self) -> bool:
        return self.healthy

    async def close(self) -> None:
        pass


class FakeVectorStore:
    """VectorStore double over a list of row dicts, distance given per row."""

    def __init__(self):
        self.rows: list[dict] = []
        self.error: Exception | None = None
        self.inserted: list = []
        self.searches: list[dict] = []
        self.stored_vectors: dict[str, list[float]] = {}

    def add(self, content_id, text, similarity, *, chunk_id=None, row_id=None, **columns):
        self.rows.append(
            {
                "id": row_id or f"{content_id}:{chunk_id}",
                "content_id": content_id,
                "chunk_id": chunk_id,
                "text": text,
                "distance": 1.0 - similarity,
                "tags": columns.pop("tags", []),
                "categories": columns.pop("categories", []),
                "metadata": columns.pop("metadata", {}),
                **columns,
            }
        )

    async def vector_search(
        self, embedding, *, limit, max_distance, filters=None, exclude_content_id=None
    ):
        self.searches.append({"limit": limit, "max_distance": max_distance, "filters": filters})
        if self.error is not None:
            raise self.error
        rows = sorted(
            (
                r
                for r in self.rows
                if r["distance"] < max_distance and r["content_id"] != exclude_content_id
            ),
            key=lambda r: r["distance"],
        )
        return rows[:limit]

    async def vector_insert(self, records):
        if self.error is not None:
            raise self.error
        self.inserted.extend(records)
        return len(records)

    async def vector_update(self, content_id, chunk_id, embedding, metadata=None):
        if self.error is not None:
            raise self.error
        return 1

    async def vector_delete(self, content_id, chunk_id=None):
        if self.error is not None:
            raise self.error
        before = len(self.rows)
        self.rows = [r for r in self.rows if r["content_id"] != content_id]
        return before - len(self.rows)

    async def vector_get(self, content_id):
        return self.stored_vectors.get(content_id)

    async def vector_stats(self):
        from content_search.models.embedding import EmbeddingStats

        return EmbeddingStats(total_embeddings=len(self.rows))

    async def ping(self) -> bool:
        return self.error is None


class FakeClock:
    """Manually advanced clock for TTL and breaker timing."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingMCP:
    """Stands in for FastMCP: records constructor arguments and registered tools."""

    def __init__(self, name: str, **kwargs):
        self.name = name
        self.kwargs = kwargs
        self.tools: dict = {}

    def tool(self):
        def decorator(fn):
            self.tools[fn.__name__] = fn
            return fn

        return decorator


def make_result(
    source_id: str,
    score: float,
    *,
    chunk_id: str | None = None,
    content: str = "",
    created_at: datetime | None = None,
    strategy: str = "full_text",
    title: str | None = None,
) -> SearchResult:
    """SearchResult with only the fields fusion cares about set."""
    metadata = {"chunk_id": chunk_id} if chunk_id is not None else {}
    return SearchResult(
        id=f"{strategy}-{source_id}-{chunk_id}",
        type=ContentType.CONTENT,
        title=title or f"Result {source_id}",
        content=content,
        score=score,
        relevance_score=score,
        source=ResultSource(type=ContentType.CONTENT, id=source_id, metadata=metadata),
        created_at=created_at or datetime(2024, 1, 1, tzinfo=UTC),
        strategy=strategy,
    )


def make_query(
    text: str = "photosynthesis in plants",
    *,
    strategy: SearchType = SearchType.HYBRID,
    filters: SearchFilters | None = None,
    options: SearchOptions | None = None,
    expanded: str | None = None,
    search_id: str = "sid-1",
) -> ProcessedQuery:
    """ProcessedQuery built the same way the processor builds one, minus expansion."""
    cleaned = clean_query(text)
    return ProcessedQuery(
        original_query=text,
        normalized_query=cleaned,
        expanded_query=expanded or cleaned,
        tokens=tokenize(cleaned),
        strategy=strategy,
        filters=filters or SearchFilters(),
        options=options or SearchOptions(),
        search_id=search_id,
    )


@pytest.fixture
def fake_embedder():
    """Fake embedding client for tests."""
    return FakeEmbedder()


@pytest.fixture
def fake_llm():
    """Controllable fake LLM client."""
    return FakeLLM()


@pytest.fixture
def fake_engine():
    """Fake full-text engine."""
    return FakeEngine()


@pytest.fixture
def fake_store():
    """Fake vector store."""
    return FakeVectorStore()


@pytest.fixture
def clock():
    """Manually advanced clock."""
    return FakeClock()


@pytest.fixture
def result_factory():
    """Factory for fusion-ready SearchResults."""
    return make_result


@pytest.fixture
def query_factory():
    """Factory for ProcessedQuery values."""
    return make_query


@pytest.fixture
def unit_vec():
    """Builder for normalized test vectors."""
    return unit_vector


@pytest.fixture
def vec_at():
    """Builder for vectors at a chosen similarity to unit_vec(1.0)."""
    return vector_at_similarity


@pytest.fixture
def mcp_recorder():
    """FastMCP replacement class that records registered tools."""
    return RecordingMCP
