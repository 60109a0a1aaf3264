"""FastMCP server with lifespan management and tool registration."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastmcp import FastMCP

from content_search.cache import CacheManager, MemoryCache, SearchCache, SQLSharedCache
from content_search.config import (
    get_breaker_call_timeout,
    get_breaker_reset_timeout,
    get_breaker_threshold,
    get_db_path,
    get_default_limit,
    get_elasticsearch_auth,
    get_elasticsearch_index_prefix,
    get_elasticsearch_url,
    get_embedding_dim,
    get_engine_timeout,
    get_llm_provider,
    get_llm_timeout,
    get_log_level,
    get_max_limit,
    get_max_query_length,
    get_max_vector_results,
    get_memory_cache_size,
    get_memory_cache_ttl,
    get_min_query_length,
    get_popular_cache_ttl,
    get_rag_context_max_tokens,
    get_rag_default_confidence,
    get_rag_low_confidence,
    get_rag_max_contexts,
    get_rag_max_tokens,
    get_rag_temperature,
    get_search_cache_ttl,
    get_similarity_threshold,
    get_strategy_timeout,
    get_suggestions_cache_ttl,
    is_manager_mode,
    is_query_expansion_enabled,
)
from content_search.db.connection import create_connection
from content_search.engine import ElasticsearchEngine
from content_search.llm import AnthropicLLMClient, OllamaEmbeddingClient, OllamaLLMClient
from content_search.llm.expander import QueryExpander
from content_search.llm.generator import AnswerGenerator
from content_search.llm.provider import LLMProvider
from content_search.resilience import CircuitBreaker
from content_search.search.executor import StrategyExecutor
from content_search.search.orchestrator import SearchOrchestrator
from content_search.search.processor import QueryProcessor
from content_search.search.strategies import FullTextStrategy, RAGStrategy, SemanticStrategy
from content_search.search.vector import VectorSearchService
from content_search.tools.content_clear_cache import register_content_clear_cache
from content_search.tools.content_health import register_content_health
from content_search.tools.content_popular import register_content_popular
from content_search.tools.content_search import register_content_search
from content_search.tools.content_suggest import register_content_suggest
from content_search.tools.content_track_click import register_content_track_click


def _create_llm(provider: str) -> LLMProvider | None:
    """Create an LLM client for the given provider name."""
    if provider == "anthropic":
        return AnthropicLLMClient()
    if provider == "ollama":
        return OllamaLLMClient()
    return None


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncIterator[dict[str, Any]]:
    """Construct every backend client and the orchestrator, and close them on shutdown."""
    # Configure logging to stderr (stdout is MCP stdio transport)
    logging.basicConfig(
        level=getattr(logging, get_log_level()),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )
    logger = logging.getLogger(__name__)

    db_path = get_db_path()
    logger.info("Opening database at %s", db_path)
    db = await create_connection(db_path, embedding_dim=get_embedding_dim())

    breaker = CircuitBreaker(
        threshold=get_breaker_threshold(),
        reset_timeout=get_breaker_reset_timeout(),
        call_timeout=get_breaker_call_timeout(),
    )
    cache = SearchCache(
        CacheManager(
            MemoryCache(get_memory_cache_size(), get_memory_cache_ttl()),
            SQLSharedCache(db),
        ),
        search_ttl=get_search_cache_ttl(),
        suggestions_ttl=get_suggestions_cache_ttl(),
        popular_ttl=get_popular_cache_ttl(),
    )

    engine = ElasticsearchEngine(
        get_elasticsearch_url(),
        index_prefix=get_elasticsearch_index_prefix(),
        auth=get_elasticsearch_auth(),
        timeout=get_engine_timeout(),
    )
    embedder = OllamaEmbeddingClient()
    vectors = VectorSearchService(
        db,
        embedder,
        breaker=breaker,
        similarity_threshold=get_similarity_threshold(),
        max_results=get_max_vector_results(),
        rag_max_contexts=get_rag_max_contexts(),
        rag_max_tokens=get_rag_context_max_tokens(),
    )

    llm_provider = get_llm_provider()
    llm = _create_llm(llm_provider)

    strategies: list[Any] = [FullTextStrategy(engine, breaker), SemanticStrategy(vectors)]
    expander: QueryExpander | None = None
    if llm is not None:
        logger.info("Generation LLM: %s (%s)", llm_provider, llm.model)
        expander = QueryExpander(llm)
        generator = AnswerGenerator(
            llm,
            default_confidence=get_rag_default_confidence(),
            temperature=get_rag_temperature(),
            max_tokens=get_rag_max_tokens(),
        )
        strategies.append(
            RAGStrategy(
                vectors,
                generator,
                breaker,
                max_contexts=get_rag_max_contexts(),
                max_tokens=get_rag_context_max_tokens(),
                low_confidence=get_rag_low_confidence(),
                generation_timeout=2 * get_llm_timeout(),
            )
        )
    else:
        logger.warning("Generation LLM not available (%s), RAG disabled", llm_provider)

    # Pre-check backend availability (non-blocking, just logs)
    if await embedder.is_available():
        logger.info("Embedding service available, semantic search enabled")
    else:
        logger.warning("Embedding service unavailable, semantic results will be empty")
    if await engine.health():
        logger.info("Full-text engine reachable at %s", get_elasticsearch_url())
    else:
        logger.warning("Full-text engine unreachable, keyword results will be empty")

    processor = QueryProcessor(
        expander,
        min_length=get_min_query_length(),
        max_length=get_max_query_length(),
        max_limit=get_max_limit(),
        default_limit=get_default_limit(),
        expansion_enabled=is_query_expansion_enabled(),
    )
    strategy_timeout = get_strategy_timeout()
    executor = StrategyExecutor(
        strategies,
        timeout=strategy_timeout,
        # Generation runs two LLM prompts on top of the vector lookup
        timeouts={"rag": strategy_timeout + 2 * get_llm_timeout()},
    )
    orchestrator = SearchOrchestrator(
        processor, executor, cache, breaker, engine=engine, vectors=vectors
    )

    try:
        yield {
            "db": db,
            "breaker": breaker,
            "cache": cache,
            "engine": engine,
            "embedder": embedder,
            "vectors": vectors,
            "llm": llm,
            "orchestrator": orchestrator,
        }
    finally:
        if llm is not None:
            await llm.close()
        await embedder.close()
        await engine.close()
        await db.close()
        logger.info("Database connection closed")


_INSTRUCTIONS = """\
Search course content: courses, modules, files, discussions, assignments, \
quizzes and announcements.

SEARCHING: pick the right mode.
- content_search with search_type=hybrid (default): keyword and semantic \
retrieval merged into one ranking. Best for most lookups.
- search_type=full_text: exact terms, names, codes. Supports facets.
- search_type=semantic: conceptual matches when wording differs.
- search_type=rag, or include_rag=True: a generated answer with numbered \
source citations. Use when the user asks a question rather than looking \
for a document.

OTHER TOOLS:
- content_suggest: autocomplete a partial query.
- content_popular: the most frequent recent queries.
- content_track_click: record that the user opened a result (pass the \
search_id from the content_search output).
- content_health: backend and circuit breaker status.

Filters (content_types, course_ids, module_ids, tags, categories, language, \
min_score) apply identically to every retrieval mode. If a backend is down \
the search still answers with whatever the other backends returned, and the \
output notes which strategies failed.
"""


def create_server() -> FastMCP:
    """Create and configure the MCP server with all tools."""
    mcp = FastMCP(
        "content-search",
        instructions=_INSTRUCTIONS,
        lifespan=lifespan,
    )

    register_content_search(mcp)
    register_content_suggest(mcp)
    register_content_popular(mcp)
    register_content_track_click(mcp)
    register_content_health(mcp)

    if is_manager_mode():
        register_content_clear_cache(mcp)

    return mcp
