"""Environment-variable-based configuration."""

import os
from pathlib import Path


def _get_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def get_log_level() -> str:
    """Return the logging level from CS_LOG_LEVEL."""
    return os.environ.get("CS_LOG_LEVEL", "WARNING")


def get_db_path() -> Path:
    """Return the SQLite database path from CS_DB_PATH."""
    raw = os.environ.get("CS_DB_PATH", "~/.local/share/content_search/search.db")
    return Path(raw).expanduser()


def get_database_url() -> str | None:
    """Return a Postgres URL from CS_DATABASE_URL, or None for SQLite."""
    return os.environ.get("CS_DATABASE_URL") or None


def get_embedding_dim() -> int:
    """Return the embedding vector dimensions from CS_EMBEDDING_DIM."""
    return int(os.environ.get("CS_EMBEDDING_DIM", "1024"))


# -- LLM / embeddings --


def get_ollama_url() -> str:
    """Return the Ollama API URL from CS_OLLAMA_URL."""
    return os.environ.get("CS_OLLAMA_URL", "http://localhost:11434")


def get_embedding_model() -> str:
    """Return the embedding model name from CS_EMBEDDING_MODEL."""
    return os.environ.get("CS_EMBEDDING_MODEL", "qwen3-embedding:0.6b")


def get_ollama_timeout() -> float:
    """Return the embedding request timeout in seconds from CS_OLLAMA_TIMEOUT."""
    return float(os.environ.get("CS_OLLAMA_TIMEOUT", "10.0"))


def get_llm_provider() -> str:
    """Return the generation provider (ollama or anthropic) from CS_LLM_PROVIDER."""
    return os.environ.get("CS_LLM_PROVIDER", "ollama").lower()


def get_llm_model() -> str:
    """Return the Ollama generation model from CS_LLM_MODEL."""
    return os.environ.get("CS_LLM_MODEL", "qwen3:4b")


def get_llm_timeout() -> float:
    """Return the generation timeout in seconds from CS_LLM_TIMEOUT."""
    return float(os.environ.get("CS_LLM_TIMEOUT", "60.0"))


def get_anthropic_model() -> str:
    """Return the Anthropic model from CS_ANTHROPIC_MODEL."""
    return os.environ.get("CS_ANTHROPIC_MODEL", "claude-haiku-4-5")


def get_anthropic_timeout() -> float:
    """Return the Anthropic request timeout in seconds from CS_ANTHROPIC_TIMEOUT."""
    return float(os.environ.get("CS_ANTHROPIC_TIMEOUT", "60.0"))


# -- Full-text engine --


def get_elasticsearch_url() -> str:
    """Return the Elasticsearch URL from CS_ELASTICSEARCH_URL."""
    return os.environ.get("CS_ELASTICSEARCH_URL", "http://localhost:9200")


def get_elasticsearch_index_prefix() -> str:
    """Return the index name prefix from CS_ELASTICSEARCH_INDEX_PREFIX."""
    return os.environ.get("CS_ELASTICSEARCH_INDEX_PREFIX", "lms_")


def get_elasticsearch_auth() -> tuple[str, str] | None:
    """Return basic-auth credentials, or None when either half is unset."""
    user = os.environ.get("CS_ELASTICSEARCH_USERNAME")
    password = os.environ.get("CS_ELASTICSEARCH_PASSWORD")
    if user and password:
        return (user, password)
    return None


def get_engine_timeout() -> float:
    """Return the full-text request timeout in seconds from CS_ENGINE_TIMEOUT."""
    return float(os.environ.get("CS_ENGINE_TIMEOUT", "5.0"))


# -- Retrieval tuning --


def get_similarity_threshold() -> float:
    """Return the vector similarity threshold from CS_SIMILARITY_THRESHOLD."""
    return float(os.environ.get("CS_SIMILARITY_THRESHOLD", "0.7"))


def get_max_vector_results() -> int:
    """Return the cap on similarity lookups from CS_MAX_VECTOR_RESULTS."""
    return int(os.environ.get("CS_MAX_VECTOR_RESULTS", "100"))


def get_rag_max_contexts() -> int:
    """Return the RAG context-count limit from CS_RAG_MAX_CONTEXTS."""
    return int(os.environ.get("CS_RAG_MAX_CONTEXTS", "10"))


def get_rag_context_max_tokens() -> int:
    """Return the RAG context token budget from CS_RAG_CONTEXT_MAX_TOKENS."""
    return int(os.environ.get("CS_RAG_CONTEXT_MAX_TOKENS", "4000"))


def get_rag_default_confidence() -> float:
    """Return the confidence used when the model reports none (CS_RAG_DEFAULT_CONFIDENCE)."""
    return float(os.environ.get("CS_RAG_DEFAULT_CONFIDENCE", "0.8"))


def get_rag_low_confidence() -> float:
    """Return the low-quality confidence cutoff from CS_RAG_LOW_CONFIDENCE."""
    return float(os.environ.get("CS_RAG_LOW_CONFIDENCE", "0.3"))


def get_rag_temperature() -> float:
    """Return the answer sampling temperature from CS_RAG_TEMPERATURE."""
    return float(os.environ.get("CS_RAG_TEMPERATURE", "0.3"))


def get_rag_max_tokens() -> int:
    """Return the answer length cap from CS_RAG_MAX_TOKENS."""
    return int(os.environ.get("CS_RAG_MAX_TOKENS", "1000"))


def get_default_limit() -> int:
    """Return the default page size from CS_DEFAULT_LIMIT."""
    return int(os.environ.get("CS_DEFAULT_LIMIT", "20"))


def get_max_limit() -> int:
    """Return the maximum page size from CS_MAX_LIMIT."""
    return int(os.environ.get("CS_MAX_LIMIT", "100"))


def get_min_query_length() -> int:
    """Return the minimum query length from CS_MIN_QUERY_LENGTH."""
    return int(os.environ.get("CS_MIN_QUERY_LENGTH", "2"))


def get_max_query_length() -> int:
    """Return the maximum query length from CS_MAX_QUERY_LENGTH."""
    return int(os.environ.get("CS_MAX_QUERY_LENGTH", "1000"))


def is_query_expansion_enabled() -> bool:
    """Return True unless CS_QUERY_EXPANSION disables LLM query expansion."""
    return _get_bool("CS_QUERY_EXPANSION", True)


def get_strategy_timeout() -> float:
    """Return the per-strategy watchdog in seconds from CS_STRATEGY_TIMEOUT."""
    return float(os.environ.get("CS_STRATEGY_TIMEOUT", "10.0"))


# -- Circuit breaker --


def get_breaker_threshold() -> int:
    """Return the failure count that opens a circuit from CS_BREAKER_THRESHOLD."""
    return int(os.environ.get("CS_BREAKER_THRESHOLD", "5"))


def get_breaker_reset_timeout() -> float:
    """Return the open-to-half-open delay in seconds from CS_BREAKER_RESET_TIMEOUT."""
    return float(os.environ.get("CS_BREAKER_RESET_TIMEOUT", "30.0"))


def get_breaker_call_timeout() -> float:
    """Return the per-call timeout in seconds from CS_BREAKER_CALL_TIMEOUT."""
    return float(os.environ.get("CS_BREAKER_CALL_TIMEOUT", "5.0"))


# -- Cache --


def get_memory_cache_size() -> int:
    """Return the in-process cache bound from CS_MEMORY_CACHE_SIZE."""
    return int(os.environ.get("CS_MEMORY_CACHE_SIZE", "1000"))


def get_memory_cache_ttl() -> int:
    """Return the in-process default TTL in seconds from CS_MEMORY_CACHE_TTL."""
    return int(os.environ.get("CS_MEMORY_CACHE_TTL", "300"))


def get_search_cache_ttl() -> int:
    """Return the search-response TTL in seconds from CS_SEARCH_CACHE_TTL."""
    return int(os.environ.get("CS_SEARCH_CACHE_TTL", "300"))


def get_suggestions_cache_ttl() -> int:
    """Return the suggestions TTL in seconds from CS_SUGGESTIONS_CACHE_TTL."""
    return int(os.environ.get("CS_SUGGESTIONS_CACHE_TTL", "3600"))


def get_popular_cache_ttl() -> int:
    """Return the popular-searches TTL in seconds from CS_POPULAR_CACHE_TTL."""
    return int(os.environ.get("CS_POPULAR_CACHE_TTL", "900"))


def is_manager_mode() -> bool:
    """Return True if CS_MANAGER is set to TRUE."""
    return os.environ.get("CS_MANAGER", "").upper() == "TRUE"
