"""Error taxonomy for the retrieval core.

Only ``ValidationError`` is meant to reach a caller as a hard failure. Every
other error is raised by a backend adapter and absorbed further up: the
circuit breaker counts it, a strategy converts it, or the orchestrator
degrades the response.
"""

from __future__ import annotations

from typing import Any


class SearchError(Exception):
    """Base class for every error raised by the retrieval core."""

    code = "SEARCH_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with a message and optional diagnostic details."""
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details: dict[str, Any] = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serializable form for logs and tool output."""
        return {
            "code": self.code,
            "message": self.message,
            "status_code": self.status_code,
            "details": self.details,
        }


class ValidationError(SearchError):
    """Bad caller input (query too short/long, limit out of range). Never retried."""

    code = "VALIDATION_ERROR"
    status_code = 400


class EngineError(SearchError):
    """Full-text engine failure. Transient; counted by the circuit breaker."""

    code = "ENGINE_ERROR"
    status_code = 502


class EngineUnavailableError(EngineError):
    """Engine unreachable, timed out, or answered with a 5xx status."""

    code = "ENGINE_UNAVAILABLE"
    status_code = 503


class IndexNotFoundError(SearchError):
    """The requested index does not exist.

    Deliberately not an ``EngineError``: a missing index is not a transient
    failure and must not trip the circuit breaker.
    """

    code = "INDEX_NOT_FOUND"
    status_code = 404


class VectorSearchError(SearchError):
    """Vector store failure. Transient; counted by the circuit breaker."""

    code = "VECTOR_SEARCH_ERROR"
    status_code = 502


class EmbeddingError(SearchError):
    """The embedding service failed to produce a vector."""

    code = "EMBEDDING_ERROR"
    status_code = 502


class RAGError(SearchError):
    """Answer generation failed. Contained inside the RAG strategy."""

    code = "RAG_ERROR"
    status_code = 502


class CacheError(SearchError):
    """Cache tier failure. Always swallowed and treated as a miss."""

    code = "CACHE_ERROR"
    status_code = 500


class CircuitOpenError(SearchError):
    """Raised when a breaker is open and the caller supplied no fallback."""

    code = "CIRCUIT_OPEN"
    status_code = 503

    def __init__(self, key: str, retry_after: float) -> None:
        """Initialize with the breaker key and seconds until the next trial call."""
        super().__init__(
            f"Circuit '{key}' is open",
            details={"key": key, "retry_after": round(retry_after, 3)},
        )
        self.key = key
        self.retry_after = retry_after
