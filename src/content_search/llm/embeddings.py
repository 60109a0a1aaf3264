"""Ollama embedding client.

Raises ``EmbeddingError`` on any failure instead of degrading to None: the
vector service calls it through the circuit breaker, which needs to see the
failure to count it.
"""

import logging

import httpx

from content_search.config import get_embedding_model, get_ollama_timeout, get_ollama_url
from content_search.errors import EmbeddingError

logger = logging.getLogger(__name__)


class OllamaEmbeddingClient:
    """Generates embeddings via Ollama's /api/embed endpoint."""

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        *,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
    ) -> None:
        """Initialize with an optional HTTP client and overrides for the config getters."""
        self._http = http_client
        self._base_url = base_url or get_ollama_url()
        self._model = model or get_embedding_model()
        self._timeout = timeout or get_ollama_timeout()

    @property
    def model(self) -> str:
        """Ollama embedding model tag."""
        return self._model

    async def is_available(self) -> bool:
        """Check if Ollama is reachable."""
        try:
            resp = await self._get_client().get(f"{self._base_url}/api/tags", timeout=self._timeout)
            resp.raise_for_status()
            return True
        except httpx.HTTPError:
            logger.warning("Ollama not available for embeddings", exc_info=True)
            return False

    async def embed(self, text: str) -> list[float]:
        """Generate an embedding vector for the given text."""
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate one embedding per input text, in order."""
        if not texts:
            return []
        try:
            resp = await self._get_client().post(
                f"{self._base_url}/api/embed",
                json={"model": self._model, "input": texts},
                timeout=self._timeout,
            )
            resp.raise_for_status()
            # Ollama /api/embed returns {"embeddings": [[...], ...]}
            vectors: list[list[float]] = resp.json()["embeddings"]
        except httpx.TimeoutException as exc:
            raise EmbeddingError(
                "Embedding request timed out", details={"model": self._model}
            ) from exc
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            raise EmbeddingError(
                f"Embedding request failed: {exc}", details={"model": self._model}
            ) from exc
        if len(vectors) != len(texts) or any(not v for v in vectors):
            raise EmbeddingError(
                "Embedding service returned an unexpected number of vectors",
                details={"model": self._model, "expected": len(texts), "got": len(vectors)},
            )
        return vectors

    def _get_client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient()
        return self._http

    async def close(self) -> None:
        """Close the HTTP client if open."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None
