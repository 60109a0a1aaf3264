"""Protocols for pluggable generation and embedding backends."""

from typing import Protocol, runtime_checkable


@runtime_checkable
class LLMProvider(Protocol):
    """Protocol for language model providers with graceful degradation."""

    @property
    def model(self) -> str:
        """Identifier of the model used for generation."""
        ...

    async def is_available(self) -> bool:
        """Check if the LLM backend is reachable."""
        ...

    async def generate(
        self,
        prompt: str,
        *,
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str | None:
        """Generate text from a prompt. Returns None if unavailable.

        ``temperature`` and ``max_tokens`` fall back to the backend defaults
        when omitted.
        """
        ...

    async def close(self) -> None:
        """Release resources."""
        ...


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Protocol for embedding services.

    Unlike generation, embedding failures raise ``EmbeddingError`` so the
    circuit breaker can count them.
    """

    @property
    def model(self) -> str:
        """Identifier of the embedding model."""
        ...

    async def is_available(self) -> bool:
        """Check if the embedding backend is reachable."""
        ...

    async def embed(self, text: str) -> list[float]:
        """Embed one text."""
        ...

    async def close(self) -> None:
        """Release resources."""
        ...
