"""LLM provider module."""

from content_search.llm.anthropic import AnthropicLLMClient
from content_search.llm.embeddings import OllamaEmbeddingClient
from content_search.llm.ollama import OllamaLLMClient
from content_search.llm.provider import EmbeddingProvider, LLMProvider

__all__ = [
    "AnthropicLLMClient",
    "EmbeddingProvider",
    "LLMProvider",
    "OllamaEmbeddingClient",
    "OllamaLLMClient",
]
