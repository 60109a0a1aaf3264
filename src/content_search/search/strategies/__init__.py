"""Retrieval strategies sharing the SearchStrategy contract."""

from content_search.search.strategies.base import SearchStrategy, StrategyResult
from content_search.search.strategies.full_text import FullTextStrategy
from content_search.search.strategies.rag import RAGStrategy
from content_search.search.strategies.semantic import SemanticStrategy

__all__ = [
    "FullTextStrategy",
    "RAGStrategy",
    "SearchStrategy",
    "SemanticStrategy",
    "StrategyResult",
]
