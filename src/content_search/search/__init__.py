"""Query processing, retrieval strategies, fusion and orchestration."""

from content_search.search.executor import StrategyExecutor, StrategyOutcome
from content_search.search.orchestrator import SearchOrchestrator
from content_search.search.processor import QueryProcessor
from content_search.search.vector import VectorSearchService

__all__ = [
    "QueryProcessor",
    "SearchOrchestrator",
    "StrategyExecutor",
    "StrategyOutcome",
    "VectorSearchService",
]
