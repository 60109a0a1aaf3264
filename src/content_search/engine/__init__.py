"""Full-text engine protocol and the Elasticsearch adapter."""

from content_search.engine.base import FullTextEngine
from content_search.engine.elasticsearch import ElasticsearchEngine

__all__ = ["ElasticsearchEngine", "FullTextEngine"]
