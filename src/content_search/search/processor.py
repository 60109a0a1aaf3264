"""Query processing: validation, cleaning, tokenization, expansion, strategy tag."""

from __future__ import annotations

import logging
import re
import uuid
from typing import TYPE_CHECKING

from content_search.errors import ValidationError
from content_search.models.search import (
    ProcessedQuery,
    SearchContext,
    SearchFilters,
    SearchOptions,
    SearchType,
)

if TYPE_CHECKING:
    from content_search.llm.expander import QueryExpander

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")
_SPECIAL_CHARS_RE = re.compile(r"[^\w\s\-'\"]")

STOPWORDS = frozenset(
    """
    a about above after again against all am an and any are as at be because been
    before being below between both but by can could did do does doing down during
    each few for from further had has have having he her here hers herself him
    himself his how i if in into is it its itself just me more most my myself no
    nor not now of off on once only or other our ours ourselves out over own same
    she should so some such than that the their theirs them themselves then there
    these they this those through to too under until up very was we were what when
    where which while who whom why will with would you your yours yourself
    yourselves
    """.split()
)


def clean_query(query: str) -> str:
    """Trim, collapse whitespace, drop punctuation other than quotes and hyphens, lower-case."""
    collapsed = _WHITESPACE_RE.sub(" ", query.strip())
    return _SPECIAL_CHARS_RE.sub("", collapsed).lower()


def tokenize(cleaned: str) -> tuple[str, ...]:
    """Whitespace tokens with quotes stripped, stopwords and 1-char tokens removed."""
    tokens = []
    for raw in cleaned.split():
        token = raw.strip("'\"-")
        if len(token) > 1 and token not in STOPWORDS:
            tokens.append(token)
    return tuple(tokens)


class QueryProcessor:
    """Builds immutable ProcessedQuery values from raw caller input."""

    def __init__(
        self,
        expander: QueryExpander | None = None,
        *,
        min_length: int = 2,
        max_length: int = 1000,
        max_limit: int = 100,
        default_limit: int = 20,
        expansion_enabled: bool = True,
    ) -> None:
        """Initialize with an optional expander and validation bounds."""
        self._expander = expander
        self.min_length = min_length
        self.max_length = max_length
        self.max_limit = max_limit
        self.default_limit = default_limit
        self.expansion_enabled = expansion_enabled and expander is not None

    def validate(self, query: str, options: SearchOptions | None = None) -> None:
        """Raise ValidationError for a query or page size outside the configured bounds."""
        stripped = query.strip()
        if len(stripped) < self.min_length:
            raise ValidationError(
                f"Query too short. Minimum length is {self.min_length} characters.",
                details={"length": len(stripped), "min_length": self.min_length},
            )
        if len(stripped) > self.max_length:
            raise ValidationError(
                f"Query too long. Maximum length is {self.max_length} characters.",
                details={"length": len(stripped), "max_length": self.max_length},
            )
        if options is not None and options.limit > self.max_limit:
            raise ValidationError(
                f"Limit {options.limit} exceeds the maximum of {self.max_limit}.",
                details={"limit": options.limit, "max_limit": self.max_limit},
            )

    def prepare(
        self,
        query: str,
        *,
        search_type: SearchType | None = None,
        filters: SearchFilters | None = None,
        options: SearchOptions | None = None,
        context: SearchContext | None = None,
    ) -> ProcessedQuery:
        """Validate and normalize a raw query without expansion. Only validation can fail."""
        if options is None:
            options = SearchOptions(limit=min(self.default_limit, self.max_limit))
        self.validate(query, options)
        strategy = search_type or SearchType.HYBRID
        context = context or SearchContext()
        search_id = str(uuid.uuid4())

        cleaned = clean_query(query)
        return ProcessedQuery(
            original_query=query,
            normalized_query=cleaned,
            expanded_query=cleaned,
            tokens=tokenize(cleaned),
            strategy=strategy,
            filters=filters or SearchFilters(),
            options=options,
            context=context,
            search_id=search_id,
        )

    async def expand(self, query: ProcessedQuery) -> ProcessedQuery:
        """Attach LLM alternatives to a prepared query. RAG queries are left as they are."""
        if not self.expansion_enabled or query.strategy is SearchType.RAG:
            return query
        expanded = await self._expand(
            self._expander, query.normalized_query, query.context, query.search_id
        )
        if expanded == query.expanded_query:
            return query
        return query.model_copy(update={"expanded_query": expanded})

    async def process(
        self,
        query: str,
        *,
        search_type: SearchType | None = None,
        filters: SearchFilters | None = None,
        options: SearchOptions | None = None,
        context: SearchContext | None = None,
    ) -> ProcessedQuery:
        """Prepare and expand in one step."""
        prepared = self.prepare(
            query, search_type=search_type, filters=filters, options=options, context=context
        )
        return await self.expand(prepared)

    async def _expand(
        self, expander: QueryExpander | None, cleaned: str, context: SearchContext, search_id: str
    ) -> str:
        """Append LLM alternatives to the cleaned text; any failure keeps the original."""
        if expander is None:
            return cleaned
        try:
            variants = await expander.expand(cleaned, context)
        except Exception:
            logger.warning(
                "Query expansion failed, using original query (search_id=%s)",
                search_id,
                exc_info=True,
            )
            return cleaned
        if len(variants) > 1:
            expanded = " ".join([cleaned, *variants])
            logger.debug("Query expanded to %r (search_id=%s)", expanded, search_id)
            return expanded
        return cleaned

    async def alternatives(self, query: str, context: SearchContext | None = None) -> list[str]:
        """Alternative phrasings for sparse-result suggestions. Never raises."""
        if self._expander is None:
            return []
        try:
            return await self._expander.expand(query, context)
        except Exception:
            logger.warning("Suggestion generation failed for %r", query, exc_info=True)
            return []
