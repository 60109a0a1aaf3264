"""LLM query expansion: alternative phrasings for a search query."""

import logging
import re

from content_search.llm.provider import LLMProvider
from content_search.models.search import SearchContext

logger = logging.getLogger(__name__)

_LIST_MARKER_RE = re.compile(r"^(?:\d+[.)]|[-*])\s*")

_PROMPT = """\
Generate 3-5 alternative search queries or related terms for: "{query}" {course}

{previous}

Provide variations that would help find relevant educational content. Include \
synonyms, related concepts, and different phrasings.
Return only the alternative queries, one per line:\
"""

MAX_VARIANTS = 5
EXPANSION_TEMPERATURE = 0.5
EXPANSION_MAX_TOKENS = 200


class QueryExpander:
    """Asks an LLM for alternative phrasings. Never raises."""

    def __init__(self, llm: LLMProvider) -> None:
        """Initialize with a generation provider."""
        self._llm = llm

    async def expand(self, query: str, context: SearchContext | None = None) -> list[str]:
        """Return alternative queries, or ``[]`` when the backend is unavailable."""
        course = ""
        previous = ""
        if context is not None:
            if context.course_id:
                course = f"in the context of course {context.course_id}"
            if context.previous_queries:
                previous = f"Previous related queries: {', '.join(context.previous_queries)}"
        prompt = _PROMPT.format(query=query, course=course, previous=previous)
        try:
            raw = await self._llm.generate(
                prompt, temperature=EXPANSION_TEMPERATURE, max_tokens=EXPANSION_MAX_TOKENS
            )
        except Exception:
            logger.warning("Query expansion failed for %r", query, exc_info=True)
            return []
        if raw is None:
            return []
        return parse_variants(raw)


def parse_variants(raw: str) -> list[str]:
    """One variant per line, list markers stripped, at most five."""
    variants: list[str] = []
    for line in raw.splitlines():
        line = line.strip()
        if len(line) <= 2:
            continue
        cleaned = _LIST_MARKER_RE.sub("", line).strip().strip('"')
        if cleaned:
            variants.append(cleaned)
        if len(variants) == MAX_VARIANTS:
            break
    return variants
