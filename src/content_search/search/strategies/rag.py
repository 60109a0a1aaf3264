"""Retrieval-augmented answers: contexts from the vector store, answer from the LLM.

Every failure is contained here. A zero-context lookup or a backend error
becomes a single explanatory result so a RAG problem never aborts a request
that also ran other strategies.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from content_search.models.search import (
    ContentType,
    RAGContext,
    RAGResponse,
    ResultSource,
    SearchResult,
    SearchType,
)
from content_search.search.strategies.base import StrategyResult
from content_search.search.text import (
    content_url,
    first_sentence,
    split_sentences,
    truncate_text,
)

if TYPE_CHECKING:
    from content_search.llm.generator import AnswerGenerator
    from content_search.models.search import ProcessedQuery
    from content_search.resilience.breaker import CircuitBreaker
    from content_search.search.vector import VectorSearchService

logger = logging.getLogger(__name__)

GENERATION_KEY = "llm:generation"

MAX_SOURCE_RESULTS = 5
MAX_ANSWER_HIGHLIGHTS = 3
NOTICE_SCORE = 0.1

_REFUSAL_PHRASES = (
    "i don't know",
    "i cannot answer",
    "insufficient information",
    "not enough context",
    "unable to determine",
)
_WORD_RE = re.compile(r"\w+")


class RAGStrategy:
    """Answer generation over token-budgeted vector contexts."""

    name = "rag"
    priority = 10

    def __init__(
        self,
        vectors: VectorSearchService,
        generator: AnswerGenerator,
        breaker: CircuitBreaker,
        *,
        max_contexts: int = 10,
        max_tokens: int = 4000,
        low_confidence: float = 0.3,
        generation_timeout: float | None = None,
    ) -> None:
        """Initialize with the vector service, the answer generator and the breaker."""
        self._vectors = vectors
        self._generator = generator
        self._breaker = breaker
        self.max_contexts = max_contexts
        self.max_tokens = max_tokens
        self.low_confidence = low_confidence
        # Covers the answer and the follow-up prompt; None uses the breaker default
        self.generation_timeout = generation_timeout

    def can_handle(self, query: ProcessedQuery) -> bool:
        """RAG queries, or any query that asked for an answer alongside its results."""
        return query.strategy == SearchType.RAG or query.options.include_rag

    async def search(self, query: ProcessedQuery) -> StrategyResult:
        """Generate an answer with citations. Never raises."""
        question = query.original_query
        try:
            embedding = await self._vectors.embed_query(question)
            contexts = await self._vectors.get_rag_contexts(
                embedding,
                limit=self.max_contexts,
                filters=query.filters,
                max_tokens=self.max_tokens,
            )
            if not contexts:
                logger.info("No RAG contexts above threshold (search_id=%s)", query.search_id)
                return StrategyResult(results=[no_results_notice(question)], total=1)

            response = await self._breaker.call(
                GENERATION_KEY,
                lambda: self._generator.generate(question, contexts),
                timeout=self.generation_timeout,
            )
        except Exception as exc:
            logger.warning(
                "RAG search failed (search_id=%s): %s", query.search_id, exc, exc_info=True
            )
            return StrategyResult(results=[error_notice(question, exc)], total=1)

        response = response.model_copy(
            update={"low_quality": is_low_quality(response, self.low_confidence)}
        )
        if response.low_quality:
            logger.info(
                "Low-quality RAG answer, confidence %.2f (search_id=%s)",
                response.confidence,
                query.search_id,
            )
        results = [
            answer_result(response, query.tokens or _query_words(question), query.search_id)
        ]
        results.extend(source_result(ctx) for ctx in response.sources[:MAX_SOURCE_RESULTS])
        logger.debug(
            "RAG answered from %d contexts (search_id=%s)", len(contexts), query.search_id
        )
        return StrategyResult(results=results, total=len(results), rag_response=response)


def is_low_quality(response: RAGResponse, threshold: float = 0.3) -> bool:
    """Low confidence, or an answer that is really a refusal."""
    if response.confidence < threshold:
        return True
    answer = response.answer.lower()
    return any(phrase in answer for phrase in _REFUSAL_PHRASES)


def answer_result(
    response: RAGResponse, words: tuple[str, ...] | list[str], search_id: str
) -> SearchResult:
    """Primary result holding the generated answer."""
    return SearchResult(
        id=f"rag-answer-{search_id}",
        type=ContentType.CONTENT,
        title="AI-Generated Answer",
        description=answer_description(response.answer),
        content=response.answer,
        highlights=answer_highlights(response.answer, words),
        score=response.confidence,
        relevance_score=response.confidence,
        source=ResultSource(
            type=ContentType.CONTENT,
            id="rag-response",
            metadata={
                "model": response.model,
                "confidence": response.confidence,
                "source_count": len(response.sources),
                "reasoning": response.reasoning,
                "low_quality": response.low_quality,
            },
        ),
        tags=["rag", "ai-generated", "answer"],
        categories=["ai-response"],
        strategy="rag",
    )


def source_result(context: RAGContext) -> SearchResult:
    """Secondary result pointing at one cited passage."""
    meta = context.metadata
    return SearchResult(
        id=f"rag-source-{meta.content_id}-{meta.chunk_id or 0}",
        type=ContentType.CONTENT,
        title=meta.title,
        description=truncate_text(context.text, 200),
        content=context.text,
        score=context.relevance_score,
        relevance_score=context.relevance_score,
        semantic_score=context.relevance_score,
        source=ResultSource(
            type=ContentType.CONTENT,
            id=meta.content_id,
            url=content_url(meta.content_id, meta.course_id, meta.module_id),
            metadata={
                "chunk_id": meta.chunk_id,
                "section": meta.section,
                "page": meta.page,
                "timestamp": meta.timestamp,
            },
        ),
        course_id=meta.course_id,
        module_id=meta.module_id,
        tags=["source", "rag-context"],
        categories=["supporting-content"],
        strategy="rag",
    )


def no_results_notice(question: str) -> SearchResult:
    """The single low-score result returned when no context clears the threshold."""
    return SearchResult(
        id="rag-no-results",
        type=ContentType.CONTENT,
        title="No Relevant Information Found",
        description="I couldn't find relevant information to answer your question.",
        content=(
            f'No course content matched "{question}" closely enough to answer it. '
            "Try rephrasing the question or searching for more specific terms."
        ),
        score=NOTICE_SCORE,
        relevance_score=NOTICE_SCORE,
        source=ResultSource(type=ContentType.CONTENT, id="rag-no-results"),
        tags=["rag", "no-results"],
        categories=["ai-response"],
        strategy="rag",
    )


def error_notice(question: str, exc: Exception) -> SearchResult:
    """The single low-score result standing in for a failed RAG attempt."""
    return SearchResult(
        id="rag-error",
        type=ContentType.CONTENT,
        title="Search Error",
        description="An error occurred while generating an answer to your question.",
        content=f'The answer to "{question}" could not be generated. Please try again later.',
        score=NOTICE_SCORE,
        relevance_score=NOTICE_SCORE,
        source=ResultSource(
            type=ContentType.CONTENT,
            id="rag-error",
            metadata={"error": type(exc).__name__},
        ),
        tags=["rag", "error"],
        categories=["ai-response"],
        strategy="rag",
    )


def answer_description(answer: str) -> str:
    """The first sentence when it is a sensible length, else a truncated answer."""
    return first_sentence(answer) or truncate_text(answer, 200)


def answer_highlights(answer: str, words: tuple[str, ...] | list[str]) -> list[str]:
    """Answer sentences that mention a query word, at most three."""
    keywords = [w.lower() for w in words if len(w) > 2]
    highlights: list[str] = []
    for sentence in split_sentences(answer):
        if len(sentence) <= 20:
            continue
        lowered = sentence.lower()
        if any(word in lowered for word in keywords):
            highlights.append(sentence)
            if len(highlights) == MAX_ANSWER_HIGHLIGHTS:
                break
    return highlights


def _query_words(question: str) -> tuple[str, ...]:
    return tuple(_WORD_RE.findall(question.lower()))
