"""content_search MCP tool: hybrid full-text + semantic search with optional RAG."""

import logging
from typing import Annotated

from fastmcp import FastMCP
from fastmcp.server.context import Context
from pydantic import Field

from content_search.errors import ValidationError
from content_search.models.search import (
    ContentType,
    SearchContext,
    SearchFilters,
    SearchOptions,
    SearchType,
    SortField,
    SortOrder,
)
from content_search.tools.formatters import format_search_response

logger = logging.getLogger(__name__)


def register_content_search(mcp: FastMCP) -> None:
    """Register the content_search tool with the MCP server."""

    @mcp.tool()
    async def content_search(
        query: Annotated[str, Field(description="Search query (natural language or keywords)")],
        search_type: Annotated[
            SearchType,
            Field(description="full_text, semantic, hybrid (both) or rag (generated answer)"),
        ] = SearchType.HYBRID,
        content_types: Annotated[
            list[ContentType] | None, Field(description="Restrict to these content types")
        ] = None,
        course_ids: Annotated[
            list[str] | None, Field(description="Restrict to these courses")
        ] = None,
        module_ids: Annotated[
            list[str] | None, Field(description="Restrict to these modules")
        ] = None,
        tags: Annotated[list[str] | None, Field(description="Filter by tags")] = None,
        categories: Annotated[list[str] | None, Field(description="Filter by categories")] = None,
        language: Annotated[str | None, Field(description="Content language code")] = None,
        min_score: Annotated[
            float | None, Field(description="Drop results scoring below this", ge=0.0, le=1.0)
        ] = None,
        page: Annotated[int, Field(description="1-based page number", ge=1)] = 1,
        limit: Annotated[int, Field(description="Results per page (1-100)", ge=1, le=100)] = 20,
        include_highlights: Annotated[
            bool, Field(description="Show matching fragments under each result")
        ] = True,
        include_facets: Annotated[
            bool, Field(description="Include type/course/tag/category counts")
        ] = False,
        include_rag: Annotated[
            bool, Field(description="Also generate an answer alongside the results")
        ] = False,
        sort_by: Annotated[
            SortField, Field(description="relevance, score, date or title")
        ] = SortField.RELEVANCE,
        sort_order: Annotated[SortOrder, Field(description="asc or desc")] = SortOrder.DESC,
        user_id: Annotated[str | None, Field(description="Caller id for analytics")] = None,
        course_id: Annotated[
            str | None, Field(description="Course the caller is currently viewing")
        ] = None,
        ctx: Context | None = None,
    ) -> str:
        """Search course content.

        Hybrid search runs keyword and vector retrieval concurrently and merges
        the results. RAG search (or include_rag=True) adds a generated answer
        with numbered source citations. Backend outages degrade the results
        rather than failing the call; degraded strategies are noted in the output.
        """
        if ctx is None:
            raise RuntimeError("Context not injected")
        orchestrator = ctx.lifespan_context["orchestrator"]

        filters = SearchFilters(
            content_types=content_types,
            course_ids=course_ids,
            module_ids=module_ids,
            tags=tags,
            categories=categories,
            language=language,
            min_score=min_score,
        )
        options = SearchOptions(
            page=page,
            limit=limit,
            include_highlights=include_highlights,
            include_facets=include_facets,
            include_rag=include_rag,
            sort_by=sort_by,
            sort_order=sort_order,
        )
        context = SearchContext(user_id=user_id, course_id=course_id)

        try:
            response = await orchestrator.search(
                query, search_type=search_type, filters=filters, options=options, context=context
            )
        except ValidationError as exc:
            return f"Error: {exc.message}"
        return format_search_response(response, include_highlights)
