"""content_suggest MCP tool: autocomplete suggestions."""

from typing import Annotated

from fastmcp import FastMCP
from fastmcp.server.context import Context
from pydantic import Field

from content_search.models.search import ContentType
from content_search.tools.formatters import format_suggestions


def register_content_suggest(mcp: FastMCP) -> None:
    """Register the content_suggest tool with the MCP server."""

    @mcp.tool()
    async def content_suggest(
        partial: Annotated[str, Field(description="Partial query text (at least 2 characters)")],
        content_type: Annotated[
            ContentType | None, Field(description="Only suggest titles of this type")
        ] = None,
        limit: Annotated[int, Field(description="Maximum suggestions (1-50)", ge=1, le=50)] = 10,
        ctx: Context | None = None,
    ) -> str:
        """Autocomplete a partial query from indexed titles and popular searches."""
        if ctx is None:
            raise RuntimeError("Context not injected")
        orchestrator = ctx.lifespan_context["orchestrator"]
        suggestions = await orchestrator.get_suggestions(partial, content_type, limit)
        return format_suggestions(suggestions)
