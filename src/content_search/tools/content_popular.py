"""content_popular MCP tool: most frequent recent queries."""

from typing import Annotated

from fastmcp import FastMCP
from fastmcp.server.context import Context
from pydantic import Field

from content_search.tools.formatters import format_popular


def register_content_popular(mcp: FastMCP) -> None:
    """Register the content_popular tool with the MCP server."""

    @mcp.tool()
    async def content_popular(
        limit: Annotated[int, Field(description="Maximum queries (1-50)", ge=1, le=50)] = 20,
        ctx: Context | None = None,
    ) -> str:
        """List the most frequent search queries of the last day."""
        if ctx is None:
            raise RuntimeError("Context not injected")
        orchestrator = ctx.lifespan_context["orchestrator"]
        return format_popular(await orchestrator.get_popular_searches(limit))
