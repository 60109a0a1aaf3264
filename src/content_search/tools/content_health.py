"""content_health MCP tool: backend and circuit breaker status."""

from fastmcp import FastMCP
from fastmcp.server.context import Context

from content_search.tools.formatters import format_health


def register_content_health(mcp: FastMCP) -> None:
    """Register the content_health tool with the MCP server."""

    @mcp.tool()
    async def content_health(ctx: Context | None = None) -> str:
        """Report full-text engine, vector store and cache reachability plus open circuits."""
        if ctx is None:
            raise RuntimeError("Context not injected")
        orchestrator = ctx.lifespan_context["orchestrator"]
        return format_health(await orchestrator.get_health())
