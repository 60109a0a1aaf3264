"""content_track_click MCP tool: click-through analytics."""

from typing import Annotated

from fastmcp import FastMCP
from fastmcp.server.context import Context
from pydantic import Field

from content_search.models.search import ClickThroughEvent, ContentType


def register_content_track_click(mcp: FastMCP) -> None:
    """Register the content_track_click tool with the MCP server."""

    @mcp.tool()
    async def content_track_click(
        search_id: Annotated[str, Field(description="search_id from a content_search response")],
        result_id: Annotated[str, Field(description="Id of the opened result")],
        result_type: Annotated[
            ContentType, Field(description="Content type of the opened result")
        ] = ContentType.CONTENT,
        position: Annotated[int, Field(description="0-based rank in the response", ge=0)] = 0,
        query: Annotated[str | None, Field(description="The query that was searched")] = None,
        user_id: Annotated[str | None, Field(description="Caller id")] = None,
        ctx: Context | None = None,
    ) -> str:
        """Record that a search result was opened."""
        if ctx is None:
            raise RuntimeError("Context not injected")
        orchestrator = ctx.lifespan_context["orchestrator"]
        event = ClickThroughEvent(
            search_id=search_id,
            result_id=result_id,
            result_type=result_type,
            position=position,
            query=query,
            user_id=user_id,
        )
        await orchestrator.track_click_through(event)
        return f"Tracked click on {result_id} (position {position})"
