"""content_clear_cache MCP tool: cache invalidation and breaker resets."""

import logging
from typing import Annotated

from fastmcp import FastMCP
from fastmcp.server.context import Context
from pydantic import Field

logger = logging.getLogger(__name__)


def register_content_clear_cache(mcp: FastMCP) -> None:
    """Register the content_clear_cache tool with the MCP server."""

    @mcp.tool()
    async def content_clear_cache(
        pattern: Annotated[
            str | None,
            Field(description="Glob of keys to delete (e.g. search:*); omit to clear everything"),
        ] = None,
        reset_circuits: Annotated[
            bool, Field(description="Also force every circuit breaker back to closed")
        ] = False,
        ctx: Context | None = None,
    ) -> str:
        """Invalidate cached search data.

        Requires CS_MANAGER=TRUE environment variable.

        Deleting by pattern removes matching shared-tier keys and clears the
        whole in-process tier. Without a pattern both tiers are emptied.
        """
        if ctx is None:
            raise RuntimeError("Context not injected")
        lifespan = ctx.lifespan_context
        orchestrator = lifespan["orchestrator"]

        deleted = await orchestrator.clear_cache(pattern)
        if pattern:
            message = f"Deleted {deleted} cache entries matching {pattern!r}"
        else:
            message = "Cache cleared"

        if reset_circuits:
            await lifespan["breaker"].reset_all()
            logger.info("All circuits reset")
            message += "; all circuits reset to closed"
        return message
