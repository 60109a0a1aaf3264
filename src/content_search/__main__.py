"""Entry point for the content-search MCP server."""

from content_search.server import create_server


def main() -> None:
    """Run the content-search MCP server."""
    server = create_server()
    server.run(transport="stdio")


if __name__ == "__main__":
    main()
