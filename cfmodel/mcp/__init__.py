"""cf-model MCP server."""
