"""Services: MCP tool server."""
