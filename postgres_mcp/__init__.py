"""PostgreSQL MCP server: sixteen database tools over SSE, HTTP and stdio."""

__version__ = "2.0.0"
SERVER_NAME = "postgres-mcp-server"
