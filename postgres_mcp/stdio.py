"""PostgreSQL MCP Server, stdio transport for desktop MCP clients.

Usage:
    DATABASE_URL=postgres://... postgres-mcp-stdio
"""

import json
import logging
import sys

import anyio
from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent

from . import SERVER_NAME, __version__
from .catalog import list_tools
from .config import Settings
from .errors import GatewayError
from .executor import Executor
from .store import TargetStore
from .validators import is_valid_target_descriptor

logger = logging.getLogger("postgres-mcp")


def build_server(settings: Settings, store_factory=TargetStore) -> Server:
    server = Server(SERVER_NAME, version=__version__)
    executor = Executor(settings)
    store = store_factory(settings.database_url)

    @server.list_tools()
    async def handle_list_tools():
        return [tool.to_mcp() for tool in list_tools()]

    @server.call_tool()
    async def handle_call_tool(name: str, arguments: dict):
        try:
            result = await executor.execute(store, name, arguments or {})
        except GatewayError as e:
            return [TextContent(type="text", text=f"Error: {e.message}")]
        return [TextContent(type="text", text=json.dumps(result, indent=2, default=str))]

    return server


async def serve(settings: Settings):
    server = build_server(settings)
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def main():
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)
    settings = Settings.from_env()
    if not is_valid_target_descriptor(settings.database_url):
        logger.error("DATABASE_URL environment variable is required")
        sys.exit(1)
    logger.info("PostgreSQL MCP Server v%s running on stdio", __version__)
    logger.info("Database: %s", TargetStore(settings.database_url).redacted)
    logger.info("Writes: %s", "enabled" if settings.enable_writes else "disabled")
    anyio.run(serve, settings)


if __name__ == "__main__":
    main()
