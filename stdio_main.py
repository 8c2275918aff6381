import asyncio
import logging

from mcp.server.stdio import stdio_server
from mech_evolve.mcp_server import server


async def main():
    async with stdio_server() as (read_stream, write_stream):
        await server.run(
            read_stream,
            write_stream,
            server.create_initialization_options()
        )

if __name__ == "__main__":
    # Disable logging to stdout to avoid corrupting MCP JSON-RPC
    logging.getLogger().setLevel(logging.CRITICAL)
    asyncio.run(main())
