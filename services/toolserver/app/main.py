from __future__ import annotations

import asyncio

from mcp.server.stdio import stdio_server

from libs.core import logging as core_logging
from libs.core.database import engine, init_db
from libs.core.tool_registry import default_registry
from libs.framework.tool_runtime import ToolGateway

from services.toolserver.app.mcp import create_mcp_server

LOGGER = core_logging.get_logger("toolserver")


def build_gateway() -> ToolGateway:
    registry = default_registry()
    return ToolGateway(registry, logger=LOGGER)


async def serve() -> None:
    LOGGER.info("database_connecting")
    init_db()
    gateway = build_gateway()
    server = create_mcp_server(gateway, LOGGER)
    LOGGER.info("mcp_server_listening", transport="stdio", timeout_s=gateway.timeout_s)
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def main() -> None:
    core_logging.configure_logging("toolserver")
    try:
        asyncio.run(serve())
    except KeyboardInterrupt:
        LOGGER.info("mcp_server_interrupted")
    finally:
        engine.dispose()
        LOGGER.info("database_disconnected")


if __name__ == "__main__":
    main()
