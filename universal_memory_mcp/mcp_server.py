#!/usr/bin/env python3
"""
MCP stdio server for Universal Memory MCP

One process serves one client over stdin/stdout. stdout belongs to the MCP
stream, so anything printed during startup is redirected to stderr.
"""

import asyncio
import contextlib
import enum
import logging
import os
import sys
import traceback
from typing import Optional

from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions
from mcp.server.stdio import stdio_server
from mcp import types
from mcp.types import Tool

from . import __version__
from .config import Config, load_config
from .logging_setup import setup_logging
from .mcp_tools import ToolDispatcher, get_tool_definitions
from .memory_service import MemoryService, build_service

logger = logging.getLogger("universal-memory")

SERVER_NAME = "universal-memory-mcp"


class ServerState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    SERVING = "serving"
    CLOSED = "closed"


@contextlib.contextmanager
def stdout_to_stderr():
    """Point fd 1 at stderr for the duration of the block"""
    sys.stdout.flush()
    saved_fd = os.dup(1)
    os.dup2(2, 1)
    try:
        yield
    finally:
        sys.stdout.flush()
        os.dup2(saved_fd, 1)
        os.close(saved_fd)


class MemoryMCPServer:
    def __init__(self, config: Config, service: Optional[MemoryService] = None):
        self.config = config
        self.service = service or build_service(config)
        self.dispatcher = ToolDispatcher(self.service)
        self.state = ServerState.UNINITIALIZED
        self.app = Server(SERVER_NAME)
        self._register_handlers()

    def _register_handlers(self):
        @self.app.list_tools()
        async def handle_list_tools() -> list[Tool]:
            """List available memory tools"""
            return get_tool_definitions()

        # Registered directly so McpError reaches the session as a JSON-RPC error
        async def handle_call_tool(request: types.CallToolRequest) -> types.ServerResult:
            content = await self.dispatcher.call_content(request.params.name, request.params.arguments)
            return types.ServerResult(types.CallToolResult(content=content, isError=False))

        self.app.request_handlers[types.CallToolRequest] = handle_call_tool

    async def start(self):
        """uninitialized -> ready: open the store and probe Ollama"""
        if self.state is not ServerState.UNINITIALIZED:
            raise RuntimeError(f"Cannot start server in state {self.state.value}")
        with stdout_to_stderr():
            await self.service.startup()
        self.state = ServerState.READY
        logger.info("Memory store ready")

    async def serve(self):
        """ready -> serving until the client closes the stream"""
        if self.state is not ServerState.READY:
            raise RuntimeError(f"Cannot serve in state {self.state.value}")
        self.state = ServerState.SERVING
        logger.info("Starting MCP server...")
        async with stdio_server() as (read_stream, write_stream):
            await self.app.run(
                read_stream,
                write_stream,
                InitializationOptions(
                    server_name=SERVER_NAME,
                    server_version=__version__,
                    capabilities=self.app.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                ),
            )

    async def close(self):
        if self.state is ServerState.CLOSED:
            return
        await self.service.shutdown()
        self.state = ServerState.CLOSED

    async def run(self):
        try:
            await self.start()
            await self.serve()
        finally:
            await self.close()


async def main():
    """Main entry point"""
    config = load_config()
    setup_logging(config.logging)
    logger.info(f"Using memory database {config.storage.path}")

    server = MemoryMCPServer(config)
    try:
        await server.run()
    except KeyboardInterrupt:
        logger.info("Received interrupt signal")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        logger.error(traceback.format_exc())
        sys.exit(1)


def cli():
    asyncio.run(main())


if __name__ == "__main__":
    cli()
