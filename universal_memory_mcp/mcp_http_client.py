#!/usr/bin/env python3
"""
MCP stdio relay to a running Universal Memory HTTP bridge

Lets several MCP clients share one memory process: each client spawns this
lightweight relay, which forwards tools/list and tools/call to POST /mcp.
"""

import asyncio
import logging
import os
import sys
from typing import Any, Dict, List, Optional

import httpx
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions
from mcp.server.stdio import stdio_server
from mcp import types
from mcp.shared.exceptions import McpError
from mcp.types import Tool, TextContent, ErrorData, INTERNAL_ERROR

from . import __version__
from .config import load_config
from .exceptions import CollaboratorError
from .logging_setup import setup_logging

logger = logging.getLogger("universal-memory.http-client")

SERVER_NAME = "universal-memory-http-client"
DEFAULT_BRIDGE_URL = "http://localhost:3020"


class HttpBridgeClient:
    """Thin httpx wrapper around the bridge's /mcp and /health endpoints"""

    def __init__(self, base_url: str = DEFAULT_BRIDGE_URL, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(base_url=self.base_url, transport=transport)

    async def aclose(self):
        await self._client.aclose()

    async def _post(self, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self._client.post("/mcp", json=body)
        except httpx.HTTPError as e:
            raise CollaboratorError(str(e)) from e

        if response.is_error:
            try:
                message = response.json()["error"]["message"]
            except (ValueError, KeyError, TypeError):
                message = response.reason_phrase
            raise CollaboratorError(f"HTTP {response.status_code}: {message}")
        return response.json()

    async def health_check(self) -> Dict[str, Any]:
        try:
            response = await self._client.get("/health")
        except httpx.HTTPError as e:
            raise CollaboratorError(str(e)) from e
        if response.is_error:
            raise CollaboratorError(f"Health check failed: {response.status_code}")
        return response.json()

    async def list_tools(self) -> List[Dict[str, Any]]:
        return (await self._post({"method": "tools/list"}))["tools"]

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        return await self._post({"method": "tools/call", "params": {"name": name, "arguments": arguments or {}}})


def create_relay_server(bridge: HttpBridgeClient) -> Server:
    app = Server(SERVER_NAME)

    @app.list_tools()
    async def handle_list_tools() -> list[Tool]:
        try:
            await bridge.health_check()
            tools = await bridge.list_tools()
        except CollaboratorError as e:
            raise McpError(ErrorData(code=INTERNAL_ERROR, message=f"Failed to connect to HTTP server: {e}"))
        return [Tool(**tool) for tool in tools]

    async def handle_call_tool(request: types.CallToolRequest) -> types.ServerResult:
        name = request.params.name
        try:
            envelope = await bridge.call_tool(name, request.params.arguments)
        except CollaboratorError as e:
            raise McpError(ErrorData(code=INTERNAL_ERROR, message=f"Failed to execute tool {name}: {e}"))
        content = [TextContent(type="text", text=item["text"]) for item in envelope.get("content", [])]
        return types.ServerResult(types.CallToolResult(content=content, isError=False))

    # Registered directly so McpError reaches the session as a JSON-RPC error
    app.request_handlers[types.CallToolRequest] = handle_call_tool
    return app


async def main():
    config = load_config()
    setup_logging(config.logging)
    bridge_url = os.getenv("HTTP_SERVER_URL", DEFAULT_BRIDGE_URL)
    bridge = HttpBridgeClient(bridge_url)
    app = create_relay_server(bridge)

    logger.info(f"Relaying MCP requests to {bridge_url}")
    try:
        async with stdio_server() as (read_stream, write_stream):
            await app.run(
                read_stream,
                write_stream,
                InitializationOptions(
                    server_name=SERVER_NAME,
                    server_version=__version__,
                    capabilities=app.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                ),
            )
    except Exception as e:
        logger.error(f"Failed to start MCP HTTP client: {e}", exc_info=True)
        sys.exit(1)
    finally:
        await bridge.aclose()


def cli():
    asyncio.run(main())


if __name__ == "__main__":
    cli()
