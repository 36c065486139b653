"""Tests for the stdio server lifecycle and the HTTP relay client."""

import asyncio

import httpx
import pytest
from mcp import types
from mcp.shared.exceptions import McpError
from mcp.types import INTERNAL_ERROR, INVALID_PARAMS, METHOD_NOT_FOUND

from universal_memory_mcp.exceptions import CollaboratorError
from universal_memory_mcp.mcp_http_client import HttpBridgeClient, create_relay_server
from universal_memory_mcp.mcp_server import MemoryMCPServer, ServerState
from universal_memory_mcp.mcp_tools import TOOL_CATALOG
from universal_memory_mcp.memory_service import MemoryService
from universal_memory_mcp.storage.sqlite_store import SQLiteStore


def run(coro):
    return asyncio.run(coro)


class TestServerLifecycle:
    def test_start_and_close(self, config):
        service = MemoryService(SQLiteStore(config.storage.path), config)
        server = MemoryMCPServer(config, service)
        assert server.state is ServerState.UNINITIALIZED

        run(server.start())
        assert server.state is ServerState.READY
        assert service.store.is_initialized

        run(server.close())
        assert server.state is ServerState.CLOSED
        assert not service.store.is_initialized

    def test_serve_requires_ready(self, config):
        server = MemoryMCPServer(config, MemoryService(SQLiteStore(config.storage.path), config))
        with pytest.raises(RuntimeError):
            run(server.serve())

    def test_start_twice_is_rejected(self, config):
        server = MemoryMCPServer(config, MemoryService(SQLiteStore(config.storage.path), config))
        run(server.start())
        try:
            with pytest.raises(RuntimeError):
                run(server.start())
        finally:
            run(server.close())


def tool_request(name, arguments):
    return types.CallToolRequest(
        method="tools/call",
        params=types.CallToolRequestParams(name=name, arguments=arguments),
    )


async def handle(app, request):
    return await app.request_handlers[type(request)](request)


@pytest.fixture
def server(config):
    srv = MemoryMCPServer(config, MemoryService(SQLiteStore(config.storage.path), config))
    run(srv.start())
    yield srv
    run(srv.close())


def protocol_error(app, request):
    with pytest.raises(McpError) as excinfo:
        run(handle(app, request))
    return excinfo.value.error.code, excinfo.value.error.message


class TestStdioToolCalls:
    def test_list_tools(self, server):
        result = run(handle(server.app, types.ListToolsRequest(method="tools/list")))
        assert [t.name for t in result.root.tools] == [t["name"] for t in TOOL_CATALOG]

    def test_call_returns_text_content(self, server):
        result = run(handle(server.app, tool_request("add_memory", {"content": "Use PostgreSQL"})))
        assert result.root.isError is False
        assert result.root.content[0].type == "text"
        assert result.root.content[0].text.startswith("Memory stored successfully with ID: ")

    def test_unknown_tool_is_protocol_error(self, server):
        assert protocol_error(server.app, tool_request("drop_database", {})) == (
            METHOD_NOT_FOUND, "Unknown tool: drop_database"
        )

    def test_missing_argument_is_invalid_params(self, server):
        assert protocol_error(server.app, tool_request("add_memory", {})) == (
            INVALID_PARAMS, "Missing required parameter: content"
        )

    def test_service_validation_is_invalid_params(self, server):
        code, message = protocol_error(server.app, tool_request("add_memory", {"content": "x", "importance": 42}))
        assert code == INVALID_PARAMS
        assert "Importance" in message

    def test_store_failure_is_internal_error(self, server):
        server.service.store.close()
        code, message = protocol_error(server.app, tool_request("add_memory", {"content": "x"}))
        assert code == INTERNAL_ERROR
        assert message.startswith("Error executing tool add_memory:")


def bridge_transport(routes):
    def handler(request: httpx.Request) -> httpx.Response:
        return routes(request)
    return httpx.MockTransport(handler)


async def _with_bridge(transport, method, *args):
    bridge = HttpBridgeClient("http://bridge.test", transport=transport)
    try:
        return await getattr(bridge, method)(*args)
    finally:
        await bridge.aclose()


class TestHttpBridgeClient:
    def test_list_and_call(self):
        def routes(request):
            body = request.read()
            if b"tools/list" in body:
                return httpx.Response(200, json={"tools": TOOL_CATALOG})
            return httpx.Response(200, json={"content": [{"type": "text", "text": "ok"}]})

        transport = bridge_transport(routes)
        assert run(_with_bridge(transport, "list_tools")) == TOOL_CATALOG
        assert run(_with_bridge(transport, "call_tool", "list_projects", None)) == {
            "content": [{"type": "text", "text": "ok"}]
        }

    def test_error_body_message_is_surfaced(self):
        transport = bridge_transport(lambda request: httpx.Response(
            404, json={"error": {"code": -32601, "message": "Unknown tool: nope"}}
        ))
        with pytest.raises(CollaboratorError, match="HTTP 404: Unknown tool: nope"):
            run(_with_bridge(transport, "call_tool", "nope", {}))

    def test_connection_failure(self):
        def routes(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(CollaboratorError):
            run(_with_bridge(bridge_transport(routes), "health_check"))

    def test_relay_server_builds(self):
        bridge = HttpBridgeClient("http://bridge.test", transport=bridge_transport(lambda r: httpx.Response(200)))
        server = create_relay_server(bridge)
        assert server.name == "universal-memory-http-client"
        run(bridge.aclose())

    def test_relay_forwards_content_and_errors(self):
        def routes(request):
            if b"drop_database" in request.read():
                return httpx.Response(404, json={"error": {"code": -32601, "message": "Unknown tool: drop_database"}})
            return httpx.Response(200, json={"content": [{"type": "text", "text": "No projects with memories found."}]})

        async def scenario():
            bridge = HttpBridgeClient("http://bridge.test", transport=bridge_transport(routes))
            relay = create_relay_server(bridge)
            try:
                ok = await handle(relay, tool_request("list_projects", {}))
                with pytest.raises(McpError) as excinfo:
                    await handle(relay, tool_request("drop_database", {}))
                return ok, excinfo.value.error
            finally:
                await bridge.aclose()

        ok, error = run(scenario())
        assert ok.root.content[0].text == "No projects with memories found."
        assert error.code == INTERNAL_ERROR
        assert error.message == "Failed to execute tool drop_database: HTTP 404: Unknown tool: drop_database"
