#!/usr/bin/env python3
"""
Universal Memory HTTP Bridge
FastAPI server emulating MCP tools/list and tools/call over plain HTTP.
Clients that cannot spawn a stdio server reach the same tools through POST /mcp.
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, Optional

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from mcp.shared.exceptions import McpError
from mcp.types import INVALID_PARAMS, INVALID_REQUEST, METHOD_NOT_FOUND
from pydantic import BaseModel, Field

from . import __version__
from .config import Config, load_config
from .logging_setup import setup_logging
from .mcp_tools import TOOL_CATALOG, ToolDispatcher
from .memory_service import MemoryService, build_service

logger = logging.getLogger("universal-memory.http")

DEFAULT_PORT = 3020

STATUS_BY_CODE = {
    INVALID_PARAMS: 400,
    INVALID_REQUEST: 400,
    METHOD_NOT_FOUND: 404,
}


class MCPRequest(BaseModel):
    method: Optional[str] = Field(default=None, description="tools/list or tools/call")
    params: Optional[Dict[str, Any]] = Field(default=None, description="For tools/call: {name, arguments}")


def error_response(code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=STATUS_BY_CODE.get(code, 500),
        content={"error": {"code": code, "message": message}},
    )


def get_dispatcher(request: Request) -> ToolDispatcher:
    return request.app.state.dispatcher


def get_service(request: Request) -> MemoryService:
    return request.app.state.service


def create_app(config: Optional[Config] = None, service: Optional[MemoryService] = None) -> FastAPI:
    """Build the FastAPI app; the service is started before traffic is accepted"""
    config = config or load_config()
    service = service or build_service(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await service.startup()
        logger.info(f"HTTP bridge ready with {len(TOOL_CATALOG)} tools")
        try:
            yield
        finally:
            await service.shutdown()

    app = FastAPI(
        title="Universal Memory API",
        description="HTTP bridge to the Universal Memory MCP tools",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.service = service
    app.state.dispatcher = ToolDispatcher(service)

    # Enable CORS for localhost access
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError):
        """Malformed /mcp bodies get the same error envelope as tool failures"""
        if any(tuple(err.get("loc", ()))[:2] == ("body", "params") for err in exc.errors()):
            return error_response(INVALID_PARAMS, "Invalid params: expected an object")
        return error_response(INVALID_REQUEST, "Invalid MCP method")

    @app.get("/health")
    async def health():
        """Liveness probe with the number of advertised tools"""
        return {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "tools": len(TOOL_CATALOG),
            "version": __version__,
        }

    @app.get("/stats")
    async def stats(memory_service: MemoryService = Depends(get_service)):
        """Store statistics plus the most recent store errors"""
        stats = (await memory_service.get_stats()).to_dict()
        error_log = memory_service.store.error_log
        stats["recent_errors"] = len(error_log)
        stats["last_errors"] = error_log[-5:]
        return stats

    @app.post("/mcp")
    async def mcp_endpoint(body: MCPRequest, dispatcher: ToolDispatcher = Depends(get_dispatcher)):
        if body.method == "tools/list":
            return {"tools": TOOL_CATALOG}

        if body.method != "tools/call":
            return error_response(INVALID_REQUEST, "Invalid MCP method")

        params = body.params or {}
        name = params.get("name")
        if not name:
            return error_response(INVALID_PARAMS, "Missing tool name")

        try:
            return await dispatcher.call(name, params.get("arguments") or {})
        except McpError as e:
            logger.warning(f"Tool call {name} failed: {e.error.message}")
            return error_response(e.error.code, e.error.message)

    return app


def main():
    config = load_config()
    setup_logging(config.logging)
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", DEFAULT_PORT))

    logger.info(f"Universal Memory HTTP bridge on http://{host}:{port}")
    logger.info(f"  MCP endpoint: http://{host}:{port}/mcp")
    logger.info(f"  Health:       http://{host}:{port}/health")

    uvicorn.run(create_app(config), host=host, port=port, log_level=config.logging.level.lower())


if __name__ == "__main__":
    main()
