"""MCP server for Dossier.

Implements the Model Context Protocol over stdio and HTTP transports
using JSON-RPC 2.0. This is a thin protocol layer that delegates all
real work to DossierToolExecutor.

Transport options:
  - stdio: for desktop agents and editors
  - HTTP: for remote agents

Usage::

    # stdio
    server = DossierMCPServer()
    await server.run_stdio()

    # HTTP
    server = DossierMCPServer()
    await server.run_http(host="127.0.0.1", port=9400)
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
import uuid
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from dossier import __version__
from dossier.mcp.tools import DOSSIER_TOOLS, DossierToolExecutor

logger = logging.getLogger(__name__)

# MCP protocol version
MCP_PROTOCOL_VERSION = "2024-11-05"

# Server info
SERVER_INFO = {
    "name": "dossier-case-server",
    "version": __version__,
}

# Server capabilities
SERVER_CAPABILITIES = {
    "tools": {"listChanged": False},
}


# ---------------------------------------------------------------------------
# JSON-RPC 2.0 helpers
# ---------------------------------------------------------------------------


def _jsonrpc_response(id: Any, result: Any) -> dict:
    return {"jsonrpc": "2.0", "id": id, "result": result}


def _jsonrpc_error(id: Any, code: int, message: str, data: Any = None) -> dict:
    error = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": id, "error": error}


# Error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


# ---------------------------------------------------------------------------
# MCP Server
# ---------------------------------------------------------------------------


class DossierMCPServer:
    """MCP server exposing Dossier case operations.

    Handles the MCP protocol lifecycle:
      1. initialize → capabilities exchange
      2. tools/list → enumerate available tools
      3. tools/call → execute case operations
    """

    def __init__(self, cases_root: str | Path | None = None) -> None:
        self.executor = DossierToolExecutor(cases_root)
        self._initialized = False
        self._session_id = str(uuid.uuid4())
        self._call_count = 0

        # Method dispatch table
        self._methods: dict[str, Any] = {
            "initialize": self._handle_initialize,
            "initialized": self._handle_initialized,
            "notifications/initialized": self._handle_initialized,
            "ping": self._handle_ping,
            "tools/list": self._handle_tools_list,
            "tools/call": self._handle_tools_call,
        }

    # --- Protocol handlers ---

    async def _handle_initialize(self, params: dict[str, Any]) -> dict[str, Any]:
        """Handle MCP initialize request."""
        client_info = params.get("clientInfo", {})
        logger.info(
            "MCP client connecting: %s %s",
            client_info.get("name", "unknown"),
            client_info.get("version", ""),
        )
        self._initialized = True
        return {
            "protocolVersion": MCP_PROTOCOL_VERSION,
            "capabilities": SERVER_CAPABILITIES,
            "serverInfo": SERVER_INFO,
        }

    async def _handle_initialized(self, params: dict[str, Any]) -> None:
        """Handle MCP initialized notification (no response)."""
        logger.info("MCP session initialized: %s", self._session_id)
        return None

    async def _handle_ping(self, params: dict[str, Any]) -> dict[str, Any]:
        return {}

    async def _handle_tools_list(self, params: dict[str, Any]) -> dict[str, Any]:
        return {"tools": self.executor.list_tools()}

    async def _handle_tools_call(self, params: dict[str, Any]) -> dict[str, Any]:
        tool_name = params.get("name", "")
        arguments = params.get("arguments") or {}
        if not isinstance(arguments, dict):
            raise _InvalidParams("arguments must be an object")

        logger.info("MCP tool call: %s", tool_name)
        self._call_count += 1
        result = await self.executor.execute(tool_name, arguments)

        # Return MCP-formatted result (without _raw)
        return {
            "content": result.get("content", []),
            "isError": result.get("isError", False),
        }

    # --- Message routing ---

    async def handle_message(self, message: Any) -> dict[str, Any] | None:
        """Route a JSON-RPC 2.0 message to the appropriate handler."""
        if not isinstance(message, dict) or message.get("jsonrpc") != "2.0":
            msg_id = message.get("id") if isinstance(message, dict) else None
            return _jsonrpc_error(msg_id, INVALID_REQUEST, "Not a JSON-RPC 2.0 message")

        method = message.get("method", "")
        params = message.get("params") or {}
        msg_id = message.get("id")

        handler = self._methods.get(method)
        if handler is None:
            if msg_id is not None:
                return _jsonrpc_error(msg_id, METHOD_NOT_FOUND, f"Unknown method: {method}")
            return None  # Unknown notification: ignore

        try:
            result = await handler(params)
        except _InvalidParams as exc:
            return _jsonrpc_error(msg_id, INVALID_PARAMS, str(exc)) if msg_id is not None else None
        except Exception as exc:
            logger.exception("Error handling %s", method)
            if msg_id is not None:
                return _jsonrpc_error(msg_id, INTERNAL_ERROR, str(exc))
            return None
        if msg_id is None:
            return None  # Notification: no response
        return _jsonrpc_response(msg_id, result)

    async def handle_line(self, line: str) -> dict[str, Any] | None:
        """Decode one line of the stdio stream and handle it."""
        try:
            message = json.loads(line)
        except json.JSONDecodeError:
            return _jsonrpc_error(None, PARSE_ERROR, "Invalid JSON")
        return await self.handle_message(message)

    # --- stdio transport ---

    async def run_stdio(self) -> None:
        """Run MCP server over stdio."""
        logger.info("Dossier MCP server starting on stdio")
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader()
        protocol = asyncio.StreamReaderProtocol(reader)
        await loop.connect_read_pipe(lambda: protocol, sys.stdin.buffer)

        writer_transport, writer_protocol = await loop.connect_write_pipe(
            asyncio.streams.FlowControlMixin, sys.stdout.buffer
        )
        writer = asyncio.StreamWriter(writer_transport, writer_protocol, None, loop)

        try:
            while True:
                line = await reader.readline()
                if not line:
                    break
                text = line.decode("utf-8").strip()
                if not text:
                    continue
                response = await self.handle_line(text)
                if response is not None:
                    await self._write_message(writer, response)
        except asyncio.CancelledError:
            logger.info("MCP server shutting down")

    async def _write_message(self, writer: asyncio.StreamWriter, message: dict) -> None:
        """Write a JSON-RPC message to stdout."""
        data = json.dumps(message, default=str) + "\n"
        writer.write(data.encode("utf-8"))
        await writer.drain()

    # --- HTTP transport ---

    def create_app(self) -> FastAPI:
        """FastAPI app serving JSON-RPC on ``POST /mcp``."""
        app = FastAPI(title="Dossier MCP Server", version=SERVER_INFO["version"])

        @app.post("/mcp")
        async def mcp_endpoint(request: Request) -> JSONResponse:
            """JSON-RPC 2.0 endpoint for MCP."""
            try:
                body = json.loads(await request.body())
            except json.JSONDecodeError:
                return JSONResponse(_jsonrpc_error(None, PARSE_ERROR, "Invalid JSON"))

            response = await self.handle_message(body)
            if response is None:
                return JSONResponse({"jsonrpc": "2.0", "result": None})
            return JSONResponse(json.loads(json.dumps(response, default=str)))

        @app.get("/mcp/health")
        async def health() -> dict:
            return {
                "status": "ok",
                "server": SERVER_INFO,
                "session_id": self._session_id,
                "tool_count": len(DOSSIER_TOOLS),
                "calls": self._call_count,
            }

        return app

    async def run_http(self, host: str = "127.0.0.1", port: int = 9400) -> None:
        """Run MCP server over HTTP."""
        import uvicorn

        logger.info("Dossier MCP server starting on http://%s:%d/mcp", host, port)
        config = uvicorn.Config(self.create_app(), host=host, port=port, log_level="info")
        server = uvicorn.Server(config)
        await server.serve()


class _InvalidParams(ValueError):
    pass
