"""MCP (Model Context Protocol) server for Dossier.

Exposes case operations as MCP tools so the agent driving an
investigation mutates case files only through validated operations:

  - Typed tool definitions with input schemas
  - JSON-RPC 2.0 over stdio/HTTP transport

Usage::

    from dossier.mcp.server import DossierMCPServer

    server = DossierMCPServer()
    await server.run_stdio()  # or server.run_http(port=9400)
"""

from dossier.mcp.server import DossierMCPServer
from dossier.mcp.tools import DOSSIER_TOOLS, DossierToolExecutor

__all__ = [
    "DOSSIER_TOOLS",
    "DossierToolExecutor",
    "DossierMCPServer",
]
