from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

import anyio
from mcp import types
from mcp.server import Server
from mcp.server.stdio import stdio_server

from .audit import AuditLogger, AuditSink, FirestoreAuditSink
from .auth import authenticate, context_headers
from .config import AuthConfig, Settings, get_settings
from .data_access import DataAccess, FirestoreDataAccess
from .errors import AuthError
from .firebase_client import init_firebase
from .tools import ToolRegistry, call_tool_body
from .tools import insurance_tools, patient_tools, verification_tools

logger = logging.getLogger(__name__)

SERVER_NAME = "insurance-verification-mcp"


def build_services(settings: Settings) -> Tuple[DataAccess, AuditSink]:
    """Firestore-backed record access and audit sink."""
    init_firebase(settings)
    return FirestoreDataAccess(), FirestoreAuditSink()


def build_registry(
    data_access: DataAccess,
    audit_logger: AuditLogger,
    search_limit: int = 20,
) -> ToolRegistry:
    registry = ToolRegistry()

    # Register tool groups
    patient_tools.register_tools(registry, data_access, audit_logger, search_limit=search_limit)
    insurance_tools.register_tools(registry, data_access, audit_logger)
    verification_tools.register_tools(registry, data_access, audit_logger, search_limit=search_limit)

    return registry


async def handle_stdio_call(
    registry: ToolRegistry,
    auth_config: AuthConfig,
    name: str,
    arguments: Optional[Dict[str, Any]],
) -> Dict[str, Any]:
    """
    Run one `tools/call` from the stdio transport.

    Credentials arrive in `arguments["context"]` and go through the same
    gate as HTTP headers; the remaining arguments are the tool input.
    """
    tool_input = dict(arguments or {})
    context = tool_input.pop("context", None)
    if not isinstance(context, dict):
        context = {}

    try:
        ctx = authenticate(context_headers(context), auth_config)
    except AuthError as e:
        logger.info("[MCP] stdio tools/call %s rejected: %s", name, e.code.value)
        return {"output": {}, **e.to_dict()}

    _, body = await call_tool_body(registry, name, tool_input, ctx)
    return body


def create_server(registry: ToolRegistry, auth_config: AuthConfig) -> Server:
    """
    Create and configure the MCP server over an already-built registry.
    """
    server = Server(SERVER_NAME)

    @server.list_tools()
    async def list_tools() -> List[types.Tool]:
        return registry.list_tools()

    # Inputs are validated by the dispatcher so errors keep one shape.
    @server.call_tool(validate_input=False)
    async def call_tool(name: str, arguments: Dict[str, Any]) -> List[types.TextContent]:
        body = await handle_stdio_call(registry, auth_config, name, arguments)
        # A single text content item containing the JSON reply.
        return [types.TextContent(type="text", text=json.dumps(body))]

    return server


async def run_stdio_server(server: Server) -> None:
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def main() -> None:
    """
    Entrypoint for running the MCP server.

    Supports two transport modes:
    - http: REST gateway (`/mcp/health`, `/mcp/tools`, `/mcp/call`), the default
    - stdio: MCP protocol for direct process-to-process communication
    """
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not settings.api_key_list():
        logger.warning("No API keys configured (MCP_API_KEYS); every call will be rejected")

    if settings.transport == "stdio":
        data_access, audit_sink = build_services(settings)
        registry = build_registry(
            data_access,
            AuditLogger(audit_sink),
            search_limit=settings.search_result_limit,
        )
        server = create_server(registry, AuthConfig.from_settings(settings))
        anyio.run(run_stdio_server, server)
    else:
        from .http_server import run_http_server

        anyio.run(run_http_server, settings.server_host, settings.server_port)


if __name__ == "__main__":
    main()
