from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .audit import AuditLogger, AuditSink
from .auth import MCP_HEADERS, require_auth
from .config import AuthConfig, Settings, get_settings
from .data_access import DataAccess
from .errors import AuthError, ErrorCode, error_body
from .main import SERVER_NAME, build_registry, build_services
from .models import RequestContext
from .tools import call_tool_body

logger = logging.getLogger(__name__)

CORS_MAX_AGE = 86400


def create_http_app(
    settings: Optional[Settings] = None,
    data_access: Optional[DataAccess] = None,
    audit_sink: Optional[AuditSink] = None,
) -> FastAPI:
    """
    Create the FastAPI app exposing the tool registry over REST.

    - GET  /mcp/health: liveness, no auth
    - GET  /mcp/tools:  tool catalog
    - POST /mcp/call:   `{tool, input}` → `{output, error?, meta}`

    Storage and the audit sink default to Firestore; tests inject fakes.
    """
    settings = settings or get_settings()
    if data_access is None or audit_sink is None:
        default_access, default_sink = build_services(settings)
        data_access = data_access or default_access
        audit_sink = audit_sink or default_sink

    registry = build_registry(
        data_access,
        AuditLogger(audit_sink),
        search_limit=settings.search_result_limit,
    )

    app = FastAPI(
        title="Insurance Verification MCP",
        version="0.1.0",
        description="Audited, read-only insurance verification tools for agents",
    )
    app.state.auth_config = AuthConfig.from_settings(settings)
    app.state.registry = registry

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list() or ["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=MCP_HEADERS,
        max_age=CORS_MAX_AGE,
    )

    @app.middleware("http")
    async def log_mcp_request(request: Request, call_next):
        response = await call_next(request)
        if request.url.path.startswith("/mcp"):
            logger.info(
                "[MCP] %s %s origin=%s actor=%s auth=%s status=%s",
                request.url.path,
                request.method,
                request.headers.get("origin", "-"),
                getattr(request.state, "actor_id", "-"),
                getattr(request.state, "auth_outcome", "none"),
                response.status_code,
            )
        return response

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(StarletteHTTPException)
    async def not_found_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return JSONResponse(
                status_code=404,
                content={"error": error_body(ErrorCode.NOT_FOUND, "Not found")},
            )
        return await http_exception_handler(request, exc)

    @app.get("/mcp/health")
    async def health():
        """Health check endpoint."""
        return {"ok": True}

    @app.get("/mcp/tools")
    async def list_tools(ctx: RequestContext = Depends(require_auth)):
        return {"tools": registry.catalog()}

    @app.post("/mcp/call")
    async def call_tool(request: Request, ctx: RequestContext = Depends(require_auth)):
        try:
            body = await request.json()
        except ValueError:
            body = None

        tool_name = body.get("tool") if isinstance(body, dict) else None
        if not isinstance(tool_name, str) or not tool_name:
            return JSONResponse(
                status_code=400,
                content={
                    "output": {},
                    "error": error_body(ErrorCode.BAD_REQUEST, 'Missing or invalid "tool" in body'),
                },
            )

        ok, payload = await call_tool_body(registry, tool_name, body.get("input"), ctx)
        return JSONResponse(status_code=200 if ok else 400, content=payload)

    logger.info("%s ready with %d tools", SERVER_NAME, len(registry.list_definitions()))
    return app


async def run_http_server(host: str = "0.0.0.0", port: int = 4010) -> None:
    """Run the HTTP server using uvicorn."""
    import uvicorn

    app = create_http_app()
    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level="info",
        access_log=True,
    )
    server = uvicorn.Server(config)
    await server.serve()
