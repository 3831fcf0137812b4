"""
Request authentication and authorization.

Every call carries its own credentials and declared purpose; there are no
sessions. The gate checks, in order: API key, actor id, actor type, purpose
and request id, and stops at the first failure.
"""

from __future__ import annotations

import re
from typing import Mapping, Optional

from fastapi import Request

from .config import AuthConfig
from .errors import AuthError, ErrorCode
from .models import ActorType, RequestContext

UUID_REGEX = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

HEADER_API_KEY = "x-api-key"
HEADER_ACTOR_ID = "x-actor-id"
HEADER_ACTOR_TYPE = "x-actor-type"
HEADER_PURPOSE = "x-purpose"
HEADER_REQUEST_ID = "x-request-id"
HEADER_ALLOW_UNMASKED = "x-allow-unmasked"

MCP_HEADERS = [
    "X-API-Key",
    "X-Actor-Id",
    "X-Actor-Type",
    "X-Purpose",
    "X-Request-Id",
    "X-Allow-Unmasked",
    "Content-Type",
]

_ACTOR_TYPES = {a.value for a in ActorType}


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is None:
        # Plain dicts are case-sensitive; Starlette headers are not.
        for key, candidate in headers.items():
            if key.lower() == name:
                return candidate
    return value


def _bad_request(message: str) -> AuthError:
    return AuthError(400, ErrorCode.BAD_REQUEST, message)


def authenticate(headers: Mapping[str, str], config: AuthConfig) -> RequestContext:
    """Validate request headers and build the per-request context."""
    api_key = _header(headers, HEADER_API_KEY)
    if not api_key or api_key not in config.api_keys:
        raise AuthError(401, ErrorCode.UNAUTHORIZED, "Invalid or missing API key")

    actor_id = (_header(headers, HEADER_ACTOR_ID) or "").strip()
    if not actor_id:
        raise _bad_request("Missing X-Actor-Id")

    actor_type = _header(headers, HEADER_ACTOR_TYPE)
    if actor_type not in _ACTOR_TYPES:
        raise _bad_request("X-Actor-Type must be agent, user, or system")

    purpose = _header(headers, HEADER_PURPOSE)
    if purpose != config.required_purpose:
        raise _bad_request(f'X-Purpose must be "{config.required_purpose}"')

    request_id = _header(headers, HEADER_REQUEST_ID)
    if not request_id or not UUID_REGEX.fullmatch(request_id):
        raise _bad_request("X-Request-Id must be a valid UUID")

    actor = ActorType(actor_type)
    # Agents never see unmasked identifiers unless the deployment opts in.
    allow_unmasked = _header(headers, HEADER_ALLOW_UNMASKED) == "true" and (
        actor is not ActorType.AGENT or config.allow_agent_unmasked
    )

    return RequestContext(
        request_id=request_id,
        actor_id=actor_id,
        actor_type=actor,
        purpose=purpose,
        allow_unmasked=allow_unmasked,
    )


def require_auth(request: Request) -> RequestContext:
    """FastAPI dependency applying the gate with the app's startup config."""
    config: AuthConfig = request.app.state.auth_config
    try:
        ctx = authenticate(request.headers, config)
    except AuthError:
        request.state.auth_outcome = "rejected"
        raise
    request.state.auth_outcome = "ok"
    request.state.actor_id = ctx.actor_id
    return ctx


def context_headers(context: Mapping[str, object]) -> dict:
    """Map a stdio `context` argument onto the header names the gate reads."""
    allow_unmasked = context.get("allow_unmasked")
    if isinstance(allow_unmasked, bool):
        allow_unmasked = "true" if allow_unmasked else "false"
    headers = {
        HEADER_API_KEY: context.get("api_key"),
        HEADER_ACTOR_ID: context.get("actor_id"),
        HEADER_ACTOR_TYPE: context.get("actor_type"),
        HEADER_PURPOSE: context.get("purpose"),
        HEADER_REQUEST_ID: context.get("request_id"),
        HEADER_ALLOW_UNMASKED: allow_unmasked,
    }
    return {k: str(v) for k, v in headers.items() if v is not None}
