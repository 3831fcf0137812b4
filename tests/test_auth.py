from __future__ import annotations

import pytest

from conftest import API_KEY, REQUEST_ID
from verification_mcp.auth import authenticate, context_headers
from verification_mcp.config import AuthConfig
from verification_mcp.errors import AuthError, ErrorCode
from verification_mcp.models import ActorType


def test_agent_without_unmask_header_is_masked(auth_headers, auth_config) -> None:
    ctx = authenticate(auth_headers, auth_config)
    assert ctx.actor_type is ActorType.AGENT
    assert ctx.actor_id == "voice-agent-1"
    assert ctx.request_id == REQUEST_ID
    assert ctx.allow_unmasked is False


def test_user_may_request_unmasked(auth_headers, auth_config) -> None:
    headers = {**auth_headers, "X-Actor-Type": "user", "X-Allow-Unmasked": "true"}
    assert authenticate(headers, auth_config).allow_unmasked is True


def test_agent_unmask_needs_deployment_opt_in(auth_headers, auth_config) -> None:
    headers = {**auth_headers, "X-Allow-Unmasked": "true"}
    assert authenticate(headers, auth_config).allow_unmasked is False

    permissive = AuthConfig(api_keys=frozenset({API_KEY}), allow_agent_unmasked=True)
    assert authenticate(headers, permissive).allow_unmasked is True


def test_unmask_header_must_be_exactly_true(auth_headers, auth_config) -> None:
    headers = {**auth_headers, "X-Actor-Type": "system", "X-Allow-Unmasked": "TRUE"}
    assert authenticate(headers, auth_config).allow_unmasked is False


def test_headers_are_case_insensitive(auth_headers, auth_config) -> None:
    lowered = {k.lower(): v for k, v in auth_headers.items()}
    assert authenticate(lowered, auth_config).actor_id == "voice-agent-1"


@pytest.mark.parametrize(
    "override, status, code, message",
    [
        ({"X-API-Key": "wrong"}, 401, ErrorCode.UNAUTHORIZED, "Invalid or missing API key"),
        ({"X-API-Key": None}, 401, ErrorCode.UNAUTHORIZED, "Invalid or missing API key"),
        ({"X-Actor-Id": "  "}, 400, ErrorCode.BAD_REQUEST, "Missing X-Actor-Id"),
        ({"X-Actor-Type": "robot"}, 400, ErrorCode.BAD_REQUEST, "X-Actor-Type must be agent, user, or system"),
        ({"X-Purpose": "marketing"}, 400, ErrorCode.BAD_REQUEST, 'X-Purpose must be "insurance_verification"'),
        ({"X-Request-Id": "not-a-uuid"}, 400, ErrorCode.BAD_REQUEST, "X-Request-Id must be a valid UUID"),
        ({"X-Request-Id": REQUEST_ID + "\n"}, 400, ErrorCode.BAD_REQUEST, "X-Request-Id must be a valid UUID"),
    ],
)
def test_gate_rejections(auth_headers, auth_config, override, status, code, message) -> None:
    headers = {**auth_headers, **override}
    headers = {k: v for k, v in headers.items() if v is not None}
    with pytest.raises(AuthError) as exc_info:
        authenticate(headers, auth_config)
    assert exc_info.value.status_code == status
    assert exc_info.value.code is code
    assert exc_info.value.to_dict() == {"error": {"code": code.value, "message": message}}


def test_api_key_checked_before_actor(auth_config) -> None:
    with pytest.raises(AuthError) as exc_info:
        authenticate({"X-Purpose": "insurance_verification"}, auth_config)
    assert exc_info.value.status_code == 401


def test_context_headers_from_stdio_arguments(auth_config) -> None:
    headers = context_headers(
        {
            "api_key": API_KEY,
            "actor_id": "scheduler",
            "actor_type": "system",
            "purpose": "insurance_verification",
            "request_id": REQUEST_ID,
            "allow_unmasked": True,
        }
    )
    assert headers["x-allow-unmasked"] == "true"
    ctx = authenticate(headers, auth_config)
    assert ctx.actor_type is ActorType.SYSTEM
    assert ctx.allow_unmasked is True
