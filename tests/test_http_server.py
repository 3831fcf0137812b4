"""HTTP surface: auth gate, call envelope, catalog, CORS and 404s."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from conftest import AETNA_POLICY_ID, JANE_ID, MISSING_ID, REQUEST_ID
from verification_mcp.http_server import create_http_app


@pytest.fixture
def client(settings, data_access, audit_sink) -> TestClient:
    return TestClient(create_http_app(settings, data_access=data_access, audit_sink=audit_sink))


def test_health_needs_no_auth(client) -> None:
    response = client.get("/mcp/health")
    assert response.status_code == 200
    assert response.json() == {"ok": True}


def test_tools_requires_api_key(client) -> None:
    response = client.get("/mcp/tools")
    assert response.status_code == 401
    assert response.json() == {
        "error": {"code": "UNAUTHORIZED", "message": "Invalid or missing API key"}
    }


def test_tools_rejects_wrong_purpose(client, auth_headers) -> None:
    response = client.get("/mcp/tools", headers={**auth_headers, "X-Purpose": "billing"})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "BAD_REQUEST"


def test_tools_catalog(client, auth_headers) -> None:
    response = client.get("/mcp/tools", headers=auth_headers)
    assert response.status_code == 200
    tools = response.json()["tools"]
    assert len(tools) == 6
    names = {t["name"] for t in tools}
    assert "get_verification_bundle" in names
    assert all({"name", "description", "input_schema", "output_schema"} == set(t) for t in tools)


def test_call_success(client, auth_headers, audit_sink) -> None:
    response = client.post(
        "/mcp/call",
        headers=auth_headers,
        json={"tool": "get_patient_identity", "input": {"patient_id": JANE_ID}},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["output"]["first_name"] == "Jane"
    assert "error" not in body
    assert body["meta"]["request_id"] == REQUEST_ID
    assert isinstance(body["meta"]["latency_ms"], int)
    assert len(audit_sink.entries) == 1
    assert audit_sink.entries[0].actor_id == "voice-agent-1"


def test_call_unmasked_for_user(client, auth_headers) -> None:
    headers = {**auth_headers, "X-Actor-Type": "user", "X-Allow-Unmasked": "true"}
    response = client.post(
        "/mcp/call",
        headers=headers,
        json={"tool": "get_insurance_policy_details", "input": {"policy_id": AETNA_POLICY_ID}},
    )
    assert response.status_code == 200
    assert response.json()["output"]["member_id_masked"] == "W123456789"


def test_call_not_found_is_400(client, auth_headers, audit_sink) -> None:
    response = client.post(
        "/mcp/call",
        headers=auth_headers,
        json={"tool": "get_patient_identity", "input": {"patient_id": MISSING_ID}},
    )
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == {"code": "NOT_FOUND", "message": "Patient not found"}
    assert body["output"]["error"] == body["error"]
    assert body["meta"]["request_id"] == REQUEST_ID
    assert audit_sink.entries == []


def test_call_validation_error(client, auth_headers) -> None:
    response = client.post(
        "/mcp/call",
        headers=auth_headers,
        json={"tool": "list_insurance_policies", "input": {"patient_id": 123}},
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"
    assert response.json()["output"] == {}


def test_call_unknown_tool(client, auth_headers) -> None:
    response = client.post("/mcp/call", headers=auth_headers, json={"tool": "drop_tables"})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "UNKNOWN_TOOL"


@pytest.mark.parametrize("payload", [{"input": {}}, {"tool": 5}, ["get_patient_identity"]])
def test_call_bad_body(client, auth_headers, payload) -> None:
    response = client.post("/mcp/call", headers=auth_headers, json=payload)
    assert response.status_code == 400
    assert response.json() == {
        "output": {},
        "error": {"code": "BAD_REQUEST", "message": 'Missing or invalid "tool" in body'},
    }


def test_call_invalid_json(client, auth_headers) -> None:
    response = client.post(
        "/mcp/call",
        headers={**auth_headers, "Content-Type": "application/json"},
        content=b"{not json",
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "BAD_REQUEST"


def test_call_auth_runs_before_body_checks(client) -> None:
    response = client.post("/mcp/call", json={"tool": "get_patient_identity"})
    assert response.status_code == 401


def test_unknown_route(client) -> None:
    response = client.get("/mcp/nope")
    assert response.status_code == 404
    assert response.json() == {"error": {"code": "NOT_FOUND", "message": "Not found"}}


def test_cors_preflight(client) -> None:
    response = client.options(
        "/mcp/call",
        headers={
            "Origin": "https://crm.example.com",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "X-API-Key, X-Purpose",
        },
    )
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"
    assert response.headers["access-control-max-age"] == "86400"


def test_request_log_line(client, auth_headers, caplog) -> None:
    caplog.set_level("INFO", logger="verification_mcp.http_server")
    client.get("/mcp/tools", headers=auth_headers)
    client.get("/mcp/tools")
    lines = [r.getMessage() for r in caplog.records if r.getMessage().startswith("[MCP]")]
    assert lines[0] == "[MCP] /mcp/tools GET origin=- actor=voice-agent-1 auth=ok status=200"
    assert lines[1] == "[MCP] /mcp/tools GET origin=- actor=- auth=rejected status=401"
