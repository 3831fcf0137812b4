"""Registry and dispatcher: closed tool set, validation, error boundary."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from conftest import JANE_ID, MISSING_ID
from verification_mcp.audit import AuditLogger
from verification_mcp.main import build_registry
from verification_mcp.tools import (
    ToolDefinition,
    ToolName,
    ToolRegistry,
    call_tool_body,
    invoke_tool,
)
from verification_mcp.tools.schemas import GetPatientIdentityInput


def test_registry_holds_every_tool(registry) -> None:
    names = [entry["name"] for entry in registry.catalog()]
    assert sorted(names) == sorted(t.value for t in ToolName)
    for entry in registry.catalog():
        assert set(entry) == {"name", "description", "input_schema", "output_schema"}


def test_mcp_tools_advertise_context(registry) -> None:
    tools = registry.list_tools()
    assert len(tools) == len(ToolName)
    assert all("context" in t.inputSchema["properties"] for t in tools)
    # The REST catalog stays as declared.
    assert all("context" not in e["input_schema"]["properties"] for e in registry.catalog())


def test_duplicate_registration_rejected(data_access, audit_sink) -> None:
    registry = build_registry(data_access, AuditLogger(audit_sink))
    existing = registry.get("get_patient_identity")
    with pytest.raises(ValueError):
        registry.add_tool(existing)


def test_unknown_name_rejected() -> None:
    registry = ToolRegistry()
    with pytest.raises(ValueError):
        registry.add_tool(
            ToolDefinition(
                name="delete_patient",
                description="",
                input_model=GetPatientIdentityInput,
                handler=AsyncMock(),
                input_schema={},
            )
        )


@pytest.mark.asyncio
async def test_unknown_tool(registry, ctx) -> None:
    result = await invoke_tool(registry, "delete_patient", {}, ctx)
    assert result.output == {}
    assert result.error == {"code": "UNKNOWN_TOOL", "message": "Unknown tool: delete_patient"}


@pytest.mark.asyncio
async def test_wrong_type_is_validation_error(registry, ctx, audit_sink) -> None:
    result = await invoke_tool(registry, "list_insurance_policies", {"patient_id": 123}, ctx)
    assert result.error["code"] == "VALIDATION_ERROR"
    assert result.error["message"].startswith("patient_id: ")
    assert audit_sink.entries == []


@pytest.mark.asyncio
async def test_missing_required_field(registry, ctx) -> None:
    result = await invoke_tool(registry, "get_patient_identity", None, ctx)
    assert result.error["code"] == "VALIDATION_ERROR"
    assert "patient_id" in result.error["message"]


@pytest.mark.asyncio
async def test_non_bool_flag_rejected(registry, ctx) -> None:
    result = await invoke_tool(
        registry,
        "get_patient_identity",
        {"patient_id": MISSING_ID, "include_address": "yes"},
        ctx,
    )
    assert result.error["code"] == "VALIDATION_ERROR"
    assert result.error["message"].startswith("include_address: ")


@pytest.mark.asyncio
async def test_bundle_needs_patient_or_policy(registry, ctx) -> None:
    result = await invoke_tool(registry, "get_verification_bundle", {"include_rx": True}, ctx)
    assert result.error["code"] == "VALIDATION_ERROR"
    assert "patient_id or policy_id is required" in result.error["message"]


@pytest.mark.asyncio
async def test_not_found_is_output_not_exception(registry, ctx, audit_sink) -> None:
    result = await invoke_tool(registry, "get_patient_identity", {"patient_id": MISSING_ID}, ctx)
    assert result.error is None
    assert result.output == {"error": {"code": "NOT_FOUND", "message": "Patient not found"}}
    assert audit_sink.entries == []


@pytest.mark.asyncio
async def test_handler_exception_becomes_execution_error(ctx, audit_sink, caplog) -> None:
    broken = AsyncMock()
    broken.get_patient_by_id.side_effect = RuntimeError("firestore down")
    registry = build_registry(broken, AuditLogger(audit_sink))

    result = await invoke_tool(registry, "get_patient_identity", {"patient_id": MISSING_ID}, ctx)
    assert result.output == {}
    assert result.error == {"code": "EXECUTION_ERROR", "message": "firestore down"}
    assert "Error executing tool get_patient_identity" in caplog.text
    assert audit_sink.entries == []


@pytest.mark.asyncio
async def test_call_body_promotes_handler_error(registry, ctx) -> None:
    ok, body = await call_tool_body(registry, "get_patient_identity", {"patient_id": MISSING_ID}, ctx)
    assert not ok
    assert body["error"] == body["output"]["error"]
    assert body["meta"]["request_id"] == ctx.request_id
    assert body["meta"]["latency_ms"] >= 0


@pytest.mark.asyncio
async def test_call_body_success_has_no_error(registry, ctx) -> None:
    ok, body = await call_tool_body(registry, "get_patient_identity", {"patient_id": JANE_ID}, ctx)
    assert ok
    assert "error" not in body
    assert body["output"]["patient_id"] == JANE_ID
