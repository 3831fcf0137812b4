"""
Tool registration and dispatch.

Each module in this package exposes a `register_tools(registry, ...)` function
that adds its tools to the central registry. The set of tool names is closed
(`ToolName`); the registry refuses anything outside it.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type

from mcp import types
from pydantic import BaseModel, ValidationError

from ..errors import ErrorCode, error_body
from ..models import RequestContext

logger = logging.getLogger(__name__)


CONTEXT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "description": "Caller credentials and purpose of use (stdio transport only)",
    "properties": {
        "api_key": {"type": "string"},
        "actor_id": {"type": "string"},
        "actor_type": {"type": "string", "enum": ["agent", "user", "system"]},
        "purpose": {"type": "string"},
        "request_id": {"type": "string", "format": "uuid"},
        "allow_unmasked": {"type": "boolean", "default": False},
    },
    "required": ["api_key", "actor_id", "actor_type", "purpose", "request_id"],
}


class ToolName(str, Enum):
    GET_PATIENT_IDENTITY = "get_patient_identity"
    LIST_INSURANCE_POLICIES = "list_insurance_policies"
    GET_INSURANCE_POLICY_DETAILS = "get_insurance_policy_details"
    GET_VERIFICATION_BUNDLE = "get_verification_bundle"
    SEARCH_PATIENT_BY_DEMOGRAPHICS = "search_patient_by_demographics"
    GET_INSURANCE_VERIFICATION_CONTEXT = "get_insurance_verification_context"


@dataclass
class HandlerResult:
    output: Dict[str, Any]
    patient_id: Optional[str] = None
    policy_id: Optional[str] = None


ToolHandler = Callable[[Any, RequestContext], Awaitable[HandlerResult]]


@dataclass(frozen=True)
class ToolDefinition:
    name: ToolName
    description: str
    input_model: Type[BaseModel]
    handler: ToolHandler
    input_schema: Dict[str, Any]
    output_schema: Dict[str, Any] = field(default_factory=lambda: {"type": "object"})

    def catalog_entry(self) -> Dict[str, Any]:
        return {
            "name": self.name.value,
            "description": self.description,
            "input_schema": self.input_schema,
            "output_schema": self.output_schema,
        }

    def to_mcp_tool(self) -> types.Tool:
        # stdio callers carry their credentials inside the arguments.
        schema = dict(self.input_schema)
        schema["properties"] = {**schema.get("properties", {}), "context": CONTEXT_SCHEMA}
        return types.Tool(
            name=self.name.value,
            description=self.description,
            inputSchema=schema,
        )


@dataclass
class ToolCallResult:
    output: Dict[str, Any]
    error: Optional[Dict[str, str]] = None

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"output": self.output}
        if self.error is not None:
            body["error"] = self.error
        return body


class ToolRegistry:
    """
    In-memory registry mapping tool names to their definitions.
    """

    def __init__(self) -> None:
        self._tools: Dict[ToolName, ToolDefinition] = {}

    def add_tool(self, tool: ToolDefinition) -> None:
        if not isinstance(tool.name, ToolName):
            raise ValueError(f"Tool '{tool.name}' is not a supported tool name")
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name.value}' already registered")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Optional[ToolDefinition]:
        try:
            return self._tools.get(ToolName(name))
        except ValueError:
            return None

    def list_definitions(self) -> List[ToolDefinition]:
        return list(self._tools.values())

    def catalog(self) -> List[Dict[str, Any]]:
        return [t.catalog_entry() for t in self._tools.values()]

    def list_tools(self) -> List[types.Tool]:
        return [t.to_mcp_tool() for t in self._tools.values()]


def format_validation_error(exc: ValidationError) -> str:
    """One `field: message` per invalid field (first error wins), joined by '; '."""
    messages: Dict[str, str] = {}
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ())) or "input"
        messages.setdefault(loc, err.get("msg", "Invalid value"))
    return "; ".join(f"{loc}: {msg}" for loc, msg in messages.items())


async def invoke_tool(
    registry: ToolRegistry,
    tool_name: str,
    raw_input: Any,
    ctx: RequestContext,
) -> ToolCallResult:
    """
    Validate and run one tool call.

    Never raises and never audits: handlers audit their own output, so a
    failure here cannot leave a half-written audit trail.
    """
    tool = registry.get(tool_name)
    if tool is None:
        return ToolCallResult(
            output={},
            error=error_body(ErrorCode.UNKNOWN_TOOL, f"Unknown tool: {tool_name}"),
        )

    try:
        params = tool.input_model.model_validate(raw_input if raw_input is not None else {})
    except ValidationError as e:
        return ToolCallResult(
            output={},
            error=error_body(ErrorCode.VALIDATION_ERROR, format_validation_error(e)),
        )

    try:
        result = await tool.handler(params, ctx)
    except Exception as e:
        logger.exception("Error executing tool %s (request %s)", tool_name, ctx.request_id)
        return ToolCallResult(
            output={},
            error=error_body(ErrorCode.EXECUTION_ERROR, str(e) or "Internal error"),
        )

    return ToolCallResult(output=result.output)


async def call_tool_body(
    registry: ToolRegistry,
    tool_name: str,
    raw_input: Any,
    ctx: RequestContext,
) -> Tuple[bool, Dict[str, Any]]:
    """
    Run a tool and render the transport reply `{output, error?, meta}`.

    Returns `(ok, body)`. A handler-level error inside `output` (e.g.
    NOT_FOUND) is promoted to the top-level `error` and is not ok.
    """
    start = time.perf_counter()
    result = await invoke_tool(registry, tool_name, raw_input, ctx)
    latency_ms = int(round((time.perf_counter() - start) * 1000))

    if result.error is None and isinstance(result.output.get("error"), dict):
        result.error = result.output["error"]

    body = result.to_dict()
    body["meta"] = {"request_id": ctx.request_id, "latency_ms": latency_ms}
    return result.error is None, body


def compact(data: Dict[str, Any]) -> Dict[str, Any]:
    """Drop keys whose value is None or an empty string."""
    return {k: v for k, v in data.items() if v is not None and v != ""}


def not_found(message: str) -> Dict[str, Any]:
    return {"error": error_body(ErrorCode.NOT_FOUND, message)}
