"""
Audit every tool call: who, purpose, patient/policy touched, tool name and
the paths (never the values) of the fields returned.
"""

from __future__ import annotations

import functools
import logging
from datetime import datetime, timezone
from typing import Any, List, Optional, Protocol

import anyio
from pydantic import BaseModel, Field

from .firebase_client import write_doc
from .models import ActorType, RequestContext

logger = logging.getLogger(__name__)

AUDIT_COLLECTION = "mcp_access_audit_logs"


class AuditLogEntry(BaseModel):
    request_id: str
    actor_id: str
    actor_type: ActorType
    purpose: str
    patient_id: Optional[str] = None
    policy_id: Optional[str] = None
    tool_name: str
    fields_returned: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class AuditSink(Protocol):
    async def write(self, entry: AuditLogEntry) -> None:
        ...


class FirestoreAuditSink:
    """Appends audit entries to the `mcp_access_audit_logs` collection."""

    def __init__(self, collection: str = AUDIT_COLLECTION) -> None:
        self._collection = collection

    async def write(self, entry: AuditLogEntry) -> None:
        await anyio.to_thread.run_sync(
            functools.partial(
                write_doc,
                collection=self._collection,
                doc_id=None,
                data=entry.model_dump(mode="json"),
            )
        )


def collect_field_paths(obj: Any, prefix: str = "") -> List[str]:
    """
    Collect leaf paths of a tool output, e.g. "patient.first_name" or
    "policies[0].member_id_masked". None branches are skipped.
    """
    paths: List[str] = []
    if obj is None:
        return paths
    if isinstance(obj, (list, tuple)):
        for i, item in enumerate(obj):
            paths.extend(collect_field_paths(item, f"{prefix}[{i}]"))
        return paths
    if isinstance(obj, dict):
        for key, value in obj.items():
            if value is None:
                continue
            path = f"{prefix}.{key}" if prefix else str(key)
            if isinstance(value, (dict, list, tuple)):
                paths.extend(collect_field_paths(value, path))
            else:
                paths.append(path)
        return paths
    if prefix:
        paths.append(prefix)
    return paths


class AuditLogger:
    """
    Best-effort audit writer used by every tool handler.

    The write is awaited, but a failing sink is only logged: a request never
    fails because its audit record could not be stored.
    """

    def __init__(self, sink: AuditSink) -> None:
        self._sink = sink

    async def record(
        self,
        ctx: RequestContext,
        tool_name: str,
        output: Any,
        patient_id: Optional[str] = None,
        policy_id: Optional[str] = None,
    ) -> None:
        try:
            entry = AuditLogEntry(
                request_id=ctx.request_id,
                actor_id=ctx.actor_id,
                actor_type=ctx.actor_type,
                purpose=ctx.purpose,
                patient_id=patient_id,
                policy_id=policy_id,
                tool_name=tool_name,
                fields_returned=collect_field_paths(output),
            )
            await self._sink.write(entry)
        except Exception:
            logger.exception(
                "Failed to write audit log for tool %s (request %s)",
                tool_name,
                ctx.request_id,
            )
