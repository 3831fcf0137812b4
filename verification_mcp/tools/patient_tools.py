from __future__ import annotations

from typing import Any, Dict

from ..audit import AuditLogger
from ..data_access import DataAccess
from ..matcher import search_by_demographics
from ..models import RequestContext
from . import HandlerResult, ToolDefinition, ToolName, ToolRegistry, not_found
from .blocks import identity_block
from .schemas import GetPatientIdentityInput, SearchPatientByDemographicsInput

ADDRESS_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "line1": {"type": "string"},
        "line2": {"type": "string"},
        "city": {"type": "string"},
        "state": {"type": "string"},
        "zip": {"type": "string"},
    },
}


def patient_tools(
    data_access: DataAccess,
    audit_logger: AuditLogger,
    search_limit: int,
) -> Dict[ToolName, Dict[str, Any]]:
    """
    Factory to produce patient handlers bound to storage and the audit log.
    """

    async def get_patient_identity(
        params: GetPatientIdentityInput,
        ctx: RequestContext,
    ) -> HandlerResult:
        patient_id = str(params.patient_id)
        patient = await data_access.get_patient_by_id(patient_id)
        if patient is None:
            return HandlerResult(output=not_found("Patient not found"), patient_id=patient_id)

        output = identity_block(patient, include_address=params.include_address)
        await audit_logger.record(
            ctx,
            ToolName.GET_PATIENT_IDENTITY.value,
            output,
            patient_id=patient.id,
        )
        return HandlerResult(output=output, patient_id=patient.id)

    async def search_patient_by_demographics(
        params: SearchPatientByDemographicsInput,
        ctx: RequestContext,
    ) -> HandlerResult:
        matches = await search_by_demographics(
            data_access,
            first_name=params.first_name,
            last_name=params.last_name,
            dob=params.dob,
            zip_code=params.zip,
            limit=search_limit,
        )
        output = {"matches": [m.to_output() for m in matches]}
        await audit_logger.record(ctx, ToolName.SEARCH_PATIENT_BY_DEMOGRAPHICS.value, output)
        return HandlerResult(output=output)

    identity_input_schema: Dict[str, Any] = {
        "type": "object",
        "properties": {
            "patient_id": {"type": "string", "format": "uuid", "description": "Patient UUID"},
            "include_address": {
                "type": "boolean",
                "default": False,
                "description": "Include address fields",
            },
        },
        "required": ["patient_id"],
    }

    identity_output_schema: Dict[str, Any] = {
        "type": "object",
        "properties": {
            "patient_id": {"type": "string"},
            "first_name": {"type": "string"},
            "last_name": {"type": "string"},
            "date_of_birth": {"type": "string"},
            "phone": {"type": "string"},
            "email": {"type": "string"},
            "address": ADDRESS_SCHEMA,
        },
    }

    search_input_schema: Dict[str, Any] = {
        "type": "object",
        "properties": {
            "first_name": {"type": "string"},
            "last_name": {"type": "string"},
            "dob": {"type": "string", "description": "YYYY-MM-DD or MM/DD/YYYY"},
            "zip": {"type": "string"},
        },
        "required": ["first_name", "last_name", "dob"],
    }

    search_output_schema: Dict[str, Any] = {
        "type": "object",
        "properties": {
            "matches": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "patient_id": {"type": "string"},
                        "confidence": {"type": "string", "enum": ["medium", "high"]},
                        "display": {"type": "object"},
                    },
                },
            },
        },
    }

    return {
        ToolName.GET_PATIENT_IDENTITY: {
            "description": "Get patient identity and optionally address. Minimum necessary for verification.",
            "input_model": GetPatientIdentityInput,
            "input_schema": identity_input_schema,
            "output_schema": identity_output_schema,
            "handler": get_patient_identity,
        },
        ToolName.SEARCH_PATIENT_BY_DEMOGRAPHICS: {
            "description": (
                "Search for patients by first name, last name, date of birth, and optional ZIP. "
                "Returns matches with masked display."
            ),
            "input_model": SearchPatientByDemographicsInput,
            "input_schema": search_input_schema,
            "output_schema": search_output_schema,
            "handler": search_patient_by_demographics,
        },
    }


def register_tools(
    registry: ToolRegistry,
    data_access: DataAccess,
    audit_logger: AuditLogger,
    search_limit: int = 20,
) -> None:
    tool_defs = patient_tools(data_access, audit_logger, search_limit)
    for name, meta in tool_defs.items():
        registry.add_tool(ToolDefinition(name=name, **meta))
