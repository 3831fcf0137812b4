"""
Composite verification tools.

`get_verification_bundle` returns the minimal patient + policy + readiness
view for one policy. `get_insurance_verification_context` resolves the
patient first (by policy, patient or demographics) and returns identity,
every policy summary and the bundle for the selected policy in one call.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from ..audit import AuditLogger
from ..data_access import DataAccess, order_policies
from ..errors import ErrorCode, error_body
from ..matcher import search_by_demographics
from ..models import InsurancePolicySnapshot, PatientSnapshot, RequestContext
from ..readiness import compute_readiness
from . import HandlerResult, ToolDefinition, ToolName, ToolRegistry, compact, not_found
from .blocks import (
    address_block,
    bcbs_block,
    identity_block,
    insurance_block,
    policy_summary,
    rx_block,
    subscriber_block,
)
from .schemas import GetInsuranceVerificationContextInput, GetVerificationBundleInput

NO_POLICY = "No insurance policy found for patient"


def build_bundle(
    patient: PatientSnapshot,
    policy: InsurancePolicySnapshot,
    ctx: RequestContext,
    include_address: bool,
    include_rx: bool,
    strict_minimum_necessary: bool = True,
    include_policy_id: bool = False,
) -> Dict[str, Any]:
    first, last = patient.name_parts()
    patient_block = compact(
        {
            "first_name": first,
            "last_name": last,
            "dob": patient.date_of_birth.isoformat() if patient.date_of_birth else None,
            "phone": patient.display_phone(),
            "email": None if strict_minimum_necessary else patient.email,
        }
    )
    if include_address:
        patient_block["address"] = address_block(patient, include_line2=not strict_minimum_necessary)

    bundle: Dict[str, Any] = {
        "patient": patient_block,
        "insurance": insurance_block(policy, ctx, include_policy_id=include_policy_id),
        "subscriber": subscriber_block(policy),
        "bcbs": bcbs_block(policy),
    }
    if include_rx:
        bundle["rx"] = rx_block(policy)
    bundle["readiness"] = compute_readiness(policy, patient).full()
    return bundle


def verification_tools(
    data_access: DataAccess,
    audit_logger: AuditLogger,
    search_limit: int,
) -> Dict[ToolName, Dict[str, Any]]:
    """
    Factory to produce the composite verification handlers.
    """

    async def get_verification_bundle(
        params: GetVerificationBundleInput,
        ctx: RequestContext,
    ) -> HandlerResult:
        patient_id = str(params.patient_id) if params.patient_id else None
        policy: Optional[InsurancePolicySnapshot]

        if params.policy_id:
            policy_id = str(params.policy_id)
            policy = await data_access.get_insurance_policy_by_id(policy_id)
            if policy is None:
                return HandlerResult(
                    output=not_found("Policy not found"),
                    patient_id=patient_id,
                    policy_id=policy_id,
                )
            if patient_id and policy.patient_id != patient_id:
                return HandlerResult(
                    output=not_found("Policy not found for patient"),
                    patient_id=patient_id,
                    policy_id=policy_id,
                )
            patient = await data_access.get_patient_by_id(policy.patient_id)
            if patient is None:
                return HandlerResult(
                    output=not_found("Patient not found"),
                    patient_id=policy.patient_id,
                    policy_id=policy_id,
                )
        else:
            patient = await data_access.get_patient_by_id(patient_id)
            if patient is None:
                return HandlerResult(output=not_found("Patient not found"), patient_id=patient_id)
            policy = await data_access.get_primary_policy_for_patient(patient.id)
            if policy is None:
                return HandlerResult(output=not_found(NO_POLICY), patient_id=patient.id)

        output = build_bundle(
            patient,
            policy,
            ctx,
            include_address=params.include_address,
            include_rx=params.include_rx,
            strict_minimum_necessary=params.strict_minimum_necessary,
        )
        await audit_logger.record(
            ctx,
            ToolName.GET_VERIFICATION_BUNDLE.value,
            output,
            patient_id=patient.id,
            policy_id=policy.id,
        )
        return HandlerResult(output=output, patient_id=patient.id, policy_id=policy.id)

    async def get_insurance_verification_context(
        params: GetInsuranceVerificationContextInput,
        ctx: RequestContext,
    ) -> HandlerResult:
        tool_name = ToolName.GET_INSURANCE_VERIFICATION_CONTEXT.value
        selected: Optional[InsurancePolicySnapshot] = None
        patient: Optional[PatientSnapshot]

        if params.policy_id:
            policy_id = str(params.policy_id)
            selected = await data_access.get_insurance_policy_by_id(policy_id)
            if selected is None:
                return HandlerResult(output=not_found("Policy not found"), policy_id=policy_id)
            patient = await data_access.get_patient_by_id(selected.patient_id)
            if patient is None:
                return HandlerResult(
                    output=not_found("Patient not found"),
                    patient_id=selected.patient_id,
                    policy_id=policy_id,
                )
            matched_by = "policy_id"
        elif params.patient_id:
            patient_id = str(params.patient_id)
            patient = await data_access.get_patient_by_id(patient_id)
            if patient is None:
                return HandlerResult(output=not_found("Patient not found"), patient_id=patient_id)
            matched_by = "patient_id"
        else:
            matches = await search_by_demographics(
                data_access,
                first_name=params.first_name or "",
                last_name=params.last_name or "",
                dob=params.dob or "",
                zip_code=params.zip,
                limit=search_limit,
            )
            if not matches:
                output = not_found("No patient matched provided demographics")
                output["matches"] = []
                return HandlerResult(output=output)
            if len(matches) > 1:
                output = {
                    "error": error_body(
                        ErrorCode.AMBIGUOUS_PATIENT,
                        "Multiple patients matched. Provide patient_id.",
                    ),
                    "matches": [m.to_output() for m in matches],
                }
                # Candidate displays are disclosed, so the attempt is audited.
                await audit_logger.record(ctx, tool_name, output)
                return HandlerResult(output=output)
            patient = await data_access.get_patient_by_id(matches[0].patient_id)
            if patient is None:
                return HandlerResult(
                    output=not_found("Patient not found after match resolution"),
                    patient_id=matches[0].patient_id,
                )
            matched_by = "demographics"

        policies = order_policies(await data_access.get_insurance_policies_by_patient_id(patient.id))
        if selected is None and policies:
            selected = next((p for p in policies if p.is_primary), policies[0])

        output: Dict[str, Any] = {
            "resolution": compact(
                {
                    "matched_by": matched_by,
                    "patient_id": patient.id,
                    "policy_id": selected.id if selected else None,
                }
            ),
            "patient_identity": identity_block(patient, include_address=params.include_address),
            "policies": [policy_summary(p, patient, ctx, with_details=True) for p in policies],
            "verification_bundle": (
                build_bundle(
                    patient,
                    selected,
                    ctx,
                    include_address=params.include_address,
                    include_rx=params.include_rx,
                    include_policy_id=True,
                )
                if selected
                else None
            ),
        }
        if selected is None:
            output["warning"] = NO_POLICY

        policy_id = selected.id if selected else None
        await audit_logger.record(ctx, tool_name, output, patient_id=patient.id, policy_id=policy_id)
        return HandlerResult(output=output, patient_id=patient.id, policy_id=policy_id)

    bundle_input_schema: Dict[str, Any] = {
        "type": "object",
        "properties": {
            "patient_id": {"type": "string", "format": "uuid"},
            "policy_id": {
                "type": "string",
                "format": "uuid",
                "description": "Optional; if omitted, primary policy is used",
            },
            "include_address": {"type": "boolean", "default": False},
            "include_rx": {"type": "boolean", "default": False},
            "strict_minimum_necessary": {
                "type": "boolean",
                "default": True,
                "description": "When false, adds patient email and address line 2",
            },
        },
        "anyOf": [{"required": ["patient_id"]}, {"required": ["policy_id"]}],
    }

    bundle_output_schema: Dict[str, Any] = {
        "type": "object",
        "properties": {
            "patient": {"type": "object"},
            "insurance": {"type": "object"},
            "subscriber": {"type": "object"},
            "bcbs": {"type": "object"},
            "rx": {"type": "object"},
            "readiness": {"type": "object"},
        },
    }

    context_input_schema: Dict[str, Any] = {
        "type": "object",
        "properties": {
            "patient_id": {"type": "string", "format": "uuid"},
            "policy_id": {"type": "string", "format": "uuid"},
            "first_name": {"type": "string"},
            "last_name": {"type": "string"},
            "dob": {"type": "string"},
            "zip": {"type": "string"},
            "include_address": {"type": "boolean", "default": False},
            "include_rx": {"type": "boolean", "default": False},
        },
        "anyOf": [
            {"required": ["policy_id"]},
            {"required": ["patient_id"]},
            {"required": ["first_name", "last_name", "dob"]},
        ],
    }

    context_output_schema: Dict[str, Any] = {
        "type": "object",
        "properties": {
            "resolution": {"type": "object"},
            "patient_identity": {"type": "object"},
            "policies": {"type": "array", "items": {"type": "object"}},
            "verification_bundle": {"type": ["object", "null"]},
            "warning": {"type": "string"},
        },
    }

    return {
        ToolName.GET_VERIFICATION_BUNDLE: {
            "description": (
                "Get the complete minimal verification bundle for a patient and policy "
                "(or primary policy). Use for eligibility/verification workflows."
            ),
            "input_model": GetVerificationBundleInput,
            "input_schema": bundle_input_schema,
            "output_schema": bundle_output_schema,
            "handler": get_verification_bundle,
        },
        ToolName.GET_INSURANCE_VERIFICATION_CONTEXT: {
            "description": (
                "Resolve a patient by policy_id, patient_id or demographics and return identity, "
                "all policies with completeness, and the verification bundle for the selected "
                "(or primary) policy in one call."
            ),
            "input_model": GetInsuranceVerificationContextInput,
            "input_schema": context_input_schema,
            "output_schema": context_output_schema,
            "handler": get_insurance_verification_context,
        },
    }


def register_tools(
    registry: ToolRegistry,
    data_access: DataAccess,
    audit_logger: AuditLogger,
    search_limit: int = 20,
) -> None:
    tool_defs = verification_tools(data_access, audit_logger, search_limit)
    for name, meta in tool_defs.items():
        registry.add_tool(ToolDefinition(name=name, **meta))
