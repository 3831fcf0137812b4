from __future__ import annotations

from typing import Any, Dict

from ..audit import AuditLogger
from ..data_access import DataAccess, order_policies
from ..masking import display_identifier
from ..models import RequestContext
from . import HandlerResult, ToolDefinition, ToolName, ToolRegistry, compact, not_found
from .blocks import (
    bcbs_block,
    card_refs_block,
    member_id_display,
    policy_summary,
    rx_block,
    subscriber_block,
)
from .schemas import GetInsurancePolicyDetailsInput, ListInsurancePoliciesInput


def insurance_tools(
    data_access: DataAccess,
    audit_logger: AuditLogger,
) -> Dict[ToolName, Dict[str, Any]]:
    """
    Factory to produce insurance-policy handlers bound to storage and the audit log.
    """

    async def list_insurance_policies(
        params: ListInsurancePoliciesInput,
        ctx: RequestContext,
    ) -> HandlerResult:
        patient_id = str(params.patient_id)
        patient = await data_access.get_patient_by_id(patient_id)
        if patient is None:
            return HandlerResult(output=not_found("Patient not found"), patient_id=patient_id)

        policies = order_policies(await data_access.get_insurance_policies_by_patient_id(patient_id))
        output = {"policies": [policy_summary(p, patient, ctx) for p in policies]}
        await audit_logger.record(
            ctx,
            ToolName.LIST_INSURANCE_POLICIES.value,
            output,
            patient_id=patient.id,
        )
        return HandlerResult(output=output, patient_id=patient.id)

    async def get_insurance_policy_details(
        params: GetInsurancePolicyDetailsInput,
        ctx: RequestContext,
    ) -> HandlerResult:
        policy_id = str(params.policy_id)
        policy = await data_access.get_insurance_policy_by_id(policy_id)
        if policy is None:
            return HandlerResult(output=not_found("Policy not found"), policy_id=policy_id)

        output = compact(
            {
                "policy_id": policy.id,
                "patient_id": policy.patient_id,
                "payer_name_raw": policy.payer_name_raw,
                "plan_name": policy.plan_name,
                "plan_type": policy.plan_type,
                "is_primary": policy.is_primary,
                "member_id_masked": member_id_display(policy, ctx),
                "group_number_masked": display_identifier(policy.group_number, ctx.allow_unmasked),
                "subscriber": subscriber_block(policy),
                "bcbs": bcbs_block(policy),
            }
        )
        if params.include_rx:
            output["rx"] = rx_block(policy)
        if params.include_card_refs:
            output["card_refs"] = card_refs_block(policy)

        await audit_logger.record(
            ctx,
            ToolName.GET_INSURANCE_POLICY_DETAILS.value,
            output,
            patient_id=policy.patient_id,
            policy_id=policy.id,
        )
        return HandlerResult(output=output, patient_id=policy.patient_id, policy_id=policy.id)

    list_input_schema: Dict[str, Any] = {
        "type": "object",
        "properties": {
            "patient_id": {"type": "string", "format": "uuid"},
        },
        "required": ["patient_id"],
    }

    list_output_schema: Dict[str, Any] = {
        "type": "object",
        "properties": {
            "policies": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "policy_id": {"type": "string"},
                        "payer_name_raw": {"type": "string"},
                        "is_primary": {"type": "boolean"},
                        "plan_type": {"type": "string"},
                        "member_id_masked": {"type": "string"},
                        "completeness": {
                            "type": "object",
                            "properties": {
                                "status": {"type": "string", "enum": ["READY", "NEEDS_INFO"]},
                                "missing_fields": {"type": "array", "items": {"type": "object"}},
                            },
                        },
                    },
                },
            },
        },
    }

    details_input_schema: Dict[str, Any] = {
        "type": "object",
        "properties": {
            "policy_id": {"type": "string", "format": "uuid"},
            "include_rx": {"type": "boolean", "default": False},
            "include_card_refs": {"type": "boolean", "default": False},
        },
        "required": ["policy_id"],
    }

    details_output_schema: Dict[str, Any] = {
        "type": "object",
        "properties": {
            "policy_id": {"type": "string"},
            "patient_id": {"type": "string"},
            "payer_name_raw": {"type": "string"},
            "plan_name": {"type": "string"},
            "plan_type": {"type": "string"},
            "is_primary": {"type": "boolean"},
            "member_id_masked": {"type": "string"},
            "group_number_masked": {"type": "string"},
            "subscriber": {"type": "object"},
            "bcbs": {"type": "object"},
            "rx": {"type": "object"},
            "card_refs": {"type": "object"},
        },
    }

    return {
        ToolName.LIST_INSURANCE_POLICIES: {
            "description": (
                "List insurance policies for a patient. Returns payer, primary flag, "
                "masked member ID, completeness."
            ),
            "input_model": ListInsurancePoliciesInput,
            "input_schema": list_input_schema,
            "output_schema": list_output_schema,
            "handler": list_insurance_policies,
        },
        ToolName.GET_INSURANCE_POLICY_DETAILS: {
            "description": (
                "Get full policy details: payer, member/group (masked by default), subscriber, "
                "BCBS routing, optional Rx and card refs."
            ),
            "input_model": GetInsurancePolicyDetailsInput,
            "input_schema": details_input_schema,
            "output_schema": details_output_schema,
            "handler": get_insurance_policy_details,
        },
    }


def register_tools(
    registry: ToolRegistry,
    data_access: DataAccess,
    audit_logger: AuditLogger,
) -> None:
    tool_defs = insurance_tools(data_access, audit_logger)
    for name, meta in tool_defs.items():
        registry.add_tool(ToolDefinition(name=name, **meta))
