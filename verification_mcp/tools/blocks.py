"""
Output blocks shared by the tool handlers.

Every block is minimum-necessary: keys without a value are omitted, and
member/group identifiers are masked unless the request context allows
otherwise.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from ..masking import display_identifier, mask_last4
from ..models import InsurancePolicySnapshot, PatientSnapshot, RequestContext
from ..readiness import compute_readiness
from . import compact


def _iso(value: Any) -> Optional[str]:
    return value.isoformat() if value is not None else None


def address_block(patient: PatientSnapshot, include_line2: bool = True) -> Dict[str, Any]:
    return compact(
        {
            "line1": patient.address_line1,
            "line2": patient.address_line2 if include_line2 else None,
            "city": patient.city,
            "state": patient.state,
            "zip": patient.postal_code,
        }
    )


def identity_block(patient: PatientSnapshot, include_address: bool) -> Dict[str, Any]:
    first, last = patient.name_parts()
    identity = compact(
        {
            "patient_id": patient.id,
            "first_name": first,
            "last_name": last,
            "date_of_birth": _iso(patient.date_of_birth),
            "phone": patient.display_phone(),
            "email": patient.email,
        }
    )
    if include_address:
        identity["address"] = address_block(patient)
    return identity


def member_id_display(policy: InsurancePolicySnapshot, ctx: RequestContext) -> Optional[str]:
    if ctx.allow_unmasked:
        return policy.member_id or None
    return mask_last4(policy.member_id)


def insurance_block(
    policy: InsurancePolicySnapshot,
    ctx: RequestContext,
    include_policy_id: bool = False,
) -> Dict[str, Any]:
    return compact(
        {
            "policy_id": policy.id if include_policy_id else None,
            "payer_name_raw": policy.payer_name_raw,
            "member_id_masked": member_id_display(policy, ctx),
            "group_number_masked": display_identifier(policy.group_number, ctx.allow_unmasked),
            "plan_name": policy.plan_name,
            "plan_type": policy.plan_type,
            "is_primary": policy.is_primary,
        }
    )


def subscriber_block(policy: InsurancePolicySnapshot) -> Dict[str, Any]:
    return compact(
        {
            "subscriber_is_patient": policy.subscriber_is_patient,
            "first_name": policy.subscriber_first_name,
            "last_name": policy.subscriber_last_name,
            "dob": _iso(policy.subscriber_dob),
            "relationship_to_patient": policy.relationship_to_patient,
        }
    )


def bcbs_block(policy: InsurancePolicySnapshot) -> Dict[str, Any]:
    return compact(
        {
            "alpha_prefix": policy.bcbs_alpha_prefix,
            "state_plan": policy.bcbs_state_plan,
        }
    )


def rx_block(policy: InsurancePolicySnapshot) -> Dict[str, Any]:
    return compact(
        {
            "rx_bin": policy.rx_bin,
            "rx_pcn": policy.rx_pcn,
            "rx_group": policy.rx_group,
        }
    )


def card_refs_block(policy: InsurancePolicySnapshot) -> Dict[str, Any]:
    return compact(
        {
            "front_ref": policy.card_front_ref,
            "back_ref": policy.card_back_ref,
        }
    )


def policy_summary(
    policy: InsurancePolicySnapshot,
    patient: PatientSnapshot,
    ctx: RequestContext,
    with_details: bool = False,
) -> Dict[str, Any]:
    """
    One row of a policy listing.

    The plain listing always masks the member id and reports status plus
    blocking fields. `with_details` (verification context) adds the plan
    name, honours `ctx.allow_unmasked` and includes readiness warnings.
    """
    readiness = compute_readiness(policy, patient)
    if with_details:
        member_id = member_id_display(policy, ctx)
        completeness = readiness.full()
    else:
        member_id = mask_last4(policy.member_id)
        completeness = readiness.summary()
    return compact(
        {
            "policy_id": policy.id,
            "payer_name_raw": policy.payer_name_raw,
            "is_primary": policy.is_primary,
            "plan_name": policy.plan_name if with_details else None,
            "plan_type": policy.plan_type,
            "member_id_masked": member_id,
            "completeness": completeness,
        }
    )
