"""
Deterministic readiness for insurance verification.

No clearinghouse calls and no I/O: the verdict is a pure function of the
policy and patient snapshots. A policy is READY when nothing blocking is
missing; warnings are advisory and never change the status.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .models import InsurancePolicySnapshot, NameParts, PatientSnapshot

ZIP_REGEX = re.compile(r"^\d{5}(-\d{4})?$")
BCBS_MARKERS = ("BCBS", "BLUE CROSS")

REQUIRED = "Required for verification"
REQUIRED_FOR_SUBSCRIBER = "Required when subscriber is not patient"
RECOMMENDED = "Recommended for verification"


class ReadinessStatus(str, Enum):
    READY = "READY"
    NEEDS_INFO = "NEEDS_INFO"


class FieldIssue(BaseModel):
    field: str
    reason: str


class ReadinessResult(BaseModel):
    status: ReadinessStatus
    missing_fields: List[FieldIssue] = Field(default_factory=list)
    warnings: List[FieldIssue] = Field(default_factory=list)

    def summary(self) -> Dict[str, Any]:
        """Status and blocking fields only, as shown in policy listings."""
        return {
            "status": self.status.value,
            "missing_fields": [i.model_dump() for i in self.missing_fields],
        }

    def full(self) -> Dict[str, Any]:
        return {
            **self.summary(),
            "warnings": [i.model_dump() for i in self.warnings],
        }


def is_bcbs_payer(payer_name: Optional[str]) -> bool:
    name = (payer_name or "").upper()
    return any(marker in name for marker in BCBS_MARKERS)


def derive_bcbs_alpha_prefix(member_id: Optional[str]) -> Optional[str]:
    """First 3 characters of the member id, only if all alphabetic."""
    if not member_id or len(member_id) < 3:
        return None
    prefix = member_id[:3]
    if prefix.isascii() and prefix.isalpha():
        return prefix
    return None


def _resolved_name(patient: PatientSnapshot) -> Optional[NameParts]:
    # Each part falls back to the other so a lone name still identifies the patient.
    first, last = patient.name_parts()
    if not first and not last:
        return None
    return NameParts(first or last, last or first)


def _blank(value: Optional[str]) -> bool:
    return not (value or "").strip()


def compute_readiness(
    policy: InsurancePolicySnapshot,
    patient: PatientSnapshot,
) -> ReadinessResult:
    missing: List[FieldIssue] = []
    warnings: List[FieldIssue] = []

    if _blank(policy.payer_name_raw):
        missing.append(FieldIssue(field="payer_name_raw", reason=REQUIRED))
    if _blank(policy.member_id):
        missing.append(FieldIssue(field="member_id", reason=REQUIRED))
    if _blank(policy.insurer_phone_raw):
        warnings.append(
            FieldIssue(
                field="insurance.insurer_phone",
                reason="Required before starting outbound insurer call",
            )
        )

    name = _resolved_name(patient)
    if name is None:
        missing.append(FieldIssue(field="patient.first_name", reason=REQUIRED))
        missing.append(FieldIssue(field="patient.last_name", reason=REQUIRED))
    if patient.date_of_birth is None:
        missing.append(FieldIssue(field="patient.date_of_birth", reason=REQUIRED))

    if not policy.subscriber_is_patient:
        if _blank(policy.subscriber_first_name):
            missing.append(FieldIssue(field="subscriber.first_name", reason=REQUIRED_FOR_SUBSCRIBER))
        if _blank(policy.subscriber_last_name):
            missing.append(FieldIssue(field="subscriber.last_name", reason=REQUIRED_FOR_SUBSCRIBER))
        if policy.subscriber_dob is None:
            missing.append(FieldIssue(field="subscriber.dob", reason=REQUIRED_FOR_SUBSCRIBER))
        if _blank(policy.relationship_to_patient):
            missing.append(FieldIssue(field="relationship_to_patient", reason=REQUIRED_FOR_SUBSCRIBER))

    if is_bcbs_payer(policy.payer_name_raw):
        if _blank(policy.bcbs_alpha_prefix) and not derive_bcbs_alpha_prefix(policy.member_id):
            missing.append(
                FieldIssue(
                    field="bcbs_alpha_prefix",
                    reason="Could not derive from Member ID; required for BCBS",
                )
            )

    postal = (patient.postal_code or "").strip()
    if not postal:
        warnings.append(FieldIssue(field="patient.postal_code", reason=RECOMMENDED))
    elif not ZIP_REGEX.fullmatch(postal):
        warnings.append(FieldIssue(field="patient.postal_code", reason="Should be 5-digit or ZIP+4"))
    if _blank(patient.address_line1):
        warnings.append(FieldIssue(field="patient.address_line1", reason=RECOMMENDED))
    if _blank(patient.city):
        warnings.append(FieldIssue(field="patient.city", reason=RECOMMENDED))
    if _blank(patient.state):
        warnings.append(FieldIssue(field="patient.state", reason=RECOMMENDED))

    status = ReadinessStatus.READY if not missing else ReadinessStatus.NEEDS_INFO
    return ReadinessResult(status=status, missing_fields=missing, warnings=warnings)
