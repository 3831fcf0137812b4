"""
Input models for every tool.

The dispatcher validates raw tool input against these models; handlers
receive the validated, coerced instance.
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, model_validator


class ToolInput(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")


class GetPatientIdentityInput(ToolInput):
    patient_id: UUID
    include_address: StrictBool = False


class ListInsurancePoliciesInput(ToolInput):
    patient_id: UUID


class GetInsurancePolicyDetailsInput(ToolInput):
    policy_id: UUID
    include_rx: StrictBool = False
    include_card_refs: StrictBool = False


class GetVerificationBundleInput(ToolInput):
    patient_id: Optional[UUID] = None
    policy_id: Optional[UUID] = None
    include_address: StrictBool = False
    include_rx: StrictBool = False
    strict_minimum_necessary: StrictBool = True

    @model_validator(mode="after")
    def require_patient_or_policy(self) -> "GetVerificationBundleInput":
        if self.patient_id is None and self.policy_id is None:
            raise ValueError("patient_id or policy_id is required")
        return self


class SearchPatientByDemographicsInput(ToolInput):
    first_name: StrictStr = Field(min_length=1)
    last_name: StrictStr = Field(min_length=1)
    dob: StrictStr = Field(min_length=1)
    zip: Optional[StrictStr] = None


class GetInsuranceVerificationContextInput(ToolInput):
    patient_id: Optional[UUID] = None
    policy_id: Optional[UUID] = None
    first_name: Optional[StrictStr] = None
    last_name: Optional[StrictStr] = None
    dob: Optional[StrictStr] = None
    zip: Optional[StrictStr] = None
    include_address: StrictBool = False
    include_rx: StrictBool = False

    @model_validator(mode="after")
    def require_lookup_key(self) -> "GetInsuranceVerificationContextInput":
        if self.policy_id or self.patient_id:
            return self
        if self.first_name and self.last_name and self.dob:
            return self
        raise ValueError(
            "Provide policy_id, patient_id, or first_name + last_name + dob"
        )
