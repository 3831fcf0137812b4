from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, field_validator


def _to_utc_date(value: Any) -> Any:
    # Firestore hands back timestamps; DOBs are calendar dates.
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, str) and "T" in value:
        return _to_utc_date(datetime.fromisoformat(value.replace("Z", "+00:00")))
    return value


class NameParts(NamedTuple):
    first_name: str
    last_name: str


class PatientSnapshot(BaseModel):
    """Read-only view of a patient record owned by the CRM."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    practice_id: Optional[str] = None
    name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    date_of_birth: Optional[date] = None
    primary_phone: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None

    @field_validator("date_of_birth", mode="before")
    @classmethod
    def normalize_dob(cls, value: Any) -> Any:
        return _to_utc_date(value)

    def name_parts(self) -> NameParts:
        """
        Resolve display first/last name.

        Explicit first/last fields win. Otherwise the combined `name` is split
        on whitespace: first token is the first name, the rest is the last
        name, and a single token is used for both. Unresolvable parts are "".
        """
        first = (self.first_name or "").strip()
        last = (self.last_name or "").strip()
        tokens = (self.name or "").split()
        from_name_first = tokens[0] if tokens else ""
        from_name_last = " ".join(tokens[1:]) if len(tokens) > 1 else from_name_first
        return NameParts(first or from_name_first, last or from_name_last)

    def display_phone(self) -> Optional[str]:
        return self.primary_phone or self.phone or None


class InsurancePolicySnapshot(BaseModel):
    """Read-only view of an insurance policy record owned by the CRM."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    patient_id: str
    payer_name_raw: str = ""
    insurer_phone_raw: Optional[str] = None
    member_id: str = ""
    group_number: Optional[str] = None
    plan_name: Optional[str] = None
    plan_type: Optional[str] = None
    is_primary: bool = False

    subscriber_is_patient: bool = True
    subscriber_first_name: Optional[str] = None
    subscriber_last_name: Optional[str] = None
    subscriber_dob: Optional[date] = None
    relationship_to_patient: Optional[str] = None

    bcbs_alpha_prefix: Optional[str] = None
    bcbs_state_plan: Optional[str] = None

    rx_bin: Optional[str] = None
    rx_pcn: Optional[str] = None
    rx_group: Optional[str] = None

    card_front_ref: Optional[str] = None
    card_back_ref: Optional[str] = None

    created_at: Optional[datetime] = None

    @field_validator("subscriber_dob", mode="before")
    @classmethod
    def normalize_subscriber_dob(cls, value: Any) -> Any:
        return _to_utc_date(value)
