"""Shared fixtures: an in-memory record store and a recording audit sink.

No Firestore is touched by the suite; `FakeDataAccess` applies the same
name rule and policy ordering the Firestore implementation uses.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Dict, List, Optional

import pytest

from verification_mcp.audit import AuditLogEntry, AuditLogger
from verification_mcp.config import AuthConfig, Settings
from verification_mcp.data_access import name_matches, order_policies
from verification_mcp.main import build_registry
from verification_mcp.models import (
    ActorType,
    InsurancePolicySnapshot,
    PatientSnapshot,
    RequestContext,
)

API_KEY = "test-key"
REQUEST_ID = "0b6c5a1e-3f2d-4c8b-9a7e-1d2c3b4a5f60"

JANE_ID = "6f1c2d3e-4a5b-4c6d-8e7f-9a0b1c2d3e4f"
SMITH_A_ID = "1a2b3c4d-5e6f-4a7b-8c9d-0e1f2a3b4c5d"
SMITH_B_ID = "2b3c4d5e-6f7a-4b8c-9d0e-1f2a3b4c5d6e"
NO_POLICY_ID = "3c4d5e6f-7a8b-4c9d-8e1f-2a3b4c5d6e7f"
MISSING_ID = "9f8e7d6c-5b4a-4392-8170-6f5e4d3c2b1a"

AETNA_POLICY_ID = "aa11bb22-cc33-4d44-8e55-ff6677889900"
BCBS_POLICY_ID = "bb22cc33-dd44-4e55-9f66-00778899aabb"


def make_patient(**overrides) -> PatientSnapshot:
    data = dict(
        id=JANE_ID,
        first_name="Jane",
        last_name="Doe",
        date_of_birth=date(1985, 3, 4),
        primary_phone="555-0100",
        email="jane.doe@example.com",
        address_line1="12 Main St",
        address_line2="Apt 4",
        city="Springfield",
        state="IL",
        postal_code="62704",
    )
    data.update(overrides)
    return PatientSnapshot(**data)


def make_policy(**overrides) -> InsurancePolicySnapshot:
    data = dict(
        id=AETNA_POLICY_ID,
        patient_id=JANE_ID,
        payer_name_raw="Aetna",
        insurer_phone_raw="800-555-0199",
        member_id="W123456789",
        group_number="GRP12345",
        plan_name="Choice POS II",
        plan_type="PPO",
        is_primary=True,
        rx_bin="610502",
        rx_pcn="ADV",
        rx_group="RX4512",
        card_front_ref="cards/jane-front.jpg",
        card_back_ref="cards/jane-back.jpg",
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )
    data.update(overrides)
    return InsurancePolicySnapshot(**data)


class FakeDataAccess:
    def __init__(
        self,
        patients: List[PatientSnapshot],
        policies: List[InsurancePolicySnapshot],
    ) -> None:
        self.patients: Dict[str, PatientSnapshot] = {p.id: p for p in patients}
        self.policies: Dict[str, InsurancePolicySnapshot] = {p.id: p for p in policies}
        self.search_calls = 0

    async def get_patient_by_id(self, patient_id: str) -> Optional[PatientSnapshot]:
        return self.patients.get(patient_id)

    async def get_insurance_policies_by_patient_id(self, patient_id: str):
        return order_policies([p for p in self.policies.values() if p.patient_id == patient_id])

    async def get_insurance_policy_by_id(self, policy_id: str):
        return self.policies.get(policy_id)

    async def get_primary_policy_for_patient(self, patient_id: str):
        primary = [p for p in self.policies.values() if p.patient_id == patient_id and p.is_primary]
        return order_policies(primary)[0] if primary else None

    async def search_patients_by_demographics(
        self,
        first_name: str,
        last_name: str,
        zip_code: Optional[str] = None,
        limit: int = 20,
    ) -> List[PatientSnapshot]:
        self.search_calls += 1
        found = [
            p
            for p in self.patients.values()
            if name_matches(p, first_name, last_name)
            and (zip_code is None or p.postal_code == zip_code)
        ]
        return found[:limit]


class RecordingAuditSink:
    def __init__(self) -> None:
        self.entries: List[AuditLogEntry] = []

    async def write(self, entry: AuditLogEntry) -> None:
        self.entries.append(entry)


class FailingAuditSink:
    async def write(self, entry: AuditLogEntry) -> None:
        raise RuntimeError("audit store unavailable")


@pytest.fixture
def data_access() -> FakeDataAccess:
    return FakeDataAccess(
        patients=[
            make_patient(),
            make_patient(
                id=SMITH_A_ID,
                first_name=None,
                last_name=None,
                name="John Smith",
                date_of_birth=date(1990, 7, 15),
                email=None,
                postal_code="10001",
            ),
            make_patient(
                id=SMITH_B_ID,
                first_name="John",
                last_name="Smith",
                date_of_birth=date(1990, 7, 16),
                email=None,
                postal_code="94110",
            ),
            make_patient(
                id=NO_POLICY_ID,
                first_name="Ana",
                last_name="Lopez",
                date_of_birth=date(2001, 11, 30),
            ),
        ],
        policies=[
            make_policy(),
            make_policy(
                id=BCBS_POLICY_ID,
                payer_name_raw="Blue Cross Blue Shield of Illinois",
                member_id="123456789",
                group_number=None,
                plan_name=None,
                plan_type="HMO",
                is_primary=False,
                rx_bin=None,
                rx_pcn=None,
                rx_group=None,
                card_front_ref=None,
                card_back_ref=None,
                created_at=datetime(2023, 1, 1, tzinfo=timezone.utc),
            ),
        ],
    )


@pytest.fixture
def audit_sink() -> RecordingAuditSink:
    return RecordingAuditSink()


@pytest.fixture
def registry(data_access, audit_sink):
    return build_registry(data_access, AuditLogger(audit_sink))


@pytest.fixture
def ctx() -> RequestContext:
    return RequestContext(
        request_id=REQUEST_ID,
        actor_id="voice-agent-1",
        actor_type=ActorType.AGENT,
        purpose="insurance_verification",
    )


@pytest.fixture
def unmasked_ctx() -> RequestContext:
    return RequestContext(
        request_id=REQUEST_ID,
        actor_id="front-desk-7",
        actor_type=ActorType.USER,
        purpose="insurance_verification",
        allow_unmasked=True,
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, api_keys=f"{API_KEY},other-key", cors_origins="")


@pytest.fixture
def auth_config(settings) -> AuthConfig:
    return AuthConfig.from_settings(settings)


@pytest.fixture
def auth_headers() -> Dict[str, str]:
    return {
        "X-API-Key": API_KEY,
        "X-Actor-Id": "voice-agent-1",
        "X-Actor-Type": "agent",
        "X-Purpose": "insurance_verification",
        "X-Request-Id": REQUEST_ID,
    }
