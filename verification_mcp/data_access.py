"""
Read-only access to patient and insurance-policy records.

Handlers depend on the `DataAccess` protocol only; the default deployment
backs it with the CRM's Firestore project:

- `patients/{id}`: patient fields as in `PatientSnapshot`, plus
  `first_name_lower`, `last_name_lower` and `name_tokens` (lower-cased
  tokens of the combined name) kept up to date by the CRM. A set
  `deleted_at` marks a soft-deleted patient.
- `insurance_policies/{id}`: policy fields as in `InsurancePolicySnapshot`.
"""

from __future__ import annotations

import functools
from datetime import datetime, timezone
from typing import List, Optional, Protocol, Sequence

import anyio

from .firebase_client import FirestoreFilter, query_collection, read_doc
from .models import InsurancePolicySnapshot, PatientSnapshot

PATIENTS_COLLECTION = "patients"
POLICIES_COLLECTION = "insurance_policies"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class DataAccess(Protocol):
    async def get_patient_by_id(self, patient_id: str) -> Optional[PatientSnapshot]:
        ...

    async def get_insurance_policies_by_patient_id(
        self, patient_id: str
    ) -> List[InsurancePolicySnapshot]:
        ...

    async def get_insurance_policy_by_id(
        self, policy_id: str
    ) -> Optional[InsurancePolicySnapshot]:
        ...

    async def get_primary_policy_for_patient(
        self, patient_id: str
    ) -> Optional[InsurancePolicySnapshot]:
        ...

    async def search_patients_by_demographics(
        self,
        first_name: str,
        last_name: str,
        zip_code: Optional[str] = None,
        limit: int = 20,
    ) -> List[PatientSnapshot]:
        ...


def name_matches(patient: PatientSnapshot, first_name: str, last_name: str) -> bool:
    """
    Case-insensitive name rule for demographic search.

    True when both explicit name fields equal the inputs, or when the
    combined full name contains both fragments.
    """
    first = first_name.strip().lower()
    last = last_name.strip().lower()
    if not first or not last:
        return False
    if (patient.first_name or "").strip().lower() == first and (
        patient.last_name or ""
    ).strip().lower() == last:
        return True
    full = (patient.name or "").lower()
    return first in full and last in full


def order_policies(
    policies: Sequence[InsurancePolicySnapshot],
) -> List[InsurancePolicySnapshot]:
    """Primary first, then newest first."""

    def created(p: InsurancePolicySnapshot) -> datetime:
        if p.created_at is None:
            return _EPOCH
        if p.created_at.tzinfo is None:
            return p.created_at.replace(tzinfo=timezone.utc)
        return p.created_at

    by_newest = sorted(policies, key=created, reverse=True)
    return sorted(by_newest, key=lambda p: not p.is_primary)


class FirestoreDataAccess:
    """
    `DataAccess` over Firestore.

    The Firebase Admin SDK is synchronous, so each call runs in a worker
    thread to keep the event loop free.
    """

    async def _read(self, collection: str, doc_id: str):
        return await anyio.to_thread.run_sync(
            functools.partial(read_doc, collection=collection, doc_id=doc_id)
        )

    async def _query(self, collection: str, filters: List[FirestoreFilter], limit: Optional[int] = None):
        return await anyio.to_thread.run_sync(
            functools.partial(query_collection, collection=collection, filters=filters, limit=limit)
        )

    async def get_patient_by_id(self, patient_id: str) -> Optional[PatientSnapshot]:
        doc = await self._read(PATIENTS_COLLECTION, patient_id)
        if not doc or doc.get("deleted_at") is not None:
            return None
        return PatientSnapshot.model_validate(doc)

    async def get_insurance_policies_by_patient_id(
        self, patient_id: str
    ) -> List[InsurancePolicySnapshot]:
        docs = await self._query(
            POLICIES_COLLECTION,
            [FirestoreFilter(field="patient_id", op="==", value=patient_id)],
        )
        return order_policies([InsurancePolicySnapshot.model_validate(d) for d in docs])

    async def get_insurance_policy_by_id(
        self, policy_id: str
    ) -> Optional[InsurancePolicySnapshot]:
        doc = await self._read(POLICIES_COLLECTION, policy_id)
        if not doc:
            return None
        return InsurancePolicySnapshot.model_validate(doc)

    async def get_primary_policy_for_patient(
        self, patient_id: str
    ) -> Optional[InsurancePolicySnapshot]:
        docs = await self._query(
            POLICIES_COLLECTION,
            [
                FirestoreFilter(field="patient_id", op="==", value=patient_id),
                FirestoreFilter(field="is_primary", op="==", value=True),
            ],
        )
        if not docs:
            return None
        return order_policies([InsurancePolicySnapshot.model_validate(d) for d in docs])[0]

    async def search_patients_by_demographics(
        self,
        first_name: str,
        last_name: str,
        zip_code: Optional[str] = None,
        limit: int = 20,
    ) -> List[PatientSnapshot]:
        zip_filters = (
            [FirestoreFilter(field="postal_code", op="==", value=zip_code)] if zip_code else []
        )
        exact = await self._query(
            PATIENTS_COLLECTION,
            [
                FirestoreFilter(field="first_name_lower", op="==", value=first_name.lower()),
                FirestoreFilter(field="last_name_lower", op="==", value=last_name.lower()),
                *zip_filters,
            ],
            limit=limit,
        )
        # Patients with only a combined name are found through its tokens.
        by_token = await self._query(
            PATIENTS_COLLECTION,
            [
                FirestoreFilter(field="name_tokens", op="array_contains", value=last_name.lower().split()[-1]),
                *zip_filters,
            ],
            limit=limit,
        )

        results: List[PatientSnapshot] = []
        seen = set()
        for doc in [*exact, *by_token]:
            if doc.get("deleted_at") is not None or doc["id"] in seen:
                continue
            patient = PatientSnapshot.model_validate(doc)
            if not name_matches(patient, first_name, last_name):
                continue
            seen.add(patient.id)
            results.append(patient)
            if len(results) >= limit:
                break
        return results
