"""
Demographic patient matching.

Callers (voice agents, intake forms) hand us a DOB in whatever shape the
patient said it, and the CRM may have stored it a day off after a UTC/local
conversion. The matcher widens the DOB into a small candidate set and lets
storage narrow by name and ZIP.
"""

from __future__ import annotations

import re
from datetime import date, timedelta
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel

from .data_access import DataAccess
from .masking import mask_last4
from .models import PatientSnapshot

ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
SLASH_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")

ONE_DAY = timedelta(days=1)


class MatchConfidence(str, Enum):
    MEDIUM = "medium"
    HIGH = "high"


class DemographicMatch(BaseModel):
    patient_id: str
    confidence: MatchConfidence
    display: Dict[str, str]

    def to_output(self) -> Dict[str, Any]:
        return {
            "patient_id": self.patient_id,
            "confidence": self.confidence.value,
            "display": dict(self.display),
        }


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def dob_candidates(dob: str) -> FrozenSet[date]:
    """
    Interpret a DOB string as a set of plausible calendar dates.

    `YYYY-MM-DD` and `MM/DD/YYYY` are read directly; slash dates also yield
    the day/month-swapped reading. Every accepted date brings its neighbours
    one day either side. Anything unparseable yields an empty set.
    """
    raw = (dob or "").strip()
    accepted: List[date] = []

    iso = ISO_DATE.fullmatch(raw)
    slash = SLASH_DATE.fullmatch(raw)
    if iso:
        year, month, day = (int(g) for g in iso.groups())
        parsed = _safe_date(year, month, day)
        if parsed:
            accepted.append(parsed)
    elif slash:
        first, second, year = (int(g) for g in slash.groups())
        for month, day in ((first, second), (second, first)):
            parsed = _safe_date(year, month, day)
            if parsed:
                accepted.append(parsed)

    candidates = set()
    for d in accepted:
        candidates.add(d)
        try:
            candidates.add(d - ONE_DAY)
            candidates.add(d + ONE_DAY)
        except OverflowError:
            pass
    return frozenset(candidates)


def _display(patient: PatientSnapshot) -> Dict[str, str]:
    first, last = patient.name_parts()
    display: Dict[str, str] = {}
    if first:
        display["first_name"] = first
    if last:
        display["last_name"] = last
    if patient.date_of_birth:
        display["dob"] = patient.date_of_birth.isoformat()
    if patient.postal_code:
        display["zip_masked"] = mask_last4(patient.postal_code)
    return display


async def search_by_demographics(
    data_access: DataAccess,
    first_name: str,
    last_name: str,
    dob: str,
    zip_code: Optional[str] = None,
    limit: int = 20,
) -> List[DemographicMatch]:
    candidates = dob_candidates(dob)
    if not candidates:
        return []

    zip_filter = (zip_code or "").strip() or None
    patients = await data_access.search_patients_by_demographics(
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        zip_code=zip_filter,
        limit=limit,
    )

    confidence = MatchConfidence.HIGH if zip_filter else MatchConfidence.MEDIUM
    matches = [
        DemographicMatch(patient_id=p.id, confidence=confidence, display=_display(p))
        for p in patients
        if p.date_of_birth is not None and p.date_of_birth in candidates
    ]
    return matches[:limit]
