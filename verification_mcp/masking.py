"""
PHI minimization: sensitive identifiers show their last 4 characters only.
"""

from __future__ import annotations

from typing import Optional

MASK = "****"
EMPTY_PLACEHOLDER = "—"


def mask_last4(value: Optional[str]) -> str:
    if value is None:
        return EMPTY_PLACEHOLDER
    s = str(value).strip()
    if not s:
        return EMPTY_PLACEHOLDER
    if len(s) <= 4:
        return MASK
    return f"{MASK}{s[-4:]}"


def display_identifier(value: Optional[str], allow_unmasked: bool) -> Optional[str]:
    """
    Member/group identifier as a handler should return it.

    Absent values stay absent (None) so handlers can omit the key.
    """
    if not value:
        return None
    return value if allow_unmasked else mask_last4(value)
