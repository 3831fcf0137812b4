from __future__ import annotations

from enum import Enum
from typing import Any, Dict


class ErrorCode(str, Enum):
    """Error codes surfaced to callers."""

    UNAUTHORIZED = "UNAUTHORIZED"
    BAD_REQUEST = "BAD_REQUEST"
    NOT_FOUND = "NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNKNOWN_TOOL = "UNKNOWN_TOOL"
    EXECUTION_ERROR = "EXECUTION_ERROR"
    AMBIGUOUS_PATIENT = "AMBIGUOUS_PATIENT"


def error_body(code: ErrorCode, message: str) -> Dict[str, Any]:
    return {"code": code.value, "message": message}


class AuthError(Exception):
    """Raised by the auth gate; carries the HTTP status and error code."""

    def __init__(self, status_code: int, code: ErrorCode, message: str) -> None:
        self.status_code = status_code
        self.code = code
        self.message = message
        super().__init__(f"{code.value}: {message}")

    def to_dict(self) -> Dict[str, Any]:
        return {"error": error_body(self.code, self.message)}
