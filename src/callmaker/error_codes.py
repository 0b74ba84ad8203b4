# src/callmaker/error_codes.py
# Central mapping that aligns with the API error contract.
# Keep keys stable; dashboard and integration clients rely on these.
from __future__ import annotations

from enum import Enum
from typing import Dict, TypedDict


class ErrorCode(str, Enum):
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    BAD_REQUEST = "BAD_REQUEST"
    NOT_FOUND = "NOT_FOUND"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    CONFLICT = "CONFLICT"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorSpec(TypedDict):
    http: int
    message: str


ERROR_CODES: Dict[ErrorCode, ErrorSpec] = {
    # ─── Authentication & Authorization ────────────────────────────────────
    ErrorCode.UNAUTHORIZED: {"http": 401, "message": "Authentication required"},
    ErrorCode.FORBIDDEN: {"http": 403, "message": "Access denied"},

    # ─── Requests ──────────────────────────────────────────────────────────
    ErrorCode.VALIDATION_ERROR: {"http": 422, "message": "Validation failed"},
    ErrorCode.BAD_REQUEST: {"http": 400, "message": "Bad request"},
    ErrorCode.NOT_FOUND: {"http": 404, "message": "Resource not found"},
    ErrorCode.METHOD_NOT_ALLOWED: {"http": 405, "message": "Method not allowed"},
    ErrorCode.CONFLICT: {"http": 409, "message": "Conflict with existing resource"},

    # ─── Rate Limiting ─────────────────────────────────────────────────────
    ErrorCode.RATE_LIMITED: {"http": 429, "message": "Too many requests"},

    # ─── Internal ──────────────────────────────────────────────────────────
    ErrorCode.INTERNAL_ERROR: {"http": 500, "message": "An internal error occurred"},
}


def http_status_for(code: ErrorCode) -> int:
    return ERROR_CODES[code]["http"]


def message_for(code: ErrorCode) -> str:
    return ERROR_CODES[code]["message"]


def code_for_status(status_code: int) -> ErrorCode:
    """First code registered for an HTTP status; INTERNAL_ERROR when none matches."""
    for code, entry in ERROR_CODES.items():
        if entry["http"] == status_code:
            return code
    return ErrorCode.INTERNAL_ERROR
