from __future__ import annotations

from typing import Any, Dict, Optional

from callmaker.error_codes import ErrorCode, http_status_for, message_for


# ───────────────────────── Base & Domain Exceptions ─────────────────────────
class DomainError(Exception):
    """
    Base class for errors the pipeline knows how to render.

    The message is safe to show to callers; anything sensitive belongs in the
    log, never here. Stages and handlers raise these; the response formatter
    turns them into a failure envelope.
    """
    code: ErrorCode = ErrorCode.BAD_REQUEST
    status_code: int = 400
    message: str
    meta: Optional[Dict[str, Any]]

    def __init__(
        self,
        message: str = "",
        *,
        code: Optional[ErrorCode] = None,
        status_code: Optional[int] = None,
        meta: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        if code is not None:
            self.code = code
            if status_code is None:
                self.status_code = http_status_for(code)
        if status_code is not None:
            self.status_code = status_code
        self.message = message or message_for(self.code)
        self.meta = meta
        self.headers = headers or {}
        super().__init__(self.message)


class UnauthorizedError(DomainError):
    code, status_code = ErrorCode.UNAUTHORIZED, 401


class ForbiddenError(DomainError):
    code, status_code = ErrorCode.FORBIDDEN, 403


class NoOrganizationError(ForbiddenError):
    """Valid session without an organization on a tenant-scoped route."""

    def __init__(self, message: str = "Organization membership required", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class ValidationError(DomainError):
    code, status_code = ErrorCode.VALIDATION_ERROR, 422


class BadRequestError(DomainError):
    code, status_code = ErrorCode.BAD_REQUEST, 400


class NotFoundError(DomainError):
    code, status_code = ErrorCode.NOT_FOUND, 404

    def __init__(self, resource: str = "Resource", **kwargs: Any) -> None:
        super().__init__(f"{resource} not found", **kwargs)


class ConflictError(DomainError):
    code, status_code = ErrorCode.CONFLICT, 409


class RateLimitedError(DomainError):
    code, status_code = ErrorCode.RATE_LIMITED, 429


class InternalServerError(DomainError):
    code, status_code = ErrorCode.INTERNAL_ERROR, 500
