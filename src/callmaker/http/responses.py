# /src/callmaker/http/responses.py
"""
HTTP response helpers (uniform success/failure envelopes).

- success_response(data, request_id, status_code=200, meta=None, headers=None)
- error_response(domain_error, request_id)
- internal_error_response(request_id)
- format_result(handler_return_value, request_id)

Success: {"success": true,  "data": ..., "requestId": ..., "meta"?: {...}}
Failure: {"success": false, "error": ..., "code": ..., "requestId": ..., "meta"?: {...}}
Every envelope carries X-Request-Id equal to its requestId.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder
from starlette.responses import JSONResponse, Response

from callmaker.error_codes import ErrorCode, message_for
from callmaker.exceptions import DomainError
from callmaker.http.context import REQUEST_ID_HEADER


def standard_headers(request_id: str, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    headers = {
        REQUEST_ID_HEADER: request_id,
        "X-Content-Type-Options": "nosniff",
        "Cache-Control": "no-store",
    }
    if extra:
        headers.update(extra)
    # request id always wins over handler-supplied headers
    headers[REQUEST_ID_HEADER] = request_id
    return headers


@dataclass
class ApiResult:
    """Handler return value when the default 200 + bare data is not enough."""
    data: Any = None
    status_code: int = 200
    meta: Optional[Dict[str, Any]] = None
    headers: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not 200 <= self.status_code < 300 or self.status_code == 204:
            raise ValueError("ApiResult status_code must be a 2xx code that carries a body")


def success_response(
    data: Any,
    request_id: str,
    *,
    status_code: int = 200,
    meta: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    body: Dict[str, Any] = {"success": True, "data": data, "requestId": request_id}
    if meta:
        body["meta"] = meta
    return JSONResponse(
        jsonable_encoder(body),
        status_code=status_code,
        headers=standard_headers(request_id, headers),
    )


def error_response(err: DomainError, request_id: str) -> JSONResponse:
    body: Dict[str, Any] = {
        "success": False,
        "error": err.message,
        "code": err.code.value,
        "requestId": request_id,
    }
    if err.meta:
        body["meta"] = err.meta
    return JSONResponse(
        jsonable_encoder(body),
        status_code=err.status_code,
        headers=standard_headers(request_id, err.headers),
    )


def internal_error_response(request_id: str) -> JSONResponse:
    """Fixed body: the original exception never reaches the caller."""
    err = DomainError(message_for(ErrorCode.INTERNAL_ERROR), code=ErrorCode.INTERNAL_ERROR)
    return error_response(err, request_id)


def format_result(result: Any, request_id: str, *, headers: Optional[Dict[str, str]] = None) -> Response:
    """Wrap whatever a handler returned into a response stamped with the request id."""
    if isinstance(result, Response):
        for name, value in standard_headers(request_id, headers).items():
            if name == REQUEST_ID_HEADER or name not in result.headers:
                result.headers[name] = value
        return result
    if isinstance(result, ApiResult):
        merged = {**(headers or {}), **result.headers}
        return success_response(
            result.data,
            request_id,
            status_code=result.status_code,
            meta=result.meta,
            headers=merged,
        )
    return success_response(result, request_id, headers=headers)
