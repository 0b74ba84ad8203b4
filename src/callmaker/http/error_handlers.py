"""
Centralized exception handlers for everything that never reaches a pipeline
endpoint: unknown paths, wrong methods, FastAPI-native routes and errors
raised by middleware. Each maps onto the same failure envelope the pipeline
emits, with a freshly generated request id.
"""
from __future__ import annotations

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from callmaker.config import Settings, get_settings
from callmaker.error_codes import ErrorCode, code_for_status, message_for
from callmaker.exceptions import DomainError
from callmaker.http.context import generate_request_id
from callmaker.http.responses import error_response, internal_error_response
from callmaker.http.validation import ROOT_FIELD
from callmaker.logging import get_logger

logger = get_logger(__name__)


def _code_for_http_status(status_code: int) -> ErrorCode:
    code = code_for_status(status_code)
    if code is ErrorCode.INTERNAL_ERROR and status_code < 500:
        return ErrorCode.BAD_REQUEST
    return code


def domain_error_from_http_exception(exc: StarletteHTTPException) -> DomainError:
    """
    Framework HTTPException -> DomainError with the table's safe message.
    `detail` is not forwarded; it may carry anything the raiser put there.
    """
    code = _code_for_http_status(exc.status_code)
    return DomainError(
        message_for(code),
        code=code,
        status_code=exc.status_code,
        headers=dict(exc.headers or {}),
    )


def register_exception_handlers(app: FastAPI, settings: Optional[Settings] = None) -> None:
    settings = settings or get_settings()

    def new_request_id() -> str:
        return generate_request_id(settings.request_id_prefix)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        logger.info("http_exception", status_code=exc.status_code, path=request.url.path)
        return error_response(domain_error_from_http_exception(exc), new_request_id())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        field_errors: dict = {}
        for e in exc.errors():
            path = ".".join(str(p) for p in e.get("loc", ())) or ROOT_FIELD
            field_errors.setdefault(path, []).append(str(e.get("msg", "Invalid value")))
        err = DomainError(code=ErrorCode.VALIDATION_ERROR, meta={"fieldErrors": field_errors})
        return error_response(err, new_request_id())

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
        return error_response(exc, new_request_id())

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        request_id = new_request_id()
        logger.error(
            "unhandled_exception",
            request_id=request_id,
            path=request.url.path,
            exc_info=exc,
        )
        return internal_error_response(request_id)
