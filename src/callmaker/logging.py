"""
Structured logging using structlog with:
- JSON/console switchable format
- Request context (request_id, route, user_id, organization_id) via contextvars
- PII redaction (emails, phones, cards) in prod-like environments
- Secret redaction (DSN credentials, bearer tokens) everywhere
- stdlib records (uvicorn, redis) rendered through the same pipeline
"""

from __future__ import annotations

import logging
import logging.config
import re
import sys
from typing import Any, Dict, List, Optional

import structlog

from callmaker.config import Settings, get_settings

# ---------------------------------------------------------------------
# Redaction
# ---------------------------------------------------------------------


class _RedactingProcessor:
    """Walks the event dict recursively and rewrites matching strings."""

    def __call__(self, logger, method_name, event_dict):
        return {k: self._redact(v) for k, v in event_dict.items()}

    def _redact(self, value: Any) -> Any:
        if isinstance(value, dict):
            return {k: self._redact(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._redact(v) for v in value]
        if isinstance(value, str):
            return self._redact_str(value)
        return value

    def _redact_str(self, s: str) -> str:
        raise NotImplementedError


class SecretRedactionProcessor(_RedactingProcessor):
    """
    Masks credentials that tend to leak through exception messages:
    userinfo in connection strings, bearer tokens, key=value secrets.
    """
    P_DSN_USERINFO = re.compile(r"(?P<scheme>\b[a-zA-Z][a-zA-Z0-9+.\-]*://)[^\s/@:]+(?::[^\s/@]*)?@")
    P_BEARER = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9\-._~+/]+=*")
    P_KV_SECRET = re.compile(r"(?i)\b(password|passwd|secret|api[_-]?key|token)=([^\s&;,]+)")

    def _redact_str(self, s: str) -> str:
        s = self.P_DSN_USERINFO.sub(lambda m: f"{m.group('scheme')}***@", s)
        s = self.P_BEARER.sub("Bearer ***", s)
        s = self.P_KV_SECRET.sub(lambda m: f"{m.group(1)}=***", s)
        return s


class PIIRedactionProcessor(_RedactingProcessor):
    """
    - Email: keep domain, redact local-part.
    - Phone (E.164 preferred): keep CC and last 4.
    - Credit card: full redact.
    """
    P_EMAIL = re.compile(r"\b([A-Za-z0-9._%+-]+)@([A-Za-z0-9.-]+\.[A-Za-z]{2,})\b")
    P_MSISDN = re.compile(r"\+[1-9]\d{7,14}\b")
    P_CC = re.compile(r"\b(?:\d[ -]?){13,19}\b")

    def _redact_str(self, s: str) -> str:
        s = self.P_EMAIL.sub(lambda m: f"***@{m.group(2)}", s)
        s = self.P_MSISDN.sub(lambda m: f"{m.group(0)[:2]}****{m.group(0)[-4:]}", s)
        s = self.P_CC.sub("***REDACTED***", s)
        return s


# ---------------------------------------------------------------------
# Public helpers to use from pipeline/handler code
# ---------------------------------------------------------------------


def bind_request_context(
    *,
    request_id: Optional[str] = None,
    route: Optional[str] = None,
    method: Optional[str] = None,
    path: Optional[str] = None,
    client_ip: Optional[str] = None,
    user_id: Optional[str] = None,
    organization_id: Optional[str] = None,
    role: Optional[str] = None,
    extras: Optional[Dict[str, Any]] = None,
) -> None:
    """Bind standard request context fields; None values are skipped."""
    payload = {
        k: v
        for k, v in dict(
            request_id=request_id,
            route=route,
            method=method,
            path=path,
            client_ip=client_ip,
            user_id=user_id,
            organization_id=organization_id,
            role=role,
        ).items()
        if v is not None
    }
    if extras:
        payload.update(extras)
    if payload:
        structlog.contextvars.bind_contextvars(**payload)


def clear_request_context() -> None:
    """Clear all bound contextvars (call at the end of a request)."""
    structlog.contextvars.clear_contextvars()


# ---------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------


def _resolve_log_format(settings: Settings) -> str:
    if settings.log_format in ("json", "console"):
        return settings.log_format
    return "json" if settings.is_prod_like else "console"


def _shared_processors(settings: Settings) -> List[Any]:
    processors: List[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        SecretRedactionProcessor(),
    ]
    # Redact PII only outside of local/dev to help debugging locally
    if settings.is_prod_like:
        processors.append(PIIRedactionProcessor())
    return processors


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Idempotent structured logging configuration."""
    settings = settings or get_settings()
    shared = _shared_processors(settings)
    renderer = (
        structlog.processors.JSONRenderer()
        if _resolve_log_format(settings) == "json"
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structlog": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        renderer,
                    ],
                    "foreign_pre_chain": shared,
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "structlog",
                    "stream": sys.stdout,
                },
            },
            "root": {
                "level": settings.log_level.upper(),
                "handlers": ["console"],
            },
            "loggers": {
                # Quiet noisy libs, but keep errors
                "uvicorn.error": {"level": "INFO", "handlers": ["console"], "propagate": False},
                "uvicorn.access": {"level": "WARNING", "handlers": ["console"], "propagate": False},
            },
        }
    )

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=settings.is_prod_like,
    )
    structlog.contextvars.clear_contextvars()


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


security_logger = structlog.get_logger("security")


def log_security_event(
    event_type: str,
    *,
    user_id: Optional[str] = None,
    organization_id: Optional[str] = None,
    **kwargs: Any,
) -> None:
    """Log security-relevant events (auth failures, role denials, throttling)."""
    security_logger.warning(
        "security_event",
        event_type=event_type,
        user_id=user_id,
        organization_id=organization_id,
        **kwargs,
    )
