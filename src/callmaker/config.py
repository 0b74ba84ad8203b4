"""
Centralized configuration for the CallMaker API pipeline.

- Frozen dataclass loaded from OS env (plus a .env file via python-dotenv).
- Validation in __post_init__; fail fast on misconfiguration.
- Immutable singleton via functools.lru_cache.
- Secrets never logged (masked).
"""

from __future__ import annotations

import functools
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Optional, cast
from urllib.parse import urlparse

from dotenv import load_dotenv

# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------
DEV_SESSION_SECRET = "dev-insecure-session-secret-change-me"


def _mask_secret(value: Optional[str]) -> str:
    if not value:
        return "<unset>"
    if len(value) <= 8:
        return "***"
    return value[:2] + "…" + value[-2:]


def _get_env_str(key: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(key, default)


def _get_env_bool(key: str, default: bool = False) -> bool:
    v = os.getenv(key)
    if v is None:
        return default
    return v.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def _get_env_int(key: str, default: int) -> int:
    v = os.getenv(key)
    if v is None or v.strip() == "":
        return default
    try:
        return int(v)
    except ValueError:
        raise ValueError(f"Env var {key} must be an integer") from None


def _validate_choice(value: str, *, choices: tuple[str, ...], key: str) -> str:
    if value not in choices:
        raise ValueError(f"{key} must be one of {choices}, got {value!r}")
    return value


def _validate_url(value: Optional[str], *, key: str, allowed_schemes: tuple[str, ...]) -> Optional[str]:
    if value in (None, ""):
        return None
    parsed = urlparse(value)
    if parsed.scheme not in allowed_schemes or not parsed.netloc:
        raise ValueError(f"{key} must be a valid URL with scheme in {allowed_schemes}")
    return value


# ------------------------------------------------------------------------------
# Settings dataclass (immutable)
# ------------------------------------------------------------------------------
EnvName = Literal["local", "dev", "test", "staging", "prod"]
LogFormat = Literal["json", "console"]
RateLimitBackend = Literal["memory", "redis"]


@dataclass(frozen=True)
class Settings:
    # Environment
    environment: EnvName = "local"
    debug: bool = False

    # Observability
    log_level: str = "INFO"
    log_format: Optional[LogFormat] = None

    # Session / identity provider
    session_secret: str = DEV_SESSION_SECRET
    session_algorithm: str = "HS256"
    session_cookie_name: str = "callmaker.session-token"
    session_ttl_minutes: int = 60 * 24

    # Rate limiting
    redis_url: Optional[str] = None
    rate_limit_backend: RateLimitBackend = "memory"
    rate_limit_namespace: str = "callmaker:rl"

    # Request tracing
    request_id_prefix: str = "req_"
    # X-Forwarded-For / X-Real-IP are honoured only behind a proxy that sets them
    trust_proxy_headers: bool = False

    # Derived flags (filled in __post_init__)
    is_prod_like: bool = field(init=False)
    is_local: bool = field(init=False)

    def __post_init__(self) -> None:
        _validate_choice(self.environment, choices=("local", "dev", "test", "staging", "prod"), key="ENVIRONMENT")
        _validate_choice(self.rate_limit_backend, choices=("memory", "redis"), key="RATE_LIMIT_BACKEND")
        _validate_choice(self.session_algorithm, choices=("HS256", "HS384", "HS512"), key="SESSION_ALGORITHM")
        if self.log_format is not None:
            _validate_choice(self.log_format, choices=("json", "console"), key="LOG_FORMAT")

        _validate_url(self.redis_url, key="REDIS_URL", allowed_schemes=("redis", "rediss"))
        if self.rate_limit_backend == "redis" and not self.redis_url:
            raise ValueError("RATE_LIMIT_BACKEND=redis requires REDIS_URL")

        if not self.session_secret or len(self.session_secret) < 16:
            raise ValueError("SESSION_SECRET must be at least 16 characters")

        is_prod_like = self.environment in ("staging", "prod")
        if is_prod_like and self.session_secret == DEV_SESSION_SECRET:
            raise ValueError("SESSION_SECRET must be set explicitly outside local/dev/test")

        if self.session_ttl_minutes <= 0:
            raise ValueError("SESSION_TTL_MINUTES must be > 0")

        if not self.request_id_prefix or not re.fullmatch(r"[A-Za-z0-9_-]+", self.request_id_prefix):
            raise ValueError("REQUEST_ID_PREFIX must be non-empty and URL safe")

        if not re.fullmatch(r"(?i)DEBUG|INFO|WARNING|ERROR|CRITICAL", self.log_level.strip()):
            raise ValueError("LOG_LEVEL must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL")

        object.__setattr__(self, "is_prod_like", is_prod_like)
        object.__setattr__(self, "is_local", self.environment in ("local", "dev", "test"))

    # Safe dict (for debug prints without secrets)
    def safe_dict(self) -> dict:
        return {
            "environment": self.environment,
            "debug": self.debug,
            "log_level": self.log_level,
            "log_format": self.log_format or "<auto>",
            "session_secret": _mask_secret(self.session_secret),
            "session_algorithm": self.session_algorithm,
            "session_cookie_name": self.session_cookie_name,
            "session_ttl_minutes": self.session_ttl_minutes,
            "redis_url": "<masked>" if self.redis_url else "<unset>",
            "rate_limit_backend": self.rate_limit_backend,
            "rate_limit_namespace": self.rate_limit_namespace,
            "request_id_prefix": self.request_id_prefix,
            "trust_proxy_headers": self.trust_proxy_headers,
        }


# ------------------------------------------------------------------------------
# Loader (singleton)
# ------------------------------------------------------------------------------
_logger = logging.getLogger(__name__)


def load_settings() -> Settings:
    """Build Settings from the current environment (uncached)."""
    env_file = Path.cwd() / ".env"
    if env_file.exists():
        load_dotenv(dotenv_path=str(env_file), override=False)

    log_format = _get_env_str("LOG_FORMAT", None)
    return Settings(
        environment=cast(EnvName, _get_env_str("ENVIRONMENT", "local") or "local"),
        debug=_get_env_bool("DEBUG", False),
        log_level=_get_env_str("LOG_LEVEL", "INFO") or "INFO",
        log_format=cast(Optional[LogFormat], log_format or None),
        session_secret=_get_env_str("SESSION_SECRET", DEV_SESSION_SECRET) or "",
        session_algorithm=_get_env_str("SESSION_ALGORITHM", "HS256") or "HS256",
        session_cookie_name=_get_env_str("SESSION_COOKIE_NAME", "callmaker.session-token") or "callmaker.session-token",
        session_ttl_minutes=_get_env_int("SESSION_TTL_MINUTES", 60 * 24),
        redis_url=_get_env_str("REDIS_URL", None) or None,
        rate_limit_backend=cast(RateLimitBackend, _get_env_str("RATE_LIMIT_BACKEND", "memory") or "memory"),
        rate_limit_namespace=_get_env_str("RATE_LIMIT_NAMESPACE", "callmaker:rl") or "callmaker:rl",
        request_id_prefix=_get_env_str("REQUEST_ID_PREFIX", "req_") or "req_",
        trust_proxy_headers=_get_env_bool("TRUST_PROXY_HEADERS", False),
    )


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings = load_settings()
    _logger.info("Settings loaded", extra={"settings": settings.safe_dict()})
    return settings
