# /src/callmaker/http/context.py
"""
Request-scoped context handed to every API handler.

- generate_request_id(): prefixed, collision-negligible id for tracing
- get_client_ip(): client address, from proxy headers when they are trusted
- build_request_context(): fresh RequestContext per inbound request
"""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Optional

from starlette.requests import Request

from callmaker.logging import bind_request_context

if TYPE_CHECKING:
    from callmaker.http.session import AuthenticatedSession

REQUEST_ID_HEADER = "X-Request-Id"
UNKNOWN_CLIENT_IP = "unknown"

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(n: int) -> str:
    if n == 0:
        return "0"
    digits = []
    while n:
        n, rem = divmod(n, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_request_id(prefix: str = "req_") -> str:
    """
    <prefix><base36 epoch ms>_<12 random hex chars>

    The timestamp keeps ids roughly sortable in log search; 48 random bits
    make collisions within the same millisecond negligible.
    """
    return f"{prefix}{_to_base36(time.time_ns() // 1_000_000)}_{secrets.token_hex(6)}"


def get_client_ip(request: Request, *, trust_proxy_headers: bool = False) -> str:
    """
    X-Forwarded-For / X-Real-IP only count behind a proxy that sets them;
    otherwise any caller could pick a fresh address per request.
    """
    if trust_proxy_headers:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first
        real_ip = (request.headers.get("x-real-ip") or "").strip()
        if real_ip:
            return real_ip
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT_IP


@dataclass
class RequestContext:
    """
    Populated stage by stage as the request moves through the pipeline,
    then passed by reference to the handler. Never persisted.
    """
    request_id: str
    client_ip: str
    route: str = "unknown"
    session: Optional["AuthenticatedSession"] = None
    organization_id: Optional[str] = None
    body: Any = None
    route_params: Dict[str, str] = field(default_factory=dict)
    started_at: float = field(default_factory=time.perf_counter)

    @property
    def user_id(self) -> Optional[str]:
        return self.session.user_id if self.session else None

    def elapsed_ms(self) -> float:
        return round((time.perf_counter() - self.started_at) * 1000.0, 2)


def build_request_context(
    request: Request,
    *,
    route: str = "unknown",
    request_id_prefix: str = "req_",
    trust_proxy_headers: bool = False,
) -> RequestContext:
    """Cannot fail: every field has a fallback."""
    ctx = RequestContext(
        request_id=generate_request_id(request_id_prefix),
        client_ip=get_client_ip(request, trust_proxy_headers=trust_proxy_headers),
        route=route,
        route_params={k: str(v) for k, v in request.path_params.items()},
    )
    bind_request_context(
        request_id=ctx.request_id,
        route=route,
        method=request.method,
        path=request.url.path,
        client_ip=ctx.client_ip,
    )
    return ctx
