from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Protocol

import jwt
from starlette.requests import Request

from callmaker.config import Settings
from callmaker.exceptions import UnauthorizedError
from callmaker.http.context import RequestContext
from callmaker.logging import bind_request_context, get_logger, log_security_event
from callmaker.roles import Role, parse_role

logger = get_logger(__name__)


@dataclass(frozen=True)
class AuthenticatedSession:
    """Caller identity as supplied by the identity provider. Read-only here."""
    user_id: str
    email: str
    role: Role
    name: Optional[str] = None
    organization_id: Optional[str] = None

    def to_public_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "email": self.email,
            "name": self.name,
            "role": self.role.value,
            "organizationId": self.organization_id,
        }


class SessionResolver(Protocol):
    """Identity provider seam: returns the caller's session or None."""

    async def resolve(self, request: Request) -> Optional[AuthenticatedSession]:
        ...


def _extract_bearer(auth_header: Optional[str]) -> Optional[str]:
    if not auth_header:
        return None
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class JwtSessionResolver:
    """
    Reads a signed session token from `Authorization: Bearer` or the session
    cookie and maps its claims onto AuthenticatedSession:
      - user_id:         sub
      - email/name:      email, name
      - role:            role (must be a known Role)
      - organization_id: organizationId (or organization_id)
    `issue_token` mints tokens in the same shape, valid for `ttl`.
    """

    def __init__(
        self,
        secret: str,
        *,
        algorithm: str = "HS256",
        cookie_name: str = "callmaker.session-token",
        leeway_seconds: int = 10,
        ttl: timedelta = timedelta(hours=24),
    ) -> None:
        self.secret = secret
        self.algorithm = algorithm
        self.cookie_name = cookie_name
        self.leeway_seconds = leeway_seconds
        self.ttl = ttl

    @classmethod
    def from_settings(cls, settings: Settings) -> "JwtSessionResolver":
        return cls(
            settings.session_secret,
            algorithm=settings.session_algorithm,
            cookie_name=settings.session_cookie_name,
            ttl=timedelta(minutes=settings.session_ttl_minutes),
        )

    def issue_token(self, *, user_id: str, email: str, role: Role | str, **claims: Any) -> str:
        return issue_session_token(
            secret=self.secret,
            user_id=user_id,
            email=email,
            role=role,
            algorithm=self.algorithm,
            ttl=self.ttl,
            **claims,
        )

    def _token_from(self, request: Request) -> Optional[str]:
        return _extract_bearer(request.headers.get("Authorization")) or request.cookies.get(self.cookie_name)

    async def resolve(self, request: Request) -> Optional[AuthenticatedSession]:
        token = self._token_from(request)
        if not token:
            return None
        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["sub", "exp"]},
                leeway=self.leeway_seconds,
            )
        except jwt.ExpiredSignatureError:
            logger.info("session_token_expired")
            return None
        except jwt.InvalidTokenError as e:
            log_security_event("invalid_session_token", reason=type(e).__name__)
            return None
        return self._session_from_claims(claims)

    def _session_from_claims(self, claims: Dict[str, Any]) -> Optional[AuthenticatedSession]:
        role = parse_role(claims.get("role"))
        if role is None:
            log_security_event("unknown_role_claim", user_id=str(claims.get("sub")))
            return None
        org = claims.get("organizationId") or claims.get("organization_id")
        return AuthenticatedSession(
            user_id=str(claims["sub"]),
            email=str(claims.get("email") or ""),
            name=claims.get("name"),
            role=role,
            organization_id=str(org) if org else None,
        )


def issue_session_token(
    *,
    secret: str,
    user_id: str,
    email: str,
    role: Role | str,
    organization_id: Optional[str] = None,
    name: Optional[str] = None,
    algorithm: str = "HS256",
    ttl: timedelta = timedelta(hours=24),
    now: Optional[datetime] = None,
) -> str:
    """Mint a session token in the shape JwtSessionResolver expects (tooling and tests)."""
    issued = now or datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "sub": user_id,
        "email": email,
        "role": role.value if isinstance(role, Role) else role,
        "iat": issued,
        "exp": issued + ttl,
    }
    if name is not None:
        payload["name"] = name
    if organization_id is not None:
        payload["organizationId"] = organization_id
    return jwt.encode(payload, secret, algorithm=algorithm)


async def resolve_session(
    resolver: SessionResolver,
    request: Request,
    ctx: RequestContext,
    *,
    require_auth: bool,
) -> None:
    """
    Session stage. On public routes a failing identity provider is tolerated
    and the request continues anonymously.
    """
    if require_auth:
        session = await resolver.resolve(request)
        if session is None:
            log_security_event("missing_session", route=ctx.route)
            raise UnauthorizedError("Authentication required")
    else:
        try:
            session = await resolver.resolve(request)
        except Exception:
            logger.warning("session_resolution_failed_on_public_route", exc_info=True)
            session = None

    ctx.session = session
    if session is not None:
        bind_request_context(user_id=session.user_id, role=session.role.value)
