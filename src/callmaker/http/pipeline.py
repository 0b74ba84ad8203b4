"""
API handler pipeline.

Every endpoint is a plain `async def handler(request, ctx)` registered through
ApiPipeline.handler(...). The pipeline runs, in order:

    context -> session -> tenant -> role -> rate limit -> body -> handler

Any stage may short-circuit by raising a DomainError; the first failure wins
and is rendered as a failure envelope. Anything else raised is logged in full
and rendered as a generic INTERNAL_ERROR.

Usage:
    pipeline = ApiPipeline(JwtSessionResolver.from_settings(settings), InMemoryRateLimiter())

    @pipeline.handler(route="POST /api/customers", body_schema=CreateCustomer)
    async def create_customer(request, ctx):
        return await customers.create(**tenant_filter(ctx, **ctx.body.model_dump()))

    app.add_api_route("/api/customers", create_customer, methods=["POST"])
"""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Iterable, Optional, Union

from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request
from starlette.responses import Response

from callmaker.config import Settings, get_settings
from callmaker.exceptions import DomainError, ForbiddenError
from callmaker.http.context import RequestContext, build_request_context
from callmaker.http.error_handlers import domain_error_from_http_exception
from callmaker.http.rate_limit import (
    RATE_LIMITS,
    RateLimitConfig,
    RateLimiter,
    enforce_rate_limit,
    rate_limit_headers,
)
from callmaker.http.responses import error_response, format_result, internal_error_response
from callmaker.http.session import AuthenticatedSession, SessionResolver, resolve_session
from callmaker.http.tenancy import scope_tenant
from callmaker.http.validation import validate_body
from callmaker.logging import clear_request_context, get_logger, log_security_event
from callmaker.roles import ADMIN_ROLES, Role, is_role_allowed, normalize_roles

logger = get_logger(__name__)

Handler = Callable[[Request, RequestContext], Awaitable[Any]]
Endpoint = Callable[[Request], Awaitable[Response]]
RateLimitOption = Union[RateLimitConfig, str, bool]


@dataclass(frozen=True)
class RouteConfig:
    """
    Declared once per endpoint at registration time.

    - require_organization defaults to require_auth
    - a non-empty allowed_roles, or require_organization=True, implies require_auth
    - rate_limit: True = "standard" preset, a preset name, an explicit
      RateLimitConfig, or False to opt out
    """
    route: str = "unknown"
    require_auth: bool = True
    require_organization: Optional[bool] = None
    allowed_roles: Optional[Iterable[Union[Role, str]]] = None
    body_schema: Any = None
    rate_limit: RateLimitOption = True
    rate_limit_prefix: Optional[str] = None

    rate_limit_config: Optional[RateLimitConfig] = field(init=False, default=None)
    # auth flags as declared, before the implications below are applied
    _declared: Dict[str, Optional[bool]] = field(init=False, default_factory=dict, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "_declared",
            {"require_auth": self.require_auth, "require_organization": self.require_organization},
        )
        roles = normalize_roles(self.allowed_roles) or None
        require_auth = self.require_auth or bool(roles) or bool(self.require_organization)
        require_org = require_auth if self.require_organization is None else self.require_organization

        object.__setattr__(self, "allowed_roles", roles)
        object.__setattr__(self, "require_auth", require_auth)
        object.__setattr__(self, "require_organization", require_org)
        object.__setattr__(self, "rate_limit_config", self._resolve_rate_limit(self.rate_limit))

    @staticmethod
    def _resolve_rate_limit(option: RateLimitOption) -> Optional[RateLimitConfig]:
        if option is False:
            return None
        if option is True:
            return RATE_LIMITS["standard"]
        if isinstance(option, RateLimitConfig):
            return option
        if isinstance(option, str):
            try:
                return RATE_LIMITS[option]
            except KeyError:
                raise ValueError(f"Unknown rate limit preset: {option!r}") from None
        raise TypeError(f"rate_limit must be bool, preset name or RateLimitConfig, got {type(option).__name__}")

    def override(self, **changes: Any) -> "RouteConfig":
        """Copy with changes applied on top of the declared, not the derived, flags."""
        values = {f.name: getattr(self, f.name) for f in dataclasses.fields(self) if f.init}
        values.update(self._declared)
        values.update(changes)
        return RouteConfig(**values)


def check_role(session: Optional[AuthenticatedSession], allowed_roles: Optional[FrozenSet[Role]], ctx: RequestContext) -> None:
    """Role stage: a single shared gate over the route's declared allow-list."""
    role = session.role if session else None
    if is_role_allowed(role, allowed_roles):
        return
    log_security_event(
        "role_denied",
        user_id=ctx.user_id,
        role=role.value if role else None,
        required=sorted(r.value for r in allowed_roles or ()),
        route=ctx.route,
    )
    raise ForbiddenError("Insufficient permissions")


class ApiPipeline:
    """
    Process-wide service object wiring the identity provider and the rate
    limiter into every registered endpoint. Build it once at startup.
    """

    def __init__(
        self,
        session_resolver: SessionResolver,
        rate_limiter: RateLimiter,
        *,
        settings: Optional[Settings] = None,
    ) -> None:
        self.session_resolver = session_resolver
        self.rate_limiter = rate_limiter
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def handler(self, config: Optional[RouteConfig] = None, **options: Any) -> Callable[[Handler], Endpoint]:
        if config is None:
            cfg = RouteConfig(**options)
        else:
            cfg = config.override(**options) if options else config

        def decorator(fn: Handler) -> Endpoint:
            async def endpoint(request: Request) -> Response:
                return await self.run(fn, cfg, request)

            # no __wrapped__: FastAPI must see the (request) signature, not the handler's
            endpoint.__name__ = getattr(fn, "__name__", "endpoint")
            endpoint.__qualname__ = getattr(fn, "__qualname__", endpoint.__name__)
            endpoint.__doc__ = fn.__doc__
            endpoint.route_config = cfg  # type: ignore[attr-defined]
            return endpoint

        return decorator

    def public_handler(self, **options: Any) -> Callable[[Handler], Endpoint]:
        """Unauthenticated route; a session is still attached when one is present."""
        return self.handler(**{**options, "require_auth": False, "require_organization": False})

    def admin_handler(self, **options: Any) -> Callable[[Handler], Endpoint]:
        options.setdefault("rate_limit", "admin")
        return self.handler(**{**options, "allowed_roles": ADMIN_ROLES})

    def webhook_handler(self, **options: Any) -> Callable[[Handler], Endpoint]:
        options.setdefault("rate_limit", "webhook")
        return self.handler(**{**options, "require_auth": False, "require_organization": False})

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def run(self, handler: Handler, cfg: RouteConfig, request: Request) -> Response:
        clear_request_context()
        ctx = build_request_context(
            request,
            route=cfg.route,
            request_id_prefix=self.settings.request_id_prefix,
            trust_proxy_headers=self.settings.trust_proxy_headers,
        )
        try:
            response = await self._run_stages(handler, cfg, request, ctx)
        except DomainError as err:
            log = logger.error if err.status_code >= 500 else logger.info
            log("request_rejected", code=err.code.value, status_code=err.status_code, error=err.message)
            response = error_response(err, ctx.request_id)
        except StarletteHTTPException as exc:
            err = domain_error_from_http_exception(exc)
            logger.info("request_rejected", code=err.code.value, status_code=err.status_code)
            response = error_response(err, ctx.request_id)
        except Exception:
            # full detail stays in the log; the caller gets the generic envelope
            logger.exception("unhandled_exception", request_id=ctx.request_id, route=cfg.route)
            response = internal_error_response(ctx.request_id)

        logger.info(
            "http_access",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=ctx.elapsed_ms(),
        )
        clear_request_context()
        return response

    async def _run_stages(self, handler: Handler, cfg: RouteConfig, request: Request, ctx: RequestContext) -> Response:
        await resolve_session(self.session_resolver, request, ctx, require_auth=cfg.require_auth)

        scope_tenant(ctx, require_organization=bool(cfg.require_organization))

        if cfg.allowed_roles:
            check_role(ctx.session, cfg.allowed_roles, ctx)

        extra_headers = None
        if cfg.rate_limit_config is not None:
            result = await enforce_rate_limit(
                self.rate_limiter,
                ctx,
                cfg.rate_limit_config,
                prefix=cfg.rate_limit_prefix or cfg.route,
            )
            extra_headers = rate_limit_headers(result)

        if cfg.body_schema is not None:
            ctx.body = await validate_body(request, cfg.body_schema)

        result = await handler(request, ctx)
        return format_result(result, ctx.request_id, headers=extra_headers)
