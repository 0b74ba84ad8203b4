import pytest

from callmaker.http.pipeline import ApiPipeline, RouteConfig
from callmaker.http.rate_limit import RATE_LIMITS, RateLimitConfig
from callmaker.roles import ADMIN_ROLES, Role


def test_defaults():
    cfg = RouteConfig(route="GET /api/x")
    assert cfg.require_auth is True
    assert cfg.require_organization is True
    assert cfg.allowed_roles is None
    assert cfg.rate_limit_config == RATE_LIMITS["standard"]


def test_organization_follows_auth():
    assert RouteConfig(require_auth=False).require_organization is False
    assert RouteConfig(require_organization=False).require_organization is False


def test_roles_and_organization_imply_auth():
    cfg = RouteConfig(require_auth=False, allowed_roles=["admin"])
    assert cfg.require_auth is True
    assert cfg.allowed_roles == frozenset({Role.ADMIN})

    assert RouteConfig(require_auth=False, require_organization=True).require_auth is True


def test_empty_role_list_means_unrestricted():
    assert RouteConfig(allowed_roles=[]).allowed_roles is None


def test_unknown_role_is_a_registration_error():
    with pytest.raises(ValueError):
        RouteConfig(allowed_roles=["OWNER"])


def test_rate_limit_options():
    assert RouteConfig(rate_limit=False).rate_limit_config is None
    assert RouteConfig(rate_limit="ai").rate_limit_config == RATE_LIMITS["ai"]
    custom = RateLimitConfig(3, 10)
    assert RouteConfig(rate_limit=custom).rate_limit_config is custom
    with pytest.raises(ValueError):
        RouteConfig(rate_limit="turbo")
    with pytest.raises(TypeError):
        RouteConfig(rate_limit=5)


def test_shortcuts(settings, limiter):
    resolver = object()
    pipeline = ApiPipeline(resolver, limiter, settings=settings)
    assert pipeline.session_resolver is resolver

    async def handler(request, ctx):
        return None

    public = pipeline.public_handler(route="GET /p", require_auth=True)(handler).route_config
    assert public.require_auth is False and public.require_organization is False

    admin = pipeline.admin_handler(route="GET /a")(handler).route_config
    assert admin.allowed_roles == ADMIN_ROLES
    assert admin.rate_limit_config == RATE_LIMITS["admin"]

    webhook = pipeline.webhook_handler(route="POST /w")(handler).route_config
    assert webhook.require_auth is False
    assert webhook.rate_limit_config == RATE_LIMITS["webhook"]


def test_handler_overrides_shared_config(settings, limiter):
    pipeline = ApiPipeline(object(), limiter, settings=settings)
    base = RouteConfig(route="GET /api/base", rate_limit="auth")

    async def handler(request, ctx):
        """Docs survive registration."""

    endpoint = pipeline.handler(base, route="GET /api/other")(handler)
    assert endpoint.route_config.route == "GET /api/other"
    assert endpoint.route_config.rate_limit_config == RATE_LIMITS["auth"]
    assert endpoint.__name__ == "handler"
    assert endpoint.__doc__ == "Docs survive registration."
    assert not hasattr(endpoint, "__wrapped__")


def test_handler_override_recomputes_derived_flags(settings, limiter):
    pipeline = ApiPipeline(object(), limiter, settings=settings)

    async def handler(request, ctx):
        return None

    opened = pipeline.handler(RouteConfig(route="GET /api/base"), require_auth=False)(handler).route_config
    assert opened.require_auth is False
    assert opened.require_organization is False

    # an explicit organization requirement on the base still forces auth
    scoped = RouteConfig(route="GET /api/scoped", require_organization=True)
    assert pipeline.handler(scoped, require_auth=False)(handler).route_config.require_auth is True

    # roles on the base still force auth
    admins = RouteConfig(route="GET /api/admins", allowed_roles=["ADMIN"])
    gated = pipeline.handler(admins, require_auth=False)(handler).route_config
    assert gated.require_auth is True
    assert gated.allowed_roles == frozenset({Role.ADMIN})
