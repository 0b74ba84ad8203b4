from callmaker.http.context import RequestContext
from callmaker.http.pipeline import ApiPipeline, RouteConfig
from callmaker.http.rate_limit import RATE_LIMITS, RateLimitConfig
from callmaker.http.responses import ApiResult
from callmaker.http.session import AuthenticatedSession
from callmaker.http.tenancy import ensure_same_tenant, tenant_filter

__all__ = [
    "ApiPipeline",
    "ApiResult",
    "AuthenticatedSession",
    "RATE_LIMITS",
    "RateLimitConfig",
    "RequestContext",
    "RouteConfig",
    "ensure_same_tenant",
    "tenant_filter",
]
