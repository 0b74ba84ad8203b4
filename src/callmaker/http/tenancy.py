from __future__ import annotations

from typing import Any, Dict, Optional

from callmaker.exceptions import NoOrganizationError, NotFoundError
from callmaker.http.context import RequestContext
from callmaker.logging import bind_request_context, log_security_event


def scope_tenant(ctx: RequestContext, *, require_organization: bool) -> None:
    """
    Tenant stage. Guarantees a non-empty ctx.organization_id whenever the
    route asked for one. Filtering queries by it stays with the handler;
    tenant_filter/ensure_same_tenant below are the helpers for that.
    """
    org_id = ctx.session.organization_id if ctx.session else None

    if require_organization and not org_id:
        log_security_event("missing_organization", user_id=ctx.user_id, route=ctx.route)
        raise NoOrganizationError()

    ctx.organization_id = org_id or None
    if ctx.organization_id:
        bind_request_context(organization_id=ctx.organization_id)


def _require_org(ctx: RequestContext) -> str:
    if not ctx.organization_id:
        # Handler used a tenant helper on a route registered without require_organization
        raise RuntimeError(f"route {ctx.route!r} has no organization scope")
    return ctx.organization_id


def tenant_filter(ctx: RequestContext, **filters: Any) -> Dict[str, Any]:
    """
    Query filters with the caller's organization pinned in. A conflicting
    organization_id in filters is overridden, never trusted.
    """
    return {**filters, "organization_id": _require_org(ctx)}


def ensure_same_tenant(ctx: RequestContext, owner_organization_id: Optional[str], resource: str = "Resource") -> None:
    """
    Reject cross-tenant access to a loaded record. Reported as not-found so
    callers cannot discover ids that exist in other organizations.
    """
    if owner_organization_id != _require_org(ctx):
        log_security_event(
            "cross_tenant_access",
            user_id=ctx.user_id,
            organization_id=ctx.organization_id,
            resource=resource,
        )
        raise NotFoundError(resource)
