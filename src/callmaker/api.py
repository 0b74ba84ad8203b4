"""
Built-in routes, registered through the pipeline like any business route.

GET /api/health   public, unthrottled; limiter backend and Redis reachability
GET /api/session  the caller's session and organization scope
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter
from redis.asyncio import Redis
from starlette.requests import Request

from callmaker import __version__
from callmaker.http.context import RequestContext
from callmaker.http.pipeline import ApiPipeline
from callmaker.redis import ping_redis


def build_router(pipeline: ApiPipeline, *, redis: Optional[Redis] = None) -> APIRouter:
    router = APIRouter(prefix="/api", tags=["Pipeline"])
    backend = pipeline.settings.rate_limit_backend

    @pipeline.public_handler(route="GET /api/health", rate_limit=False)
    async def health(request: Request, ctx: RequestContext) -> Dict[str, Any]:
        if redis is None:
            redis_status = "disabled"
        else:
            redis_status = "ok" if await ping_redis(redis) else "unavailable"
        degraded = backend == "redis" and redis_status != "ok"
        return {
            "status": "degraded" if degraded else "ok",
            "version": __version__,
            "environment": pipeline.settings.environment,
            "checks": {"rateLimiter": backend, "redis": redis_status},
        }

    @pipeline.handler(route="GET /api/session", require_organization=False)
    async def current_session(request: Request, ctx: RequestContext) -> Dict[str, Any]:
        """Who am I: the session as the pipeline resolved it."""
        return {"session": ctx.session.to_public_dict(), "organizationId": ctx.organization_id}

    router.add_api_route("/health", health, methods=["GET"])
    router.add_api_route("/session", current_session, methods=["GET"])
    return router
