"""
Application factory.

    uvicorn callmaker.main:create_app --factory
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi

from callmaker import __version__
from callmaker.api import build_router
from callmaker.config import Settings, get_settings
from callmaker.http.error_handlers import register_exception_handlers
from callmaker.http.pipeline import ApiPipeline
from callmaker.http.rate_limit import RateLimiter, create_rate_limiter
from callmaker.http.session import JwtSessionResolver, SessionResolver
from callmaker.logging import get_logger, setup_logging
from callmaker.redis import close_redis, create_redis

logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    session_resolver: Optional[SessionResolver] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings)

    redis_client = create_redis(settings.redis_url) if settings.redis_url else None
    if session_resolver is None:
        session_resolver = JwtSessionResolver.from_settings(settings)
    # explicit None check: an empty InMemoryRateLimiter has len() == 0
    if rate_limiter is None:
        rate_limiter = create_rate_limiter(settings, redis_client)
    pipeline = ApiPipeline(session_resolver, rate_limiter, settings=settings)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        logger.info("app_startup", settings=settings.safe_dict())
        try:
            yield
        finally:
            if redis_client is not None:
                await close_redis(redis_client)
            logger.info("app_shutdown")

    app = FastAPI(
        title="CallMaker API",
        version=__version__,
        debug=settings.debug,
        lifespan=lifespan,
        swagger_ui_parameters={"persistAuthorization": True},
    )
    app.state.settings = settings
    app.state.pipeline = pipeline
    app.state.redis = redis_client

    app.include_router(build_router(pipeline, redis=redis_client))

    # Everything outside pipeline endpoints → same envelope
    register_exception_handlers(app, settings)

    # ---- Custom OpenAPI to add Bearer auth ----
    def custom_openapi():
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(title=app.title, version=app.version, routes=app.routes)
        schema.setdefault("components", {}).setdefault("securitySchemes", {})["bearerAuth"] = {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
        }
        schema["security"] = [{"bearerAuth": []}]
        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[method-assign]

    return app
