"""FastAPI application entrypoint.

All routes prefixed /v1. Tenant-scoped routes resolve the tenant from the
Host header through the TenantResolver stored on app.state.

The resolver, its override strategy and the TENANT_DOMAIN_MAP fallback
are built once during the lifespan from settings read at startup.
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tenantgate.api.v1.health import router as health_router
from tenantgate.api.v1.tenant import router as tenant_router
from tenantgate.api.v1.usage import router as usage_router
from tenantgate.core.config import settings
from tenantgate.core.exceptions import TenantGateError
from tenantgate.db.postgres import close_postgres, init_db, session_scope
from tenantgate.db.redis import close_redis, get_redis
from tenantgate.services.tenancy.registry import (
    CachedTenantRegistry,
    PostgresTenantRegistry,
)
from tenantgate.services.tenancy.resolver import (
    TenantResolver,
    build_override_policy,
    parse_domain_map,
)
from tenantgate.services.tenancy.sandbox import SandboxIdAllocator, SandboxProvisioner
from tenantgate.services.usage import UsageGate, UsageWriter


def _configure_logging() -> None:
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    renderer = (
        structlog.processors.JSONRenderer()
        if settings.is_production
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


_configure_logging()

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup and shutdown lifecycle.

    Creates the tenant registry stack, resolver, sandbox provisioner and
    usage gate and attaches them to app.state. Retrieved in request
    handlers via Depends() in tenantgate/api/deps.py.
    """
    # --- Startup ---
    logger.info(
        "app_startup",
        env=settings.app_env,
        base_domain=settings.base_domain,
        dev_mode=settings.dev_mode,
    )

    await init_db()

    redis = await get_redis()
    registry = CachedTenantRegistry(
        inner=PostgresTenantRegistry(session_scope),
        store=redis,
        ttl_seconds=settings.tenant_cache_ttl_seconds,
    )
    app.state.resolver = TenantResolver(
        registry=registry,
        base_domain=settings.base_domain,
        override_policy=build_override_policy(settings),
        domain_map=parse_domain_map(settings.tenant_domain_map),
    )
    app.state.provisioner = SandboxProvisioner(
        allocator=SandboxIdAllocator(redis, session_scope),
        session_scope=session_scope,
        cache=registry,
    )
    app.state.usage_gate = UsageGate(UsageWriter(session_scope))

    logger.info("app_services_ready")
    yield

    # --- Shutdown ---
    logger.info("app_shutdown")

    await close_redis()
    await close_postgres()


app = FastAPI(
    title="tenantgate",
    description="Tenant resolution, sandbox identity and usage recording.",
    version="1.0.0",
    lifespan=lifespan,
)


@app.middleware("http")
async def reset_log_context(request: Request, call_next):
    """Start every request with empty structlog context."""
    structlog.contextvars.clear_contextvars()
    return await call_next(request)


@app.exception_handler(TenantGateError)
async def tenantgate_error_handler(request: Request, exc: TenantGateError) -> JSONResponse:
    """Structured error response for all tenantgate exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )


# Mount all v1 routers
app.include_router(health_router, prefix="/v1")
app.include_router(tenant_router, prefix="/v1")
app.include_router(usage_router, prefix="/v1")
