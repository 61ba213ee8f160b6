"""Shared FastAPI dependencies — tenant resolution and service injection.

The resolver, sandbox provisioner and usage gate are created once during
the FastAPI lifespan and stored on app.state. All downstream code retrieves
them via Depends(), never by direct import, so tests can override them.
"""

import structlog
from fastapi import Depends, Request

from tenantgate.core.config import settings
from tenantgate.core.exceptions import TenantGateError, TenantNotFoundError
from tenantgate.schemas.tenant import TenantRecord
from tenantgate.services.telemetry import bind_tenant_context
from tenantgate.services.tenancy.resolver import NotFound, TenantResolver
from tenantgate.services.tenancy.sandbox import SandboxProvisioner
from tenantgate.services.usage import UsageGate

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Service singletons — retrieved from app.state (set during lifespan)
# ---------------------------------------------------------------------------

def get_resolver(request: Request) -> TenantResolver:
    """Return the resolver built at startup (override strategy already fixed)."""
    return request.app.state.resolver


def get_provisioner(request: Request) -> SandboxProvisioner:
    return request.app.state.provisioner


def get_usage_gate(request: Request) -> UsageGate:
    return request.app.state.usage_gate


# ---------------------------------------------------------------------------
# Tenant
# ---------------------------------------------------------------------------

async def get_current_tenant(
    request: Request,
    resolver: TenantResolver = Depends(get_resolver),
    provisioner: SandboxProvisioner = Depends(get_provisioner),
) -> TenantRecord:
    """Resolve the tenant for this request or raise the generic not-found error."""
    result = await resolver.resolve(
        request.headers.get("host"),
        request.headers.get(settings.override_header),
    )
    if isinstance(result, NotFound):
        raise TenantNotFoundError()

    tenant = result.tenant
    try:
        tenant = await provisioner.ensure(tenant)
    except TenantGateError as e:
        # The tenant is still resolved; bindings that need a sandbox id
        # fail individually when they validate it.
        logger.error(
            "sandbox_provisioning_failed",
            tenant_id=tenant.tenant_id,
            code=e.code,
            error=e.message,
        )

    bind_tenant_context(tenant)
    return tenant
