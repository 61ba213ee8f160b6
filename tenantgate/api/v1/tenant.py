"""Resolved tenant endpoint."""

from fastapi import APIRouter, Depends

from tenantgate.api.deps import get_current_tenant
from tenantgate.schemas.tenant import TenantRecord, TenantResponse
from tenantgate.services.tenancy.sandbox import validate_sandbox_id

router = APIRouter(prefix="/tenant", tags=["tenant"])


@router.get("", response_model=TenantResponse)
async def get_tenant(
    tenant: TenantRecord = Depends(get_current_tenant),
) -> TenantResponse:
    """Return the identifiers of the tenant this request resolved to."""
    return TenantResponse(
        tenant_id=tenant.tenant_id,
        slug=tenant.slug,
        sandbox_id=validate_sandbox_id(tenant.sandbox_id),
        tier=tenant.tier,
    )
