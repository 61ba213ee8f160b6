"""Tenant record and tenant response schemas."""

from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from tenantgate.models.tenant import Tenant


class TenantRecord(BaseModel):
    """Durable description of a tenant as seen by the resolution layer.

    Immutable once built. This is also the JSON shape cached in the
    registry store.
    """

    model_config = ConfigDict(frozen=True)

    tenant_id: str
    slug: str
    primary_host: str
    custom_hosts: frozenset[str] = Field(default_factory=frozenset)
    sandbox_id: str | None = None
    tier: str = "free"
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @classmethod
    def from_orm_tenant(cls, tenant: "Tenant") -> "TenantRecord":
        """Build a record from a tenants row with its domains loaded."""
        return cls(
            tenant_id=tenant.id,
            slug=tenant.slug,
            primary_host=tenant.primary_host,
            custom_hosts=frozenset(d.hostname for d in tenant.domains),
            sandbox_id=tenant.sandbox_id,
            tier=tenant.tier,
            created_at=tenant.created_at,
            updated_at=tenant.updated_at,
            deleted_at=tenant.deleted_at,
        )


class TenantResponse(BaseModel):
    """GET /v1/tenant response body."""

    tenant_id: str
    slug: str
    sandbox_id: str
    tier: str
