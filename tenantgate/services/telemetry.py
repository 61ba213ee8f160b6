"""Tenant metadata for downstream telemetry.

The metadata channel only carries flat string key/value pairs.
"""

from __future__ import annotations

import structlog

from tenantgate.schemas.tenant import TenantRecord


def tenant_metadata(tenant: TenantRecord) -> dict[str, str]:
    """Flat string metadata identifying a resolved tenant."""
    metadata = {
        "tenant_id": str(tenant.tenant_id),
        "tenant_slug": tenant.slug,
    }
    if tenant.sandbox_id:
        metadata["sandbox_id"] = tenant.sandbox_id
    return metadata


def bind_tenant_context(tenant: TenantRecord) -> None:
    """Attach tenant metadata to every log event for the rest of this request."""
    structlog.contextvars.bind_contextvars(**tenant_metadata(tenant))
