"""Tenant resolution and sandbox identity.

Use explicit imports:
    from tenantgate.services.tenancy.resolver import TenantResolver
    from tenantgate.services.tenancy.sandbox import derive_sandbox_id
"""
