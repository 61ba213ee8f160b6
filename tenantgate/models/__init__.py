"""SQLAlchemy ORM models.

Individual models should be imported explicitly:
    from tenantgate.models.tenant import Tenant

All models are imported here so init_db() and Alembic see every table on
Base.metadata.
"""

from tenantgate.models.tenant import Tenant, TenantDomain
from tenantgate.models.usage import Usage

__all__ = [
    "Tenant",
    "TenantDomain",
    "Usage",
]
