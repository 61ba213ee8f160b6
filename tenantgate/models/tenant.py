"""Tenant and tenant domain ORM models."""

from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Index, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from tenantgate.core.config import settings
from tenantgate.db.postgres import Base
from tenantgate.services.tenancy.hostname import normalize_host


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Tenant(Base):
    __tablename__ = "tenants"

    # Opaque, immutable identifier assigned at provisioning (usually a UUID string).
    id: Mapped[str] = mapped_column(Text, primary_key=True)
    slug: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    primary_host: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    sandbox_id: Mapped[str | None] = mapped_column(Text, nullable=True, unique=True)
    tier: Mapped[str] = mapped_column(Text, nullable=False, default="free")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Custom hosts are always needed to build a TenantRecord, so load eagerly.
    domains: Mapped[list["TenantDomain"]] = relationship(
        back_populates="tenant", lazy="selectin"
    )

    __table_args__ = (Index("ix_tenants_slug", "slug"),)


class TenantDomain(Base):
    """A custom hostname registered to exactly one tenant.

    Rows are only inserted after out-of-band domain-control validation.
    Hosts under BASE_DOMAIN are refused, so a custom host never equals
    any tenant's primary_host. Stored hosts are normalized.
    """

    __tablename__ = "tenant_domains"

    hostname: Mapped[str] = mapped_column(Text, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(
        Text, ForeignKey("tenants.id"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    tenant: Mapped["Tenant"] = relationship(back_populates="domains")

    @validates("hostname")
    def _validate_hostname(self, key: str, value: str) -> str:
        host = normalize_host(value)
        if host is None:
            raise ValueError(f"Invalid custom hostname: {value!r}")
        base = settings.base_domain
        if host == base or host.endswith("." + base):
            raise ValueError(f"Custom hostname {host} is under BASE_DOMAIN")
        return host
