"""Tenant registry: keyed lookup of tenant records.

The registry is injected wherever it is needed, never imported as a
module-level singleton. Production wiring stacks a Redis read-through
cache (CachedTenantRegistry) on top of the Postgres tables
(PostgresTenantRegistry); tests substitute an in-memory fake.

Both lookups are read-only apart from cache fills. Backend failures on the
read path surface as RegistryUnavailableError; a failed cache fill is
logged and the looked-up record is returned regardless.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from typing import Any, Protocol

import structlog
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.core.exceptions import RegistryUnavailableError
from tenantgate.models.tenant import Tenant, TenantDomain
from tenantgate.schemas.tenant import TenantRecord

logger = structlog.get_logger(__name__)

SessionScope = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class RegistryStore(Protocol):
    """Key-value store with get-by-key and put-if-absent semantics.

    Implemented by tenantgate.db.redis.RedisClient.
    """

    async def get(self, key: str) -> str | None: ...

    async def put_if_absent(self, key: str, value: str) -> bool: ...

    async def get_json(self, key: str) -> Any | None: ...

    async def set_json(self, key: str, value: Any, ttl_seconds: int | None = None) -> None: ...


class TenantRegistry(ABC):
    """Abstract lookup interface used by the resolver."""

    @abstractmethod
    async def get_by_key(self, key: str) -> TenantRecord | None:
        """Look up a tenant by its slug."""

    @abstractmethod
    async def get_by_host(self, host: str) -> TenantRecord | None:
        """Look up a tenant by a registered custom hostname (normalized)."""


class PostgresTenantRegistry(TenantRegistry):
    """Reads tenants and tenant_domains through short-lived sessions."""

    def __init__(self, session_scope: SessionScope) -> None:
        self._session_scope = session_scope

    async def get_by_key(self, key: str) -> TenantRecord | None:
        async with self._session_scope() as db:
            result = await db.execute(select(Tenant).where(Tenant.slug == key))
            tenant = result.scalar_one_or_none()
            return TenantRecord.from_orm_tenant(tenant) if tenant else None

    async def get_by_host(self, host: str) -> TenantRecord | None:
        async with self._session_scope() as db:
            result = await db.execute(
                select(Tenant)
                .join(TenantDomain, TenantDomain.tenant_id == Tenant.id)
                .where(TenantDomain.hostname == host)
            )
            tenant = result.scalar_one_or_none()
            return TenantRecord.from_orm_tenant(tenant) if tenant else None


class CachedTenantRegistry(TenantRegistry):
    """Read-through cache over another registry.

    Hits are served from the store; misses fall through to the inner
    registry and found records are written back with a TTL. Misses are
    never cached, so a newly registered host is visible immediately.
    """

    KEY_PREFIX = "tenant:key:"
    DOMAIN_PREFIX = "tenant:domain:"

    def __init__(
        self,
        inner: TenantRegistry,
        store: RegistryStore,
        ttl_seconds: int,
    ) -> None:
        self._inner = inner
        self._store = store
        self._ttl = ttl_seconds

    async def get_by_key(self, key: str) -> TenantRecord | None:
        cache_key = f"{self.KEY_PREFIX}{key}"
        cached = await self._read(cache_key)
        if cached is not None:
            return cached
        record = await self._inner.get_by_key(key)
        if record is not None:
            await self._write(cache_key, record)
        return record

    async def get_by_host(self, host: str) -> TenantRecord | None:
        cache_key = f"{self.DOMAIN_PREFIX}{host}"
        cached = await self._read(cache_key)
        if cached is not None:
            return cached
        record = await self._inner.get_by_host(host)
        if record is not None:
            await self._write(cache_key, record)
        return record

    async def refresh(self, record: TenantRecord) -> None:
        """Overwrite every cached entry for a record after it changed."""
        await self._write(f"{self.KEY_PREFIX}{record.slug}", record)
        for host in record.custom_hosts:
            await self._write(f"{self.DOMAIN_PREFIX}{host}", record)

    async def _read(self, cache_key: str) -> TenantRecord | None:
        payload = await self._store.get_json(cache_key)
        if payload is None:
            return None
        try:
            return TenantRecord.model_validate(payload)
        except ValidationError as e:
            logger.warning("tenant_cache_entry_invalid", key=cache_key, error=str(e))
            return None

    async def _write(self, cache_key: str, record: TenantRecord) -> None:
        # A failed fill leaves the entry cold; the caller still gets the record.
        try:
            await self._store.set_json(
                cache_key, record.model_dump(mode="json"), ttl_seconds=self._ttl
            )
        except RegistryUnavailableError as e:
            logger.warning("tenant_cache_fill_failed", key=cache_key, error=e.message)
