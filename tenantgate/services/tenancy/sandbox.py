"""Sandbox identifier derivation, validation and allocation.

A sandbox identifier names a tenant's backing resources (buckets,
containers, databases) in every downstream service, so it has to fit the
shortest length limit and the strictest charset among them:

    sk-<first 16 hex chars of sha256(tenant_id)>

19 characters of ``[a-z0-9-]``. The derivation is deterministic and one-way:
anything holding a tenant_id can recompute it, nothing can reverse it.

In the astronomically unlikely event that two tenants hash to the same
identifier, the later one gets ``-1``, ``-2``, ... appended.
"""

from __future__ import annotations

import hashlib
import re
import uuid

import structlog
from sqlalchemy import select, update

from tenantgate.core.exceptions import InvalidSandboxIdError, SandboxIdCollisionError
from tenantgate.models.tenant import Tenant
from tenantgate.schemas.tenant import TenantRecord
from tenantgate.services.tenancy.registry import (
    CachedTenantRegistry,
    RegistryStore,
    SessionScope,
)

logger = structlog.get_logger(__name__)

SANDBOX_ID_PREFIX = "sk-"
SANDBOX_HEX_WIDTH = 16
MAX_COLLISION_SUFFIX = 99

SANDBOX_ID_PATTERN = re.compile(r"^sk-[a-f0-9]{16}(?:-[1-9][0-9]?)?$")

_INDEX_PREFIX = "sandbox:"


def derive_sandbox_id(tenant_id: str | uuid.UUID) -> str:
    """Deterministic sandbox identifier for a tenant_id."""
    digest = hashlib.sha256(str(tenant_id).encode("utf-8")).hexdigest()
    return f"{SANDBOX_ID_PREFIX}{digest[:SANDBOX_HEX_WIDTH]}"


def is_valid_sandbox_id(value: object) -> bool:
    return isinstance(value, str) and SANDBOX_ID_PATTERN.fullmatch(value) is not None


def validate_sandbox_id(value: object) -> str:
    """Return value unchanged if it is a well-formed sandbox id.

    Raises InvalidSandboxIdError otherwise. Callers binding a resource
    name must not try to repair the value.
    """
    if not is_valid_sandbox_id(value):
        raise InvalidSandboxIdError(f"Malformed sandbox identifier: {value!r}")
    return value  # type: ignore[return-value]


class SandboxIdAllocator:
    """Claims a sandbox identifier that no other tenant holds.

    A candidate is taken only if no other tenant has it persisted in
    ``tenants.sandbox_id`` and it can be indexed as
    ``sandbox:<id> -> tenant_id`` with put-if-absent. The Redis index
    serializes concurrent claims; the table is the durable record, so an
    evicted index entry cannot hand out an identifier twice. Re-allocating
    for the same tenant returns the identifier it already holds.
    """

    def __init__(self, store: RegistryStore, session_scope: SessionScope) -> None:
        self._store = store
        self._session_scope = session_scope

    async def allocate(self, tenant_id: str) -> str:
        base = derive_sandbox_id(tenant_id)
        for attempt in range(MAX_COLLISION_SUFFIX + 1):
            candidate = base if attempt == 0 else f"{base}-{attempt}"
            key = f"{_INDEX_PREFIX}{candidate}"

            persisted_owner = await self._persisted_owner(candidate)
            if persisted_owner == tenant_id:
                # Restore the index entry if it was evicted.
                await self._store.put_if_absent(key, tenant_id)
                return candidate

            if persisted_owner is None:
                if await self._store.put_if_absent(key, tenant_id):
                    return candidate
                if await self._store.get(key) == tenant_id:
                    return candidate

            logger.warning(
                "sandbox_id_collision",
                candidate=candidate,
                tenant_id=tenant_id,
                attempt=attempt,
            )

        raise SandboxIdCollisionError(
            f"No free sandbox identifier for tenant {tenant_id} after "
            f"{MAX_COLLISION_SUFFIX} suffixes"
        )

    async def _persisted_owner(self, candidate: str) -> str | None:
        async with self._session_scope() as db:
            result = await db.execute(
                select(Tenant.id).where(Tenant.sandbox_id == candidate)
            )
            return result.scalar_one_or_none()


class SandboxProvisioner:
    """Assigns and persists a sandbox identifier the first time a tenant needs one."""

    def __init__(
        self,
        allocator: SandboxIdAllocator,
        session_scope: SessionScope,
        cache: CachedTenantRegistry | None = None,
    ) -> None:
        self._allocator = allocator
        self._session_scope = session_scope
        self._cache = cache

    async def ensure(self, record: TenantRecord) -> TenantRecord:
        """Return record with sandbox_id set, allocating and storing it if missing."""
        if record.sandbox_id is not None:
            return record

        sandbox_id = validate_sandbox_id(
            await self._allocator.allocate(record.tenant_id)
        )

        async with self._session_scope() as db:
            # Write only if still absent; a concurrent request may have won.
            await db.execute(
                update(Tenant)
                .where(Tenant.id == record.tenant_id, Tenant.sandbox_id.is_(None))
                .values(sandbox_id=sandbox_id)
            )
            result = await db.execute(
                select(Tenant.sandbox_id).where(Tenant.id == record.tenant_id)
            )
            stored = result.scalar_one_or_none() or sandbox_id

        updated = record.model_copy(update={"sandbox_id": stored})
        if self._cache is not None:
            await self._cache.refresh(updated)

        logger.info(
            "sandbox_id_assigned",
            tenant_id=record.tenant_id,
            sandbox_id=stored,
        )
        return updated
