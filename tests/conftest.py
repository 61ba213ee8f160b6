"""Shared pytest fixtures for the tenantgate test suite.

Provides:
  - mock_redis: Mock RedisClient with in-memory dict storage
  - registry: In-memory TenantRegistry fake
  - test_db / session_scope: Mock async DB session and a scope yielding it
  - acme_tenant, custom_tenant, deleted_tenant: sample TenantRecords

All external services are mocked in every test — no real Postgres or Redis.
"""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator
from unittest.mock import AsyncMock, MagicMock

import pytest

from tenantgate.core.exceptions import RegistryUnavailableError
from tenantgate.schemas.tenant import TenantRecord
from tenantgate.services.tenancy.registry import TenantRegistry
from tenantgate.services.tenancy.sandbox import derive_sandbox_id

BASE_DOMAIN = "basedomain.example"


# ---------------------------------------------------------------------------
# Mock Redis Client
# ---------------------------------------------------------------------------


class MockRedisClient:
    """In-memory mock of RedisClient for testing."""

    def __init__(self) -> None:
        self._store: dict[str, str] = {}
        self._ttls: dict[str, int] = {}

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def put_if_absent(self, key: str, value: str) -> bool:
        if key in self._store:
            return False
        self._store[key] = value
        return True

    async def set_json(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        self._store[key] = json.dumps(value)
        if ttl_seconds:
            self._ttls[key] = ttl_seconds

    async def get_json(self, key: str) -> Any | None:
        raw = self._store.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return None


# ---------------------------------------------------------------------------
# In-memory tenant registry
# ---------------------------------------------------------------------------


class InMemoryTenantRegistry(TenantRegistry):
    """TenantRegistry fake keyed by slug and custom host, with call tracking."""

    def __init__(self, records: list[TenantRecord] | None = None) -> None:
        self._by_key: dict[str, TenantRecord] = {}
        self._by_host: dict[str, TenantRecord] = {}
        self.key_calls: list[str] = []
        self.host_calls: list[str] = []
        self.unavailable = False
        for record in records or []:
            self.add(record)

    def add(self, record: TenantRecord) -> None:
        self._by_key[record.slug] = record
        for host in record.custom_hosts:
            self._by_host[host] = record

    async def get_by_key(self, key: str) -> TenantRecord | None:
        self.key_calls.append(key)
        if self.unavailable:
            raise RegistryUnavailableError()
        return self._by_key.get(key)

    async def get_by_host(self, host: str) -> TenantRecord | None:
        self.host_calls.append(host)
        if self.unavailable:
            raise RegistryUnavailableError()
        return self._by_host.get(host)


# ---------------------------------------------------------------------------
# Async Database Session (mock)
# ---------------------------------------------------------------------------


def make_mock_db() -> MagicMock:
    """Create a mock async DB session."""
    db = MagicMock()
    db.add = MagicMock()
    db.flush = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.execute = AsyncMock()
    db.close = AsyncMock()
    return db


def make_session_scope(db: Any):
    """Return a session_scope-compatible factory that always yields db."""

    @asynccontextmanager
    async def scope() -> AsyncIterator[Any]:
        yield db

    return scope


def make_empty_session_scope():
    """Return a session_scope whose queries all come back empty."""
    db = make_mock_db()
    result = MagicMock()
    result.scalar_one_or_none.return_value = None
    db.execute = AsyncMock(return_value=result)
    return make_session_scope(db)


@pytest.fixture
def test_db() -> MagicMock:
    return make_mock_db()


@pytest.fixture
def session_scope(test_db: MagicMock):
    return make_session_scope(test_db)


@pytest.fixture
def empty_scope():
    return make_empty_session_scope()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_redis() -> MockRedisClient:
    """Mock Redis client fixture."""
    return MockRedisClient()


@pytest.fixture
def acme_tenant() -> TenantRecord:
    """Tenant reachable only through its base-domain subdomain."""
    tenant_id = "11111111-1111-1111-1111-111111111111"
    return TenantRecord(
        tenant_id=tenant_id,
        slug="acme",
        primary_host=f"acme.{BASE_DOMAIN}",
        sandbox_id=derive_sandbox_id(tenant_id),
        tier="pro",
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def custom_tenant() -> TenantRecord:
    """Tenant with a registered custom host."""
    tenant_id = "42424242-4242-4242-4242-424242424242"
    return TenantRecord(
        tenant_id=tenant_id,
        slug="t-42",
        primary_host=f"t-42.{BASE_DOMAIN}",
        custom_hosts=frozenset({"app.customclient.example"}),
        sandbox_id=derive_sandbox_id(tenant_id),
    )


@pytest.fixture
def deleted_tenant() -> TenantRecord:
    """Soft-deleted tenant that still has a subdomain and a custom host."""
    tenant_id = "dddddddd-dddd-dddd-dddd-dddddddddddd"
    return TenantRecord(
        tenant_id=tenant_id,
        slug="gone",
        primary_host=f"gone.{BASE_DOMAIN}",
        custom_hosts=frozenset({"old.gone.example"}),
        sandbox_id=derive_sandbox_id(tenant_id),
        deleted_at=datetime(2026, 6, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def registry(
    acme_tenant: TenantRecord,
    custom_tenant: TenantRecord,
    deleted_tenant: TenantRecord,
) -> InMemoryTenantRegistry:
    return InMemoryTenantRegistry([acme_tenant, custom_tenant, deleted_tenant])
