"""Integration tests for the tenant-scoped HTTP surface.

Services on app.state are replaced through dependency_overrides; the
lifespan never runs, so no Postgres or Redis is touched.

Tests:
  - unknown host, soft-deleted tenant and registry outage render the
    identical 404 body
  - GET /v1/tenant returns the resolved tenant's identifiers
  - the override header is ignored unless the resolver was built with
    the dev strategy
  - POST /v1/usage returns 202 and schedules a write only on success
"""

from __future__ import annotations

from typing import Iterator
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from tenantgate.api.deps import get_provisioner, get_resolver, get_usage_gate
from tenantgate.core.config import settings
from tenantgate.core.exceptions import SandboxIdCollisionError
from tenantgate.main import app
from tenantgate.schemas.tenant import TenantRecord
from tenantgate.services.tenancy.resolver import (
    DevOverridePolicy,
    DisabledOverridePolicy,
    OverridePolicy,
    TenantResolver,
)
from tenantgate.services.usage import UsageGate, UsageWriter
from tests.conftest import BASE_DOMAIN, InMemoryTenantRegistry


class _Services:
    """Handles on the fakes wired into the app for one test."""

    def __init__(self, registry: InMemoryTenantRegistry) -> None:
        self.registry = registry
        self.provisioner = MagicMock()
        self.provisioner.ensure = AsyncMock(side_effect=lambda record: record)
        self.writer = MagicMock(spec=UsageWriter)
        self.writer.write = AsyncMock()
        self.override_policy: OverridePolicy = DisabledOverridePolicy()

    def resolver(self) -> TenantResolver:
        return TenantResolver(
            registry=self.registry,
            base_domain=BASE_DOMAIN,
            override_policy=self.override_policy,
        )


@pytest.fixture
def services(registry: InMemoryTenantRegistry) -> Iterator[_Services]:
    svc = _Services(registry)
    app.dependency_overrides[get_resolver] = svc.resolver
    app.dependency_overrides[get_provisioner] = lambda: svc.provisioner
    app.dependency_overrides[get_usage_gate] = lambda: UsageGate(svc.writer)
    yield svc
    app.dependency_overrides.clear()


@pytest.fixture
def client(services: _Services) -> TestClient:
    return TestClient(app)


def _host(host: str) -> dict[str, str]:
    return {"host": host}


class TestHealth:
    def test_health_needs_no_tenant(self, client: TestClient) -> None:
        response = client.get("/v1/health", headers=_host("nowhere.example"))
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestTenantEndpoint:
    """Tests for GET /v1/tenant."""

    def test_subdomain(self, client: TestClient, acme_tenant: TenantRecord) -> None:
        response = client.get("/v1/tenant", headers=_host(f"acme.{BASE_DOMAIN}"))

        assert response.status_code == 200
        assert response.json() == {
            "tenant_id": acme_tenant.tenant_id,
            "slug": "acme",
            "sandbox_id": acme_tenant.sandbox_id,
            "tier": "pro",
        }

    def test_custom_host_with_port(
        self, client: TestClient, custom_tenant: TenantRecord
    ) -> None:
        response = client.get("/v1/tenant", headers=_host("APP.CustomClient.example:443"))

        assert response.status_code == 200
        assert response.json()["tenant_id"] == custom_tenant.tenant_id

    def test_failures_are_indistinguishable(
        self, client: TestClient, services: _Services
    ) -> None:
        unknown = client.get("/v1/tenant", headers=_host("unknown.example"))
        deleted = client.get("/v1/tenant", headers=_host("old.gone.example"))
        services.registry.unavailable = True
        outage = client.get("/v1/tenant", headers=_host(f"acme.{BASE_DOMAIN}"))

        assert unknown.status_code == deleted.status_code == outage.status_code == 404
        assert unknown.json() == deleted.json() == outage.json()
        assert unknown.json() == {
            "error": {"code": "TENANT_NOT_FOUND", "message": "Not found"}
        }

    def test_override_ignored_without_dev_mode(
        self, client: TestClient, services: _Services
    ) -> None:
        response = client.get(
            "/v1/tenant",
            headers={"host": "unknown.example", settings.override_header: "acme"},
        )

        assert response.status_code == 404
        assert services.registry.key_calls == []

    def test_override_used_in_dev_mode(
        self, client: TestClient, services: _Services, acme_tenant: TenantRecord
    ) -> None:
        services.override_policy = DevOverridePolicy()

        response = client.get(
            "/v1/tenant",
            headers={"host": "unknown.example", settings.override_header: "ACME"},
        )

        assert response.status_code == 200
        assert response.json()["tenant_id"] == acme_tenant.tenant_id

    def test_provisioning_failure_still_resolves(
        self, client: TestClient, services: _Services, acme_tenant: TenantRecord
    ) -> None:
        unprovisioned = acme_tenant.model_copy(update={"sandbox_id": None})
        services.registry.add(unprovisioned)
        services.provisioner.ensure = AsyncMock(side_effect=SandboxIdCollisionError())

        response = client.get("/v1/tenant", headers=_host(f"acme.{BASE_DOMAIN}"))

        # Resolution succeeded; the sandbox-bound response fails validation.
        assert response.status_code == 500
        assert response.json()["error"]["code"] == "INVALID_SANDBOX_ID"


class TestUsageEndpoint:
    """Tests for POST /v1/usage."""

    def test_success_records(
        self, client: TestClient, services: _Services, acme_tenant: TenantRecord
    ) -> None:
        response = client.post(
            "/v1/usage",
            headers=_host(f"acme.{BASE_DOMAIN}"),
            json={
                "status": "success",
                "model_identifier": "gpt-test",
                "input_units": 10,
                "output_units": 4,
            },
        )

        assert response.status_code == 202
        assert response.json() == {"recorded": True}
        services.writer.write.assert_awaited_once()
        record = services.writer.write.await_args[0][0]
        assert record.tenant_id == acme_tenant.tenant_id
        assert record.sandbox_id == acme_tenant.sandbox_id

    def test_timeout_is_not_recorded(
        self, client: TestClient, services: _Services
    ) -> None:
        response = client.post(
            "/v1/usage",
            headers=_host(f"acme.{BASE_DOMAIN}"),
            json={"status": "timeout", "model_identifier": "gpt-test"},
        )

        assert response.status_code == 202
        assert response.json() == {"recorded": False}
        services.writer.write.assert_not_awaited()

    def test_unknown_tenant_is_not_recorded(
        self, client: TestClient, services: _Services
    ) -> None:
        response = client.post(
            "/v1/usage",
            headers=_host("unknown.example"),
            json={"status": "success", "model_identifier": "gpt-test"},
        )

        assert response.status_code == 404
        services.writer.write.assert_not_awaited()

    def test_invalid_body_rejected(self, client: TestClient) -> None:
        response = client.post(
            "/v1/usage",
            headers=_host(f"acme.{BASE_DOMAIN}"),
            json={"status": "success", "model_identifier": "", "input_units": -1},
        )

        assert response.status_code == 422

    def test_naive_completed_at_rejected(
        self, client: TestClient, services: _Services
    ) -> None:
        response = client.post(
            "/v1/usage",
            headers=_host(f"acme.{BASE_DOMAIN}"),
            json={
                "status": "success",
                "model_identifier": "gpt-test",
                "completed_at": "2026-03-01T12:00:00",
            },
        )

        assert response.status_code == 422
        services.writer.write.assert_not_awaited()
