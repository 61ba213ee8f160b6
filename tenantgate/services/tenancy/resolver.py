"""Tenant resolution: request host (or dev override) → tenant record.

Resolution order:
1. Dev override token, only when the process started in dev mode.
2. ``<label>.<BASE_DOMAIN>`` → lookup by slug.
3. Registered custom host → lookup by host, then the static
   TENANT_DOMAIN_MAP fallback.
4. Nothing found, or the tenant is soft-deleted → NotFound.

Host-based resolution is authoritative because custom hosts are only
registered after domain-control validation. The override header carries
no such proof, so the override strategy is chosen once at startup: a
process started without DEV_MODE holds a DisabledOverridePolicy, which
discards the token without looking at it.

Every failure is the same NotFound to callers. The reason field is for
logs only.
"""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Union

import structlog

from tenantgate.core.config import Settings
from tenantgate.core.exceptions import RegistryUnavailableError
from tenantgate.schemas.tenant import TenantRecord
from tenantgate.services.tenancy.hostname import normalize_host, subdomain_label
from tenantgate.services.tenancy.registry import TenantRegistry

logger = structlog.get_logger(__name__)

OVERRIDE_PATTERN = re.compile(r"^[a-z0-9-]{1,63}$", re.IGNORECASE | re.ASCII)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Resolved:
    tenant: TenantRecord
    via: str  # 'override' | 'subdomain' | 'custom_host' | 'domain_map'


@dataclass(frozen=True)
class NotFound:
    # 'no_host' | 'unknown_host' | 'deleted' | 'registry_unavailable'
    reason: str


ResolutionResult = Union[Resolved, NotFound]


# ---------------------------------------------------------------------------
# Override strategies
# ---------------------------------------------------------------------------


class OverridePolicy(ABC):
    """Decides whether a client-supplied override token may be used."""

    @abstractmethod
    def accept(self, token: str | None) -> str | None:
        """Return the tenant key to resolve directly, or None."""


class DisabledOverridePolicy(OverridePolicy):
    """Production strategy: the override input never influences resolution."""

    def accept(self, token: str | None) -> str | None:
        return None


class DevOverridePolicy(OverridePolicy):
    """Development strategy: a syntactically valid token is used as a tenant key."""

    def accept(self, token: str | None) -> str | None:
        if not token:
            return None
        token = token.strip()
        if not OVERRIDE_PATTERN.fullmatch(token):
            logger.warning("tenant_override_rejected", token_length=len(token))
            return None
        return token.lower()


def build_override_policy(settings: Settings) -> OverridePolicy:
    """Select the override strategy once, at startup."""
    if settings.dev_mode:
        logger.warning("tenant_override_enabled", app_env=settings.app_env)
        return DevOverridePolicy()
    return DisabledOverridePolicy()


def parse_domain_map(raw: str | None) -> dict[str, str]:
    """Parse TENANT_DOMAIN_MAP (JSON object host → slug).

    Hosts are normalized like request hosts. Invalid JSON or a non-object
    value is logged and treated as an empty map.
    """
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.error("tenant_domain_map_invalid", error=str(e))
        return {}
    if not isinstance(parsed, dict):
        logger.error("tenant_domain_map_invalid", error="expected a JSON object")
        return {}

    domain_map: dict[str, str] = {}
    for host, slug in parsed.items():
        normalized = normalize_host(host)
        if normalized is None or not isinstance(slug, str) or not slug:
            logger.warning("tenant_domain_map_entry_skipped", host=host)
            continue
        domain_map[normalized] = slug.lower()
    return domain_map


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class TenantResolver:
    """Maps a request to a tenant. Stateless apart from its injected collaborators."""

    def __init__(
        self,
        registry: TenantRegistry,
        base_domain: str,
        override_policy: OverridePolicy,
        domain_map: Mapping[str, str] | None = None,
    ) -> None:
        self._registry = registry
        self._base_domain = base_domain.lower().strip(".")
        self._override_policy = override_policy
        self._domain_map = dict(domain_map or {})

    async def resolve(self, host: str | None, override: str | None = None) -> ResolutionResult:
        try:
            result = await self._resolve(host, override)
        except RegistryUnavailableError as e:
            logger.warning("tenant_registry_unavailable", host=host, error=e.message)
            return NotFound("registry_unavailable")

        if isinstance(result, Resolved):
            logger.debug(
                "tenant_resolved",
                tenant_id=result.tenant.tenant_id,
                via=result.via,
            )
        else:
            logger.info("tenant_not_found", host=host, reason=result.reason)
        return result

    async def _resolve(self, host: str | None, override: str | None) -> ResolutionResult:
        key = self._override_policy.accept(override)
        if key is not None:
            logger.info("tenant_override_used", key=key)
            return self._finish(await self._registry.get_by_key(key), "override")

        normalized = normalize_host(host)
        if normalized is None:
            return NotFound("no_host")

        label = subdomain_label(normalized, self._base_domain)
        if label is not None:
            return self._finish(await self._registry.get_by_key(label), "subdomain")

        record = await self._registry.get_by_host(normalized)
        if record is not None:
            return self._finish(record, "custom_host")

        mapped_slug = self._domain_map.get(normalized)
        if mapped_slug is not None:
            return self._finish(await self._registry.get_by_key(mapped_slug), "domain_map")

        return NotFound("unknown_host")

    @staticmethod
    def _finish(record: TenantRecord | None, via: str) -> ResolutionResult:
        if record is None:
            return NotFound("unknown_host")
        if record.is_deleted:
            return NotFound("deleted")
        return Resolved(tenant=record, via=via)
