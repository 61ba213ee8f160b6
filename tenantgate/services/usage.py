"""Usage write gate.

A usage row is written if and only if an operation completed
successfully. Timeouts, transport errors, rejected requests, internal
errors and partially streamed responses never produce a row; there is no
retry or backfill for them.

The write runs as a background task after the response has been sent,
with its own DB session. A failed write is logged and dropped: it must
never fail the already-successful operation.
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from fastapi import BackgroundTasks

from tenantgate.core.exceptions import InvalidSandboxIdError
from tenantgate.models.usage import Usage
from tenantgate.schemas.tenant import TenantRecord
from tenantgate.schemas.usage import OperationOutcome, OperationStatus, UsageRecordData
from tenantgate.services.tenancy.registry import SessionScope
from tenantgate.services.tenancy.sandbox import validate_sandbox_id

logger = structlog.get_logger(__name__)


def should_record(outcome: OperationOutcome) -> bool:
    """Only successful operations are recorded."""
    return outcome.status is OperationStatus.SUCCESS


def build_usage_record(
    outcome: OperationOutcome,
    tenant: TenantRecord,
) -> UsageRecordData | None:
    """Assemble the usage payload, or None when nothing should be written.

    Raises InvalidSandboxIdError if the tenant has no well-formed sandbox id.
    """
    if not should_record(outcome):
        return None

    return UsageRecordData(
        tenant_id=tenant.tenant_id,
        sandbox_id=validate_sandbox_id(tenant.sandbox_id),
        model_identifier=outcome.model_identifier,
        input_units=outcome.input_units,
        output_units=outcome.output_units,
        latency_ms=outcome.latency_ms,
        created_at=outcome.completed_at or datetime.now(timezone.utc),
    )


class UsageWriter:
    """Persists usage rows. Best effort."""

    def __init__(self, session_scope: SessionScope) -> None:
        self._session_scope = session_scope

    async def write(self, record: UsageRecordData) -> None:
        try:
            async with self._session_scope() as db:
                db.add(
                    Usage(
                        tenant_id=record.tenant_id,
                        sandbox_id=record.sandbox_id,
                        model=record.model_identifier,
                        input_units=record.input_units,
                        output_units=record.output_units,
                        latency_ms=record.latency_ms,
                        created_at=record.created_at,
                    )
                )
                await db.flush()
        except Exception as e:
            logger.error(
                "usage_write_failed",
                tenant_id=record.tenant_id,
                model=record.model_identifier,
                error=str(e),
            )
            return

        logger.debug(
            "usage_recorded",
            tenant_id=record.tenant_id,
            sandbox_id=record.sandbox_id,
            model=record.model_identifier,
            input_units=record.input_units,
            output_units=record.output_units,
        )


class UsageGate:
    """Decides per completed operation whether to record usage, and schedules the write."""

    def __init__(self, writer: UsageWriter) -> None:
        self._writer = writer

    def submit(
        self,
        outcome: OperationOutcome,
        tenant: TenantRecord,
        background: BackgroundTasks,
    ) -> bool:
        """Schedule a usage write for a successful outcome. Returns True if scheduled."""
        try:
            record = build_usage_record(outcome, tenant)
        except InvalidSandboxIdError as e:
            logger.error(
                "usage_sandbox_id_invalid",
                tenant_id=tenant.tenant_id,
                error=e.message,
            )
            return False

        if record is None:
            logger.debug(
                "usage_skipped",
                tenant_id=tenant.tenant_id,
                status=outcome.status.value,
            )
            return False

        background.add_task(self._writer.write, record)
        return True
