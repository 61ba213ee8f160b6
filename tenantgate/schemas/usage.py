"""Usage gate request/response schemas."""

from datetime import datetime
from enum import Enum

from pydantic import AwareDatetime, BaseModel, Field


class OperationStatus(str, Enum):
    """How a completed tenant-scoped operation ended."""

    SUCCESS = "success"
    TRANSPORT_ERROR = "transport_error"
    TIMEOUT = "timeout"
    REJECTED = "rejected"
    INTERNAL_ERROR = "internal_error"
    ABORTED = "aborted"  # partially streamed, then cut off


class OperationOutcome(BaseModel):
    """POST /v1/usage request body: the outcome of one completed operation."""

    status: OperationStatus
    model_identifier: str = Field(min_length=1)
    input_units: int = Field(default=0, ge=0)
    output_units: int = Field(default=0, ge=0)
    latency_ms: int | None = Field(default=None, ge=0)
    # Written to a timestamptz column; naive values are rejected.
    completed_at: AwareDatetime | None = None


class UsageRecordData(BaseModel):
    """Payload for one usage row."""

    tenant_id: str
    sandbox_id: str
    model_identifier: str
    input_units: int
    output_units: int
    latency_ms: int | None
    created_at: datetime


class UsageSubmitResponse(BaseModel):
    """POST /v1/usage response body."""

    recorded: bool
