"""Usage reporting endpoint.

The edge runtime posts one outcome per completed operation. The response
is returned before the usage row is written.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, status

from tenantgate.api.deps import get_current_tenant, get_usage_gate
from tenantgate.schemas.tenant import TenantRecord
from tenantgate.schemas.usage import OperationOutcome, UsageSubmitResponse
from tenantgate.services.usage import UsageGate

router = APIRouter(prefix="/usage", tags=["usage"])


@router.post("", response_model=UsageSubmitResponse, status_code=status.HTTP_202_ACCEPTED)
async def submit_usage(
    body: OperationOutcome,
    background_tasks: BackgroundTasks,
    tenant: TenantRecord = Depends(get_current_tenant),
    gate: UsageGate = Depends(get_usage_gate),
) -> UsageSubmitResponse:
    """Run the usage gate for one completed operation."""
    recorded = gate.submit(body, tenant, background_tasks)
    return UsageSubmitResponse(recorded=recorded)
