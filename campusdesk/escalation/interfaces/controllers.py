"""
Escalation Controllers (API Routes)
===================================

Cron trigger for the escalation scanner.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from campusdesk.escalation.application.services import EscalationScanner
from campusdesk.shared.api.dependencies import get_container, verify_cron_secret

router = APIRouter(prefix="/cron", tags=["Cron"])


class EscalationScanResponse(BaseModel):
    acknowledgement_escalated: int
    resolution_escalated: int
    total: int


def get_escalation_scanner(container=Depends(get_container)) -> EscalationScanner:
    return container.escalation_scanner


@router.post(
    "/escalate-tickets",
    response_model=EscalationScanResponse,
    dependencies=[Depends(verify_cron_secret)],
    summary="Run the escalation scan",
)
async def escalate_tickets(
    scanner: EscalationScanner = Depends(get_escalation_scanner),
) -> EscalationScanResponse:
    """Idempotent: a second call with no newly overdue tickets escalates nothing."""
    result = await scanner.run()
    return EscalationScanResponse(
        acknowledgement_escalated=result.acknowledgement_escalated,
        resolution_escalated=result.resolution_escalated,
        total=result.total,
    )
