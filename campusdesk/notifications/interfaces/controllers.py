"""
Outbox Controllers (API Routes)
===============================

Cron trigger for the dispatcher plus operator endpoints for failed events.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from campusdesk.core import ForbiddenException
from campusdesk.notifications.application.services import OutboxDispatcher
from campusdesk.shared.api.dependencies import get_actor, get_container, verify_cron_secret
from campusdesk.tickets.domain import Actor

cron_router = APIRouter(prefix="/cron", tags=["Cron"])
router = APIRouter(prefix="/outbox", tags=["Outbox"])


class FlushResponse(BaseModel):
    sent: int
    failed: int
    retried: int
    skipped: int
    still_pending: int
    deadline_reached: bool


class OutboxEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    event_type: str
    aggregate_type: str
    aggregate_id: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    status: str
    attempts: int
    max_attempts: int
    last_error: Optional[str] = None
    scheduled_at: datetime
    processed_at: Optional[datetime] = None
    created_at: datetime


def get_outbox_dispatcher(container=Depends(get_container)) -> OutboxDispatcher:
    return container.outbox_dispatcher


def require_operator(actor: Actor = Depends(get_actor)) -> Actor:
    if not actor.is_elevated:
        raise ForbiddenException("Only staff can manage the outbox")
    return actor


@cron_router.post(
    "/process-outbox",
    response_model=FlushResponse,
    dependencies=[Depends(verify_cron_secret)],
    summary="Deliver pending notifications",
)
async def process_outbox(
    batch_size: Optional[int] = Query(None, ge=1, le=100),
    dispatcher: OutboxDispatcher = Depends(get_outbox_dispatcher),
) -> FlushResponse:
    """Stops claiming before the processing deadline; the next call resumes."""
    result = await dispatcher.flush(batch_size=batch_size)
    return FlushResponse(
        sent=result.sent,
        failed=result.failed,
        retried=result.retried,
        skipped=result.skipped,
        still_pending=result.still_pending,
        deadline_reached=result.deadline_reached,
    )


@router.get("/failed", response_model=List[OutboxEventResponse], summary="List failed events")
async def list_failed(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    _: Actor = Depends(require_operator),
    dispatcher: OutboxDispatcher = Depends(get_outbox_dispatcher),
) -> List[OutboxEventResponse]:
    events = await dispatcher.list_failed(limit=limit, offset=offset)
    return [OutboxEventResponse.model_validate(event) for event in events]


@router.post("/{event_id}/replay", response_model=OutboxEventResponse, summary="Replay a failed event")
async def replay_event(
    event_id: int,
    _: Actor = Depends(require_operator),
    dispatcher: OutboxDispatcher = Depends(get_outbox_dispatcher),
) -> OutboxEventResponse:
    event = await dispatcher.replay(event_id)
    return OutboxEventResponse.model_validate(event)
