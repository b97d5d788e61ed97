"""
Ticket Controllers (API Routes)
===============================

FastAPI routes for the ticket lifecycle.

Controllers are thin - they delegate to ``TicketLifecycleService``.
Engine errors propagate to the application exception handler, which maps
them to 403/404/409/422.
"""

from fastapi import APIRouter, Depends, status

from campusdesk.shared.api.dependencies import get_actor, get_container
from campusdesk.shared.infrastructure.logging import get_logger
from campusdesk.tickets.application import (
    ActivityListResponse,
    ActivityResponse,
    AssignRequest,
    CommentRequest,
    EscalateRequest,
    ExtendTATRequest,
    ExtendTATResponse,
    FeedbackRequest,
    FeedbackResponse,
    ForwardRequest,
    ForwardResponse,
    ReopenRequest,
    ReopenResponse,
    SetTATRequest,
    StatusUpdateRequest,
    TicketCreateRequest,
    TicketLifecycleService,
    TicketResponse,
)
from campusdesk.tickets.domain import Actor

logger = get_logger(__name__)
router = APIRouter(prefix="/tickets", tags=["Tickets"])


# ========== Dependencies ==========

def get_lifecycle_service(container=Depends(get_container)) -> TicketLifecycleService:
    return container.lifecycle


# ========== Route Handlers ==========

@router.post(
    "",
    response_model=TicketResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open a ticket",
)
async def create_ticket(
    request: TicketCreateRequest,
    actor: Actor = Depends(get_actor),
    service: TicketLifecycleService = Depends(get_lifecycle_service),
) -> TicketResponse:
    """SLA deadlines are derived from the subcategory, category or default hours."""
    ticket = await service.create_ticket(
        actor,
        title=request.title,
        domain_id=request.domain_id,
        scope_id=request.scope_id,
        category_id=request.category_id,
        subcategory_id=request.subcategory_id,
        metadata=request.metadata,
    )
    return TicketResponse.model_validate(ticket)


@router.get("/{ticket_id}", response_model=TicketResponse, summary="Get a ticket")
async def get_ticket(
    ticket_id: str,
    actor: Actor = Depends(get_actor),
    service: TicketLifecycleService = Depends(get_lifecycle_service),
) -> TicketResponse:
    ticket = await service.get_ticket(ticket_id, actor)
    return TicketResponse.model_validate(ticket)


@router.get(
    "/{ticket_id}/activity",
    response_model=ActivityListResponse,
    summary="Ticket timeline",
)
async def list_activity(
    ticket_id: str,
    actor: Actor = Depends(get_actor),
    service: TicketLifecycleService = Depends(get_lifecycle_service),
) -> ActivityListResponse:
    """Oldest first. Students only see public and student-visible entries."""
    entries = await service.list_activity(ticket_id, actor)
    return ActivityListResponse(
        ticket_id=ticket_id,
        entries=[ActivityResponse.model_validate(entry) for entry in entries],
    )


@router.patch("/{ticket_id}/status", response_model=TicketResponse, summary="Change ticket status")
async def update_status(
    ticket_id: str,
    request: StatusUpdateRequest,
    actor: Actor = Depends(get_actor),
    service: TicketLifecycleService = Depends(get_lifecycle_service),
) -> TicketResponse:
    """
    Apply one state-machine transition.

    **Errors**: 404 unknown ticket, 409 transition not allowed from the
    current status, 403 role/ownership violation.
    """
    ticket = await service.update_status(ticket_id, request.status, actor, request.comment)
    return TicketResponse.model_validate(ticket)


@router.post("/{ticket_id}/tat", response_model=TicketResponse, summary="Set TAT")
async def set_tat(
    ticket_id: str,
    request: SetTATRequest,
    actor: Actor = Depends(get_actor),
    service: TicketLifecycleService = Depends(get_lifecycle_service),
) -> TicketResponse:
    ticket = await service.set_tat(ticket_id, actor, request.tat, request.mark_in_progress)
    return TicketResponse.model_validate(ticket)


@router.post("/{ticket_id}/tat/extend", response_model=ExtendTATResponse, summary="Extend TAT")
async def extend_tat(
    ticket_id: str,
    request: ExtendTATRequest,
    actor: Actor = Depends(get_actor),
    service: TicketLifecycleService = Depends(get_lifecycle_service),
) -> ExtendTATResponse:
    """Extensions beyond the configured maximum succeed with ``warning: true``."""
    result = await service.extend_tat(ticket_id, actor, request.hours, request.reason)
    return ExtendTATResponse(
        ticket=TicketResponse.model_validate(result.ticket),
        tat_extensions=result.tat_extensions,
        warning=result.warning,
        warning_message=result.warning_message,
    )


@router.post("/{ticket_id}/reopen", response_model=ReopenResponse, summary="Reopen a ticket")
async def reopen_ticket(
    ticket_id: str,
    request: ReopenRequest,
    actor: Actor = Depends(get_actor),
    service: TicketLifecycleService = Depends(get_lifecycle_service),
) -> ReopenResponse:
    result = await service.reopen_ticket(ticket_id, actor, request.reason)
    return ReopenResponse(
        ticket=TicketResponse.model_validate(result.ticket),
        reopen_count=result.reopen_count,
        warning=result.warning,
        warning_message=result.warning_message,
    )


@router.post("/{ticket_id}/forward", response_model=ForwardResponse, summary="Forward a ticket")
async def forward_ticket(
    ticket_id: str,
    request: ForwardRequest,
    actor: Actor = Depends(get_actor),
    service: TicketLifecycleService = Depends(get_lifecycle_service),
) -> ForwardResponse:
    result = await service.forward_ticket(ticket_id, request.target_actor_id, actor, request.reason)
    return ForwardResponse(
        ticket=TicketResponse.model_validate(result.ticket),
        forward_count=result.forward_count,
        warning=result.warning,
        warning_message=result.warning_message,
    )


@router.post("/{ticket_id}/assign", response_model=TicketResponse, summary="Assign a ticket")
async def assign_ticket(
    ticket_id: str,
    request: AssignRequest,
    actor: Actor = Depends(get_actor),
    service: TicketLifecycleService = Depends(get_lifecycle_service),
) -> TicketResponse:
    ticket = await service.assign_ticket(ticket_id, request.assignee_id, actor)
    return TicketResponse.model_validate(ticket)


@router.post("/{ticket_id}/escalate", response_model=TicketResponse, summary="Escalate a ticket")
async def escalate_ticket(
    ticket_id: str,
    request: EscalateRequest,
    actor: Actor = Depends(get_actor),
    service: TicketLifecycleService = Depends(get_lifecycle_service),
) -> TicketResponse:
    ticket = await service.escalate_ticket(ticket_id, actor, request.reason)
    return TicketResponse.model_validate(ticket)


@router.post(
    "/{ticket_id}/comments",
    response_model=ActivityResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Comment on a ticket",
)
async def add_comment(
    ticket_id: str,
    request: CommentRequest,
    actor: Actor = Depends(get_actor),
    service: TicketLifecycleService = Depends(get_lifecycle_service),
) -> ActivityResponse:
    """
    Public comment or staff-only internal note.

    A requester's reply on a ticket awaiting their response moves it back to
    ``in_progress``.
    """
    entry = await service.add_comment(ticket_id, actor, request.comment, request.internal)
    return ActivityResponse.model_validate(entry)


@router.post(
    "/{ticket_id}/feedback",
    response_model=FeedbackResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Rate a resolved ticket",
)
async def submit_feedback(
    ticket_id: str,
    request: FeedbackRequest,
    actor: Actor = Depends(get_actor),
    service: TicketLifecycleService = Depends(get_lifecycle_service),
) -> FeedbackResponse:
    """Once per ticket; ratings of 2 or lower escalate it."""
    feedback = await service.submit_feedback(ticket_id, actor, request.rating, request.feedback)
    return FeedbackResponse.model_validate(feedback)
