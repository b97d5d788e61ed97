"""
Tickets Application Layer
=========================

Contains:
- Services: the ticket lifecycle service and its repository interfaces
- DTOs: request/response models for the HTTP interface
"""

from campusdesk.tickets.application.dto import (
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
    TicketResponse,
)
from campusdesk.tickets.application.services import (
    IActivityRepository,
    IFeedbackRepository,
    ISLAConfigProvider,
    ITicketRepository,
    TicketLifecycleService,
)

__all__ = [
    # DTOs
    "ActivityListResponse",
    "ActivityResponse",
    "AssignRequest",
    "CommentRequest",
    "EscalateRequest",
    "ExtendTATRequest",
    "ExtendTATResponse",
    "FeedbackRequest",
    "FeedbackResponse",
    "ForwardRequest",
    "ForwardResponse",
    "ReopenRequest",
    "ReopenResponse",
    "SetTATRequest",
    "StatusUpdateRequest",
    "TicketCreateRequest",
    "TicketResponse",
    # Services
    "TicketLifecycleService",
    # Repository Interfaces
    "ITicketRepository",
    "IActivityRepository",
    "IFeedbackRepository",
    "ISLAConfigProvider",
]
