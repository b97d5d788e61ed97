"""
Ticket Application DTOs
=======================

Pydantic models for the ticket API: request validation and response
serialization.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ========== Type Aliases for Literals ==========
TicketStatusStr = Literal[
    "open", "acknowledged", "in_progress", "awaiting_student_response",
    "resolved", "closed", "reopened", "cancelled"
]
VisibilityStr = Literal["public", "student_visible", "admin_only"]


# ========== Request DTOs ==========

class TicketCreateRequest(BaseModel):
    """Request model for opening a ticket."""
    title: str = Field(..., min_length=1, max_length=500, description="Short summary")
    domain_id: Optional[int] = None
    scope_id: Optional[int] = None
    category_id: Optional[int] = Field(None, description="Category used for SLA lookup")
    subcategory_id: Optional[int] = Field(None, description="Subcategory used for SLA lookup")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Category-specific fields")


class StatusUpdateRequest(BaseModel):
    status: TicketStatusStr
    comment: Optional[str] = Field(None, max_length=2000)


class SetTATRequest(BaseModel):
    tat: str = Field(..., min_length=1, description='"48h", "2 days", "1 week" or an ISO-8601 timestamp')
    mark_in_progress: bool = False


class ExtendTATRequest(BaseModel):
    hours: int = Field(..., ge=1, le=168)
    reason: str = Field(..., min_length=1, max_length=500)


class ReopenRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class ForwardRequest(BaseModel):
    target_actor_id: str = Field(..., min_length=1, max_length=255)
    reason: Optional[str] = Field(None, max_length=500)


class AssignRequest(BaseModel):
    assignee_id: str = Field(..., min_length=1, max_length=255)


class EscalateRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class CommentRequest(BaseModel):
    comment: str = Field(..., min_length=1, max_length=2000)
    internal: bool = Field(False, description="Staff-only internal note")


class FeedbackRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    feedback: Optional[str] = Field(None, max_length=2000)


# ========== Response DTOs ==========

class TicketResponse(BaseModel):
    """Ticket as returned by every ticket endpoint."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    status: TicketStatusStr
    title: str
    domain_id: Optional[int] = None
    scope_id: Optional[int] = None
    category_id: Optional[int] = None
    subcategory_id: Optional[int] = None
    escalation_level: int
    forward_count: int
    reopen_count: int
    tat_extensions: int
    created_by: str
    assigned_to: Optional[str] = None
    acknowledgement_due_at: Optional[datetime] = None
    resolution_due_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    reopened_at: Optional[datetime] = None
    escalated_at: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias="metadata_")
    created_at: datetime
    updated_at: datetime


class ActivityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    ticket_id: UUID
    actor_id: Optional[str] = None
    action: str
    details: Dict[str, Any] = Field(default_factory=dict)
    visibility: VisibilityStr
    created_at: datetime


class CounterResponse(BaseModel):
    """Mutation result carrying a soft-limit warning."""
    ticket: TicketResponse
    warning: bool = False
    warning_message: Optional[str] = None


class ExtendTATResponse(CounterResponse):
    tat_extensions: int


class ReopenResponse(CounterResponse):
    reopen_count: int


class ForwardResponse(CounterResponse):
    forward_count: int


class FeedbackResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    ticket_id: UUID
    rating: int
    feedback: Optional[str] = None
    submitted_by: str
    created_at: datetime


class ActivityListResponse(BaseModel):
    ticket_id: UUID
    entries: List[ActivityResponse]
