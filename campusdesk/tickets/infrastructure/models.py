"""
Ticket Infrastructure Models
============================

SQLAlchemy ORM models for the ticket aggregate and its activity log.
"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from campusdesk.config import ActivityAction, TicketStatus, Visibility
from campusdesk.infrastructure.database import Base, UTCDateTime
from campusdesk.shared.clock import utcnow


class TicketModel(Base):
    """
    Database model for the Ticket aggregate.

    Maps to the 'tickets' table. Rows are never deleted; cancellation is a
    status.
    """
    __tablename__ = "tickets"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    status: Mapped[TicketStatus] = mapped_column(String(50), nullable=False, default=TicketStatus.OPEN, index=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    # Categorisation (owned by the category collaborator)
    domain_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    scope_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    category_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    subcategory_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Counters
    escalation_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    forward_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reopen_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tat_extensions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Actors
    created_by: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    assigned_to: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # SLA deadlines
    acknowledgement_due_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    resolution_due_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # Lifecycle timestamps
    resolved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    reopened_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    escalated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # Opaque category-specific data; "metadata" is reserved on declarative classes
    metadata_: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_tickets_open_resolution_due", "resolved_at", "closed_at", "resolution_due_at"),
        Index("ix_tickets_open_ack_due", "resolved_at", "closed_at", "escalation_level", "acknowledgement_due_at"),
    )


class ActivityModel(Base):
    """
    Database model for an activity log entry.

    Maps to the 'ticket_activity' table. Insert-only.
    """
    __tablename__ = "ticket_activity"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("tickets.id"), nullable=False, index=True)
    actor_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)  # None = system
    action: Mapped[ActivityAction] = mapped_column(String(50), nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    visibility: Mapped[Visibility] = mapped_column(String(50), nullable=False, default=Visibility.ADMIN_ONLY)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


class FeedbackModel(Base):
    """
    Requester rating for a finished ticket.

    Maps to the 'ticket_feedback' table. At most one row per ticket.
    """
    __tablename__ = "ticket_feedback"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("tickets.id"), nullable=False, unique=True)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    feedback: Mapped[Optional[str]] = mapped_column(String(2000), nullable=True)
    submitted_by: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
