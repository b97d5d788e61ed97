"""
Tickets Infrastructure Layer
============================

SQLAlchemy models and repositories for tickets, the activity log and
requester feedback, plus the SLA configuration file manager.
"""

from campusdesk.tickets.infrastructure.external import SLAConfigManager
from campusdesk.tickets.infrastructure.models import ActivityModel, FeedbackModel, TicketModel
from campusdesk.tickets.infrastructure.repositories import (
    SQLAlchemyActivityRepository,
    SQLAlchemyFeedbackRepository,
    SQLAlchemyTicketRepository,
)

__all__ = [
    "SLAConfigManager",
    "ActivityModel",
    "FeedbackModel",
    "TicketModel",
    "SQLAlchemyActivityRepository",
    "SQLAlchemyFeedbackRepository",
    "SQLAlchemyTicketRepository",
]
