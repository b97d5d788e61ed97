"""
Notifications Infrastructure Layer
==================================

Outbox table and repository, and the external notification senders.
"""

from campusdesk.notifications.infrastructure.external import (
    CircuitBreaker,
    EmailNotifier,
    LogNotifier,
    NotifierRegistry,
    SlackNotifier,
)
from campusdesk.notifications.infrastructure.models import OutboxEventModel
from campusdesk.notifications.infrastructure.repositories import SQLAlchemyOutboxRepository

__all__ = [
    "CircuitBreaker",
    "EmailNotifier",
    "LogNotifier",
    "NotifierRegistry",
    "SlackNotifier",
    "OutboxEventModel",
    "SQLAlchemyOutboxRepository",
]
