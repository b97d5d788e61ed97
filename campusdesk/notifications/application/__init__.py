"""Notifications Application Layer."""

from campusdesk.notifications.application.services import (
    FlushResult,
    INotifier,
    IOutboxRepository,
    OutboxDispatcher,
)

__all__ = ["FlushResult", "INotifier", "IOutboxRepository", "OutboxDispatcher"]
