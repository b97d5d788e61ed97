"""Outbox HTTP interface."""

from campusdesk.notifications.interfaces.controllers import cron_router as outbox_cron_router
from campusdesk.notifications.interfaces.controllers import router as outbox_router

__all__ = ["outbox_cron_router", "outbox_router"]
