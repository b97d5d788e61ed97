"""Escalation HTTP interface."""

from campusdesk.escalation.interfaces.controllers import router as escalation_cron_router

__all__ = ["escalation_cron_router"]
