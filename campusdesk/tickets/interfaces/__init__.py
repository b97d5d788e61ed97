"""Ticket HTTP interface."""

from campusdesk.tickets.interfaces.controllers import router as tickets_router

__all__ = ["tickets_router"]
