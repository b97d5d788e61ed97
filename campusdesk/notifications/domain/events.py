"""
Notification Events
===================

Payload shapes written to the outbox. Senders only read these dicts, so the
payload carries everything needed to render a message without touching the
ticket tables.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID

from campusdesk.config import EventType

EMAIL_CHANNEL_PREFIX = "email:"

_HEADLINES = {
    EventType.TICKET_CREATED: "New ticket",
    EventType.STATUS_UPDATED: "Ticket status updated",
    EventType.TAT_SET: "TAT set",
    EventType.TAT_EXTENDED: "TAT extended",
    EventType.REOPENED: "Ticket reopened",
    EventType.FORWARDED: "Ticket forwarded",
    EventType.ASSIGNED: "Ticket assigned",
    EventType.ESCALATED: "Ticket escalated",
    EventType.COMMENT_ADDED: "New comment",
    EventType.FEEDBACK_SUBMITTED: "Feedback received",
}


def is_email_channel(channel: Optional[str]) -> bool:
    return bool(channel) and channel.startswith(EMAIL_CHANNEL_PREFIX)


def email_address(channel: str) -> str:
    return channel[len(EMAIL_CHANNEL_PREFIX):]


@dataclass(frozen=True)
class NotificationMessage:
    """Sender-facing view of an outbox payload."""
    event_id: int
    event_type: str
    channel: str
    ticket_id: str
    title: str
    headline: str
    status: Optional[str]
    escalation_level: int
    link: Optional[str]
    details: Dict[str, Any]

    @classmethod
    def from_payload(cls, event_id: int, event_type: str, payload: Dict[str, Any]) -> "NotificationMessage":
        return cls(
            event_id=event_id,
            event_type=event_type,
            channel=payload.get("channel") or "",
            ticket_id=str(payload.get("ticket_id", "")),
            title=payload.get("title") or "",
            headline=payload.get("headline") or event_type,
            status=payload.get("status"),
            escalation_level=int(payload.get("escalation_level") or 0),
            link=payload.get("link"),
            details=payload.get("details") or {},
        )


def build_ticket_payload(
    event_type: EventType,
    ticket: Any,
    channel: str,
    base_url: Optional[str] = None,
    **details: Any,
) -> Dict[str, Any]:
    """Snapshot of a ticket for an outbox row."""
    link = f"{base_url.rstrip('/')}/tickets/{ticket.id}" if base_url else None
    return {
        "channel": channel,
        "headline": _HEADLINES.get(event_type, event_type.value),
        "ticket_id": str(ticket.id),
        "title": ticket.title,
        "status": str(getattr(ticket.status, "value", ticket.status)),
        "escalation_level": ticket.escalation_level,
        "assigned_to": ticket.assigned_to,
        "created_by": ticket.created_by,
        "link": link,
        "details": _jsonable(details),
    }


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    return value
