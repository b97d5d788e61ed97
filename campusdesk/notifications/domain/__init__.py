from campusdesk.notifications.domain.events import (
    NotificationMessage,
    build_ticket_payload,
    is_email_channel,
)

__all__ = ["NotificationMessage", "build_ticket_payload", "is_email_channel"]
