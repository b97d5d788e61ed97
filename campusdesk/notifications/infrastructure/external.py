"""
Notification Senders
====================

External channels the outbox dispatcher delivers to:
- Slack incoming webhook (with circuit breaker)
- HTTP transactional email API
- Log sink for development

Senders make exactly one attempt and report the outcome by raising
``TransientDeliveryFailure`` or ``PermanentDeliveryFailure``. Retries and
backoff belong to the dispatcher.
"""

import time
from typing import Any, Dict, Optional

import httpx

from campusdesk.core import PermanentDeliveryFailure, TransientDeliveryFailure
from campusdesk.notifications.application.services import INotifier
from campusdesk.notifications.domain.events import (
    NotificationMessage,
    email_address,
    is_email_channel,
)
from campusdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for preventing cascade failures.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: After N failures, reject all requests for M seconds
    - HALF_OPEN: After timeout, allow one test request
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> str:
        """Get current circuit state."""
        if self._state == CircuitState.OPEN and self._last_failure_time is not None:
            if time.monotonic() - self._last_failure_time >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = time.monotonic()

        if self._state == CircuitState.HALF_OPEN or self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


def _raise_for_status(service: str, response: httpx.Response) -> None:
    """2xx passes; 429 and 5xx are retryable; any other status is permanent."""
    if 200 <= response.status_code < 300:
        return
    detail = {"status_code": response.status_code, "body": response.text[:500]}
    if response.status_code == 429 or response.status_code >= 500:
        raise TransientDeliveryFailure(service, f"HTTP {response.status_code}", detail)
    raise PermanentDeliveryFailure(service, f"HTTP {response.status_code}", detail)


class SlackNotifier(INotifier):
    """
    Slack webhook sender with circuit breaker.

    An open circuit fails fast with a transient failure so the row is
    rescheduled instead of hammering an unreachable webhook.
    """

    name = "slack"

    def __init__(
        self,
        webhook_url: str,
        default_channel: str = "#helpdesk-alerts",
        timeout_seconds: float = 5.0,
        circuit_breaker: Optional[CircuitBreaker] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._webhook_url = webhook_url
        self._default_channel = default_channel
        self._timeout_seconds = timeout_seconds
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=60
        )
        self._http_client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout_seconds)
        return self._http_client

    def _build_message(self, message: NotificationMessage) -> Dict[str, Any]:
        """Build Slack Block Kit message."""
        is_escalation = message.escalation_level > 0 and message.event_type == "ticket.escalated"
        emoji = ":rotating_light:" if is_escalation else ":ticket:"

        ticket_ref = f"<{message.link}|{message.ticket_id}>" if message.link else message.ticket_id
        fields = [
            {"type": "mrkdwn", "text": f"*Ticket:*\n{ticket_ref}"},
            {"type": "mrkdwn", "text": f"*Status:*\n{(message.status or '-').replace('_', ' ').title()}"},
            {"type": "mrkdwn", "text": f"*Escalation Level:*\n{message.escalation_level}"},
        ]
        reason = message.details.get("reason") or message.details.get("comment")
        if reason:
            fields.append({"type": "mrkdwn", "text": f"*Reason:*\n{reason}"})

        blocks = [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": f"{emoji} {message.headline}",
                    "emoji": True
                }
            },
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": message.title or "(untitled)"},
                "fields": fields
            },
            {
                "type": "context",
                "elements": [
                    {"type": "mrkdwn", "text": f"Event #{message.event_id} | {message.event_type}"}
                ]
            }
        ]

        return {
            "channel": message.channel or self._default_channel,
            "text": f"{message.headline}: {message.title}",
            "blocks": blocks
        }

    async def send(self, message: NotificationMessage) -> None:
        if not self._circuit_breaker.allow_request():
            raise TransientDeliveryFailure(self.name, "circuit breaker open")

        payload = self._build_message(message)
        try:
            client = await self._get_client()
            response = await client.post(self._webhook_url, json=payload)
        except httpx.HTTPError as e:
            self._circuit_breaker.record_failure()
            raise TransientDeliveryFailure(self.name, str(e) or type(e).__name__)

        try:
            _raise_for_status(self.name, response)
        except TransientDeliveryFailure:
            self._circuit_breaker.record_failure()
            raise

        self._circuit_breaker.record_success()
        logger.info(
            "Slack notification sent",
            extra={"event_id": message.event_id, "ticket_id": message.ticket_id}
        )

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


class EmailNotifier(INotifier):
    """Sender for ``email:<address>`` channels via an HTTP mail API."""

    name = "email"

    def __init__(
        self,
        api_url: str,
        api_key: Optional[str] = None,
        sender: str = "helpdesk@campus.example.edu",
        timeout_seconds: float = 5.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._api_url = api_url
        self._api_key = api_key
        self._sender = sender
        self._timeout_seconds = timeout_seconds
        self._http_client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
            self._http_client = httpx.AsyncClient(timeout=self._timeout_seconds, headers=headers)
        return self._http_client

    def _build_email(self, message: NotificationMessage) -> Dict[str, Any]:
        lines = [
            message.title or "(untitled)",
            "",
            f"Status: {message.status or '-'}",
            f"Escalation level: {message.escalation_level}",
        ]
        reason = message.details.get("reason") or message.details.get("comment")
        if reason:
            lines.append(f"Reason: {reason}")
        if message.link:
            lines += ["", message.link]

        return {
            "from": self._sender,
            "to": [email_address(message.channel)],
            "subject": f"[Ticket {message.ticket_id[:8]}] {message.headline}",
            "text": "\n".join(lines),
            "headers": {"X-Outbox-Event-Id": str(message.event_id)},
        }

    async def send(self, message: NotificationMessage) -> None:
        if not is_email_channel(message.channel) or not email_address(message.channel):
            raise PermanentDeliveryFailure(self.name, f"invalid email channel '{message.channel}'")

        try:
            client = await self._get_client()
            response = await client.post(self._api_url, json=self._build_email(message))
        except httpx.HTTPError as e:
            raise TransientDeliveryFailure(self.name, str(e) or type(e).__name__)

        _raise_for_status(self.name, response)
        logger.info(
            "Email notification sent",
            extra={"event_id": message.event_id, "ticket_id": message.ticket_id}
        )

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


class LogNotifier(INotifier):
    """Writes notifications to the log. Used when no webhook is configured."""

    name = "log"

    async def send(self, message: NotificationMessage) -> None:
        logger.info(
            "Notification (log sink)",
            extra={
                "event_id": message.event_id,
                "event_type": message.event_type,
                "channel": message.channel,
                "ticket_id": message.ticket_id,
                "headline": message.headline,
            }
        )


class NotifierRegistry:
    """
    Routes a message to a sender by its channel.

    ``email:`` channels go to the email sender; everything else is a Slack
    channel. A missing sender falls back to ``fallback`` when one is set.
    """

    def __init__(
        self,
        slack: Optional[INotifier] = None,
        email: Optional[INotifier] = None,
        fallback: Optional[INotifier] = None,
    ):
        self._slack = slack
        self._email = email
        self._fallback = fallback

    def resolve(self, channel: Optional[str]) -> INotifier:
        notifier = self._email if is_email_channel(channel) else self._slack
        notifier = notifier or self._fallback
        if notifier is None:
            raise PermanentDeliveryFailure("notifications", f"no sender configured for channel '{channel}'")
        return notifier

    async def send(self, message: NotificationMessage) -> None:
        await self.resolve(message.channel).send(message)

    async def close(self) -> None:
        for notifier in (self._slack, self._email, self._fallback):
            close = getattr(notifier, "close", None)
            if close is not None:
                await close()

    @classmethod
    def from_settings(cls, settings) -> "NotifierRegistry":
        slack = None
        if settings.slack_webhook_url:
            slack = SlackNotifier(
                settings.slack_webhook_url,
                default_channel=settings.slack_channel,
                timeout_seconds=settings.slack_timeout_seconds,
            )
        email = None
        if settings.email_api_url:
            email = EmailNotifier(
                settings.email_api_url,
                api_key=settings.email_api_key,
                sender=settings.email_sender,
                timeout_seconds=settings.notification_timeout_seconds,
            )
        fallback = LogNotifier() if settings.environment in ("development", "test") else None
        if slack is None and fallback is None:
            logger.warning("Slack webhook URL not configured; Slack events will fail")
        return cls(slack=slack, email=email, fallback=fallback)
