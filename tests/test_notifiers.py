"""Senders and channel routing."""

import httpx
import pytest

from campusdesk.core import PermanentDeliveryFailure, TransientDeliveryFailure
from campusdesk.notifications.domain.events import NotificationMessage
from campusdesk.notifications.infrastructure.external import (
    CircuitBreaker,
    CircuitState,
    EmailNotifier,
    LogNotifier,
    NotifierRegistry,
    SlackNotifier,
)

from tests.utils import RecordingNotifier


def _message(channel: str = "#helpdesk-alerts", **overrides) -> NotificationMessage:
    values = dict(
        event_id=7,
        event_type="ticket.escalated",
        channel=channel,
        ticket_id="8d7f3c1e-0000-4000-8000-000000000001",
        title="Wi-Fi down in hostel block C",
        headline="Ticket escalated",
        status="in_progress",
        escalation_level=1,
        link="http://localhost:3000/tickets/8d7f3c1e-0000-4000-8000-000000000001",
        details={"reason": "ack SLA breached"},
    )
    values.update(overrides)
    return NotificationMessage(**values)


def _client(status_code: int, requests: list) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status_code, text="ok" if status_code < 300 else "error")

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def test_slack_posts_block_kit_message():
    requests = []
    notifier = SlackNotifier("https://hooks.slack.test/x", http_client=_client(200, requests))

    await notifier.send(_message())

    body = requests[0].read().decode()
    assert requests[0].url == "https://hooks.slack.test/x"
    assert "#helpdesk-alerts" in body
    assert "ack SLA breached" in body
    assert ":rotating_light:" in body
    await notifier.close()


@pytest.mark.parametrize("status_code", [429, 500, 503])
async def test_slack_retryable_statuses(status_code):
    notifier = SlackNotifier("https://hooks.slack.test/x", http_client=_client(status_code, []))
    with pytest.raises(TransientDeliveryFailure):
        await notifier.send(_message())


@pytest.mark.parametrize("status_code", [400, 403, 404])
async def test_slack_permanent_statuses(status_code):
    notifier = SlackNotifier("https://hooks.slack.test/x", http_client=_client(status_code, []))
    with pytest.raises(PermanentDeliveryFailure):
        await notifier.send(_message())


async def test_slack_network_error_is_transient():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    notifier = SlackNotifier("https://hooks.slack.test/x", http_client=client)
    with pytest.raises(TransientDeliveryFailure):
        await notifier.send(_message())


async def test_open_circuit_fails_fast():
    requests = []
    breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=60)
    notifier = SlackNotifier(
        "https://hooks.slack.test/x", circuit_breaker=breaker, http_client=_client(500, requests)
    )

    for _ in range(2):
        with pytest.raises(TransientDeliveryFailure):
            await notifier.send(_message())
    assert breaker.state == CircuitState.OPEN

    with pytest.raises(TransientDeliveryFailure):
        await notifier.send(_message())
    assert len(requests) == 2


async def test_email_notifier_posts_to_mail_api():
    requests = []
    notifier = EmailNotifier(
        "https://mail.test/send", sender="helpdesk@campus.example.edu",
        http_client=_client(202, requests),
    )

    await notifier.send(_message(channel="email:warden@campus.example.edu"))

    body = requests[0].read().decode()
    assert "warden@campus.example.edu" in body
    assert "Ticket escalated" in body


async def test_email_notifier_rejects_non_email_channel():
    notifier = EmailNotifier("https://mail.test/send", http_client=_client(202, []))
    with pytest.raises(PermanentDeliveryFailure):
        await notifier.send(_message(channel="#not-an-inbox"))


async def test_registry_routes_by_channel():
    slack, email = RecordingNotifier(), RecordingNotifier()
    registry = NotifierRegistry(slack=slack, email=email)

    await registry.send(_message(channel="#escalations"))
    await registry.send(_message(channel="email:dean@campus.example.edu"))

    assert [m.channel for m in slack.sent] == ["#escalations"]
    assert [m.channel for m in email.sent] == ["email:dean@campus.example.edu"]


async def test_registry_without_sender_is_permanent_failure():
    registry = NotifierRegistry(slack=RecordingNotifier())
    with pytest.raises(PermanentDeliveryFailure):
        await registry.send(_message(channel="email:dean@campus.example.edu"))


def test_registry_from_settings_uses_log_fallback(settings):
    registry = NotifierRegistry.from_settings(settings)
    assert isinstance(registry.resolve("#helpdesk-alerts"), LogNotifier)


def test_registry_from_settings_with_webhook(settings):
    configured = settings.model_copy(update={"slack_webhook_url": "https://hooks.slack.test/x"})
    registry = NotifierRegistry.from_settings(configured)
    assert isinstance(registry.resolve("#helpdesk-alerts"), SlackNotifier)
