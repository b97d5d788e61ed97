"""Structured log formatting."""

import json
import logging

from campusdesk.shared.infrastructure.logging import CustomJsonFormatter, correlation_id_var


def _format(**extra) -> dict:
    formatter = CustomJsonFormatter("%(name)s %(levelname)s %(message)s", service="campusdesk", environment="test")
    record = logging.LogRecord("campusdesk.test", logging.INFO, __file__, 1, "Ticket escalated", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return json.loads(formatter.format(record))


def test_service_fields_are_stamped():
    entry = _format(ticket_id="abc")
    assert entry["message"] == "Ticket escalated"
    assert entry["service"] == "campusdesk"
    assert entry["environment"] == "test"
    assert entry["ticket_id"] == "abc"
    assert "timestamp" in entry


def test_correlation_id_from_request_context():
    token = correlation_id_var.set("req-42")
    try:
        entry = _format()
    finally:
        correlation_id_var.reset(token)
    assert entry["correlation_id"] == "req-42"
    assert "correlation_id" not in _format()


def test_sensitive_fields_are_redacted():
    entry = _format(slack_webhook_url="https://hooks.slack.test/secret", cron_secret="s3cret")
    assert entry["slack_webhook_url"] == "***REDACTED***"
    assert entry["cron_secret"] == "***REDACTED***"
