"""Deadline arithmetic."""

from datetime import datetime, timedelta, timezone

import pytest

from campusdesk.core import ValidationException
from campusdesk.tickets.domain import TATCalculator

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture()
def calculator() -> TATCalculator:
    return TATCalculator(max_tat_hours=720)


@pytest.mark.parametrize(
    "spec,hours",
    [
        ("48", 48),
        ("48h", 48),
        ("48 hours", 48),
        ("1 hour", 1),
        ("2 days", 48),
        ("2d", 48),
        ("1 week", 168),
        ("1w", 168),
        ("  3 DAYS ", 72),
    ],
)
def test_relative_specs(calculator, spec, hours):
    parsed = calculator.parse_tat_spec(spec, NOW)
    assert parsed.hours == hours
    assert parsed.is_relative
    assert parsed.due_at == NOW + timedelta(hours=hours)


def test_iso_timestamp(calculator):
    parsed = calculator.parse_tat_spec("2026-03-05T17:00:00+05:30", NOW)
    assert not parsed.is_relative
    assert parsed.due_at == datetime(2026, 3, 5, 11, 30, tzinfo=timezone.utc)


def test_naive_iso_timestamp_is_utc(calculator):
    parsed = calculator.parse_tat_spec("2026-03-04T09:00:00", NOW)
    assert parsed.due_at == datetime(2026, 3, 4, 9, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("spec", ["", "0", "0 days", "soon", "-5h", "2 fortnights", "721", "31 days"])
def test_rejected_specs(calculator, spec):
    with pytest.raises(ValidationException):
        calculator.parse_tat_spec(spec, NOW)


def test_past_timestamp_rejected(calculator):
    with pytest.raises(ValidationException):
        calculator.parse_tat_spec("2026-03-01T09:00:00Z", NOW)


def test_max_tat_is_configurable():
    with pytest.raises(ValidationException):
        TATCalculator(max_tat_hours=24).parse_tat_spec("2 days", NOW)


def test_initial_deadlines():
    ack, resolution = TATCalculator.initial_deadlines(NOW, 2, 48)
    assert ack == NOW + timedelta(hours=2)
    assert resolution == NOW + timedelta(hours=48)


def test_initial_ack_never_after_resolution():
    ack, resolution = TATCalculator.initial_deadlines(NOW, 10, 4)
    assert ack == resolution == NOW + timedelta(hours=4)


def test_extend_future_deadline():
    due = NOW + timedelta(hours=5)
    assert TATCalculator.extend(due, NOW, 24) == due + timedelta(hours=24)


def test_extend_overdue_deadline_counts_from_now():
    due = NOW - timedelta(hours=5)
    assert TATCalculator.extend(due, NOW, 24) == NOW + timedelta(hours=24)


def test_extend_without_deadline():
    assert TATCalculator.extend(None, NOW, 1) == NOW + timedelta(hours=1)


@pytest.mark.parametrize("hours", [0, 169, -1, 2.5, True])
def test_extend_rejects_out_of_range_hours(hours):
    with pytest.raises(ValidationException):
        TATCalculator.extend(NOW, NOW, hours)
