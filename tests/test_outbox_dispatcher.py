"""Outbox dispatcher: delivery, retry schedule, claims and deadlines."""

import asyncio
from datetime import timedelta

import pytest

from campusdesk.config import EventType, OutboxStatus
from campusdesk.core import ResourceNotFoundException, TransientDeliveryFailure, ValidationException
from campusdesk.notifications.application import OutboxDispatcher
from campusdesk.notifications.infrastructure.external import NotifierRegistry
from campusdesk.notifications.infrastructure.repositories import SQLAlchemyOutboxRepository

from tests.utils import FakeMonotonic, fetch_outbox


@pytest.fixture()
def dispatcher(container) -> OutboxDispatcher:
    return container.outbox_dispatcher


async def _only_row(database):
    rows = await fetch_outbox(database)
    assert len(rows) == 1
    return rows[0]


async def test_pending_event_is_delivered(dispatcher, database, notifier, ticket, clock):
    result = await dispatcher.flush()

    assert result.sent == 1
    assert result.still_pending == 0
    assert result.deadline_reached is False

    message = notifier.sent[0]
    assert message.event_type == EventType.TICKET_CREATED.value
    assert message.ticket_id == str(ticket.id)
    assert message.channel == "#helpdesk-alerts"
    assert message.headline == "New ticket"

    row = await _only_row(database)
    assert row.status == OutboxStatus.SENT.value
    assert row.processed_at == clock.now


async def test_sent_events_are_not_delivered_again(dispatcher, notifier, ticket):
    await dispatcher.flush()
    second = await dispatcher.flush()
    assert second.sent == 0
    assert len(notifier.sent) == 1


async def test_transient_failure_schedules_retry_with_backoff(dispatcher, database, notifier, ticket, clock):
    notifier.fail_transient()
    result = await dispatcher.flush()

    assert result.retried == 1
    assert result.still_pending == 1
    row = await _only_row(database)
    assert row.status == OutboxStatus.PENDING.value
    assert row.attempts == 1
    assert row.scheduled_at == clock.now + timedelta(seconds=120)
    assert row.last_error == "slack: HTTP 503"

    # Not yet due
    clock.advance(seconds=60)
    assert (await dispatcher.flush()).sent == 0

    clock.advance(seconds=61)
    assert (await dispatcher.flush()).sent == 1
    assert len(notifier.sent) == 1


async def test_event_fails_after_max_attempts(dispatcher, database, notifier, ticket, clock):
    notifier.always = TransientDeliveryFailure("slack", "HTTP 502")

    await dispatcher.flush()
    clock.advance(seconds=121)
    await dispatcher.flush()
    row = await _only_row(database)
    assert row.attempts == 2
    assert row.scheduled_at == clock.now + timedelta(seconds=240)

    clock.advance(seconds=241)
    result = await dispatcher.flush()
    assert result.failed == 1
    assert result.still_pending == 0

    row = await _only_row(database)
    assert row.status == OutboxStatus.FAILED.value
    assert row.attempts == 3
    assert row.last_error == "slack: HTTP 502"

    # Failed rows are kept and never retried automatically
    clock.advance(days=1)
    await dispatcher.flush()
    assert notifier.calls == 3


async def test_permanent_failure_fails_immediately(dispatcher, database, notifier, ticket):
    notifier.fail_permanent()
    result = await dispatcher.flush()

    assert result.failed == 1
    row = await _only_row(database)
    assert row.status == OutboxStatus.FAILED.value
    assert row.attempts == 1


async def test_unexpected_sender_error_is_retried(dispatcher, database, notifier, ticket):
    notifier.fail_next(RuntimeError("boom"))
    result = await dispatcher.flush()

    assert result.retried == 1
    row = await _only_row(database)
    assert row.last_error == "RuntimeError: boom"


async def test_slow_sender_times_out(settings, database, notifier, ticket, clock):
    fast = settings.model_copy(update={"notification_timeout_seconds": 0.05})
    dispatcher = OutboxDispatcher(database, NotifierRegistry(fallback=notifier), fast, clock=clock)

    async def hang(message):
        await asyncio.sleep(1)

    notifier.on_send = hang
    result = await dispatcher.flush()

    assert result.retried == 1
    row = await _only_row(database)
    assert "timed out" in row.last_error


async def test_one_retry_per_row_per_flush(settings, database, notifier, ticket, clock):
    eager = settings.model_copy(update={"outbox_retry_base_seconds": 0})
    dispatcher = OutboxDispatcher(database, NotifierRegistry(fallback=notifier), eager, clock=clock)
    notifier.always = TransientDeliveryFailure("slack", "HTTP 503")

    result = await dispatcher.flush()

    assert result.retried == 1
    assert notifier.calls == 1


async def test_claimed_row_is_not_delivered_by_another_dispatcher(dispatcher, database, notifier, ticket, clock):
    row = await _only_row(database)
    stale_before = clock.now - timedelta(seconds=300)
    async with database.session() as session:
        repo = SQLAlchemyOutboxRepository(session)
        assert await repo.claim(row.id, clock.now, stale_before) is not None
    async with database.session() as session:
        repo = SQLAlchemyOutboxRepository(session)
        assert await repo.claim(row.id, clock.now, stale_before) is None

    result = await dispatcher.flush()
    assert result.sent == 0
    assert result.still_pending == 1
    assert notifier.calls == 0


async def test_stale_claim_is_reclaimed(dispatcher, database, notifier, ticket, clock):
    row = await _only_row(database)
    crashed_claim = clock.now
    async with database.session() as session:
        await SQLAlchemyOutboxRepository(session).claim(
            row.id, crashed_claim, crashed_claim - timedelta(seconds=300)
        )

    clock.advance(seconds=301)
    result = await dispatcher.flush()
    assert result.sent == 1
    assert (await _only_row(database)).attempts == 1

    # The crashed worker's late outcome no longer applies
    async with database.session() as session:
        applied = await SQLAlchemyOutboxRepository(session).mark_failed(
            row.id, crashed_claim, 1, "late", clock.now
        )
    assert applied is False
    assert (await _only_row(database)).status == OutboxStatus.SENT.value


async def test_abandoned_claims_use_up_attempts(dispatcher, database, notifier, ticket, clock):
    row = await _only_row(database)
    for expected_attempts in range(3):
        async with database.session() as session:
            claimed = await SQLAlchemyOutboxRepository(session).claim(
                row.id, clock.now, clock.now - timedelta(seconds=300)
            )
        assert claimed.attempts == expected_attempts
        clock.advance(seconds=301)

    result = await dispatcher.flush()

    assert result.failed == 1
    assert result.sent == 0
    assert notifier.calls == 0
    row = await _only_row(database)
    assert row.status == OutboxStatus.FAILED.value
    assert row.attempts == 3
    assert "abandoned" in row.last_error


async def test_no_claims_inside_the_headroom(settings, database, notifier, ticket, clock):
    monotonic = FakeMonotonic()
    dispatcher = OutboxDispatcher(
        database, NotifierRegistry(fallback=notifier), settings, clock=clock, monotonic=monotonic
    )

    result = await dispatcher.flush(deadline=monotonic.value + 4)

    assert result.deadline_reached is True
    assert result.sent == 0
    assert result.still_pending == 1
    assert notifier.calls == 0


async def test_flush_stops_when_deadline_approaches(settings, database, service, student, notifier, clock):
    for n in range(3):
        await service.create_ticket(student, title=f"ticket {n}")

    monotonic = FakeMonotonic()
    dispatcher = OutboxDispatcher(
        database, NotifierRegistry(fallback=notifier), settings, clock=clock, monotonic=monotonic
    )

    async def slow(message):
        monotonic.value += 30

    notifier.on_send = slow
    result = await dispatcher.flush(deadline=monotonic.value + 50)

    assert result.sent == 2
    assert result.deadline_reached is True
    assert result.still_pending == 1

    # The next invocation picks up the rest
    result = await dispatcher.flush(deadline=monotonic.value + 50)
    assert result.sent == 1
    assert result.still_pending == 0


async def test_flush_drains_in_batches_oldest_first(dispatcher, service, student, notifier, clock):
    created = []
    for n in range(5):
        created.append(await service.create_ticket(student, title=f"ticket {n}"))
        clock.advance(seconds=1)

    result = await dispatcher.flush(batch_size=2)

    assert result.sent == 5
    assert [m.ticket_id for m in notifier.sent] == [str(t.id) for t in created]


async def test_replay_failed_event(dispatcher, database, notifier, ticket):
    notifier.fail_permanent()
    await dispatcher.flush()
    failed = await dispatcher.list_failed()
    assert len(failed) == 1

    replayed = await dispatcher.replay(failed[0].id)
    assert replayed.status == OutboxStatus.PENDING.value
    assert replayed.attempts == 0

    result = await dispatcher.flush()
    assert result.sent == 1
    assert await dispatcher.list_failed() == []


async def test_replay_rejections(dispatcher, database, ticket):
    await dispatcher.flush()
    row = await _only_row(database)

    with pytest.raises(ValidationException):
        await dispatcher.replay(row.id)
    with pytest.raises(ResourceNotFoundException):
        await dispatcher.replay(9999)
