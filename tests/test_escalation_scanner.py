"""Escalation scanner against a real SQLite database."""

import pytest

from campusdesk.config import ActivityAction, EventType, Visibility
from campusdesk.core import RepositoryException
from campusdesk.escalation.application import EscalationScanner, EscalationService
from campusdesk.tickets.infrastructure.repositories import SQLAlchemyTicketRepository

from tests.utils import fetch_activity, fetch_outbox, fetch_ticket, insert_rule, update_ticket


async def test_nothing_to_do_before_deadlines(container, ticket, clock):
    clock.advance(hours=1)
    result = await container.escalation_scanner.run()
    assert result.total == 0


async def test_acknowledgement_breach_escalates_once(container, database, ticket, clock):
    clock.advance(hours=3)
    first = await container.escalation_scanner.run()
    second = await container.escalation_scanner.run()

    assert first.acknowledgement_escalated == 1
    assert first.resolution_escalated == 0
    assert second.total == 0

    stored = await fetch_ticket(database, ticket.id)
    assert stored.escalation_level == 1
    assert stored.escalated_at == clock.now

    entry = (await fetch_activity(database, ticket.id))[-1]
    assert entry.action == ActivityAction.ESCALATED.value
    assert entry.visibility == Visibility.ADMIN_ONLY.value
    assert entry.actor_id is None
    assert entry.details["reason"] == "ack SLA breached"
    assert entry.details["previous_level"] == 0
    assert entry.details["new_level"] == 1
    assert entry.details["due_at"] == ticket.acknowledgement_due_at.isoformat()

    assert len(await fetch_outbox(database, EventType.ESCALATED.value)) == 1


async def test_resolution_breach_after_acknowledgement_breach(container, database, ticket, clock):
    clock.advance(hours=3)
    await container.escalation_scanner.run()

    clock.advance(hours=46)
    result = await container.escalation_scanner.run()
    assert result.acknowledgement_escalated == 0
    assert result.resolution_escalated == 1

    stored = await fetch_ticket(database, ticket.id)
    assert stored.escalation_level == 2

    again = await container.escalation_scanner.run()
    assert again.total == 0


async def test_both_deadlines_breached_escalates_once_per_run(container, database, ticket, clock):
    clock.advance(hours=50)
    first = await container.escalation_scanner.run()

    assert first.acknowledgement_escalated == 1
    assert first.resolution_escalated == 0
    stored = await fetch_ticket(database, ticket.id)
    assert stored.escalation_level == 1

    # The resolution breach predates the ack escalation, so it is not counted again
    clock.advance(hours=1)
    second = await container.escalation_scanner.run()
    assert second.total == 0


async def test_new_deadline_can_escalate_again(container, database, ticket, admin, clock):
    clock.advance(hours=50)
    await container.escalation_scanner.run()

    await container.lifecycle.set_tat(ticket.id, admin, "2h")
    clock.advance(hours=3)
    result = await container.escalation_scanner.run()

    assert result.resolution_escalated == 1
    assert (await fetch_ticket(database, ticket.id)).escalation_level == 2


async def test_finished_tickets_are_not_escalated(container, service, student, admin, clock):
    resolved = await service.create_ticket(student, title="resolved")
    cancelled = await service.create_ticket(student, title="cancelled")
    closed = await service.create_ticket(student, title="closed")
    await service.update_status(resolved.id, "resolved", admin)
    await service.update_status(cancelled.id, "cancelled", admin)
    await service.update_status(closed.id, "resolved", admin)
    await service.update_status(closed.id, "closed", admin)

    clock.advance(days=10)
    result = await container.escalation_scanner.run()
    assert result.total == 0


async def test_cancelled_ticket_with_cleared_timestamps_is_skipped(container, database, ticket, admin, clock):
    await container.lifecycle.update_status(ticket.id, "cancelled", admin)
    await update_ticket(database, ticket.id, resolved_at=None, closed_at=None)

    clock.advance(days=3)
    result = await container.escalation_scanner.run()
    assert result.total == 0


async def test_matching_rule_reassigns_and_routes_notification(container, database, service, student, clock):
    await insert_rule(database, level=1, escalate_to="dean-office", notify_channel="#escalations")
    await insert_rule(
        database, level=1, category_id=3,
        escalate_to="hostel-warden", notify_channel="email:warden@campus.example.edu",
    )
    hostel = await service.create_ticket(student, title="Broken window", category_id=3)
    other = await service.create_ticket(student, title="Library card")

    clock.advance(hours=3)
    result = await container.escalation_scanner.run()
    assert result.acknowledgement_escalated == 2

    assert (await fetch_ticket(database, hostel.id)).assigned_to == "hostel-warden"
    assert (await fetch_ticket(database, other.id)).assigned_to == "dean-office"

    channels = {
        event.aggregate_id: event.payload["channel"]
        for event in await fetch_outbox(database, EventType.ESCALATED.value)
    }
    assert channels[str(hostel.id)] == "email:warden@campus.example.edu"
    assert channels[str(other.id)] == "#escalations"


async def test_inactive_rules_are_ignored(container, database, ticket, clock):
    await insert_rule(database, level=1, escalate_to="nobody", is_active=False)

    clock.advance(hours=3)
    await container.escalation_scanner.run()

    stored = await fetch_ticket(database, ticket.id)
    assert stored.assigned_to is None
    event = (await fetch_outbox(database, EventType.ESCALATED.value))[0]
    assert event.payload["channel"] == "#helpdesk-alerts"


async def test_level_two_falls_back_to_level_one_rule(container, database, ticket, clock):
    await insert_rule(database, level=1, escalate_to="warden")

    clock.advance(hours=3)
    await container.escalation_scanner.run()
    clock.advance(hours=46)
    await container.escalation_scanner.run()

    entry = (await fetch_activity(database, ticket.id))[-1]
    assert entry.details["new_level"] == 2
    assert entry.details["escalated_to"] == "warden"


async def test_scanner_pages_through_candidates(settings, database, service, student, clock):
    small = settings.model_copy(update={"escalation_batch_size": 2})
    scanner = EscalationScanner(database, EscalationService(small, clock), small, clock=clock)
    for n in range(5):
        await service.create_ticket(student, title=f"ticket {n}")

    clock.advance(hours=3)
    result = await scanner.run()
    assert result.acknowledgement_escalated == 5


async def test_guarded_update_applies_once(database, ticket, clock):
    clock.advance(hours=3)
    async with database.session() as session:
        repo = SQLAlchemyTicketRepository(session)
        assert await repo.escalate_if_breached(
            ticket.id, "acknowledgement_due_at", clock.now, unescalated_only=True
        )
    async with database.session() as session:
        repo = SQLAlchemyTicketRepository(session)
        assert not await repo.escalate_if_breached(
            ticket.id, "acknowledgement_due_at", clock.now, unescalated_only=True
        )


async def test_ticket_resolved_after_listing_is_not_escalated(container, database, ticket, admin, clock):
    clock.advance(hours=3)
    async with database.session() as session:
        candidates = await SQLAlchemyTicketRepository(session).list_breached_ids(
            "acknowledgement_due_at", clock.now, 10, unescalated_only=True
        )
    assert candidates == [ticket.id]

    await container.lifecycle.update_status(ticket.id, "resolved", admin)

    async with database.session() as session:
        changed = await SQLAlchemyTicketRepository(session).escalate_if_breached(
            ticket.id, "acknowledgement_due_at", clock.now, unescalated_only=True
        )
    assert not changed
    assert (await fetch_ticket(database, ticket.id)).escalation_level == 0


async def test_scan_deadline_boundary_is_strict(container, ticket, clock):
    clock.now = ticket.acknowledgement_due_at
    result = await container.escalation_scanner.run()
    assert result.total == 0

    clock.advance(seconds=1)
    result = await container.escalation_scanner.run()
    assert result.acknowledgement_escalated == 1


async def test_unknown_deadline_column_is_rejected(database, clock):
    async with database.session() as session:
        with pytest.raises(RepositoryException):
            await SQLAlchemyTicketRepository(session).list_breached_ids("created_at", clock.now, 10)
