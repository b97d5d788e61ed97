"""Helpers shared by the test modules."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, List, Optional

from sqlalchemy import select

from campusdesk.core import PermanentDeliveryFailure, TransientDeliveryFailure
from campusdesk.escalation.infrastructure.models import EscalationRuleModel
from campusdesk.infrastructure.database import Database
from campusdesk.notifications.application.services import INotifier
from campusdesk.notifications.domain.events import NotificationMessage
from campusdesk.notifications.infrastructure.models import OutboxEventModel
from campusdesk.tickets.infrastructure.models import ActivityModel, TicketModel

CRON_SECRET = "test-cron-secret"


class FakeClock:
    """Callable clock the tests move by hand."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeMonotonic:
    def __init__(self, start: float = 1000.0):
        self.value = start

    def __call__(self) -> float:
        return self.value


class RecordingNotifier(INotifier):
    """Records delivered messages; raises queued or permanent errors on demand."""

    name = "recording"

    def __init__(self) -> None:
        self.sent: List[NotificationMessage] = []
        self.calls = 0
        self._queued: List[Exception] = []
        self.always: Optional[Exception] = None
        self.on_send = None

    def fail_next(self, *errors: Exception) -> None:
        self._queued.extend(errors)

    def fail_transient(self, times: int = 1) -> None:
        self.fail_next(*[TransientDeliveryFailure("slack", "HTTP 503") for _ in range(times)])

    def fail_permanent(self) -> None:
        self.fail_next(PermanentDeliveryFailure("slack", "HTTP 400"))

    async def send(self, message: NotificationMessage) -> None:
        self.calls += 1
        if self.on_send is not None:
            await self.on_send(message)
        if self._queued:
            raise self._queued.pop(0)
        if self.always is not None:
            raise self.always
        self.sent.append(message)


async def fetch_ticket(database: Database, ticket_id: Any) -> TicketModel:
    async with database.session() as session:
        return await session.get(TicketModel, ticket_id)


async def fetch_activity(database: Database, ticket_id: Any) -> List[ActivityModel]:
    async with database.session() as session:
        result = await session.execute(
            select(ActivityModel)
            .where(ActivityModel.ticket_id == ticket_id)
            .order_by(ActivityModel.created_at, ActivityModel.id)
        )
        return list(result.scalars().all())


async def fetch_outbox(database: Database, event_type: Optional[str] = None) -> List[OutboxEventModel]:
    async with database.session() as session:
        stmt = select(OutboxEventModel).order_by(OutboxEventModel.id)
        if event_type is not None:
            stmt = stmt.where(OutboxEventModel.event_type == event_type)
        result = await session.execute(stmt)
        return list(result.scalars().all())


async def insert_rule(database: Database, **values: Any) -> EscalationRuleModel:
    async with database.session() as session:
        rule = EscalationRuleModel(**values)
        session.add(rule)
        await session.flush()
        return rule


async def update_ticket(database: Database, ticket_id: Any, **values: Any) -> None:
    """Direct row edit for arranging test state."""
    async with database.session() as session:
        ticket = await session.get(TicketModel, ticket_id)
        for key, value in values.items():
            setattr(ticket, key, value)
