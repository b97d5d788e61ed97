"""
Ticket Infrastructure Repositories
==================================

SQLAlchemy implementations of the ticket and activity repositories.

Both work on a session owned by the caller, so writes made through them
join the caller's transaction.
"""

from datetime import datetime
from typing import Any, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from campusdesk.config import ActivityAction, TicketStatus, Visibility
from campusdesk.core import RepositoryException
from campusdesk.tickets.application.services import (
    IActivityRepository,
    IFeedbackRepository,
    ITicketRepository,
)

DEADLINE_COLUMNS = ("acknowledgement_due_at", "resolution_due_at")


def parse_ticket_id(ticket_id: Any) -> Optional[UUID]:
    if isinstance(ticket_id, UUID):
        return ticket_id
    try:
        return UUID(str(ticket_id))
    except ValueError:
        return None


class SQLAlchemyTicketRepository(ITicketRepository):
    """
    SQLAlchemy implementation of ticket repository.

    Request-path reads go through ``get_for_update`` so the row stays locked
    until the surrounding transaction ends (a no-op on SQLite).
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, ticket_id: Any) -> Optional[Any]:
        """Get ticket by ID."""
        from campusdesk.tickets.infrastructure.models import TicketModel

        ticket_uuid = parse_ticket_id(ticket_id)
        if ticket_uuid is None:
            return None

        stmt = select(TicketModel).where(TicketModel.id == ticket_uuid)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_for_update(self, ticket_id: Any) -> Optional[Any]:
        """Get ticket by ID and lock the row."""
        from campusdesk.tickets.infrastructure.models import TicketModel

        ticket_uuid = parse_ticket_id(ticket_id)
        if ticket_uuid is None:
            return None

        stmt = (
            select(TicketModel)
            .where(TicketModel.id == ticket_uuid)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def add(self, ticket: Any) -> Any:
        """Persist a new ticket."""
        self._session.add(ticket)
        await self._session.flush()
        return ticket

    @staticmethod
    def _breach_conditions(due_column: str, now: datetime, unescalated_only: bool) -> list:
        """Open ticket, deadline passed, not escalated since that deadline."""
        from campusdesk.tickets.infrastructure.models import TicketModel

        if due_column not in DEADLINE_COLUMNS:
            raise RepositoryException(f"Unknown deadline column: {due_column}")
        due = getattr(TicketModel, due_column)
        conditions = [
            TicketModel.resolved_at.is_(None),
            TicketModel.closed_at.is_(None),
            TicketModel.status != TicketStatus.CANCELLED.value,
            due.is_not(None),
            due < now,
            or_(TicketModel.escalated_at.is_(None), TicketModel.escalated_at < due),
        ]
        if unescalated_only:
            conditions.append(TicketModel.escalation_level == 0)
        return conditions

    async def list_breached_ids(
        self,
        due_column: str,
        now: datetime,
        limit: int,
        after_id: Optional[UUID] = None,
        unescalated_only: bool = False,
    ) -> List[UUID]:
        """Candidate IDs for one scanner pass, keyset-paginated by ID."""
        from campusdesk.tickets.infrastructure.models import TicketModel

        conditions = self._breach_conditions(due_column, now, unescalated_only)
        if after_id is not None:
            conditions.append(TicketModel.id > after_id)

        stmt = (
            select(TicketModel.id)
            .where(and_(*conditions))
            .order_by(TicketModel.id)
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def escalate_if_breached(
        self,
        ticket_id: UUID,
        due_column: str,
        now: datetime,
        unescalated_only: bool = False,
    ) -> bool:
        """
        Bump ``escalation_level`` by one, guarded by the full breach predicate.

        Returns True only when this statement changed the row; a concurrent
        scanner or status change makes it a no-op.
        """
        from campusdesk.tickets.infrastructure.models import TicketModel

        conditions = self._breach_conditions(due_column, now, unescalated_only)
        stmt = (
            update(TicketModel)
            .where(TicketModel.id == ticket_id, *conditions)
            .values(
                escalation_level=TicketModel.escalation_level + 1,
                escalated_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1


class SQLAlchemyActivityRepository(IActivityRepository):
    """
    Insert-only activity log. Entries are never updated or deleted.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def add(
        self,
        ticket_id: UUID,
        action: ActivityAction,
        visibility: Visibility,
        details: dict,
        actor_id: Optional[str],
        created_at: datetime,
    ) -> Any:
        from campusdesk.tickets.infrastructure.models import ActivityModel

        model = ActivityModel(
            ticket_id=ticket_id,
            actor_id=actor_id,
            action=action.value,
            visibility=visibility.value,
            details=details,
            created_at=created_at,
        )
        self._session.add(model)
        await self._session.flush()
        return model

    async def list_for_ticket(
        self,
        ticket_id: UUID,
        visibilities: Optional[Sequence[Visibility]] = None,
    ) -> List[Any]:
        """Timeline for one ticket, oldest first; ``id`` breaks timestamp ties."""
        from campusdesk.tickets.infrastructure.models import ActivityModel

        stmt = select(ActivityModel).where(ActivityModel.ticket_id == ticket_id)
        if visibilities is not None:
            stmt = stmt.where(ActivityModel.visibility.in_([v.value for v in visibilities]))
        stmt = stmt.order_by(ActivityModel.created_at.asc(), ActivityModel.id.asc())

        result = await self._session.execute(stmt)
        return list(result.scalars().all())


class SQLAlchemyFeedbackRepository(IFeedbackRepository):
    """SQLAlchemy implementation of feedback repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_for_ticket(self, ticket_id: UUID) -> Optional[Any]:
        from campusdesk.tickets.infrastructure.models import FeedbackModel

        stmt = select(FeedbackModel).where(FeedbackModel.ticket_id == ticket_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def add(
        self,
        ticket_id: UUID,
        rating: int,
        feedback: Optional[str],
        submitted_by: str,
        created_at: datetime,
    ) -> Any:
        from campusdesk.tickets.infrastructure.models import FeedbackModel

        model = FeedbackModel(
            ticket_id=ticket_id,
            rating=rating,
            feedback=feedback,
            submitted_by=submitted_by,
            created_at=created_at,
        )
        self._session.add(model)
        await self._session.flush()
        return model
