"""
Outbox Infrastructure Repositories
==================================

SQLAlchemy implementation of the outbox repository.

Every state change after insert is a single conditional UPDATE whose
rowcount tells the caller whether it won.
"""

from datetime import datetime
from typing import Any, Collection, Dict, List, Optional

from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from campusdesk.config import EventType, OutboxStatus
from campusdesk.notifications.application.services import IOutboxRepository


class SQLAlchemyOutboxRepository(IOutboxRepository):
    """SQLAlchemy implementation of outbox repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def enqueue(
        self,
        event_type: EventType,
        aggregate_id: str,
        payload: Dict[str, Any],
        now: datetime,
        max_attempts: int = 3,
        aggregate_type: str = "ticket",
    ) -> Any:
        """Insert a pending event into the caller's transaction."""
        from campusdesk.notifications.infrastructure.models import OutboxEventModel

        model = OutboxEventModel(
            event_type=event_type.value,
            aggregate_type=aggregate_type,
            aggregate_id=str(aggregate_id),
            payload=payload,
            status=OutboxStatus.PENDING.value,
            attempts=0,
            max_attempts=max_attempts,
            scheduled_at=now,
            created_at=now,
        )
        self._session.add(model)
        await self._session.flush()
        return model

    @staticmethod
    def _eligible(now: datetime, stale_before: datetime):
        from campusdesk.notifications.infrastructure.models import OutboxEventModel

        return or_(
            and_(
                OutboxEventModel.status == OutboxStatus.PENDING.value,
                OutboxEventModel.scheduled_at <= now,
            ),
            and_(
                OutboxEventModel.status == OutboxStatus.PROCESSING.value,
                OutboxEventModel.processing_started_at < stale_before,
            ),
        )

    async def list_eligible_ids(
        self,
        now: datetime,
        stale_before: datetime,
        limit: int,
        exclude: Collection[int] = (),
    ) -> List[int]:
        """Oldest deliverable rows first: due pending rows and abandoned claims."""
        from campusdesk.notifications.infrastructure.models import OutboxEventModel

        stmt = select(OutboxEventModel.id).where(self._eligible(now, stale_before))
        if exclude:
            stmt = stmt.where(OutboxEventModel.id.notin_(list(exclude)))
        stmt = (
            stmt
            .order_by(OutboxEventModel.created_at.asc(), OutboxEventModel.id.asc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def claim(self, event_id: int, now: datetime, stale_before: datetime) -> Optional[Any]:
        """
        Move one row to PROCESSING if it is still eligible.

        Taking over a stale claim counts the abandoned attempt, so a row whose
        send keeps killing its worker still runs out of attempts.
        Returns the claimed row, or None when another dispatcher got there first.
        """
        from campusdesk.notifications.infrastructure.models import OutboxEventModel

        attempts = case(
            (OutboxEventModel.status == OutboxStatus.PROCESSING.value, OutboxEventModel.attempts + 1),
            else_=OutboxEventModel.attempts,
        )
        stmt = (
            update(OutboxEventModel)
            .where(OutboxEventModel.id == event_id, self._eligible(now, stale_before))
            .values(status=OutboxStatus.PROCESSING.value, processing_started_at=now, attempts=attempts)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            return None

        stmt = (
            select(OutboxEventModel)
            .where(OutboxEventModel.id == event_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one()

    async def _finish(self, event_id: int, claimed_at: datetime, **values: Any) -> bool:
        """Apply ``values`` only while our claim is still the current one."""
        from campusdesk.notifications.infrastructure.models import OutboxEventModel

        stmt = (
            update(OutboxEventModel)
            .where(
                OutboxEventModel.id == event_id,
                OutboxEventModel.status == OutboxStatus.PROCESSING.value,
                OutboxEventModel.processing_started_at == claimed_at,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def mark_sent(self, event_id: int, claimed_at: datetime, now: datetime) -> bool:
        return await self._finish(
            event_id, claimed_at,
            status=OutboxStatus.SENT.value,
            processed_at=now,
            last_error=None,
        )

    async def mark_retry(
        self,
        event_id: int,
        claimed_at: datetime,
        attempts: int,
        scheduled_at: datetime,
        error: str,
    ) -> bool:
        return await self._finish(
            event_id, claimed_at,
            status=OutboxStatus.PENDING.value,
            attempts=attempts,
            scheduled_at=scheduled_at,
            processing_started_at=None,
            last_error=error,
        )

    async def mark_failed(
        self,
        event_id: int,
        claimed_at: datetime,
        attempts: int,
        error: str,
        now: datetime,
    ) -> bool:
        return await self._finish(
            event_id, claimed_at,
            status=OutboxStatus.FAILED.value,
            attempts=attempts,
            processed_at=now,
            last_error=error,
        )

    async def count_pending(self) -> int:
        """Rows not yet in a final state, including ones scheduled for later."""
        from campusdesk.notifications.infrastructure.models import OutboxEventModel

        stmt = select(func.count(OutboxEventModel.id)).where(
            OutboxEventModel.status.in_([OutboxStatus.PENDING.value, OutboxStatus.PROCESSING.value])
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def get_by_id(self, event_id: int) -> Optional[Any]:
        from campusdesk.notifications.infrastructure.models import OutboxEventModel

        return await self._session.get(OutboxEventModel, event_id)

    async def list_failed(self, limit: int = 100, offset: int = 0) -> List[Any]:
        from campusdesk.notifications.infrastructure.models import OutboxEventModel

        stmt = (
            select(OutboxEventModel)
            .where(OutboxEventModel.status == OutboxStatus.FAILED.value)
            .order_by(OutboxEventModel.created_at.desc(), OutboxEventModel.id.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def replay(self, event_id: int, now: datetime) -> bool:
        """Operator action: FAILED back to PENDING with a fresh attempt budget."""
        from campusdesk.notifications.infrastructure.models import OutboxEventModel

        stmt = (
            update(OutboxEventModel)
            .where(
                OutboxEventModel.id == event_id,
                OutboxEventModel.status == OutboxStatus.FAILED.value,
            )
            .values(
                status=OutboxStatus.PENDING.value,
                attempts=0,
                scheduled_at=now,
                processing_started_at=None,
                processed_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1
