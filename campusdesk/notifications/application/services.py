"""
Notification Application Services
=================================

The outbox dispatcher: at-least-once delivery of outbox rows to external
senders.

Protocol per row:
1. claim (conditional UPDATE to PROCESSING, own short transaction)
2. send outside any transaction, bounded by a per-call timeout
3. record the outcome (conditional UPDATE, own short transaction)

Sender failures never propagate out of ``flush``; they end up as a retry
schedule or a FAILED row with ``last_error``.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Collection, Dict, List, Optional

from campusdesk.config import EventType, OutboxStatus
from campusdesk.core import (
    PermanentDeliveryFailure,
    ResourceNotFoundException,
    TransientDeliveryFailure,
    ValidationException,
)
from campusdesk.notifications.domain.events import NotificationMessage
from campusdesk.shared.clock import Clock, utcnow
from campusdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


# ========== Interfaces ==========

class IOutboxRepository(ABC):
    """Interface for outbox data access."""

    @abstractmethod
    async def enqueue(
        self,
        event_type: EventType,
        aggregate_id: str,
        payload: Dict[str, Any],
        now: datetime,
        max_attempts: int = 3,
        aggregate_type: str = "ticket",
    ) -> Any:
        """Insert a pending event into the current transaction."""

    @abstractmethod
    async def list_eligible_ids(
        self,
        now: datetime,
        stale_before: datetime,
        limit: int,
        exclude: Collection[int] = (),
    ) -> List[int]:
        """IDs of rows a dispatcher may claim, oldest first."""

    @abstractmethod
    async def claim(self, event_id: int, now: datetime, stale_before: datetime) -> Optional[Any]:
        """Claim a row; None if it is no longer eligible."""

    @abstractmethod
    async def mark_sent(self, event_id: int, claimed_at: datetime, now: datetime) -> bool:
        """Record a successful delivery."""

    @abstractmethod
    async def mark_retry(
        self,
        event_id: int,
        claimed_at: datetime,
        attempts: int,
        scheduled_at: datetime,
        error: str,
    ) -> bool:
        """Return a row to PENDING with a later eligibility time."""

    @abstractmethod
    async def mark_failed(
        self,
        event_id: int,
        claimed_at: datetime,
        attempts: int,
        error: str,
        now: datetime,
    ) -> bool:
        """Move a row to FAILED for good."""

    @abstractmethod
    async def count_pending(self) -> int:
        """Rows still waiting for delivery."""

    @abstractmethod
    async def get_by_id(self, event_id: int) -> Optional[Any]:
        """Get one row."""

    @abstractmethod
    async def list_failed(self, limit: int = 100, offset: int = 0) -> List[Any]:
        """FAILED rows, newest first."""

    @abstractmethod
    async def replay(self, event_id: int, now: datetime) -> bool:
        """FAILED back to PENDING."""


class INotifier(ABC):
    """A notification channel. Raises delivery failures; returns None on success."""

    name: str = "notifier"

    @abstractmethod
    async def send(self, message: NotificationMessage) -> None:
        """Deliver one message."""


# ========== Results ==========

@dataclass
class FlushResult:
    """Outcome of one dispatcher invocation."""
    sent: int = 0
    failed: int = 0
    retried: int = 0
    skipped: int = 0
    still_pending: int = 0
    deadline_reached: bool = False


@dataclass
class _Delivery:
    ok: bool
    permanent: bool = False
    error: Optional[str] = None


# ========== Dispatcher ==========

class OutboxDispatcher:
    """
    Drains the outbox in bounded batches until it is empty or the deadline
    is near.

    ``deadline`` is a ``time.monotonic()`` instant. No new row is claimed
    once less than ``outbox_deadline_headroom_seconds`` remain; whatever is
    left is picked up by the next invocation.
    """

    def __init__(
        self,
        database,
        notifier,
        settings,
        clock: Clock = utcnow,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self._database = database
        self._notifier = notifier
        self._settings = settings
        self._clock = clock
        self._monotonic = monotonic

    def _repository(self, session) -> IOutboxRepository:
        from campusdesk.notifications.infrastructure.repositories import SQLAlchemyOutboxRepository
        return SQLAlchemyOutboxRepository(session)

    def _stale_before(self, now: datetime) -> datetime:
        return now - timedelta(seconds=self._settings.outbox_claim_timeout_seconds)

    def _has_time(self, deadline: float) -> bool:
        return deadline - self._monotonic() > self._settings.outbox_deadline_headroom_seconds

    def retry_delay(self, attempts: int) -> timedelta:
        """Backoff before the next attempt, doubling with each failure."""
        return timedelta(seconds=self._settings.outbox_retry_base_seconds * (2 ** attempts))

    async def flush(
        self,
        batch_size: Optional[int] = None,
        deadline: Optional[float] = None,
    ) -> FlushResult:
        batch_size = batch_size or self._settings.outbox_batch_size
        if deadline is None:
            deadline = self._monotonic() + self._settings.outbox_processing_timeout_seconds

        result = FlushResult()
        attempted: set[int] = set()

        while True:
            if not self._has_time(deadline):
                result.deadline_reached = True
                break

            now = self._clock()
            async with self._database.session() as session:
                ids = await self._repository(session).list_eligible_ids(
                    now, self._stale_before(now), batch_size, exclude=attempted
                )
            if not ids:
                break

            for event_id in ids:
                if not self._has_time(deadline):
                    result.deadline_reached = True
                    break
                attempted.add(event_id)
                outcome = await self._process(event_id)
                if outcome is None:
                    result.skipped += 1
                elif outcome == OutboxStatus.SENT:
                    result.sent += 1
                elif outcome == OutboxStatus.FAILED:
                    result.failed += 1
                else:
                    result.retried += 1

            if result.deadline_reached:
                break

        async with self._database.session() as session:
            result.still_pending = await self._repository(session).count_pending()

        logger.info(
            "Outbox flush finished",
            extra={
                "sent": result.sent,
                "failed": result.failed,
                "retried": result.retried,
                "skipped": result.skipped,
                "still_pending": result.still_pending,
                "deadline_reached": result.deadline_reached,
            }
        )
        return result

    async def _process(self, event_id: int) -> Optional[OutboxStatus]:
        """Claim, deliver and record one row. None means another worker owns it."""
        claimed_at = self._clock()
        async with self._database.session() as session:
            repo = self._repository(session)
            row = await repo.claim(event_id, claimed_at, self._stale_before(claimed_at))
            if row is None:
                return None
            message = NotificationMessage.from_payload(row.id, row.event_type, row.payload or {})
            max_attempts = row.max_attempts

            # Abandoned claims already used up every attempt
            if row.attempts >= max_attempts:
                error = row.last_error or f"delivery abandoned after {row.attempts} attempts"
                await repo.mark_failed(event_id, claimed_at, row.attempts, error, claimed_at)
                logger.error(
                    "Outbox event failed permanently",
                    extra={
                        "event_id": event_id,
                        "event_type": message.event_type,
                        "attempts": row.attempts,
                        "error": error,
                    }
                )
                return OutboxStatus.FAILED
            attempts = row.attempts + 1

        delivery = await self._deliver(message)
        now = self._clock()

        async with self._database.session() as session:
            repo = self._repository(session)
            if delivery.ok:
                await repo.mark_sent(event_id, claimed_at, now)
                return OutboxStatus.SENT

            if delivery.permanent or attempts >= max_attempts:
                await repo.mark_failed(event_id, claimed_at, attempts, delivery.error, now)
                logger.error(
                    "Outbox event failed permanently",
                    extra={
                        "event_id": event_id,
                        "event_type": message.event_type,
                        "attempts": attempts,
                        "error": delivery.error,
                    }
                )
                return OutboxStatus.FAILED

            scheduled_at = now + self.retry_delay(attempts)
            await repo.mark_retry(event_id, claimed_at, attempts, scheduled_at, delivery.error)
            logger.warning(
                "Outbox event delivery failed, will retry",
                extra={
                    "event_id": event_id,
                    "event_type": message.event_type,
                    "attempts": attempts,
                    "scheduled_at": scheduled_at.isoformat(),
                    "error": delivery.error,
                }
            )
            return OutboxStatus.PENDING

    async def _deliver(self, message: NotificationMessage) -> _Delivery:
        timeout = self._settings.notification_timeout_seconds
        try:
            await asyncio.wait_for(self._notifier.send(message), timeout=timeout)
        except PermanentDeliveryFailure as e:
            return _Delivery(ok=False, permanent=True, error=e.message)
        except TransientDeliveryFailure as e:
            return _Delivery(ok=False, error=e.message)
        except asyncio.TimeoutError:
            return _Delivery(ok=False, error=f"send timed out after {timeout}s")
        except Exception as e:
            logger.exception("Notification sender raised", extra={"event_id": message.event_id})
            return _Delivery(ok=False, error=f"{type(e).__name__}: {e}")
        return _Delivery(ok=True)

    # ========== Operator actions ==========

    async def list_failed(self, limit: int = 100, offset: int = 0) -> List[Any]:
        async with self._database.session() as session:
            return await self._repository(session).list_failed(limit=limit, offset=offset)

    async def replay(self, event_id: int) -> Any:
        """Put a FAILED row back in the queue with a fresh attempt budget."""
        now = self._clock()
        async with self._database.session() as session:
            repo = self._repository(session)
            row = await repo.get_by_id(event_id)
            if row is None:
                raise ResourceNotFoundException("OutboxEvent", str(event_id))
            if row.status != OutboxStatus.FAILED.value:
                raise ValidationException(
                    "Only failed events can be replayed",
                    {"event_id": event_id, "status": row.status}
                )
            if not await repo.replay(event_id, now):
                raise ValidationException("Event changed state during replay", {"event_id": event_id})
            await session.refresh(row)

        logger.info("Outbox event replayed", extra={"event_id": event_id})
        return row
