"""
Escalation Application Services
===============================

- ``EscalationService``: the single write path for an escalation (rule
  lookup, reassignment, activity entry, outbox event). Used by the scanner,
  by manual escalation and by the TAT-extension/reopen thresholds.
- ``EscalationScanner``: periodic sweep for acknowledgement and resolution
  breaches.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional

from campusdesk.config import ActivityAction, EventType, Visibility
from campusdesk.escalation.domain.rules import (
    TRIGGER_REASONS,
    EscalationRule,
    EscalationTrigger,
    resolve_rule,
)
from campusdesk.notifications.domain.events import build_ticket_payload
from campusdesk.shared.clock import Clock, utcnow
from campusdesk.shared.infrastructure.logging import get_logger, log_latency

logger = get_logger(__name__)


class IEscalationRuleRepository(ABC):
    """Interface for escalation rule access."""

    @abstractmethod
    async def list_candidates(self, ticket: Any) -> List[EscalationRule]:
        """Active rules that may apply to the ticket."""


@dataclass
class EscalationRecord:
    """What one escalation did."""
    ticket_id: str
    trigger: EscalationTrigger
    previous_level: int
    new_level: int
    rule_id: Optional[int] = None
    escalate_to: Optional[str] = None
    notify_channel: Optional[str] = None


@dataclass
class EscalationScanResult:
    acknowledgement_escalated: int = 0
    resolution_escalated: int = 0

    @property
    def total(self) -> int:
        return self.acknowledgement_escalated + self.resolution_escalated


class EscalationService:
    """
    Writes the side effects of an escalation into the caller's session.

    The ticket passed in must already carry its new ``escalation_level``
    (``record``) or be locked by the caller (``escalate_locked``).
    """

    def __init__(self, settings, clock: Clock = utcnow):
        self._settings = settings
        self._clock = clock

    def _repositories(self, session):
        from campusdesk.escalation.infrastructure.repositories import SQLAlchemyEscalationRuleRepository
        from campusdesk.notifications.infrastructure.repositories import SQLAlchemyOutboxRepository
        from campusdesk.tickets.infrastructure.repositories import SQLAlchemyActivityRepository

        return (
            SQLAlchemyEscalationRuleRepository(session),
            SQLAlchemyActivityRepository(session),
            SQLAlchemyOutboxRepository(session),
        )

    async def escalate_locked(
        self,
        session,
        ticket: Any,
        trigger: EscalationTrigger,
        now: datetime,
        actor_id: Optional[str] = None,
        reason: Optional[str] = None,
        visibility: Visibility = Visibility.ADMIN_ONLY,
    ) -> EscalationRecord:
        """Bump a row the caller holds a lock on, then record it."""
        previous_level = ticket.escalation_level
        ticket.escalation_level = previous_level + 1
        ticket.escalated_at = now
        ticket.updated_at = now
        return await self.record(
            session, ticket, previous_level, trigger, now,
            actor_id=actor_id, reason=reason, visibility=visibility,
        )

    async def record(
        self,
        session,
        ticket: Any,
        previous_level: int,
        trigger: EscalationTrigger,
        now: datetime,
        actor_id: Optional[str] = None,
        reason: Optional[str] = None,
        due_at: Optional[datetime] = None,
        visibility: Visibility = Visibility.ADMIN_ONLY,
    ) -> EscalationRecord:
        """Rule lookup, reassignment, activity entry and outbox event for one escalation."""
        rules_repo, activity_repo, outbox_repo = self._repositories(session)

        rules = await rules_repo.list_candidates(ticket)
        rule = resolve_rule(rules, ticket, ticket.escalation_level)
        if rule is not None and rule.escalate_to:
            ticket.assigned_to = rule.escalate_to

        channel = (rule.notify_channel if rule else None) or self._settings.slack_channel
        details = {
            "reason": reason or TRIGGER_REASONS[trigger],
            "trigger": trigger.value,
            "previous_level": previous_level,
            "new_level": ticket.escalation_level,
            "due_at": due_at,
            "rule_id": rule.id if rule else None,
            "escalated_to": rule.escalate_to if rule else None,
        }
        payload = build_ticket_payload(
            EventType.ESCALATED, ticket, channel, self._settings.app_base_url, **details
        )

        await activity_repo.add(
            ticket_id=ticket.id,
            action=ActivityAction.ESCALATED,
            visibility=visibility,
            details=payload["details"],
            actor_id=actor_id,
            created_at=now,
        )
        await outbox_repo.enqueue(
            EventType.ESCALATED,
            str(ticket.id),
            payload,
            now,
            max_attempts=self._settings.outbox_max_attempts,
        )

        logger.warning(
            "Ticket escalated",
            extra={
                "ticket_id": str(ticket.id),
                "trigger": trigger.value,
                "previous_level": previous_level,
                "new_level": ticket.escalation_level,
                "rule_id": details["rule_id"],
                "actor_id": actor_id,
            }
        )
        return EscalationRecord(
            ticket_id=str(ticket.id),
            trigger=trigger,
            previous_level=previous_level,
            new_level=ticket.escalation_level,
            rule_id=details["rule_id"],
            escalate_to=details["escalated_to"],
            notify_channel=channel,
        )


class EscalationScanner:
    """
    Detects SLA breaches and escalates each ticket once per breach.

    Each escalation runs in its own short transaction whose UPDATE repeats
    the full candidate predicate, so overlapping scans cannot both win.
    Both passes share one ``now``; the acknowledgement pass stamps
    ``escalated_at = now``, which keeps the resolution pass from escalating
    the same ticket again in this run.
    """

    def __init__(self, database, escalation_service: EscalationService, settings, clock: Clock = utcnow):
        self._database = database
        self._escalations = escalation_service
        self._settings = settings
        self._clock = clock

    def _ticket_repository(self, session):
        from campusdesk.tickets.infrastructure.repositories import SQLAlchemyTicketRepository
        return SQLAlchemyTicketRepository(session)

    async def run(self) -> EscalationScanResult:
        now = self._clock()
        result = EscalationScanResult()

        with log_latency(logger, "escalation_scan"):
            result.acknowledgement_escalated = await self._run_pass(
                "acknowledgement_due_at",
                EscalationTrigger.ACKNOWLEDGEMENT_BREACH,
                now,
                unescalated_only=True,
            )
            result.resolution_escalated = await self._run_pass(
                "resolution_due_at",
                EscalationTrigger.RESOLUTION_BREACH,
                now,
            )

        logger.info(
            "Escalation scan finished",
            extra={
                "acknowledgement_escalated": result.acknowledgement_escalated,
                "resolution_escalated": result.resolution_escalated,
                "total": result.total,
            }
        )
        return result

    async def _run_pass(
        self,
        due_column: str,
        trigger: EscalationTrigger,
        now: datetime,
        unescalated_only: bool = False,
    ) -> int:
        batch_size = self._settings.escalation_batch_size
        escalated = 0
        after_id = None

        while True:
            async with self._database.session() as session:
                ids = await self._ticket_repository(session).list_breached_ids(
                    due_column, now, batch_size, after_id=after_id, unescalated_only=unescalated_only
                )

            for ticket_id in ids:
                if await self._escalate_one(ticket_id, due_column, trigger, now, unescalated_only):
                    escalated += 1

            if len(ids) < batch_size:
                return escalated
            after_id = ids[-1]

    async def _escalate_one(
        self,
        ticket_id,
        due_column: str,
        trigger: EscalationTrigger,
        now: datetime,
        unescalated_only: bool,
    ) -> bool:
        async with self._database.session() as session:
            repo = self._ticket_repository(session)
            if not await repo.escalate_if_breached(ticket_id, due_column, now, unescalated_only=unescalated_only):
                return False

            # The UPDATE holds the row lock until commit
            ticket = await repo.get_by_id(ticket_id)
            await self._escalations.record(
                session,
                ticket,
                ticket.escalation_level - 1,
                trigger,
                now,
                due_at=getattr(ticket, due_column),
            )
        return True
