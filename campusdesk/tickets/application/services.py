"""
Ticket Application Services
===========================

``TicketLifecycleService`` orchestrates every request-path mutation of a
ticket. Each operation is one database transaction that:

1. reads the ticket with a row lock,
2. validates the move (state machine, privilege, input bounds),
3. updates the ticket,
4. appends an activity entry,
5. enqueues an outbox event.

Any exception rolls back all of it, so no notification exists for a change
that did not happen and no change goes unaudited.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, NamedTuple, Optional, Sequence

from campusdesk.config import (
    STUDENT_VISIBILITIES,
    TERMINAL_STATUSES,
    ActivityAction,
    EventType,
    TicketStatus,
    Visibility,
)
from campusdesk.core import (
    ForbiddenException,
    InvalidTransitionException,
    ResourceNotFoundException,
    ValidationException,
)
from campusdesk.escalation.application.services import EscalationService
from campusdesk.escalation.domain.rules import EscalationTrigger
from campusdesk.notifications.domain.events import build_ticket_payload
from campusdesk.tickets.domain import (
    Actor,
    ExtendTATResult,
    ForwardResult,
    ReopenResult,
    SLAConfig,
    TATCalculator,
    TransitionOutcome,
    can_reopen,
    evaluate_transition,
    soft_limit_warning,
)
from campusdesk.shared.clock import Clock, utcnow
from campusdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

MAX_COMMENT_LENGTH = 2000
MAX_REASON_LENGTH = 500


# ========== Repository Interfaces (Dependency Inversion) ==========

class ITicketRepository(ABC):
    """Interface for ticket data access."""

    @abstractmethod
    async def get_by_id(self, ticket_id: Any) -> Optional[Any]:
        """Get ticket by ID."""

    @abstractmethod
    async def get_for_update(self, ticket_id: Any) -> Optional[Any]:
        """Get ticket by ID, locking the row for the current transaction."""

    @abstractmethod
    async def add(self, ticket: Any) -> Any:
        """Persist a new ticket."""

    @abstractmethod
    async def list_breached_ids(
        self,
        due_column: str,
        now: datetime,
        limit: int,
        after_id: Optional[Any] = None,
        unescalated_only: bool = False,
    ) -> List[Any]:
        """Escalation candidates for one deadline column."""

    @abstractmethod
    async def escalate_if_breached(
        self,
        ticket_id: Any,
        due_column: str,
        now: datetime,
        unescalated_only: bool = False,
    ) -> bool:
        """Guarded escalation UPDATE; True when the row changed."""


class IActivityRepository(ABC):
    """Interface for the append-only activity log."""

    @abstractmethod
    async def add(
        self,
        ticket_id: Any,
        action: ActivityAction,
        visibility: Visibility,
        details: dict,
        actor_id: Optional[str],
        created_at: datetime,
    ) -> Any:
        """Append an entry."""

    @abstractmethod
    async def list_for_ticket(
        self,
        ticket_id: Any,
        visibilities: Optional[Sequence[Visibility]] = None,
    ) -> List[Any]:
        """Entries for one ticket in timeline order."""


class IFeedbackRepository(ABC):
    """Interface for requester feedback."""

    @abstractmethod
    async def get_for_ticket(self, ticket_id: Any) -> Optional[Any]:
        """The ticket's feedback, if any was submitted."""

    @abstractmethod
    async def add(
        self,
        ticket_id: Any,
        rating: int,
        feedback: Optional[str],
        submitted_by: str,
        created_at: datetime,
    ) -> Any:
        """Store feedback for a ticket."""


class ISLAConfigProvider(ABC):
    """Interface for SLA configuration access."""

    @abstractmethod
    def get_config(self) -> SLAConfig:
        """Get current SLA configuration."""


class _Repositories(NamedTuple):
    tickets: ITicketRepository
    activity: IActivityRepository
    outbox: Any
    feedback: IFeedbackRepository


# ========== Application Services ==========

class TicketLifecycleService:
    """
    Status transitions, TAT changes, reopen/forward/assign, comments,
    feedback and manual escalation for tickets.
    """

    def __init__(
        self,
        database,
        settings,
        sla_config_provider: ISLAConfigProvider,
        escalation_service: Optional[EscalationService] = None,
        clock: Clock = utcnow,
    ):
        self._database = database
        self._settings = settings
        self._sla_config = sla_config_provider
        self._clock = clock
        self._escalations = escalation_service or EscalationService(settings, clock)
        self._tat = TATCalculator(max_tat_hours=settings.max_tat_hours)

    # ---------- plumbing ----------

    def _repositories(self, session) -> _Repositories:
        from campusdesk.notifications.infrastructure.repositories import SQLAlchemyOutboxRepository
        from campusdesk.tickets.infrastructure.repositories import (
            SQLAlchemyActivityRepository,
            SQLAlchemyFeedbackRepository,
            SQLAlchemyTicketRepository,
        )

        return _Repositories(
            tickets=SQLAlchemyTicketRepository(session),
            activity=SQLAlchemyActivityRepository(session),
            outbox=SQLAlchemyOutboxRepository(session),
            feedback=SQLAlchemyFeedbackRepository(session),
        )

    @staticmethod
    async def _load(repos: _Repositories, ticket_id: Any) -> Any:
        ticket = await repos.tickets.get_for_update(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", str(ticket_id))
        return ticket

    @staticmethod
    def _require_elevated(actor: Actor, action: str) -> None:
        if not actor.is_elevated:
            raise ForbiddenException(
                f"Only staff can {action}",
                {"actor_id": actor.id, "role": actor.role.value}
            )

    @staticmethod
    def _require_active(ticket: Any, action: str) -> None:
        if TicketStatus(ticket.status) in TERMINAL_STATUSES:
            raise ValidationException(
                f"Cannot {action} a {TicketStatus(ticket.status).value} ticket",
                {"ticket_id": str(ticket.id), "status": ticket.status}
            )

    @staticmethod
    def _validate_text(value: Optional[str], field: str, max_length: int, required: bool) -> Optional[str]:
        text = value.strip() if isinstance(value, str) else value
        if not text:
            if required:
                raise ValidationException(f"{field} is required", {"field": field})
            return None
        if len(text) > max_length:
            raise ValidationException(
                f"{field} cannot exceed {max_length} characters",
                {"field": field, "length": len(text)}
            )
        return text

    @staticmethod
    def _parse_status(status: Any) -> TicketStatus:
        try:
            return TicketStatus(status)
        except ValueError:
            raise ValidationException(f"Unknown status '{status}'", {"status": status})

    async def _record(
        self,
        repos: _Repositories,
        ticket: Any,
        action: ActivityAction,
        visibility: Visibility,
        event_type: EventType,
        actor: Optional[Actor],
        now: datetime,
        **details: Any,
    ) -> Any:
        """Activity entry plus outbox event for one mutation; returns the entry."""
        payload = build_ticket_payload(
            event_type,
            ticket,
            self._settings.slack_channel,
            self._settings.app_base_url,
            **details,
        )
        entry = await repos.activity.add(
            ticket_id=ticket.id,
            action=action,
            visibility=visibility,
            details=payload["details"],
            actor_id=actor.id if actor else None,
            created_at=now,
        )
        await repos.outbox.enqueue(
            event_type,
            str(ticket.id),
            payload,
            now,
            max_attempts=self._settings.outbox_max_attempts,
        )
        return entry

    def _apply_reopen(self, ticket: Any, now: datetime) -> None:
        ticket.status = TicketStatus.REOPENED.value
        ticket.reopen_count += 1
        ticket.reopened_at = now
        ticket.resolved_at = None
        ticket.closed_at = None
        ticket.updated_at = now

    async def _after_reopen(self, session, ticket: Any, actor: Actor, now: datetime) -> None:
        if ticket.reopen_count == self._settings.reopen_escalation_threshold:
            await self._escalations.escalate_locked(
                session, ticket, EscalationTrigger.REOPENS, now, actor_id=actor.id,
                reason=f"Ticket reopened {ticket.reopen_count} times",
            )

    async def _transition(
        self,
        session,
        repos: _Repositories,
        ticket: Any,
        target: TicketStatus,
        actor: Actor,
        now: datetime,
        comment: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> TicketStatus:
        """
        Validate and apply one state-machine move; returns the previous status.

        Every move writes a ``status_changed`` entry and a ``ticket.status_updated``
        event into the caller's transaction.
        """
        current = TicketStatus(ticket.status)
        outcome = evaluate_transition(current, target, actor.role, actor.owns(ticket))
        if outcome == TransitionOutcome.INVALID:
            raise InvalidTransitionException(current.value, target.value)
        if outcome == TransitionOutcome.FORBIDDEN:
            raise ForbiddenException(
                f"Role '{actor.role.value}' cannot move this ticket from '{current.value}' to '{target.value}'",
                {"from": current.value, "to": target.value, "actor_id": actor.id}
            )

        if target == TicketStatus.REOPENED:
            self._apply_reopen(ticket, now)
        else:
            ticket.status = target.value
            ticket.updated_at = now
            if target == TicketStatus.RESOLVED:
                ticket.resolved_at = now
            elif target == TicketStatus.CLOSED:
                ticket.closed_at = now

        change = {"from": current.value, "to": target.value, "comment": comment}
        if reason:
            change["reason"] = reason
        await repos.activity.add(
            ticket_id=ticket.id,
            action=ActivityAction.STATUS_CHANGED,
            visibility=Visibility.STUDENT_VISIBLE,
            details=change,
            actor_id=actor.id,
            created_at=now,
        )
        payload = build_ticket_payload(
            EventType.STATUS_UPDATED, ticket, self._settings.slack_channel,
            self._settings.app_base_url,
            previous_status=current, new_status=target, comment=comment, reason=reason,
        )
        await repos.outbox.enqueue(
            EventType.STATUS_UPDATED, str(ticket.id), payload, now,
            max_attempts=self._settings.outbox_max_attempts,
        )

        if target == TicketStatus.REOPENED:
            await self._after_reopen(session, ticket, actor, now)
        return current

    # ---------- reads ----------

    async def get_ticket(self, ticket_id: Any, actor: Actor) -> Any:
        async with self._database.session() as session:
            ticket = await self._repositories(session).tickets.get_by_id(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", str(ticket_id))
        if not actor.is_elevated and not actor.owns(ticket):
            raise ForbiddenException("You can only view your own tickets")
        return ticket

    async def list_activity(self, ticket_id: Any, actor: Actor) -> List[Any]:
        """Timeline of a ticket; students see public and student-visible entries only."""
        async with self._database.session() as session:
            repos = self._repositories(session)
            ticket = await repos.tickets.get_by_id(ticket_id)
            if ticket is None:
                raise ResourceNotFoundException("Ticket", str(ticket_id))
            if not actor.is_elevated and not actor.owns(ticket):
                raise ForbiddenException("You can only view your own tickets")
            visibilities = None if actor.is_elevated else STUDENT_VISIBILITIES
            return await repos.activity.list_for_ticket(ticket.id, visibilities)

    # ---------- mutations ----------

    async def create_ticket(
        self,
        actor: Actor,
        title: str,
        domain_id: Optional[int] = None,
        scope_id: Optional[int] = None,
        category_id: Optional[int] = None,
        subcategory_id: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Open a ticket with SLA deadlines from the category configuration."""
        from campusdesk.tickets.infrastructure.models import TicketModel

        title = self._validate_text(title, "title", 500, required=True)
        now = self._clock()
        sla = self._sla_config.get_config().targets_for(category_id, subcategory_id)
        ack_due, resolution_due = self._tat.initial_deadlines(
            now, sla.acknowledgement_hours, sla.resolution_hours
        )

        async with self._database.session() as session:
            repos = self._repositories(session)
            ticket = await repos.tickets.add(TicketModel(
                status=TicketStatus.OPEN.value,
                title=title,
                domain_id=domain_id,
                scope_id=scope_id,
                category_id=category_id,
                subcategory_id=subcategory_id,
                created_by=actor.id,
                escalation_level=0,
                forward_count=0,
                reopen_count=0,
                tat_extensions=0,
                acknowledgement_due_at=ack_due,
                resolution_due_at=resolution_due,
                metadata_=dict(metadata or {}),
                created_at=now,
                updated_at=now,
            ))
            await self._record(
                repos, ticket, ActivityAction.CREATED, Visibility.PUBLIC,
                EventType.TICKET_CREATED, actor, now,
                sla_source=sla.source,
                acknowledgement_due_at=ack_due,
                resolution_due_at=resolution_due,
            )

        logger.info(
            "Ticket created",
            extra={"ticket_id": str(ticket.id), "actor_id": actor.id, "sla_source": sla.source}
        )
        return ticket

    async def update_status(
        self,
        ticket_id: Any,
        status: Any,
        actor: Actor,
        comment: Optional[str] = None,
    ) -> Any:
        target = self._parse_status(status)
        comment = self._validate_text(comment, "comment", MAX_COMMENT_LENGTH, required=False)

        async with self._database.session() as session:
            repos = self._repositories(session)
            ticket = await self._load(repos, ticket_id)
            now = self._clock()
            previous = await self._transition(session, repos, ticket, target, actor, now, comment)

        logger.info(
            "Ticket status updated",
            extra={
                "ticket_id": str(ticket.id),
                "actor_id": actor.id,
                "from_status": previous.value,
                "to_status": target.value,
            }
        )
        return ticket

    async def set_tat(
        self,
        ticket_id: Any,
        actor: Actor,
        tat_spec: str,
        mark_in_progress: bool = False,
    ) -> Any:
        """Overwrite the resolution deadline; optionally move to in_progress in the same unit."""
        self._require_elevated(actor, "set TAT")

        async with self._database.session() as session:
            repos = self._repositories(session)
            ticket = await self._load(repos, ticket_id)
            now = self._clock()

            current = TicketStatus(ticket.status)
            if current in TERMINAL_STATUSES:
                raise InvalidTransitionException(
                    current.value, current.value,
                    f"Cannot set TAT on a {current.value} ticket"
                )

            spec = self._tat.parse_tat_spec(tat_spec, now)
            previous_due = ticket.resolution_due_at
            ticket.resolution_due_at = spec.due_at
            if ticket.acknowledgement_due_at is not None and ticket.acknowledgement_due_at > spec.due_at:
                ticket.acknowledgement_due_at = spec.due_at
            ticket.metadata_ = {
                **(ticket.metadata_ or {}),
                "tat": str(tat_spec),
                "tatDate": spec.due_at.isoformat(),
                "tatSetAt": now.isoformat(),
                "tatSetBy": actor.id,
            }
            ticket.updated_at = now

            marked = False
            if mark_in_progress and current != TicketStatus.IN_PROGRESS:
                await self._transition(session, repos, ticket, TicketStatus.IN_PROGRESS, actor, now)
                marked = True

            await self._record(
                repos, ticket, ActivityAction.TAT_SET, Visibility.ADMIN_ONLY,
                EventType.TAT_SET, actor, now,
                tat=str(tat_spec),
                hours=spec.hours,
                previous_due_at=previous_due,
                new_due_at=spec.due_at,
                marked_in_progress=marked,
            )

        logger.info(
            "Ticket TAT set",
            extra={
                "ticket_id": str(ticket.id),
                "actor_id": actor.id,
                "resolution_due_at": spec.due_at.isoformat(),
                "marked_in_progress": marked,
            }
        )
        return ticket

    async def extend_tat(
        self,
        ticket_id: Any,
        actor: Actor,
        hours: int,
        reason: str,
    ) -> ExtendTATResult:
        """
        Push the resolution deadline out by ``hours``.

        Extensions past ``max_tat_extensions`` still succeed and return a
        warning; hitting one of the escalation thresholds escalates the
        ticket in the same transaction.
        """
        self._require_elevated(actor, "extend TAT")
        reason = self._validate_text(reason, "reason", MAX_REASON_LENGTH, required=True)

        async with self._database.session() as session:
            repos = self._repositories(session)
            ticket = await self._load(repos, ticket_id)
            self._require_active(ticket, "extend TAT for")
            now = self._clock()

            previous_due = ticket.resolution_due_at
            new_due = self._tat.extend(previous_due, now, hours)
            ticket.resolution_due_at = new_due
            ticket.tat_extensions += 1
            ticket.updated_at = now

            await self._record(
                repos, ticket, ActivityAction.TAT_EXTENDED, Visibility.ADMIN_ONLY,
                EventType.TAT_EXTENDED, actor, now,
                hours=hours,
                reason=reason,
                previous_due_at=previous_due,
                new_due_at=new_due,
                tat_extensions=ticket.tat_extensions,
            )

            if ticket.tat_extensions in self._settings.tat_extension_escalation_thresholds:
                await self._escalations.escalate_locked(
                    session, ticket, EscalationTrigger.TAT_EXTENSIONS, now, actor_id=actor.id,
                    reason=f"TAT extended {ticket.tat_extensions} times",
                )

        message = soft_limit_warning(ticket.tat_extensions, self._settings.max_tat_extensions, "extended")
        logger.info(
            "Ticket TAT extended",
            extra={
                "ticket_id": str(ticket.id),
                "actor_id": actor.id,
                "hours": hours,
                "tat_extensions": ticket.tat_extensions,
                "warning": message is not None,
            }
        )
        return ExtendTATResult(
            ticket=ticket,
            tat_extensions=ticket.tat_extensions,
            warning=message is not None,
            warning_message=message,
        )

    async def reopen_ticket(self, ticket_id: Any, actor: Actor, reason: str) -> ReopenResult:
        """The requester's way back from resolved/closed."""
        reason = self._validate_text(reason, "reason", MAX_REASON_LENGTH, required=True)

        async with self._database.session() as session:
            repos = self._repositories(session)
            ticket = await self._load(repos, ticket_id)
            current = TicketStatus(ticket.status)

            outcome = can_reopen(current, actor.role, actor.owns(ticket))
            if outcome == TransitionOutcome.INVALID:
                raise InvalidTransitionException(
                    current.value, TicketStatus.REOPENED.value,
                    "Only resolved or closed tickets can be reopened"
                )
            if outcome == TransitionOutcome.FORBIDDEN:
                raise ForbiddenException("You can only reopen your own tickets")

            now = self._clock()
            self._apply_reopen(ticket, now)
            await self._record(
                repos, ticket, ActivityAction.REOPENED, Visibility.STUDENT_VISIBLE,
                EventType.REOPENED, actor, now,
                reason=reason,
                previous_status=current,
                reopen_count=ticket.reopen_count,
            )
            await self._after_reopen(session, ticket, actor, now)

        message = soft_limit_warning(ticket.reopen_count, self._settings.max_reopen_count, "reopened")
        logger.info(
            "Ticket reopened",
            extra={
                "ticket_id": str(ticket.id),
                "actor_id": actor.id,
                "reopen_count": ticket.reopen_count,
                "warning": message is not None,
            }
        )
        return ReopenResult(
            ticket=ticket,
            reopen_count=ticket.reopen_count,
            warning=message is not None,
            warning_message=message,
        )

    async def forward_ticket(
        self,
        ticket_id: Any,
        target_actor_id: str,
        actor: Actor,
        reason: Optional[str] = None,
    ) -> ForwardResult:
        self._require_elevated(actor, "forward tickets")
        target_actor_id = self._validate_text(target_actor_id, "target_actor_id", 255, required=True)
        reason = self._validate_text(reason, "reason", MAX_REASON_LENGTH, required=False)

        async with self._database.session() as session:
            repos = self._repositories(session)
            ticket = await self._load(repos, ticket_id)
            self._require_active(ticket, "forward")
            now = self._clock()

            previous_assignee = ticket.assigned_to
            ticket.assigned_to = target_actor_id
            ticket.forward_count += 1
            ticket.updated_at = now

            await self._record(
                repos, ticket, ActivityAction.FORWARDED, Visibility.ADMIN_ONLY,
                EventType.FORWARDED, actor, now,
                previous_assignee=previous_assignee,
                new_assignee=target_actor_id,
                reason=reason,
                forward_count=ticket.forward_count,
            )

        message = soft_limit_warning(ticket.forward_count, self._settings.max_forward_count, "forwarded")
        logger.info(
            "Ticket forwarded",
            extra={
                "ticket_id": str(ticket.id),
                "actor_id": actor.id,
                "assigned_to": target_actor_id,
                "forward_count": ticket.forward_count,
                "warning": message is not None,
            }
        )
        return ForwardResult(
            ticket=ticket,
            forward_count=ticket.forward_count,
            warning=message is not None,
            warning_message=message,
        )

    async def assign_ticket(self, ticket_id: Any, assignee_id: str, actor: Actor) -> Any:
        """Plain assignment; unlike forwarding it does not count."""
        self._require_elevated(actor, "assign tickets")
        assignee_id = self._validate_text(assignee_id, "assignee_id", 255, required=True)

        async with self._database.session() as session:
            repos = self._repositories(session)
            ticket = await self._load(repos, ticket_id)
            self._require_active(ticket, "assign")
            now = self._clock()

            previous_assignee = ticket.assigned_to
            ticket.assigned_to = assignee_id
            ticket.updated_at = now

            await self._record(
                repos, ticket, ActivityAction.ASSIGNED, Visibility.ADMIN_ONLY,
                EventType.ASSIGNED, actor, now,
                previous_assignee=previous_assignee,
                new_assignee=assignee_id,
            )

        logger.info(
            "Ticket assigned",
            extra={"ticket_id": str(ticket.id), "actor_id": actor.id, "assigned_to": assignee_id}
        )
        return ticket

    async def escalate_ticket(self, ticket_id: Any, actor: Actor, reason: Optional[str] = None) -> Any:
        """Manual escalation by the owning student or by staff."""
        reason = self._validate_text(reason, "reason", MAX_REASON_LENGTH, required=False)

        async with self._database.session() as session:
            repos = self._repositories(session)
            ticket = await self._load(repos, ticket_id)
            self._require_active(ticket, "escalate")
            if not actor.is_elevated and not actor.owns(ticket):
                raise ForbiddenException("You can only escalate your own tickets")

            await self._escalations.escalate_locked(
                session, ticket, EscalationTrigger.MANUAL, self._clock(),
                actor_id=actor.id, reason=reason, visibility=Visibility.STUDENT_VISIBLE,
            )

        return ticket

    async def add_comment(
        self,
        ticket_id: Any,
        actor: Actor,
        comment: str,
        internal: bool = False,
    ) -> Any:
        """
        Append a comment or an internal note; returns the activity entry.

        A requester replying on an ``awaiting_student_response`` ticket moves
        it back to ``in_progress`` in the same transaction.
        """
        comment = self._validate_text(comment, "comment", MAX_COMMENT_LENGTH, required=True)
        if internal:
            self._require_elevated(actor, "add internal notes")

        async with self._database.session() as session:
            repos = self._repositories(session)
            ticket = await self._load(repos, ticket_id)
            if not actor.is_elevated and not actor.owns(ticket):
                raise ForbiddenException("You can only comment on your own tickets")
            now = self._clock()

            ticket.updated_at = now
            entry = await self._record(
                repos, ticket,
                ActivityAction.INTERNAL_NOTE if internal else ActivityAction.COMMENT,
                Visibility.ADMIN_ONLY if internal else Visibility.STUDENT_VISIBLE,
                EventType.COMMENT_ADDED, actor, now,
                comment=comment,
                internal=internal,
            )

            replied = (
                not actor.is_elevated
                and TicketStatus(ticket.status) == TicketStatus.AWAITING_STUDENT_RESPONSE
            )
            if replied:
                await self._transition(
                    session, repos, ticket, TicketStatus.IN_PROGRESS, actor, now,
                    reason="Student replied",
                )

        logger.info(
            "Ticket comment added",
            extra={
                "ticket_id": str(ticket.id),
                "actor_id": actor.id,
                "internal": internal,
                "status_changed": replied,
            }
        )
        return entry

    async def submit_feedback(
        self,
        ticket_id: Any,
        actor: Actor,
        rating: int,
        feedback: Optional[str] = None,
    ) -> Any:
        """
        Record the requester's 1-5 rating for a resolved or closed ticket.

        One feedback per ticket. Ratings at or below
        ``negative_feedback_max_rating`` escalate the ticket one level.
        """
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationException("Rating must be between 1 and 5", {"rating": rating})
        feedback = self._validate_text(feedback, "feedback", MAX_COMMENT_LENGTH, required=False)

        async with self._database.session() as session:
            repos = self._repositories(session)
            ticket = await self._load(repos, ticket_id)
            if ticket.resolved_at is None and ticket.closed_at is None:
                raise ValidationException(
                    "Feedback can only be submitted for resolved or closed tickets",
                    {"ticket_id": str(ticket.id), "status": ticket.status}
                )
            if not actor.is_elevated and not actor.owns(ticket):
                raise ForbiddenException("You can only submit feedback for your own tickets")
            if await repos.feedback.get_for_ticket(ticket.id) is not None:
                raise ValidationException(
                    "Feedback already submitted for this ticket",
                    {"ticket_id": str(ticket.id)}
                )

            now = self._clock()
            stored = await repos.feedback.add(
                ticket_id=ticket.id,
                rating=rating,
                feedback=feedback,
                submitted_by=actor.id,
                created_at=now,
            )
            await self._record(
                repos, ticket, ActivityAction.FEEDBACK_SUBMITTED, Visibility.ADMIN_ONLY,
                EventType.FEEDBACK_SUBMITTED, actor, now,
                rating=rating,
                has_feedback=feedback is not None,
            )

            if rating <= self._settings.negative_feedback_max_rating:
                await self._escalations.escalate_locked(
                    session, ticket, EscalationTrigger.NEGATIVE_FEEDBACK, now, actor_id=actor.id,
                    reason=f"Negative feedback ({rating} star{'' if rating == 1 else 's'})",
                )

        logger.info(
            "Ticket feedback submitted",
            extra={"ticket_id": str(ticket.id), "actor_id": actor.id, "rating": rating}
        )
        return stored
