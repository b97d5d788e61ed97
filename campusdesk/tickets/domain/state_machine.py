"""
Ticket Status State Machine
===========================

Exhaustive transition table plus the privilege rules layered on top of it.

Evaluation returns an explicit ``TransitionOutcome`` value; turning a
rejected outcome into an exception is the application layer's job.
"""

from enum import Enum
from typing import Dict, FrozenSet, Tuple

from campusdesk.config import Role, TicketStatus


class TransitionOutcome(str, Enum):
    ALLOWED = "allowed"
    INVALID = "invalid"
    FORBIDDEN = "forbidden"


S = TicketStatus

TRANSITIONS: Dict[TicketStatus, FrozenSet[TicketStatus]] = {
    S.OPEN: frozenset({
        S.ACKNOWLEDGED, S.IN_PROGRESS, S.AWAITING_STUDENT_RESPONSE, S.RESOLVED, S.CANCELLED,
    }),
    S.ACKNOWLEDGED: frozenset({
        S.IN_PROGRESS, S.AWAITING_STUDENT_RESPONSE, S.RESOLVED, S.CANCELLED,
    }),
    S.IN_PROGRESS: frozenset({
        S.ACKNOWLEDGED, S.AWAITING_STUDENT_RESPONSE, S.RESOLVED, S.CANCELLED,
    }),
    S.AWAITING_STUDENT_RESPONSE: frozenset({
        S.IN_PROGRESS, S.RESOLVED, S.CANCELLED,
    }),
    S.RESOLVED: frozenset({S.CLOSED, S.REOPENED, S.CANCELLED}),
    S.CLOSED: frozenset({S.REOPENED}),
    S.REOPENED: frozenset({
        S.ACKNOWLEDGED, S.IN_PROGRESS, S.AWAITING_STUDENT_RESPONSE,
        S.RESOLVED, S.CLOSED, S.CANCELLED,
    }),
    S.CANCELLED: frozenset(),
}

# Moves a requester may make on their own ticket through update_status.
# Leaving resolved/closed goes through reopen_ticket instead.
REQUESTER_TRANSITIONS: FrozenSet[Tuple[TicketStatus, TicketStatus]] = frozenset({
    (S.AWAITING_STUDENT_RESPONSE, S.IN_PROGRESS),
})

REOPENABLE_STATUSES: FrozenSet[TicketStatus] = frozenset({S.RESOLVED, S.CLOSED})


def is_valid_transition(current: TicketStatus, target: TicketStatus) -> bool:
    return target in TRANSITIONS[current]


def evaluate_transition(
    current: TicketStatus,
    target: TicketStatus,
    role: Role,
    is_owner: bool,
) -> TransitionOutcome:
    """
    Decide whether ``role`` may move a ticket from ``current`` to ``target``.

    The table is consulted first, so an impossible move reports INVALID even
    for an actor who would also lack the privilege.
    """
    if not is_valid_transition(current, target):
        return TransitionOutcome.INVALID
    if role.is_elevated:
        return TransitionOutcome.ALLOWED
    if is_owner and (current, target) in REQUESTER_TRANSITIONS:
        return TransitionOutcome.ALLOWED
    return TransitionOutcome.FORBIDDEN


def can_reopen(current: TicketStatus, role: Role, is_owner: bool) -> TransitionOutcome:
    """Reopen is the requester's only exit from resolved/closed."""
    if current not in REOPENABLE_STATUSES:
        return TransitionOutcome.INVALID
    if role.is_elevated or is_owner:
        return TransitionOutcome.ALLOWED
    return TransitionOutcome.FORBIDDEN
