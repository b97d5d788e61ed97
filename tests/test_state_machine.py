"""Transition table and privilege rules."""

import pytest

from campusdesk.config import Role, TicketStatus
from campusdesk.tickets.domain import TransitionOutcome, can_reopen, evaluate_transition
from campusdesk.tickets.domain.state_machine import TRANSITIONS, is_valid_transition

S = TicketStatus


def test_every_status_has_a_row():
    assert set(TRANSITIONS) == set(TicketStatus)


def test_cancelled_is_terminal():
    for target in TicketStatus:
        assert not is_valid_transition(S.CANCELLED, target)


@pytest.mark.parametrize(
    "current,target",
    [
        (S.CLOSED, S.IN_PROGRESS),
        (S.OPEN, S.CLOSED),
        (S.RESOLVED, S.IN_PROGRESS),
        (S.AWAITING_STUDENT_RESPONSE, S.ACKNOWLEDGED),
        (S.OPEN, S.OPEN),
    ],
)
def test_moves_outside_the_table_are_invalid(current, target):
    assert evaluate_transition(current, target, Role.SUPER_ADMIN, is_owner=False) == TransitionOutcome.INVALID


def test_invalid_is_reported_before_forbidden():
    outcome = evaluate_transition(S.CLOSED, S.IN_PROGRESS, Role.STUDENT, is_owner=False)
    assert outcome == TransitionOutcome.INVALID


@pytest.mark.parametrize("role", [Role.COMMITTEE, Role.ADMIN, Role.SNR_ADMIN, Role.SUPER_ADMIN])
def test_elevated_roles_may_make_any_listed_move(role):
    for current, targets in TRANSITIONS.items():
        for target in targets:
            assert evaluate_transition(current, target, role, is_owner=False) == TransitionOutcome.ALLOWED


def test_student_reply_on_own_ticket():
    outcome = evaluate_transition(S.AWAITING_STUDENT_RESPONSE, S.IN_PROGRESS, Role.STUDENT, is_owner=True)
    assert outcome == TransitionOutcome.ALLOWED


def test_student_reply_on_someone_elses_ticket():
    outcome = evaluate_transition(S.AWAITING_STUDENT_RESPONSE, S.IN_PROGRESS, Role.STUDENT, is_owner=False)
    assert outcome == TransitionOutcome.FORBIDDEN


@pytest.mark.parametrize(
    "current,target",
    [
        (S.OPEN, S.RESOLVED),
        (S.IN_PROGRESS, S.CANCELLED),
        (S.RESOLVED, S.REOPENED),
        (S.RESOLVED, S.CLOSED),
    ],
)
def test_student_cannot_make_staff_moves_on_own_ticket(current, target):
    assert evaluate_transition(current, target, Role.STUDENT, is_owner=True) == TransitionOutcome.FORBIDDEN


@pytest.mark.parametrize("current", [S.RESOLVED, S.CLOSED])
def test_owner_can_reopen(current):
    assert can_reopen(current, Role.STUDENT, is_owner=True) == TransitionOutcome.ALLOWED
    assert can_reopen(current, Role.STUDENT, is_owner=False) == TransitionOutcome.FORBIDDEN
    assert can_reopen(current, Role.ADMIN, is_owner=False) == TransitionOutcome.ALLOWED


@pytest.mark.parametrize("current", [S.OPEN, S.IN_PROGRESS, S.REOPENED, S.CANCELLED])
def test_reopen_requires_resolved_or_closed(current):
    assert can_reopen(current, Role.ADMIN, is_owner=True) == TransitionOutcome.INVALID
