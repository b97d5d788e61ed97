"""
Tickets Domain Layer
====================

Pure business rules for the ticket lifecycle: the status state machine,
TAT deadline arithmetic and SLA configuration.
"""

from campusdesk.tickets.domain.entities import (
    Actor,
    ExtendTATResult,
    ForwardResult,
    ReopenResult,
    soft_limit_warning,
)
from campusdesk.tickets.domain.state_machine import (
    TRANSITIONS,
    TransitionOutcome,
    can_reopen,
    evaluate_transition,
    is_valid_transition,
)
from campusdesk.tickets.domain.tat import TATCalculator, TATSpec
from campusdesk.tickets.domain.value_objects import ResolvedSLA, SLAConfig, SLATarget

__all__ = [
    "Actor",
    "ExtendTATResult",
    "ForwardResult",
    "ReopenResult",
    "soft_limit_warning",
    "TRANSITIONS",
    "TransitionOutcome",
    "can_reopen",
    "evaluate_transition",
    "is_valid_transition",
    "TATCalculator",
    "TATSpec",
    "ResolvedSLA",
    "SLAConfig",
    "SLATarget",
]
