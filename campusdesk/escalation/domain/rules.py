"""
Escalation Rules
================

Rule matching and precedence.

A rule matches a ticket when every scope field the rule sets equals the
ticket's value. More specific rules win: subcategory, then category, then
scope, then domain, then the global default (no scope fields set).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional

SCOPE_FIELDS = ("domain_id", "scope_id", "category_id", "subcategory_id")


class EscalationTrigger(str, Enum):
    """Why a ticket was escalated."""
    ACKNOWLEDGEMENT_BREACH = "acknowledgement_breach"
    RESOLUTION_BREACH = "resolution_breach"
    MANUAL = "manual"
    TAT_EXTENSIONS = "tat_extensions"
    REOPENS = "reopens"
    NEGATIVE_FEEDBACK = "negative_feedback"


TRIGGER_REASONS = {
    EscalationTrigger.ACKNOWLEDGEMENT_BREACH: "ack SLA breached",
    EscalationTrigger.RESOLUTION_BREACH: "resolution SLA breached",
    EscalationTrigger.MANUAL: "manual escalation",
    EscalationTrigger.TAT_EXTENSIONS: "TAT extended too many times",
    EscalationTrigger.REOPENS: "reopened too many times",
    EscalationTrigger.NEGATIVE_FEEDBACK: "negative feedback",
}


@dataclass(frozen=True)
class EscalationRule:
    id: int
    level: int
    escalate_to: Optional[str] = None
    notify_channel: Optional[str] = None
    tat_hours: Optional[int] = None
    domain_id: Optional[int] = None
    scope_id: Optional[int] = None
    category_id: Optional[int] = None
    subcategory_id: Optional[int] = None

    @property
    def specificity(self) -> int:
        """4 subcategory, 3 category, 2 scope, 1 domain, 0 global."""
        for rank, field in zip((4, 3, 2, 1), reversed(SCOPE_FIELDS)):
            if getattr(self, field) is not None:
                return rank
        return 0

    def matches(self, ticket: Any) -> bool:
        for field in SCOPE_FIELDS:
            value = getattr(self, field)
            if value is not None and value != getattr(ticket, field, None):
                return False
        return True


def resolve_rule(
    rules: Iterable[EscalationRule],
    ticket: Any,
    level: int,
) -> Optional[EscalationRule]:
    """
    Pick the rule governing ``ticket`` at escalation ``level``.

    Among matching rules the most specific wins. Within that specificity the
    rule for exactly ``level`` is preferred; otherwise the highest configured
    level below it. Equal candidates resolve to the lowest rule id.
    """
    matching = [rule for rule in rules if rule.matches(ticket) and rule.level <= level]
    if not matching:
        return None

    def rank(rule: EscalationRule):
        return (rule.specificity, rule.level, -rule.id)

    return max(matching, key=rank)
