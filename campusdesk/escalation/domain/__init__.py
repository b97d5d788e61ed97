from campusdesk.escalation.domain.rules import (
    EscalationRule,
    EscalationTrigger,
    resolve_rule,
)

__all__ = ["EscalationRule", "EscalationTrigger", "resolve_rule"]
