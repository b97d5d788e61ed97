"""Escalation Application Layer."""

from campusdesk.escalation.application.services import (
    EscalationRecord,
    EscalationScanner,
    EscalationScanResult,
    EscalationService,
    IEscalationRuleRepository,
)

__all__ = [
    "EscalationRecord",
    "EscalationScanner",
    "EscalationScanResult",
    "EscalationService",
    "IEscalationRuleRepository",
]
