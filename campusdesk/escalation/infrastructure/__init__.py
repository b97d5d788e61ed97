from campusdesk.escalation.infrastructure.models import EscalationRuleModel
from campusdesk.escalation.infrastructure.repositories import SQLAlchemyEscalationRuleRepository

__all__ = ["EscalationRuleModel", "SQLAlchemyEscalationRuleRepository"]
