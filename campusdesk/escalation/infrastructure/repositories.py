"""
Escalation Infrastructure Repositories
======================================

Read-only access to escalation rules.
"""

from typing import Any, List

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from campusdesk.escalation.application.services import IEscalationRuleRepository
from campusdesk.escalation.domain.rules import EscalationRule


class SQLAlchemyEscalationRuleRepository(IEscalationRuleRepository):
    """SQLAlchemy implementation of the escalation rule repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def list_candidates(self, ticket: Any) -> List[EscalationRule]:
        """
        Active rules that could apply to ``ticket``.

        The query narrows by domain only; full matching and precedence are
        decided by ``resolve_rule``.
        """
        from campusdesk.escalation.infrastructure.models import EscalationRuleModel

        stmt = select(EscalationRuleModel).where(EscalationRuleModel.is_active.is_(True))
        if ticket.domain_id is not None:
            stmt = stmt.where(or_(
                EscalationRuleModel.domain_id.is_(None),
                EscalationRuleModel.domain_id == ticket.domain_id,
            ))
        else:
            stmt = stmt.where(EscalationRuleModel.domain_id.is_(None))
        stmt = stmt.order_by(EscalationRuleModel.id)

        result = await self._session.execute(stmt)
        return [
            EscalationRule(
                id=model.id,
                level=model.level,
                escalate_to=model.escalate_to,
                notify_channel=model.notify_channel,
                tat_hours=model.tat_hours,
                domain_id=model.domain_id,
                scope_id=model.scope_id,
                category_id=model.category_id,
                subcategory_id=model.subcategory_id,
            )
            for model in result.scalars().all()
        ]
