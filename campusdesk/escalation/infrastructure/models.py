"""
Escalation Infrastructure Models
================================

SQLAlchemy ORM model for escalation rules. The table is administered by the
master-data service; this engine only reads it.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from campusdesk.infrastructure.database import Base, UTCDateTime
from campusdesk.shared.clock import utcnow


class EscalationRuleModel(Base):
    """
    Database model for an escalation rule.

    Maps to the 'escalation_rules' table.
    """
    __tablename__ = "escalation_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Scope; NULL means "any"
    domain_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    scope_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    category_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    subcategory_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    escalate_to: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    tat_hours: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    notify_channel: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)  # "#channel" or "email:addr"
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
