"""
Outbox Infrastructure Models
============================

SQLAlchemy ORM model for the transactional outbox.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from campusdesk.config import OutboxStatus
from campusdesk.infrastructure.database import Base, UTCDateTime
from campusdesk.shared.clock import utcnow


class OutboxEventModel(Base):
    """
    Database model for an outbox event.

    Maps to the 'outbox' table. Rows are inserted in the same transaction as
    the ticket mutation that produced them and are only moved forward by the
    dispatcher (or back to pending by an operator replay).
    """
    __tablename__ = "outbox"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    aggregate_type: Mapped[str] = mapped_column(String(50), nullable=False, default="ticket")
    aggregate_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    status: Mapped[OutboxStatus] = mapped_column(String(20), nullable=False, default=OutboxStatus.PENDING)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    scheduled_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    processing_started_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_outbox_status_scheduled", "status", "scheduled_at"),
    )
