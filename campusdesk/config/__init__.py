"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="campusdesk", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/campusdesk",
        description="Database connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA Configuration ==========
    sla_config_path: Path = Field(
        default=Path("sla_config.yaml"),
        description="Path to SLA hours YAML file"
    )
    sla_config_watch: bool = Field(
        default=True,
        description="Hot-reload the SLA file when it changes"
    )

    # ========== Lifecycle limits ==========
    max_tat_hours: int = Field(
        default=720,
        description="Upper bound for a relative TAT set via set_tat",
        ge=1
    )
    max_tat_extensions: int = Field(
        default=3,
        description="Extensions beyond this count return a warning",
        ge=0
    )
    tat_extension_escalation_thresholds: List[int] = Field(
        default=[3, 5, 7],
        description="Extension counts that escalate the ticket one level"
    )
    max_reopen_count: int = Field(
        default=3,
        description="Reopens beyond this count return a warning",
        ge=0
    )
    reopen_escalation_threshold: int = Field(
        default=3,
        description="Reopen count that escalates the ticket one level",
        ge=1
    )
    max_forward_count: int = Field(
        default=3,
        description="Forwards beyond this count return a warning",
        ge=0
    )
    negative_feedback_max_rating: int = Field(
        default=2,
        description="Feedback ratings at or below this escalate the ticket one level",
        ge=0,
        le=5
    )

    # ========== Escalation ==========
    escalation_interval_seconds: int = Field(
        default=1800,
        description="Seconds between escalation scans (0 disables the in-process job)",
        ge=0
    )
    escalation_batch_size: int = Field(
        default=200,
        description="Candidate tickets read per scanner query",
        ge=1
    )

    # ========== Outbox ==========
    outbox_interval_seconds: int = Field(
        default=60,
        description="Seconds between outbox flushes (0 disables the in-process job)",
        ge=0
    )
    outbox_batch_size: int = Field(default=10, description="Rows selected per round", ge=1)
    outbox_max_attempts: int = Field(default=3, description="Delivery attempts per event", ge=1)
    outbox_retry_base_seconds: float = Field(
        default=60.0,
        description="Backoff base; retry n waits base * 2**n",
        ge=0
    )
    outbox_processing_timeout_seconds: float = Field(
        default=50.0,
        description="Processing budget per flush (under a 60s invocation limit)",
        gt=0
    )
    outbox_deadline_headroom_seconds: float = Field(
        default=5.0,
        description="Stop claiming when less than this remains before the deadline",
        ge=0
    )
    outbox_claim_timeout_seconds: float = Field(
        default=300.0,
        description="Claims older than this are considered abandoned",
        gt=0
    )

    # ========== Notifications ==========
    notification_timeout_seconds: float = Field(
        default=5.0,
        description="Upper bound for a single sender call",
        gt=0
    )
    slack_webhook_url: Optional[str] = Field(
        default=None,
        description="Slack webhook URL for notifications"
    )
    slack_channel: str = Field(
        default="#helpdesk-alerts",
        description="Default Slack channel for ticket notifications"
    )
    slack_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for Slack API calls",
        ge=0.1,
        le=30
    )
    email_api_url: Optional[str] = Field(
        default=None,
        description="Transactional email HTTP endpoint"
    )
    email_api_key: Optional[str] = Field(default=None, description="Email API key")
    email_sender: str = Field(
        default="helpdesk@campus.example.edu",
        description="From address for notification emails"
    )
    app_base_url: str = Field(
        default="http://localhost:3000",
        description="Base URL used for ticket links in notifications"
    )

    # ========== Cron ==========
    cron_secret: Optional[str] = Field(
        default=None,
        description="Bearer secret required by /cron endpoints"
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "test", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# ========== Constants ==========

class TicketStatus(str, Enum):
    """Ticket lifecycle statuses."""
    OPEN = "open"
    ACKNOWLEDGED = "acknowledged"
    IN_PROGRESS = "in_progress"
    AWAITING_STUDENT_RESPONSE = "awaiting_student_response"
    RESOLVED = "resolved"
    CLOSED = "closed"
    REOPENED = "reopened"
    CANCELLED = "cancelled"


class Role(str, Enum):
    """Actor roles supplied by the identity collaborator."""
    STUDENT = "student"
    COMMITTEE = "committee"
    ADMIN = "admin"
    SNR_ADMIN = "snr_admin"
    SUPER_ADMIN = "super_admin"

    @property
    def is_elevated(self) -> bool:
        return self is not Role.STUDENT


class Visibility(str, Enum):
    """Who may see an activity entry."""
    PUBLIC = "public"
    STUDENT_VISIBLE = "student_visible"
    ADMIN_ONLY = "admin_only"


class ActivityAction(str, Enum):
    """Activity log action tags."""
    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    ESCALATED = "escalated"
    REOPENED = "reopened"
    FORWARDED = "forwarded"
    ASSIGNED = "assigned"
    TAT_SET = "tat_set"
    TAT_EXTENDED = "tat_extended"
    COMMENT = "comment"
    INTERNAL_NOTE = "internal_note"
    FEEDBACK_SUBMITTED = "feedback_submitted"


class OutboxStatus(str, Enum):
    """Outbox row states; PROCESSING marks a claimed row."""
    PENDING = "pending"
    PROCESSING = "processing"
    SENT = "sent"
    FAILED = "failed"


class EventType(str, Enum):
    """Outbox event types."""
    TICKET_CREATED = "ticket.created"
    STATUS_UPDATED = "ticket.status_updated"
    TAT_SET = "ticket.tat_set"
    TAT_EXTENDED = "ticket.tat_extended"
    REOPENED = "ticket.reopened"
    FORWARDED = "ticket.forwarded"
    ASSIGNED = "ticket.assigned"
    ESCALATED = "ticket.escalated"
    COMMENT_ADDED = "ticket.comment_added"
    FEEDBACK_SUBMITTED = "ticket.feedback_submitted"


# ========== Lists for validation ==========

TERMINAL_STATUSES = [TicketStatus.CLOSED, TicketStatus.CANCELLED]
STUDENT_VISIBILITIES = [Visibility.PUBLIC, Visibility.STUDENT_VISIBLE]
