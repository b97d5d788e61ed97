"""
Service Wiring
==============

Builds the explicit service objects the application runs on. Everything
that used to be a module-level global (engine, config manager, Slack
client) is owned by a ``ServiceContainer`` instead.
"""

from dataclasses import dataclass, field
from typing import Optional

from campusdesk.config import Settings
from campusdesk.escalation.application.services import EscalationScanner, EscalationService
from campusdesk.infrastructure.database import Database
from campusdesk.notifications.application.services import OutboxDispatcher
from campusdesk.notifications.infrastructure.external import NotifierRegistry
from campusdesk.shared.clock import Clock, utcnow
from campusdesk.shared.infrastructure.logging import get_logger
from campusdesk.shared.infrastructure.scheduler import JobScheduler
from campusdesk.tickets.application.services import TicketLifecycleService
from campusdesk.tickets.infrastructure.external import SLAConfigManager

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    database: Database
    sla_config: SLAConfigManager
    notifier: NotifierRegistry
    lifecycle: TicketLifecycleService
    escalation_scanner: EscalationScanner
    outbox_dispatcher: OutboxDispatcher
    scheduler: JobScheduler = field(default_factory=JobScheduler)

    async def close(self) -> None:
        await self.scheduler.stop()
        self.sla_config.stop_watching()
        await self.notifier.close()
        await self.database.dispose()


def build_container(
    settings: Settings,
    database: Optional[Database] = None,
    notifier: Optional[NotifierRegistry] = None,
    clock: Clock = utcnow,
) -> ServiceContainer:
    """Wire services from settings; tests pass their own database/notifier/clock."""
    database = database or Database.from_settings(settings)

    sla_config = SLAConfigManager()
    sla_config.load(settings.sla_config_path)

    notifier = notifier or NotifierRegistry.from_settings(settings)
    escalation_service = EscalationService(settings, clock)

    return ServiceContainer(
        settings=settings,
        database=database,
        sla_config=sla_config,
        notifier=notifier,
        lifecycle=TicketLifecycleService(
            database, settings, sla_config, escalation_service=escalation_service, clock=clock
        ),
        escalation_scanner=EscalationScanner(database, escalation_service, settings, clock=clock),
        outbox_dispatcher=OutboxDispatcher(database, notifier, settings, clock=clock),
    )


def schedule_jobs(container: ServiceContainer) -> JobScheduler:
    """Register the periodic jobs; intervals of 0 leave them to /cron."""
    settings = container.settings
    scheduler = container.scheduler

    async def escalation_job():
        await container.escalation_scanner.run()

    async def outbox_job():
        await container.outbox_dispatcher.flush()

    scheduler.add_interval_job(
        escalation_job,
        settings.escalation_interval_seconds,
        job_id="escalation_scan",
        name="Escalation Scan Job",
    )
    scheduler.add_interval_job(
        outbox_job,
        settings.outbox_interval_seconds,
        job_id="outbox_flush",
        name="Outbox Flush Job",
    )
    return scheduler
