"""Shared pytest fixtures for the lifecycle engine tests."""

from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import datetime, timezone
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from campusdesk.bootstrap import ServiceContainer, build_container
from campusdesk.config import Role, Settings
from campusdesk.infrastructure.database import Database
from campusdesk.main import create_app
from campusdesk.notifications.infrastructure.external import NotifierRegistry
from campusdesk.tickets.domain import Actor

from tests.utils import CRON_SECRET, FakeClock, RecordingNotifier

SLA_YAML = """\
defaults:
  acknowledgement_hours: 2
  resolution_hours: 48
categories:
  3:
    resolution_hours: 72
subcategories:
  11:
    acknowledgement_hours: 1
    resolution_hours: 24
"""


@pytest.fixture()
def sla_config_path(tmp_path: Path) -> Path:
    path = tmp_path / "sla_config.yaml"
    path.write_text(SLA_YAML)
    return path


@pytest.fixture()
def settings(tmp_path: Path, sla_config_path: Path) -> Settings:
    return Settings(
        environment="test",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'campusdesk.sqlite'}",
        sla_config_path=sla_config_path,
        sla_config_watch=False,
        escalation_interval_seconds=0,
        outbox_interval_seconds=0,
        outbox_retry_base_seconds=60,
        cron_secret=CRON_SECRET,
        slack_channel="#helpdesk-alerts",
    )


@pytest_asyncio.fixture()
async def database(settings: Settings) -> AsyncIterator[Database]:
    """File-backed SQLite database with all tables created."""
    db = Database(settings.database_url)
    await db.create_tables()
    yield db
    await db.dispose()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def container(
    settings: Settings,
    database: Database,
    notifier: RecordingNotifier,
    clock: FakeClock,
) -> ServiceContainer:
    return build_container(
        settings,
        database=database,
        notifier=NotifierRegistry(fallback=notifier),
        clock=clock,
    )


@pytest.fixture()
def service(container: ServiceContainer):
    return container.lifecycle


@pytest.fixture()
def student() -> Actor:
    return Actor(id="student-1", role=Role.STUDENT)


@pytest.fixture()
def other_student() -> Actor:
    return Actor(id="student-2", role=Role.STUDENT)


@pytest.fixture()
def admin() -> Actor:
    return Actor(id="admin-1", role=Role.ADMIN)


@pytest_asyncio.fixture()
async def ticket(service, student: Actor):
    return await service.create_ticket(student, title="Wi-Fi down in hostel block C")


@pytest_asyncio.fixture()
async def async_client(settings: Settings, container: ServiceContainer) -> AsyncIterator[AsyncClient]:
    """HTTPX client bound to an app that uses the test container."""
    app = create_app(settings, container)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
