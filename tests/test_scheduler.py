"""In-process job scheduling."""

from campusdesk.bootstrap import build_container, schedule_jobs
from campusdesk.notifications.infrastructure.external import NotifierRegistry
from campusdesk.shared.infrastructure.scheduler import JobScheduler


async def _noop():
    return None


def test_zero_interval_disables_job():
    scheduler = JobScheduler()
    assert scheduler.add_interval_job(_noop, 0, job_id="disabled") is False
    assert scheduler.job_ids == []


async def test_start_without_jobs_is_a_noop():
    scheduler = JobScheduler()
    await scheduler.start()
    assert scheduler.is_running is False


async def test_start_and_stop():
    scheduler = JobScheduler()
    scheduler.add_interval_job(_noop, 30, job_id="tick")
    await scheduler.start()
    assert scheduler.is_running
    await scheduler.stop()
    assert not scheduler.is_running


def test_schedule_jobs_respects_intervals(settings, database, notifier, clock):
    enabled = settings.model_copy(update={"escalation_interval_seconds": 1800, "outbox_interval_seconds": 60})
    container = build_container(enabled, database=database, notifier=NotifierRegistry(fallback=notifier), clock=clock)
    assert schedule_jobs(container).job_ids == ["escalation_scan", "outbox_flush"]


def test_schedule_jobs_disabled_for_cron_deployments(container):
    assert schedule_jobs(container).job_ids == []
