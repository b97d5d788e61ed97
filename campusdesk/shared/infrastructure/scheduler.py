"""
Background Job Scheduler
========================

Wrapper for APScheduler's AsyncIOScheduler. Runs the escalation scan and
the outbox flush in-process for long-running deployments; serverless
deployments disable it and call the /cron endpoints instead.
"""

from typing import Awaitable, Callable, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from campusdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class JobScheduler:
    """
    Manages the lifecycle of the scheduler and its interval jobs.

    A job registered with ``interval_seconds <= 0`` is skipped.
    """

    def __init__(self):
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._jobs: List[dict] = []
        self._running = False

    def add_interval_job(
        self,
        job_func: Callable[[], Awaitable],
        interval_seconds: int,
        job_id: str,
        name: Optional[str] = None,
    ) -> bool:
        """Register a job before ``start``. Returns False when disabled."""
        if interval_seconds <= 0:
            logger.info("Scheduled job disabled", extra={"job_id": job_id})
            return False

        self._jobs.append({
            "func": job_func,
            "seconds": interval_seconds,
            "id": job_id,
            "name": name or job_id,
        })
        return True

    async def start(self) -> None:
        """Start the scheduler with the registered jobs."""
        if self._running:
            logger.warning("Job scheduler already running")
            return
        if not self._jobs:
            logger.info("No scheduled jobs enabled, scheduler not started")
            return

        self._scheduler = AsyncIOScheduler()
        for job in self._jobs:
            self._scheduler.add_job(
                job["func"],
                "interval",
                seconds=job["seconds"],
                id=job["id"],
                name=job["name"],
                misfire_grace_time=60,
                max_instances=1,
                coalesce=True,
                replace_existing=True
            )

        self._scheduler.start()
        self._running = True

        logger.info(
            "Job scheduler started",
            extra={"jobs": [job["id"] for job in self._jobs]}
        )

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=True)

        self._running = False
        logger.info("Job scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running

    @property
    def job_ids(self) -> List[str]:
        return [job["id"] for job in self._jobs]
