"""
Background job scheduler.

Wraps an APScheduler AsyncIOScheduler. The sync engine registers its
automatic sync as an interval job and the application registers a nightly
integrity audit. Every job runs with coalescing and at most one instance, so
a slow run is never overlapped by the next tick.

Scheduler: APScheduler 3.x (asyncio)
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from league_sync.core.config import settings

logger = logging.getLogger(__name__)

JobFunc = Callable[[], Awaitable[Any]]


class AutomationScheduler:
    """
    Owns the AsyncIOScheduler and the jobs registered on it.

    Must be started from inside a running event loop.
    """

    def __init__(self, timezone: Optional[str] = None):
        self.timezone = timezone or settings.SCHEDULER_TIMEZONE
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.running = False

    def start(self) -> None:
        """Create and start the underlying scheduler (idempotent)."""
        if self.running:
            logger.warning("Scheduler already running")
            return

        self.scheduler = AsyncIOScheduler(
            timezone=self.timezone,
            job_defaults={
                'coalesce': True,  # Combine missed runs into one
                'max_instances': 1,
                'misfire_grace_time': 300
            }
        )
        self.scheduler.start()
        self.running = True
        logger.info("✅ Scheduler started")

    def stop(self) -> None:
        """Shut the scheduler down, dropping all jobs."""
        if not self.running or self.scheduler is None:
            return

        self.scheduler.shutdown(wait=False)
        self.scheduler = None
        self.running = False
        logger.info("✅ Scheduler stopped")

    def add_interval_job(
        self,
        job_id: str,
        func: JobFunc,
        interval: timedelta,
        name: Optional[str] = None,
        run_immediately: bool = False,
    ) -> None:
        """
        Register (or replace) a job that runs every `interval`.

        Args:
            job_id: Unique job id; an existing job with this id is replaced
            func: Coroutine function to run
            interval: Time between runs
            name: Human readable job name
            run_immediately: Fire the first run now instead of after one interval
        """
        if not self.running:
            self.start()

        next_run = datetime.now(self.scheduler.timezone) if run_immediately else None
        kwargs = {"next_run_time": next_run} if run_immediately else {}
        self.scheduler.add_job(
            func,
            trigger=IntervalTrigger(seconds=interval.total_seconds(), timezone=self.timezone),
            id=job_id,
            name=name or job_id,
            replace_existing=True,
            **kwargs
        )
        logger.info(f"📅 Scheduled: {name or job_id} (every {interval})")

    def add_cron_job(self, job_id: str, func: JobFunc, name: Optional[str] = None, **cron_fields) -> None:
        """Register (or replace) a cron-triggered job, e.g. hour=4, minute=0."""
        if not self.running:
            self.start()

        self.scheduler.add_job(
            func,
            trigger=CronTrigger(timezone=self.timezone, **cron_fields),
            id=job_id,
            name=name or job_id,
            replace_existing=True
        )
        logger.info(f"📅 Scheduled: {name or job_id} (cron {cron_fields})")

    def remove_job(self, job_id: str) -> bool:
        """Remove a job; returns False when no such job is registered."""
        if self.scheduler is None or self.scheduler.get_job(job_id) is None:
            return False
        self.scheduler.remove_job(job_id)
        logger.info(f"Removed scheduled job {job_id}")
        return True

    def has_job(self, job_id: str) -> bool:
        return self.scheduler is not None and self.scheduler.get_job(job_id) is not None

    def next_run_time(self, job_id: str) -> Optional[datetime]:
        if self.scheduler is None:
            return None
        job = self.scheduler.get_job(job_id)
        return job.next_run_time if job else None

    def get_jobs_info(self) -> List[Dict[str, Any]]:
        """Describe registered jobs for the status endpoint."""
        if self.scheduler is None:
            return []
        return [
            {
                'id': job.id,
                'name': job.name,
                'next_run': job.next_run_time.isoformat() if job.next_run_time else None,
                'trigger': str(job.trigger),
            }
            for job in self.scheduler.get_jobs()
        ]
