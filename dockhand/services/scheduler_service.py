"""
Job Registry

Cron-scheduled jobs keyed by string id, backed by APScheduler. The
registry is created by whoever owns the process and passed to the code
that schedules jobs; there is no module-level scheduler.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from dockhand.exceptions import DockhandError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScheduledJob:
    """A registered job and when it fires next."""

    job_id: str
    next_run_time: Optional[datetime]


class JobRegistry:
    """Schedules, lists and cancels cron jobs."""

    def __init__(self, scheduler: Optional[BackgroundScheduler] = None, timezone: str = "UTC"):
        """
        Initialize the registry.

        Args:
            scheduler: APScheduler scheduler to use (a BackgroundScheduler by default)
            timezone: Timezone cron expressions are evaluated in
        """
        self.timezone = timezone
        self.scheduler = scheduler or BackgroundScheduler(timezone=timezone)

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self) -> None:
        """Start firing jobs."""
        if self.scheduler.running:
            logger.warning("Job registry already started")
            return
        self.scheduler.start()
        logger.info("Job registry started with %d jobs", len(self.list_jobs()))

    def shutdown(self, wait: bool = False) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            logger.info("Job registry stopped")

    def schedule(self, job_id: str, cron_expression: str, fn: Callable[..., Any], *args) -> None:
        """
        Register (or replace) a job.

        Args:
            job_id: Unique job id
            cron_expression: Five-field crontab expression, e.g. "0 2 * * *"
            fn: Callable to run
            *args: Positional arguments passed to fn

        Raises:
            ValidationError: If the cron expression is invalid
        """
        try:
            trigger = CronTrigger.from_crontab(cron_expression, timezone=self.timezone)
        except ValueError as e:
            raise ValidationError(f"Invalid cron expression '{cron_expression}': {e}")

        self.scheduler.add_job(
            fn,
            trigger=trigger,
            args=list(args),
            id=job_id,
            name=job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info("Scheduled job %s (%s)", job_id, cron_expression)

    def cancel(self, job_id: str) -> bool:
        """
        Remove a job.

        Returns:
            False if no job had that id
        """
        if self.scheduler.get_job(job_id) is None:
            return False
        self.scheduler.remove_job(job_id)
        logger.info("Cancelled job %s", job_id)
        return True

    def list_jobs(self) -> List[ScheduledJob]:
        return [
            # Jobs added before start() have no next run time yet
            ScheduledJob(job.id, getattr(job, "next_run_time", None))
            for job in self.scheduler.get_jobs()
        ]


def backup_job_id(backup_id: int) -> str:
    return f"backup-{backup_id}"


def run_scheduled_backup(store, pipeline, backup_id: int) -> None:
    """
    Run one scheduled backup.

    The pipeline already notified about a failure, so it is logged and not
    retried here.
    """
    try:
        job = store.find_backup_by_id(backup_id)
        pipeline.run(job)
    except DockhandError as e:
        logger.error("Scheduled backup %s failed: %s", backup_id, e.message)


def schedule_backups(registry: JobRegistry, store, pipeline) -> int:
    """
    Register every enabled backup that has a schedule.

    Args:
        registry: Job registry to schedule on
        store: DeploymentStore to read backups from
        pipeline: BackupPipeline that runs them

    Returns:
        Number of backups scheduled
    """
    count = 0
    for job in store.list_enabled_backups():
        if not job.schedule:
            continue
        try:
            registry.schedule(
                backup_job_id(job.backup_id), job.schedule, run_scheduled_backup,
                store, pipeline, job.backup_id,
            )
        except ValidationError as e:
            logger.error("Skipping backup %s: %s", job.backup_id, e.message)
            continue
        count += 1
    return count
