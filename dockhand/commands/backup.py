"""Dockhand CLI - Backup commands"""

import time

import click

from dockhand.base import ControlCommand
from dockhand.models import BackupRunInput, parse_input
from dockhand.services import JobRegistry
from dockhand.services.scheduler_service import schedule_backups


class BackupRunCommand(ControlCommand):
    """
    Run one database backup now.

    Features:
    - Dump inside the database container
    - Compress and stream to S3-compatible storage without a local file
    - Success or failure notification
    """

    def __init__(self, backup_id: int, verbose: bool = False, json_output: bool = False):
        super().__init__(verbose=verbose, json_output=json_output)
        self.backup_id = backup_id

    def execute(self) -> None:
        request = parse_input(BackupRunInput, backup_id=self.backup_id)
        job = self.ensure_store().find_backup_by_id(request.backup_id)
        pipeline = self.backup_pipeline()

        self.print_dim(
            f"Backing up {job.database_type} database {job.database} of {job.app_name}..."
        )
        key = self.run_cancellable(
            f"backup {job.app_name}", lambda token: pipeline.run(job, token=token)
        )

        if self.json_output:
            self.output_json(
                {"backup_id": job.backup_id, "bucket": job.destination.bucket, "key": key}
            )
            return
        self.print_success(f"Uploaded to s3://{job.destination.bucket}/{key}")


class BackupSchedulerCommand(ControlCommand):
    """Run every enabled backup on its cron schedule until interrupted."""

    def __init__(self, timezone: str = "UTC", verbose: bool = False, json_output: bool = False):
        super().__init__(verbose=verbose, json_output=json_output)
        self.timezone = timezone

    def execute(self) -> None:
        registry = JobRegistry(timezone=self.timezone)
        count = schedule_backups(registry, self.ensure_store(), self.backup_pipeline())
        if count == 0:
            self.print_warning("No enabled backups with a schedule")
            return

        registry.start()
        self.print_success(f"Scheduled {count} backup(s); press Ctrl-C to stop")
        for job in registry.list_jobs():
            self.print_dim(f"  {job.job_id}: next run {job.next_run_time}")

        try:
            while registry.running:
                time.sleep(1)
        finally:
            registry.shutdown(wait=False)


@click.command(name="backups:run")
@click.argument("backup_id", type=int)
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def backups_run(backup_id, verbose, json_output):
    """
    Back up a database now

    \b
    Examples:
      dockhand backups:run 4          # Dump, gzip and upload backup 4
      dockhand backups:run 4 --json   # Print the object key as JSON
    """
    BackupRunCommand(backup_id, verbose=verbose, json_output=json_output).run()


@click.command(name="backups:schedule")
@click.option("--timezone", default="UTC", help="Timezone for cron expressions (default: UTC)")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
def backups_schedule(timezone, verbose):
    """Run scheduled backups in the foreground"""
    BackupSchedulerCommand(timezone=timezone, verbose=verbose).run()
