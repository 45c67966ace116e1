"""
Backup Pipeline

Streams a database export to S3-compatible storage as one shell pipeline:

    docker exec <container> <dump tool> | gzip | rclone rcat <flags> :s3:<bucket>/<key>

The data flows between processes on the target host only; nothing is
buffered by dockhand. The same command runs locally or over SSH.
"""

import logging
import posixpath
from datetime import datetime, timezone
from typing import List, Optional

from dockhand.constants import BACKUP_FILE_SUFFIX
from dockhand.core.shell import render
from dockhand.exceptions import NotFoundError, PipelineStageError, ValidationError
from dockhand.models.deployment import BackupJob
from dockhand.services.docker_service import DockerService
from dockhand.services.execution import CancellationToken, ExecutionBackend
from dockhand.services.notification_service import BackupEvent, NotificationService

logger = logging.getLogger(__name__)

STAGE_LOCATE = "locate"
STAGE_STREAM = "dump|compress|upload"


def _postgres(job: BackupJob) -> List[str]:
    return [
        "pg_dump", "-Fc", "--no-acl", "--no-owner",
        "-h", "localhost",
        "-U", job.database_user,
        "--no-password",
        job.database,
    ]


def _mysql(job: BackupJob) -> List[str]:
    return [
        "mysqldump", "--single-transaction", "--quick", "--no-tablespaces",
        "-u", job.database_user,
        job.database,
    ]


def _mariadb(job: BackupJob) -> List[str]:
    return [
        "mariadb-dump", "--single-transaction", "--quick",
        "-u", job.database_user,
        job.database,
    ]


def _mongo(job: BackupJob) -> List[str]:
    return [
        "mongodump",
        "--db", job.database,
        "--username", job.database_user,
        "--password", job.database_password,
        "--authenticationDatabase", "admin",
        "--archive",
    ]


DUMP_TOOLS = {
    "postgres": _postgres,
    "mysql": _mysql,
    "mariadb": _mariadb,
    "mongo": _mongo,
}

# Password handed to the dump tool through the environment
PASSWORD_ENV = {
    "postgres": "PGPASSWORD",
    "mysql": "MYSQL_PWD",
    "mariadb": "MYSQL_PWD",
}


def backup_file_name(now: Optional[datetime] = None) -> str:
    """Get an ISO-8601 timestamped artifact name, e.g. 2024-05-01T02:00:00.000Z.sql.gz"""
    now = now or datetime.now(timezone.utc)
    stamp = now.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z") + BACKUP_FILE_SUFFIX


def backup_key(prefix: str, file_name: str) -> str:
    """Join a destination prefix and file name into an object key."""
    return posixpath.join(prefix or "", file_name).lstrip("/")


def build_backup_command(job: BackupJob, container_id: str, key: str) -> str:
    """
    Render the dump | compress | upload pipeline of a backup.

    Raises:
        ValidationError: If the database engine is not supported
    """
    if job.database_type not in DUMP_TOOLS:
        raise ValidationError(
            f"Unsupported database type: '{job.database_type}'. "
            f"Supported types: {', '.join(DUMP_TOOLS)}"
        )

    exec_args = ["docker", "exec"]
    password_env = PASSWORD_ENV.get(job.database_type)
    if password_env and job.database_password:
        exec_args += ["-e", f"{password_env}={job.database_password}"]
    exec_args.append(container_id)
    dump = render(exec_args + DUMP_TOOLS[job.database_type](job))

    destination = f":s3:{job.destination.bucket}/{key}"
    upload = render(["rclone", "rcat"] + job.destination.rclone_flags + [destination])

    # pipefail makes a failing dump fail the whole pipeline
    return f"set -o pipefail; {dump} | gzip | {upload}"


class BackupPipeline:
    """Runs database backups and reports their outcome."""

    def __init__(
        self,
        control_plane: DockerService,
        backend: ExecutionBackend,
        notifications: NotificationService,
    ):
        self.control_plane = control_plane
        self.backend = backend
        self.notifications = notifications

    def run(
        self,
        job: BackupJob,
        host: Optional[str] = None,
        token: Optional[CancellationToken] = None,
    ) -> str:
        """
        Back up one database.

        Args:
            job: Backup to run
            host: Target host; defaults to the host the database runs on
            token: Cancellation token for the run

        Returns:
            Object key of the uploaded artifact

        Raises:
            PipelineStageError: If the backup failed; a failure notification
                was sent before raising
        """
        host = host if host is not None else job.host
        key = backup_key(job.prefix, backup_file_name())
        logger.info(
            "Backing up %s database %s of %s to %s",
            job.database_type,
            job.database,
            job.app_name,
            job.destination.bucket,
        )

        try:
            try:
                container = self.control_plane.find_service_container(job.app_name, host)
                if container is None:
                    raise NotFoundError("Running container of service", job.app_name)
            except Exception as e:
                raise PipelineStageError(STAGE_LOCATE, e) from e

            try:
                command = build_backup_command(job, container.container_id, key)
                self.backend.check(host, command, token)
            except Exception as e:
                raise PipelineStageError(STAGE_STREAM, e) from e
        except PipelineStageError as e:
            logger.error("Backup of %s failed: %s", job.app_name, e.message)
            self.notifications.notify_backup(
                BackupEvent(
                    project=job.project_name,
                    application=job.application_name,
                    database_type=job.database_type,
                    error_message=e.message or "Error message not provided",
                )
            )
            raise

        self.notifications.notify_backup(
            BackupEvent(
                project=job.project_name,
                application=job.application_name,
                database_type=job.database_type,
            )
        )
        logger.info("Backup of %s uploaded to %s", job.app_name, key)
        return key
