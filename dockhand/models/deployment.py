"""
Deployment Models

Dataclass models for deployments and the read-only descriptors the
pipelines consume.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, List

from dockhand.constants import TERMINAL_STATUSES


class DeploymentStatus(Enum):
    """Status of a deployment run."""

    RUNNING = "running"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        """Check if no further transition is allowed."""
        return self.value in TERMINAL_STATUSES


@dataclass
class Deployment:
    """A single deployment run and its log file."""

    deployment_id: int
    application_id: int
    title: str
    log_path: str
    status: DeploymentStatus = DeploymentStatus.RUNNING
    description: str = ""
    created_at: Optional[datetime] = None

    @property
    def is_finished(self) -> bool:
        return self.status.is_terminal


@dataclass(frozen=True)
class ApplicationDescriptor:
    """
    Everything the pipeline needs to know about an application.

    Built from the persisted application joined with its project and server.
    `host` is the server identifier, or None for the local daemon.
    """

    application_id: int
    name: str
    app_name: str
    project_id: int
    project_name: str
    source_type: str
    build_type: str = "dockerfile"
    # github / gitlab / bitbucket
    owner: Optional[str] = None
    repository: Optional[str] = None
    branch: Optional[str] = None
    git_token: Optional[str] = None
    # custom git
    custom_git_url: Optional[str] = None
    custom_git_branch: Optional[str] = None
    custom_git_ssh_key_path: Optional[str] = None
    # docker image
    docker_image: Optional[str] = None
    registry_username: Optional[str] = None
    registry_password: Optional[str] = None
    registry_url: Optional[str] = None
    # build
    dockerfile: Optional[str] = None
    build_path: str = "."
    env: Dict[str, str] = field(default_factory=dict)
    replicas: int = 1
    ports: List[str] = field(default_factory=list)
    host: Optional[str] = None

    @property
    def is_remote(self) -> bool:
        """Check if application runs on a registered remote server."""
        return bool(self.host)


@dataclass(frozen=True)
class BackupDestination:
    """S3-compatible bucket a backup is streamed into."""

    bucket: str
    access_key: str
    secret_key: str
    region: str = ""
    endpoint: str = ""

    @property
    def rclone_flags(self) -> List[str]:
        """Get rclone flags for an on-the-fly :s3: remote."""
        return [
            f"--s3-access-key-id={self.access_key}",
            f"--s3-secret-access-key={self.secret_key}",
            f"--s3-region={self.region}",
            f"--s3-endpoint={self.endpoint}",
            "--s3-no-check-bucket",
            "--s3-force-path-style",
        ]

    def __repr__(self) -> str:
        return f"BackupDestination(bucket={self.bucket}, endpoint={self.endpoint})"


@dataclass(frozen=True)
class BackupJob:
    """A backup schedule joined with the database it exports."""

    backup_id: int
    database_type: str
    database: str
    prefix: str
    app_name: str
    application_name: str
    project_name: str
    destination: BackupDestination
    database_user: str = ""
    database_password: str = ""
    schedule: Optional[str] = None
    host: Optional[str] = None
