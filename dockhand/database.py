"""
Database models and persistence adapter.

The pipelines only talk to DeploymentStore; the ORM models below are the
concrete schema behind it. The engine is created on first use from
DOCKHAND_DB_URL.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy import (
    create_engine,
    Column,
    Integer,
    String,
    Text,
    Boolean,
    DateTime,
    JSON,
    ForeignKey,
)
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from dockhand.config import Settings, get_settings
from dockhand.exceptions import NotFoundError, StateError
from dockhand.models.deployment import (
    ApplicationDescriptor,
    BackupDestination as BackupDestinationInfo,
    BackupJob,
    Deployment as DeploymentInfo,
    DeploymentStatus,
)

logger = logging.getLogger(__name__)

Base = declarative_base()
SessionLocal = sessionmaker(autoflush=False)

_engine = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Project(Base):
    """Project model - groups applications and databases."""

    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False, index=True)
    description = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=_utcnow)

    # Relationships
    applications = relationship(
        "Application", back_populates="project", cascade="all, delete-orphan"
    )
    backups = relationship("Backup", back_populates="project", cascade="all, delete-orphan")


class Server(Base):
    """Registered remote host reachable over SSH."""

    __tablename__ = "servers"

    id = Column(String(64), primary_key=True)  # host identifier used everywhere
    name = Column(String(100), nullable=False)
    ip_address = Column(String(255), nullable=False)
    port = Column(Integer, nullable=False, default=22)
    username = Column(String(50), nullable=False, default="root")
    ssh_key_path = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=_utcnow)


class Application(Base):
    """Application model - what to fetch, how to build it, where to run it."""

    __tablename__ = "applications"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(
        Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    name = Column(String(100), nullable=False)
    app_name = Column(String(100), unique=True, nullable=False, index=True)
    source_type = Column(String(20), nullable=False, default="github")
    build_type = Column(String(30), nullable=False, default="nixpacks")

    # github / gitlab / bitbucket
    owner = Column(String(100), nullable=True)
    repository = Column(String(255), nullable=True)
    branch = Column(String(255), nullable=True)
    git_token = Column(Text, nullable=True)

    # custom git
    custom_git_url = Column(String(500), nullable=True)
    custom_git_branch = Column(String(255), nullable=True)
    custom_git_ssh_key_path = Column(String(500), nullable=True)

    # docker image
    docker_image = Column(String(500), nullable=True)
    registry_username = Column(String(255), nullable=True)
    registry_password = Column(Text, nullable=True)
    registry_url = Column(String(255), nullable=True)

    # build + runtime
    dockerfile = Column(String(255), nullable=True)
    build_path = Column(String(500), nullable=False, default=".")
    env = Column(JSON, nullable=True)  # {"KEY": "value"}
    ports = Column(JSON, nullable=True)  # ["8080:80"]
    replicas = Column(Integer, nullable=False, default=1)

    server_id = Column(
        String(64), ForeignKey("servers.id", ondelete="SET NULL"), nullable=True
    )
    application_status = Column(String(20), nullable=False, default="idle")
    created_at = Column(DateTime, default=_utcnow)

    # Relationships
    project = relationship("Project", back_populates="applications")
    server = relationship("Server")
    deployments = relationship(
        "Deployment", back_populates="application", cascade="all, delete-orphan"
    )


class Deployment(Base):
    """One deployment run - one row per run, never deleted by dockhand."""

    __tablename__ = "deployments"

    id = Column(Integer, primary_key=True, index=True)
    application_id = Column(
        Integer,
        ForeignKey("applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    log_path = Column(String(1000), nullable=False)
    status = Column(String(20), nullable=False, default=DeploymentStatus.RUNNING.value)
    created_at = Column(DateTime, default=_utcnow)

    # Relationships
    application = relationship("Application", back_populates="deployments")


class BackupDestination(Base):
    """S3-compatible bucket backups are uploaded to."""

    __tablename__ = "backup_destinations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    bucket = Column(String(255), nullable=False)
    region = Column(String(100), nullable=True)
    endpoint = Column(String(500), nullable=True)
    access_key = Column(String(255), nullable=False)
    secret_key = Column(Text, nullable=False)
    created_at = Column(DateTime, default=_utcnow)


class Backup(Base):
    """Backup schedule for one database service."""

    __tablename__ = "backups"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(
        Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    destination_id = Column(
        Integer, ForeignKey("backup_destinations.id", ondelete="CASCADE"), nullable=False
    )
    name = Column(String(100), nullable=False)  # display name of the database service
    app_name = Column(String(100), nullable=False)  # swarm service running the database
    database_type = Column(String(20), nullable=False)  # postgres/mysql/mariadb/mongo
    database_name = Column(String(255), nullable=False)
    database_user = Column(String(255), nullable=True)
    database_password = Column(Text, nullable=True)
    prefix = Column(String(500), nullable=False, default="/")
    schedule = Column(String(100), nullable=True)  # cron expression
    enabled = Column(Boolean, nullable=False, default=True)
    server_id = Column(
        String(64), ForeignKey("servers.id", ondelete="SET NULL"), nullable=True
    )
    created_at = Column(DateTime, default=_utcnow)

    # Relationships
    project = relationship("Project", back_populates="backups")
    destination = relationship("BackupDestination")


def configure_engine(url: str):
    """
    Bind the session factory to a database URL.

    In-memory SQLite shares one connection so every session sees the same data.
    """
    global _engine

    kwargs = {}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool

    _engine = create_engine(url, **kwargs)
    SessionLocal.configure(bind=_engine)
    return _engine


def get_engine():
    """Get the engine, creating it from settings on first use."""
    if _engine is None:
        configure_engine(get_settings().db_url)
    return _engine


def get_db_session() -> Session:
    """Get database session."""
    get_engine()
    return SessionLocal()


def init_db() -> None:
    """Create all tables."""
    Base.metadata.create_all(bind=get_engine())


class DeploymentStore:
    """
    Persistence operations used by the pipelines.

    Each call opens and closes its own session; no state is shared between
    calls, so concurrent runs need no locking here.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session_factory: Callable[[], Session] = get_db_session,
    ):
        self.settings = settings or get_settings()
        self.session_factory = session_factory

    def create_deployment_record(
        self,
        application_id: int,
        title: str,
        description: str = "",
        remote: bool = False,
    ) -> DeploymentInfo:
        """
        Create a deployment in running state with a fresh log path.

        Args:
            application_id: Application being deployed
            title: Short title shown in the deployment list
            description: Longer description
            remote: Whether the log lives on a remote host

        Returns:
            The new deployment

        Raises:
            NotFoundError: If the application does not exist
        """
        db = self.session_factory()
        try:
            application = db.get(Application, application_id)
            if application is None:
                raise NotFoundError("Application", str(application_id))

            now = _utcnow()
            row = Deployment(
                application_id=application_id,
                title=title,
                description=description,
                log_path=self.settings.deployment_log_path(
                    application.app_name, now, remote
                ),
                status=DeploymentStatus.RUNNING.value,
                created_at=now,
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            return _to_deployment(row)
        finally:
            db.close()

    def update_deployment_status(
        self, deployment_id: int, status: DeploymentStatus
    ) -> DeploymentInfo:
        """
        Move a deployment to a terminal status.

        Raises:
            NotFoundError: If the deployment does not exist
            StateError: If the deployment already finished, or status is not terminal
        """
        if not status.is_terminal:
            raise StateError(f"Cannot move deployment {deployment_id} to '{status.value}'")

        db = self.session_factory()
        try:
            # Only a running row may finish; concurrent finishers match zero rows
            updated = (
                db.query(Deployment)
                .filter(
                    Deployment.id == deployment_id,
                    Deployment.status == DeploymentStatus.RUNNING.value,
                )
                .update({Deployment.status: status.value}, synchronize_session=False)
            )
            db.commit()
            row = db.get(Deployment, deployment_id)
            if row is None:
                raise NotFoundError("Deployment", str(deployment_id))
            if not updated:
                raise StateError(
                    f"Deployment {deployment_id} already finished with status '{row.status}'"
                )
            logger.info("Deployment %s finished with status %s", deployment_id, status.value)
            return _to_deployment(row)
        finally:
            db.close()

    def get_deployment(self, deployment_id: int) -> DeploymentInfo:
        """Get a deployment by id."""
        db = self.session_factory()
        try:
            row = db.get(Deployment, deployment_id)
            if row is None:
                raise NotFoundError("Deployment", str(deployment_id))
            return _to_deployment(row)
        finally:
            db.close()

    def list_deployments(self, application_id: int) -> List[DeploymentInfo]:
        """List deployments of an application, newest first."""
        db = self.session_factory()
        try:
            rows = (
                db.query(Deployment)
                .filter(Deployment.application_id == application_id)
                .order_by(Deployment.id.desc())
                .all()
            )
            return [_to_deployment(row) for row in rows]
        finally:
            db.close()

    def find_application_by_id(self, application_id: int) -> ApplicationDescriptor:
        """
        Load an application joined with its project and server.

        Raises:
            NotFoundError: If the application does not exist
        """
        db = self.session_factory()
        try:
            app = db.get(Application, application_id)
            if app is None:
                raise NotFoundError("Application", str(application_id))
            return ApplicationDescriptor(
                application_id=app.id,
                name=app.name,
                app_name=app.app_name,
                project_id=app.project_id,
                project_name=app.project.name,
                source_type=app.source_type,
                build_type=app.build_type,
                owner=app.owner,
                repository=app.repository,
                branch=app.branch,
                git_token=app.git_token,
                custom_git_url=app.custom_git_url,
                custom_git_branch=app.custom_git_branch,
                custom_git_ssh_key_path=app.custom_git_ssh_key_path,
                docker_image=app.docker_image,
                registry_username=app.registry_username,
                registry_password=app.registry_password,
                registry_url=app.registry_url,
                dockerfile=app.dockerfile,
                build_path=app.build_path or ".",
                env=dict(app.env or {}),
                replicas=app.replicas or 1,
                ports=list(app.ports or []),
                host=app.server_id,
            )
        finally:
            db.close()

    def update_application_status(self, application_id: int, status: str) -> None:
        """Record the outcome of the latest run on the application."""
        db = self.session_factory()
        try:
            app = db.get(Application, application_id)
            if app is None:
                raise NotFoundError("Application", str(application_id))
            app.application_status = status
            db.commit()
        finally:
            db.close()

    def find_backup_by_id(self, backup_id: int) -> BackupJob:
        """
        Load a backup schedule joined with its destination and project.

        Raises:
            NotFoundError: If the backup does not exist
        """
        db = self.session_factory()
        try:
            backup = db.get(Backup, backup_id)
            if backup is None:
                raise NotFoundError("Backup", str(backup_id))
            return _to_backup_job(backup)
        finally:
            db.close()

    def list_enabled_backups(self) -> List[BackupJob]:
        """List every backup with a schedule that is switched on."""
        db = self.session_factory()
        try:
            rows = (
                db.query(Backup)
                .filter(Backup.enabled.is_(True))
                .order_by(Backup.id)
                .all()
            )
            return [_to_backup_job(row) for row in rows]
        finally:
            db.close()


def _to_deployment(row: Deployment) -> DeploymentInfo:
    return DeploymentInfo(
        deployment_id=row.id,
        application_id=row.application_id,
        title=row.title,
        description=row.description or "",
        log_path=row.log_path,
        status=DeploymentStatus(row.status),
        created_at=row.created_at,
    )


def _to_backup_job(row: Backup) -> BackupJob:
    destination = row.destination
    return BackupJob(
        backup_id=row.id,
        database_type=row.database_type,
        database=row.database_name,
        prefix=row.prefix,
        app_name=row.app_name,
        application_name=row.name,
        project_name=row.project.name,
        destination=BackupDestinationInfo(
            bucket=destination.bucket,
            access_key=destination.access_key,
            secret_key=destination.secret_key,
            region=destination.region or "",
            endpoint=destination.endpoint or "",
        ),
        database_user=row.database_user or "",
        database_password=row.database_password or "",
        schedule=row.schedule,
        host=row.server_id,
    )
