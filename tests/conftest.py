"""
Shared fixtures

A recording execution backend stands in for Docker and SSH, and an
in-memory SQLite database backs the persistence adapter.
"""

from typing import List, Optional, Tuple, Union

import pytest

from dockhand.config import Settings
from dockhand.database import (
    Application,
    Backup,
    BackupDestination,
    Base,
    DeploymentStore,
    Project,
    Server,
    configure_engine,
    get_db_session,
)
from dockhand.models.results import CommandResult
from dockhand.services.execution import ExecutionBackend
from dockhand.services.notification_service import NotificationService, Notifier


class RecordingBackend(ExecutionBackend):
    """
    Execution backend that records every command instead of running it.

    Responses are matched by substring in registration order; unmatched
    commands succeed with empty output.
    """

    def __init__(self):
        self.calls: List[Tuple[Optional[str], str]] = []
        self._rules: List[Tuple[str, Union[CommandResult, Exception]]] = []

    def respond(self, fragment: str, stdout: str = "", stderr: str = "", exit_code: int = 0):
        self._rules.append((fragment, CommandResult(stdout, stderr, exit_code)))

    def fail_with(self, fragment: str, error: Exception):
        self._rules.append((fragment, error))

    def run(self, host, command, token=None):
        if token is not None:
            token.raise_if_cancelled(host, command)
        self.calls.append((host, command))
        for fragment, outcome in self._rules:
            if fragment in command:
                if isinstance(outcome, Exception):
                    raise outcome
                return outcome
        return CommandResult()

    @property
    def commands(self) -> List[str]:
        return [command for _, command in self.calls]

    def ran(self, fragment: str) -> bool:
        return any(fragment in command for command in self.commands)


class RecordingNotifier(Notifier):
    """Notifier that keeps every event it receives."""

    def __init__(self):
        self.events = []

    def notify_build_success(self, event):
        self.events.append(("build_success", event))

    def notify_build_error(self, event):
        self.events.append(("build_error", event))

    def notify_backup(self, event):
        self.events.append(("backup", event))


@pytest.fixture
def backend():
    return RecordingBackend()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def notifications(notifier):
    return NotificationService([notifier], synchronous=True)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        db_url="sqlite://",
        base_dir=str(tmp_path / "data"),
        remote_base_dir="/srv/dockhand",
        public_url="https://dockhand.example.com",
        ssh_control_dir=str(tmp_path / "mux"),
    )


@pytest.fixture
def db():
    """Fresh in-memory database for one test."""
    engine = configure_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield get_db_session
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def store(db, settings):
    return DeploymentStore(settings, session_factory=db)


@pytest.fixture
def seed(db):
    """Insert a project, optional server and an application; returns the application id."""

    def _seed(host: Optional[str] = None, **overrides) -> int:
        session = db()
        try:
            project = session.query(Project).filter_by(name="shop").first()
            if project is None:
                project = Project(name="shop")
                session.add(project)
                session.flush()

            if host and session.get(Server, host) is None:
                session.add(
                    Server(
                        id=host,
                        name=host,
                        ip_address="203.0.113.10",
                        port=2222,
                        username="deploy",
                    )
                )
                session.flush()

            values = dict(
                project_id=project.id,
                name="Web",
                app_name="shop-web",
                source_type="github",
                build_type="dockerfile",
                owner="acme",
                repository="web",
                branch="main",
                git_token="s3cret",
                build_path=".",
                env={"PORT": "8080", "API_TOKEN": "hidden"},
                ports=["8080:8080"],
                replicas=2,
                server_id=host,
            )
            values.update(overrides)
            application = Application(**values)
            session.add(application)
            session.commit()
            return application.id
        finally:
            session.close()

    return _seed


@pytest.fixture
def seed_backup(db):
    """Insert a backup with its destination; returns the backup id."""

    def _seed_backup(database_type: str = "postgres", host: Optional[str] = None, **overrides) -> int:
        session = db()
        try:
            project = session.query(Project).filter_by(name="shop").first()
            if project is None:
                project = Project(name="shop")
                session.add(project)
                session.flush()

            destination = BackupDestination(
                name="offsite",
                bucket="backups",
                region="eu-central-1",
                endpoint="https://s3.example.com",
                access_key="AKIA",
                secret_key="topsecret",
            )
            session.add(destination)
            session.flush()

            values = dict(
                project_id=project.id,
                destination_id=destination.id,
                name="Orders DB",
                app_name="shop-db",
                database_type=database_type,
                database_name="orders",
                database_user="postgres",
                database_password="pw",
                prefix="/nightly",
                schedule="0 2 * * *",
                enabled=True,
                server_id=host,
            )
            values.update(overrides)
            backup = Backup(**values)
            session.add(backup)
            session.commit()
            return backup.id
        finally:
            session.close()

    return _seed_backup
