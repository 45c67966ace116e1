"""
Control Command Base Class

Base class for commands that talk to Docker daemons or run pipelines.
Services are built lazily from the process settings.
"""

import logging
from typing import Any, Callable, Optional

from dockhand.base.base_command import BaseCommand
from dockhand.config import Settings, get_settings
from dockhand.core.builders import BuildRegistry, default_builders
from dockhand.core.sources import SourceRegistry, default_sources
from dockhand.database import DeploymentStore, configure_engine
from dockhand.exceptions import DockhandError
from dockhand.pipelines import BackupPipeline, DeploymentPipeline
from dockhand.services import (
    CancellationToken,
    DockerService,
    ExecutionBackend,
    HostService,
    LocalExecutionBackend,
    NotificationService,
    RegistryService,
    RemoteExecutionBackend,
    RoutingExecutionBackend,
    RunService,
)
from dockhand.services.notification_service import LoggingNotifier, WebhookNotifier


class ControlCommand(BaseCommand):
    """
    Base class for control-plane and pipeline commands.

    Provides:
    - Settings and database engine setup
    - Pre-wired execution backend, control plane and pipelines
    """

    def __init__(
        self,
        verbose: bool = False,
        json_output: bool = False,
        settings: Optional[Settings] = None,
    ):
        super().__init__(verbose=verbose, json_output=json_output)
        self._settings = settings
        self._engine_ready = False
        self._store: Optional[DeploymentStore] = None
        self._backend: Optional[ExecutionBackend] = None
        self._docker: Optional[DockerService] = None
        self._notifications: Optional[NotificationService] = None

    @property
    def settings(self) -> Settings:
        """Load settings and bind the database on first use."""
        if self._settings is None:
            self._settings = get_settings()
        if not self._engine_ready:
            level = "DEBUG" if self.verbose else self._settings.log_level
            logging.getLogger("dockhand").setLevel(level)
            configure_engine(self._settings.db_url)
            self._engine_ready = True
        return self._settings

    def ensure_store(self) -> DeploymentStore:
        if self._store is None:
            self._store = DeploymentStore(self.settings)
        return self._store

    def ensure_backend(self) -> ExecutionBackend:
        """
        Ensure the routing execution backend is initialized.

        Returns:
            Backend that runs host-less commands locally and the rest over SSH
        """
        if self._backend is None:
            hosts = HostService(self.settings)
            self._backend = RoutingExecutionBackend(
                LocalExecutionBackend(),
                RemoteExecutionBackend(hosts.get_connection),
            )
        return self._backend

    def ensure_docker(self) -> DockerService:
        if self._docker is None:
            backend = self.ensure_backend()
            registry = RegistryService(backend, self.settings.registry_url)
            self._docker = DockerService(backend, registry)
        return self._docker

    def ensure_notifications(self) -> NotificationService:
        """
        Ensure notifications are initialized.

        The CLI exits right after a run, so delivery is synchronous.
        """
        if self._notifications is None:
            notifiers = [LoggingNotifier()]
            if self.settings.webhook_url:
                notifiers.append(WebhookNotifier(self.settings.webhook_url))
            self._notifications = NotificationService(notifiers, synchronous=True)
        return self._notifications

    def ensure_sources(self) -> SourceRegistry:
        return default_sources(self.ensure_backend(), self.settings)

    def ensure_builders(self) -> BuildRegistry:
        return default_builders(self.ensure_backend(), self.settings)

    def deployment_pipeline(self) -> DeploymentPipeline:
        return DeploymentPipeline(
            store=self.ensure_store(),
            control_plane=self.ensure_docker(),
            sources=self.ensure_sources(),
            builders=self.ensure_builders(),
            backend=self.ensure_backend(),
            notifications=self.ensure_notifications(),
            settings=self.settings,
        )

    def backup_pipeline(self) -> BackupPipeline:
        return BackupPipeline(
            control_plane=self.ensure_docker(),
            backend=self.ensure_backend(),
            notifications=self.ensure_notifications(),
        )

    def run_cancellable(self, name: str, fn: Callable[[CancellationToken], Any]) -> Any:
        """
        Run a pipeline call in the background and wait for it.

        Ctrl-C cancels the run, which kills the in-flight command, then
        re-raises once the run has wound down.
        """
        runs = RunService(max_workers=1)
        run_id = runs.submit(name, fn)
        try:
            return runs.wait(run_id)
        except KeyboardInterrupt:
            runs.cancel(run_id)
            self.print_warning(f"Cancelling {name}...")
            try:
                runs.wait(run_id)
            except DockhandError as e:
                self.print_dim(e.message)
            raise
        finally:
            runs.shutdown(wait=False)
