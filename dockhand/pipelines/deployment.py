"""
Deployment Pipeline

Drives one deployment run: acquire the source, build the image, then
create or update the swarm service. The run is recorded as a Deployment
that starts in `running` and ends in exactly one of `done` or `error`.

Local runs execute each stage as its own command so a failure stops the
remaining stages. Remote runs chain acquisition and build into a single
`set -e;` script sent over SSH once, followed by the service update as a
separate call against the same host.
"""

import logging
import posixpath
from contextlib import contextmanager
from typing import Optional

from dockhand.config import Settings
from dockhand.constants import DEFAULT_DEPLOY_TITLE, DEFAULT_REBUILD_TITLE
from dockhand.core.builders import BuildRegistry, service_spec_for
from dockhand.core.shell import echo_to_log, fragment, render, strict_script
from dockhand.core.sources import SourceRegistry
from dockhand.database import DeploymentStore
from dockhand.exceptions import DockhandError, PipelineStageError
from dockhand.logger import DeploymentLog, mask_env
from dockhand.models.deployment import ApplicationDescriptor, Deployment, DeploymentStatus
from dockhand.services.docker_service import DockerService
from dockhand.services.execution import CancellationToken, ExecutionBackend
from dockhand.services.notification_service import BuildEvent, NotificationService

logger = logging.getLogger(__name__)

STAGE_ACQUIRE = "acquire"
STAGE_BUILD = "build"
STAGE_CONTAINERIZE = "containerize"
STAGE_REMOTE_SCRIPT = "acquire+build"


class DeploymentPipeline:
    """Deploys and rebuilds applications on the local daemon or a remote server."""

    def __init__(
        self,
        store: DeploymentStore,
        control_plane: DockerService,
        sources: SourceRegistry,
        builders: BuildRegistry,
        backend: ExecutionBackend,
        notifications: NotificationService,
        settings: Settings,
    ):
        self.store = store
        self.control_plane = control_plane
        self.sources = sources
        self.builders = builders
        self.backend = backend
        self.notifications = notifications
        self.settings = settings

    def deploy(
        self,
        application_id: int,
        title: str = DEFAULT_DEPLOY_TITLE,
        description: str = "",
        token: Optional[CancellationToken] = None,
    ) -> Deployment:
        """
        Acquire, build and run an application.

        Args:
            application_id: Application to deploy
            title: Deployment title
            description: Deployment description
            token: Cancellation token for the run

        Returns:
            The finished deployment (status `done`)

        Raises:
            PipelineStageError: If a stage failed; the deployment is then `error`
        """
        return self._run(application_id, title, description, token, rebuild=False)

    def rebuild(
        self,
        application_id: int,
        title: str = DEFAULT_REBUILD_TITLE,
        description: str = "",
        token: Optional[CancellationToken] = None,
    ) -> Deployment:
        """
        Rebuild and rerun an application from its existing checkout.

        Same as deploy() without the acquisition stage and without notifications.
        """
        return self._run(application_id, title, description, token, rebuild=True)

    def build_link(self, app: ApplicationDescriptor) -> str:
        """Get the dashboard URL of an application's deployment list."""
        return (
            f"{self.settings.public_url}/dashboard/project/{app.project_id}"
            f"/services/application/{app.application_id}?tab=deployments"
        )

    def _run(
        self,
        application_id: int,
        title: str,
        description: str,
        token: Optional[CancellationToken],
        rebuild: bool,
    ) -> Deployment:
        app = self.store.find_application_by_id(application_id)
        deployment = self.store.create_deployment_record(
            app.application_id, title, description, remote=app.is_remote
        )
        logger.info(
            "%s %s (deployment %s) on %s",
            "Rebuilding" if rebuild else "Deploying",
            app.app_name,
            deployment.deployment_id,
            app.host or "local daemon",
        )

        try:
            if app.is_remote:
                self._run_remote(app, deployment, rebuild, token)
            else:
                self._run_local(app, deployment, rebuild, token)
        except Exception as e:
            self._finish(app, deployment, DeploymentStatus.ERROR)
            logger.error(
                "Deployment %s of %s (%s/%s) failed: %s",
                deployment.deployment_id,
                app.app_name,
                app.build_type,
                app.source_type,
                e,
            )
            if not rebuild:
                self.notifications.notify_build_error(
                    BuildEvent(
                        project=app.project_name,
                        application=app.name,
                        link=self.build_link(app),
                        error_message=_error_message(e),
                    )
                )
            raise

        finished = self._finish(app, deployment, DeploymentStatus.DONE)
        if not rebuild:
            self.notifications.notify_build_success(
                BuildEvent(
                    project=app.project_name,
                    application=app.name,
                    link=self.build_link(app),
                )
            )
        return finished

    def _finish(
        self, app: ApplicationDescriptor, deployment: Deployment, status: DeploymentStatus
    ) -> Deployment:
        finished = self.store.update_deployment_status(deployment.deployment_id, status)
        self.store.update_application_status(app.application_id, status.value)
        return finished

    def _run_local(
        self,
        app: ApplicationDescriptor,
        deployment: Deployment,
        rebuild: bool,
        token: Optional[CancellationToken],
    ) -> None:
        log = DeploymentLog(deployment.log_path, app.app_name, deployment.title)
        try:
            source = self.sources.get(app.source_type)

            if not rebuild:
                with _stage(STAGE_ACQUIRE, log):
                    source.materialize(app, deployment.log_path, None, token)

            if source.needs_build:
                with _stage(STAGE_BUILD, log):
                    builder = self.builders.get(app.build_type)
                    builder.build(app, deployment.log_path, None, token)

            with _stage(STAGE_CONTAINERIZE, log):
                spec = service_spec_for(app, self.settings)
                log.log(f"Service {spec.name} from {spec.image}, env {mask_env(spec.env)}")
                output = self.control_plane.deploy_service(spec, None, token)
                log.log_output(output)
        except Exception:
            log.close(DeploymentStatus.ERROR.value)
            raise
        log.close(DeploymentStatus.DONE.value)

    def _run_remote(
        self,
        app: ApplicationDescriptor,
        deployment: Deployment,
        rebuild: bool,
        token: Optional[CancellationToken],
    ) -> None:
        log_path = deployment.log_path

        # Validation failures count as the first stage failing
        with _stage(STAGE_REMOTE_SCRIPT):
            source = self.sources.get(app.source_type)
            fragments = []
            if not rebuild:
                fragments.append(source.build_command(app, log_path, remote=True))
            if source.needs_build:
                builder = self.builders.get(app.build_type)
                fragments.append(builder.build_command(app, log_path, remote=True))

            if fragments:
                script = strict_script(
                    fragment(
                        render(["mkdir", "-p", posixpath.dirname(log_path)]),
                        echo_to_log(f"Initializing deployment: {deployment.title}", log_path),
                    ),
                    *fragments,
                )
                self.backend.check(app.host, script, token)

        with _stage(STAGE_CONTAINERIZE):
            spec = service_spec_for(app, self.settings)
            self.control_plane.deploy_service(spec, app.host, token)


@contextmanager
def _stage(name: str, log: Optional[DeploymentLog] = None):
    """Run one pipeline stage, turning any failure into a PipelineStageError."""
    if log is not None:
        log.step(name)
    try:
        yield
    except PipelineStageError:
        raise
    except Exception as e:
        error = PipelineStageError(name, e)
        if log is not None:
            log.log_error(error.message, context=f"Stage: {name}")
        raise error from e


def _error_message(error: Exception) -> str:
    if isinstance(error, DockhandError):
        return error.message
    return str(error) or "Error to build"
