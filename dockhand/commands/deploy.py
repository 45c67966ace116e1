"""Dockhand CLI - Deploy commands"""

import click

from dockhand.base import ControlCommand
from dockhand.constants import DEFAULT_DEPLOY_TITLE, DEFAULT_REBUILD_TITLE
from dockhand.models import ApplicationRunInput, Deployment, parse_input


def deployment_to_dict(deployment: Deployment) -> dict:
    return {
        "id": deployment.deployment_id,
        "application_id": deployment.application_id,
        "title": deployment.title,
        "description": deployment.description,
        "status": deployment.status.value,
        "log_path": deployment.log_path,
        "created_at": deployment.created_at,
    }


class DeployCommand(ControlCommand):
    """
    Deploy or rebuild an application.

    Features:
    - Source acquisition (skipped on rebuild)
    - Image build with the configured strategy
    - Swarm service create or update
    - Ctrl-C cancels the in-flight step
    """

    def __init__(
        self,
        application_id: int,
        title: str = None,
        description: str = "",
        rebuild: bool = False,
        verbose: bool = False,
        json_output: bool = False,
    ):
        super().__init__(verbose=verbose, json_output=json_output)
        self.rebuild = rebuild
        self.options = dict(
            application_id=application_id, title=title, description=description
        )

    def execute(self) -> None:
        self.request = parse_input(ApplicationRunInput, **self.options)
        pipeline = self.deployment_pipeline()
        app = self.ensure_store().find_application_by_id(self.request.application_id)
        action = "Rebuilding" if self.rebuild else "Deploying"
        self.print_dim(f"{action} {app.name} on {app.host or 'local daemon'}...")

        if self.rebuild:
            title = self.request.title or DEFAULT_REBUILD_TITLE
            run = pipeline.rebuild
        else:
            title = self.request.title or DEFAULT_DEPLOY_TITLE
            run = pipeline.deploy

        deployment = self.run_cancellable(
            f"{action.lower()} {app.app_name}",
            lambda token: run(
                app.application_id, title, self.request.description, token
            ),
        )

        if self.json_output:
            self.output_json(deployment_to_dict(deployment))
            return

        self.print_success(f"Deployment {deployment.deployment_id} finished")
        self.print_dim(f"Log: {deployment.log_path}")


class DeploymentsListCommand(ControlCommand):
    """List the deployments of an application."""

    def __init__(self, application_id: int, verbose: bool = False, json_output: bool = False):
        super().__init__(verbose=verbose, json_output=json_output)
        self.application_id = application_id

    def execute(self) -> None:
        request = parse_input(ApplicationRunInput, application_id=self.application_id)
        deployments = self.ensure_store().list_deployments(request.application_id)

        if self.json_output:
            self.output_json([deployment_to_dict(d) for d in deployments])
            return

        if not deployments:
            self.print_warning("No deployments yet")
            return

        self.print_table(
            "Deployments",
            ["ID", "Title", "Status", "Created", "Log"],
            [
                [d.deployment_id, d.title, d.status.value, d.created_at, d.log_path]
                for d in deployments
            ],
        )


@click.command(name="deploy")
@click.argument("application_id", type=int)
@click.option("--title", "-t", help="Deployment title")
@click.option("--description", "-d", default="", help="Deployment description")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def deploy(application_id, title, description, verbose, json_output):
    """
    Deploy an application

    \b
    Examples:
      dockhand deploy 3                       # Clone, build and run app 3
      dockhand deploy 3 -t "Hotfix" --json    # Custom title, JSON result
    """
    cmd = DeployCommand(
        application_id,
        title=title,
        description=description,
        verbose=verbose,
        json_output=json_output,
    )
    cmd.run()


@click.command(name="rebuild")
@click.argument("application_id", type=int)
@click.option("--title", "-t", help="Deployment title")
@click.option("--description", "-d", default="", help="Deployment description")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def rebuild(application_id, title, description, verbose, json_output):
    """
    Rebuild an application from its existing checkout

    \b
    No source is fetched and no notifications are sent.
    """
    cmd = DeployCommand(
        application_id,
        title=title,
        description=description,
        rebuild=True,
        verbose=verbose,
        json_output=json_output,
    )
    cmd.run()


@click.command(name="deployments")
@click.argument("application_id", type=int)
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def deployments(application_id, verbose, json_output):
    """List deployments of an application, newest first"""
    cmd = DeploymentsListCommand(application_id, verbose=verbose, json_output=json_output)
    cmd.run()
