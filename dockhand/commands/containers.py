"""Dockhand CLI - Container commands"""

import click

from dockhand.base import ControlCommand
from dockhand.core.table_parser import parse_ports
from dockhand.models import ContainerInput, HostInput, parse_input


class ContainersListCommand(ControlCommand):
    """
    List containers on a Docker host.

    Features:
    - All containers, or only those of one application
    - Compose projects matched by label, swarm services by service label
    - Platform containers are never shown
    """

    def __init__(
        self,
        host: str = None,
        app_name: str = None,
        app_type: str = None,
        service: str = None,
        verbose: bool = False,
        json_output: bool = False,
    ):
        super().__init__(verbose=verbose, json_output=json_output)
        self.host = host
        self.app_name = app_name
        self.app_type = app_type
        self.service = service

    def execute(self) -> None:
        request = parse_input(HostInput, host=self.host)
        docker = self.ensure_docker()

        if self.service:
            containers = docker.get_containers_by_app_label(self.service, request.host)
        elif self.app_name:
            containers = docker.get_containers_by_app_name(
                self.app_name, self.app_type, request.host
            )
        else:
            containers = docker.list_containers(request.host)

        if self.json_output:
            self.output_json([c.to_dict() for c in containers])
            return

        if not containers:
            self.print_warning("No containers found")
            return

        self.print_table(
            f"Containers on {request.host or 'local daemon'}",
            ["ID", "Name", "Image", "State", "Status", "Ports"],
            [
                [
                    c.container_id,
                    c.name,
                    c.image,
                    c.state,
                    c.status,
                    ", ".join(str(port) for port in parse_ports(c.ports)),
                ]
                for c in containers
            ],
        )


class ContainerCommand(ControlCommand):
    """Inspect or restart one container."""

    def __init__(
        self,
        action: str,
        container_id: str,
        host: str = None,
        verbose: bool = False,
        json_output: bool = False,
    ):
        super().__init__(verbose=verbose, json_output=json_output)
        self.action = action
        self.container_id = container_id
        self.host = host

    def execute(self) -> None:
        request = parse_input(ContainerInput, container_id=self.container_id, host=self.host)
        docker = self.ensure_docker()

        if self.action == "inspect":
            document = docker.inspect_container(request.container_id, request.host)
            if document is None:
                self.exit_with_error(f"Container not found: {request.container_id}")
            if self.json_output:
                self.output_json(document)
            else:
                self.console.print_json(data=document)
            return

        docker.restart_container(request.container_id, request.host)
        if self.json_output:
            self.output_json({"container": request.container_id, "restarted": True})
            return
        self.print_success(f"Container {request.container_id} restarted")


@click.command(name="containers")
@click.option("--host", "-H", help="Server id (default: local daemon)")
@click.option("--app", "app_name", help="Only containers of this application")
@click.option(
    "--compose", "app_type", flag_value="docker-compose", help="Match --app as a compose project"
)
@click.option("--service", help="Only running containers of this swarm service")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def containers(host, app_name, app_type, service, verbose, json_output):
    """
    List containers

    \b
    Examples:
      dockhand containers                      # Local daemon
      dockhand containers -H web-1 --app api   # Containers named like api on web-1
    """
    cmd = ContainersListCommand(
        host=host,
        app_name=app_name,
        app_type=app_type,
        service=service,
        verbose=verbose,
        json_output=json_output,
    )
    cmd.run()


@click.command(name="container:inspect")
@click.argument("container_id")
@click.option("--host", "-H", help="Server id (default: local daemon)")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def container_inspect(container_id, host, verbose, json_output):
    """Show the full inspect document of a container"""
    cmd = ContainerCommand(
        "inspect", container_id, host=host, verbose=verbose, json_output=json_output
    )
    cmd.run()


@click.command(name="container:restart")
@click.argument("container_id")
@click.option("--host", "-H", help="Server id (default: local daemon)")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def container_restart(container_id, host, verbose, json_output):
    """Restart a container"""
    cmd = ContainerCommand(
        "restart", container_id, host=host, verbose=verbose, json_output=json_output
    )
    cmd.run()
