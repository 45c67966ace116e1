"""Dockhand CLI - Swarm stack and service commands"""

import click

from dockhand.base import ControlCommand
from dockhand.models import HostInput, ServiceScaleInput, StackInput, parse_input


class StacksCommand(ControlCommand):
    """List stacks, or the services of one stack."""

    def __init__(
        self,
        stack: str = None,
        host: str = None,
        verbose: bool = False,
        json_output: bool = False,
    ):
        super().__init__(verbose=verbose, json_output=json_output)
        self.stack = stack
        self.host = host

    def execute(self) -> None:
        docker = self.ensure_docker()

        if self.stack is None:
            request = parse_input(HostInput, host=self.host)
            stacks = docker.list_stacks(request.host)
            if self.json_output:
                self.output_json([s.to_dict() for s in stacks])
                return
            self.print_table(
                f"Stacks on {request.host or 'local daemon'}",
                ["Name", "Services", "Orchestrator"],
                [[s.name, s.services, s.orchestrator] for s in stacks],
            )
            return

        request = parse_input(StackInput, name=self.stack, host=self.host)
        services = docker.get_stack_services(request.name, request.host)
        if self.json_output:
            self.output_json([s.to_dict() for s in services])
            return
        self.print_table(
            f"Services of {request.name}",
            ["ID", "Name", "Replicas", "Image"],
            [[s.service_id, s.name, s.replicas, s.image] for s in services],
        )


class ServiceScaleCommand(ControlCommand):
    """Set the replica count of a swarm service."""

    def __init__(
        self,
        service: str,
        replicas: int,
        host: str = None,
        verbose: bool = False,
        json_output: bool = False,
    ):
        super().__init__(verbose=verbose, json_output=json_output)
        self.service = service
        self.replicas = replicas
        self.host = host

    def execute(self) -> None:
        request = parse_input(
            ServiceScaleInput, service=self.service, replicas=self.replicas, host=self.host
        )
        self.ensure_docker().scale_service(request.service, request.replicas, request.host)

        if self.json_output:
            self.output_json({"service": request.service, "replicas": request.replicas})
            return
        self.print_success(f"Scaled {request.service} to {request.replicas} replica(s)")


@click.command(name="stacks")
@click.option("--host", "-H", help="Server id (default: local daemon)")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def stacks(host, verbose, json_output):
    """List swarm stacks"""
    StacksCommand(host=host, verbose=verbose, json_output=json_output).run()


@click.command(name="stack:services")
@click.argument("stack")
@click.option("--host", "-H", help="Server id (default: local daemon)")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def stack_services(stack, host, verbose, json_output):
    """List the services of a swarm stack"""
    StacksCommand(stack=stack, host=host, verbose=verbose, json_output=json_output).run()


@click.command(name="service:scale")
@click.argument("service")
@click.argument("replicas", type=int)
@click.option("--host", "-H", help="Server id (default: local daemon)")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def service_scale(service, replicas, host, verbose, json_output):
    """
    Scale a swarm service

    \b
    Examples:
      dockhand service:scale api 3
      dockhand service:scale api 1 -H web-1
    """
    cmd = ServiceScaleCommand(
        service, replicas, host=host, verbose=verbose, json_output=json_output
    )
    cmd.run()
