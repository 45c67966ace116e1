"""Dockhand CLI - Network and volume commands"""

import click

from dockhand.base import ControlCommand
from dockhand.models import (
    HostInput,
    NetworkCreateInput,
    NetworkInput,
    VolumeInput,
    parse_input,
)


class NetworksCommand(ControlCommand):
    """List, create, remove or inspect networks."""

    def __init__(self, action: str = "list", verbose: bool = False, json_output: bool = False, **options):
        super().__init__(verbose=verbose, json_output=json_output)
        self.action = action
        self.options = options

    def execute(self) -> None:
        docker = self.ensure_docker()

        if self.action == "list":
            request = parse_input(HostInput, **self.options)
            networks = docker.list_networks(request.host)
            if self.json_output:
                self.output_json([n.to_dict() for n in networks])
                return
            self.print_table(
                f"Networks on {request.host or 'local daemon'}",
                ["ID", "Name", "Driver", "Scope"],
                [[n.network_id, n.name, n.driver, n.scope] for n in networks],
            )
            return

        if self.action == "create":
            request = parse_input(NetworkCreateInput, **self.options)
            network_id = docker.create_network(
                request.name,
                driver=request.driver,
                subnet=request.subnet,
                gateway=request.gateway,
                ip_range=request.ip_range,
                host=request.host,
            )
            if self.json_output:
                self.output_json({"name": request.name, "id": network_id})
                return
            self.print_success(f"Network {request.name} created ({network_id[:12]})")
            return

        request = parse_input(NetworkInput, **self.options)
        if self.action == "containers":
            attached = docker.get_containers_by_network(request.name, request.host)
            if self.json_output:
                self.output_json([c.to_dict() for c in attached])
                return
            self.print_table(
                f"Containers on {request.name}",
                ["ID", "Name"],
                [[c.container_id, c.name] for c in attached],
            )
            return

        docker.delete_network(request.name, request.force, request.host)
        if self.json_output:
            self.output_json({"name": request.name, "deleted": True})
            return
        self.print_success(f"Network {request.name} removed")


class VolumesCommand(ControlCommand):
    """List, create, remove or inspect volumes."""

    def __init__(self, action: str = "list", verbose: bool = False, json_output: bool = False, **options):
        super().__init__(verbose=verbose, json_output=json_output)
        self.action = action
        self.options = options

    def execute(self) -> None:
        docker = self.ensure_docker()

        if self.action == "list":
            request = parse_input(HostInput, **self.options)
            volumes = docker.list_volumes(request.host)
            if self.json_output:
                self.output_json([v.to_dict() for v in volumes])
                return
            self.print_table(
                f"Volumes on {request.host or 'local daemon'}",
                ["Name", "Driver"],
                [[v.name, v.driver] for v in volumes],
            )
            return

        request = parse_input(VolumeInput, **self.options)
        if self.action == "create":
            docker.create_volume(request.name, request.host)
            if self.json_output:
                self.output_json({"name": request.name, "created": True})
                return
            self.print_success(f"Volume {request.name} created")
            return

        if self.action == "containers":
            users = docker.get_containers_by_volume(request.name, request.host)
            if self.json_output:
                self.output_json([c.to_dict() for c in users])
                return
            self.print_table(
                f"Containers using {request.name}",
                ["ID", "Name"],
                [[c.container_id, c.name] for c in users],
            )
            return

        docker.delete_volume(request.name, request.force, request.host)
        if self.json_output:
            self.output_json({"name": request.name, "deleted": True})
            return
        self.print_success(f"Volume {request.name} removed")


@click.command(name="networks")
@click.option("--host", "-H", help="Server id (default: local daemon)")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def networks(host, verbose, json_output):
    """List networks"""
    NetworksCommand(host=host, verbose=verbose, json_output=json_output).run()


@click.command(name="network:create")
@click.argument("name")
@click.option("--host", "-H", help="Server id (default: local daemon)")
@click.option("--driver", default="bridge", help="Network driver (default: bridge)")
@click.option("--subnet", help="Subnet in CIDR notation")
@click.option("--gateway", help="Gateway address")
@click.option("--ip-range", help="Allocation range in CIDR notation")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def network_create(name, host, driver, subnet, gateway, ip_range, verbose, json_output):
    """
    Create a network

    \b
    Examples:
      dockhand network:create backend
      dockhand network:create mesh --driver overlay --subnet 10.20.0.0/16
    """
    cmd = NetworksCommand(
        "create",
        name=name,
        host=host,
        driver=driver,
        subnet=subnet,
        gateway=gateway,
        ip_range=ip_range,
        verbose=verbose,
        json_output=json_output,
    )
    cmd.run()


@click.command(name="network:rm")
@click.argument("name")
@click.option("--host", "-H", help="Server id (default: local daemon)")
@click.option("--force", "-f", is_flag=True, help="Force removal")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def network_rm(name, host, force, verbose, json_output):
    """Remove a network"""
    cmd = NetworksCommand(
        "rm", name=name, host=host, force=force, verbose=verbose, json_output=json_output
    )
    cmd.run()


@click.command(name="network:containers")
@click.argument("name")
@click.option("--host", "-H", help="Server id (default: local daemon)")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def network_containers(name, host, verbose, json_output):
    """List containers attached to a network"""
    cmd = NetworksCommand(
        "containers", name=name, host=host, verbose=verbose, json_output=json_output
    )
    cmd.run()


@click.command(name="volumes")
@click.option("--host", "-H", help="Server id (default: local daemon)")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def volumes(host, verbose, json_output):
    """List volumes"""
    VolumesCommand(host=host, verbose=verbose, json_output=json_output).run()


@click.command(name="volume:create")
@click.argument("name")
@click.option("--host", "-H", help="Server id (default: local daemon)")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def volume_create(name, host, verbose, json_output):
    """Create a volume"""
    cmd = VolumesCommand(
        "create", name=name, host=host, verbose=verbose, json_output=json_output
    )
    cmd.run()


@click.command(name="volume:rm")
@click.argument("name")
@click.option("--host", "-H", help="Server id (default: local daemon)")
@click.option("--force", "-f", is_flag=True, help="Force removal")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def volume_rm(name, host, force, verbose, json_output):
    """Remove a volume"""
    cmd = VolumesCommand(
        "rm", name=name, host=host, force=force, verbose=verbose, json_output=json_output
    )
    cmd.run()


@click.command(name="volume:containers")
@click.argument("name")
@click.option("--host", "-H", help="Server id (default: local daemon)")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def volume_containers(name, host, verbose, json_output):
    """List containers mounting a volume"""
    cmd = VolumesCommand(
        "containers", name=name, host=host, verbose=verbose, json_output=json_output
    )
    cmd.run()
