"""Dockhand CLI - Cleanup and database commands"""

import click

from dockhand.base import BaseCommand, ControlCommand
from dockhand.config import get_settings
from dockhand.database import configure_engine, init_db
from dockhand.models import PruneInput, parse_input

PRUNE_OPERATIONS = {
    "images": "prune_images",
    "volumes": "prune_volumes",
    "containers": "prune_containers",
    "builder": "prune_builder",
    "system": "prune_system",
}


class PruneCommand(ControlCommand):
    """Remove unused Docker resources."""

    def __init__(
        self,
        target: str = "system",
        host: str = None,
        verbose: bool = False,
        json_output: bool = False,
    ):
        super().__init__(verbose=verbose, json_output=json_output)
        self.target = target
        self.host = host

    def execute(self) -> None:
        request = parse_input(PruneInput, target=self.target, host=self.host)
        prune = getattr(self.ensure_docker(), PRUNE_OPERATIONS[request.target])
        output = prune(request.host)

        if self.json_output:
            self.output_json({"target": request.target, "output": output})
            return
        self.print_success(f"Pruned {request.target} on {request.host or 'local daemon'}")
        if output:
            self.print_dim(output)


class InitDbCommand(BaseCommand):
    """Create the database tables."""

    def execute(self) -> None:
        settings = get_settings()
        configure_engine(settings.db_url)
        init_db()
        if self.json_output:
            self.output_json({"initialized": True})
            return
        self.print_success("Database initialized")


@click.command(name="prune")
@click.argument(
    "target",
    type=click.Choice(list(PRUNE_OPERATIONS)),
    default="system",
    required=False,
)
@click.option("--host", "-H", help="Server id (default: local daemon)")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def prune(target, host, verbose, json_output):
    """
    Remove unused Docker resources

    \b
    Examples:
      dockhand prune                  # Everything unused, volumes included
      dockhand prune images -H web-1  # Only unused images on web-1
    """
    PruneCommand(target, host=host, verbose=verbose, json_output=json_output).run()


@click.command(name="db:init")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def db_init(verbose, json_output):
    """Create the database tables"""
    InitDbCommand(verbose=verbose, json_output=json_output).run()
