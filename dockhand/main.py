#!/usr/bin/env python3
"""Dockhand CLI - Main entry point"""

import logging
import sys

from rich.console import Console
from rich.logging import RichHandler

import rich_click as click

click.rich_click.USE_RICH_MARKUP = True
click.rich_click.USE_MARKDOWN = False
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.MAX_WIDTH = 100

click.rich_click.STYLE_COMMAND = "bold cyan"
click.rich_click.STYLE_OPTION = "bold magenta"
click.rich_click.STYLE_SWITCH = "bold green"
click.rich_click.STYLE_ARGUMENT = "bold yellow"
click.rich_click.STYLE_HEADER_TEXT = "bold cyan"
click.rich_click.STYLE_USAGE = "bold yellow"
click.rich_click.STYLE_USAGE_COMMAND = "bold cyan"
click.rich_click.STYLE_HELPTEXT_FIRST_LINE = "bold white"
click.rich_click.STYLE_HELPTEXT = ""
click.rich_click.STYLE_OPTION_DEFAULT = "dim cyan"
click.rich_click.STYLE_OPTIONS_PANEL_BORDER = "cyan"
click.rich_click.STYLE_COMMANDS_PANEL_BORDER = "cyan"
click.rich_click.ALIGN_ERRORS_PANEL = "left"
click.rich_click.ERRORS_EPILOGUE = ""

from dockhand import __version__
from dockhand.commands.backup import backups_run, backups_schedule
from dockhand.commands.containers import containers, container_inspect, container_restart
from dockhand.commands.deploy import deploy, rebuild, deployments
from dockhand.commands.images import (
    images,
    image_inspect,
    image_history,
    image_containers,
    image_pull,
    image_update,
    image_rm,
)
from dockhand.commands.networks import (
    networks,
    network_create,
    network_rm,
    network_containers,
    volumes,
    volume_create,
    volume_rm,
    volume_containers,
)
from dockhand.commands.stacks import stacks, stack_services, service_scale
from dockhand.commands.system import prune, db_init
from dockhand.constants import LOG_DATETIME_FORMAT

console = Console()


def configure_logging() -> None:
    """Route log records to stderr through rich."""
    logging.basicConfig(
        level=logging.WARNING,
        format="%(name)s: %(message)s",
        datefmt=LOG_DATETIME_FORMAT,
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@click.group()
@click.version_option(version=__version__)
def cli() -> None:
    """
    Dockhand - Deploy apps and manage Docker hosts, local or over SSH.

    \b
    Deployments:
      dockhand deploy 3              # Clone, build and run application 3
      dockhand rebuild 3             # Rebuild from the existing checkout
      dockhand deployments 3         # Deployment history

    \b
    Docker hosts (add -H <server> for a remote host):
      dockhand containers            # List containers
      dockhand images --check-updates
      dockhand network:create backend --driver overlay
      dockhand service:scale api 3
      dockhand prune images

    \b
    Backups:
      dockhand backups:run 4         # Back up now
      dockhand backups:schedule      # Run scheduled backups
    """
    configure_logging()


# Register deployment commands
cli.add_command(deploy)
cli.add_command(rebuild)
cli.add_command(deployments)
# Register container commands
cli.add_command(containers)
cli.add_command(container_inspect)
cli.add_command(container_restart)
# Register image commands
cli.add_command(images)
cli.add_command(image_inspect)
cli.add_command(image_history)
cli.add_command(image_containers)
cli.add_command(image_pull)
cli.add_command(image_update)
cli.add_command(image_rm)
# Register network and volume commands
cli.add_command(networks)
cli.add_command(network_create)
cli.add_command(network_rm)
cli.add_command(network_containers)
cli.add_command(volumes)
cli.add_command(volume_create)
cli.add_command(volume_rm)
cli.add_command(volume_containers)
# Register swarm commands
cli.add_command(stacks)
cli.add_command(stack_services)
cli.add_command(service_scale)
# Register maintenance commands
cli.add_command(prune)
cli.add_command(db_init)
# Register backup commands
cli.add_command(backups_run)
cli.add_command(backups_schedule)


def main():
    """Main entry point."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n\n[yellow]⚠️  Operation cancelled by user[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
