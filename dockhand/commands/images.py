"""Dockhand CLI - Image commands"""

import click

from dockhand.base import ControlCommand
from dockhand.models import HostInput, ImageInput, parse_input


class ImagesListCommand(ControlCommand):
    """List images, optionally asking the registry for newer versions."""

    def __init__(
        self,
        host: str = None,
        check_updates: bool = False,
        verbose: bool = False,
        json_output: bool = False,
    ):
        super().__init__(verbose=verbose, json_output=json_output)
        self.host = host
        self.check_updates = check_updates

    def execute(self) -> None:
        request = parse_input(HostInput, host=self.host)
        images = self.ensure_docker().list_images(request.host, self.check_updates)

        if self.json_output:
            self.output_json([image.to_dict() for image in images])
            return

        if not images:
            self.print_warning("No images found")
            return

        columns = ["Repository", "Tag", "ID", "Size", "Created"]
        if self.check_updates:
            columns.append("Update")
        rows = []
        for image in images:
            row = [image.repository, image.tag, image.image_id, image.size, image.created]
            if self.check_updates:
                row.append("available" if image.update_available else "")
            rows.append(row)
        self.print_table(f"Images on {request.host or 'local daemon'}", columns, rows)


class ImageCommand(ControlCommand):
    """
    Act on one image.

    Actions:
    - inspect / history / containers: read-only
    - pull / update / rm: change the host
    """

    def __init__(
        self,
        action: str,
        image: str,
        host: str = None,
        force: bool = False,
        verbose: bool = False,
        json_output: bool = False,
    ):
        super().__init__(verbose=verbose, json_output=json_output)
        self.action = action
        self.image = image
        self.host = host
        self.force = force

    def execute(self) -> None:
        request = parse_input(ImageInput, image=self.image, host=self.host, force=self.force)
        handler = getattr(self, f"_{self.action}")
        handler(request)

    def _inspect(self, request: ImageInput) -> None:
        document = self.ensure_docker().inspect_image(request.image, request.host)
        if document is None:
            self.exit_with_error(f"Image not found: {request.image}")
        if self.json_output:
            self.output_json(document)
        else:
            self.console.print_json(data=document)

    def _history(self, request: ImageInput) -> None:
        layers = self.ensure_docker().get_image_history(request.image, request.host)
        if self.json_output:
            self.output_json([layer.to_dict() for layer in layers])
            return
        self.print_table(
            f"History of {request.image}",
            ["Created", "Size", "Created by"],
            [[layer.created_since, layer.size, layer.created_by] for layer in layers],
        )

    def _containers(self, request: ImageInput) -> None:
        found = self.ensure_docker().get_containers_by_image(request.image, request.host)
        if self.json_output:
            self.output_json([c.to_dict() for c in found])
            return
        self.print_table(
            f"Containers using {request.image}",
            ["ID", "Name", "Status"],
            [[c.container_id, c.name, c.status] for c in found],
        )

    def _pull(self, request: ImageInput) -> None:
        output = self.ensure_docker().pull_image(request.image, request.host)
        if self.json_output:
            self.output_json({"image": request.image, "output": output})
            return
        self.print_success(f"Pulled {request.image}")
        if self.verbose and output:
            self.print_dim(output)

    def _update(self, request: ImageInput) -> None:
        result = self.ensure_docker().update_image(request.image, request.host)
        if self.json_output:
            self.output_json(
                {
                    "image": request.image,
                    "updated": result.updated,
                    "restarted": result.restarted,
                    "message": result.message,
                }
            )
            return
        self.print_success(result.message)

    def _rm(self, request: ImageInput) -> None:
        self.ensure_docker().delete_image(request.image, request.force, request.host)
        if self.json_output:
            self.output_json({"image": request.image, "deleted": True})
            return
        self.print_success(f"Removed {request.image}")


def _image_command(action: str, help_text: str, with_force: bool = False):
    """Build the click command for one image action."""

    def callback(image, host, verbose, json_output, force=False):
        cmd = ImageCommand(
            action,
            image,
            host=host,
            force=force,
            verbose=verbose,
            json_output=json_output,
        )
        cmd.run()

    callback.__doc__ = help_text
    command = click.option("--json", "json_output", is_flag=True, help="Output in JSON format")(callback)
    command = click.option("--verbose", "-v", is_flag=True, help="Show all command output")(command)
    if with_force:
        command = click.option("--force", "-f", is_flag=True, help="Force removal")(command)
    command = click.option("--host", "-H", help="Server id (default: local daemon)")(command)
    command = click.argument("image")(command)
    return click.command(name=f"image:{action}")(command)


@click.command(name="images")
@click.option("--host", "-H", help="Server id (default: local daemon)")
@click.option("--check-updates", is_flag=True, help="Check the registry for newer tags")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def images(host, check_updates, verbose, json_output):
    """
    List images

    \b
    Examples:
      dockhand images                        # Local daemon
      dockhand images -H web-1 --check-updates
    """
    cmd = ImagesListCommand(
        host=host, check_updates=check_updates, verbose=verbose, json_output=json_output
    )
    cmd.run()


image_inspect = _image_command("inspect", "Show the inspect document of an image")
image_history = _image_command("history", "List the layers of an image")
image_containers = _image_command("containers", "List containers created from an image")
image_pull = _image_command("pull", "Pull an image")
image_update = _image_command(
    "update", "Pull a newer image and restart the containers using it"
)
image_rm = _image_command("rm", "Remove an image", with_force=True)
