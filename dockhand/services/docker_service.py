"""
Docker Control Plane

Resource operations for containers, images, networks, volumes and swarm
stacks, on the local daemon or a registered server.

Read operations never raise on transport or command failures: they log and
return an empty list (or None for single records) so callers stay usable
while a host is unreachable. Mutating operations raise
ResourceOperationError. Invalid names raise ValidationError before any
command runs.
"""

import json
import logging
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from dockhand.core.shell import render
from dockhand.core.table_parser import (
    CONTAINER_SCHEMA,
    CONTAINER_STATE_SCHEMA,
    CONTAINER_VOLUME_SCHEMA,
    CONTAINER_IMAGE_SCHEMA,
    NETWORK_SCHEMA,
    VOLUME_SCHEMA,
    IMAGE_SCHEMA,
    STACK_SCHEMA,
    STACK_SERVICE_SCHEMA,
    HISTORY_SCHEMA,
    parse_containers,
    parse_networks,
    parse_volumes,
    parse_images,
    parse_stacks,
    parse_stack_services,
    parse_history,
    parse_records,
)
from dockhand.core.validation import (
    validate_address,
    validate_cidr,
    validate_driver,
    validate_identifier,
    validate_image,
    validate_name,
    validate_replicas,
)
from dockhand.exceptions import CommandFailure, DockhandError, ResourceOperationError
from dockhand.models.resources import (
    ContainerRecord,
    ImageRecord,
    NetworkRecord,
    VolumeRecord,
    StackRecord,
    StackServiceRecord,
    ImageHistoryEntry,
    ImageUpdateResult,
)
from dockhand.services.execution import CancellationToken, ExecutionBackend

if TYPE_CHECKING:
    from dockhand.core.builders import ServiceSpec
    from dockhand.services.registry_service import RegistryService

logger = logging.getLogger(__name__)

PULL_UP_TO_DATE = "Status: Image is up to date"
PULL_DOWNLOADED = "Status: Downloaded newer image"

SWARM_SERVICE_LABEL = "com.docker.swarm.service.name"
COMPOSE_PROJECT_LABEL = "com.docker.compose.project"


class DockerService:
    """
    Docker control plane.

    Every operation builds one command, runs it through the execution
    backend and parses the output into typed records.
    """

    def __init__(
        self,
        backend: ExecutionBackend,
        registry: Optional["RegistryService"] = None,
    ):
        """
        Initialize docker service.

        Args:
            backend: Execution backend for local and remote hosts
            registry: Registry client for update checks (optional)
        """
        self.backend = backend
        self.registry = registry

    # ------------------------------------------------------------------
    # helpers

    def _query(self, host: Optional[str], args: List[str], what: str) -> Optional[str]:
        """Run a read-only command; None on any failure."""
        try:
            result = self.backend.run(host, render(args))
        except DockhandError as e:
            logger.warning("Could not %s on %s: %s", what, host or "local daemon", e.message)
            return None
        if result.is_failure:
            logger.warning(
                "Could not %s on %s: %s",
                what,
                host or "local daemon",
                result.stderr or f"exit status {result.exit_code}",
            )
            return None
        return result.stdout

    def _mutate(
        self,
        kind: str,
        operation: str,
        host: Optional[str],
        command: str,
        token: Optional[CancellationToken] = None,
    ) -> str:
        """Run a mutating command; raise ResourceOperationError on any failure."""
        try:
            result = self.backend.check(host, command, token)
        except DockhandError as e:
            raise ResourceOperationError(kind, operation, e)
        logger.info("%s %s on %s", operation.capitalize(), kind, host or "local daemon")
        return result.stdout.strip()

    @staticmethod
    def _force(args: List[str], force: bool) -> List[str]:
        return args + ["-f"] if force else args

    # ------------------------------------------------------------------
    # containers

    def list_containers(self, host: Optional[str] = None) -> List[ContainerRecord]:
        """List all containers, excluding the platform's own."""
        output = self._query(
            host,
            ["docker", "ps", "-a", "--format", CONTAINER_SCHEMA.format_string],
            "list containers",
        )
        if output is None:
            return []
        return parse_containers(output, host)

    def inspect_container(
        self, container_id: str, host: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """Get the full `docker inspect` document of a container."""
        validate_identifier(container_id)
        output = self._query(
            host,
            ["docker", "inspect", container_id, "--format={{json .}}"],
            f"inspect container {container_id}",
        )
        if not output:
            return None
        try:
            return json.loads(output)
        except ValueError:
            logger.warning("Unreadable inspect output for container %s", container_id)
            return None

    def restart_container(self, container_id: str, host: Optional[str] = None) -> str:
        """Restart a container."""
        validate_identifier(container_id)
        return self._mutate(
            "container",
            "restart",
            host,
            render(["docker", "container", "restart", container_id]),
        )

    def get_containers_by_app_name(
        self,
        app_name: str,
        app_type: Optional[str] = None,
        host: Optional[str] = None,
    ) -> List[ContainerRecord]:
        """
        Find containers belonging to an application.

        Args:
            app_name: Application name
            app_type: "docker-compose" matches the compose project label,
                anything else matches container names
            host: Target host
        """
        validate_name(app_name, "application")
        if app_type == "docker-compose":
            selector = f"label={COMPOSE_PROJECT_LABEL}={app_name}"
        else:
            selector = f"name={app_name}"
        output = self._query(
            host,
            [
                "docker", "ps", "-a",
                "--filter", selector,
                "--format", CONTAINER_STATE_SCHEMA.format_string,
            ],
            f"find containers of {app_name}",
        )
        if not output:
            return []
        return parse_records(output, CONTAINER_STATE_SCHEMA, ContainerRecord, host)

    def get_containers_by_app_label(
        self, app_name: str, host: Optional[str] = None
    ) -> List[ContainerRecord]:
        """Find running containers of a swarm service."""
        validate_name(app_name, "application")
        output = self._query(
            host,
            [
                "docker", "ps",
                "--filter", f"label={SWARM_SERVICE_LABEL}={app_name}",
                "--format", CONTAINER_STATE_SCHEMA.format_string,
            ],
            f"find containers of service {app_name}",
        )
        if not output:
            return []
        return parse_records(output, CONTAINER_STATE_SCHEMA, ContainerRecord, host)

    def find_service_container(
        self, app_name: str, host: Optional[str] = None
    ) -> Optional[ContainerRecord]:
        """Get the first running container of a swarm service."""
        validate_name(app_name, "service")
        output = self._query(
            host,
            [
                "docker", "ps",
                "--filter", f"label={SWARM_SERVICE_LABEL}={app_name}",
                "--filter", "status=running",
                "--format", CONTAINER_STATE_SCHEMA.format_string,
            ],
            f"find container of service {app_name}",
        )
        if not output:
            return None
        records = parse_records(output, CONTAINER_STATE_SCHEMA, ContainerRecord, host)
        return records[0] if records else None

    def get_containers_by_network(
        self, network: str, host: Optional[str] = None
    ) -> List[ContainerRecord]:
        """List containers attached to a network."""
        validate_name(network, "network")
        output = self._query(
            host,
            ["docker", "network", "inspect", network, "--format", "{{json .Containers}}"],
            f"inspect network {network}",
        )
        if not output:
            return []
        try:
            containers = json.loads(output) or {}
        except ValueError:
            logger.warning("Unreadable container list for network %s", network)
            return []
        return [
            ContainerRecord(
                container_id=key,
                name=(value or {}).get("Name", "No container name"),
                source_host=host,
            )
            for key, value in containers.items()
        ]

    def get_containers_by_volume(
        self, volume: str, host: Optional[str] = None
    ) -> List[ContainerRecord]:
        """List containers mounting a volume."""
        validate_name(volume, "volume")
        output = self._query(
            host,
            [
                "docker", "ps", "-a",
                "--filter", f"volume={volume}",
                "--format", CONTAINER_VOLUME_SCHEMA.format_string,
            ],
            f"find containers using volume {volume}",
        )
        if not output:
            return []
        return parse_records(output, CONTAINER_VOLUME_SCHEMA, ContainerRecord, host)

    def get_containers_by_image(
        self, image: str, host: Optional[str] = None
    ) -> List[ContainerRecord]:
        """List containers created from an image."""
        validate_image(image)
        output = self._query(
            host,
            [
                "docker", "ps", "-a",
                "--filter", f"ancestor={image}",
                "--format", CONTAINER_IMAGE_SCHEMA.format_string,
            ],
            f"find containers using image {image}",
        )
        if not output:
            return []
        return parse_records(output, CONTAINER_IMAGE_SCHEMA, ContainerRecord, host)

    # ------------------------------------------------------------------
    # networks

    def list_networks(self, host: Optional[str] = None) -> List[NetworkRecord]:
        """List networks, excluding the platform's own."""
        output = self._query(
            host,
            ["docker", "network", "ls", "--format", NETWORK_SCHEMA.format_string],
            "list networks",
        )
        if output is None:
            return []
        return parse_networks(output, host)

    def create_network(
        self,
        name: str,
        driver: str = "bridge",
        subnet: Optional[str] = None,
        gateway: Optional[str] = None,
        ip_range: Optional[str] = None,
        host: Optional[str] = None,
    ) -> str:
        """
        Create a network.

        Returns:
            Id of the new network

        Raises:
            ValidationError: If the driver or an address is invalid
            ResourceOperationError: If docker refused to create it
        """
        validate_name(name, "network")
        validate_driver(driver)
        validate_cidr(subnet, "subnet")
        validate_address(gateway, "gateway")
        validate_cidr(ip_range, "IP range")

        args = ["docker", "network", "create", "--driver", driver, name]
        if subnet:
            args += ["--subnet", subnet]
        if gateway:
            args += ["--gateway", gateway]
        if ip_range:
            args += ["--ip-range", ip_range]
        return self._mutate("network", "create", host, render(args))

    def delete_network(
        self, name: str, force: bool = False, host: Optional[str] = None
    ) -> str:
        """Remove a network."""
        validate_name(name, "network")
        args = self._force(["docker", "network", "rm", name], force)
        return self._mutate("network", "delete", host, render(args))

    # ------------------------------------------------------------------
    # volumes

    def list_volumes(self, host: Optional[str] = None) -> List[VolumeRecord]:
        """List volumes, excluding the platform's own."""
        output = self._query(
            host,
            ["docker", "volume", "ls", "--format", VOLUME_SCHEMA.format_string],
            "list volumes",
        )
        if output is None:
            return []
        return parse_volumes(output, host)

    def create_volume(self, name: str, host: Optional[str] = None) -> str:
        """Create a volume."""
        validate_name(name, "volume")
        return self._mutate(
            "volume", "create", host, render(["docker", "volume", "create", name])
        )

    def delete_volume(
        self, name: str, force: bool = False, host: Optional[str] = None
    ) -> str:
        """Remove a volume."""
        validate_name(name, "volume")
        args = self._force(["docker", "volume", "rm", name], force)
        return self._mutate("volume", "delete", host, render(args))

    # ------------------------------------------------------------------
    # images

    def list_images(
        self, host: Optional[str] = None, check_updates: bool = False
    ) -> List[ImageRecord]:
        """
        List images, excluding the platform's own.

        Args:
            host: Target host
            check_updates: Ask the registry whether each tagged image is outdated
        """
        output = self._query(
            host,
            ["docker", "images", "--format", IMAGE_SCHEMA.format_string],
            "list images",
        )
        if output is None:
            return []

        images = parse_images(output, host)
        if check_updates and self.registry is not None:
            for image in images:
                if image.is_dangling or image.repository == "No repository" or image.tag == "No tag":
                    continue
                image.update_available = self.registry.check_for_update(
                    image.repository, image.tag, host
                )
        return images

    def inspect_image(self, image: str, host: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Get the `docker image inspect` document of an image."""
        validate_image(image)
        output = self._query(
            host, ["docker", "image", "inspect", image], f"inspect image {image}"
        )
        if not output:
            return None
        try:
            documents = json.loads(output)
        except ValueError:
            logger.warning("Unreadable inspect output for image %s", image)
            return None
        return documents[0] if documents else None

    def get_image_history(
        self, image: str, host: Optional[str] = None
    ) -> List[ImageHistoryEntry]:
        """List the layers of an image."""
        validate_image(image)
        output = self._query(
            host,
            ["docker", "history", image, "--format", HISTORY_SCHEMA.format_string],
            f"read history of {image}",
        )
        if not output:
            return []
        return parse_history(output)

    def pull_image(
        self,
        image: str,
        host: Optional[str] = None,
        token: Optional[CancellationToken] = None,
    ) -> str:
        """
        Pull an image.

        An "Image is up to date" status is success even when docker reports
        it on stderr.
        """
        validate_image(image)
        try:
            result = self.backend.run(host, render(["docker", "pull", image]), token)
        except DockhandError as e:
            raise ResourceOperationError("image", "pull", e)
        if result.is_failure and PULL_UP_TO_DATE not in result.stderr:
            raise ResourceOperationError("image", "pull", CommandFailure(result, host))
        return result.stdout.strip()

    def delete_image(
        self, image: str, force: bool = False, host: Optional[str] = None
    ) -> str:
        """Remove an image."""
        validate_image(image)
        args = self._force(["docker", "rmi", image], force)
        return self._mutate("image", "delete", host, render(args))

    def update_image(self, image: str, host: Optional[str] = None) -> ImageUpdateResult:
        """
        Pull a newer image and restart the containers that use it.

        Containers are stopped before the pull and started again afterwards,
        also when the pull fails; the pull error is raised after that.
        """
        validate_image(image)
        output = self._query(
            host,
            ["docker", "ps", "-a", "--filter", f"ancestor={image}", "--format", "{{.ID}}"],
            f"find containers using image {image}",
        )
        container_ids = [line.strip() for line in (output or "").splitlines() if line.strip()]

        stopped = []
        try:
            for container_id in container_ids:
                self._mutate(
                    "container", "stop", host, render(["docker", "stop", container_id])
                )
                stopped.append(container_id)
            logger.info("Stopped %d containers using image %s", len(stopped), image)

            pulled = self.pull_image(image, host)
        finally:
            for container_id in stopped:
                try:
                    self._mutate(
                        "container", "start", host, render(["docker", "start", container_id])
                    )
                except ResourceOperationError as e:
                    logger.error("Failed to restart container %s: %s", container_id, e.message)

        logger.info("Restarted %d containers after updating image %s", len(stopped), image)
        return ImageUpdateResult(updated=PULL_DOWNLOADED in pulled, restarted=len(stopped))

    # ------------------------------------------------------------------
    # stacks and services

    def list_stacks(self, host: Optional[str] = None) -> List[StackRecord]:
        """List swarm stacks, excluding the platform's own."""
        output = self._query(
            host,
            ["docker", "stack", "ls", "--format", STACK_SCHEMA.format_string],
            "list stacks",
        )
        if output is None:
            return []
        return parse_stacks(output, host)

    def get_stack_services(
        self, stack: str, host: Optional[str] = None
    ) -> List[StackServiceRecord]:
        """List the services of a stack."""
        validate_name(stack, "stack")
        output = self._query(
            host,
            ["docker", "stack", "services", stack, "--format", STACK_SERVICE_SCHEMA.format_string],
            f"list services of stack {stack}",
        )
        if not output:
            return []
        return parse_stack_services(output, host)

    def scale_service(
        self, service: str, replicas: int, host: Optional[str] = None
    ) -> str:
        """Set the replica count of a swarm service."""
        validate_name(service, "service")
        validate_replicas(replicas)
        return self._mutate(
            "service",
            "scale",
            host,
            render(["docker", "service", "scale", f"{service}={replicas}"]),
        )

    def deploy_service(
        self,
        spec: "ServiceSpec",
        host: Optional[str] = None,
        token: Optional[CancellationToken] = None,
    ) -> str:
        """
        Create or update the swarm service described by spec.

        Runs as one command, so the existence check and the write happen in
        a single round-trip.
        """
        return self._mutate("service", "deploy", host, spec.render(), token)

    # ------------------------------------------------------------------
    # cleanup

    def prune_images(self, host: Optional[str] = None) -> str:
        """Remove all unused images."""
        return self._mutate(
            "images", "prune", host, "docker image prune --all --force"
        )

    def prune_volumes(self, host: Optional[str] = None) -> str:
        """Remove all unused volumes."""
        return self._mutate(
            "volumes", "prune", host, "docker volume prune --all --force"
        )

    def prune_containers(self, host: Optional[str] = None) -> str:
        """Remove all stopped containers."""
        return self._mutate(
            "containers", "prune", host, "docker container prune --force"
        )

    def prune_builder(self, host: Optional[str] = None) -> str:
        """Remove the build cache."""
        return self._mutate(
            "build cache", "prune", host, "docker builder prune --all --force"
        )

    def prune_system(self, host: Optional[str] = None) -> str:
        """Remove everything unused, volumes included."""
        return self._mutate(
            "system", "prune", host, "docker system prune --all --force --volumes"
        )
