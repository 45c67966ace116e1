"""
Build strategies and service materialization.

A build strategy turns the checked-out source of an application into a
local image tagged with the application name. ServiceSpec then describes
the swarm service that runs the image.
"""

import posixpath
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from dockhand.config import Settings
from dockhand.constants import DEFAULT_HEROKU_BUILDER, DEFAULT_PAKETO_BUILDER
from dockhand.core.shell import echo_to_log, fragment, render, strict_script, to_log
from dockhand.core.validation import validate_image, validate_name, validate_replicas
from dockhand.exceptions import ValidationError
from dockhand.models.deployment import ApplicationDescriptor
from dockhand.services.execution import CancellationToken, ExecutionBackend


@dataclass
class ServiceSpec:
    """Desired state of the swarm service running an application."""

    name: str
    image: str
    replicas: int = 1
    env: Dict[str, str] = field(default_factory=dict)
    ports: List[str] = field(default_factory=list)
    network: Optional[str] = None
    with_registry_auth: bool = False

    def __post_init__(self):
        validate_name(self.name, "service")
        validate_image(self.image)
        validate_replicas(self.replicas)
        if self.network:
            validate_name(self.network, "network")

    def create_args(self) -> List[str]:
        args = ["docker", "service", "create", "--name", self.name]
        args += ["--replicas", str(self.replicas)]
        for key, value in self.env.items():
            args += ["--env", f"{key}={value}"]
        for port in self.ports:
            args += ["--publish", port]
        if self.network:
            args += ["--network", self.network]
        if self.with_registry_auth:
            args.append("--with-registry-auth")
        args.append(self.image)
        return args

    def update_args(self) -> List[str]:
        args = ["docker", "service", "update", "--force", "--image", self.image]
        args += ["--replicas", str(self.replicas)]
        for key, value in self.env.items():
            args += ["--env-add", f"{key}={value}"]
        for port in self.ports:
            args += ["--publish-add", port]
        if self.with_registry_auth:
            args.append("--with-registry-auth")
        args.append(self.name)
        return args

    def render(self) -> str:
        """Render one command that updates the service if it exists, else creates it."""
        exists = render(["docker", "service", "inspect", self.name])
        return (
            f"if {exists} >/dev/null 2>&1; "
            f"then {render(self.update_args())}; "
            f"else {render(self.create_args())}; fi"
        )


def service_spec_for(app: ApplicationDescriptor, settings: Settings) -> ServiceSpec:
    """Build the service spec of an application."""
    if app.source_type == "docker":
        image = app.docker_image or ""
    else:
        image = app.app_name
    return ServiceSpec(
        name=app.app_name,
        image=image,
        replicas=app.replicas,
        env=dict(app.env),
        ports=list(app.ports),
        network=settings.docker_network,
        with_registry_auth=bool(app.registry_username),
    )


class BuildStrategy(ABC):
    """Base class for every build type."""

    build_type: str = ""

    def __init__(self, backend: ExecutionBackend, settings: Settings):
        self.backend = backend
        self.settings = settings

    def context_path(self, app: ApplicationDescriptor, remote: bool) -> str:
        """Get the build context inside the checkout."""
        code_path = self.settings.code_path(app.app_name, remote)
        build_path = (app.build_path or ".").strip("/") or "."
        if ".." in build_path.split("/"):
            raise ValidationError(f"Build path must stay inside the checkout: '{app.build_path}'")
        return posixpath.normpath(posixpath.join(code_path, build_path))

    @abstractmethod
    def builder_args(self, app: ApplicationDescriptor, context: str) -> List[str]:
        """Get the builder invocation for a build context."""

    def build_command(
        self, app: ApplicationDescriptor, log_path: str, remote: bool = True
    ) -> str:
        """
        Get the shell fragment that builds the application image.

        Args:
            app: Application being built
            log_path: Deployment log on the target host
            remote: Whether paths refer to the remote data root

        Returns:
            `;`-terminated fragment
        """
        context = self.context_path(app, remote)
        build = render(self.builder_args(app, context))
        failure = echo_to_log(f"[ERROR] {self.build_type} build of {app.app_name} failed", log_path)
        return fragment(
            echo_to_log(f"Building {app.app_name} with {self.build_type}", log_path),
            f"{to_log(build, log_path)} || {{ {failure}; exit 1; }}",
            echo_to_log(f"Built image {app.app_name}", log_path),
        )

    def build(
        self,
        app: ApplicationDescriptor,
        log_path: str,
        host: Optional[str] = None,
        token: Optional[CancellationToken] = None,
    ) -> None:
        """
        Build the application image on the target host.

        Raises:
            ExecutionError: If the command could not be run
            CommandFailure: If the build failed
        """
        command = self.build_command(app, log_path, remote=host is not None)
        self.backend.check(host, strict_script(command), token)

    @staticmethod
    def _env_args(app: ApplicationDescriptor, flag: str) -> List[str]:
        args = []
        for key, value in app.env.items():
            args += [flag, f"{key}={value}"]
        return args


class DockerfileBuild(BuildStrategy):
    build_type = "dockerfile"

    def builder_args(self, app, context):
        dockerfile = posixpath.join(context, app.dockerfile or "Dockerfile")
        args = ["docker", "build", "-t", app.app_name, "-f", dockerfile]
        args += self._env_args(app, "--build-arg")
        return args + [context]


class NixpacksBuild(BuildStrategy):
    build_type = "nixpacks"

    def builder_args(self, app, context):
        args = ["nixpacks", "build", context, "--name", app.app_name]
        return args + self._env_args(app, "--env")


class HerokuBuildpacksBuild(BuildStrategy):
    build_type = "heroku_buildpacks"
    builder = DEFAULT_HEROKU_BUILDER

    def builder_args(self, app, context):
        args = ["pack", "build", app.app_name, "--path", context, "--builder", self.builder]
        return args + self._env_args(app, "--env")


class PaketoBuildpacksBuild(HerokuBuildpacksBuild):
    build_type = "paketo_buildpacks"
    builder = DEFAULT_PAKETO_BUILDER


class BuildRegistry:
    """Registry of build strategies keyed by build type."""

    def __init__(self):
        self._strategies: Dict[str, BuildStrategy] = {}

    def register(self, strategy: BuildStrategy) -> None:
        """Register a build strategy."""
        self._strategies[strategy.build_type] = strategy

    def get(self, build_type: str) -> BuildStrategy:
        """
        Get the strategy for a build type.

        Raises:
            ValidationError: If the build type is not registered
        """
        if build_type not in self._strategies:
            supported = ", ".join(self.list_types())
            raise ValidationError(
                f"Unsupported build type: '{build_type}'. Supported types: {supported}"
            )
        return self._strategies[build_type]

    def list_types(self) -> List[str]:
        """List all registered build types."""
        return list(self._strategies.keys())


def default_builders(backend: ExecutionBackend, settings: Settings) -> BuildRegistry:
    """Build a registry with every built-in build type."""
    registry = BuildRegistry()
    for strategy_class in (
        DockerfileBuild,
        NixpacksBuild,
        HerokuBuildpacksBuild,
        PaketoBuildpacksBuild,
    ):
        registry.register(strategy_class(backend, settings))
    return registry
