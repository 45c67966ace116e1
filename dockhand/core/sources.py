"""
Source providers.

A source provider puts an application's source (or image) onto the target
host. Each provider can either run its step directly (`materialize`) or
hand back the equivalent shell fragment (`build_command`) for callers that
chain several steps into one remote script.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from dockhand.config import Settings
from dockhand.core.shell import echo_to_log, fragment, quote, render, strict_script, to_log
from dockhand.exceptions import ValidationError
from dockhand.models.deployment import ApplicationDescriptor
from dockhand.services.execution import CancellationToken, ExecutionBackend

logger = logging.getLogger(__name__)


class SourceProvider(ABC):
    """Base class for every source type."""

    source_type: str = ""
    # Whether acquisition checks out a repository
    clones: bool = False
    # Whether the acquired source still has to be built into an image
    needs_build: bool = True

    def __init__(self, backend: ExecutionBackend, settings: Settings):
        self.backend = backend
        self.settings = settings

    @abstractmethod
    def build_command(
        self, app: ApplicationDescriptor, log_path: str, remote: bool = True
    ) -> str:
        """
        Get the shell fragment that acquires the source.

        Args:
            app: Application being deployed
            log_path: Deployment log on the target host
            remote: Whether paths refer to the remote data root

        Returns:
            `;`-terminated fragment, empty when there is nothing to do
        """

    def materialize(
        self,
        app: ApplicationDescriptor,
        log_path: str,
        host: Optional[str] = None,
        token: Optional[CancellationToken] = None,
    ) -> None:
        """
        Acquire the source on the target host.

        Raises:
            ExecutionError: If the command could not be run
            CommandFailure: If acquisition failed
        """
        command = self.build_command(app, log_path, remote=host is not None)
        if not command:
            logger.debug("Nothing to acquire for %s", app.app_name)
            return
        self.backend.check(host, strict_script(command), token)


class GitSourceProvider(SourceProvider):
    """Clones a git repository into the application's code directory."""

    clones = True

    @abstractmethod
    def clone_url(self, app: ApplicationDescriptor) -> str:
        """Get the URL to clone from, credentials included."""

    def display_name(self, app: ApplicationDescriptor) -> str:
        """Get a credential-free name of the repository for logs."""
        return f"{app.owner}/{app.repository}"

    def branch(self, app: ApplicationDescriptor) -> Optional[str]:
        return app.branch

    def clone_env(self, app: ApplicationDescriptor) -> List[str]:
        """Get `NAME=value` assignments prefixed to `git clone`."""
        return []

    def build_command(self, app, log_path, remote=True):
        code_path = self.settings.code_path(app.app_name, remote)
        repo = self.display_name(app)

        args = ["git", "clone"]
        branch = self.branch(app)
        if branch:
            args += ["--branch", branch]
        args += ["--depth", "1", "--recurse-submodules", "--progress"]
        args += [self.clone_url(app), code_path]

        clone = " ".join(self.clone_env(app) + [render(args)])
        failure = echo_to_log(f"[ERROR] Failed to clone repository {repo}", log_path)
        return fragment(
            render(["rm", "-rf", code_path]),
            render(["mkdir", "-p", code_path]),
            echo_to_log(f"Cloning {repo} to {code_path}", log_path),
            f"{to_log(clone, log_path)} || {{ {failure}; exit 1; }}",
            echo_to_log(f"Cloned {repo} to {code_path}", log_path),
        )


class GithubSourceProvider(GitSourceProvider):
    source_type = "github"
    host_name = "github.com"
    token_user = "oauth2"

    def clone_url(self, app):
        if not app.owner or not app.repository:
            raise ValidationError(
                f"Application {app.app_name} has no {self.source_type} repository configured"
            )
        path = f"{self.host_name}/{app.owner}/{app.repository}.git"
        if app.git_token:
            return f"https://{self.token_user}:{app.git_token}@{path}"
        return f"https://{path}"


class GitlabSourceProvider(GithubSourceProvider):
    source_type = "gitlab"
    host_name = "gitlab.com"


class BitbucketSourceProvider(GithubSourceProvider):
    source_type = "bitbucket"
    host_name = "bitbucket.org"
    token_user = "x-token-auth"


class CustomGitSourceProvider(GitSourceProvider):
    """Clones any git URL, optionally with a deploy key."""

    source_type = "git"

    def clone_url(self, app):
        if not app.custom_git_url:
            raise ValidationError(f"Application {app.app_name} has no git URL configured")
        return app.custom_git_url

    def display_name(self, app):
        # Strip credentials embedded in https URLs
        url = app.custom_git_url or ""
        if "@" in url and "://" in url:
            scheme, _, rest = url.partition("://")
            return f"{scheme}://{rest.split('@', 1)[1]}"
        return url

    def branch(self, app):
        return app.custom_git_branch

    def clone_env(self, app):
        if not app.custom_git_ssh_key_path:
            return []
        ssh = render(
            ["ssh", "-i", app.custom_git_ssh_key_path, "-o", "StrictHostKeyChecking=no"]
        )
        return [f"GIT_SSH_COMMAND={quote(ssh)}"]


class DockerSourceProvider(SourceProvider):
    """
    Uses a prebuilt registry image.

    Acquisition is a pull (after an optional registry login) followed by a
    check that the tag now exists locally. Nothing is cloned or built.
    """

    source_type = "docker"
    needs_build = False

    def build_command(self, app, log_path, remote=True):
        if not app.docker_image:
            raise ValidationError(f"Application {app.app_name} has no docker image configured")
        image = app.docker_image

        commands = [echo_to_log(f"Pulling {image}", log_path)]
        if app.registry_username and app.registry_password:
            login = ["docker", "login"]
            if app.registry_url:
                login.append(app.registry_url)
            login += ["-u", app.registry_username, "--password-stdin"]
            commands.append(
                to_log(f"{render(['echo', app.registry_password])} | {render(login)}", log_path)
            )
        commands += [
            to_log(render(["docker", "pull", image]), log_path),
            to_log(render(["docker", "image", "inspect", "--format", "{{.Id}}", image]), log_path),
            echo_to_log(f"Pulled {image}", log_path),
        ]
        return fragment(*commands)


class DropSourceProvider(SourceProvider):
    """Source was uploaded as an archive and already sits in the code directory."""

    source_type = "drop"

    def build_command(self, app, log_path, remote=True):
        return ""


class SourceRegistry:
    """Registry of source providers keyed by source type."""

    def __init__(self):
        self._providers: Dict[str, SourceProvider] = {}

    def register(self, provider: SourceProvider) -> None:
        """Register a source provider."""
        self._providers[provider.source_type] = provider

    def get(self, source_type: str) -> SourceProvider:
        """
        Get the provider for a source type.

        Raises:
            ValidationError: If the source type is not registered
        """
        if source_type not in self._providers:
            supported = ", ".join(self.list_types())
            raise ValidationError(
                f"Unsupported source type: '{source_type}'. Supported types: {supported}"
            )
        return self._providers[source_type]

    def list_types(self) -> List[str]:
        """List all registered source types."""
        return list(self._providers.keys())


def default_sources(backend: ExecutionBackend, settings: Settings) -> SourceRegistry:
    """Build a registry with every built-in source type."""
    registry = SourceRegistry()
    for provider_class in (
        GithubSourceProvider,
        GitlabSourceProvider,
        BitbucketSourceProvider,
        CustomGitSourceProvider,
        DockerSourceProvider,
        DropSourceProvider,
    ):
        registry.register(provider_class(backend, settings))
    return registry
