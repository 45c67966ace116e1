"""
Docker Resource Models

Flat records rebuilt from live Docker CLI output on every query.
"""

from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any


@dataclass
class ContainerRecord:
    """A container as reported by `docker ps`."""

    container_id: str
    name: str
    state: str = ""
    image: str = ""
    ports: str = ""
    status: str = ""
    source_host: Optional[str] = None

    @property
    def is_running(self) -> bool:
        """Check if container is running."""
        return self.state == "running"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)


@dataclass
class ImageRecord:
    """An image as reported by `docker images`."""

    repository: str
    tag: str
    image_id: str
    size: str
    created: str
    update_available: bool = False
    source_host: Optional[str] = None

    @property
    def reference(self) -> str:
        """Get image reference (repository:tag)."""
        return f"{self.repository}:{self.tag}"

    @property
    def is_dangling(self) -> bool:
        """Check if image has no repository or tag."""
        return self.repository == "<none>" or self.tag == "<none>"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)


@dataclass
class NetworkRecord:
    """A network as reported by `docker network ls`."""

    network_id: str
    name: str
    driver: str
    scope: str
    source_host: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)


@dataclass
class VolumeRecord:
    """A volume as reported by `docker volume ls`."""

    name: str
    driver: str
    source_host: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)


@dataclass
class StackRecord:
    """A swarm stack as reported by `docker stack ls`."""

    name: str
    services: int
    orchestrator: str
    source_host: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)


@dataclass
class StackServiceRecord:
    """A service inside a stack as reported by `docker stack services`."""

    service_id: str
    name: str
    replicas: str
    image: str
    source_host: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)


@dataclass
class ImageHistoryEntry:
    """One layer from `docker history`."""

    created_since: str
    size: str
    created_by: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)


@dataclass
class PortMapping:
    """A single published or exposed port."""

    external: str
    internal: str
    protocol: str

    def __str__(self) -> str:
        suffix = f"/{self.protocol}" if self.protocol else ""
        if self.external == self.internal:
            return f"{self.internal}{suffix}"
        return f"{self.external}->{self.internal}{suffix}"


@dataclass
class ImageUpdateResult:
    """Outcome of pulling a newer image and restarting its containers."""

    updated: bool
    restarted: int

    @property
    def message(self) -> str:
        if self.updated:
            return f"Image updated successfully. Restarted {self.restarted} containers."
        return f"Image is already up to date. Restarted {self.restarted} containers."
