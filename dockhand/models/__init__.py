"""
Dockhand Domain Models

Clean dataclass-based models for type-safe data handling.
"""

from .results import CommandResult
from .ssh import SSHConfig, SSHConnection
from .resources import (
    ContainerRecord,
    ImageRecord,
    NetworkRecord,
    VolumeRecord,
    StackRecord,
    StackServiceRecord,
    ImageHistoryEntry,
    PortMapping,
    ImageUpdateResult,
)
from .deployment import (
    DeploymentStatus,
    Deployment,
    ApplicationDescriptor,
    BackupDestination,
    BackupJob,
)
from .inputs import (
    parse_input,
    HostInput,
    ApplicationRunInput,
    BackupRunInput,
    ContainerInput,
    ImageInput,
    NetworkInput,
    NetworkCreateInput,
    VolumeInput,
    StackInput,
    ServiceScaleInput,
    PruneInput,
)

__all__ = [
    # Results
    "CommandResult",
    # SSH
    "SSHConfig",
    "SSHConnection",
    # Resources
    "ContainerRecord",
    "ImageRecord",
    "NetworkRecord",
    "VolumeRecord",
    "StackRecord",
    "StackServiceRecord",
    "ImageHistoryEntry",
    "PortMapping",
    "ImageUpdateResult",
    # Deployment
    "DeploymentStatus",
    "Deployment",
    "ApplicationDescriptor",
    "BackupDestination",
    "BackupJob",
    # Inputs
    "parse_input",
    "HostInput",
    "ApplicationRunInput",
    "BackupRunInput",
    "ContainerInput",
    "ImageInput",
    "NetworkInput",
    "NetworkCreateInput",
    "VolumeInput",
    "StackInput",
    "ServiceScaleInput",
    "PruneInput",
]
