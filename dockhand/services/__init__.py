"""
Dockhand Services Layer

Execution, control-plane, notification and scheduling services.
"""

from .execution import (
    CancellationToken,
    ExecutionBackend,
    LocalExecutionBackend,
    RemoteExecutionBackend,
    RoutingExecutionBackend,
)
from .host_service import HostService
from .docker_service import DockerService
from .registry_service import RegistryService
from .notification_service import NotificationService
from .run_service import RunService
from .scheduler_service import JobRegistry

__all__ = [
    "CancellationToken",
    "ExecutionBackend",
    "LocalExecutionBackend",
    "RemoteExecutionBackend",
    "RoutingExecutionBackend",
    "HostService",
    "DockerService",
    "RegistryService",
    "NotificationService",
    "RunService",
    "JobRegistry",
]
