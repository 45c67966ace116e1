"""
Dockhand Exception Hierarchy

Clean exception hierarchy for consistent error handling across the
control plane, the pipelines and the CLI.
"""

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from dockhand.models.results import CommandResult


class DockhandError(Exception):
    """Base exception for all Dockhand errors."""

    def __init__(self, message: str, context: Optional[str] = None):
        self.message = message
        self.context = context
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format error message with optional context."""
        if self.context:
            return f"{self.message}\nContext: {self.context}"
        return self.message


class ConfigurationError(DockhandError):
    """Raised when configuration is invalid or missing."""

    pass


class ValidationError(DockhandError):
    """Raised when user-supplied input fails validation."""

    pass


class NotFoundError(DockhandError):
    """Raised when a persisted entity does not exist."""

    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found: {identifier}")


class StateError(DockhandError):
    """Raised when a deployment status transition is not allowed."""

    pass


class ExecutionError(DockhandError):
    """
    Raised when the transport could not run a command.

    Covers process spawn failures locally and connection/auth failures over
    SSH. A command that ran and exited non-zero is a CommandFailure instead.
    """

    def __init__(self, message: str, host: Optional[str] = None, command: str = ""):
        self.host = host
        self.command = command
        target = f"host {host}" if host else "local daemon"
        super().__init__(message, context=f"Target: {target}")


class RunCancelled(ExecutionError):
    """Raised when a cancellation token stops a running command."""

    pass


class CommandFailure(DockhandError):
    """Raised when a command ran but exited with a non-zero status."""

    def __init__(self, result: "CommandResult", host: Optional[str] = None):
        self.result = result
        self.host = host
        detail = result.stderr.strip() or result.stdout.strip() or "no output"
        super().__init__(
            f"Command exited with status {result.exit_code}: {detail}",
        )


class ResourceOperationError(DockhandError):
    """Raised when a control-plane operation on a Docker resource fails."""

    def __init__(self, kind: str, operation: str, cause: Exception):
        self.kind = kind
        self.operation = operation
        self.cause = cause
        super().__init__(f"Failed to {operation} {kind}: {_cause_message(cause)}")


class PipelineStageError(DockhandError):
    """Raised when a deployment or backup stage fails."""

    def __init__(self, stage: str, cause: Exception):
        self.stage = stage
        self.cause = cause
        super().__init__(_cause_message(cause), context=f"Stage: {stage}")


def _cause_message(cause: Exception) -> str:
    if isinstance(cause, DockhandError):
        return cause.message
    return str(cause) or type(cause).__name__
