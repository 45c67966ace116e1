"""
SSH Configuration Models

Dataclass models for reaching a registered remote host.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dockhand.constants import (
    DEFAULT_SSH_PORT,
    SSH_CONNECTION_TIMEOUT,
    SSH_CONTROL_PERSIST_SECONDS,
)


@dataclass(frozen=True)
class SSHConfig:
    """SSH credentials for connecting to a host."""

    user: str
    key_path: Optional[str] = None

    @property
    def key_path_expanded(self) -> Optional[Path]:
        """Get expanded key path (resolves ~)."""
        if self.key_path:
            return Path(self.key_path).expanduser()
        return None

    @property
    def key_exists(self) -> bool:
        """Check if private key file exists."""
        path = self.key_path_expanded
        return path is not None and path.exists()

    def __repr__(self) -> str:
        return f"SSHConfig(user={self.user}, key={self.key_path})"


@dataclass(frozen=True)
class SSHConnection:
    """SSH connection details for a specific host."""

    host: str
    config: SSHConfig
    port: int = DEFAULT_SSH_PORT
    control_dir: Optional[str] = None

    @property
    def connection_string(self) -> str:
        """Get SSH connection string (user@host)."""
        return f"{self.config.user}@{self.host}"

    @property
    def ssh_command_prefix(self) -> list[str]:
        """Get SSH command prefix for subprocess."""
        prefix = ["ssh"]
        key_path = self.config.key_path_expanded
        if key_path:
            prefix += ["-i", str(key_path)]
        prefix += [
            "-p",
            str(self.port),
            "-o",
            "StrictHostKeyChecking=no",
            "-o",
            "BatchMode=yes",
            "-o",
            "LogLevel=ERROR",
            "-o",
            f"ConnectTimeout={SSH_CONNECTION_TIMEOUT}",
        ]
        if self.control_dir:
            # Multiplex every call to the same host over one master connection
            control_path = Path(self.control_dir).expanduser() / "%r@%h:%p"
            prefix += [
                "-o",
                "ControlMaster=auto",
                "-o",
                f"ControlPath={control_path}",
                "-o",
                f"ControlPersist={SSH_CONTROL_PERSIST_SECONDS}",
            ]
        prefix.append(self.connection_string)
        return prefix

    def build_command(self, remote_command: str) -> list[str]:
        """Build full SSH command with remote command."""
        return self.ssh_command_prefix + [remote_command]

    def __repr__(self) -> str:
        return f"SSHConnection(host={self.host}, user={self.config.user})"
