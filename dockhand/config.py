"""
Dockhand Configuration

Settings are read from the process environment, with a `.env` file as a
fallback source. Values set in the environment always win.
"""

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional, Dict

from dotenv import dotenv_values

from dockhand.constants import (
    DEFAULT_BASE_DIR,
    DEFAULT_REMOTE_BASE_DIR,
    DEFAULT_DB_URL,
    DEFAULT_SSH_CONTROL_DIR,
    DEFAULT_DOCKER_NETWORK,
    DEFAULT_REGISTRY_URL,
    LOG_FILE_TIMESTAMP_FORMAT,
    LOG_LEVELS,
)
from dockhand.exceptions import ConfigurationError


def find_env_file() -> Optional[Path]:
    """Smart .env file detection"""
    search_paths = [
        Path.cwd() / ".env",
        Path.home() / ".dockhand" / ".env",
    ]
    for path in search_paths:
        if path.exists():
            return path
    return None


@dataclass(frozen=True)
class Settings:
    """Process-wide settings."""

    db_url: str = DEFAULT_DB_URL
    base_dir: str = DEFAULT_BASE_DIR
    remote_base_dir: str = DEFAULT_REMOTE_BASE_DIR
    public_url: str = "http://localhost:3000"
    webhook_url: Optional[str] = None
    ssh_control_dir: str = DEFAULT_SSH_CONTROL_DIR
    docker_network: str = DEFAULT_DOCKER_NETWORK
    registry_url: str = DEFAULT_REGISTRY_URL
    log_level: str = "WARNING"

    def root_for(self, remote: bool) -> str:
        """Get the data root for the local daemon or a remote host."""
        return self.remote_base_dir if remote else self.base_dir

    def code_path(self, app_name: str, remote: bool = False) -> str:
        """Get the checkout directory of an application."""
        return f"{self.root_for(remote)}/applications/{app_name}/code"

    def logs_path(self, app_name: str, remote: bool = False) -> str:
        """Get the deployment log directory of an application."""
        return f"{self.root_for(remote)}/logs/{app_name}"

    def deployment_log_path(
        self, app_name: str, timestamp, remote: bool = False
    ) -> str:
        """
        Get a fresh log file path for one deployment run.

        Args:
            app_name: Application name
            timestamp: datetime the run started
            remote: Whether the run targets a remote host

        Returns:
            Absolute log file path
        """
        stamp = timestamp.strftime(LOG_FILE_TIMESTAMP_FORMAT)
        return f"{self.logs_path(app_name, remote)}/{app_name}-{stamp}.log"

    @classmethod
    def from_mapping(cls, values: Dict[str, Optional[str]]) -> "Settings":
        """Build settings from DOCKHAND_* variables."""

        def get(name: str, default):
            value = values.get(f"DOCKHAND_{name}")
            return value if value else default

        settings = cls(
            db_url=get("DB_URL", DEFAULT_DB_URL),
            base_dir=get("BASE_DIR", DEFAULT_BASE_DIR).rstrip("/"),
            remote_base_dir=get("REMOTE_BASE_DIR", DEFAULT_REMOTE_BASE_DIR).rstrip("/"),
            public_url=get("PUBLIC_URL", "http://localhost:3000").rstrip("/"),
            webhook_url=get("WEBHOOK_URL", None),
            ssh_control_dir=get("SSH_CONTROL_DIR", DEFAULT_SSH_CONTROL_DIR),
            docker_network=get("DOCKER_NETWORK", DEFAULT_DOCKER_NETWORK),
            registry_url=get("REGISTRY_URL", DEFAULT_REGISTRY_URL).rstrip("/"),
            log_level=get("LOG_LEVEL", "WARNING").upper(),
        )

        if not settings.base_dir or not settings.remote_base_dir:
            raise ConfigurationError("Base directories must not be empty")
        if settings.log_level not in LOG_LEVELS:
            raise ConfigurationError(
                f"Invalid log level '{settings.log_level}'",
                context=f"Valid levels: {', '.join(LOG_LEVELS)}",
            )
        return settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load settings once per process.

    Raises:
        ConfigurationError: If a value is invalid
    """
    values: Dict[str, Optional[str]] = {}
    env_file = find_env_file()
    if env_file:
        values.update(dotenv_values(env_file))
    values.update(os.environ)
    return Settings.from_mapping(values)
