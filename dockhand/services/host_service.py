"""Host service for resolving server identifiers to SSH connections."""

import logging
import threading
from pathlib import Path
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session

from dockhand.config import Settings, get_settings
from dockhand.constants import DEFAULT_SSH_PORT, DEFAULT_SSH_USER
from dockhand.database import Server, get_db_session
from dockhand.exceptions import NotFoundError
from dockhand.models.ssh import SSHConfig, SSHConnection

logger = logging.getLogger(__name__)


class HostService:
    """
    Resolves registered servers to SSH connection details.

    Lookups are cached per host identifier for the life of the service.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session_factory: Callable[[], Session] = get_db_session,
    ):
        self.settings = settings or get_settings()
        self.session_factory = session_factory
        self._connections: Dict[str, SSHConnection] = {}
        self._lock = threading.Lock()

    def get_connection(self, host: str) -> SSHConnection:
        """
        Get SSH connection details for a server.

        Args:
            host: Server identifier

        Returns:
            SSHConnection for the server

        Raises:
            NotFoundError: If no server is registered under that identifier
        """
        with self._lock:
            if host in self._connections:
                return self._connections[host]

        connection = self._load(host)

        with self._lock:
            self._connections[host] = connection
        return connection

    def forget(self, host: str) -> None:
        """Drop a cached connection, e.g. after the server was edited."""
        with self._lock:
            self._connections.pop(host, None)

    def _load(self, host: str) -> SSHConnection:
        db = self.session_factory()
        try:
            server = db.get(Server, host)
            if server is None:
                raise NotFoundError("Server", host)

            config = SSHConfig(
                user=server.username or DEFAULT_SSH_USER,
                key_path=server.ssh_key_path,
            )
            if config.key_path and not config.key_exists:
                logger.warning("SSH key %s for server %s does not exist", config.key_path, host)

            # ssh refuses to create the ControlPath directory itself
            Path(self.settings.ssh_control_dir).expanduser().mkdir(
                mode=0o700, parents=True, exist_ok=True
            )
            logger.debug("Resolved server %s to %s", host, server.ip_address)
            return SSHConnection(
                host=server.ip_address,
                config=config,
                port=server.port or DEFAULT_SSH_PORT,
                control_dir=self.settings.ssh_control_dir,
            )
        finally:
            db.close()
