"""
Dockhand Constants

Centralized constants for magic values, defaults, and configuration.
"""

# Default Paths
DEFAULT_BASE_DIR = "/etc/dockhand"
DEFAULT_REMOTE_BASE_DIR = "/etc/dockhand"
DEFAULT_DB_URL = "sqlite:///dockhand.db"
DEFAULT_SSH_CONTROL_DIR = "~/.ssh/dockhand-mux"

# Default SSH Configuration
DEFAULT_SSH_USER = "root"
DEFAULT_SSH_PORT = 22
SSH_CONNECTION_TIMEOUT = 10
SSH_CONTROL_PERSIST_SECONDS = 60

# ssh(1) exits with 255 when the connection itself fails
SSH_TRANSPORT_EXIT_CODE = 255

# Remote commands record their process group here so a cancel can kill it
REMOTE_PID_DIR = "/tmp"

# Docker Configuration
DEFAULT_DOCKER_NETWORK = "dockhand-network"
DEFAULT_REGISTRY_URL = "https://hub.docker.com/v2"
HTTP_TIMEOUT = 10

# Platform containers, networks, volumes, etc. carry this in their name and are
# hidden from every listing
PLATFORM_RESERVED_PATTERN = "dockhand"

# CLI table output
FIELD_DELIMITER = " | "

VALID_NETWORK_DRIVERS = ["bridge", "host", "none", "overlay", "ipvlan", "macvlan"]

# Deployment statuses that admit no further transition
TERMINAL_STATUSES = ("done", "error")

# Buildpack builders
DEFAULT_HEROKU_BUILDER = "heroku/builder:24"
DEFAULT_PAKETO_BUILDER = "paketobuildpacks/builder-jammy-full"

# Backup Configuration
BACKUP_FILE_SUFFIX = ".sql.gz"

# Deployment titles
DEFAULT_DEPLOY_TITLE = "Manual deployment"
DEFAULT_REBUILD_TITLE = "Rebuild deployment"

# Log Configuration
LOG_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_TIMESTAMP_FORMAT = "%Y-%m-%d-%H-%M-%S"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Sensitive Keywords (for masking in logs)
SENSITIVE_KEYWORDS = [
    "PASSWORD",
    "TOKEN",
    "SECRET",
    "KEY",
]
