"""
Input validation for identifiers interpolated into shell commands.

Every external name (container, image, network, volume, stack, service)
passes through here before a command is built from it.
"""

import ipaddress
import re
from typing import Optional

from dockhand.constants import VALID_NETWORK_DRIVERS
from dockhand.exceptions import ValidationError

# Docker object names: containers, networks, volumes, stacks, services
NAME_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_.-]{0,254}$")

# Image references: [registry[:port]/]repo[:tag][@digest], or an image id
IMAGE_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_.:/@-]{0,254}$")

# Hex ids as printed by docker (short or full)
ID_PATTERN = re.compile(r"^[a-f0-9]{6,64}$")


def validate_name(value: str, kind: str = "resource") -> str:
    """
    Validate a Docker object name.

    Args:
        value: Name to validate
        kind: Resource kind, used in the error message

    Returns:
        The name unchanged

    Raises:
        ValidationError: If the name contains characters docker does not allow
    """
    if not value or not NAME_PATTERN.match(value):
        raise ValidationError(f"Invalid {kind} name: '{value}'")
    return value


def validate_image(value: str) -> str:
    """Validate an image reference or image id."""
    if not value or not IMAGE_PATTERN.match(value) or "//" in value:
        raise ValidationError(f"Invalid image reference: '{value}'")
    return value


def validate_identifier(value: str, kind: str = "container") -> str:
    """Validate a docker id or name."""
    if value and ID_PATTERN.match(value):
        return value
    return validate_name(value, kind)


def validate_driver(driver: str) -> str:
    """Validate a network driver."""
    if driver not in VALID_NETWORK_DRIVERS:
        raise ValidationError(
            f'Invalid network driver "{driver}". '
            f"Valid drivers are: {', '.join(VALID_NETWORK_DRIVERS)}"
        )
    return driver


def validate_cidr(value: Optional[str], field: str) -> Optional[str]:
    """Validate an optional subnet or IP range in CIDR notation."""
    if value is None:
        return None
    try:
        ipaddress.ip_network(value, strict=False)
    except ValueError:
        raise ValidationError(f"Invalid {field}: '{value}'")
    return value


def validate_address(value: Optional[str], field: str) -> Optional[str]:
    """Validate an optional IP address."""
    if value is None:
        return None
    try:
        ipaddress.ip_address(value)
    except ValueError:
        raise ValidationError(f"Invalid {field}: '{value}'")
    return value


def validate_replicas(replicas: int) -> int:
    """Validate a swarm replica count."""
    if isinstance(replicas, bool) or not isinstance(replicas, int) or replicas < 1:
        raise ValidationError(f"Replicas must be a positive integer, got {replicas!r}")
    return replicas
