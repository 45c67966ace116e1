"""
Registry service for image update checks.

An update is reported only when the local content digest differs from the
upstream one. When either digest cannot be resolved the check falls back
to comparing tag names, which can miss re-pushed mutable tags such as
`latest`; callers treat the answer as best-effort.
"""

import json
import logging
from typing import Any, Dict, Optional

import requests

from dockhand.constants import DEFAULT_REGISTRY_URL, HTTP_TIMEOUT
from dockhand.core.shell import render
from dockhand.exceptions import DockhandError
from dockhand.services.execution import ExecutionBackend

logger = logging.getLogger(__name__)


def repository_path(image_name: str) -> str:
    """Get the Docker Hub repository path; official images live under library/."""
    if "/" not in image_name:
        return f"library/{image_name}"
    return image_name


def is_tag_response(data: Any) -> bool:
    """Check the shape of a Docker Hub tag listing."""
    if not isinstance(data, dict) or not isinstance(data.get("results"), list):
        return False
    for item in data["results"]:
        if not isinstance(item, dict) or not isinstance(item.get("name"), str):
            return False
        if "images" in item and not isinstance(item["images"], list):
            return False
    return True


def is_update_available(
    current_tag: str,
    candidate: Dict[str, Any],
    local_digest: Optional[str],
    architecture: Optional[str],
) -> bool:
    """
    Decide whether the candidate tag is newer than the local image.

    Args:
        current_tag: Tag of the local image
        candidate: Tag entry from the registry
        local_digest: Content digest of the local image, if resolved
        architecture: Architecture of the local image, if resolved

    Returns:
        True when digests differ, or when digests are unavailable and tag names differ
    """
    arch_digest = None
    for image in candidate.get("images") or []:
        if isinstance(image, dict) and image.get("architecture") == architecture:
            arch_digest = image.get("digest")
            break

    if local_digest and arch_digest:
        return local_digest not in (arch_digest, candidate.get("digest"))

    return candidate["name"] != current_tag


class RegistryService:
    """Compares local images against Docker Hub tag metadata."""

    def __init__(
        self,
        backend: ExecutionBackend,
        registry_url: str = DEFAULT_REGISTRY_URL,
        session: Optional[requests.Session] = None,
        timeout: int = HTTP_TIMEOUT,
    ):
        self.backend = backend
        self.registry_url = registry_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def fetch_latest_tag(self, image_name: str) -> Optional[Dict[str, Any]]:
        """
        Get the most recently updated tag whose name contains `latest`.

        Returns:
            Tag entry, or None if the registry could not be queried
        """
        url = f"{self.registry_url}/repositories/{repository_path(image_name)}/tags"
        try:
            response = self.session.get(
                url,
                params={"page_size": 100, "ordering": "last_updated"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning("Could not fetch tags for %s: %s", image_name, e)
            return None

        if not is_tag_response(data):
            logger.warning("Unexpected data format from registry for %s", image_name)
            return None

        for tag in data["results"]:
            if "latest" in tag["name"]:
                return tag

        logger.debug("No latest tag found for %s", image_name)
        return None

    def get_local_digest(
        self, image_name: str, tag: str, host: Optional[str] = None
    ) -> Optional[str]:
        """Get the repo digest (sha256:...) of a local image."""
        command = render(
            ["docker", "inspect", "--format={{index .RepoDigests 0}}", f"{image_name}:{tag}"]
        )
        try:
            result = self.backend.run(host, command)
        except DockhandError as e:
            logger.debug("Digest lookup failed for %s:%s: %s", image_name, tag, e)
            return None
        if result.is_failure:
            return None
        _, _, digest = result.stdout.strip().partition("@")
        return digest or None

    def get_local_architecture(
        self, image_name: str, tag: str, host: Optional[str] = None
    ) -> Optional[str]:
        """Get the CPU architecture a local image was built for."""
        command = render(["docker", "image", "inspect", f"{image_name}:{tag}"])
        try:
            result = self.backend.run(host, command)
        except DockhandError as e:
            logger.debug("Inspect failed for %s:%s: %s", image_name, tag, e)
            return None
        if result.is_failure:
            return None
        try:
            return json.loads(result.stdout)[0].get("Architecture")
        except (ValueError, IndexError, AttributeError):
            return None

    def check_for_update(
        self, image_name: str, current_tag: str, host: Optional[str] = None
    ) -> bool:
        """
        Check whether a newer image is available upstream.

        Never raises; any failure reads as "no update".
        """
        candidate = self.fetch_latest_tag(image_name)
        if candidate is None:
            return False

        local_digest = self.get_local_digest(image_name, current_tag, host)
        architecture = self.get_local_architecture(image_name, current_tag, host)
        return is_update_available(current_tag, candidate, local_digest, architecture)
