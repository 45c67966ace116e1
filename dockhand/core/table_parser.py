"""
CLI table parsing.

Docker is asked to print one record per line as labelled fields joined by
a fixed delimiter, e.g.

    CONTAINER ID : abc123 | Name: web-1 | Image: nginx:latest | ...

A TableSchema describes both sides of that exchange: it renders the
`--format` template for the command and parses each output line back into
a dict. A missing, empty or mislabelled field never fails the parse; its
documented fallback is substituted instead.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

from dockhand.constants import FIELD_DELIMITER, PLATFORM_RESERVED_PATTERN
from dockhand.models.resources import (
    ContainerRecord,
    ImageRecord,
    NetworkRecord,
    VolumeRecord,
    StackRecord,
    StackServiceRecord,
    ImageHistoryEntry,
    PortMapping,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Field:
    """One labelled column of a CLI table."""

    name: str
    label: str
    template: str
    fallback: Any
    convert: Optional[Callable[[str], Any]] = None


class TableSchema:
    """Ordered field layout shared by a `--format` template and its parser."""

    def __init__(self, fields: Sequence[Field], delimiter: str = FIELD_DELIMITER):
        self.fields = list(fields)
        self.delimiter = delimiter

    @property
    def format_string(self) -> str:
        """Get the Go template passed to `docker ... --format`."""
        return self.delimiter.join(f"{f.label}{f.template}" for f in self.fields)

    def parse_line(self, line: str) -> Dict[str, Any]:
        """
        Parse one output line.

        Labelled fields are matched by label, so a missing column leaves the
        others in place. Unlabelled fields are matched by position and the
        last one keeps any delimiters left in the line.

        Args:
            line: A single line of CLI output

        Returns:
            Dict keyed by field name; absent or malformed fields hold their fallback
        """
        if any(not field.label.strip() for field in self.fields):
            parts = line.split(self.delimiter, len(self.fields) - 1)
            return {
                field.name: self._extract(field, parts[index] if index < len(parts) else None)
                for index, field in enumerate(self.fields)
            }

        parts = [part.strip() for part in line.split(self.delimiter)]
        used = set()
        values: Dict[str, Any] = {}
        for field in self.fields:
            raw = None
            label = field.label.strip()
            for index, part in enumerate(parts):
                if index not in used and part.startswith(label):
                    used.add(index)
                    raw = part
                    break
            if raw is None:
                logger.debug("Field %s missing from line: %r", field.name, line)
            values[field.name] = self._extract(field, raw)
        return values

    def parse(self, output: str) -> List[Dict[str, Any]]:
        """Parse every non-empty line of CLI output."""
        return [self.parse_line(line) for line in output.splitlines() if line.strip()]

    def _extract(self, field: Field, raw: Optional[str]) -> Any:
        if raw is None:
            return field.fallback

        text = raw.strip()
        label = field.label.strip()
        if label:
            if not text.startswith(label):
                logger.debug("Field %s has no '%s' label: %r", field.name, label, raw)
                return field.fallback
            text = text[len(label):].strip()

        if not text:
            return field.fallback

        if field.convert is None:
            return text
        try:
            return field.convert(text)
        except ValueError:
            logger.debug("Field %s could not be converted: %r", field.name, text)
            return field.fallback


CONTAINER_SCHEMA = TableSchema(
    [
        Field("container_id", "CONTAINER ID : ", "{{.ID}}", "No container id"),
        Field("name", "Name: ", "{{.Names}}", "No container name"),
        Field("image", "Image: ", "{{.Image}}", "No image"),
        Field("ports", "Ports: ", "{{.Ports}}", "No ports"),
        Field("state", "State: ", "{{.State}}", "No state"),
        Field("status", "Status: ", "{{.Status}}", "No status"),
    ]
)

# Short form used by app-name and app-label lookups
CONTAINER_STATE_SCHEMA = TableSchema(
    [
        Field("container_id", "CONTAINER ID : ", "{{.ID}}", "No container id"),
        Field("name", "Name: ", "{{.Names}}", "No container name"),
        Field("state", "State: ", "{{.State}}", "No state"),
    ]
)

CONTAINER_VOLUME_SCHEMA = TableSchema(
    [
        Field("container_id", "ID: ", "{{.ID}}", "No container id"),
        Field("name", "Name: ", "{{.Names}}", "No container name"),
    ]
)

CONTAINER_IMAGE_SCHEMA = TableSchema(
    [
        Field("container_id", "ID: ", "{{.ID}}", "No container id"),
        Field("name", "Name: ", "{{.Names}}", "No container name"),
        Field("status", "Status: ", "{{.Status}}", "No status"),
    ]
)

NETWORK_SCHEMA = TableSchema(
    [
        Field("network_id", "ID: ", "{{.ID}}", "No network id"),
        Field("name", "Name: ", "{{.Name}}", "No network name"),
        Field("driver", "Driver: ", "{{.Driver}}", "No driver"),
        Field("scope", "Scope: ", "{{.Scope}}", "No scope"),
    ]
)

VOLUME_SCHEMA = TableSchema(
    [
        Field("name", "Name: ", "{{.Name}}", "No volume name"),
        Field("driver", "Driver: ", "{{.Driver}}", "No driver"),
    ]
)

IMAGE_SCHEMA = TableSchema(
    [
        Field("repository", "Repository: ", "{{.Repository}}", "No repository"),
        Field("tag", "Tag: ", "{{.Tag}}", "No tag"),
        Field("image_id", "Image ID: ", "{{.ID}}", "No image id"),
        Field("size", "Size: ", "{{.Size}}", "No size"),
        Field("created", "Created: ", "{{.CreatedSince}}", "No created"),
    ]
)

STACK_SCHEMA = TableSchema(
    [
        Field("name", "Name: ", "{{.Name}}", "No stack name"),
        Field("services", "Services: ", "{{.Services}}", 0, convert=int),
        Field("orchestrator", "Orchestrator: ", "{{.Orchestrator}}", "No orchestrator"),
    ]
)

STACK_SERVICE_SCHEMA = TableSchema(
    [
        Field("service_id", "ID: ", "{{.ID}}", "No service id"),
        Field("name", "Name: ", "{{.Name}}", "No service name"),
        Field("replicas", "Replicas: ", "{{.Replicas}}", "No replicas"),
        Field("image", "Image: ", "{{.Image}}", "No image"),
    ]
)

HISTORY_SCHEMA = TableSchema(
    [
        Field("created_since", "", "{{.CreatedSince}}", ""),
        Field("size", "", "{{.Size}}", ""),
        Field("created_by", "", "{{.CreatedBy}}", ""),
    ],
    delimiter="|",
)


def is_reserved(name: str) -> bool:
    """Check if a resource belongs to the platform itself."""
    return PLATFORM_RESERVED_PATTERN in name


def parse_records(
    output: str,
    schema: TableSchema,
    factory: Callable[..., T],
    host: Optional[str] = None,
    exclude_reserved: bool = False,
    name_field: str = "name",
) -> List[T]:
    """
    Parse CLI output into typed records.

    Args:
        output: Raw CLI output
        schema: Field layout of each line
        factory: Record class, called with the parsed fields as keywords
        host: Host the output came from, stored on each record
        exclude_reserved: Drop platform-owned records
        name_field: Field checked against the reserved-name pattern

    Returns:
        One record per non-empty line
    """
    records = []
    for values in schema.parse(output):
        if exclude_reserved and is_reserved(str(values.get(name_field, ""))):
            continue
        if host is not None:
            values["source_host"] = host
        records.append(factory(**values))
    return records


def parse_containers(output: str, host: Optional[str] = None) -> List[ContainerRecord]:
    return parse_records(output, CONTAINER_SCHEMA, ContainerRecord, host, True)


def parse_networks(output: str, host: Optional[str] = None) -> List[NetworkRecord]:
    return parse_records(output, NETWORK_SCHEMA, NetworkRecord, host, True)


def parse_volumes(output: str, host: Optional[str] = None) -> List[VolumeRecord]:
    return parse_records(output, VOLUME_SCHEMA, VolumeRecord, host, True)


def parse_images(output: str, host: Optional[str] = None) -> List[ImageRecord]:
    return parse_records(
        output, IMAGE_SCHEMA, ImageRecord, host, True, name_field="repository"
    )


def parse_stacks(output: str, host: Optional[str] = None) -> List[StackRecord]:
    return parse_records(output, STACK_SCHEMA, StackRecord, host, True)


def parse_stack_services(
    output: str, host: Optional[str] = None
) -> List[StackServiceRecord]:
    return parse_records(output, STACK_SERVICE_SCHEMA, StackServiceRecord, host)


def parse_history(output: str) -> List[ImageHistoryEntry]:
    return parse_records(output, HISTORY_SCHEMA, ImageHistoryEntry)


def parse_ports(text: str) -> List[PortMapping]:
    """
    Parse the Ports column of `docker ps`.

    Handles `host:port->port/proto` and `port/proto` entries separated by
    ", ". IPv6 duplicates (":::") are dropped.

    Args:
        text: Ports column value

    Returns:
        List of port mappings, empty when nothing is published or exposed
    """
    if not text or text == CONTAINER_SCHEMA.fields[3].fallback:
        return []

    mappings = []
    for entry in text.split(", "):
        entry = entry.strip()
        if not entry or entry.startswith(":::"):
            continue

        parts = entry.split("->")
        if len(parts) == 2:
            external, target = parts
            internal, _, protocol = target.partition("/")
            mappings.append(PortMapping(external, internal, protocol))
        else:
            port, _, protocol = entry.partition("/")
            mappings.append(PortMapping(port, port, protocol))
    return mappings
