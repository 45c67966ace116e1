"""
Tests for command rendering, validation and CLI table parsing
"""

import pytest

from dockhand.core.shell import echo_to_log, fragment, render, strict_script, to_log
from dockhand.core.table_parser import (
    CONTAINER_SCHEMA,
    HISTORY_SCHEMA,
    parse_containers,
    parse_history,
    parse_images,
    parse_networks,
    parse_ports,
    parse_stack_services,
    parse_stacks,
    parse_volumes,
)
from dockhand.core.validation import (
    validate_cidr,
    validate_driver,
    validate_identifier,
    validate_image,
    validate_name,
    validate_replicas,
)
from dockhand.exceptions import ValidationError
from dockhand.models import (
    HostInput,
    NetworkCreateInput,
    PruneInput,
    ServiceScaleInput,
    parse_input,
)
from dockhand.models.resources import PortMapping

CONTAINER_LINE = (
    "CONTAINER ID : 3f2a9c1b7d4e | Name: shop-web.1.xyz | Image: shop-web:latest | "
    "Ports: 0.0.0.0:8080->80/tcp, :::8080->80/tcp | State: running | Status: Up 2 hours"
)


class TestTableSchema:
    """Test the format template and line parser"""

    def test_container_format_string(self):
        """Test the template handed to docker ps"""
        assert CONTAINER_SCHEMA.format_string == (
            "CONTAINER ID : {{.ID}} | Name: {{.Names}} | Image: {{.Image}} | "
            "Ports: {{.Ports}} | State: {{.State}} | Status: {{.Status}}"
        )

    def test_history_format_string_has_no_labels(self):
        """Test the history template uses a bare pipe delimiter"""
        assert HISTORY_SCHEMA.format_string == "{{.CreatedSince}}|{{.Size}}|{{.CreatedBy}}"

    def test_parse_full_container_line(self):
        """Test a complete docker ps line becomes a record"""
        containers = parse_containers(CONTAINER_LINE, host="web-1")

        assert len(containers) == 1
        container = containers[0]
        assert container.container_id == "3f2a9c1b7d4e"
        assert container.name == "shop-web.1.xyz"
        assert container.image == "shop-web:latest"
        assert container.ports == "0.0.0.0:8080->80/tcp, :::8080->80/tcp"
        assert container.state == "running"
        assert container.status == "Up 2 hours"
        assert container.source_host == "web-1"
        assert container.is_running

    def test_local_records_have_no_host(self):
        """Test records from the local daemon are not attributed to a host"""
        assert parse_containers(CONTAINER_LINE)[0].source_host is None

    def test_missing_fields_use_fallbacks(self):
        """Test a truncated line still parses"""
        container = parse_containers("CONTAINER ID : abc123 | Name: api")[0]

        assert container.container_id == "abc123"
        assert container.name == "api"
        assert container.image == "No image"
        assert container.ports == "No ports"
        assert container.state == "No state"
        assert container.status == "No status"

    def test_missing_middle_field_keeps_later_fields(self):
        """Test a column dropped from the middle of the line"""
        container = parse_containers(
            "CONTAINER ID : abc123 | Name: web-1 | Ports: 80/tcp | State: running | Status: Up 2 hours"
        )[0]

        assert container.name == "web-1"
        assert container.image == "No image"
        assert container.ports == "80/tcp"
        assert container.state == "running"
        assert container.status == "Up 2 hours"

    def test_reordered_fields(self):
        """Test fields are matched by label, not position"""
        networks = parse_networks("Name: backend | ID: n1 | Scope: swarm | Driver: overlay")
        assert (networks[0].network_id, networks[0].driver, networks[0].scope) == (
            "n1",
            "overlay",
            "swarm",
        )

    def test_empty_value_uses_fallback(self):
        """Test a labelled but empty field"""
        line = "CONTAINER ID : abc123 | Name:  | Image: nginx | Ports:  | State: exited | Status: Exited (0)"
        container = parse_containers(line)[0]

        assert container.name == "No container name"
        assert container.ports == "No ports"
        assert container.state == "exited"

    def test_mislabelled_field_uses_fallback(self):
        """Test a field whose label does not match"""
        line = "CONTAINER ID : abc123 | Nom: api | Image: nginx | Ports: | State: running | Status: Up"
        assert parse_containers(line)[0].name == "No container name"

    def test_blank_lines_are_skipped(self):
        """Test empty lines in the output"""
        output = f"\n{CONTAINER_LINE}\n\n{CONTAINER_LINE}\n"
        assert len(parse_containers(output)) == 2

    def test_platform_containers_are_hidden(self):
        """Test records named like the platform are dropped"""
        output = "\n".join(
            [
                CONTAINER_LINE,
                CONTAINER_LINE.replace("shop-web.1.xyz", "dockhand-traefik"),
            ]
        )
        names = [c.name for c in parse_containers(output)]
        assert names == ["shop-web.1.xyz"]

    def test_platform_images_and_volumes_are_hidden(self):
        """Test the reserved pattern applies to other listings too"""
        images = parse_images(
            "Repository: dockhand/dockhand | Tag: latest | Image ID: a1 | Size: 1GB | Created: 2 days ago\n"
            "Repository: nginx | Tag: 1.25 | Image ID: b2 | Size: 180MB | Created: 3 weeks ago"
        )
        volumes = parse_volumes("Name: dockhand-postgres | Driver: local\nName: data | Driver: local")

        assert [i.repository for i in images] == ["nginx"]
        assert images[0].reference == "nginx:1.25"
        assert [v.name for v in volumes] == ["data"]

    def test_stack_service_count_is_converted(self):
        """Test numeric fields and their fallback"""
        stacks = parse_stacks(
            "Name: shop | Services: 3 | Orchestrator: Swarm\n"
            "Name: blog | Services: many | Orchestrator: Swarm"
        )
        assert stacks[0].services == 3
        assert stacks[1].services == 0

    def test_stack_services_keep_platform_names(self):
        """Test stack services are not filtered"""
        services = parse_stack_services(
            "ID: s1 | Name: dockhand_proxy | Replicas: 1/1 | Image: traefik:v3", host="web-1"
        )
        assert services[0].name == "dockhand_proxy"
        assert services[0].replicas == "1/1"
        assert services[0].source_host == "web-1"

    def test_history_keeps_pipes_in_last_column(self):
        """Test the last field takes the rest of the line"""
        history = parse_history("2 weeks ago|12.3MB|/bin/sh -c echo a | tee b")
        assert history[0].created_since == "2 weeks ago"
        assert history[0].size == "12.3MB"
        assert history[0].created_by == "/bin/sh -c echo a | tee b"


class TestParsePorts:
    """Test the Ports column parser"""

    def test_published_port(self):
        """Test host->container mappings drop IPv6 duplicates"""
        ports = parse_ports("0.0.0.0:8080->80/tcp, :::8080->80/tcp")
        assert ports == [PortMapping("0.0.0.0:8080", "80", "tcp")]

    def test_exposed_port(self):
        """Test ports that are exposed but not published"""
        assert parse_ports("5432/tcp") == [PortMapping("5432", "5432", "tcp")]

    def test_several_ports(self):
        """Test a comma separated list"""
        ports = parse_ports("0.0.0.0:443->443/tcp, 53/udp")
        assert [p.protocol for p in ports] == ["tcp", "udp"]

    @pytest.mark.parametrize("text", ["", "No ports"])
    def test_nothing_published(self, text):
        """Test empty and fallback values"""
        assert parse_ports(text) == []


class TestShell:
    """Test command rendering"""

    def test_render_quotes_arguments(self):
        """Test arguments with spaces and metacharacters are quoted"""
        assert render(["echo", "hello world", "a;b"]) == "echo 'hello world' 'a;b'"

    def test_to_log_appends_both_streams(self):
        """Test log redirection"""
        assert to_log("make", "/var/log/x.log") == "make >> /var/log/x.log 2>&1"

    def test_echo_to_log(self):
        """Test progress lines"""
        assert echo_to_log("Cloning", "/l.log") == "echo Cloning >> /l.log 2>&1"

    def test_fragment_skips_empty_commands(self):
        """Test fragment joining"""
        assert fragment("a", "", "b") == "a; b; "

    def test_strict_script(self):
        """Test the abort-on-error prefix"""
        assert strict_script("a; ", "b; ") == "set -e; a; b; "


class TestValidation:
    """Test identifier validation"""

    @pytest.mark.parametrize("name", ["web", "shop-web.1", "my_volume", "A1"])
    def test_valid_names(self, name):
        """Test names docker accepts"""
        assert validate_name(name) == name

    @pytest.mark.parametrize("name", ["", "-web", "web;rm -rf /", "a b", "$(id)"])
    def test_invalid_names(self, name):
        """Test names that could break out of a command"""
        with pytest.raises(ValidationError):
            validate_name(name, "network")

    @pytest.mark.parametrize(
        "image",
        ["nginx", "nginx:1.25", "registry.example.com:5000/team/app:v1", "app@sha256:abc123"],
    )
    def test_valid_images(self, image):
        """Test image references"""
        assert validate_image(image) == image

    @pytest.mark.parametrize("image", ["", "nginx latest", "a//b", "`id`"])
    def test_invalid_images(self, image):
        """Test malformed image references"""
        with pytest.raises(ValidationError):
            validate_image(image)

    def test_identifier_accepts_hex_ids(self):
        """Test container ids"""
        assert validate_identifier("3f2a9c1b7d4e") == "3f2a9c1b7d4e"

    def test_invalid_driver_message(self):
        """Test the error lists every valid driver"""
        with pytest.raises(ValidationError) as exc_info:
            validate_driver("weave")
        assert exc_info.value.message == (
            'Invalid network driver "weave". '
            "Valid drivers are: bridge, host, none, overlay, ipvlan, macvlan"
        )

    def test_cidr(self):
        """Test subnet validation"""
        assert validate_cidr(None, "subnet") is None
        assert validate_cidr("10.0.0.0/24", "subnet") == "10.0.0.0/24"
        with pytest.raises(ValidationError):
            validate_cidr("10.0.0.0/99", "subnet")

    @pytest.mark.parametrize("replicas", [0, -1, True, "2"])
    def test_invalid_replicas(self, replicas):
        """Test replica counts must be positive integers"""
        with pytest.raises(ValidationError):
            validate_replicas(replicas)


class TestInputs:
    """Test validated input models"""

    def test_blank_host_means_local(self):
        """Test an empty host targets the local daemon"""
        assert parse_input(HostInput, host="").host is None
        assert parse_input(HostInput, host="web-1").host == "web-1"

    def test_field_errors_are_reported(self):
        """Test pydantic errors become a ValidationError"""
        with pytest.raises(ValidationError) as exc_info:
            parse_input(NetworkCreateInput, name="backend", driver="weave")
        assert exc_info.value.message.startswith('driver: Invalid network driver "weave"')

    def test_network_defaults(self):
        """Test optional network fields"""
        request = parse_input(NetworkCreateInput, name="backend")
        assert request.driver == "bridge"
        assert request.subnet is None

    def test_scale_requires_positive_replicas(self):
        """Test replica bound"""
        with pytest.raises(ValidationError) as exc_info:
            parse_input(ServiceScaleInput, service="api", replicas=0)
        assert "replicas" in exc_info.value.message

    def test_prune_target(self):
        """Test unknown prune targets are rejected"""
        assert parse_input(PruneInput).target == "system"
        with pytest.raises(ValidationError):
            parse_input(PruneInput, target="everything")
