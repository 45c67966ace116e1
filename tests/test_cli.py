"""
Tests for the command line interface
"""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from dockhand import __version__
from dockhand.config import get_settings
from dockhand.main import cli


@pytest.fixture
def runner(monkeypatch, tmp_path):
    monkeypatch.setenv("DOCKHAND_DB_URL", "sqlite://")
    monkeypatch.setenv("DOCKHAND_BASE_DIR", str(tmp_path / "data"))
    monkeypatch.delenv("DOCKHAND_LOG_LEVEL", raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield CliRunner()
    get_settings.cache_clear()


class TestCli:
    """Test command wiring and error reporting"""

    def test_version(self, runner):
        """Test --version"""
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_commands_registered(self, runner):
        """Test the group lists the namespaced commands"""
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for name in ("deploy", "network:create", "service:scale", "backups:schedule"):
            assert name in result.output

    def test_invalid_driver(self, runner):
        """Test validation errors exit with status 1"""
        result = runner.invoke(cli, ["network:create", "backend", "--driver", "weave"])
        assert result.exit_code == 1
        assert "Invalid network driver" in result.output

    def test_invalid_driver_json(self, runner):
        """Test errors are reported as JSON"""
        result = runner.invoke(
            cli, ["network:create", "backend", "--driver", "weave", "--json"]
        )
        assert result.exit_code == 1
        assert "Invalid network driver" in json.loads(result.output)["error"]

    def test_scale_rejects_zero(self, runner):
        """Test replica counts below one"""
        result = runner.invoke(cli, ["service:scale", "api", "0", "--json"])
        assert result.exit_code == 1
        assert "replicas" in json.loads(result.output)["error"]

    def test_invalid_log_level(self, runner, monkeypatch):
        """Test configuration errors are reported like any other"""
        monkeypatch.setenv("DOCKHAND_LOG_LEVEL", "chatty")
        result = runner.invoke(cli, ["networks", "--json"])
        assert result.exit_code == 1
        assert json.loads(result.output) == {
            "error": "Invalid log level 'CHATTY'",
            "details": {"context": "Valid levels: DEBUG, INFO, WARNING, ERROR, CRITICAL"},
        }

    def test_unknown_prune_target(self, runner):
        """Test click rejects unknown choices"""
        result = runner.invoke(cli, ["prune", "everything"])
        assert result.exit_code == 2

    def test_db_init(self, runner):
        """Test schema creation"""
        result = runner.invoke(cli, ["db:init", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output) == {"initialized": True}

    def test_inspect_missing_container(self, runner):
        """Test a missing container is reported as an error"""
        with patch(
            "dockhand.services.docker_service.DockerService.inspect_container",
            return_value=None,
        ):
            result = runner.invoke(cli, ["container:inspect", "abc123", "--json"])
        assert result.exit_code == 1
        assert json.loads(result.output) == {"error": "Container not found: abc123"}
