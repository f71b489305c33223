"""
Integration tests for the CLI and its error handling.

The HTTP transport is replaced with an in-memory one, so `probe` runs its
real worker group and engine without touching the network.
"""

import os

import pytest
import yaml
from typer.testing import CliRunner

from tradewire.adapters.cli.main import app
from tradewire.domain.exceptions import AuthenticationError
from tradewire.infrastructure.config.config_loader import ConfigLoader
from tradewire.infrastructure.logging import TradewireLogger
from tradewire.infrastructure.transport import HttpResponse, Transport


class InMemoryTransport(Transport):
    """Stands in for RequestsTransport; fails when the path says so."""

    def __init__(self, identity, base_url, data_url=None, headers=None, timeout=30.0):
        super().__init__(identity)
        self.base_url = base_url

    def _send(self, request, request_id):
        if request.path == "/v2/unauthorized":
            raise AuthenticationError("HTTP 401", status_code=401)
        return HttpResponse(status_code=200, body=b"{}", request_id=request_id, worker_id=self.identity)


@pytest.fixture
def runner():
    """Create CLI runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    monkeypatch.setattr(ConfigLoader, "DEFAULT_CONFIG_PATHS", [tmp_path / "absent.yaml"])
    for key in list(os.environ):
        if key.startswith("TRADEWIRE_"):
            monkeypatch.delenv(key)
    monkeypatch.setattr("tradewire.infrastructure.di.container.RequestsTransport", InMemoryTransport)
    yield
    TradewireLogger._instance = None


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "tradewire.yaml"
    path.write_text(yaml.dump({
        "retry": {"max_attempts": 2, "base_delay": 0.001, "max_delay": 0.01},
        "transport": {"base_url": "https://paper-api.example.com"},
        "workers": {"count": 2},
        "logging": {"console": False},
    }))
    return path


class TestConfigCommand:
    """Test suite for `tradewire config`."""

    def test_init_creates_file(self, runner, tmp_path):
        """Test --init writes a loadable default configuration."""
        target = tmp_path / "out" / "config.yaml"

        result = runner.invoke(app, ["config", "--init", "--path", str(target)])

        assert result.exit_code == 0
        assert "Configuration file created" in result.stdout
        assert target.exists()
        assert ConfigLoader.load(str(target)).retry.max_attempts == 5

    def test_show(self, runner, config_file):
        """Test --show prints the effective configuration as YAML."""
        result = runner.invoke(app, ["config", "--show", "--path", str(config_file)])

        assert result.exit_code == 0
        assert "max_attempts: 2" in result.stdout
        assert "paper-api.example.com" in result.stdout

    def test_show_missing_file(self, runner, tmp_path):
        """Test a missing file shows a friendly error and no traceback."""
        missing = tmp_path / "missing.yaml"

        result = runner.invoke(app, ["config", "--show", "--path", str(missing)])

        assert result.exit_code == 1
        assert "File not found" in result.stdout
        assert "Traceback" not in result.stdout

    def test_info_lists_env_overrides(self, runner, monkeypatch):
        """Test the default view lists TRADEWIRE_ variables."""
        monkeypatch.setenv("TRADEWIRE_WORKERS__COUNT", "3")

        result = runner.invoke(app, ["config"])

        assert result.exit_code == 0
        assert "TRADEWIRE_WORKERS__COUNT" in result.stdout
        assert "No configuration files found" in result.stdout


class TestStatusCommand:
    """Test suite for `tradewire status`."""

    def test_status(self, runner, config_file):
        """Test that status reports engine settings and a closed breaker."""
        result = runner.invoke(app, ["status", "--config", str(config_file)])

        assert result.exit_code == 0
        assert "Max attempts: 2" in result.stdout
        assert "State: closed" in result.stdout
        assert "Tokens: 200.00 / 200" in result.stdout

    def test_status_invalid_config(self, runner, tmp_path):
        """Test that invalid values are reported, not raised."""
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.dump({"retry": {"max_attempts": 0}}))

        result = runner.invoke(app, ["status", "--config", str(path)])

        assert result.exit_code == 1
        assert "An error occurred: ValidationError" in result.stdout


class TestProbeCommand:
    """Test suite for `tradewire probe`."""

    def test_probe_success(self, runner, config_file):
        """Test that every worker completes its requests."""
        result = runner.invoke(app, [
            "probe", "/v2/clock", "--config", str(config_file), "-w", "3", "-n", "4",
        ])

        assert result.exit_code == 0
        assert "12 succeeded, 0 failed" in result.stdout
        assert "worker-3" in result.stdout

    def test_probe_failures_exit_nonzero(self, runner, config_file):
        """Test that failed requests are tabulated and the exit code is 1."""
        result = runner.invoke(app, [
            "probe", "/v2/unauthorized", "--config", str(config_file), "-n", "2",
        ])

        assert result.exit_code == 1
        assert "0 succeeded, 4 failed" in result.stdout
        assert "AuthenticationError" in result.stdout

    def test_probe_missing_config(self, runner, tmp_path):
        """Test that a missing config file is a friendly error."""
        result = runner.invoke(app, [
            "probe", "/v2/clock", "--config", str(tmp_path / "nope.yaml"),
        ])

        assert result.exit_code == 1
        assert "File not found" in result.stdout
        assert "Traceback" not in result.stdout
