"""Tests for configuration models and the configuration loader."""

import os

import pytest
import yaml
from pydantic import ValidationError

from tradewire.infrastructure.config.config_loader import ConfigLoader
from tradewire.infrastructure.config.config_models import (
    LoggingConfig,
    RetryConfigModel,
    TradewireConfig,
    TransportConfig,
)


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """Keep real config files and TRADEWIRE_ variables out of the tests."""
    monkeypatch.setattr(ConfigLoader, "DEFAULT_CONFIG_PATHS", [tmp_path / "absent.yaml"])
    for key in list(os.environ):
        if key.startswith("TRADEWIRE_"):
            monkeypatch.delenv(key)


class TestConfigModels:
    """Test suite for the pydantic configuration models."""

    def test_defaults(self):
        """Test that defaults match the provider quota and engine defaults."""
        config = TradewireConfig()

        assert config.retry.max_attempts == 5
        assert config.retry.base_delay == 0.1
        assert config.circuit_breaker.failure_threshold == 10
        assert config.circuit_breaker.success_threshold == 3
        assert config.rate_limit.requests == 200
        assert config.rate_limit.period == 60.0
        assert config.workers.count == 4
        assert config.logging.file is None

    def test_to_retry_config(self):
        """Test that every engine setting is carried into RetryConfig."""
        config = TradewireConfig(
            retry={"max_attempts": 3, "base_delay": 0.5, "max_delay": 8.0},
            circuit_breaker={"enabled": False, "failure_threshold": 4},
            rate_limit={"requests": 50, "period": 10.0, "max_wait": 2.0},
        )

        retry = config.to_retry_config()

        assert retry.max_attempts == 3
        assert retry.base_delay == 0.5
        assert retry.max_delay == 8.0
        assert retry.circuit_enabled is False
        assert retry.circuit_failure_threshold == 4
        assert retry.rate_limit_requests == 50
        assert retry.rate_limit_period == 10.0
        assert retry.rate_limit_max_wait == 2.0

    def test_max_delay_below_base_rejected(self):
        with pytest.raises(ValidationError):
            RetryConfigModel(base_delay=5.0, max_delay=1.0)

    def test_unknown_section_rejected(self):
        """Test that typos in section names are reported."""
        with pytest.raises(ValidationError):
            TradewireConfig(retries={"max_attempts": 3})

    def test_url_validation(self):
        """Test that URLs must be absolute and lose trailing slashes."""
        assert TransportConfig(base_url="https://api.example.com/").base_url == "https://api.example.com"

        with pytest.raises(ValidationError):
            TransportConfig(base_url="api.example.com")

    def test_logging_level_normalized(self):
        """Test that log levels are upper-cased and validated."""
        assert LoggingConfig(level="debug").level == "DEBUG"

        with pytest.raises(ValidationError):
            LoggingConfig(level="verbose")

    def test_to_yaml_lists_every_section(self):
        """Test that to_yaml produces a mapping of every section."""
        data = yaml.safe_load(TradewireConfig().to_yaml())

        assert set(data) == {"retry", "circuit_breaker", "rate_limit", "transport", "workers", "logging"}


class TestConfigLoader:
    """Test suite for ConfigLoader."""

    def test_load_defaults_without_files(self):
        """Test that loading with no sources yields the defaults."""
        assert ConfigLoader.load() == TradewireConfig()

    def test_load_user_file(self, tmp_path):
        """Test that a user file overrides defaults section by section."""
        path = tmp_path / "tradewire.yaml"
        path.write_text(yaml.dump({
            "retry": {"max_attempts": 2},
            "transport": {"base_url": "https://api.example.com"},
        }))

        config = ConfigLoader.load(str(path))

        assert config.retry.max_attempts == 2
        assert config.retry.base_delay == 0.1
        assert config.transport.base_url == "https://api.example.com"

    def test_missing_user_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ConfigLoader.load(str(tmp_path / "nope.yaml"))

    def test_invalid_yaml_raises(self, tmp_path):
        """Test that malformed YAML is reported as ValueError."""
        path = tmp_path / "broken.yaml"
        path.write_text("retry: [unclosed")

        with pytest.raises(ValueError, match="Invalid YAML"):
            ConfigLoader.load(str(path))

    def test_non_mapping_yaml_raises(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")

        with pytest.raises(ValueError, match="mapping"):
            ConfigLoader.load(str(path))

    def test_empty_file_is_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert ConfigLoader.load(str(path)) == TradewireConfig()

    def test_global_then_project_precedence(self, monkeypatch, tmp_path):
        """Test that later default paths override earlier ones."""
        global_path = tmp_path / "global.yaml"
        project_path = tmp_path / "project.yaml"
        global_path.write_text(yaml.dump({"workers": {"count": 2}, "retry": {"max_attempts": 9}}))
        project_path.write_text(yaml.dump({"workers": {"count": 6}}))
        monkeypatch.setattr(ConfigLoader, "DEFAULT_CONFIG_PATHS", [global_path, project_path])

        config = ConfigLoader.load()

        assert config.workers.count == 6
        assert config.retry.max_attempts == 9

    def test_env_overrides_file(self, monkeypatch, tmp_path):
        """Test TRADEWIRE_<SECTION>__<KEY> overrides with type conversion."""
        path = tmp_path / "tradewire.yaml"
        path.write_text(yaml.dump({"retry": {"max_attempts": 2}}))
        monkeypatch.setenv("TRADEWIRE_RETRY__MAX_ATTEMPTS", "7")
        monkeypatch.setenv("TRADEWIRE_RETRY__BASE_DELAY", "0.25")
        monkeypatch.setenv("TRADEWIRE_CIRCUIT_BREAKER__ENABLED", "false")
        monkeypatch.setenv("TRADEWIRE_TRANSPORT__BASE_URL", "https://live.example.com")

        config = ConfigLoader.load(str(path))

        assert config.retry.max_attempts == 7
        assert config.retry.base_delay == 0.25
        assert config.circuit_breaker.enabled is False
        assert config.transport.base_url == "https://live.example.com"

    def test_invalid_env_value_rejected(self, monkeypatch):
        monkeypatch.setenv("TRADEWIRE_RETRY__MAX_ATTEMPTS", "0")

        with pytest.raises(ValidationError):
            ConfigLoader.load()

    def test_env_header_values_stay_strings(self, monkeypatch):
        """Test that numeric-looking header values are not converted."""
        monkeypatch.setenv("TRADEWIRE_TRANSPORT__HEADERS__X-KEY", "1234")
        monkeypatch.setenv("TRADEWIRE_TRANSPORT__HEADERS__X-FLAG", "true")

        config = ConfigLoader.load()

        assert config.transport.headers["x-key"] == "1234"
        assert config.transport.headers["x-flag"] == "true"

    @pytest.mark.parametrize("raw,expected", [
        ("true", True),
        ("YES", True),
        ("false", False),
        ("no", False),
        ("42", 42),
        ("1.5", 1.5),
        ("INFO", "INFO"),
    ])
    def test_convert_env_value(self, raw, expected):
        assert ConfigLoader._convert_env_value(raw) == expected

    def test_merge_dicts_is_recursive(self):
        """Test that nested sections merge instead of being replaced."""
        merged = ConfigLoader._merge_dicts(
            {"retry": {"max_attempts": 3, "base_delay": 0.1}},
            {"retry": {"max_attempts": 4}},
        )

        assert merged == {"retry": {"max_attempts": 4, "base_delay": 0.1}}

    def test_create_default_config(self, tmp_path):
        """Test that the generated file loads back to the defaults."""
        path = ConfigLoader.create_default_config(str(tmp_path / "nested" / "config.yaml"))

        assert path.exists()
        assert path.read_text().startswith("# tradewire configuration")
        assert ConfigLoader.load(str(path)) == TradewireConfig()

    def test_config_info(self, monkeypatch, tmp_path):
        """Test that existing files and env overrides are listed."""
        existing = tmp_path / "tradewire.yaml"
        existing.write_text("{}")
        monkeypatch.setattr(ConfigLoader, "DEFAULT_CONFIG_PATHS", [existing, tmp_path / "missing.yaml"])
        monkeypatch.setenv("TRADEWIRE_WORKERS__COUNT", "2")

        info = ConfigLoader.get_config_info()

        assert info["existing_configs"] == [str(existing)]
        assert "TRADEWIRE_WORKERS__COUNT" in info["env_overrides"]
        assert len(info["default_paths"]) == 2
