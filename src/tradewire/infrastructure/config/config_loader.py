"""Configuration loader with support for YAML files and environment variables."""

import os
from pathlib import Path
from typing import Optional, Dict, Any
import yaml

from .config_models import TradewireConfig

ENV_PREFIX = "TRADEWIRE_"
ENV_NESTING = "__"
# Mappings whose values are always strings, however they look.
STRING_VALUED_ENV_SECTIONS = {("transport", "headers")}


class ConfigLoader:
    """
    Load and manage tradewire configuration.

    Configuration is loaded in the following order (later sources override earlier):
    1. Default configuration (embedded in code)
    2. Global configuration (~/.tradewire/config.yaml)
    3. Project configuration (./tradewire.yaml or .tradewire.yaml)
    4. User-specified configuration file
    5. Environment variables (TRADEWIRE_<SECTION>__<KEY>)
    """

    DEFAULT_CONFIG_PATHS = [
        Path.home() / ".tradewire" / "config.yaml",
        Path("./tradewire.yaml"),
        Path("./.tradewire.yaml"),
    ]

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> TradewireConfig:
        """
        Load configuration from multiple sources.

        Args:
            config_path: Optional path to configuration file

        Returns:
            TradewireConfig instance

        Raises:
            FileNotFoundError: config_path does not exist
            ValueError: A file is not valid YAML
        """
        config_dict: Dict[str, Any] = {}

        for path in cls.DEFAULT_CONFIG_PATHS:
            if path.exists():
                config_dict = cls._merge_dicts(config_dict, cls._load_yaml_file(path))

        if config_path:
            user_path = Path(config_path)
            if not user_path.exists():
                raise FileNotFoundError(f"Configuration file not found: {config_path}")
            config_dict = cls._merge_dicts(config_dict, cls._load_yaml_file(user_path))

        config_dict = cls._merge_dicts(config_dict, cls._load_from_env())

        return TradewireConfig(**config_dict)

    @staticmethod
    def _load_yaml_file(path: Path) -> Dict[str, Any]:
        try:
            with open(path, 'r') as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {path}: {e}")

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"Configuration in {path} must be a mapping")
        return data

    @staticmethod
    def _merge_dicts(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge `override` into a copy of `base`."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = ConfigLoader._merge_dicts(result[key], value)
            else:
                result[key] = value

        return result

    @staticmethod
    def _load_from_env() -> Dict[str, Any]:
        """
        Load configuration from environment variables.

        Sections and keys are separated by a double underscore so that keys
        may contain single underscores:
        - TRADEWIRE_RETRY__MAX_ATTEMPTS -> retry.max_attempts
        - TRADEWIRE_TRANSPORT__BASE_URL -> transport.base_url
        - TRADEWIRE_TRANSPORT__HEADERS__APCA-API-KEY-ID -> transport.headers
          (header values are never converted)

        Returns:
            Configuration dictionary from environment
        """
        config: Dict[str, Any] = {}

        for key, value in os.environ.items():
            if not key.startswith(ENV_PREFIX):
                continue

            key_parts = key[len(ENV_PREFIX):].lower().split(ENV_NESTING)
            if any(not part for part in key_parts):
                continue

            current = config
            for part in key_parts[:-1]:
                current = current.setdefault(part, {})
                if not isinstance(current, dict):
                    break
            else:
                if tuple(key_parts[:-1]) not in STRING_VALUED_ENV_SECTIONS:
                    value = ConfigLoader._convert_env_value(value)
                current[key_parts[-1]] = value

        return config

    @staticmethod
    def _convert_env_value(value: str) -> Any:
        """Convert environment variable string to bool, int, float or str."""
        if value.lower() in ('true', 'yes'):
            return True
        if value.lower() in ('false', 'no'):
            return False

        try:
            return int(value)
        except ValueError:
            pass

        try:
            return float(value)
        except ValueError:
            pass

        return value

    @staticmethod
    def create_default_config(path: Optional[str] = None) -> Path:
        """
        Create a default configuration file.

        Args:
            path: Optional path for config file. If not provided, creates in ~/.tradewire/

        Returns:
            Path to created configuration file
        """
        if path:
            config_path = Path(path)
            config_path.parent.mkdir(parents=True, exist_ok=True)
        else:
            config_dir = Path.home() / ".tradewire"
            config_dir.mkdir(parents=True, exist_ok=True)
            config_path = config_dir / "config.yaml"

        yaml_content = TradewireConfig().to_yaml()

        yaml_with_comments = f"""# tradewire configuration
#
# Override any value with TRADEWIRE_<SECTION>__<KEY> environment variables
# (for example TRADEWIRE_RETRY__MAX_ATTEMPTS=3) or pass --config at runtime.
# Durations are in seconds.

{yaml_content}
"""

        config_path.write_text(yaml_with_comments)

        return config_path

    @staticmethod
    def get_config_info() -> Dict[str, Any]:
        """
        Get information about configuration sources.

        Returns:
            Dictionary with default paths, existing files and env overrides
        """
        info = {
            "default_paths": [str(p) for p in ConfigLoader.DEFAULT_CONFIG_PATHS],
            "existing_configs": [],
            "env_overrides": [],
        }

        for path in ConfigLoader.DEFAULT_CONFIG_PATHS:
            if path.exists():
                info["existing_configs"].append(str(path))

        for key in os.environ.keys():
            if key.startswith(ENV_PREFIX):
                info["env_overrides"].append(key)

        return info
