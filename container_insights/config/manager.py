"""
Configuration manager: file loading, environment overrides and validation.
"""

import copy
import json
import logging
import os
from typing import Any, Dict, Optional

import yaml

from container_insights.config.models import AppConfig
from container_insights.config.validation import validate_config_dict, get_env_var_mappings
from container_insights.utils.errors import ConfigurationError

logger = logging.getLogger(__name__)

_BOOL_FIELDS = {'debug', 'metadata.fail_on_error'}
_INT_FIELDS = {'scheduler.interval_seconds'}
_FLOAT_FIELDS = {'metadata.timeout'}


class ConfigManager:
    """
    Loads configuration from a YAML or JSON file.

    Values are layered as: built-in defaults, then the file (if present),
    then environment variables, then explicit overrides (CLI flags).
    """

    def __init__(self, config_file_path: str = "config.yaml"):
        self.config_file_path = os.path.abspath(config_file_path)
        self._config: Optional[AppConfig] = None

    def load_config(self, overrides: Optional[Dict[str, Any]] = None) -> AppConfig:
        """
        Load, merge and validate configuration.

        Args:
            overrides: Dotted-path values that take precedence over file and
                environment, e.g. ``{"scheduler.interval_seconds": 5}``

        Raises:
            ConfigurationError: If the file cannot be read or validation fails
        """
        config_data = self._load_config_file() if os.path.exists(self.config_file_path) else {}
        config_data = self._apply_env_overrides(config_data)
        for path, value in (overrides or {}).items():
            if value is not None:
                self._set_path(config_data, path, value)

        try:
            validated = validate_config_dict(config_data)
        except ValueError as e:
            raise ConfigurationError(str(e), operation="load_config", target=self.config_file_path) from e

        self._config = validated.to_app_config()
        return self._config

    def get_config(self) -> AppConfig:
        """Get current configuration, loading if necessary."""
        if self._config is None:
            return self.load_config()
        return self._config

    def validate_config_file(self) -> tuple[bool, list[str]]:
        """
        Validate configuration file (with environment overrides) without keeping it.

        Returns:
            Tuple of (is_valid, error_messages)
        """
        if not os.path.exists(self.config_file_path):
            return False, ["Configuration file does not exist"]

        try:
            config_data = self._apply_env_overrides(self._load_config_file())
            validated = validate_config_dict(config_data)
        except (ConfigurationError, ValueError) as e:
            return False, [str(e)]

        errors = validated.to_app_config().validate()
        return not errors, errors

    def create_default_config(self, force: bool = False) -> bool:
        """
        Write a default configuration file.

        Returns:
            True if the file was written, False if it already existed
        """
        if os.path.exists(self.config_file_path) and not force:
            return False

        default_config = {
            'debug': False,
            'telemetry': {
                'instrumentation_key': '',
                'sink': 'appinsights',
            },
            'metadata': {
                'endpoint_url': AppConfig().metadata.endpoint_url,
                'timeout': 0,
                'fail_on_error': True,
            },
            'inventory': {
                'all_containers': True,
            },
            'scheduler': {
                'interval_seconds': 10,
            },
            'logging': {
                'level': 'INFO',
                'file': './appinsights.log',
                'structured': False,
            },
        }

        config_dir = os.path.dirname(self.config_file_path)
        if config_dir:
            os.makedirs(config_dir, exist_ok=True)

        with open(self.config_file_path, 'w') as f:
            yaml.dump(default_config, f, default_flow_style=False, indent=2, sort_keys=False)

        logger.info(f"Wrote default configuration to {self.config_file_path}")
        return True

    def _load_config_file(self) -> Dict[str, Any]:
        """Load configuration data from file."""
        try:
            with open(self.config_file_path, 'r') as f:
                if self.config_file_path.endswith(('.yaml', '.yml')):
                    data = yaml.safe_load(f) or {}
                elif self.config_file_path.endswith('.json'):
                    data = json.load(f)
                else:
                    raise ConfigurationError(
                        "Unsupported config file format",
                        operation="load_config",
                        target=self.config_file_path
                    )
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(
                f"Cannot read configuration: {e}",
                operation="load_config",
                target=self.config_file_path
            ) from e

        if not isinstance(data, dict):
            raise ConfigurationError(
                "Configuration root must be a mapping",
                operation="load_config",
                target=self.config_file_path
            )
        return data

    def _apply_env_overrides(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to configuration."""
        config_data = copy.deepcopy(config_data)

        for env_var, config_path in get_env_var_mappings().items():
            env_value = os.getenv(env_var)
            if env_value is not None:
                self._set_path(config_data, config_path, self._convert_env_value(config_path, env_value))

        return config_data

    @staticmethod
    def _set_path(config_data: Dict[str, Any], config_path: str, value: Any) -> None:
        keys = config_path.split('.')
        current = config_data
        for key in keys[:-1]:
            if not isinstance(current.get(key), dict):
                current[key] = {}
            current = current[key]
        current[keys[-1]] = value

    @staticmethod
    def _convert_env_value(config_path: str, env_value: str) -> Any:
        """Convert environment variable value to appropriate type."""
        if config_path in _BOOL_FIELDS:
            return env_value.lower() in ('true', '1', 'yes', 'on')
        if config_path in _INT_FIELDS:
            # Left as the raw string when not numeric so validation reports it
            return int(env_value) if env_value.strip().lstrip('-').isdigit() else env_value
        if config_path in _FLOAT_FIELDS:
            try:
                return float(env_value)
            except ValueError:
                return env_value
        return env_value
