"""
Configuration management for the container insights collector.
"""

from .models import (
    AppConfig,
    TelemetryConfig,
    MetadataConfig,
    InventoryConfig,
    SchedulerConfig,
    LoggingConfig,
)
from .manager import ConfigManager
from .validation import AppConfigValidator, validate_config_dict, get_env_var_mappings

__all__ = [
    'AppConfig',
    'TelemetryConfig',
    'MetadataConfig',
    'InventoryConfig',
    'SchedulerConfig',
    'LoggingConfig',
    'ConfigManager',
    'AppConfigValidator',
    'validate_config_dict',
    'get_env_var_mappings',
]
