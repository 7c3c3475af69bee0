"""
Configuration validation using Pydantic.
"""

import logging
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from container_insights.config.models import AZURE_METADATA_URL, APPINSIGHTS_ENDPOINT


class SinkEnum(str, Enum):
    """Supported telemetry sinks."""
    APPINSIGHTS = "appinsights"
    LOG = "log"


def _validate_http_url(v: str, name: str) -> str:
    if not v.startswith(('http://', 'https://')):
        raise ValueError(f"{name} must start with http:// or https://")
    return v


class TelemetryConfigValidator(BaseModel):
    """Pydantic model for telemetry configuration validation."""
    instrumentation_key: str = Field(default="", description="Application Insights instrumentation key")
    sink: SinkEnum = Field(default=SinkEnum.APPINSIGHTS, description="Telemetry transport")
    endpoint_url: str = Field(default=APPINSIGHTS_ENDPOINT, description="Ingestion endpoint")
    send_interval: float = Field(default=1.0, gt=0, le=60, description="Background send interval in seconds")
    send_buffer_size: int = Field(default=500, ge=1, le=10000, description="Queue size that forces a send")

    @field_validator('endpoint_url')
    @classmethod
    def validate_endpoint_url(cls, v):
        return _validate_http_url(v, "Telemetry endpoint URL")


class MetadataConfigValidator(BaseModel):
    """Pydantic model for metadata endpoint configuration validation."""
    endpoint_url: str = Field(default=AZURE_METADATA_URL, description="Instance metadata URL")
    timeout: float = Field(default=0, ge=0, le=300, description="Request timeout in seconds, 0 = transport default")
    fail_on_error: bool = Field(default=True, description="Abort startup when metadata cannot be resolved")

    @field_validator('endpoint_url')
    @classmethod
    def validate_endpoint_url(cls, v):
        return _validate_http_url(v, "Metadata endpoint URL")


class InventoryConfigValidator(BaseModel):
    """Pydantic model for container runtime configuration validation."""
    base_url: Optional[str] = Field(default=None, description="Docker daemon URL")
    timeout: int = Field(default=60, ge=1, le=600, description="Docker API timeout in seconds")
    all_containers: bool = Field(default=True, description="Count containers in every state")


class SchedulerConfigValidator(BaseModel):
    """Pydantic model for scheduler configuration validation."""
    interval_seconds: int = Field(default=10, description="Collection interval in seconds")
    timezone: str = Field(default="UTC", description="Scheduler timezone")
    misfire_grace_time: int = Field(default=1, ge=1, description="Late tick tolerance in seconds")

    @field_validator('interval_seconds', mode='before')
    @classmethod
    def validate_interval(cls, v):
        if isinstance(v, bool) or not isinstance(v, (int, str)):
            raise ValueError(f"Interval must be an integer number of seconds: {v!r}")
        try:
            value = int(v)
        except ValueError:
            raise ValueError(f"Interval must be an integer number of seconds: {v!r}")
        if value <= 0:
            raise ValueError(f"Interval must be positive: {value}")
        return value


class LoggingConfigValidator(BaseModel):
    """Pydantic model for logging configuration validation."""
    level: str = Field(default="INFO", description="Root logging level")
    file: Optional[str] = Field(default="./appinsights.log", description="Append-only log file")
    structured: bool = Field(default=False, description="Emit JSON log lines")
    console: bool = Field(default=True, description="Mirror log lines to stdout")
    max_file_size: int = Field(default=10 * 1024 * 1024, ge=1024, description="Rotation size in bytes")
    backup_count: int = Field(default=5, ge=0, le=100, description="Rotated files to keep")

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        level = str(v).upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level


class AppConfigValidator(BaseModel):
    """Main configuration validator using Pydantic."""
    debug: bool = Field(default=False, description="Local/offline mode, skips metadata resolution")
    telemetry: TelemetryConfigValidator = Field(default_factory=TelemetryConfigValidator)
    metadata: MetadataConfigValidator = Field(default_factory=MetadataConfigValidator)
    inventory: InventoryConfigValidator = Field(default_factory=InventoryConfigValidator)
    scheduler: SchedulerConfigValidator = Field(default_factory=SchedulerConfigValidator)
    logging: LoggingConfigValidator = Field(default_factory=LoggingConfigValidator)

    model_config = {
        "validate_assignment": True,
        "extra": "forbid",
    }

    def to_app_config(self) -> 'AppConfig':
        """Convert to the dataclass configuration used at runtime."""
        from container_insights.config.models import (
            AppConfig, TelemetryConfig, MetadataConfig, InventoryConfig,
            SchedulerConfig, LoggingConfig
        )

        return AppConfig(
            debug=self.debug,
            telemetry=TelemetryConfig(
                instrumentation_key=self.telemetry.instrumentation_key,
                sink=self.telemetry.sink.value,
                endpoint_url=self.telemetry.endpoint_url,
                send_interval=self.telemetry.send_interval,
                send_buffer_size=self.telemetry.send_buffer_size
            ),
            metadata=MetadataConfig(
                endpoint_url=self.metadata.endpoint_url,
                timeout=self.metadata.timeout,
                fail_on_error=self.metadata.fail_on_error
            ),
            inventory=InventoryConfig(
                base_url=self.inventory.base_url,
                timeout=self.inventory.timeout,
                all_containers=self.inventory.all_containers
            ),
            scheduler=SchedulerConfig(
                interval_seconds=self.scheduler.interval_seconds,
                timezone=self.scheduler.timezone,
                misfire_grace_time=self.scheduler.misfire_grace_time
            ),
            logging=LoggingConfig(
                level=self.logging.level,
                file=self.logging.file,
                structured=self.logging.structured,
                console=self.logging.console,
                max_file_size=self.logging.max_file_size,
                backup_count=self.logging.backup_count
            )
        )


def validate_config_dict(config_data: Dict[str, Any]) -> AppConfigValidator:
    """
    Validate configuration dictionary using Pydantic.

    Raises:
        ValueError: If validation fails
    """
    try:
        return AppConfigValidator(**config_data)
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")


def get_env_var_mappings() -> Dict[str, str]:
    """
    Get mapping of environment variables to configuration paths.
    """
    return {
        'CONTAINER_INSIGHTS_DEBUG': 'debug',
        'CONTAINER_INSIGHTS_INSTRUMENTATION_KEY': 'telemetry.instrumentation_key',
        'CONTAINER_INSIGHTS_SINK': 'telemetry.sink',
        'CONTAINER_INSIGHTS_INTERVAL': 'scheduler.interval_seconds',
        'CONTAINER_INSIGHTS_METADATA_URL': 'metadata.endpoint_url',
        'CONTAINER_INSIGHTS_METADATA_TIMEOUT': 'metadata.timeout',
        'CONTAINER_INSIGHTS_METADATA_FAIL_ON_ERROR': 'metadata.fail_on_error',
        'CONTAINER_INSIGHTS_LOG_LEVEL': 'logging.level',
        'CONTAINER_INSIGHTS_LOG_FILE': 'logging.file',
    }
