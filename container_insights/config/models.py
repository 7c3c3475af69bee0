"""
Configuration data models.
"""

from dataclasses import dataclass, field
from typing import List, Optional

AZURE_METADATA_URL = (
    "http://169.254.169.254/metadata/instance/compute/tags/"
    "?api-version=2020-10-01&format=text"
)
APPINSIGHTS_ENDPOINT = "https://dc.services.visualstudio.com/v2/track"


@dataclass
class TelemetryConfig:
    """Telemetry sink configuration."""
    instrumentation_key: str = ""
    sink: str = "appinsights"  # appinsights | log
    endpoint_url: str = APPINSIGHTS_ENDPOINT
    send_interval: float = 1.0  # seconds between background flushes
    send_buffer_size: int = 500


@dataclass
class MetadataConfig:
    """Cloud metadata endpoint configuration."""
    endpoint_url: str = AZURE_METADATA_URL
    timeout: float = 0  # 0 = transport default
    fail_on_error: bool = True


@dataclass
class InventoryConfig:
    """Container runtime configuration."""
    base_url: Optional[str] = None  # None = DOCKER_HOST / local socket
    timeout: int = 60
    all_containers: bool = True


@dataclass
class SchedulerConfig:
    """Collection cadence configuration."""
    interval_seconds: int = 10
    timezone: str = "UTC"
    misfire_grace_time: int = 1  # seconds


@dataclass
class LoggingConfig:
    """Log output configuration."""
    level: str = "INFO"
    file: Optional[str] = "./appinsights.log"
    structured: bool = False
    console: bool = True
    max_file_size: int = 10 * 1024 * 1024
    backup_count: int = 5


@dataclass
class AppConfig:
    """Main configuration container."""
    debug: bool = False
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    metadata: MetadataConfig = field(default_factory=MetadataConfig)
    inventory: InventoryConfig = field(default_factory=InventoryConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def validate(self) -> List[str]:
        """
        Validate configuration settings.

        Returns:
            List of validation errors, empty if valid
        """
        errors = []

        interval = self.scheduler.interval_seconds
        if isinstance(interval, bool) or not isinstance(interval, int) or interval <= 0:
            errors.append(f"Scheduler interval must be a positive integer: {interval}")

        if self.metadata.timeout < 0:
            errors.append("Metadata timeout must be non-negative")

        if self.telemetry.sink not in ("appinsights", "log"):
            errors.append(f"Unsupported telemetry sink: {self.telemetry.sink}")
        elif self.telemetry.sink == "appinsights" and not self.telemetry.instrumentation_key:
            errors.append("Instrumentation key is required for the appinsights sink")

        return errors
