"""
Core data models for the container insights collector.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional


@dataclass(frozen=True)
class HostMetadata:
    """Cloud location and public IP of the host, resolved once at startup."""
    location_key: str = ""
    public_ip: str = ""

    @property
    def is_incomplete(self) -> bool:
        """True when either field could not be resolved."""
        return not self.location_key or not self.public_ip


@dataclass(frozen=True)
class Sample:
    """One collected data point: container count plus host metadata."""
    session_count: int
    location_key: str
    server_ip: str
    timestamp: datetime

    def __post_init__(self):
        if self.session_count < 0:
            raise ValueError(f"session_count must be non-negative: {self.session_count}")

    def to_message(self) -> str:
        """Compact JSON form used as the telemetry message."""
        return json.dumps(
            {
                "Sessions": self.session_count,
                "LocationKey": self.location_key,
                "ServerIP": self.server_ip,
            },
            separators=(",", ":"),
        )


class Severity(str, Enum):
    """Severity levels understood by the telemetry sink."""
    VERBOSE = "DEBUG"
    INFORMATION = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass(frozen=True)
class TelemetryRecord:
    """Event record handed to a telemetry sink."""
    message: str
    severity: Severity
    properties: Dict[str, str] = field(default_factory=dict)
    timestamp: Optional[datetime] = None


@dataclass
class CollectionResult:
    """Result of a single collection tick."""
    success: bool
    records_collected: int
    errors: list[str]
    collection_time: datetime
    collector_type: str
    sample: Optional[Sample] = None
