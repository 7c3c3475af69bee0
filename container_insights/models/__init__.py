"""
Core data models for the container insights collector.
"""

from .core import CollectionResult, HostMetadata, Sample, Severity, TelemetryRecord

__all__ = [
    "CollectionResult",
    "HostMetadata",
    "Sample",
    "Severity",
    "TelemetryRecord",
]
