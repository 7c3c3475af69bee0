"""
Utility modules for the container insights collector.
"""

from .errors import (
    CollectorError,
    MetadataResolutionError,
    NetworkFailure,
    EmptyResponseFailure,
    RuntimeUnavailable,
    SchedulerRegistrationFailure,
    ConfigurationError,
)
from .structured_logging import LoggingManager, get_logger, logging_manager, correlation_id

__all__ = [
    "CollectorError",
    "MetadataResolutionError",
    "NetworkFailure",
    "EmptyResponseFailure",
    "RuntimeUnavailable",
    "SchedulerRegistrationFailure",
    "ConfigurationError",
    "LoggingManager",
    "get_logger",
    "logging_manager",
    "correlation_id",
]
