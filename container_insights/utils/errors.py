"""
Error taxonomy for the container insights collector.
"""

from typing import Optional


class CollectorError(Exception):
    """Base class for collector failures, carrying operation and target context."""

    def __init__(self, message: str, operation: Optional[str] = None, target: Optional[str] = None):
        super().__init__(message)
        self.operation = operation
        self.target = target

    def __str__(self) -> str:
        message = super().__str__()
        context = [part for part in (self.operation, self.target) if part]
        if context:
            return f"{message} [{' '.join(context)}]"
        return message


class MetadataResolutionError(CollectorError):
    """Host metadata could not be resolved at startup."""


class NetworkFailure(MetadataResolutionError):
    """Outbound request to the metadata endpoint could not complete."""


class EmptyResponseFailure(MetadataResolutionError):
    """Metadata endpoint answered with an empty body."""


class RuntimeUnavailable(CollectorError):
    """Container runtime could not be reached or the list call failed."""


class SchedulerRegistrationFailure(CollectorError):
    """Job registration was rejected (invalid interval or no job)."""


class ConfigurationError(CollectorError):
    """Configuration could not be loaded or failed validation."""
