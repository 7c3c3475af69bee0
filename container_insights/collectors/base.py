"""
Base collector interface and common functionality.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, List

from container_insights.models.core import CollectionResult, HostMetadata
from container_insights.utils.errors import CollectorError
from container_insights.utils.structured_logging import get_logger


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BaseCollector(ABC):
    """
    Abstract base class for a unit of scheduled collection work.

    ``run()`` never raises: failures are logged and reported through the
    returned ``CollectionResult`` so one bad tick cannot stop the scheduler.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self.clock = clock
        self.logger = get_logger(
            f"{__name__}.{self.__class__.__name__}",
            collector_type=self.get_collection_key()
        )

    @abstractmethod
    def collect(self, metadata: HostMetadata) -> CollectionResult:
        """
        Perform one collection.

        Raises:
            CollectorError: When a collaborator fails
        """
        pass

    @abstractmethod
    def get_collection_key(self) -> str:
        """Unique key identifying this collector type."""
        pass

    def run(self, metadata: HostMetadata) -> CollectionResult:
        """
        Execute collection with error containment.

        Args:
            metadata: Host metadata captured at startup

        Returns:
            CollectionResult describing the tick
        """
        start_time = self.clock()

        try:
            return self.collect(metadata)
        except CollectorError as e:
            self.logger.error(
                f"Collection skipped: {e}",
                operation=e.operation,
                target=e.target
            )
            return self.create_failure_result([str(e)], start_time)
        except Exception as e:
            self.logger.exception(f"Unexpected error in collection: {e}")
            return self.create_failure_result([f"Unexpected error: {e}"], start_time)

    def create_failure_result(self, errors: List[str], collection_time: datetime) -> CollectionResult:
        return CollectionResult(
            success=False,
            records_collected=0,
            errors=errors,
            collection_time=collection_time,
            collector_type=self.get_collection_key()
        )
