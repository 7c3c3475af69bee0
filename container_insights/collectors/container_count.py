"""
Container count collector: one sample of the host's container inventory per tick.
"""

from datetime import datetime
from typing import Callable

from container_insights.clients.docker_client import InventoryProbe
from container_insights.collectors.base import BaseCollector, utc_now
from container_insights.models.core import CollectionResult, HostMetadata, Sample
from container_insights.telemetry.emitter import TelemetryEmitter


class ContainerCountCollector(BaseCollector):
    """
    Combines the runtime's container count with the host metadata and emits it.

    Holds no state of its own beyond its collaborators; a failed probe means
    no sample for that tick.
    """

    def __init__(
        self,
        probe: InventoryProbe,
        emitter: TelemetryEmitter,
        clock: Callable[[], datetime] = utc_now
    ):
        self.probe = probe
        self.emitter = emitter
        super().__init__(clock)

    def get_collection_key(self) -> str:
        return "container_count"

    def collect(self, metadata: HostMetadata) -> CollectionResult:
        count = self.probe.count()

        sample = Sample(
            session_count=count,
            location_key=metadata.location_key,
            server_ip=metadata.public_ip,
            timestamp=self.clock()
        )
        self.emitter.emit(sample)

        self.logger.info(f"Collected {count} containers")
        return CollectionResult(
            success=True,
            records_collected=1,
            errors=[],
            collection_time=sample.timestamp,
            collector_type=self.get_collection_key(),
            sample=sample
        )
