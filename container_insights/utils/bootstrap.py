"""
Startup composition: resolves host metadata once and wires the collection loop.

Follows the process start order: validate configuration, resolve metadata
(unless in debug mode), build the long-lived clients, then register the
collection job with the scheduler bound to the resolved metadata.
"""

import functools
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from container_insights.clients.docker_client import InventoryProbe
from container_insights.clients.factory import create_host_locator, create_inventory_probe
from container_insights.clients.metadata_client import HostLocator
from container_insights.collectors.container_count import ContainerCountCollector
from container_insights.config.models import AppConfig
from container_insights.models.core import HostMetadata
from container_insights.scheduling.scheduler import CollectionScheduler, TickSource
from container_insights.telemetry.emitter import (
    BaseTelemetrySink, TelemetryEmitter, create_telemetry_sink, utc_now
)
from container_insights.utils.errors import CollectorError, MetadataResolutionError


class BootstrapError(CollectorError):
    """Startup could not produce a working collection loop."""

    def __init__(self, message: str, phase: str, recoverable: bool = False):
        super().__init__(message, operation=f"bootstrap:{phase}")
        self.phase = phase
        self.recoverable = recoverable


@dataclass
class CollectorRuntime:
    """Everything the running process holds for its lifetime."""
    metadata: HostMetadata
    probe: InventoryProbe
    emitter: TelemetryEmitter
    collector: ContainerCountCollector
    scheduler: CollectionScheduler


class CollectorBootstrap:
    """
    Builds the collector runtime from configuration.

    Collaborators can be injected for tests; otherwise they are created from
    the configuration.
    """

    def __init__(
        self,
        config: AppConfig,
        locator: Optional[HostLocator] = None,
        probe: Optional[InventoryProbe] = None,
        sink: Optional[BaseTelemetrySink] = None,
        tick_source: Optional[TickSource] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.config = config
        self.locator = locator
        self.probe = probe
        self.sink = sink
        self.tick_source = tick_source
        self.clock = clock
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def validate(self) -> None:
        """
        Raises:
            BootstrapError: If the configuration has errors
        """
        errors = self.config.validate()
        if errors:
            raise BootstrapError(
                f"Configuration validation failed: {', '.join(errors)}",
                "validation"
            )

    async def resolve_metadata(self) -> HostMetadata:
        """
        Resolve host metadata once.

        In debug mode the endpoint is never contacted and both fields are
        empty. When resolution fails the outcome depends on
        ``metadata.fail_on_error``: abort, or continue with empty fields.

        Raises:
            BootstrapError: If resolution fails and failures are fatal
        """
        if self.config.debug:
            self.logger.info("Debug mode: skipping cloud metadata resolution")
            return HostMetadata()

        locator = self.locator or create_host_locator(self.config)

        try:
            metadata = await locator.resolve()
        except MetadataResolutionError as e:
            if self.config.metadata.fail_on_error:
                self.logger.error(f"Cannot resolve host metadata: {e}")
                raise BootstrapError(
                    f"Cannot resolve host metadata: {e}", "metadata"
                ) from e
            self.logger.error(
                f"Cannot resolve host metadata, continuing with empty location and IP: {e}"
            )
            return HostMetadata()

        if metadata.is_incomplete:
            self.logger.warning(
                f"Metadata from {locator.endpoint_url} is incomplete: "
                f"locationKey={metadata.location_key!r} publicIP={metadata.public_ip!r}"
            )

        return metadata

    def build_emitter(self) -> TelemetryEmitter:
        sink = self.sink or create_telemetry_sink(self.config)
        return TelemetryEmitter(sink, clock=self.clock)

    async def build(self) -> CollectorRuntime:
        """
        Run the full startup sequence and return the wired runtime.

        Raises:
            BootstrapError: On invalid configuration, fatal metadata failure,
                or a rejected scheduler registration
        """
        self.validate()
        metadata = await self.resolve_metadata()

        probe = self.probe or create_inventory_probe(self.config)
        emitter = self.build_emitter()
        collector = ContainerCountCollector(probe, emitter, clock=self.clock)

        scheduler = CollectionScheduler(
            tick_source=self.tick_source,
            clock=self.clock,
            config=self.config.scheduler
        )
        try:
            scheduler.register(
                functools.partial(collector.run, metadata),
                self.config.scheduler.interval_seconds,
                name=collector.get_collection_key()
            )
        except CollectorError as e:
            raise BootstrapError(str(e), "registration") from e

        self.logger.info(
            f"Collector ready: interval={self.config.scheduler.interval_seconds}s "
            f"sink={self.config.telemetry.sink} debug={self.config.debug}"
        )
        return CollectorRuntime(
            metadata=metadata,
            probe=probe,
            emitter=emitter,
            collector=collector,
            scheduler=scheduler
        )


def shutdown_runtime(runtime: CollectorRuntime) -> None:
    """Flush telemetry and release the runtime client."""
    runtime.emitter.close()
    runtime.probe.close()
