"""
Telemetry emission: turns samples into event records and hands them to a sink.
"""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, Optional

from applicationinsights import TelemetryClient
from applicationinsights.channel import AsynchronousQueue, AsynchronousSender, TelemetryChannel

from ..models.core import Sample, Severity, TelemetryRecord

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BaseTelemetrySink(ABC):
    """Transport that accepts event records; delivery is its own business."""

    @abstractmethod
    def track(self, record: TelemetryRecord) -> None:
        """Queue a record for delivery without waiting for acknowledgment."""
        pass

    def flush(self) -> None:
        """Push out anything still queued."""

    def close(self) -> None:
        self.flush()


class DrainingSender(AsynchronousSender):
    """
    Asynchronous sender whose backlog can be delivered before exit.

    The SDK's worker is a daemon thread and a flush only wakes it, so
    anything it has not sent yet dies with the process. ``drain`` waits
    for the worker to finish and sends the rest from the calling thread.
    """

    def __init__(self, service_endpoint_uri: Optional[str] = None):
        super().__init__(service_endpoint_uri)
        self._worker_active = threading.Lock()

    def _run(self):
        with self._worker_active:
            super()._run()

    def drain(self) -> int:
        """
        Stop the background worker and deliver everything still queued.

        Blocks until delivery is attempted. Records the endpoint refuses
        are dropped.

        Returns:
            Number of records that could not be delivered

        Raises:
            TimeoutError: If the worker is still retrying a batch
        """
        queue = self.queue
        self.stop()
        queue.flush_notification.set()

        # A worker that just sent a batch idles for up to send_time before exiting
        wait = self.send_timeout + self.send_time + max(self.send_interval, 0.1) + 1.0
        if not self._worker_active.acquire(timeout=wait):
            raise TimeoutError(f"Telemetry worker still sending after {wait:.1f}s")

        try:
            pending = []
            item = queue.get()
            while item:
                pending.append(item)
                item = queue.get()

            for start in range(0, len(pending), self.send_buffer_size):
                self.send(pending[start:start + self.send_buffer_size])

            # Failed batches are put back on the queue by the SDK
            undelivered = 0
            while queue.get():
                undelivered += 1
        finally:
            self._worker_active.release()

        return undelivered


class ApplicationInsightsSink(BaseTelemetrySink):
    """
    Sends records as Application Insights traces.

    Uses the SDK's asynchronous queue, so ``track`` only enqueues and a
    background sender thread batches delivery to the ingestion endpoint.
    ``close`` delivers whatever is still queued before returning.
    """

    def __init__(
        self,
        instrumentation_key: str,
        endpoint_url: Optional[str] = None,
        send_interval: float = 1.0,
        send_buffer_size: int = 500,
        client: Optional[TelemetryClient] = None
    ):
        if client is None:
            sender = DrainingSender(endpoint_url)
            sender.send_interval = send_interval
            sender.send_buffer_size = send_buffer_size
            channel = TelemetryChannel(None, AsynchronousQueue(sender))
            client = TelemetryClient(instrumentation_key, channel)
        self._client = client

    def track(self, record: TelemetryRecord) -> None:
        # The SDK stamps the envelope time itself when the trace is enqueued
        self._client.track_trace(
            record.message,
            properties=dict(record.properties),
            severity=record.severity.value
        )

    def flush(self) -> None:
        self._client.flush()

    def close(self) -> None:
        sender = self._client.channel.queue.sender
        if not isinstance(sender, DrainingSender):
            self._client.flush()
            return

        undelivered = sender.drain()
        if undelivered:
            logger.warning(f"{undelivered} telemetry records were not delivered before shutdown")
        else:
            logger.debug(f"Telemetry delivered to {sender.service_endpoint_uri}")


class LogSink(BaseTelemetrySink):
    """Writes records to the log instead of a remote service (dry runs)."""

    def __init__(self, logger_name: str = "container_insights.telemetry.sink"):
        self._logger = logging.getLogger(logger_name)

    def track(self, record: TelemetryRecord) -> None:
        self._logger.info(
            f"telemetry {record.severity.name} {record.message}",
            extra={
                "properties": record.properties,
                "occurred_at": record.timestamp.isoformat() if record.timestamp else None
            }
        )


class TelemetryEmitter:
    """
    Formats a sample into a telemetry record and sends it, best effort.

    The record's timestamp is the moment of emission, not the moment the
    sample was built.
    """

    def __init__(
        self,
        sink: BaseTelemetrySink,
        clock: Callable[[], datetime] = utc_now,
        severity: Severity = Severity.INFORMATION
    ):
        self.sink = sink
        self.clock = clock
        self.severity = severity

    def build_record(self, sample: Sample) -> TelemetryRecord:
        """
        Build the trace record for ``sample``.

        ``timestamp`` is read by sinks that write their own time field, such
        as ``LogSink``. ``ApplicationInsightsSink`` ignores it because the
        SDK stamps each envelope when ``track_trace`` enqueues it, which
        happens within the same ``emit`` call.
        """
        return TelemetryRecord(
            message=sample.to_message(),
            severity=self.severity,
            properties={
                "locationKey": sample.location_key,
                "serverIP": sample.server_ip,
            },
            timestamp=self.clock()
        )

    def emit(self, sample: Sample) -> None:
        record = self.build_record(sample)
        try:
            self.sink.track(record)
        except Exception as e:
            # Delivery is fire-and-forget; a broken transport must not fail the tick
            logger.warning(f"Telemetry sink rejected record {record.message}: {e}")
            return

        logger.debug(f"Emitted telemetry record {record.message}")

    def flush(self) -> None:
        try:
            self.sink.flush()
        except Exception as e:
            logger.warning(f"Telemetry sink flush failed: {e}")

    def close(self) -> None:
        try:
            self.sink.close()
        except Exception as e:
            logger.warning(f"Telemetry sink close failed: {e}")


def create_telemetry_sink(config) -> BaseTelemetrySink:
    """Create the sink named by ``config.telemetry.sink``."""
    telemetry = config.telemetry
    if telemetry.sink == "log":
        return LogSink()
    return ApplicationInsightsSink(
        telemetry.instrumentation_key,
        endpoint_url=telemetry.endpoint_url,
        send_interval=telemetry.send_interval,
        send_buffer_size=telemetry.send_buffer_size
    )
