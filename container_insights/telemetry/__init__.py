"""
Telemetry emission to the remote ingestion service.
"""

from .emitter import (
    ApplicationInsightsSink,
    BaseTelemetrySink,
    LogSink,
    TelemetryEmitter,
    create_telemetry_sink,
)

__all__ = [
    "ApplicationInsightsSink",
    "BaseTelemetrySink",
    "LogSink",
    "TelemetryEmitter",
    "create_telemetry_sink",
]
