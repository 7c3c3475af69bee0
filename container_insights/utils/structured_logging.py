"""
Logging setup for the collector.

Every line carries the id of the tick that produced it (``tick-<n>``, or
``-`` outside a tick), so one collection can be followed through the
append-only log file.
"""

import json
import logging
import logging.handlers
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

correlation_id: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)

PLAIN_FORMAT = '%(asctime)s %(levelname)-8s [%(correlation_id)s] %(name)s: %(message)s'

# Chatty at INFO; only their warnings are interesting here
NOISY_LOGGERS = ('urllib3', 'docker', 'asyncio', 'apscheduler', 'applicationinsights')

_STANDARD_ATTRS = set(logging.LogRecord('', 0, '', 0, '', (), None).__dict__) | {
    'message', 'asctime', 'correlation_id', 'taskName'
}
_ADAPTER_KWARGS = ('exc_info', 'stack_info', 'stacklevel', 'extra')


class CorrelationIdFilter(logging.Filter):
    """Stamps each record with the current tick id."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id.get() or "-"
        return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per line; caller-supplied fields go under ``context``."""

    def __init__(self, include_context: bool = True):
        super().__init__()
        self.include_context = include_context

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "tick": getattr(record, 'correlation_id', '-'),
            "message": record.getMessage(),
        }

        if self.include_context:
            context = {
                key: value for key, value in record.__dict__.items()
                if key not in _STANDARD_ATTRS
            }
            if context:
                entry["context"] = context

        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str, ensure_ascii=False)


class CollectorLogAdapter(logging.LoggerAdapter):
    """
    Logger adapter with bound context fields.

    Keyword arguments other than the standard logging ones are treated as
    context for that one call, e.g. ``logger.error(msg, target=url)``.
    """

    def process(self, msg, kwargs):
        call_context = {key: kwargs.pop(key) for key in list(kwargs) if key not in _ADAPTER_KWARGS}
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {}), **call_context}
        return msg, kwargs

    def bind(self, **fields) -> 'CollectorLogAdapter':
        """Return an adapter with additional bound fields."""
        return CollectorLogAdapter(self.logger, {**self.extra, **fields})


def get_logger(name: str, **context) -> CollectorLogAdapter:
    """Get a logger adapter with ``context`` bound to every record."""
    return CollectorLogAdapter(logging.getLogger(name), context)


class LoggingManager:
    """Installs and removes the process-wide log handlers."""

    def __init__(self):
        self._handlers: Dict[str, logging.Handler] = {}

    @property
    def configured(self) -> bool:
        return bool(self._handlers)

    def setup_logging(
        self,
        log_level: str = "INFO",
        log_file: Optional[str] = None,
        max_file_size: int = 10 * 1024 * 1024,
        backup_count: int = 5,
        console_output: bool = True,
        structured_format: bool = False
    ) -> None:
        """
        Configure the root logger.

        Args:
            log_level: Root level name
            log_file: Append-only log file, rotated at ``max_file_size``
            max_file_size: Rotation size in bytes
            backup_count: Rotated files to keep
            console_output: Also log to stdout
            structured_format: JSON lines instead of plain text
        """
        if self.configured:
            return

        root = logging.getLogger()
        root.setLevel(log_level.upper())
        root.handlers.clear()

        formatter = StructuredFormatter() if structured_format else logging.Formatter(PLAIN_FORMAT)

        if console_output:
            self._attach('console', logging.StreamHandler(sys.stdout), formatter)

        if log_file:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            self._attach(
                'file',
                logging.handlers.RotatingFileHandler(
                    log_file,
                    maxBytes=max_file_size,
                    backupCount=backup_count,
                    encoding='utf-8'
                ),
                formatter
            )

        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

        logging.getLogger(__name__).debug(
            f"Logging to {', '.join(self._handlers) or 'nowhere'} at {log_level.upper()}"
        )

    def _attach(self, name: str, handler: logging.Handler, formatter: logging.Formatter) -> None:
        handler.setFormatter(formatter)
        handler.addFilter(CorrelationIdFilter())
        logging.getLogger().addHandler(handler)
        self._handlers[name] = handler

    def shutdown(self) -> None:
        """Detach, flush and close the installed handlers."""
        root = logging.getLogger()
        for handler in self._handlers.values():
            root.removeHandler(handler)
            handler.close()
        self._handlers.clear()


logging_manager = LoggingManager()
