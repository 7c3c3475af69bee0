"""
Command-line interface for the container insights collector.
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from container_insights import __version__
from container_insights.config.manager import ConfigManager
from container_insights.config.models import AppConfig
from container_insights.utils.errors import CollectorError
from container_insights.utils.structured_logging import logging_manager

logger = logging.getLogger(__name__)


def _add_collection_arguments(parser: argparse.ArgumentParser) -> None:
    """Flags shared by the commands that build a collector."""
    parser.add_argument(
        "-ik", "--instrumentation-key",
        type=str,
        help="Application Insights instrumentation key (overrides config)"
    )
    parser.add_argument(
        "-ti", "--interval",
        type=int,
        help="Collection interval in seconds (overrides config)"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Offline mode: skip cloud metadata resolution"
    )
    parser.add_argument(
        "--sink",
        choices=["appinsights", "log"],
        help="Telemetry sink (overrides config)"
    )


def _add_start_command(subparsers):
    """Add start command parser."""
    start_parser = subparsers.add_parser(
        "start",
        help="Start periodic collection",
        description="Resolve host metadata and count containers on a fixed cadence until stopped"
    )
    _add_collection_arguments(start_parser)


def _add_collect_once_command(subparsers):
    """Add collect-once command parser."""
    once_parser = subparsers.add_parser(
        "collect-once",
        help="Run a single collection and exit",
        description="Resolve host metadata, emit one sample, flush telemetry and exit"
    )
    _add_collection_arguments(once_parser)


def _add_resolve_metadata_command(subparsers):
    """Add resolve-metadata command parser."""
    resolve_parser = subparsers.add_parser(
        "resolve-metadata",
        help="Print the host location key and public IP",
        description="Query the instance metadata endpoint once and print the parsed result"
    )
    resolve_parser.add_argument(
        "--url",
        type=str,
        help="Metadata endpoint URL (overrides config)"
    )
    resolve_parser.add_argument(
        "--timeout",
        type=float,
        help="Request timeout in seconds, 0 for the transport default"
    )


def _add_init_command(subparsers):
    """Add init command parser."""
    init_parser = subparsers.add_parser(
        "init",
        help="Write a default configuration file",
        description="Create a default YAML configuration"
    )
    init_parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite existing configuration"
    )


def _add_validate_command(subparsers):
    """Add validate command parser."""
    subparsers.add_parser(
        "validate",
        help="Validate configuration",
        description="Validate the configuration file with environment overrides applied"
    )


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="container-insights",
        description="Container Insights Collector CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  container-insights init                          # Write config.yaml with defaults
  container-insights validate                      # Validate current configuration
  container-insights start -ik <key> -ti 10        # Collect every 10 seconds
  container-insights start --debug --sink log      # Offline dry run
  container-insights collect-once --debug          # One sample, then exit
  container-insights resolve-metadata              # Show location key and public IP
        """
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"container-insights-collector {__version__}"
    )

    parser.add_argument(
        "--config",
        type=str,
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output"
    )

    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress non-error output"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Configuration commands
    _add_init_command(subparsers)
    _add_validate_command(subparsers)

    # Collection commands
    _add_start_command(subparsers)
    _add_collect_once_command(subparsers)
    _add_resolve_metadata_command(subparsers)

    return parser


def _collection_overrides(args) -> Dict[str, Any]:
    return {
        "telemetry.instrumentation_key": getattr(args, "instrumentation_key", None),
        "telemetry.sink": getattr(args, "sink", None),
        "scheduler.interval_seconds": getattr(args, "interval", None),
        "debug": True if getattr(args, "debug", False) else None,
    }


def _load_config(args, overrides: Optional[Dict[str, Any]] = None) -> AppConfig:
    manager = ConfigManager(args.config)
    return manager.load_config(overrides)


def _setup_logging(config: AppConfig, args) -> None:
    if args.quiet:
        level = "ERROR"
    elif args.verbose:
        level = "DEBUG"
    else:
        level = config.logging.level

    logging_manager.setup_logging(
        log_level=level,
        log_file=config.logging.file,
        max_file_size=config.logging.max_file_size,
        backup_count=config.logging.backup_count,
        console_output=config.logging.console and not args.quiet,
        structured_format=config.logging.structured
    )


async def start_command(args):
    """Start periodic collection and run until SIGINT or SIGTERM."""
    from container_insights.utils.bootstrap import CollectorBootstrap, shutdown_runtime

    try:
        config = _load_config(args, _collection_overrides(args))
    except CollectorError as e:
        print(f"Error loading configuration: {e}")
        return 1

    _setup_logging(config, args)
    print("Starting container insights collector...")

    try:
        runtime = await CollectorBootstrap(config).build()
    except CollectorError as e:
        print(f"Error starting collector: {e}")
        return 1

    scheduler = runtime.scheduler
    loop = asyncio.get_running_loop()

    def signal_handler(signum):
        print(f"\nReceived {signal.Signals(signum).name}. Stopping gracefully...")
        scheduler.request_stop()

    handled_signals: List[int] = []
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, signal_handler, signum)
            handled_signals.append(signum)
        except (NotImplementedError, RuntimeError):
            logger.debug(f"Cannot install handler for {signum}; relying on KeyboardInterrupt")

    try:
        await scheduler.start()
        print(
            f"✓ Collection started every {config.scheduler.interval_seconds}s, "
            f"first tick at {scheduler.schedule.next_fire_time.isoformat()}"
        )
        await scheduler.run_forever()
    finally:
        await scheduler.stop()
        for signum in handled_signals:
            loop.remove_signal_handler(signum)
        shutdown_runtime(runtime)
        logger.info(f"Final scheduler status: {json.dumps(scheduler.get_status())}")
        logging_manager.shutdown()

    print("✓ Collector stopped")
    return 0


async def collect_once_command(args):
    """Run one collection, flush telemetry and exit."""
    from container_insights.utils.bootstrap import CollectorBootstrap, shutdown_runtime

    try:
        config = _load_config(args, _collection_overrides(args))
    except CollectorError as e:
        print(f"Error loading configuration: {e}")
        return 1

    _setup_logging(config, args)

    try:
        runtime = await CollectorBootstrap(config).build()
    except CollectorError as e:
        print(f"Error starting collector: {e}")
        return 1

    try:
        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(None, runtime.collector.run, runtime.metadata)
    finally:
        shutdown_runtime(runtime)
        logging_manager.shutdown()

    if not result.success:
        print("✗ Collection failed:")
        for error in result.errors:
            print(f"  - {error}")
        return 1

    print(f"✓ Emitted {result.sample.to_message()}")
    return 0


async def resolve_metadata_command(args):
    """Resolve and print host metadata."""
    from container_insights.clients.metadata_client import HostLocator

    try:
        config = _load_config(args, {
            "metadata.endpoint_url": args.url,
            "metadata.timeout": args.timeout,
        })
    except CollectorError as e:
        print(f"Error loading configuration: {e}")
        return 1

    locator = HostLocator(config.metadata.endpoint_url, config.metadata.timeout)
    try:
        metadata = await locator.resolve()
    except CollectorError as e:
        print(f"✗ Cannot resolve host metadata: {e}")
        return 1

    print(json.dumps({
        "locationKey": metadata.location_key,
        "publicIP": metadata.public_ip,
    }, indent=2))

    if metadata.is_incomplete:
        print("Warning: metadata response did not contain both pip: and locationkey: tags")
    return 0


def init_command(args):
    """Write a default configuration file."""
    config_path = Path(args.config)
    manager = ConfigManager(str(config_path))

    if not manager.create_default_config(force=args.force):
        print(f"Configuration file {config_path} already exists. Use --force to overwrite.")
        return 1

    print(f"✓ Configuration initialized at {config_path}")
    print("  Set telemetry.instrumentation_key or CONTAINER_INSIGHTS_INSTRUMENTATION_KEY before starting")
    return 0


def validate_command(args):
    """Validate configuration file."""
    config_path = Path(args.config)

    if not config_path.exists():
        print(f"Configuration file {config_path} not found.")
        return 1

    print(f"Validating configuration: {config_path}")

    manager = ConfigManager(str(config_path))
    is_valid, errors = manager.validate_config_file()

    if not is_valid:
        print("✗ Configuration validation failed:")
        for error in errors:
            print(f"  - {error}")
        return 1

    config = manager.load_config()
    print("✓ Configuration is valid")
    print("\nConfiguration Summary:")
    print(f"  Debug mode: {config.debug}")
    print(f"  Telemetry sink: {config.telemetry.sink}")
    print(f"  Interval: {config.scheduler.interval_seconds}s")
    print(f"  Metadata endpoint: {config.metadata.endpoint_url}")
    print(f"  Metadata failures fatal: {config.metadata.fail_on_error}")
    print(f"  Log file: {config.logging.file}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    command_handlers = {
        "init": init_command,
        "validate": validate_command,
        "start": start_command,
        "collect-once": collect_once_command,
        "resolve-metadata": resolve_metadata_command,
    }

    handler = command_handlers.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}")
        return 1

    try:
        if asyncio.iscoroutinefunction(handler):
            return asyncio.run(handler(args))
        return handler(args)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user.")
        return 130
    except Exception as e:
        if args.verbose:
            import traceback
            traceback.print_exc()
        else:
            print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
